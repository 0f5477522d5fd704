"""Error types and centralized error handling for nesdb.

This module provides:
- The persistence error taxonomy raised by the codec and storage layers
- Cartridge and archive errors raised while scanning ROM images
- User-friendly error messages with suggested actions
- A centralized error handling service used by the command line
"""

import json
import time
import zlib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

log = structlog.stdlib.get_logger()


class ErrorCategory(Enum):
    """Categories of errors for classification and handling."""
    PERSISTENCE = "persistence"
    FILE_SYSTEM = "file_system"
    CARTRIDGE = "cartridge"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    UNEXPECTED = "unexpected"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ErrorContext:
    """Context information for an error."""
    operation: str
    component: str
    details: dict[str, Any]


@dataclass(frozen=True)
class UserFriendlyError:
    """User-friendly error representation with suggested actions."""
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    suggested_actions: list[str]
    technical_details: str | None = None
    recoverable: bool = True


class AppError(Exception):
    """Base exception class for application errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNEXPECTED,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        suggested_actions: list[str] | None = None,
        technical_details: str | None = None,
        recoverable: bool = True,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.suggested_actions = suggested_actions or []
        self.technical_details = technical_details
        self.recoverable = recoverable
        self.context = context

    def to_user_friendly(self) -> UserFriendlyError:
        """Convert to user-friendly error representation."""
        return UserFriendlyError(
            message=self.message,
            category=self.category,
            severity=self.severity,
            suggested_actions=self.suggested_actions,
            technical_details=self.technical_details,
            recoverable=self.recoverable,
        )


def _describe(error: BaseException | None) -> str | None:
    if error is None:
        return None
    return f"{type(error).__name__}: {error}"


class PersistenceError(AppError):
    """Base class for failures while saving or loading framed data."""

    default_actions: list[str] = []

    def __init__(self, message: str, original_error: BaseException | None = None) -> None:
        super().__init__(
            message=message,
            category=ErrorCategory.PERSISTENCE,
            severity=ErrorSeverity.ERROR,
            suggested_actions=list(type(self).default_actions),
            technical_details=_describe(original_error),
            recoverable=False,
        )
        self.original_error = original_error


class InvalidHeaderError(PersistenceError):
    """The magic token or version byte did not match."""

    default_actions = [
        "Make sure the file was written by nesdb",
        "Regenerate the file with the current version",
    ]

    def __init__(self, reason: str, original_error: BaseException | None = None) -> None:
        super().__init__(f"invalid nesdb header: {reason}", original_error)
        self.reason = reason


class HeaderWriteError(PersistenceError):
    """The header could not be written to the sink."""

    default_actions = ["Check the destination is writable", "Ensure sufficient disk space"]

    def __init__(self, original_error: BaseException) -> None:
        super().__init__(f"failed to write nesdb header: {original_error}", original_error)


class EncodingError(PersistenceError):
    """Compressing the payload failed."""

    default_actions = ["Ensure sufficient disk space", "Try saving again"]

    def __init__(self, original_error: BaseException) -> None:
        super().__init__(f"failed to encode data: {original_error}", original_error)


class DecodingError(PersistenceError):
    """Decompressing the payload failed."""

    default_actions = ["The file may be truncated or corrupted", "Regenerate the file"]

    def __init__(self, reason: str, original_error: BaseException | None = None) -> None:
        super().__init__(f"failed to decode data: {reason}", original_error)
        self.reason = reason


class SerializationError(PersistenceError):
    """A value could not be converted to its binary encoding."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"failed to serialize data: {reason}")
        self.reason = reason


class DeserializationError(PersistenceError):
    """Decoded bytes did not describe a valid value of the requested type."""

    default_actions = ["The file may be corrupted", "Regenerate the file"]

    def __init__(self, reason: str) -> None:
        super().__init__(f"failed to deserialize data: {reason}")
        self.reason = reason


class InvalidPathError(PersistenceError):
    """A path was unusable for the requested operation."""

    default_actions = ["Verify the path is correct"]

    def __init__(self, path: Path | str, reason: str | None = None) -> None:
        message = f"invalid path: {path}" + (f" ({reason})" if reason else "")
        super().__init__(message)
        self.path = Path(path)


class StorageIOError(PersistenceError):
    """An I/O step against the storage backend failed."""

    def __init__(self, original_error: OSError, context: str, path: Path | str | None = None) -> None:
        super().__init__(f"{context}: {original_error}", original_error)
        self.suggested_actions = self._get_suggested_actions(original_error)
        self.context_message = context
        self.path = Path(path) if path is not None else None
        if path is not None:
            self.technical_details = f"Path: {path}\n{self.technical_details}"

    @staticmethod
    def _get_suggested_actions(original_error: OSError) -> list[str]:
        """Get suggested actions based on error type."""
        if isinstance(original_error, PermissionError):
            return [
                "Check file/directory permissions",
                "Choose a different location",
            ]
        elif isinstance(original_error, FileNotFoundError):
            return [
                "Verify the file path is correct",
                "Check if the file was moved or deleted",
            ]
        error_str = str(original_error).lower()
        if "no space" in error_str or "disk full" in error_str:
            return [
                "Free up disk space",
                "Choose a different output location",
            ]
        elif "read-only" in error_str:
            return [
                "The file system is read-only",
                "Choose a different location",
            ]
        return [
            "Check the file path and permissions",
            "Ensure sufficient disk space",
        ]


class CustomError(PersistenceError):
    """Free-form persistence failure."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class CartridgeParseError(AppError):
    """A file could not be parsed as an iNES cartridge image."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        technical_details = f"Path: {path}" if path is not None else None
        super().__init__(
            message=message,
            category=ErrorCategory.CARTRIDGE,
            severity=ErrorSeverity.WARNING,
            suggested_actions=[
                "Verify the file is an iNES or NES 2.0 image",
                "Re-dump or re-download the ROM",
            ],
            technical_details=technical_details,
            recoverable=True,
        )
        self.path = path


class ArchiveError(AppError):
    """An archive could not be opened or held no matching ROM."""

    def __init__(
        self,
        message: str,
        path: Path | str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        technical_details = None
        if path is not None:
            technical_details = f"Archive: {path}"
        if original_error:
            technical_details = (technical_details or "") + f"\nError: {_describe(original_error)}"
        super().__init__(
            message=message,
            category=ErrorCategory.FILE_SYSTEM,
            severity=ErrorSeverity.WARNING,
            suggested_actions=["Check the archive is not corrupted", "Extract the ROM manually"],
            technical_details=technical_details,
            recoverable=True,
        )
        self.path = path
        self.original_error = original_error


class ValidationError(AppError):
    """Exception for validation-related errors."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        constraints: list[str] | None = None,
    ) -> None:
        suggested_actions = ["Review the input requirements"]
        if constraints:
            suggested_actions.extend([f"Ensure: {c}" for c in constraints])

        technical_details = None
        if field:
            technical_details = f"Field: {field}"
        if value is not None:
            value_str = str(value)[:100]
            technical_details = (technical_details or "") + f"\nValue: {value_str}"

        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.WARNING,
            suggested_actions=suggested_actions,
            technical_details=technical_details,
            recoverable=True,
        )
        self.field = field
        self.value = value
        self.constraints = constraints or []


class ConfigurationError(AppError):
    """Exception for configuration-related errors."""

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        current_value: Any = None,
        expected: str | None = None,
    ) -> None:
        suggested_actions = [
            "Check the configuration settings",
            "Reset to default values if needed",
        ]
        if expected:
            suggested_actions.append(f"Expected: {expected}")

        technical_details = None
        if setting:
            technical_details = f"Setting: {setting}"
        if current_value is not None:
            technical_details = (technical_details or "") + f"\nCurrent: {current_value}"

        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.ERROR,
            suggested_actions=suggested_actions,
            technical_details=technical_details,
            recoverable=True,
        )
        self.setting = setting
        self.current_value = current_value
        self.expected = expected


class ErrorHandlingService:
    """Centralized error handling service.

    Converts arbitrary exceptions into AppError instances, logs them with
    technical details, and keeps a bounded history for later reporting.
    """

    def __init__(self, max_history_size: int = 100) -> None:
        self._error_history: list[tuple[float, AppError]] = []
        self._max_history_size = max_history_size
        log.debug("Error handling service initialized")

    def handle_error(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any] | None = None,
    ) -> UserFriendlyError:
        """Handle an error and return a user-friendly representation.

        Args:
            error: The exception that occurred
            operation: The operation being performed
            component: The component where the error occurred
            context: Additional context information

        Returns:
            User-friendly error representation
        """
        app_error = self._convert_to_app_error(error, operation, component, context)
        self._log_error(app_error, operation, component, context)

        self._error_history.append((time.time(), app_error))
        if len(self._error_history) > self._max_history_size:
            self._error_history.pop(0)

        return app_error.to_user_friendly()

    def _convert_to_app_error(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any] | None,
    ) -> AppError:
        """Convert a standard exception to an AppError."""
        if isinstance(error, AppError):
            return error

        path = context.get("path") if context else None

        if isinstance(error, OSError):
            return StorageIOError(error, context=f"{operation} failed", path=path)
        elif isinstance(error, zlib.error):
            return DecodingError(str(error), error)
        elif isinstance(error, json.JSONDecodeError):
            return ValidationError(
                message="Invalid JSON format. The data could not be parsed.",
                field="json_content",
            )
        elif isinstance(error, ValueError):
            return ValidationError(
                message=str(error),
                field=context.get("field") if context else None,
                value=context.get("value") if context else None,
            )
        elif isinstance(error, TypeError):
            return ValidationError(
                message=f"Invalid data type: {error}",
                field=context.get("field") if context else None,
            )

        return AppError(
            message="An unexpected error occurred.",
            category=ErrorCategory.UNEXPECTED,
            severity=ErrorSeverity.ERROR,
            technical_details=_describe(error),
            recoverable=True,
            context=ErrorContext(
                operation=operation,
                component=component,
                details=context or {},
            ),
        )

    def _log_error(
        self,
        error: AppError,
        operation: str,
        component: str,
        context: dict[str, Any] | None,
    ) -> None:
        """Log error with full technical details."""
        log_method = log.warning if error.severity == ErrorSeverity.WARNING else log.error

        log_method(
            "Error occurred",
            error_message=error.message,
            category=error.category.value,
            severity=error.severity.value,
            operation=operation,
            component=component,
            technical_details=error.technical_details,
            recoverable=error.recoverable,
            context=context,
        )

    def get_recent_errors(self, count: int = 10) -> list[AppError]:
        """Get the most recent errors from history."""
        recent = self._error_history[-count:] if self._error_history else []
        return [error for _, error in recent]

    def get_error_count_by_category(self) -> dict[ErrorCategory, int]:
        """Get count of errors by category."""
        counts: dict[ErrorCategory, int] = {}
        for _, error in self._error_history:
            counts[error.category] = counts.get(error.category, 0) + 1
        return counts

    def create_user_message(
        self,
        error: UserFriendlyError,
        include_suggestions: bool = True,
    ) -> str:
        """Create a formatted user message from an error.

        Args:
            error: The user-friendly error
            include_suggestions: Whether to include suggested actions

        Returns:
            Formatted message string
        """
        parts = [error.message]

        if include_suggestions and error.suggested_actions:
            parts.append("\nSuggested actions:")
            for action in error.suggested_actions[:3]:
                parts.append(f"  • {action}")

        return "\n".join(parts)


_error_service: ErrorHandlingService | None = None


def get_error_service() -> ErrorHandlingService:
    """Get the global error handling service instance."""
    global _error_service
    if _error_service is None:
        _error_service = ErrorHandlingService()
    return _error_service


def handle_error(
    error: Exception,
    operation: str,
    component: str,
    context: dict[str, Any] | None = None,
) -> UserFriendlyError:
    """Convenience function to handle errors using the global service."""
    return get_error_service().handle_error(error, operation, component, context)
