"""Tests for error conversion, user-facing messages, and error history."""

import json
import zlib
from pathlib import Path
from unittest.mock import patch

import pytest
from hypothesis import given, settings, strategies as st

from nesdb.services.errors import (
    AppError,
    ArchiveError,
    CartridgeParseError,
    DecodingError,
    ErrorCategory,
    ErrorHandlingService,
    ErrorSeverity,
    InvalidHeaderError,
    InvalidPathError,
    PersistenceError,
    StorageIOError,
    ValidationError,
)
from nesdb.services.storage import FileSystemService


class TestErrorConversion:
    """Standard exceptions are converted into application errors."""

    def test_os_error_becomes_storage_error(self) -> None:
        service = ErrorHandlingService()
        user_error = service.handle_error(
            PermissionError("denied"), operation="save", component="persistence", context={"path": "/tmp/x"}
        )
        assert user_error.category == ErrorCategory.PERSISTENCE
        assert user_error.message == "save failed: denied"
        assert "Check file/directory permissions" in user_error.suggested_actions
        assert user_error.technical_details is not None
        assert "Path: /tmp/x" in user_error.technical_details

    def test_zlib_error_becomes_decoding_error(self) -> None:
        service = ErrorHandlingService()
        user_error = service.handle_error(zlib.error("incorrect header check"), operation="load", component="codec")
        assert user_error.message == "failed to decode data: incorrect header check"
        assert not user_error.recoverable

    def test_json_error_becomes_validation_error(self) -> None:
        service = ErrorHandlingService()
        try:
            json.loads("{broken")
        except json.JSONDecodeError as e:
            user_error = service.handle_error(e, operation="load_config", component="config")
        assert user_error.category == ErrorCategory.VALIDATION
        assert "Invalid JSON" in user_error.message

    def test_value_error_keeps_message(self) -> None:
        service = ErrorHandlingService()
        user_error = service.handle_error(
            ValueError("bad checksum"), operation="inspect", component="cli", context={"field": "crc"}
        )
        assert user_error.message == "bad checksum"
        assert user_error.technical_details == "Field: crc"

    def test_unexpected_error(self) -> None:
        service = ErrorHandlingService()
        user_error = service.handle_error(RuntimeError("boom"), operation="compile", component="cli")
        assert user_error.category == ErrorCategory.UNEXPECTED
        assert user_error.message == "An unexpected error occurred."
        assert user_error.technical_details == "RuntimeError: boom"

    def test_app_errors_pass_through(self) -> None:
        service = ErrorHandlingService()
        error = CartridgeParseError("x.nes: invalid iNES header", path="x.nes")
        user_error = service.handle_error(error, operation="crc", component="cli")
        assert user_error.message == "x.nes: invalid iNES header"
        assert user_error.severity == ErrorSeverity.WARNING
        assert user_error.technical_details == "Path: x.nes"


class TestPersistenceErrors:
    """The persistence taxonomy shares one base class and readable messages."""

    @pytest.mark.parametrize(
        "error",
        [
            InvalidHeaderError("invalid magic"),
            DecodingError("unexpected end of compressed stream"),
            InvalidPathError("out", "path is a directory"),
            StorageIOError(OSError("disk"), "failed to create file out.dat"),
        ],
    )
    def test_shared_base(self, error: PersistenceError) -> None:
        assert isinstance(error, PersistenceError)
        assert isinstance(error, AppError)
        assert error.category == ErrorCategory.PERSISTENCE

    def test_header_error_message(self) -> None:
        error = InvalidHeaderError("invalid version (expected b'1', found: b'2')")
        assert str(error) == "invalid nesdb header: invalid version (expected b'1', found: b'2')"
        assert error.reason.startswith("invalid version")
        assert error.suggested_actions

    def test_invalid_path_message(self) -> None:
        error = InvalidPathError(Path("out"), "path is a directory")
        assert str(error) == "invalid path: out (path is a directory)"
        assert error.path == Path("out")

    def test_storage_error_carries_context(self) -> None:
        original = FileNotFoundError(2, "No such file or directory")
        error = StorageIOError(original, "failed to open file game_db.dat", path="game_db.dat")
        assert error.context_message == "failed to open file game_db.dat"
        assert error.original_error is original
        assert error.path == Path("game_db.dat")
        assert "Verify the file path is correct" in error.suggested_actions

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("No space left on device", "Free up disk space"),
            ("Read-only file system", "The file system is read-only"),
            ("something else", "Check the file path and permissions"),
        ],
    )
    def test_storage_error_suggestions(self, message: str, expected: str) -> None:
        error = StorageIOError(OSError(message), "failed to create file x")
        assert error.suggested_actions[0] == expected

    def test_archive_error_details(self) -> None:
        original = ValueError("bad crc")
        error = ArchiveError("roms.zip: invalid zip archive", path="roms.zip", original_error=original)
        assert error.category == ErrorCategory.FILE_SYSTEM
        assert error.technical_details == "Archive: roms.zip\nError: ValueError: bad crc"


class TestFileSystemErrors:
    """File system failures surface as persistence errors and are logged."""

    def test_missing_file(self, tmp_path: Path) -> None:
        storage = FileSystemService(base_path=tmp_path)
        with patch("nesdb.services.storage.log") as mock_logger:
            with pytest.raises(StorageIOError) as exc_info:
                storage.open_reader("missing.dat")
            assert mock_logger.error.called
        assert isinstance(exc_info.value.original_error, FileNotFoundError)

    def test_directory_as_file(self, tmp_path: Path) -> None:
        storage = FileSystemService(base_path=tmp_path)
        with pytest.raises(InvalidPathError):
            storage.open_writer(tmp_path)

    def test_file_as_directory(self, tmp_path: Path) -> None:
        (tmp_path / "blocker").write_text("x")
        storage = FileSystemService(base_path=tmp_path)
        with pytest.raises(InvalidPathError):
            storage.ensure_directory("blocker")
        with pytest.raises(InvalidPathError):
            list(storage.iter_dir("blocker"))


class TestUserMessages:

    def test_message_with_suggestions(self) -> None:
        service = ErrorHandlingService()
        user_error = ValidationError("bad value", constraints=["a", "b", "c"]).to_user_friendly()
        message = service.create_user_message(user_error)
        lines = message.splitlines()
        assert lines[0] == "bad value"
        assert "Suggested actions:" in message
        # At most three suggestions are shown
        assert sum(1 for line in lines if line.startswith("  • ")) == 3

    def test_message_without_suggestions(self) -> None:
        service = ErrorHandlingService()
        user_error = DecodingError("truncated").to_user_friendly()
        assert service.create_user_message(user_error, include_suggestions=False) == "failed to decode data: truncated"


class TestErrorHistory:

    @given(
        errors=st.lists(
            st.sampled_from([ValueError("v"), FileNotFoundError("f"), RuntimeError("r"), zlib.error("z")]),
            min_size=1,
            max_size=20,
        )
    )
    @settings(deadline=None, max_examples=50)
    def test_history_state_consistency(self, errors: list[Exception]) -> None:
        """Handled errors are all recorded and counted by category."""
        service = ErrorHandlingService(max_history_size=10)
        with patch("nesdb.services.errors.log") as mock_logger:
            for error in errors:
                user_error = service.handle_error(error, operation="op", component="test")
                assert user_error.message
            assert mock_logger.warning.called or mock_logger.error.called

        recent = service.get_recent_errors(count=100)
        assert len(recent) == min(len(errors), 10)
        assert sum(service.get_error_count_by_category().values()) == len(recent)

    def test_warnings_logged_at_warning_level(self) -> None:
        service = ErrorHandlingService()
        with patch("nesdb.services.errors.log") as mock_logger:
            service.handle_error(ValueError("v"), operation="op", component="test")
            service.handle_error(RuntimeError("r"), operation="op", component="test")
        assert mock_logger.warning.call_count == 1
        assert mock_logger.error.call_count == 1
        _, kwargs = mock_logger.error.call_args
        assert kwargs["operation"] == "op"
        assert kwargs["category"] == "unexpected"
