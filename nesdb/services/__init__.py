"""Service layer: checksums, persistence, and the game identification pipeline."""

from .archives import ARCHIVE_EXTENSIONS, detect_archive_type, read_rom_from_archive
from .cartridge import Cartridge, parse_cartridge, parse_cartridge_bytes
from .checksum import compute_combine_crc32, compute_crc32, compute_file_crc32, format_crc32
from .config import ConfigurationService, ValidationResult
from .errors import (
    AppError,
    ArchiveError,
    CartridgeParseError,
    ConfigurationError,
    CustomError,
    DecodingError,
    DeserializationError,
    EncodingError,
    ErrorCategory,
    ErrorHandlingService,
    ErrorSeverity,
    HeaderWriteError,
    InvalidHeaderError,
    InvalidPathError,
    PersistenceError,
    SerializationError,
    StorageIOError,
    UserFriendlyError,
    ValidationError,
    get_error_service,
    handle_error,
)
from .game_db import (
    MAPPER_CORRECTIONS,
    GameDatabase,
    GameDatabaseService,
    apply_corrections,
    compute_cartridge_crc32,
    derive_region,
    derive_title,
)
from .persistence import PersistenceService
from .storage import FileSystemService

__all__ = [
    "ARCHIVE_EXTENSIONS",
    "AppError",
    "ArchiveError",
    "Cartridge",
    "CartridgeParseError",
    "ConfigurationError",
    "ConfigurationService",
    "CustomError",
    "DecodingError",
    "DeserializationError",
    "EncodingError",
    "ErrorCategory",
    "ErrorHandlingService",
    "ErrorSeverity",
    "FileSystemService",
    "GameDatabase",
    "GameDatabaseService",
    "HeaderWriteError",
    "InvalidHeaderError",
    "InvalidPathError",
    "MAPPER_CORRECTIONS",
    "PersistenceError",
    "PersistenceService",
    "SerializationError",
    "StorageIOError",
    "UserFriendlyError",
    "ValidationError",
    "ValidationResult",
    "apply_corrections",
    "compute_cartridge_crc32",
    "compute_combine_crc32",
    "compute_crc32",
    "compute_file_crc32",
    "derive_region",
    "derive_title",
    "detect_archive_type",
    "format_crc32",
    "get_error_service",
    "handle_error",
    "parse_cartridge",
    "parse_cartridge_bytes",
    "read_rom_from_archive",
]
