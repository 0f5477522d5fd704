"""Configuration service for managing application settings."""

import json
from pathlib import Path

import structlog

from ..models import AppConfig

log = structlog.stdlib.get_logger()

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_DATABASE_PATH = Path("game_db.dat")
DEFAULT_LISTING_PATH = Path("game_database.txt")


class ValidationResult:
    """Result of configuration validation."""

    def __init__(self, is_valid: bool, errors: list[str] | None = None) -> None:
        self.is_valid: bool = is_valid
        self.errors: list[str] = errors or []


class ConfigurationService:
    """Service for managing application configuration."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_path: Path = config_path or Path.home() / ".config" / "nesdb" / "config.json"
        log.debug("Configuration service initialized", config_path=str(self.config_path))

    def load_config(self) -> AppConfig:
        """Load configuration from file or return default configuration."""
        if not self.config_path.exists():
            log.debug("Configuration file not found, using defaults")
            return self.get_default_config()

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data: dict[str, str | bool | None] = json.load(f)

            config = self._dict_to_config(data)
            validation_result = self.validate_config(config)

            if not validation_result.is_valid:
                log.warning("Invalid configuration loaded, using defaults", errors=validation_result.errors)
                return self.get_default_config()

            log.info("Configuration loaded successfully", config_path=str(self.config_path))
            return config

        except (json.JSONDecodeError, KeyError, TypeError, ValueError, OSError) as e:
            log.error("Failed to load configuration, using defaults", error=str(e))
            return self.get_default_config()

    def save_config(self, config: AppConfig) -> None:
        """Save configuration to file."""
        validation_result = self.validate_config(config)
        if not validation_result.is_valid:
            raise ValueError(f"Invalid configuration: {', '.join(validation_result.errors)}")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            data = self._config_to_dict(config)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)

            log.info("Configuration saved successfully")

        except OSError as e:
            log.error("Failed to save configuration", error=str(e))
            raise

    def validate_config(self, config: AppConfig) -> ValidationResult:
        """Validate configuration settings."""
        errors = []

        if not isinstance(config.rom_directory, Path):
            errors.append("rom_directory must be a Path object")

        for name in ("database_path", "listing_path"):
            value = getattr(config, name)
            if not isinstance(value, Path):
                errors.append(f"{name} must be a Path object")
            elif value == Path("."):
                errors.append(f"{name} cannot be empty")

        if isinstance(config.database_path, Path) and config.database_path == config.listing_path:
            errors.append("database_path and listing_path must differ")

        if not isinstance(config.rom_extension, str) or not config.rom_extension.startswith("."):
            errors.append("rom_extension must start with '.'")
        elif len(config.rom_extension) < 2 or "/" in config.rom_extension:
            errors.append("rom_extension must be a file extension such as '.nes'")

        if not isinstance(config.include_archives, bool):
            errors.append("include_archives must be a boolean")

        if config.log_level not in VALID_LOG_LEVELS:
            errors.append(f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}")

        return ValidationResult(len(errors) == 0, errors)

    def get_default_config(self) -> AppConfig:
        """Get default configuration."""
        return AppConfig(
            rom_directory=Path.cwd(),
            database_path=DEFAULT_DATABASE_PATH,
            listing_path=DEFAULT_LISTING_PATH,
            log_level="INFO",
            rom_extension=".nes",
            include_archives=False,
        )

    def _config_to_dict(self, config: AppConfig) -> dict[str, str | bool]:
        """Convert AppConfig to dictionary for JSON serialization."""
        return {
            "rom_directory": str(config.rom_directory),
            "database_path": str(config.database_path),
            "listing_path": str(config.listing_path),
            "log_level": config.log_level,
            "rom_extension": config.rom_extension,
            "include_archives": config.include_archives,
        }

    def _dict_to_config(self, data: dict[str, str | bool | None]) -> AppConfig:
        """Convert dictionary to AppConfig."""
        defaults = self.get_default_config()

        include_archives_raw = data.get("include_archives", False)
        include_archives = include_archives_raw if isinstance(include_archives_raw, bool) else False

        rom_extension = data.get("rom_extension", defaults.rom_extension)
        log_level = data.get("log_level", defaults.log_level)

        return AppConfig(
            rom_directory=Path(str(data.get("rom_directory") or defaults.rom_directory)),
            database_path=Path(str(data.get("database_path") or defaults.database_path)),
            listing_path=Path(str(data.get("listing_path") or defaults.listing_path)),
            log_level=str(log_level) if isinstance(log_level, str) else "INFO",
            rom_extension=str(rom_extension).lower() if isinstance(rom_extension, str) else defaults.rom_extension,
            include_archives=include_archives,
        )
