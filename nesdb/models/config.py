"""Configuration data models."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppConfig:
    """Application configuration settings."""
    rom_directory: Path
    database_path: Path
    listing_path: Path
    log_level: str
    rom_extension: str = ".nes"
    include_archives: bool = False  # Also read .nes members out of .zip/.7z files
