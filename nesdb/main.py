"""Command-line entry point for nesdb.

This module provides:
- Command-line argument parsing
- Service construction from configuration and flags
- The compile, inspect, and crc commands
"""

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

import structlog

from nesdb import __version__
from nesdb.models import AppConfig
from nesdb.services.checksum import compute_file_crc32, format_crc32
from nesdb.services.config import VALID_LOG_LEVELS, ConfigurationService
from nesdb.services.errors import AppError, get_error_service
from nesdb.services.game_db import GameDatabaseService, compute_cartridge_crc32
from nesdb.services.logging import setup_logging
from nesdb.services.persistence import PersistenceService
from nesdb.services.storage import FileSystemService


log = structlog.stdlib.get_logger()


class ApplicationContext:
    """Container for application services.

    Services are created lazily from the loaded configuration.
    """

    def __init__(self, config_path: Path | None = None, overrides: dict[str, object] | None = None) -> None:
        self._config_path: Path | None = config_path
        self._overrides: dict[str, object] = overrides or {}

        self._config_service: ConfigurationService | None = None
        self._persistence: PersistenceService | None = None
        self._game_db: GameDatabaseService | None = None
        self._config: AppConfig | None = None

    @property
    def config_service(self) -> ConfigurationService:
        """Get the configuration service (lazy initialization)."""
        if self._config_service is None:
            self._config_service = ConfigurationService(config_path=self._config_path)
        return self._config_service

    @property
    def config(self) -> AppConfig:
        """Get the configuration with command-line overrides applied."""
        if self._config is None:
            loaded = self.config_service.load_config()
            values = {
                "rom_directory": loaded.rom_directory,
                "database_path": loaded.database_path,
                "listing_path": loaded.listing_path,
                "log_level": loaded.log_level,
                "rom_extension": loaded.rom_extension,
                "include_archives": loaded.include_archives,
            }
            values.update({key: value for key, value in self._overrides.items() if value is not None})
            self._config = AppConfig(**values)  # type: ignore[arg-type]
        return self._config

    @property
    def persistence(self) -> PersistenceService:
        if self._persistence is None:
            self._persistence = PersistenceService(FileSystemService())
        return self._persistence

    @property
    def game_db(self) -> GameDatabaseService:
        if self._game_db is None:
            self._game_db = GameDatabaseService(
                persistence=self.persistence,
                rom_extension=self.config.rom_extension,
                include_archives=self.config.include_archives,
            )
        return self._game_db


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="nesdb",
        description="Compile an NES game database from a directory of cartridge images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  nesdb compile ~/roms/nes             Compile game_db.dat and game_database.txt
  nesdb compile "Some Game (USA).nes"  Add one game to an existing database
  nesdb inspect game_db.dat --crc 808606F0
  nesdb crc "Some Game (USA).nes"
        """
    )

    _ = parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    _ = parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: ~/.config/nesdb/config.json)"
    )
    _ = parser.add_argument(
        "--log-level",
        choices=VALID_LOG_LEVELS,
        default=None,
        help="Set the logging level (default: from config, INFO)"
    )
    _ = parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Directory for log files (default: console only)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    compile_parser = subparsers.add_parser("compile", help="Build the database from cartridge images")
    _ = compile_parser.add_argument(
        "path",
        nargs="?",
        type=Path,
        default=None,
        help="Directory of images, or a single image to add (default: configured rom_directory)"
    )
    _ = compile_parser.add_argument("--db", type=Path, default=None, help="Output database path")
    _ = compile_parser.add_argument("--listing", type=Path, default=None, help="Output text listing path")
    _ = compile_parser.add_argument(
        "--archives",
        action="store_true",
        default=None,
        help="Also read images from .zip and .7z archives"
    )

    inspect_parser = subparsers.add_parser("inspect", help="Print the entries of a compiled database")
    _ = inspect_parser.add_argument("database", type=Path, help="Compiled database file")
    _ = inspect_parser.add_argument("--crc", default=None, help="Only show the entry for this checksum (hex)")

    crc_parser = subparsers.add_parser("crc", help="Print the identity checksum of a cartridge image")
    _ = crc_parser.add_argument("file", type=Path, help="Cartridge image")
    _ = crc_parser.add_argument("--raw", action="store_true", help="Checksum the whole file instead")

    return parser


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)


def run_compile(context: ApplicationContext, args: argparse.Namespace) -> int:
    config = context.config
    path: Path = args.path or config.rom_directory

    if path.is_dir():
        entries = context.game_db.compile(path, config.listing_path, config.database_path)
        print(f"Compiled {len(entries)} games into {config.database_path} ({config.listing_path})")
        return 0
    elif path.is_file():
        info = context.game_db.add_game(path, config.database_path)
        print(f"Added {format_crc32(info.crc32)} {info.title} to {config.database_path}")
        return 0

    print(f"No such file or directory: {path}", file=sys.stderr)
    return 1


def run_inspect(context: ApplicationContext, args: argparse.Namespace) -> int:
    database = context.game_db.load_database(args.database)

    if args.crc is not None:
        try:
            crc32 = int(args.crc, 16)
        except ValueError:
            print(f"Invalid checksum: {args.crc}", file=sys.stderr)
            return 1
        entry = database.lookup(crc32)
        if entry is None:
            print(f"{format_crc32(crc32)} not found", file=sys.stderr)
            return 1
        entries = [entry]
    else:
        entries = database.entries

    for entry in entries:
        print(f"{format_crc32(entry.crc32)}  {entry.region}  {entry.mapper_num:>3}/{entry.submapper_num}  {entry.title}")
    return 0


def run_crc(context: ApplicationContext, args: argparse.Namespace) -> int:
    if args.raw:
        crc32 = compute_file_crc32(args.file)
    else:
        crc32 = compute_cartridge_crc32(context.game_db.parser(args.file))
    print(format_crc32(crc32))
    return 0


COMMANDS = {
    "compile": run_compile,
    "inspect": run_inspect,
    "crc": run_crc,
}


def run(argv: Sequence[str] | None = None) -> int:
    """Run the command line and return the exit code."""
    args = parse_arguments(argv)

    context = ApplicationContext(
        config_path=args.config,
        overrides={
            "log_level": args.log_level,
            "database_path": getattr(args, "db", None),
            "listing_path": getattr(args, "listing", None),
            "include_archives": getattr(args, "archives", None),
        },
    )

    _ = setup_logging(log_level=context.config.log_level, log_dir=args.log_dir)
    log.debug("Starting nesdb", version=__version__, command=args.command)

    try:
        exit_code = COMMANDS[args.command](context, args)

    except KeyboardInterrupt:
        log.info("Interrupted by user")
        exit_code = 130

    except AppError as e:
        service = get_error_service()
        error = service.handle_error(e, operation=args.command, component="cli")
        print(service.create_user_message(error), file=sys.stderr)
        exit_code = 1

    except Exception as e:
        log.error("Unhandled exception", error=str(e), exc_info=True)
        print(f"Fatal error: {e}", file=sys.stderr)
        exit_code = 1

    log.debug("Exiting", exit_code=exit_code)
    return exit_code


def main() -> None:
    """Main entry point for the application."""
    sys.exit(run())


if __name__ == "__main__":
    main()
