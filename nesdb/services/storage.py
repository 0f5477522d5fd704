"""File system storage backend used by the persistence layer."""

import os
import shutil
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

import structlog

from .errors import InvalidPathError, StorageIOError

log = structlog.stdlib.get_logger()


class FileSystemService:
    """Local file system backend with error mapping and logging.

    Every method opens at most one handle and reports failures as
    StorageIOError carrying a description of the step that failed.
    """

    def __init__(self, base_path: Path | None = None) -> None:
        """Initialize the file system service.

        Args:
            base_path: Directory relative paths are resolved against
                (defaults to the current working directory)
        """
        self.base_path = base_path or Path.cwd()
        log.debug("File system service initialized", base_path=str(self.base_path))

    def resolve(self, path: Path | str) -> Path:
        """Resolve a path against the base directory."""
        path = Path(path)
        if not str(path):
            raise InvalidPathError(path, "empty path")
        return path if path.is_absolute() else self.base_path / path

    def open_writer(self, path: Path | str) -> BinaryIO:
        """Open a file for binary writing, creating parent directories.

        Raises:
            InvalidPathError: If the path is a directory
            StorageIOError: If the file cannot be created
        """
        target = self.resolve(path)
        if target.is_dir():
            raise InvalidPathError(target, "path is a directory")
        self.ensure_directory(target.parent)
        try:
            log.debug("Opening file for writing", path=str(target))
            return open(target, "wb")
        except OSError as e:
            log.error("Failed to open file for writing", path=str(target), error=str(e))
            raise StorageIOError(e, f"failed to create file {target}", path=target) from e

    def open_reader(self, path: Path | str) -> BinaryIO:
        """Open a file for binary reading.

        Raises:
            InvalidPathError: If the path is a directory
            StorageIOError: If the file cannot be opened
        """
        target = self.resolve(path)
        if target.is_dir():
            raise InvalidPathError(target, "path is a directory")
        try:
            log.debug("Opening file for reading", path=str(target))
            return open(target, "rb")
        except OSError as e:
            log.error("Failed to open file for reading", path=str(target), error=str(e))
            raise StorageIOError(e, f"failed to open file {target}", path=target) from e

    def ensure_directory(self, path: Path | str) -> None:
        """Ensure that a directory exists, creating it if necessary.

        Raises:
            InvalidPathError: If the path exists but is not a directory
            StorageIOError: If the directory cannot be created
        """
        target = self.resolve(path)
        if target.exists():
            if not target.is_dir():
                log.error("Path exists but is not a directory", path=str(target))
                raise InvalidPathError(target, "path exists but is not a directory")
            return
        try:
            log.debug("Creating directory", path=str(target))
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.error("Failed to create directory", path=str(target), error=str(e))
            raise StorageIOError(e, f"failed to create directory {target}", path=target) from e

    def exists(self, path: Path | str) -> bool:
        """Check whether a path exists."""
        return self.resolve(path).exists()

    def iter_dir(self, directory: Path | str) -> Iterator[Path]:
        """Yield the entries of a directory in name order.

        Raises:
            InvalidPathError: If the path is not a directory
            StorageIOError: If the directory cannot be read
        """
        target = self.resolve(directory)
        if not target.is_dir():
            raise InvalidPathError(target, "not a directory")
        try:
            with os.scandir(target) as entries:
                names = sorted(entry.name for entry in entries)
        except OSError as e:
            log.error("Failed to list directory", directory=str(target), error=str(e))
            raise StorageIOError(e, f"failed to read directory {target}", path=target) from e

        log.debug("Listed directory", directory=str(target), count=len(names))
        for name in names:
            yield target / name

    def clear_dir(self, directory: Path | str) -> None:
        """Remove a directory and everything below it.

        Missing directories are ignored.

        Raises:
            InvalidPathError: If the path is a file
            StorageIOError: If removal fails
        """
        target = self.resolve(directory)
        if not target.exists():
            log.debug("Directory already absent", directory=str(target))
            return
        if not target.is_dir():
            raise InvalidPathError(target, "not a directory")
        try:
            shutil.rmtree(target)
            log.info("Directory cleared", directory=str(target))
        except OSError as e:
            log.error("Failed to clear directory", directory=str(target), error=str(e))
            raise StorageIOError(e, f"failed to remove directory {target}", path=target) from e
