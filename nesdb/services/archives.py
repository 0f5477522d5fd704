"""Read ROM images out of .zip and .7z archives."""

import tempfile
import zipfile
from pathlib import Path

import py7zr
import structlog

from .errors import ArchiveError

log = structlog.stdlib.get_logger()

ZIP_MAGIC = b"PK"
SEVEN_ZIP_MAGIC = b"7z\xbc\xaf\x27\x1c"
ARCHIVE_EXTENSIONS = (".zip", ".7z")


def detect_archive_type(path: Path) -> str | None:
    """Detect the archive type by reading file magic bytes.

    Args:
        path: Path to the file to check

    Returns:
        Archive type string ('zip', '7z') or None if not an archive
    """
    try:
        with open(path, "rb") as f:
            magic_bytes = f.read(8)
    except OSError as e:
        log.warning("Failed to detect archive type", path=str(path), error=str(e))
        return None

    if magic_bytes[:2] == ZIP_MAGIC:
        return "zip"
    if magic_bytes[:6] == SEVEN_ZIP_MAGIC:
        return "7z"

    suffix = path.suffix.lower()
    if suffix == ".zip":
        return "zip"
    elif suffix == ".7z":
        return "7z"
    return None


def _read_from_zip(path: Path, extension: str) -> tuple[str, bytes]:
    with zipfile.ZipFile(path, "r") as zf:
        for name in sorted(zf.namelist()):
            if name.lower().endswith(extension) and not name.endswith("/"):
                return Path(name).name, zf.read(name)
    raise ArchiveError(f"{path.name}: no {extension} file in archive", path=path)


def _read_from_7z(path: Path, extension: str) -> tuple[str, bytes]:
    with py7zr.SevenZipFile(path, mode="r") as archive:
        names = sorted(name for name in archive.getnames() if name.lower().endswith(extension))
        if not names:
            raise ArchiveError(f"{path.name}: no {extension} file in archive", path=path)
        with tempfile.TemporaryDirectory() as temp_dir:
            archive.extract(path=temp_dir, targets=[names[0]])
            extracted = Path(temp_dir) / names[0]
            return Path(names[0]).name, extracted.read_bytes()


def read_rom_from_archive(path: Path, extension: str = ".nes") -> tuple[str, bytes]:
    """Return the name and contents of the first ROM member in an archive.

    Members are considered in name order.

    Raises:
        ArchiveError: If the file is not a readable archive or has no
            member with the given extension
    """
    extension = extension.lower()
    archive_type = detect_archive_type(path)
    try:
        if archive_type == "zip":
            member, data = _read_from_zip(path, extension)
        elif archive_type == "7z":
            member, data = _read_from_7z(path, extension)
        else:
            raise ArchiveError(f"{path.name}: not a supported archive", path=path)
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"{path.name}: invalid zip archive", path=path, original_error=e) from e
    except py7zr.Bad7zFile as e:
        raise ArchiveError(f"{path.name}: invalid 7z archive", path=path, original_error=e) from e
    except OSError as e:
        raise ArchiveError(f"{path.name}: failed to read archive", path=path, original_error=e) from e

    log.debug("Read ROM from archive", archive=str(path), member=member, size=len(data))
    return member, data
