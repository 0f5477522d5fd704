"""Game identification pipeline and compiled database access.

A directory of cartridge images is scanned, each image is fingerprinted
by a CRC-32 over its PRG-ROM followed by its CHR-ROM, known header
mistakes are corrected from a static table, and the sorted result is
written both as a text listing and as a framed binary database.
"""

import bisect
import json
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from types import MappingProxyType

import structlog

from ..models import CompiledDatabase, GameInfo, GameRecord, NesRegion, ScanOutcome
from .archives import ARCHIVE_EXTENSIONS, read_rom_from_archive
from .cartridge import (
    CHR_ROM_BANK_SIZE,
    PRG_RAM_BANK_SIZE,
    PRG_ROM_BANK_SIZE,
    Cartridge,
    parse_cartridge,
    parse_cartridge_bytes,
)
from .checksum import compute_combine_crc32, compute_crc32, format_crc32
from .errors import ArchiveError, CartridgeParseError
from .persistence import PersistenceService

log = structlog.stdlib.get_logger()

LISTING_HEADER = (
    "# CRC, Region, Mapper, SubMapper, ChrBanks, PrgRomBanks, PrgRamBanks, Battery, Mirroring, Title"
)

PAL_MARKERS = ("Europe", "PAL")

# checksum -> (mapper, submapper)
MAPPER_CORRECTIONS: Mapping[int, tuple[int, int]] = MappingProxyType({
    # Mapper 210 games incorrectly marked as Mapper 19
    0x808606F0: (210, 1),  # Famista '91
    0x81B7F1A8: (210, 1),  # Heisei Tensai Bakabon
    0xC247CC80: (210, 1),  # Family Circuit '91
    0x0C47946D: (210, 1),  # Chibi Maruko-chan: Uki Uki Shopping
    0x1DC0F740: (210, 2),  # Famista '92
    0x429103C9: (210, 2),  # Famista '93
    0x46FD7843: (210, 2),  # Famista '94
    0x47232739: (210, 2),  # Splatterhouse: Wanpaku Graffiti
    0x6EC51DE5: (210, 2),  # Top Striker
    0xADFFD64F: (210, 2),  # Wagyan Land 2
    0xD323B806: (210, 2),  # Wagyan Land 3
})


def compute_cartridge_crc32(cartridge: Cartridge) -> int:
    """Identity checksum of a cartridge: PRG-ROM, then CHR-ROM when present."""
    crc32 = compute_crc32(cartridge.prg_rom)
    if cartridge.has_chr_rom:
        crc32 = compute_combine_crc32(crc32, cartridge.chr_rom)
    return crc32


def derive_region(filename: str | bytes) -> NesRegion:
    """Guess the region from tags in a file name.

    Names that are not valid text default to NTSC.
    """
    try:
        if isinstance(filename, bytes):
            name = filename.decode("utf-8")
        else:
            filename.encode("utf-8")
            name = filename
    except UnicodeError:
        return NesRegion.NTSC

    if any(marker in name for marker in PAL_MARKERS):
        return NesRegion.PAL
    return NesRegion.NTSC


def derive_title(filename: str | bytes, extension: str = ".nes") -> str:
    """Title from a file name with its ROM extension removed.

    Undecodable bytes are replaced rather than rejected.
    """
    if isinstance(filename, bytes):
        name = filename.decode("utf-8", "replace")
    else:
        name = filename.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
    if extension and name.lower().endswith(extension.lower()):
        name = name[: -len(extension)]
    return name


def apply_corrections(record: GameRecord) -> GameRecord:
    """Overwrite mapper/submapper for checksums with known bad headers.

    Idempotent; the record is modified in place and returned.
    """
    correction = MAPPER_CORRECTIONS.get(record.crc32)
    if correction is not None:
        record.mapper, record.submapper = correction
    return record


def sort_records(records: list[GameRecord]) -> list[GameRecord]:
    """Sort records by checksum, then title."""
    return sorted(records, key=lambda record: (record.crc32, record.title))


def deduplicate(records: list[GameRecord]) -> list[GameRecord]:
    """Drop records whose checksum was already seen, keeping the first.

    Expects records sorted by checksum.
    """
    unique: list[GameRecord] = []
    for record in records:
        if unique and unique[-1].crc32 == record.crc32:
            log.warning(
                "Duplicate checksum, dropping entry",
                crc32=format_crc32(record.crc32),
                kept=unique[-1].title,
                dropped=record.title,
            )
            continue
        unique.append(record)
    return unique


def format_line(record: GameRecord) -> str:
    """One listing line for a record."""
    return (
        f"  {format_crc32(record.crc32)}, {record.region}, {record.mapper}, {record.submapper}, "
        f"{record.chr_banks}, {record.prg_rom_banks}, {record.prg_ram_banks}, "
        f"{str(record.battery).lower()}, {record.mirroring}, {json.dumps(record.title, ensure_ascii=False)}"
    )


class GameDatabase:
    """Read-only view of a compiled database with checksum lookup."""

    def __init__(self, entries: CompiledDatabase) -> None:
        self._entries = sorted(entries, key=lambda entry: entry.crc32)
        self._keys = [entry.crc32 for entry in self._entries]

    @classmethod
    def load(cls, path: Path | str, persistence: PersistenceService | None = None) -> "GameDatabase":
        persistence = persistence or PersistenceService()
        return cls(persistence.load(path, CompiledDatabase))

    def lookup(self, crc32: int) -> GameInfo | None:
        """Find the entry for a checksum, or None."""
        index = bisect.bisect_left(self._keys, crc32)
        if index < len(self._keys) and self._keys[index] == crc32:
            return self._entries[index]
        return None

    @property
    def entries(self) -> CompiledDatabase:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[GameInfo]:
        return iter(self._entries)

    def __contains__(self, crc32: object) -> bool:
        return isinstance(crc32, int) and self.lookup(crc32) is not None


class GameDatabaseService:
    """Scan cartridge images and compile the game database.

    A failure while handling any one file, whether a parse error or an
    unexpected exception, is logged and that file is left out; it never
    stops the rest of the scan.
    """

    def __init__(
        self,
        persistence: PersistenceService | None = None,
        parser: Callable[[Path], Cartridge] = parse_cartridge,
        rom_extension: str = ".nes",
        include_archives: bool = False,
    ) -> None:
        """Initialize the game database service.

        Args:
            persistence: Persistence service used to write the database
            parser: Callable turning an image path into a Cartridge
            rom_extension: Extension of cartridge images to scan
            include_archives: Also scan .zip/.7z archives for images
        """
        self.persistence = persistence or PersistenceService()
        self.parser = parser
        self.rom_extension = rom_extension.lower()
        self.include_archives = include_archives

    def is_candidate(self, path: Path) -> bool:
        suffix = path.suffix.lower()
        if suffix == self.rom_extension:
            return True
        return self.include_archives and suffix in ARCHIVE_EXTENSIONS

    def _load_cartridge(self, path: Path) -> tuple[str, Cartridge]:
        if path.suffix.lower() in ARCHIVE_EXTENSIONS:
            member, data = read_rom_from_archive(path, self.rom_extension)
            return member, parse_cartridge_bytes(data, name=member)
        return path.name, self.parser(path)

    def build_record(self, path: Path) -> GameRecord:
        """Parse one image and describe it as a GameRecord.

        Raises:
            CartridgeParseError: If the image cannot be parsed
            ArchiveError: If an archive holds no readable image
        """
        filename, cartridge = self._load_cartridge(path)
        return GameRecord(
            crc32=compute_cartridge_crc32(cartridge),
            region=derive_region(filename),
            mapper=cartridge.mapper_num,
            submapper=cartridge.submapper_num,
            chr_banks=len(cartridge.chr_rom) // CHR_ROM_BANK_SIZE,
            prg_rom_banks=len(cartridge.prg_rom) // PRG_ROM_BANK_SIZE,
            prg_ram_banks=cartridge.prg_ram_size // PRG_RAM_BANK_SIZE,
            battery=cartridge.battery_backed,
            mirroring=cartridge.mirroring,
            title=derive_title(filename, self.rom_extension),
        )

    def scan_file(self, path: Path) -> ScanOutcome:
        """Build and correct the record for one file, containing any failure."""
        try:
            record = self.build_record(path)
        except (CartridgeParseError, ArchiveError) as e:
            log.warning("Skipping file: error parsing header", path=str(path), error=e.message)
            return ScanOutcome(path=path, error=e.message)
        except Exception as e:
            log.warning("Skipping file: failed while parsing", path=str(path), error=repr(e), exc_info=True)
            return ScanOutcome(path=path, error=f"failed while parsing: {e!r}")

        return self._correct(path, record)

    def _correct(self, path: Path, record: GameRecord) -> ScanOutcome:
        try:
            apply_corrections(record)
        except Exception as e:
            log.warning(
                "Skipping file: failed while applying corrections",
                path=str(path),
                error=repr(e),
                exc_info=True,
            )
            return ScanOutcome(path=path, error=f"failed while applying corrections: {e!r}")
        return ScanOutcome(path=path, record=record)

    def scan_outcomes(self, directory: Path) -> list[ScanOutcome]:
        """Scan a directory, returning one outcome per candidate file."""
        outcomes: list[ScanOutcome] = []
        for entry in self.persistence.storage.iter_dir(directory):
            try:
                is_file = entry.is_file()
            except OSError as e:
                log.warning("Skipping an unreadable directory entry", path=str(entry), error=str(e))
                continue
            if not is_file or not self.is_candidate(entry):
                continue
            outcomes.append(self.scan_file(entry))

        failed = sum(1 for outcome in outcomes if not outcome.ok)
        log.info(
            "Directory scan complete",
            directory=str(directory),
            candidates=len(outcomes),
            identified=len(outcomes) - failed,
            skipped=failed,
        )
        return outcomes

    def scan(self, directory: Path) -> list[GameRecord]:
        """Scan a directory and return the records that were identified."""
        return [outcome.record for outcome in self.scan_outcomes(directory) if outcome.record is not None]

    def finalize(self, records: list[GameRecord]) -> list[GameRecord]:
        """Sort, re-apply corrections, and drop duplicate checksums."""
        corrected = []
        for record in sort_records(records):
            try:
                apply_corrections(record)
            except Exception as e:
                log.warning(
                    "Dropping entry: failed while applying corrections",
                    crc32=format_crc32(record.crc32),
                    title=record.title,
                    error=repr(e),
                    exc_info=True,
                )
                continue
            corrected.append(record)
        return deduplicate(corrected)

    def write_listing(self, records: list[GameRecord], path: Path | str) -> None:
        """Write the human-readable listing, one line per record."""
        lines = [LISTING_HEADER, *(format_line(record) for record in records)]
        self.persistence.save_raw(path, ("\n".join(lines) + "\n").encode("utf-8"))

    def compile(
        self,
        directory: Path,
        listing_path: Path | str,
        database_path: Path | str,
    ) -> CompiledDatabase:
        """Scan directory and write both the listing and the binary database.

        Returns:
            The persisted entries, sorted by checksum
        """
        records = self.finalize(self.scan(directory))
        self.write_listing(records, listing_path)

        entries: CompiledDatabase = [record.to_info() for record in records]
        self.persistence.save(database_path, entries, CompiledDatabase)
        log.info(
            "Game database compiled",
            entries=len(entries),
            database=str(database_path),
            listing=str(listing_path),
        )
        return entries

    def load_database(self, database_path: Path | str) -> GameDatabase:
        return GameDatabase.load(database_path, self.persistence)

    def add_game(self, path: Path, database_path: Path | str) -> GameInfo:
        """Identify a single image and insert it into an existing database.

        An entry with the same checksum is replaced. A missing database is
        created.

        Raises:
            CartridgeParseError: If the image could not be identified
        """
        outcome = self.scan_file(path)
        if outcome.record is None:
            raise CartridgeParseError(outcome.error or f"{path}: could not be identified", path=path)
        info = outcome.record.to_info()

        entries: CompiledDatabase = []
        if self.persistence.exists(database_path):
            entries = self.load_database(database_path).entries

        replaced = any(entry.crc32 == info.crc32 for entry in entries)
        entries = [entry for entry in entries if entry.crc32 != info.crc32]
        bisect.insort(entries, info, key=lambda entry: entry.crc32)

        self.persistence.save(database_path, entries, CompiledDatabase)
        log.info(
            "Game added to database",
            crc32=format_crc32(info.crc32),
            title=info.title,
            replaced=replaced,
            entries=len(entries),
        )
        return info
