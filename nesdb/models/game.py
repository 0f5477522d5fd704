"""Game-related data models."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .types import U8, U16, U32


class NesRegion(Enum):
    """Console region a cartridge was released for."""
    NTSC = "NTSC"
    PAL = "PAL"

    def __str__(self) -> str:
        return self.value


class Mirroring(Enum):
    """Nametable mirroring mode declared by the cartridge."""
    HORIZONTAL = "Horizontal"
    VERTICAL = "Vertical"
    SINGLE_SCREEN_A = "SingleScreenA"
    SINGLE_SCREEN_B = "SingleScreenB"
    FOUR_SCREEN = "FourScreen"

    def __str__(self) -> str:
        return self.value


@dataclass
class GameRecord:
    """Everything learned about one cartridge image during a scan.

    Mutated in place by the mapper correction pass, then projected into
    a GameInfo for persistence.
    """
    crc32: int
    mapper: int
    submapper: int
    chr_banks: int
    prg_rom_banks: int
    prg_ram_banks: int
    battery: bool
    mirroring: Mirroring
    title: str
    region: NesRegion = NesRegion.NTSC

    def to_info(self) -> "GameInfo":
        """Project the record into its persisted form."""
        return GameInfo(
            crc32=self.crc32,
            region=self.region,
            mapper_num=self.mapper,
            submapper_num=self.submapper,
            title=self.title,
        )


@dataclass(frozen=True)
class GameInfo:
    """Persisted database entry, keyed by checksum."""
    crc32: U32
    region: NesRegion
    mapper_num: U16
    submapper_num: U8
    title: str


# Sorted ascending by crc32
CompiledDatabase = list[GameInfo]


@dataclass(frozen=True)
class ScanOutcome:
    """Result of processing a single file during a directory scan."""
    path: Path
    record: GameRecord | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.record is not None
