"""iNES / NES 2.0 cartridge image parsing."""

from dataclasses import dataclass
from pathlib import Path

import structlog

from ..models import Mirroring
from .errors import CartridgeParseError

log = structlog.stdlib.get_logger()

INES_MAGIC = b"NES\x1a"
HEADER_SIZE = 16
TRAINER_SIZE = 512
PRG_ROM_BANK_SIZE = 16 * 1024
CHR_ROM_BANK_SIZE = 8 * 1024
PRG_RAM_BANK_SIZE = 8 * 1024


@dataclass(frozen=True)
class Cartridge:
    """ROM contents and board metadata read from an image."""
    name: str
    prg_rom: bytes
    chr_rom: bytes
    prg_ram_size: int
    mapper_num: int
    submapper_num: int
    mirroring: Mirroring
    battery_backed: bool
    nes2: bool = False

    @property
    def has_chr_rom(self) -> bool:
        return len(self.chr_rom) > 0


@dataclass(frozen=True)
class _Header:
    prg_rom_size: int
    chr_rom_size: int
    prg_ram_size: int
    mapper_num: int
    submapper_num: int
    mirroring: Mirroring
    battery_backed: bool
    has_trainer: bool
    nes2: bool


def _nes2_rom_size(lsb: int, msb: int, unit: int) -> int:
    if msb == 0x0F:
        # Exponent-multiplier notation: 2^E * (MM * 2 + 1)
        exponent = lsb >> 2
        multiplier = (lsb & 0x03) * 2 + 1
        return (1 << exponent) * multiplier
    return ((msb << 8) | lsb) * unit


def _parse_header(header: bytes, name: str) -> _Header:
    if len(header) < HEADER_SIZE or header[:4] != INES_MAGIC:
        raise CartridgeParseError(f"{name}: invalid iNES header", path=name)

    flags6 = header[6]
    flags7 = header[7]
    nes2 = (flags7 & 0x0C) == 0x08

    if flags6 & 0x08:
        mirroring = Mirroring.FOUR_SCREEN
    elif flags6 & 0x01:
        mirroring = Mirroring.VERTICAL
    else:
        mirroring = Mirroring.HORIZONTAL

    mapper_num = (flags7 & 0xF0) | (flags6 >> 4)
    if nes2:
        mapper_num |= (header[8] & 0x0F) << 8
        submapper_num = header[8] >> 4
        prg_rom_size = _nes2_rom_size(header[4], header[9] & 0x0F, PRG_ROM_BANK_SIZE)
        chr_rom_size = _nes2_rom_size(header[5], header[9] >> 4, CHR_ROM_BANK_SIZE)
        ram_shift = header[10] & 0x0F
        nvram_shift = header[10] >> 4
        prg_ram_size = (64 << ram_shift if ram_shift else 0) + (64 << nvram_shift if nvram_shift else 0)
    else:
        if any(header[12:16]):
            # Garbage in the padding (e.g. "DiskDude!") corrupts the upper mapper nibble
            mapper_num &= 0x0F
        submapper_num = 0
        prg_rom_size = header[4] * PRG_ROM_BANK_SIZE
        chr_rom_size = header[5] * CHR_ROM_BANK_SIZE
        prg_ram_size = max(header[8], 1) * PRG_RAM_BANK_SIZE

    return _Header(
        prg_rom_size=prg_rom_size,
        chr_rom_size=chr_rom_size,
        prg_ram_size=prg_ram_size,
        mapper_num=mapper_num,
        submapper_num=submapper_num,
        mirroring=mirroring,
        battery_backed=bool(flags6 & 0x02),
        has_trainer=bool(flags6 & 0x04),
        nes2=nes2,
    )


def parse_cartridge_bytes(data: bytes, name: str = "<memory>") -> Cartridge:
    """Parse a cartridge image held in memory.

    Args:
        data: Complete image including the 16-byte header
        name: Label used in error messages

    Raises:
        CartridgeParseError: If the header is invalid or the image is truncated
    """
    header = _parse_header(data[:HEADER_SIZE], name)
    offset = HEADER_SIZE
    if header.has_trainer:
        offset += TRAINER_SIZE

    if header.prg_rom_size == 0:
        raise CartridgeParseError(f"{name}: image declares no PRG-ROM", path=name)

    prg_rom = data[offset:offset + header.prg_rom_size]
    if len(prg_rom) != header.prg_rom_size:
        raise CartridgeParseError(
            f"{name}: incomplete PRG-ROM (expected {header.prg_rom_size} bytes, found {len(prg_rom)})",
            path=name,
        )
    offset += header.prg_rom_size

    chr_rom = data[offset:offset + header.chr_rom_size]
    if len(chr_rom) != header.chr_rom_size:
        raise CartridgeParseError(
            f"{name}: incomplete CHR-ROM (expected {header.chr_rom_size} bytes, found {len(chr_rom)})",
            path=name,
        )

    log.debug(
        "Parsed cartridge",
        name=name,
        mapper=header.mapper_num,
        submapper=header.submapper_num,
        prg_rom=len(prg_rom),
        chr_rom=len(chr_rom),
        nes2=header.nes2,
    )
    return Cartridge(
        name=name,
        prg_rom=bytes(prg_rom),
        chr_rom=bytes(chr_rom),
        prg_ram_size=header.prg_ram_size,
        mapper_num=header.mapper_num,
        submapper_num=header.submapper_num,
        mirroring=header.mirroring,
        battery_backed=header.battery_backed,
        nes2=header.nes2,
    )


def parse_cartridge(path: Path) -> Cartridge:
    """Read and parse a cartridge image from disk.

    Raises:
        CartridgeParseError: If the file cannot be read or parsed
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise CartridgeParseError(f"{path}: {e}", path=path) from e
    return parse_cartridge_bytes(data, name=Path(path).name)
