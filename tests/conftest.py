"""Shared helpers for building cartridge images in tests."""

from pathlib import Path

import pytest

PRG_BANK = 16 * 1024
CHR_BANK = 8 * 1024


def make_ines(
    prg_banks: int = 1,
    chr_banks: int = 1,
    mapper: int = 0,
    vertical: bool = False,
    battery: bool = False,
    trainer: bool = False,
    four_screen: bool = False,
    submapper: int | None = None,
    prg_ram_units: int = 0,
    seed: int = 0,
) -> bytes:
    """Build an iNES image (NES 2.0 when submapper is given)."""
    flags6 = ((mapper & 0x0F) << 4) | (0x01 if vertical else 0) | (0x02 if battery else 0)
    flags6 |= (0x04 if trainer else 0) | (0x08 if four_screen else 0)
    flags7 = mapper & 0xF0
    byte8 = prg_ram_units
    if submapper is not None:
        flags7 |= 0x08
        byte8 = ((submapper & 0x0F) << 4) | ((mapper >> 8) & 0x0F)
    header = bytes([0x4E, 0x45, 0x53, 0x1A, prg_banks, chr_banks, flags6, flags7, byte8]) + bytes(7)

    body = bytearray()
    if trainer:
        body += bytes(512)
    body += bytes((seed + i) & 0xFF for i in range(prg_banks * PRG_BANK))
    body += bytes((seed * 7 + i * 3) & 0xFF for i in range(chr_banks * CHR_BANK))
    return header + bytes(body)


@pytest.fixture
def rom_dir(tmp_path: Path) -> Path:
    """Directory with a few distinct cartridge images."""
    directory = tmp_path / "roms"
    directory.mkdir()
    (directory / "Alpha (USA).nes").write_bytes(make_ines(seed=1, mapper=1))
    (directory / "Beta (Europe).nes").write_bytes(make_ines(seed=2, chr_banks=0, vertical=True))
    (directory / "Gamma (Japan).nes").write_bytes(make_ines(seed=3, prg_banks=2, battery=True))
    (directory / "readme.txt").write_text("not a rom")
    return directory
