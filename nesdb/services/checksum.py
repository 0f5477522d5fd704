"""Table-driven CRC-32 used to fingerprint cartridge images.

The checksum is the reflected CRC-32 with the ISO 3309 polynomial, the
same value ``zlib.crc32`` produces. It is computed in Python against a
lookup table so that multi-segment inputs can be chained explicitly:

    crc = compute_crc32(prg_rom)
    crc = compute_combine_crc32(crc, chr_rom)

yields the same value as ``compute_crc32(prg_rom + chr_rom)``.
"""

from collections.abc import Iterable
from pathlib import Path

BUFFER_SIZE = 0x2000
CRC32_POLYNOMIAL = 0xEDB88320
CRC32_MASK = 0xFFFFFFFF

Buffer = bytes | bytearray | memoryview


def _build_table() -> tuple[int, ...]:
    table = []
    for index in range(256):
        value = index
        for _ in range(8):
            if value & 1:
                value = (value >> 1) ^ CRC32_POLYNOMIAL
            else:
                value >>= 1
        table.append(value)
    return tuple(table)


CRC_TABLE: tuple[int, ...] = _build_table()


def _compute_crc32_buffer(crc32: int, buffer: Buffer) -> int:
    # Each call re-enters and leaves the standard output mask
    crc = crc32 ^ CRC32_MASK
    table = CRC_TABLE
    for byte in buffer:
        crc = (crc >> 8) ^ table[(crc ^ byte) & 0xFF]
    return crc ^ CRC32_MASK


def _chunks(data: Buffer) -> Iterable[memoryview]:
    view = memoryview(data).cast("B")
    for start in range(0, len(view), BUFFER_SIZE):
        yield view[start:start + BUFFER_SIZE]


def compute_combine_crc32(crc32: int, data: Buffer) -> int:
    """Extend a running checksum with more data.

    Args:
        crc32: Value returned by a previous checksum call (0 to start fresh)
        data: Bytes to fold into the checksum

    Returns:
        The checksum of everything seen so far
    """
    crc = crc32 & CRC32_MASK
    for chunk in _chunks(data):
        crc = _compute_crc32_buffer(crc, chunk)
    return crc


def compute_crc32(data: Buffer) -> int:
    """Compute the CRC-32 of a single buffer."""
    return compute_combine_crc32(0, data)


def compute_file_crc32(path: Path) -> int:
    """Compute the CRC-32 of a whole file, reading it in fixed-size chunks."""
    crc = 0
    with open(path, "rb") as f:
        while chunk := f.read(BUFFER_SIZE):
            crc = compute_combine_crc32(crc, chunk)
    return crc


def format_crc32(crc32: int) -> str:
    """Render a checksum as 8 zero-padded uppercase hex digits."""
    return f"{crc32 & CRC32_MASK:08X}"
