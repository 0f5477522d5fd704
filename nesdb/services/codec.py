"""Framing and compression for nesdb save files.

Every file written by nesdb has the same layout:

    offset 0..8   magic token ``NESDBSV\\x1a``
    offset 8      format version, a single ASCII digit
    offset 9..    DEFLATE (zlib container) compressed payload

The version is kept separate from the package version because API
changes do not necessarily invalidate the on-disk format.
"""

import zlib
from typing import BinaryIO, Protocol

import structlog

from .errors import DecodingError, EncodingError, HeaderWriteError, InvalidHeaderError

log = structlog.stdlib.get_logger()

SAVE_FILE_MAGIC_LEN = 8
SAVE_FILE_MAGIC = b"NESDBSV\x1a"
SAVE_VERSION = b"1"
HEADER_LEN = SAVE_FILE_MAGIC_LEN + len(SAVE_VERSION)

CHUNK_SIZE = 0x2000


class ByteSink(Protocol):
    def write(self, data: bytes, /) -> int | None: ...


class ByteSource(Protocol):
    def read(self, size: int = -1, /) -> bytes: ...


def write_header(sink: ByteSink | BinaryIO) -> None:
    """Write the magic token followed by the format version.

    Raises:
        HeaderWriteError: If the sink rejects the write
    """
    try:
        sink.write(SAVE_FILE_MAGIC)
        sink.write(SAVE_VERSION)
    except OSError as e:
        raise HeaderWriteError(e) from e


def _read_exact(source: ByteSource | BinaryIO, size: int) -> bytes:
    buf = bytearray()
    while len(buf) < size:
        chunk = source.read(size - len(buf))
        if not chunk:
            break
        buf += chunk
    return bytes(buf)


def validate_header(source: ByteSource | BinaryIO) -> None:
    """Consume and verify the 9 header bytes.

    Raises:
        InvalidHeaderError: If the input is too short or either field differs
    """
    try:
        magic = _read_exact(source, SAVE_FILE_MAGIC_LEN)
        if len(magic) != SAVE_FILE_MAGIC_LEN:
            raise InvalidHeaderError(
                f"unexpected end of input reading magic (expected {SAVE_FILE_MAGIC_LEN} bytes, "
                f"found {len(magic)})"
            )
        if magic != SAVE_FILE_MAGIC:
            raise InvalidHeaderError(f"invalid magic (expected {SAVE_FILE_MAGIC!r}, found: {magic!r})")

        version = _read_exact(source, len(SAVE_VERSION))
        if version != SAVE_VERSION:
            raise InvalidHeaderError(f"invalid version (expected {SAVE_VERSION!r}, found: {version!r})")
    except OSError as e:
        raise InvalidHeaderError(str(e), e) from e


def encode(sink: ByteSink | BinaryIO, data: bytes) -> None:
    """Compress data into sink and finish the stream.

    Raises:
        EncodingError: If compression or writing fails
    """
    compressor = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION)
    view = memoryview(data)
    try:
        for start in range(0, len(view), CHUNK_SIZE):
            sink.write(compressor.compress(view[start:start + CHUNK_SIZE]))
        sink.write(compressor.flush(zlib.Z_FINISH))
    except (OSError, zlib.error) as e:
        raise EncodingError(e) from e


def decode(source: ByteSource | BinaryIO) -> bytes:
    """Decompress source until the compressed stream ends.

    Output size is not bounded here; callers limit input size.

    Raises:
        DecodingError: If the stream is corrupt, truncated, or followed by
            extra bytes
    """
    decompressor = zlib.decompressobj()
    decoded = bytearray()
    try:
        while chunk := source.read(CHUNK_SIZE):
            if decompressor.eof:
                raise DecodingError("trailing data after compressed stream")
            decoded += decompressor.decompress(chunk)
        decoded += decompressor.flush()
    except zlib.error as e:
        raise DecodingError(str(e), e) from e
    except OSError as e:
        raise DecodingError(str(e), e) from e

    if not decompressor.eof:
        raise DecodingError("unexpected end of compressed stream")
    if decompressor.unused_data:
        raise DecodingError(f"{len(decompressor.unused_data)} bytes of trailing data after compressed stream")

    log.debug("Decoded payload", size=len(decoded))
    return bytes(decoded)
