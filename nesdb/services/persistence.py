"""Save and load framed, compressed records."""

import io
from pathlib import Path
from typing import Any, TypeVar

import structlog

from . import codec, serialization
from .storage import FileSystemService
from .errors import StorageIOError

log = structlog.stdlib.get_logger()

T = TypeVar("T")

FILENAME_PLACEHOLDER = "??"


class PersistenceService:
    """Serialize, frame, and store values.

    The structured path (``save``/``load``) writes the nesdb header and a
    compressed encoding of the value; the raw path (``save_raw``/``load_raw``)
    moves bytes verbatim. Writes are not atomic: a failure part way through
    can leave a partial file behind.
    """

    def __init__(self, storage: FileSystemService | None = None) -> None:
        self.storage = storage or FileSystemService()

    def save(self, path: Path | str, value: Any, value_type: Any = None) -> None:
        """Serialize value and write it to path with header and compression.

        Args:
            path: Destination file
            value: Value to store
            value_type: Annotation describing value (inferred when omitted)
        """
        data = serialization.encode(value, value_type)
        with self.storage.open_writer(path) as writer:
            codec.write_header(writer)
            codec.encode(writer, data)
            try:
                writer.flush()
            except OSError as e:
                raise StorageIOError(e, "failed to save data", path=path) from e
        log.info("Saved data", path=str(path), payload_size=len(data))

    def save_out(self, value: Any, value_type: Any = None) -> bytes:
        """Serialize value into an in-memory framed blob."""
        data = serialization.encode(value, value_type)

        buf = io.BytesIO()
        codec.write_header(buf)
        codec.encode(buf, data)
        buf.flush()

        return buf.getvalue()

    def save_raw(self, path: Path | str, data: bytes) -> None:
        """Write bytes to path verbatim."""
        with self.storage.open_writer(path) as writer:
            try:
                writer.write(data)
                writer.flush()
            except OSError as e:
                raise StorageIOError(e, "failed to save data", path=path) from e
        log.info("Saved raw data", path=str(path), size=len(data))

    def load(self, path: Path | str, value_type: type[T] | Any) -> T:
        """Read, validate, decompress, and deserialize a value from path."""
        with self.storage.open_reader(path) as reader:
            codec.validate_header(reader)
            data = codec.decode(reader)
        value = serialization.decode(data, value_type)
        log.info("Loaded data", path=str(path), payload_size=len(data))
        return value

    def load_bytes(self, blob: bytes, value_type: type[T] | Any) -> T:
        """Deserialize a value from a blob produced by save_out()."""
        reader = io.BytesIO(blob)
        codec.validate_header(reader)
        data = codec.decode(reader)
        return serialization.decode(data, value_type)

    def load_raw(self, path: Path | str) -> bytes:
        """Read a whole file verbatim."""
        with self.storage.open_reader(path) as reader:
            try:
                data = reader.read()
            except OSError as e:
                raise StorageIOError(e, "failed to load data", path=path) from e
        log.debug("Loaded raw data", path=str(path), size=len(data))
        return data

    def clear_dir(self, path: Path | str) -> None:
        self.storage.clear_dir(path)

    def exists(self, path: Path | str) -> bool:
        return self.storage.exists(path)

    @staticmethod
    def filename(path: Path | str) -> str:
        """Return the final path component, or a placeholder when there is none."""
        name = Path(path).name
        if not name:
            log.warning("Invalid path without file name", path=str(path))
            return FILENAME_PLACEHOLDER
        return name
