"""Binary record encoding for persisted nesdb data.

The wire format is fixed and little-endian, and is derived from type
annotations rather than from any public API, so refactoring a model does
not silently change the bytes written for it:

- integers use the width given by ``U8``/``U16``/``U32``/``U64``/``I32``/``I64``
  annotations; a bare ``int`` is written as ``I64``
- ``bool`` is a single 0/1 byte, ``float`` an IEEE-754 double
- ``str`` and ``bytes`` are a u64 length followed by the raw (UTF-8) bytes
- ``list[T]`` and ``tuple[T, ...]`` are a u64 count followed by the items
- ``T | None`` is a u8 tag (0 or 1) followed by the value when present
- enum members are written as their u32 declaration index
- dataclasses are written field by field in declaration order
"""

import dataclasses
import struct
import types
from enum import Enum
from functools import lru_cache
from typing import Annotated, Any, Union, get_args, get_origin, get_type_hints

import structlog

from ..models.types import IntWidth, I64, U8, U32, U64
from .errors import DeserializationError, SerializationError

log = structlog.stdlib.get_logger()

_U8 = get_args(U8)[1]
_U32 = get_args(U32)[1]
_U64 = get_args(U64)[1]
_I64 = get_args(I64)[1]
_F64 = struct.Struct("<d")


@lru_cache(maxsize=None)
def _field_types(cls: type) -> tuple[tuple[str, Any], ...]:
    hints = get_type_hints(cls, include_extras=True)
    return tuple((f.name, hints[f.name]) for f in dataclasses.fields(cls) if f.init)


@lru_cache(maxsize=None)
def _enum_members(cls: type[Enum]) -> tuple[Enum, ...]:
    return tuple(cls)


def _int_width(tp: Any) -> IntWidth | None:
    if get_origin(tp) is Annotated:
        for meta in get_args(tp)[1:]:
            if isinstance(meta, IntWidth):
                return meta
    return None


def _optional_inner(tp: Any) -> Any | None:
    if get_origin(tp) in (Union, types.UnionType):
        args = [arg for arg in get_args(tp) if arg is not type(None)]
        if len(args) == 1 and len(get_args(tp)) == 2:
            return args[0]
    return None


def _infer_type(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return type(value)
    if isinstance(value, (bool, int, float, str, bytes, bytearray, Enum)):
        return type(value)
    if isinstance(value, list):
        return list
    if isinstance(value, tuple):
        return tuple
    raise SerializationError(f"cannot infer an encoding for {type(value).__name__}")


class _Writer:
    """Accumulates the encoded form of a value."""

    def __init__(self) -> None:
        self._parts: list[bytes] = []

    def getvalue(self) -> bytes:
        return b"".join(self._parts)

    def write_int(self, value: int, width: IntWidth) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise SerializationError(f"expected int for {width.name}, got {type(value).__name__}")
        if not width.min_value <= value <= width.max_value:
            raise SerializationError(f"{value} does not fit in {width.name}")
        self._parts.append(struct.pack(width.fmt, value))

    def write_len(self, length: int) -> None:
        self.write_int(length, _U64)

    def write(self, value: Any, tp: Any = None) -> None:
        if tp is None or tp is Any:
            tp = _infer_type(value)

        width = _int_width(tp)
        if width is not None:
            self.write_int(value, width)
            return
        if get_origin(tp) is Annotated:
            self.write(value, get_args(tp)[0])
            return

        inner = _optional_inner(tp)
        if inner is not None:
            if value is None:
                self.write_int(0, _U8)
            else:
                self.write_int(1, _U8)
                self.write(value, inner)
            return

        origin = get_origin(tp) or tp
        args = get_args(tp)

        if tp is bool:
            if not isinstance(value, bool):
                raise SerializationError(f"expected bool, got {type(value).__name__}")
            self.write_int(int(value), _U8)
        elif tp is int:
            self.write_int(value, _I64)
        elif tp is float:
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise SerializationError(f"expected float, got {type(value).__name__}")
            self._parts.append(_F64.pack(value))
        elif tp is str:
            if not isinstance(value, str):
                raise SerializationError(f"expected str, got {type(value).__name__}")
            try:
                encoded = value.encode("utf-8")
            except UnicodeEncodeError as e:
                raise SerializationError(f"string is not valid UTF-8: {e}") from e
            self.write_len(len(encoded))
            self._parts.append(encoded)
        elif tp in (bytes, bytearray):
            if not isinstance(value, (bytes, bytearray, memoryview)):
                raise SerializationError(f"expected bytes, got {type(value).__name__}")
            data = bytes(value)
            self.write_len(len(data))
            self._parts.append(data)
        elif isinstance(tp, type) and issubclass(tp, Enum):
            if not isinstance(value, tp):
                raise SerializationError(f"expected {tp.__name__}, got {value!r}")
            self.write_int(_enum_members(tp).index(value), _U32)
        elif isinstance(tp, type) and dataclasses.is_dataclass(tp):
            if not isinstance(value, tp):
                raise SerializationError(f"expected {tp.__name__}, got {type(value).__name__}")
            for name, field_type in _field_types(tp):
                self.write(getattr(value, name), field_type)
        elif origin is list:
            if not isinstance(value, list):
                raise SerializationError(f"expected list, got {type(value).__name__}")
            item_type = args[0] if args else None
            self.write_len(len(value))
            for item in value:
                self.write(item, item_type)
        elif origin is tuple:
            if not isinstance(value, tuple):
                raise SerializationError(f"expected tuple, got {type(value).__name__}")
            if not args or (len(args) == 2 and args[1] is Ellipsis):
                item_type = args[0] if args else None
                self.write_len(len(value))
                for item in value:
                    self.write(item, item_type)
            else:
                if len(value) != len(args):
                    raise SerializationError(f"expected {len(args)}-tuple, got {len(value)} items")
                for item, item_type in zip(value, args):
                    self.write(item, item_type)
        else:
            raise SerializationError(f"unsupported type {tp!r}")


class _Reader:
    """Decodes values from a byte buffer, tracking the read offset."""

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self.offset

    def take(self, size: int) -> memoryview:
        if size > self.remaining:
            raise DeserializationError(
                f"unexpected end of input: needed {size} bytes at offset {self.offset}, "
                f"{self.remaining} available"
            )
        chunk = self._data[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def read_int(self, width: IntWidth) -> int:
        return struct.unpack(width.fmt, self.take(width.size))[0]

    def read_len(self) -> int:
        length = self.read_int(_U64)
        if length > self.remaining:
            raise DeserializationError(
                f"length {length} at offset {self.offset - _U64.size} exceeds remaining input"
            )
        return length

    def read(self, tp: Any) -> Any:
        width = _int_width(tp)
        if width is not None:
            return self.read_int(width)
        if get_origin(tp) is Annotated:
            return self.read(get_args(tp)[0])

        inner = _optional_inner(tp)
        if inner is not None:
            tag = self.read_int(_U8)
            if tag == 0:
                return None
            if tag == 1:
                return self.read(inner)
            raise DeserializationError(f"invalid option tag {tag} at offset {self.offset - 1}")

        origin = get_origin(tp) or tp
        args = get_args(tp)

        if tp is bool:
            flag = self.read_int(_U8)
            if flag > 1:
                raise DeserializationError(f"invalid bool value {flag} at offset {self.offset - 1}")
            return flag == 1
        elif tp is int:
            return self.read_int(_I64)
        elif tp is float:
            return _F64.unpack(self.take(_F64.size))[0]
        elif tp is str:
            raw = self.take(self.read_len())
            try:
                return str(raw, "utf-8")
            except UnicodeDecodeError as e:
                raise DeserializationError(f"invalid UTF-8 string: {e}") from e
        elif tp in (bytes, bytearray):
            return tp(self.take(self.read_len()))
        elif isinstance(tp, type) and issubclass(tp, Enum):
            members = _enum_members(tp)
            index = self.read_int(_U32)
            if index >= len(members):
                raise DeserializationError(f"invalid {tp.__name__} variant index {index}")
            return members[index]
        elif isinstance(tp, type) and dataclasses.is_dataclass(tp):
            kwargs = {name: self.read(field_type) for name, field_type in _field_types(tp)}
            return tp(**kwargs)
        elif origin is list:
            if not args:
                raise DeserializationError("cannot decode a list without an item type")
            count = self.read_len()
            return [self.read(args[0]) for _ in range(count)]
        elif origin is tuple:
            if not args:
                raise DeserializationError("cannot decode a tuple without item types")
            if len(args) == 2 and args[1] is Ellipsis:
                count = self.read_len()
                return tuple(self.read(args[0]) for _ in range(count))
            return tuple(self.read(item_type) for item_type in args)
        raise DeserializationError(f"unsupported type {tp!r}")


def encode(value: Any, value_type: Any = None) -> bytes:
    """Encode a value to its binary form.

    Args:
        value: The value to encode
        value_type: Annotation describing the value (inferred when omitted)

    Returns:
        The encoded bytes

    Raises:
        SerializationError: If the value cannot be represented
    """
    writer = _Writer()
    try:
        writer.write(value, value_type)
    except struct.error as e:
        raise SerializationError(str(e)) from e
    return writer.getvalue()


def decode(data: bytes, value_type: Any) -> Any:
    """Decode bytes produced by encode() back into a value of value_type.

    Raises:
        DeserializationError: If the input is truncated, malformed, or has
            bytes left over after the value
    """
    reader = _Reader(data)
    try:
        value = reader.read(value_type)
    except (struct.error, TypeError, ValueError) as e:
        raise DeserializationError(str(e)) from e
    if reader.remaining:
        raise DeserializationError(f"{reader.remaining} trailing bytes after value")
    log.debug("Decoded value", type=getattr(value_type, "__name__", str(value_type)), size=len(data))
    return value
