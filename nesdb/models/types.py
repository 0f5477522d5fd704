"""Fixed-width integer annotations for the binary record encoding."""

import struct
from dataclasses import dataclass
from typing import Annotated


@dataclass(frozen=True)
class IntWidth:
    """Width and signedness of an encoded integer field."""
    name: str
    fmt: str  # struct format, always little-endian

    @property
    def size(self) -> int:
        return struct.calcsize(self.fmt)

    @property
    def signed(self) -> bool:
        return self.fmt[-1].islower()

    @property
    def min_value(self) -> int:
        return -(1 << (self.size * 8 - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        bits = self.size * 8 - (1 if self.signed else 0)
        return (1 << bits) - 1


U8 = Annotated[int, IntWidth("u8", "<B")]
U16 = Annotated[int, IntWidth("u16", "<H")]
U32 = Annotated[int, IntWidth("u32", "<I")]
U64 = Annotated[int, IntWidth("u64", "<Q")]
I32 = Annotated[int, IntWidth("i32", "<i")]
I64 = Annotated[int, IntWidth("i64", "<q")]
