"""Shared primitives of the PostgreSQL wire format."""

from __future__ import annotations

import enum
import struct
from typing import Callable

_I16_MAX = 2**15 - 1
_I32_MAX = 2**31 - 1
_I32 = struct.Struct(">i")


class IsNull(enum.Enum):
    """Whether a serialized value is SQL ``NULL``."""

    YES = "yes"
    NO = "no"


class DecodeError(ValueError):
    """Raised when a buffer does not hold a valid encoded value."""


def _checked(n: int, limit: int) -> int:
    if n > limit:
        raise ValueError("value too large to transmit")
    return n


def i16_from_size(n: int) -> int:
    """Return ``n`` if it fits in a signed 16-bit field, else raise ValueError."""
    return _checked(n, _I16_MAX)


def i32_from_size(n: int) -> int:
    """Return ``n`` if it fits in a signed 32-bit field, else raise ValueError."""
    return _checked(n, _I32_MAX)


def write_nullable(serializer: Callable[[bytearray], IsNull], buf: bytearray) -> None:
    """Append a length-prefixed value to ``buf``.

    ``serializer`` appends the value's bytes and reports whether it is NULL;
    a NULL value gets the length -1.
    """
    base = len(buf)
    buf.extend(b"\x00\x00\x00\x00")
    if serializer(buf) is IsNull.NO:
        size = i32_from_size(len(buf) - base - 4)
    else:
        size = -1
    buf[base : base + 4] = _I32.pack(size)