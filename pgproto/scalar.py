"""Binary encodings of scalar PostgreSQL values."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterable

from .wire import DecodeError, i32_from_size

_BOOL = struct.Struct(">B")
_CHAR = struct.Struct(">b")
_I16 = struct.Struct(">h")
_I32 = struct.Struct(">i")
_U32 = struct.Struct(">I")
_I64 = struct.Struct(">q")
_U64 = struct.Struct(">Q")
_F32 = struct.Struct(">f")
_F64 = struct.Struct(">d")

_SIZE_MSG = "invalid buffer size"
_LABEL_VERSION = 1


def _pack(st: struct.Struct, value: object) -> bytes:
    try:
        return st.pack(value)
    except struct.error as exc:
        raise ValueError(str(exc)) from exc


def _unpack_exact(st: struct.Struct, buf: bytes, message: str = _SIZE_MSG):
    data = bytes(buf)
    if len(data) < st.size:
        raise DecodeError("unexpected end of buffer")
    if len(data) > st.size:
        raise DecodeError(message)
    return st.unpack(data)[0]


def _utf8(data: bytes) -> str:
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(str(exc)) from exc


def _fixed(value: bytes, size: int, what: str) -> bytes:
    value = bytes(value)
    if len(value) != size:
        raise ValueError(f"{what} must be exactly {size} bytes")
    return value


def bool_to_sql(value: bool) -> bytes:
    """Encode a ``BOOL``."""
    return _BOOL.pack(1 if value else 0)


def bool_from_sql(buf: bytes) -> bool:
    """Decode a ``BOOL``."""
    if len(buf) != 1:
        raise DecodeError(_SIZE_MSG)
    return buf[0] != 0


def bytea_to_sql(value: bytes) -> bytes:
    """Encode a ``BYTEA``."""
    return bytes(value)


def bytea_from_sql(buf: bytes) -> bytes:
    """Decode a ``BYTEA``."""
    return bytes(buf)


def text_to_sql(value: str) -> bytes:
    """Encode a ``TEXT``, ``VARCHAR``, ``CHAR(n)``, ``NAME`` or ``CITEXT``."""
    return value.encode("utf-8")


def text_from_sql(buf: bytes) -> str:
    """Decode a ``TEXT``, ``VARCHAR``, ``CHAR(n)``, ``NAME`` or ``CITEXT``."""
    return _utf8(buf)


def char_to_sql(value: int) -> bytes:
    """Encode a ``"char"`` (a signed byte)."""
    return _pack(_CHAR, value)


def char_from_sql(buf: bytes) -> int:
    """Decode a ``"char"`` (a signed byte)."""
    return _unpack_exact(_CHAR, buf)


def int2_to_sql(value: int) -> bytes:
    """Encode an ``INT2``."""
    return _pack(_I16, value)


def int2_from_sql(buf: bytes) -> int:
    """Decode an ``INT2``."""
    return _unpack_exact(_I16, buf)


def int4_to_sql(value: int) -> bytes:
    """Encode an ``INT4``."""
    return _pack(_I32, value)


def int4_from_sql(buf: bytes) -> int:
    """Decode an ``INT4``."""
    return _unpack_exact(_I32, buf)


def oid_to_sql(value: int) -> bytes:
    """Encode an ``OID``."""
    return _pack(_U32, value)


def oid_from_sql(buf: bytes) -> int:
    """Decode an ``OID``."""
    return _unpack_exact(_U32, buf)


def int8_to_sql(value: int) -> bytes:
    """Encode an ``INT8``."""
    return _pack(_I64, value)


def int8_from_sql(buf: bytes) -> int:
    """Decode an ``INT8``."""
    return _unpack_exact(_I64, buf)


def lsn_to_sql(value: int) -> bytes:
    """Encode a ``PG_LSN``."""
    return _pack(_U64, value)


def lsn_from_sql(buf: bytes) -> int:
    """Decode a ``PG_LSN``."""
    return _unpack_exact(_U64, buf)


def float4_to_sql(value: float) -> bytes:
    """Encode a ``FLOAT4``."""
    return _pack(_F32, value)


def float4_from_sql(buf: bytes) -> float:
    """Decode a ``FLOAT4``."""
    return _unpack_exact(_F32, buf)


def float8_to_sql(value: float) -> bytes:
    """Encode a ``FLOAT8``."""
    return _pack(_F64, value)


def float8_from_sql(buf: bytes) -> float:
    """Decode a ``FLOAT8``."""
    return _unpack_exact(_F64, buf)


def _pascal(text: str) -> bytes:
    data = text.encode("utf-8")
    return _I32.pack(i32_from_size(len(data))) + data


def hstore_to_sql(entries: Iterable[tuple[str, str | None]]) -> bytes:
    """Encode an ``HSTORE`` from ``(key, value)`` pairs; a value may be None."""
    parts = []
    for key, value in entries:
        parts.append(_pascal(key))
        parts.append(_I32.pack(-1) if value is None else _pascal(value))
    count = i32_from_size(len(parts) // 2)
    return _I32.pack(count) + b"".join(parts)


class _Reader:
    def __init__(self, buf: bytes) -> None:
        self._data = bytes(buf)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def take(self, n: int) -> bytes:
        if self.remaining < n:
            raise DecodeError("unexpected end of buffer")
        chunk = self._data[self._pos : self._pos + n]
        self._pos += n
        return chunk

    def i32(self) -> int:
        return _I32.unpack(self.take(4))[0]


def hstore_from_sql(buf: bytes) -> list[tuple[str, str | None]]:
    """Decode an ``HSTORE`` into a list of ``(key, value)`` pairs."""
    reader = _Reader(buf)
    count = reader.i32()
    if count < 0:
        raise DecodeError("invalid entry count")

    entries = []
    for _ in range(count):
        key_len = reader.i32()
        if key_len < 0:
            raise DecodeError("invalid key length")
        key = _utf8(reader.take(key_len))
        value_len = reader.i32()
        value = None if value_len < 0 else _utf8(reader.take(value_len))
        entries.append((key, value))

    if reader.remaining:
        raise DecodeError(_SIZE_MSG)
    return entries


@dataclass(frozen=True)
class Varbit:
    """A ``VARBIT`` or ``BIT`` value: a bit count and the packed bits."""

    length: int
    data: bytes

    def __len__(self) -> int:
        return self.length


def varbit_to_sql(length: int, data: Iterable[int]) -> bytes:
    """Encode a ``VARBIT`` or ``BIT`` of ``length`` bits packed in ``data``."""
    return _I32.pack(i32_from_size(length)) + bytes(data)


def varbit_from_sql(buf: bytes) -> Varbit:
    """Decode a ``VARBIT`` or ``BIT``."""
    reader = _Reader(buf)
    length = reader.i32()
    if length < 0:
        raise DecodeError("invalid varbit length: varbit < 0")
    if reader.remaining != (length + 7) // 8:
        raise DecodeError("invalid message length: varbit mismatch")
    return Varbit(length, reader.take(reader.remaining))


def timestamp_to_sql(value: int) -> bytes:
    """Encode a ``TIMESTAMP``/``TIMESTAMPTZ`` in microseconds since 2000-01-01."""
    return _pack(_I64, value)


def timestamp_from_sql(buf: bytes) -> int:
    """Decode a ``TIMESTAMP``/``TIMESTAMPTZ`` into microseconds since 2000-01-01."""
    return _unpack_exact(_I64, buf, "invalid message length: timestamp not drained")


def date_to_sql(value: int) -> bytes:
    """Encode a ``DATE`` in days since 2000-01-01."""
    return _pack(_I32, value)


def date_from_sql(buf: bytes) -> int:
    """Decode a ``DATE`` into days since 2000-01-01."""
    return _unpack_exact(_I32, buf, "invalid message length: date not drained")


def time_to_sql(value: int) -> bytes:
    """Encode a ``TIME``/``TIMETZ`` in microseconds since midnight."""
    return _pack(_I64, value)


def time_from_sql(buf: bytes) -> int:
    """Decode a ``TIME``/``TIMETZ`` into microseconds since midnight."""
    return _unpack_exact(_I64, buf, "invalid message length: time not drained")


def macaddr_to_sql(value: bytes) -> bytes:
    """Encode a ``MACADDR`` from its 6 bytes."""
    return _fixed(value, 6, "a MAC address")


def macaddr_from_sql(buf: bytes) -> bytes:
    """Decode a ``MACADDR`` into its 6 bytes."""
    if len(buf) != 6:
        raise DecodeError("invalid message length: macaddr length mismatch")
    return bytes(buf)


def uuid_to_sql(value: bytes) -> bytes:
    """Encode a ``UUID`` from its 16 bytes."""
    return _fixed(value, 16, "a UUID")


def uuid_from_sql(buf: bytes) -> bytes:
    """Decode a ``UUID`` into its 16 bytes."""
    if len(buf) != 16:
        raise DecodeError("invalid message length: uuid size mismatch")
    return bytes(buf)


def _versioned_to_sql(value: str) -> bytes:
    return bytes([_LABEL_VERSION]) + value.encode("utf-8")


def _versioned_from_sql(buf: bytes, kind: str) -> str:
    data = bytes(buf)
    if not data or data[0] != _LABEL_VERSION:
        raise DecodeError(f"{kind} version 1 only supported")
    return _utf8(data[1:])


def ltree_to_sql(value: str) -> bytes:
    """Encode an ``LTREE``."""
    return _versioned_to_sql(value)


def ltree_from_sql(buf: bytes) -> str:
    """Decode an ``LTREE``."""
    return _versioned_from_sql(buf, "ltree")


def lquery_to_sql(value: str) -> bytes:
    """Encode an ``LQUERY``."""
    return _versioned_to_sql(value)


def lquery_from_sql(buf: bytes) -> str:
    """Decode an ``LQUERY``."""
    return _versioned_from_sql(buf, "lquery")


def ltxtquery_to_sql(value: str) -> bytes:
    """Encode an ``LTXTQUERY``."""
    return _versioned_to_sql(value)


def ltxtquery_from_sql(buf: bytes) -> str:
    """Decode an ``LTXTQUERY``."""
    return _versioned_from_sql(buf, "ltxtquery")