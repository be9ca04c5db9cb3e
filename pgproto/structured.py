"""Binary encodings of structured PostgreSQL values: arrays, ranges, geometry and inet."""

from __future__ import annotations

import enum
import ipaddress
import struct
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator

from .wire import DecodeError, IsNull, i32_from_size, write_nullable

_I32 = struct.Struct(">i")
_U32 = struct.Struct(">I")
_F64 = struct.Struct(">d")

_I32_MAX = 2**31 - 1

RANGE_UPPER_UNBOUNDED = 0b0001_0000
RANGE_LOWER_UNBOUNDED = 0b0000_1000
RANGE_UPPER_INCLUSIVE = 0b0000_0100
RANGE_LOWER_INCLUSIVE = 0b0000_0010
RANGE_EMPTY = 0b0000_0001

PGSQL_AF_INET = 2
PGSQL_AF_INET6 = 3


class _Reader:
    def __init__(self, buf: bytes) -> None:
        self._data = bytes(buf)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def rest(self) -> bytes:
        return self._data[self._pos :]

    def take(self, n: int) -> bytes:
        if self.remaining < n:
            raise DecodeError("unexpected end of buffer")
        chunk = self._data[self._pos : self._pos + n]
        self._pos += n
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def i32(self) -> int:
        return _I32.unpack(self.take(4))[0]

    def u32(self) -> int:
        return _U32.unpack(self.take(4))[0]

    def f64(self) -> float:
        return _F64.unpack(self.take(8))[0]


@dataclass(frozen=True)
class ArrayDimension:
    """One dimension of an array: its length and the index of its first element."""

    length: int
    lower_bound: int


def array_to_sql(
    dimensions: Iterable[ArrayDimension],
    element_type: int,
    elements: Iterable[Any],
    serializer: Callable[[Any, bytearray], IsNull],
) -> bytes:
    """Encode an array; ``serializer(element, buf)`` appends each element's bytes."""
    dims = bytearray()
    count = 0
    for dimension in dimensions:
        count += 1
        dims += _I32.pack(dimension.length) + _I32.pack(dimension.lower_bound)
    num_dimensions = i32_from_size(count)

    has_nulls = False
    body = bytearray()
    for element in elements:

        def serialize(buf: bytearray, element: Any = element) -> IsNull:
            nonlocal has_nulls
            result = serializer(element, buf)
            if result is IsNull.YES:
                has_nulls = True
            return result

        write_nullable(serialize, body)

    header = _I32.pack(num_dimensions) + _I32.pack(int(has_nulls)) + _U32.pack(element_type)
    return header + bytes(dims) + bytes(body)


class Array:
    """A decoded array whose dimensions and values are read on demand."""

    __slots__ = ("has_nulls", "element_type", "_num_dimensions", "_num_elements", "_data")

    def __init__(
        self,
        has_nulls: bool,
        element_type: int,
        num_dimensions: int,
        num_elements: int,
        data: bytes,
    ) -> None:
        self.has_nulls = has_nulls
        self.element_type = element_type
        self._num_dimensions = num_dimensions
        self._num_elements = num_elements
        self._data = data

    def dimensions(self) -> Iterator[ArrayDimension]:
        """Iterate over the array's dimensions."""
        reader = _Reader(self._data[: self._num_dimensions * 8])
        while reader.remaining:
            length = reader.i32()
            lower_bound = reader.i32()
            yield ArrayDimension(length, lower_bound)

    def values(self) -> Iterator[bytes | None]:
        """Iterate over the raw element values in row-major order; NULL is None."""
        reader = _Reader(self._data[self._num_dimensions * 8 :])
        for _ in range(self._num_elements):
            length = reader.i32()
            if length < 0:
                yield None
                continue
            if reader.remaining < length:
                raise DecodeError("invalid value length")
            yield reader.take(length)
        if reader.remaining:
            raise DecodeError("invalid message length: arrayvalue not drained")


def array_from_sql(buf: bytes) -> Array:
    """Decode an array."""
    reader = _Reader(buf)
    num_dimensions = reader.i32()
    if num_dimensions < 0:
        raise DecodeError("invalid dimension count")
    has_nulls = reader.i32() != 0
    element_type = reader.u32()
    data = reader.rest()

    dims = _Reader(data)
    elements = 1
    for _ in range(num_dimensions):
        length = dims.i32()
        if length < 0:
            raise DecodeError("invalid dimension size")
        dims.i32()
        elements *= length
        if elements > _I32_MAX:
            raise DecodeError("too many array elements")

    if num_dimensions == 0:
        elements = 0

    return Array(has_nulls, element_type, num_dimensions, elements, data)


class BoundKind(enum.Enum):
    """How one side of a range is bounded."""

    INCLUSIVE = "inclusive"
    EXCLUSIVE = "exclusive"
    UNBOUNDED = "unbounded"


@dataclass(frozen=True)
class RangeBound:
    """One side of a range; ``value`` holds the raw bytes, or None for NULL."""

    kind: BoundKind
    value: bytes | None = None

    @classmethod
    def inclusive(cls, value: bytes | None) -> RangeBound:
        return cls(BoundKind.INCLUSIVE, value)

    @classmethod
    def exclusive(cls, value: bytes | None) -> RangeBound:
        return cls(BoundKind.EXCLUSIVE, value)

    @classmethod
    def unbounded(cls) -> RangeBound:
        return cls(BoundKind.UNBOUNDED)


@dataclass(frozen=True)
class Range:
    """A range; an empty range has no bounds."""

    lower: RangeBound | None = None
    upper: RangeBound | None = None

    @property
    def empty(self) -> bool:
        return self.lower is None


def empty_range_to_sql() -> bytes:
    """Encode an empty range."""
    return bytes([RANGE_EMPTY])


def _write_bound(bound: RangeBound, buf: bytearray) -> None:
    if bound.kind is BoundKind.UNBOUNDED:
        return

    def serialize(out: bytearray) -> IsNull:
        if bound.value is None:
            return IsNull.YES
        out.extend(bound.value)
        return IsNull.NO

    write_nullable(serialize, buf)


def range_to_sql(lower: RangeBound, upper: RangeBound) -> bytes:
    """Encode a non-empty range from its two bounds."""
    tag = 0
    if lower.kind is BoundKind.INCLUSIVE:
        tag |= RANGE_LOWER_INCLUSIVE
    elif lower.kind is BoundKind.UNBOUNDED:
        tag |= RANGE_LOWER_UNBOUNDED
    if upper.kind is BoundKind.INCLUSIVE:
        tag |= RANGE_UPPER_INCLUSIVE
    elif upper.kind is BoundKind.UNBOUNDED:
        tag |= RANGE_UPPER_UNBOUNDED

    buf = bytearray([tag])
    _write_bound(lower, buf)
    _write_bound(upper, buf)
    return bytes(buf)


def _read_bound(reader: _Reader, tag: int, unbounded: int, inclusive: int) -> RangeBound:
    if tag & unbounded:
        return RangeBound.unbounded()
    length = reader.i32()
    if length < 0:
        value = None
    else:
        if reader.remaining < length:
            raise DecodeError("invalid message size")
        value = reader.take(length)
    kind = BoundKind.INCLUSIVE if tag & inclusive else BoundKind.EXCLUSIVE
    return RangeBound(kind, value)


def range_from_sql(buf: bytes) -> Range:
    """Decode a range."""
    reader = _Reader(buf)
    tag = reader.u8()

    if tag == RANGE_EMPTY:
        if reader.remaining:
            raise DecodeError("invalid message size")
        return Range()

    lower = _read_bound(reader, tag, RANGE_LOWER_UNBOUNDED, RANGE_LOWER_INCLUSIVE)
    upper = _read_bound(reader, tag, RANGE_UPPER_UNBOUNDED, RANGE_UPPER_INCLUSIVE)
    if reader.remaining:
        raise DecodeError("invalid message size")
    return Range(lower, upper)


@dataclass(frozen=True)
class Point:
    """A point."""

    x: float
    y: float


def point_to_sql(x: float, y: float) -> bytes:
    """Encode a point."""
    return _F64.pack(x) + _F64.pack(y)


def point_from_sql(buf: bytes) -> Point:
    """Decode a point."""
    reader = _Reader(buf)
    point = Point(reader.f64(), reader.f64())
    if reader.remaining:
        raise DecodeError("invalid buffer size")
    return point


@dataclass(frozen=True)
class Box:
    """A box given by two opposite corners."""

    upper_right: Point
    lower_left: Point


def box_to_sql(x1: float, y1: float, x2: float, y2: float) -> bytes:
    """Encode a box from its upper right and lower left corners."""
    return b"".join(_F64.pack(v) for v in (x1, y1, x2, y2))


def box_from_sql(buf: bytes) -> Box:
    """Decode a box."""
    reader = _Reader(buf)
    x1, y1, x2, y2 = (reader.f64() for _ in range(4))
    if reader.remaining:
        raise DecodeError("invalid buffer size")
    return Box(Point(x1, y1), Point(x2, y2))


def path_to_sql(closed: bool, points: Iterable[tuple[float, float]]) -> bytes:
    """Encode a path from its ``(x, y)`` points."""
    body = bytearray()
    count = 0
    for x, y in points:
        count += 1
        body += _F64.pack(x) + _F64.pack(y)
    return bytes([int(bool(closed))]) + _I32.pack(i32_from_size(count)) + bytes(body)


class Path:
    """A decoded path whose points are read on demand."""

    __slots__ = ("closed", "_count", "_data")

    def __init__(self, closed: bool, count: int, data: bytes) -> None:
        self.closed = closed
        self._count = count
        self._data = data

    def points(self) -> Iterator[Point]:
        """Iterate over the points of the path."""
        reader = _Reader(self._data)
        remaining = self._count
        while remaining != 0:
            remaining -= 1
            yield Point(reader.f64(), reader.f64())
        if reader.remaining:
            raise DecodeError("invalid message length: path points not drained")


def path_from_sql(buf: bytes) -> Path:
    """Decode a path."""
    reader = _Reader(buf)
    closed = reader.u8() != 0
    count = reader.i32()
    return Path(closed, count, reader.rest())


@dataclass(frozen=True)
class Inet:
    """A network address with its netmask."""

    addr: ipaddress.IPv4Address | ipaddress.IPv6Address
    netmask: int


def inet_to_sql(addr: Any, netmask: int) -> bytes:
    """Encode an inet value; ``addr`` is an address object or its text."""
    address = ipaddress.ip_address(addr)
    if not 0 <= netmask <= 255:
        raise ValueError("netmask must fit in one byte")
    family = PGSQL_AF_INET if address.version == 4 else PGSQL_AF_INET6
    packed = address.packed
    return bytes([family, netmask, 0, len(packed)]) + packed


def inet_from_sql(buf: bytes) -> Inet:
    """Decode an inet value."""
    reader = _Reader(buf)
    family = reader.u8()
    netmask = reader.u8()
    reader.u8()  # is_cidr
    length = reader.u8()

    if family == PGSQL_AF_INET:
        if netmask > 32:
            raise DecodeError("invalid IPv4 netmask")
        if length != 4:
            raise DecodeError("invalid IPv4 address length")
        addr: ipaddress.IPv4Address | ipaddress.IPv6Address = ipaddress.IPv4Address(reader.take(4))
    elif family == PGSQL_AF_INET6:
        if netmask > 128:
            raise DecodeError("invalid IPv6 netmask")
        if length != 16:
            raise DecodeError("invalid IPv6 address length")
        addr = ipaddress.IPv6Address(reader.take(16))
    else:
        raise DecodeError("invalid IP family")

    if reader.remaining:
        raise DecodeError("invalid buffer size")
    return Inet(addr, netmask)