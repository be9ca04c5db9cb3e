"""Serialization of messages sent from the client to the server."""

from __future__ import annotations

import struct
from typing import Any, Callable, Iterable

from .wire import IsNull, i16_from_size, i32_from_size, write_nullable

_I16 = struct.Struct(">h")
_I32 = struct.Struct(">i")
_U32 = struct.Struct(">I")

_PROTOCOL_VERSION = 0x00_03_00_00
_CANCEL_REQUEST_CODE = 80_877_102
_SSL_REQUEST_CODE = 80_877_103


class BindError(Exception):
    """Failure while building a Bind message.

    ``conversion`` is true when a parameter value could not be converted by
    the serializer, and false when the message itself could not be encoded.
    """

    def __init__(self, cause: BaseException, *, conversion: bool) -> None:
        super().__init__(str(cause))
        self.cause = cause
        self.conversion = conversion


def _frame(tag: bytes, body: bytes) -> bytes:
    size = i32_from_size(len(body) + 4)
    return tag + _I32.pack(size) + body


def _cstr(data: bytes) -> bytes:
    if b"\x00" in data:
        raise ValueError("string contains embedded null")
    return data + b"\x00"


def _text(value: str) -> bytes:
    return _cstr(value.encode("utf-8"))


def _counted(items: Iterable[Any], encode: Callable[[Any], bytes]) -> bytes:
    parts = [encode(item) for item in items]
    count = i16_from_size(len(parts))
    return _I16.pack(count) + b"".join(parts)


def _variant_byte(variant: int | bytes | str) -> bytes:
    if isinstance(variant, int):
        return bytes([variant])
    if isinstance(variant, str):
        variant = variant.encode("ascii")
    if len(variant) != 1:
        raise ValueError("variant must be a single byte")
    return bytes(variant)


def bind(
    portal: str,
    statement: str,
    formats: Iterable[int],
    values: Iterable[Any],
    serializer: Callable[[Any, bytearray], IsNull],
    result_formats: Iterable[int],
) -> bytes:
    """Build a Bind message; ``serializer(value, buf)`` appends each parameter."""

    def convert(value: Any, out: bytearray) -> IsNull:
        try:
            return serializer(value, out)
        except Exception as exc:
            raise BindError(exc, conversion=True) from exc

    def encode_value(value: Any) -> bytes:
        buf = bytearray()
        write_nullable(lambda out: convert(value, out), buf)
        return bytes(buf)

    try:
        body = b"".join(
            [
                _text(portal),
                _text(statement),
                _counted(formats, _I16.pack),
                _counted(values, encode_value),
                _counted(result_formats, _I16.pack),
            ]
        )
        return _frame(b"B", body)
    except (ValueError, struct.error) as exc:
        raise BindError(exc, conversion=False) from exc


def cancel_request(process_id: int, secret_key: int) -> bytes:
    """Build a CancelRequest message."""
    return _frame(b"", _I32.pack(_CANCEL_REQUEST_CODE) + _I32.pack(process_id) + _I32.pack(secret_key))


def close(variant: int | bytes | str, name: str) -> bytes:
    """Build a Close message for a statement (``S``) or portal (``P``)."""
    return _frame(b"C", _variant_byte(variant) + _text(name))


class CopyData:
    """A CopyData message holding a chunk of COPY payload."""

    __slots__ = ("data", "length")

    def __init__(self, data: bytes) -> None:
        data = bytes(data)
        length = len(data) + 4
        if length > 2**31 - 1:
            raise ValueError("message length overflow")
        self.data = data
        self.length = length

    def encode(self) -> bytes:
        """Return the message's wire bytes."""
        return b"d" + _I32.pack(self.length) + self.data


def copy_done() -> bytes:
    """Build a CopyDone message."""
    return _frame(b"c", b"")


def copy_fail(message: str) -> bytes:
    """Build a CopyFail message."""
    return _frame(b"f", _text(message))


def describe(variant: int | bytes | str, name: str) -> bytes:
    """Build a Describe message for a statement (``S``) or portal (``P``)."""
    return _frame(b"D", _variant_byte(variant) + _text(name))


def execute(portal: str, max_rows: int) -> bytes:
    """Build an Execute message."""
    return _frame(b"E", _text(portal) + _I32.pack(max_rows))


def parse(name: str, query: str, param_types: Iterable[int]) -> bytes:
    """Build a Parse message with the given parameter type OIDs."""
    body = _text(name) + _text(query) + _counted(param_types, _U32.pack)
    return _frame(b"P", body)


def password_message(password: bytes) -> bytes:
    """Build a PasswordMessage."""
    return _frame(b"p", _cstr(bytes(password)))


def query(text: str) -> bytes:
    """Build a simple Query message."""
    return _frame(b"Q", _text(text))


def sasl_initial_response(mechanism: str, data: bytes) -> bytes:
    """Build a SASLInitialResponse message."""
    data = bytes(data)
    length = i32_from_size(len(data))
    return _frame(b"p", _text(mechanism) + _I32.pack(length) + data)


def sasl_response(data: bytes) -> bytes:
    """Build a SASLResponse message."""
    return _frame(b"p", bytes(data))


def ssl_request() -> bytes:
    """Build an SSLRequest message."""
    return _frame(b"", _I32.pack(_SSL_REQUEST_CODE))


def startup_message(parameters: Iterable[tuple[str, str]]) -> bytes:
    """Build a StartupMessage for protocol 3.0 with the given key/value pairs."""
    parts = [_I32.pack(_PROTOCOL_VERSION)]
    for key, value in parameters:
        parts.append(_text(key))
        parts.append(_text(value))
    parts.append(b"\x00")
    return _frame(b"", b"".join(parts))


def flush() -> bytes:
    """Build a Flush message."""
    return _frame(b"H", b"")


def sync() -> bytes:
    """Build a Sync message."""
    return _frame(b"S", b"")


def terminate() -> bytes:
    """Build a Terminate message."""
    return _frame(b"X", b"")