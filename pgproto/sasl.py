"""Client side of PostgreSQL password authentication: MD5 and SCRAM-SHA-256."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
import stringprep
import unicodedata
from dataclasses import dataclass
from typing import Callable

NONCE_LENGTH = 24

SCRAM_SHA_256 = "SCRAM-SHA-256"
"""The identifier of the SCRAM-SHA-256 SASL mechanism."""

SCRAM_SHA_256_PLUS = "SCRAM-SHA-256-PLUS"
"""The identifier of the SCRAM-SHA-256-PLUS SASL mechanism."""

_INVALID_STATE = "invalid SCRAM state"
_U32_MAX = 2**32 - 1


class ScramError(ValueError):
    """Raised when a SCRAM exchange fails or receives a malformed message."""


def md5_hash(username: bytes, password: bytes, salt: bytes) -> str:
    """Answer an ``AuthenticationMD5Password`` challenge.

    The result is sent back to the server in a ``PasswordMessage``.
    """
    salt = bytes(salt)
    if len(salt) != 4:
        raise ValueError("salt must be exactly 4 bytes")
    inner = hashlib.md5(bytes(password) + bytes(username)).hexdigest()
    return "md5" + hashlib.md5(inner.encode("ascii") + salt).hexdigest()


_PROHIBITED: tuple[Callable[[str], bool], ...] = (
    stringprep.in_table_c12,
    stringprep.in_table_c21_c22,
    stringprep.in_table_c3,
    stringprep.in_table_c4,
    stringprep.in_table_c5,
    stringprep.in_table_c6,
    stringprep.in_table_c7,
    stringprep.in_table_c8,
    stringprep.in_table_c9,
)


def saslprep(text: str) -> str:
    """Prepare ``text`` with the SASLprep profile; raise ValueError if it is not allowed."""
    mapped = "".join(
        " " if stringprep.in_table_c12(ch) else ch
        for ch in text
        if not stringprep.in_table_b1(ch)
    )
    normalized = unicodedata.ucd_3_2_0.normalize("NFKC", mapped)

    for ch in normalized:
        if any(check(ch) for check in _PROHIBITED):
            raise ValueError(f"prohibited character {ch!r}")
        if stringprep.in_table_a1(ch):
            raise ValueError(f"unassigned code point {ch!r}")

    if any(stringprep.in_table_d1(ch) for ch in normalized):
        if any(stringprep.in_table_d2(ch) for ch in normalized):
            raise ValueError("mixed bidirectional text")
        if not (stringprep.in_table_d1(normalized[0]) and stringprep.in_table_d1(normalized[-1])):
            raise ValueError("right-to-left text must start and end with a right-to-left character")

    return normalized


def _normalize(password: bytes) -> bytes:
    # Passwords need not be valid UTF-8 or free of prohibited characters;
    # in that case the raw bytes are used.
    password = bytes(password)
    try:
        return saslprep(password.decode("utf-8")).encode("utf-8")
    except ValueError:
        return password


def hi(password: bytes, salt: bytes, iterations: int) -> bytes:
    """The SCRAM ``Hi`` function (PBKDF2 with HMAC-SHA-256), 32 bytes long."""
    password = bytes(password)
    salt = bytes(salt)
    if iterations <= 1:
        return hmac.new(password, salt + b"\x00\x00\x00\x01", hashlib.sha256).digest()
    return hashlib.pbkdf2_hmac("sha256", password, salt, iterations)


def _hmac(key: bytes, data: bytes) -> bytes:
    return hmac.new(key, data, hashlib.sha256).digest()


@dataclass(frozen=True)
class ChannelBinding:
    """The channel binding configuration of a SCRAM exchange."""

    gs2_header: str
    cbind_data: bytes = b""

    @classmethod
    def unrequested(cls) -> ChannelBinding:
        """The server did not request channel binding."""
        return cls("y,,")

    @classmethod
    def unsupported(cls) -> ChannelBinding:
        """The server requested channel binding but the client cannot provide it."""
        return cls("n,,")

    @classmethod
    def tls_server_end_point(cls, signature: bytes) -> ChannelBinding:
        """Bind to the channel with the ``tls-server-end-point`` method."""
        return cls("p=tls-server-end-point,,", bytes(signature))


@dataclass(frozen=True)
class ServerFirstMessage:
    """The parsed ``server-first-message`` of a SCRAM exchange."""

    nonce: str
    salt: str
    iteration_count: int


class _Parser:
    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def _byte_offset(self, index: int) -> int:
        return len(self._text[:index].encode("utf-8"))

    def _at_end(self) -> bool:
        return self._pos >= len(self._text)

    def _peek(self) -> str | None:
        return None if self._at_end() else self._text[self._pos]

    def _eat(self, target: str) -> None:
        if self._at_end():
            raise ScramError("unexpected EOF")
        ch = self._text[self._pos]
        if ch != target:
            raise ScramError(
                f"unexpected character at byte {self._byte_offset(self._pos)}: "
                f"expected `{target}` but got `{ch}`"
            )
        self._pos += 1

    def _take_while(self, accept: Callable[[str], bool]) -> str:
        start = self._pos
        while not self._at_end() and accept(self._text[self._pos]):
            self._pos += 1
        return self._text[start : self._pos]

    def _printable(self) -> str:
        return self._take_while(lambda c: "\x21" <= c <= "\x2b" or "\x2d" <= c <= "\x7e")

    def _base64(self) -> str:
        return self._take_while(
            lambda c: "a" <= c <= "z" or "A" <= c <= "Z" or "0" <= c <= "9" or c in "/+="
        )

    def _attribute(self, name: str) -> None:
        self._eat(name)
        self._eat("=")

    def _posit_number(self) -> int:
        digits = self._take_while(lambda c: "0" <= c <= "9")
        if not digits:
            raise ScramError("invalid number: empty string")
        value = int(digits)
        if value > _U32_MAX:
            raise ScramError("invalid number: too large")
        return value

    def _eof(self) -> None:
        if not self._at_end():
            raise ScramError(f"unexpected trailing data at byte {self._byte_offset(self._pos)}")

    def server_first_message(self) -> ServerFirstMessage:
        self._attribute("r")
        nonce = self._printable()
        self._eat(",")
        self._attribute("s")
        salt = self._base64()
        self._eat(",")
        self._attribute("i")
        iteration_count = self._posit_number()
        self._eof()
        return ServerFirstMessage(nonce, salt, iteration_count)

    def server_final_message(self) -> tuple[str | None, str | None]:
        """Return ``(error, verifier)``; exactly one of them is set."""
        if self._peek() == "e":
            self._attribute("e")
            error = self._take_while(lambda c: c in "\0=,")
            self._eof()
            return error, None
        self._attribute("v")
        verifier = self._base64()
        self._eof()
        return None, verifier


def parse_server_first_message(message: str) -> ServerFirstMessage:
    """Parse a SCRAM ``server-first-message``."""
    return _Parser(message).server_first_message()


def _decode_text(message: bytes) -> str:
    try:
        return bytes(message).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ScramError(str(exc)) from exc


def _b64decode(text: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ScramError(str(exc)) from exc


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _random_nonce() -> str:
    chars = []
    for _ in range(NONCE_LENGTH):
        value = 0x21 + secrets.randbelow(0x7E - 0x21)
        if value == 0x2C:
            value = 0x7E
        chars.append(chr(value))
    return "".join(chars)


@dataclass
class _AwaitingServerFirst:
    nonce: str
    password: bytes
    channel_binding: ChannelBinding


@dataclass
class _AwaitingServerFinal:
    salted_password: bytes
    auth_message: str


class ScramSha256:
    """Client side of a SCRAM-SHA-256(-PLUS) exchange.

    Send ``message()`` in a ``SASLInitialResponse``; pass the server's
    ``AuthenticationSASLContinue`` payload to ``update()`` and send
    ``message()`` again in a ``SASLResponse``; finally pass the
    ``AuthenticationSASLFinal`` payload to ``finish()``. Authentication has
    succeeded only if ``finish()`` returns without raising.
    """

    def __init__(
        self,
        password: bytes,
        channel_binding: ChannelBinding,
        nonce: str | None = None,
    ) -> None:
        if nonce is None:
            nonce = _random_nonce()
        self._message = f"{channel_binding.gs2_header}n=,r={nonce}"
        self._state: _AwaitingServerFirst | _AwaitingServerFinal | None = _AwaitingServerFirst(
            nonce, _normalize(password), channel_binding
        )

    def message(self) -> bytes:
        """The message to send to the server next."""
        if self._state is None:
            raise ScramError(_INVALID_STATE)
        return self._message.encode("utf-8")

    def update(self, message: bytes) -> None:
        """Process the server's ``AuthenticationSASLContinue`` payload."""
        state, self._state = self._state, None
        if not isinstance(state, _AwaitingServerFirst):
            raise ScramError(_INVALID_STATE)

        text = _decode_text(message)
        parsed = parse_server_first_message(text)
        if not parsed.nonce.startswith(state.nonce):
            raise ScramError("invalid nonce")

        salt = _b64decode(parsed.salt)
        salted_password = hi(state.password, salt, parsed.iteration_count)
        client_key = _hmac(salted_password, b"Client Key")
        stored_key = hashlib.sha256(client_key).digest()

        binding = state.channel_binding
        cbind_input = _b64encode(binding.gs2_header.encode("ascii") + binding.cbind_data)
        without_proof = f"c={cbind_input},r={parsed.nonce}"
        auth_message = f"n=,r={state.nonce},{text},{without_proof}"

        client_signature = _hmac(stored_key, auth_message.encode("utf-8"))
        client_proof = bytes(k ^ s for k, s in zip(client_key, client_signature))

        self._message = f"{without_proof},p={_b64encode(client_proof)}"
        self._state = _AwaitingServerFinal(salted_password, auth_message)

    def finish(self, message: bytes) -> None:
        """Verify the server's ``AuthenticationSASLFinal`` payload."""
        state, self._state = self._state, None
        if not isinstance(state, _AwaitingServerFinal):
            raise ScramError(_INVALID_STATE)

        text = _decode_text(message)
        error, verifier = _Parser(text).server_final_message()
        if error is not None:
            raise ScramError(f"SCRAM error: {error}")

        expected = _b64decode(verifier or "")
        server_key = _hmac(state.salted_password, b"Server Key")
        signature = _hmac(server_key, state.auth_message.encode("utf-8"))
        if not hmac.compare_digest(signature, expected):
            raise ScramError("SCRAM verification error")