"""Client-side password encryption for commands such as ``ALTER USER ... PASSWORD``.

Encrypting on the client keeps the cleartext password out of server logs.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

from .sasl import hi, saslprep

SCRAM_DEFAULT_ITERATIONS = 4096
SCRAM_DEFAULT_SALT_LEN = 16


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _prepare(password: bytes) -> bytes:
    # Like the server, skip SASLprep for passwords that are not valid UTF-8
    # or that contain prohibited characters.
    try:
        return saslprep(password.decode("utf-8")).encode("utf-8")
    except ValueError:
        return password


def scram_sha_256(password: bytes, salt: bytes | None = None) -> str:
    """Hash ``password`` as a SCRAM-SHA-256 verifier.

    A random 16-byte salt is used unless one is given. The result contains
    no characters that need escaping in an SQL command.
    """
    if salt is None:
        salt = secrets.token_bytes(SCRAM_DEFAULT_SALT_LEN)
    salt = bytes(salt)
    if len(salt) != SCRAM_DEFAULT_SALT_LEN:
        raise ValueError(f"salt must be exactly {SCRAM_DEFAULT_SALT_LEN} bytes")

    prepared = _prepare(bytes(password))
    salted_password = hi(prepared, salt, SCRAM_DEFAULT_ITERATIONS)

    client_key = hmac.new(salted_password, b"Client Key", hashlib.sha256).digest()
    stored_key = hashlib.sha256(client_key).digest()
    server_key = hmac.new(salted_password, b"Server Key", hashlib.sha256).digest()

    return (
        f"SCRAM-SHA-256${SCRAM_DEFAULT_ITERATIONS}:{_b64(salt)}"
        f"${_b64(stored_key)}:{_b64(server_key)}"
    )


def md5(password: bytes, username: str) -> str:
    """Hash ``password`` with MD5, salted with the user name.

    Not recommended: MD5 is not considered secure.
    """
    digest = hashlib.md5(bytes(password) + username.encode("utf-8")).hexdigest()
    return f"md5{digest}"