import base64
import hashlib
import hmac
import string

import pytest

from pgproto.password import md5, scram_sha_256
from pgproto.sasl import ChannelBinding, ScramError, ScramSha256

FIXED_SALT = bytes(range(16))


def _parse_verifier(verifier):
    mechanism, params, keys = verifier.split("$")
    iterations, salt_b64 = params.split(":")
    stored_b64, server_b64 = keys.split(":")
    return mechanism, iterations, salt_b64, base64.b64decode(stored_b64), base64.b64decode(server_b64)


def _server_exchange(verifier, client_secret):
    """Run a SCRAM exchange against ``verifier`` acting as the server."""
    _, iterations, salt_b64, stored_key, server_key = _parse_verifier(verifier)

    client = ScramSha256(client_secret, ChannelBinding.unsupported(), "clientnonce")
    client_first = client.message().decode()
    server_first = f"r=clientnonceservernonce,s={salt_b64},i={iterations}"
    client.update(server_first.encode())
    client_final = client.message().decode()

    without_proof, proof_b64 = client_final.rsplit(",p=", 1)
    auth_message = f"{client_first[3:]},{server_first},{without_proof}".encode()
    signature = hmac.new(stored_key, auth_message, hashlib.sha256).digest()
    client_key = bytes(a ^ b for a, b in zip(base64.b64decode(proof_b64), signature))
    proof_ok = hashlib.sha256(client_key).digest() == stored_key
    server_signature = hmac.new(server_key, auth_message, hashlib.sha256).digest()
    return proof_ok, client, server_signature


def test_scram_verifier_layout():
    password = b"password"
    verifier = scram_sha_256(password, FIXED_SALT)
    mechanism, iterations, salt_b64, stored_key, server_key = _parse_verifier(verifier)
    assert mechanism == "SCRAM-SHA-256"
    assert iterations == "4096"
    assert base64.b64decode(salt_b64) == FIXED_SALT
    assert len(stored_key) == 32
    assert len(server_key) == 32


def test_scram_verifier_is_deterministic_for_fixed_salt():
    password = b"password"
    first = scram_sha_256(password, FIXED_SALT)
    second = scram_sha_256(password, FIXED_SALT)
    assert first.startswith("SCRAM-SHA-256$4096:AAECAwQFBgcICQoLDA0ODw==$")
    assert first == second


def test_scram_random_salt():
    password = b"password"
    first = scram_sha_256(password)
    second = scram_sha_256(password)
    assert first != second
    assert len(base64.b64decode(_parse_verifier(first)[2])) == 16


def test_scram_rejects_wrong_salt_length():
    password = b"password"
    with pytest.raises(ValueError):
        scram_sha_256(password, b"short")


def test_scram_verifier_authenticates_client():
    password = b"password"
    verifier = scram_sha_256(password, FIXED_SALT)
    proof_ok, client, server_signature = _server_exchange(verifier, password)
    assert proof_ok
    client.finish(b"v=" + base64.b64encode(server_signature))
    with pytest.raises(ScramError):
        client.message()


def test_scram_verifier_rejects_other_client_secret():
    password = b"password"
    verifier = scram_sha_256(password, FIXED_SALT)
    proof_ok, _, _ = _server_exchange(verifier, b"secret")
    assert not proof_ok


def test_scram_applies_saslprep():
    assert scram_sha_256("I\u00adX".encode(), FIXED_SALT) == scram_sha_256(b"IX", FIXED_SALT)


def test_scram_accepts_non_utf8_bytes():
    verifier = scram_sha_256(b"\xff\xfe", FIXED_SALT)
    proof_ok, _, _ = _server_exchange(verifier, b"\xff\xfe")
    assert proof_ok


def test_md5_shape():
    password = b"password"
    hashed = md5(password, "md5_user")
    assert hashed.startswith("md5")
    assert len(hashed) == 35
    assert set(hashed[3:]) <= set(string.hexdigits.lower())


def test_md5_depends_on_username():
    password = b"password"
    assert md5(password, "md5_user") != md5(password, "other_user")
    assert md5(password, "md5_user") == md5(password, "md5_user")


def test_md5_matches_challenge_response():
    password = b"password"
    salt = bytes([0x2A, 0x3D, 0x8F, 0xE0])
    stored = md5(password, "md5_user")
    response = "md5" + hashlib.md5(stored[3:].encode() + salt).hexdigest()
    assert response == "md562af4dd09bbb41884907a838a3233294"