"""
Salted scrypt password hashing.

Hashes are stored as ``"<hex digest>.<hex salt>"``; the hex salt string is
used verbatim as the KDF salt.
"""

from __future__ import annotations

import secrets

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

KEY_LENGTH = 64
SALT_BYTES = 16
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1


def _kdf(salt: str) -> Scrypt:
    return Scrypt(
        salt=salt.encode("utf-8"),
        length=KEY_LENGTH,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
    )


def hash_password(password: str) -> str:
    salt = secrets.token_hex(SALT_BYTES)
    digest = _kdf(salt).derive(password.encode("utf-8"))
    return f"{digest.hex()}.{salt}"


def verify_password(supplied: str, stored: str) -> bool:
    """Constant-time check of `supplied` against a stored hash."""
    hashed, sep, salt = (stored or "").partition(".")
    if not sep or not hashed or not salt:
        return False
    try:
        expected = bytes.fromhex(hashed)
    except ValueError:
        return False
    if len(expected) != KEY_LENGTH:
        return False
    try:
        _kdf(salt).verify(supplied.encode("utf-8"), expected)
    except InvalidKey:
        return False
    return True
