"""
auth/passwords.py -- One-way password hashing.

Security design decisions:
  Default scheme: PBKDF2-HMAC-SHA512, 100,000 iterations, 64-byte random salt
       per call, 32-byte derived key. Encoded as "<salt hex>:<key hex>" so a
       stored hash is self-contained -- verification needs nothing else.

  bcrypt scheme: selectable via PASSWORD_SCHEME=bcrypt. Hashes are
       recognised by their "$2" prefix, so verify() accepts both encodings
       and a deployment can switch schemes without invalidating old hashes.

  Comparison: hmac.compare_digest, never ==.

  Timing equalization [C1]: dummy_verify() runs a full verification against
       a hash computed once at construction. Callers use it when the account
       does not exist so response time does not reveal which emails are
       registered.

Hashing failures propagate. There is no fallback that stores or compares
plaintext. Passwords are never logged.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import hashlib
import hmac
import os

import bcrypt

PBKDF2_SHA512 = "pbkdf2_sha512"
BCRYPT = "bcrypt"

_SALT_BYTES = 64
_KEY_BYTES = 32
_BCRYPT_ROUNDS = 12
# bcrypt silently ignores input past 72 bytes; validation caps passwords at 128 chars.
_BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """Hash and verify passwords.

    Usage:
        hasher = PasswordHasher()
        stored = hasher.hash("Secret123")
        hasher.verify("Secret123", stored)   # True
    """

    def __init__(self, scheme: str = PBKDF2_SHA512, iterations: int = 100_000) -> None:
        if scheme not in (PBKDF2_SHA512, BCRYPT):
            raise ValueError(f"Unknown password scheme: {scheme!r}")
        self.scheme = scheme
        self.iterations = iterations
        self._dummy_hash = self.hash("marketplace_timing_dummy")

    def hash(self, password: str) -> str:
        """Return an opaque, salted hash of password."""
        if self.scheme == BCRYPT:
            pw_bytes = password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
            return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)).decode("utf-8")
        salt = os.urandom(_SALT_BYTES)
        key = self._derive(password, salt)
        return f"{salt.hex()}:{key.hex()}"

    def verify(self, password: str, hashed: str) -> bool:
        """Return True if password matches hashed. Malformed hashes never match."""
        if not hashed:
            return False
        if hashed.startswith("$2"):
            try:
                return bcrypt.checkpw(password.encode("utf-8")[:_BCRYPT_MAX_BYTES], hashed.encode("utf-8"))
            except ValueError:
                return False
        salt_hex, sep, key_hex = hashed.partition(":")
        if not sep:
            return False
        try:
            salt = bytes.fromhex(salt_hex)
            expected = bytes.fromhex(key_hex)
        except ValueError:
            return False
        return hmac.compare_digest(self._derive(password, salt), expected)

    def dummy_verify(self, password: str) -> None:
        """Spend the same work as a real verification, then discard the result."""
        self.verify(password, self._dummy_hash)

    def _derive(self, password: str, salt: bytes) -> bytes:
        return hashlib.pbkdf2_hmac("sha512", password.encode("utf-8"), salt, self.iterations, dklen=_KEY_BYTES)
