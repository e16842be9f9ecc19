"""
tests/test_passwords.py -- Unit tests for auth/passwords.py.

Covers:
  - PBKDF2 hashes are salted and encoded as "<salt hex>:<key hex>"
  - verify accepts the right password and rejects a wrong one
  - bcrypt hashes verify through the same hasher regardless of its scheme
  - malformed stored hashes never match and never raise
"""

from __future__ import annotations

import pytest

from auth.passwords import BCRYPT, PasswordHasher


@pytest.fixture(scope="module")
def hasher() -> PasswordHasher:
    return PasswordHasher(iterations=1000)


class TestPbkdf2:
    def test_hash_is_salt_and_key_hex(self, hasher: PasswordHasher) -> None:
        """64-byte salt and 32-byte key encode to 128 and 64 hex chars."""
        salt_hex, sep, key_hex = hasher.hash("Secret123").partition(":")
        assert sep == ":"
        assert len(salt_hex) == 128
        assert len(key_hex) == 64
        bytes.fromhex(salt_hex)
        bytes.fromhex(key_hex)

    def test_same_password_hashes_differently(self, hasher: PasswordHasher) -> None:
        assert hasher.hash("Secret123") != hasher.hash("Secret123")

    def test_verify_round_trip(self, hasher: PasswordHasher) -> None:
        stored = hasher.hash("Secret123")
        assert hasher.verify("Secret123", stored) is True

    def test_wrong_password_rejected(self, hasher: PasswordHasher) -> None:
        stored = hasher.hash("Secret123")
        assert hasher.verify("Secret124", stored) is False

    def test_iteration_count_is_part_of_the_derivation(self) -> None:
        """A hash made with one work factor does not verify under another."""
        stored = PasswordHasher(iterations=1000).hash("Secret123")
        assert PasswordHasher(iterations=2000).verify("Secret123", stored) is False


class TestBcrypt:
    def test_bcrypt_hash_verifies_under_both_schemes(self) -> None:
        """Stored bcrypt hashes are recognised by prefix, whatever the configured scheme."""
        stored = PasswordHasher(scheme=BCRYPT).hash("Secret123")
        assert stored.startswith("$2")
        assert PasswordHasher(scheme=BCRYPT).verify("Secret123", stored) is True
        assert PasswordHasher(iterations=1000).verify("Secret123", stored) is True
        assert PasswordHasher(iterations=1000).verify("wrong-Pass1", stored) is False

    def test_unknown_scheme_rejected(self) -> None:
        with pytest.raises(ValueError):
            PasswordHasher(scheme="md5")


class TestMalformedHashes:
    @pytest.mark.parametrize("stored", ["", "no-separator", "zz:zz", "abcd:", "$2b$not-a-real-hash"])
    def test_malformed_hash_never_matches(self, hasher: PasswordHasher, stored: str) -> None:
        assert hasher.verify("Secret123", stored) is False

    def test_dummy_verify_returns_nothing(self, hasher: PasswordHasher) -> None:
        """dummy_verify spends the work and discards the result."""
        assert hasher.dummy_verify("whatever") is None
