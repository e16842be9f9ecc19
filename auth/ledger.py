"""
auth/ledger.py -- Refresh-token revocation ledger.

Only SHA-256(raw_token) is stored. Checking a presented token recomputes its
digest and looks it up; a stolen table dump therefore yields nothing that
can be replayed. Plain SHA-256 (no salt, no work factor) is enough here:
refresh tokens are long, random-jti JWTs, not low-entropy passwords, and the
digest has to be deterministic for the lookup to work.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from datetime import datetime

from auth.models import RefreshTokenRecord
from auth.store import CredentialStore
from auth.tokens import utcnow

logger = logging.getLogger("marketplace.auth.ledger")


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class RefreshTokenLedger:
    def __init__(self, store: CredentialStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    def record(self, user_id: str, raw_token: str, expires_at: datetime) -> None:
        self._store.insert_refresh_token(
            RefreshTokenRecord(user_id=user_id, token_hash=hash_token(raw_token), expires_at=expires_at)
        )

    def is_valid(self, user_id: str, raw_token: str) -> bool:
        """True only if the digest matches a row that is neither revoked nor expired."""
        record = self._store.find_usable_refresh_token(user_id, hash_token(raw_token), self._clock())
        return record is not None

    def revoke(self, user_id: str, raw_token: str) -> None:
        """Revoke one token. Unknown or already-revoked tokens are not an error."""
        self._store.revoke_refresh_token(user_id, hash_token(raw_token))

    def revoke_all(self, user_id: str) -> int:
        """Revoke every outstanding refresh token for user_id. Returns how many were live."""
        count = self._store.revoke_all_refresh_tokens(user_id)
        logger.info("Revoked %d refresh token(s) for user %s", count, user_id)
        return count

    def purge_expired(self) -> int:
        return self._store.purge_expired_refresh_tokens(self._clock())
