"""
auth/lockout.py -- Progressive account lockout.

Per-user state machine:

    Unlocked --failure--> Unlocked (count + 1)
    Unlocked --failure, count reaches threshold--> Locked (until now + duration)
    Locked   --lock expires (checked lazily)--> Unlocked (count = 0)
    any      --success--> Unlocked (count = 0)

There is no sweeper. is_locked() notices an expired lock on the next login
attempt and clears it with a guarded UPDATE. All transitions are single
statements in the store; see CredentialStore.increment_failed_attempts.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from auth.models import User
from auth.store import CredentialStore
from auth.tokens import utcnow

logger = logging.getLogger("marketplace.auth.lockout")


class LockoutPolicy:
    def __init__(
        self,
        store: CredentialStore,
        threshold: int = 5,
        duration_seconds: int = 15 * 60,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self.threshold = threshold
        self.duration = timedelta(seconds=duration_seconds)
        self._clock = clock

    def record_failure(self, user_id: str) -> int:
        """Count one failed attempt. Returns the consecutive-failure count."""
        count = self._store.increment_failed_attempts(user_id, self.threshold, self._clock() + self.duration)
        if count >= self.threshold:
            logger.warning("User %s locked after %d consecutive failures", user_id, count)
        return count

    def record_success(self, user_id: str) -> None:
        self._store.reset_failed_attempts(user_id)

    def is_locked(self, user_id: str) -> bool:
        user = self._store.get_by_id(user_id)
        return user is not None and self.locked(user)

    def locked(self, user: User) -> bool:
        """Decide lock state for an already-loaded user, clearing an expired lock."""
        if user.locked_until is None:
            return False
        now = self._clock()
        if user.locked_until > now:
            return True
        self._store.clear_expired_lock(user.id, now)
        user.failed_login_attempts = 0
        user.locked_until = None
        return False
