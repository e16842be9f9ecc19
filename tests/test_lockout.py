"""
tests/test_lockout.py -- Unit tests for auth/lockout.py and its store counters.

Covers the per-user state machine:
  - failures below the threshold count but do not lock
  - the threshold-th failure sets locked_until = now + duration
  - the lock clears lazily once now >= locked_until, counter back to 0
  - a success resets the counter
  - the threshold and duration come from configuration
  - parallel failures against one account are all counted
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from auth.lockout import LockoutPolicy
from auth.models import Role, User
from auth.store import CredentialStore


def _user(store, email: str = "lock@example.com") -> User:
    return store.create_user(User(email=email, role=Role.BUYER, password_hash="x:y"))


class TestLockoutStateMachine:
    def test_failures_below_threshold_do_not_lock(self, store, clock):
        policy = LockoutPolicy(store, clock=clock)
        user = _user(store)
        for expected in range(1, 5):
            assert policy.record_failure(user.id) == expected
        assert policy.is_locked(user.id) is False
        assert store.get_by_id(user.id).locked_until is None

    def test_fifth_failure_locks_for_fifteen_minutes(self, store, clock):
        policy = LockoutPolicy(store, clock=clock)
        user = _user(store)
        for _ in range(5):
            policy.record_failure(user.id)
        stored = store.get_by_id(user.id)
        assert stored.failed_login_attempts == 5
        assert abs(stored.locked_until - (clock() + timedelta(minutes=15))) < timedelta(milliseconds=1)
        assert policy.is_locked(user.id) is True

    def test_still_locked_just_before_expiry(self, store, clock):
        policy = LockoutPolicy(store, clock=clock)
        user = _user(store)
        for _ in range(5):
            policy.record_failure(user.id)
        clock.advance(15 * 60 - 1)
        assert policy.is_locked(user.id) is True

    def test_lock_clears_lazily_after_window(self, store, clock):
        """Once the window passes the next check unlocks and resets the counter."""
        policy = LockoutPolicy(store, clock=clock)
        user = _user(store)
        for _ in range(5):
            policy.record_failure(user.id)
        clock.advance(15 * 60)
        assert policy.is_locked(user.id) is False
        stored = store.get_by_id(user.id)
        assert stored.failed_login_attempts == 0
        assert stored.locked_until is None

    def test_success_resets_counter(self, store, clock):
        policy = LockoutPolicy(store, clock=clock)
        user = _user(store)
        for _ in range(3):
            policy.record_failure(user.id)
        policy.record_success(user.id)
        assert store.get_by_id(user.id).failed_login_attempts == 0
        # The count starts over: four more failures still do not lock.
        for _ in range(4):
            policy.record_failure(user.id)
        assert policy.is_locked(user.id) is False

    def test_unknown_user_is_not_locked(self, store, clock):
        assert LockoutPolicy(store, clock=clock).is_locked("no-such-user") is False


class TestLockoutConfiguration:
    def test_custom_threshold_and_duration(self, store, clock):
        policy = LockoutPolicy(store, threshold=2, duration_seconds=60, clock=clock)
        user = _user(store)
        policy.record_failure(user.id)
        assert policy.is_locked(user.id) is False
        policy.record_failure(user.id)
        assert policy.is_locked(user.id) is True
        clock.advance(60)
        assert policy.is_locked(user.id) is False

    def test_failures_only_affect_their_own_user(self, store, clock):
        policy = LockoutPolicy(store, threshold=2, clock=clock)
        alice = _user(store, "alice@example.com")
        bob = _user(store, "bob@example.com")
        policy.record_failure(alice.id)
        policy.record_failure(alice.id)
        assert policy.is_locked(alice.id) is True
        assert policy.is_locked(bob.id) is False
        assert store.get_by_id(bob.id).failed_login_attempts == 0


class TestLockoutConcurrency:
    def test_parallel_failures_are_not_undercounted(self, tmp_path):
        """Eight threads each record ten failures; every one of the 80 lands."""
        store = CredentialStore(f"sqlite:///{tmp_path / 'lockout.db'}", timeout_seconds=30)
        try:
            policy = LockoutPolicy(store, threshold=100)
            user = _user(store)

            def fail_ten_times() -> None:
                for _ in range(10):
                    policy.record_failure(user.id)

            with ThreadPoolExecutor(max_workers=8) as pool:
                futures = [pool.submit(fail_ten_times) for _ in range(8)]
            for future in futures:
                future.result()

            stored = store.get_by_id(user.id)
            assert stored.failed_login_attempts == 80
            assert stored.locked_until is None
        finally:
            store.close()
