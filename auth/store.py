"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_user / _row_to_refresh_token are the mappers. Services never touch
SQL directly, and nothing outside auth/service.py (via the ledger and the
lockout policy) mutates these rows.

Security:
  All queries use bound parameters. No f-strings in SQL.

  refresh_tokens holds SHA-256 digests only. The raw token never reaches
  this module.

Concurrency:
  Every counter increment, lock set, lazy lock clear and revocation flip is
  ONE UPDATE with its guard in the WHERE clause (or a CASE in SET). Two
  parallel wrong-password requests both increment; neither overwrites the
  other's count. There is no read-modify-write in application code.

Timeouts:
  The engine is built with a bounded connect / lock-wait / pool-checkout
  timeout. OperationalError and pool TimeoutError are re-raised as
  ServiceUnavailableError so callers fail fast instead of hanging.

Timestamps are stored as fixed-width UTC ISO-8601 strings so lexical order
equals chronological order on every backend.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, case, create_engine, event, select, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.errors import ServiceUnavailableError
from auth.models import AuditEvent, RefreshTokenRecord, Role, User

logger = logging.getLogger("marketplace.store")

_DEFAULT_DB_URL = "sqlite:///marketplace_auth.db"
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(16), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("failed_login_attempts", Integer, nullable=False, server_default="0"),
    Column("locked_until", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

_refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(36), nullable=False),
    Column("token_hash", String(64), nullable=False),  # SHA-256 hex
    Column("expires_at", String(32), nullable=False),
    Column("revoked", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Index("ix_refresh_tokens_user_hash", "user_id", "token_hash"),
)

_audit_logs = Table(
    "audit_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(36), nullable=False),  # actor id or "unknown"
    Column("action", String(50), nullable=False),
    Column("resource", String(255)),
    Column("ip_address", String(45)),
    Column("success", Integer, nullable=False),
    Column("detail", Text),  # JSON object
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases ignore it.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_db_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def from_db_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _now_db() -> str:
    return to_db_time(datetime.now(timezone.utc))


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for User, RefreshTokenRecord and AuditEvent rows.

    Usage:
        store = CredentialStore("sqlite:///marketplace_auth.db", timeout_seconds=5)
        user = store.create_user(User(email="a@b.io", role=Role.BUYER, password_hash=h))
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, timeout_seconds: float = 5.0) -> None:
        engine_kwargs: dict = {}
        if db_url.startswith("sqlite"):
            # timeout = how long to wait on SQLite's database lock.
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": timeout_seconds}
        else:
            engine_kwargs["connect_args"] = {"connect_timeout": max(1, int(timeout_seconds))}
            engine_kwargs["pool_timeout"] = timeout_seconds
            engine_kwargs["pool_pre_ping"] = True
        self.engine: Engine = create_engine(db_url, **engine_kwargs)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    @contextmanager
    def _begin(self, operation: str) -> Iterator[Connection]:
        """Open a transaction; map store outages and timeouts to ServiceUnavailableError."""
        try:
            with self.engine.begin() as conn:
                yield conn
        except (OperationalError, PoolTimeoutError) as exc:
            logger.error("Store operation %s failed: %s", operation, exc)
            raise ServiceUnavailableError() from exc

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self._begin("ping") as conn:
                conn.execute(text("SELECT 1"))
        except ServiceUnavailableError:
            return False
        return True

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> User:
        """Insert a new user and return it with id and timestamps filled in.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        The service maps that to ConflictError -- it is also how a
        concurrent duplicate registration surfaces.
        """
        now = _now_db()
        user_id = str(uuid.uuid4())
        with self._begin("create_user") as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=normalize_email(user.email),
                    password_hash=user.password_hash,
                    role=Role.parse(user.role).value,
                    is_active=1 if user.is_active else 0,
                    failed_login_attempts=0,
                    created_at=now,
                    updated_at=now,
                )
            )
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row)

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self._begin("get_by_email") as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with self._begin("get_by_id") as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email."""
        with self._begin("list_users") as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_password_hash(self, user_id: str, password_hash: str) -> bool:
        with self._begin("update_password_hash") as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(password_hash=password_hash, updated_at=_now_db())
            )
        return result.rowcount > 0

    def set_active(self, user_id: str, active: bool) -> bool:
        """Soft-(de)activate a user. Rows are never deleted."""
        with self._begin("set_active") as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(is_active=1 if active else 0, updated_at=_now_db())
            )
        return result.rowcount > 0

    def update_last_login(self, user_id: str) -> None:
        with self._begin("update_last_login") as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_db()))

    # ------------------------------------------------------------------
    # Lockout counters
    # ------------------------------------------------------------------

    def increment_failed_attempts(self, user_id: str, threshold: int, lock_until: datetime) -> int:
        """Atomically bump the failure counter; set locked_until when it reaches threshold.

        Returns the counter value after the increment (0 if the user is gone).
        """
        new_count = _users.c.failed_login_attempts + 1
        with self._begin("increment_failed_attempts") as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(
                    failed_login_attempts=new_count,
                    locked_until=case(
                        (new_count >= threshold, to_db_time(lock_until)),
                        else_=_users.c.locked_until,
                    ),
                )
            )
            count = conn.execute(
                select(_users.c.failed_login_attempts).where(_users.c.id == user_id)
            ).scalar()
        return count or 0

    def reset_failed_attempts(self, user_id: str) -> None:
        with self._begin("reset_failed_attempts") as conn:
            conn.execute(
                _users.update().where(_users.c.id == user_id).values(failed_login_attempts=0, locked_until=None)
            )

    def clear_expired_lock(self, user_id: str, now: datetime) -> bool:
        """Reset counter and lock only if the lock has expired as of now.

        Guarded so a lock set by a concurrent request after `now` survives.
        """
        with self._begin("clear_expired_lock") as conn:
            result = conn.execute(
                _users.update()
                .where(
                    (_users.c.id == user_id)
                    & (_users.c.locked_until.is_not(None))
                    & (_users.c.locked_until <= to_db_time(now))
                )
                .values(failed_login_attempts=0, locked_until=None)
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def insert_refresh_token(self, record: RefreshTokenRecord) -> int:
        with self._begin("insert_refresh_token") as conn:
            result = conn.execute(
                _refresh_tokens.insert().values(
                    user_id=record.user_id,
                    token_hash=record.token_hash,
                    expires_at=to_db_time(record.expires_at),
                    revoked=0,
                    created_at=_now_db(),
                )
            )
        return result.inserted_primary_key[0]

    def find_usable_refresh_token(self, user_id: str, token_hash: str, now: datetime) -> RefreshTokenRecord | None:
        """Return the matching, unrevoked, unexpired record or None."""
        with self._begin("find_usable_refresh_token") as conn:
            row = conn.execute(
                _refresh_tokens.select().where(
                    (_refresh_tokens.c.user_id == user_id)
                    & (_refresh_tokens.c.token_hash == token_hash)
                    & (_refresh_tokens.c.revoked == 0)
                    & (_refresh_tokens.c.expires_at > to_db_time(now))
                )
            ).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def revoke_refresh_token(self, user_id: str, token_hash: str) -> int:
        """Flip revoked on the matching token. Returns rows changed (0 if unknown or already revoked)."""
        with self._begin("revoke_refresh_token") as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where(
                    (_refresh_tokens.c.user_id == user_id)
                    & (_refresh_tokens.c.token_hash == token_hash)
                    & (_refresh_tokens.c.revoked == 0)
                )
                .values(revoked=1)
            )
        return result.rowcount

    def revoke_all_refresh_tokens(self, user_id: str) -> int:
        with self._begin("revoke_all_refresh_tokens") as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.user_id == user_id) & (_refresh_tokens.c.revoked == 0))
                .values(revoked=1)
            )
        return result.rowcount

    def purge_expired_refresh_tokens(self, now: datetime) -> int:
        with self._begin("purge_expired_refresh_tokens") as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at <= to_db_time(now)))
        return result.rowcount

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def append_audit(self, event: AuditEvent) -> None:
        timestamp = event.timestamp or datetime.now(timezone.utc)
        with self._begin("append_audit") as conn:
            conn.execute(
                _audit_logs.insert().values(
                    user_id=event.actor_id or "unknown",
                    action=event.action,
                    resource=event.resource,
                    ip_address=event.origin,
                    success=1 if event.success else 0,
                    detail=json.dumps(event.detail, default=str) if event.detail else None,
                    created_at=to_db_time(timestamp),
                )
            )

    def list_audit(self, user_id: str | None = None, limit: int = 100) -> list[AuditEvent]:
        """Return the newest audit rows, optionally for one actor."""
        query = _audit_logs.select().order_by(_audit_logs.c.id.desc()).limit(limit)
        if user_id is not None:
            query = query.where(_audit_logs.c.user_id == user_id)
        with self._begin("list_audit") as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_audit(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        role=Role.parse(row.role),
        is_active=bool(row.is_active),
        failed_login_attempts=row.failed_login_attempts or 0,
        locked_until=from_db_time(row.locked_until),
        created_at=from_db_time(row.created_at),
        updated_at=from_db_time(row.updated_at),
        last_login=from_db_time(row.last_login),
    )


def _row_to_refresh_token(row) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=from_db_time(row.expires_at),
        revoked=bool(row.revoked),
        created_at=from_db_time(row.created_at),
    )


def _row_to_audit(row) -> AuditEvent:
    return AuditEvent(
        action=row.action,
        success=bool(row.success),
        actor_id=row.user_id,
        origin=row.ip_address,
        resource=row.resource,
        detail=json.loads(row.detail) if row.detail else {},
        timestamp=from_db_time(row.created_at),
    )
