"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
domain shape; the store, services and routes do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Closed set of marketplace roles. Immutable on a user once created."""

    ADMIN = "ADMIN"
    SELLER = "SELLER"
    BUYER = "BUYER"

    @classmethod
    def parse(cls, value: object) -> Role:
        """Return the Role for value or raise ValueError.

        Accepts an existing Role or its exact upper-case string form. Edge
        code (request bodies, token claims, CLI args) calls this once; all
        internal code then works with the enum.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        raise ValueError(f"role must be one of: {', '.join(r.value for r in cls)}")


@dataclass
class User:
    """A marketplace identity.

    email is stored lower-cased; lookups normalize the same way so the
    UNIQUE constraint on email is effectively case-insensitive.

    failed_login_attempts / locked_until are owned by the lockout policy and
    only ever change through single guarded UPDATE statements in the store.
    """

    email: str
    role: Role
    password_hash: str
    id: str | None = None
    is_active: bool = True
    failed_login_attempts: int = 0
    locked_until: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login: datetime | None = None


@dataclass
class RefreshTokenRecord:
    """One issued refresh token.

    token_hash is SHA-256 of the raw token. The raw value is returned to the
    client once and never persisted, so a leaked row cannot be replayed.
    """

    user_id: str
    token_hash: str
    expires_at: datetime
    id: int | None = None
    revoked: bool = False
    created_at: datetime | None = None


@dataclass(frozen=True)
class Identity:
    """Decoded, verified access-token claims."""

    user_id: str
    email: str
    role: Role


@dataclass(frozen=True)
class RefreshClaims:
    """Decoded, verified refresh-token claims."""

    user_id: str
    expires_at: datetime


@dataclass
class AuditEvent:
    """A security-relevant action. Append-only once emitted."""

    action: str  # "login", "register", "lockout", "authz_denied", ...
    success: bool
    actor_id: str = "unknown"
    origin: str | None = None
    resource: str | None = None
    detail: dict = field(default_factory=dict)
    timestamp: datetime | None = None


@dataclass(frozen=True)
class AuthResult:
    """What register and login hand back to the HTTP layer."""

    user: User
    access_token: str
    refresh_token: str
