"""
auth/service.py -- Authentication use cases.

AuthService composes the store, hasher, token service, ledger, lockout
policy and audit trail into the operations the HTTP layer exposes:
register, login, refresh, logout, logout_all, change_password, plus the
admin helpers list_users and set_active.

Ordering rules that matter:
  register        -- every input rule runs before the store is touched.
  login           -- the lock check happens BEFORE password verification,
                     so a locked account costs no hashing work.
  refresh         -- two independent checks, in order, each with its own
                     failure: signature/audience (TokenInvalidError), then
                     ledger validity (AUTH_REFRESH_REVOKED).
  change_password -- the current password is a fresh authentication: it
                     honours the lock and a wrong value counts as a failure.

Unknown email and wrong password return the same message and code, and an
unknown email still pays for one password verification [C1].
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from auth.audit import AuditTrail, LoggingAuditSink, StoreAuditSink
from auth.errors import AuthenticationError, ConflictError, NotFoundError, TokenInvalidError, ValidationError
from auth.ledger import RefreshTokenLedger
from auth.lockout import LockoutPolicy
from auth.models import AuthResult, Identity, Role, User
from auth.passwords import PasswordHasher
from auth.store import CredentialStore, normalize_email
from auth.tokens import TokenService, utcnow
from auth.validation import validate_new_password, validate_registration
from core.config import Settings
from core.secrets import SecretProvider, SettingsSecretProvider

logger = logging.getLogger("marketplace.auth")

INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
ACCOUNT_LOCKED = "AUTH_ACCOUNT_LOCKED"
REFRESH_REVOKED = "AUTH_REFRESH_REVOKED"


def _invalid_credentials() -> AuthenticationError:
    return AuthenticationError("Invalid credentials.", code=INVALID_CREDENTIALS)


def _account_locked() -> AuthenticationError:
    return AuthenticationError("Account is temporarily locked.", code=ACCOUNT_LOCKED)


class AuthService:
    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        tokens: TokenService,
        ledger: RefreshTokenLedger,
        lockout: LockoutPolicy,
        audit: AuditTrail,
        block_admin_registration: bool = False,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._tokens = tokens
        self._ledger = ledger
        self._lockout = lockout
        self._audit = audit
        self.block_admin_registration = block_admin_registration

    @property
    def tokens(self) -> TokenService:
        return self._tokens

    @property
    def audit(self) -> AuditTrail:
        return self._audit

    # ------------------------------------------------------------------
    # Register / login
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, role: str | Role, origin: str | None = None) -> AuthResult:
        """Create an account and sign it in.

        Raises ValidationError for bad input (nothing is written) and
        ConflictError if the email is taken.
        """
        email, password, parsed_role = validate_registration(email, password, role)
        if parsed_role is Role.ADMIN and self.block_admin_registration:
            raise ValidationError("Validation failed.", details=["role ADMIN cannot be self-registered"])

        if self._store.get_by_email(email) is not None:
            self._audit.record("register", False, origin=origin, reason="Email already registered")
            raise ConflictError("User already exists with this email.")

        password_hash = self._hasher.hash(password)
        try:
            user = self._store.create_user(User(email=email, role=parsed_role, password_hash=password_hash))
        except IntegrityError as exc:
            # A concurrent registration won the UNIQUE(email) race.
            self._audit.record("register", False, origin=origin, reason="Email already registered")
            raise ConflictError("User already exists with this email.") from exc

        result = self._issue(user)
        self._audit.record("register", True, actor_id=user.id, origin=origin, role=user.role.value)
        logger.info("Registered user %s (%s)", user.id, user.role.value)
        return result

    def login(self, email: str, password: str, origin: str | None = None) -> AuthResult:
        if not isinstance(email, str) or not email.strip() or not isinstance(password, str) or not password:
            raise ValidationError("Email and password are required.")

        user = self._store.get_by_email(normalize_email(email))
        if user is None or not user.is_active:
            self._hasher.dummy_verify(password)
            self._audit.record("login", False, origin=origin, reason="User not found")
            raise _invalid_credentials()

        if self._lockout.locked(user):
            self._audit.record("account_locked", False, actor_id=user.id, origin=origin, resource="login")
            raise _account_locked()

        if not self._hasher.verify(password, user.password_hash):
            failures = self._lockout.record_failure(user.id)
            self._audit.record(
                "login", False, actor_id=user.id, origin=origin, reason="Invalid password", failed_attempts=failures
            )
            if failures >= self._lockout.threshold:
                self._audit.record("lockout", False, actor_id=user.id, origin=origin, failed_attempts=failures)
            raise _invalid_credentials()

        self._lockout.record_success(user.id)
        self._store.update_last_login(user.id)
        user = self._store.get_by_id(user.id) or user
        result = self._issue(user)
        self._audit.record("login", True, actor_id=user.id, origin=origin)
        return result

    # ------------------------------------------------------------------
    # Refresh / logout
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str, origin: str | None = None) -> str:
        """Exchange a live refresh token for a new access token.

        The refresh token itself is not rotated; it stays usable until it
        expires or is revoked.
        """
        if not isinstance(refresh_token, str) or not refresh_token:
            raise ValidationError("Refresh token is required.")

        try:
            claims = self._tokens.verify_refresh_token(refresh_token)
        except TokenInvalidError:
            self._audit.record("refresh", False, origin=origin, reason="Invalid refresh token")
            raise

        if not self._ledger.is_valid(claims.user_id, refresh_token):
            self._audit.record("refresh", False, actor_id=claims.user_id, origin=origin, reason="Revoked or unknown")
            raise AuthenticationError("Invalid or revoked refresh token.", code=REFRESH_REVOKED)

        user = self._store.get_by_id(claims.user_id)
        if user is None or not user.is_active:
            self._audit.record("refresh", False, actor_id=claims.user_id, origin=origin, reason="User not found")
            raise AuthenticationError("User not found.")

        self._audit.record("refresh", True, actor_id=user.id, origin=origin)
        return self._tokens.issue_access_token(user.id, user.email, user.role)

    def logout(self, user_id: str, refresh_token: str | None, origin: str | None = None) -> None:
        """Revoke one refresh token. Missing, unknown or already revoked tokens are fine."""
        if refresh_token:
            self._ledger.revoke(user_id, refresh_token)
        self._audit.record("logout", True, actor_id=user_id, origin=origin)

    def logout_all(self, user_id: str, origin: str | None = None) -> int:
        revoked = self._ledger.revoke_all(user_id)
        self._audit.record("logout_all", True, actor_id=user_id, origin=origin, revoked=revoked)
        return revoked

    # ------------------------------------------------------------------
    # Password
    # ------------------------------------------------------------------

    def change_password(
        self, user_id: str, current_password: str, new_password: str, origin: str | None = None
    ) -> None:
        """Replace the password and sign out every session of this user."""
        new_password = validate_new_password(new_password)
        if not isinstance(current_password, str) or not current_password:
            raise ValidationError("Validation failed.", details=["currentPassword is required"])

        user = self._store.get_by_id(user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("User not found.")

        if self._lockout.locked(user):
            self._audit.record("password_change", False, actor_id=user.id, origin=origin, reason="Account locked")
            raise _account_locked()

        if not self._hasher.verify(current_password, user.password_hash):
            failures = self._lockout.record_failure(user.id)
            self._audit.record(
                "password_change",
                False,
                actor_id=user.id,
                origin=origin,
                reason="Invalid current password",
                failed_attempts=failures,
            )
            raise AuthenticationError("Current password is incorrect.", code=INVALID_CREDENTIALS)

        self._lockout.record_success(user.id)
        self._store.update_password_hash(user.id, self._hasher.hash(new_password))
        revoked = self._ledger.revoke_all(user.id)
        self._audit.record("password_change", True, actor_id=user.id, origin=origin, revoked_sessions=revoked)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def current_user(self, identity: Identity) -> User:
        """Load the user behind a verified access token."""
        user = self._store.get_by_id(identity.user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("User not found.")
        return user

    def get_user(self, user_id: str) -> User:
        user = self._store.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def list_users(self) -> list[User]:
        return self._store.list_users()

    def set_active(self, actor: Identity, user_id: str, active: bool, origin: str | None = None) -> User:
        """Soft-deactivate or reactivate an account. Deactivation signs it out everywhere."""
        if not active and actor.user_id == user_id:
            raise ValidationError("You cannot deactivate your own account.")
        target = self.get_user(user_id)
        self._store.set_active(target.id, active)
        revoked = 0 if active else self._ledger.revoke_all(target.id)
        self._audit.record(
            "deactivate" if not active else "reactivate",
            True,
            actor_id=actor.user_id,
            origin=origin,
            resource=f"user:{target.id}",
            revoked_sessions=revoked,
        )
        return self.get_user(target.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue(self, user: User) -> AuthResult:
        access_token = self._tokens.issue_access_token(user.id, user.email, user.role)
        refresh_token = self._tokens.issue_refresh_token(user.id)
        self._ledger.record(user.id, refresh_token, self._tokens.expires_at(refresh_token))
        return AuthResult(user=user, access_token=access_token, refresh_token=refresh_token)


def build_auth_service(
    settings: Settings,
    store: CredentialStore,
    secrets: SecretProvider | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> AuthService:
    """Wire every auth component from Settings around an existing store."""
    secrets = secrets or SettingsSecretProvider(settings)
    tokens = TokenService(
        secrets,
        access_ttl_seconds=settings.access_token_ttl_seconds,
        refresh_ttl_seconds=settings.refresh_token_ttl_seconds,
        clock=clock,
    )
    return AuthService(
        store=store,
        hasher=PasswordHasher(scheme=settings.password_scheme, iterations=settings.password_iterations),
        tokens=tokens,
        ledger=RefreshTokenLedger(store, clock=clock),
        lockout=LockoutPolicy(
            store,
            threshold=settings.lockout_threshold,
            duration_seconds=settings.lockout_duration_seconds,
            clock=clock,
        ),
        audit=AuditTrail([LoggingAuditSink(), StoreAuditSink(store)], clock=clock),
        block_admin_registration=settings.block_admin_registration,
    )
