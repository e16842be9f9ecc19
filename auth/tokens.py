"""
auth/tokens.py -- Signed access and refresh tokens.

Security design decisions:
  JWT: python-jose with HS256. The signing key comes from an injected
       SecretProvider, never from a module global, so tests run with a fixed
       key and deployments can source it from a vault.

  Audiences: access tokens are minted for "marketplace-api", refresh tokens
       for "marketplace-refresh". Both carry issuer "marketplace". Decoding
       always passes issuer AND audience, so a correctly signed refresh token
       presented as an access token (or vice versa) is rejected.

  Errors: an expired access token raises TokenExpiredError (the client
       should refresh); anything else -- bad signature, malformed, wrong
       issuer or audience, missing claims -- raises TokenInvalidError (the
       client must log in again). Refresh-token failures are always
       TokenInvalidError.

  jti: every token carries a random id so two tokens issued in the same
       second for the same user are still distinct (and hash differently in
       the refresh ledger).

  No revocation here. Access tokens are trusted for their whole lifetime;
  refresh-token revocation lives in auth/ledger.py.

Layer rule: no imports from api/. core/ may be imported (it is the kernel).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import TokenExpiredError, TokenInvalidError
from auth.models import Identity, RefreshClaims, Role
from core.secrets import JWT_SIGNING_KEY, SecretProvider

logger = logging.getLogger("marketplace.auth.tokens")

ALGORITHM = "HS256"
ISSUER = "marketplace"
ACCESS_AUDIENCE = "marketplace-api"
REFRESH_AUDIENCE = "marketplace-refresh"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Issue and verify stateless tokens.

    Args:
        secrets:             Provider for the HS256 signing key.
        access_ttl_seconds:  Access-token lifetime (default 24h).
        refresh_ttl_seconds: Refresh-token lifetime (default 7 days).
        clock:               Returns the current UTC time; used for iat/exp.
    """

    def __init__(
        self,
        secrets: SecretProvider,
        access_ttl_seconds: int = 24 * 3600,
        refresh_ttl_seconds: int = 7 * 24 * 3600,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._secrets = secrets
        self.access_ttl = timedelta(seconds=access_ttl_seconds)
        self.refresh_ttl = timedelta(seconds=refresh_ttl_seconds)
        self._clock = clock

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access_token(self, user_id: str, email: str, role: Role) -> str:
        now = self._clock()
        payload = {
            "sub": str(user_id),
            "email": email,
            "role": Role.parse(role).value,
            "iss": ISSUER,
            "aud": ACCESS_AUDIENCE,
            "iat": now,
            "exp": now + self.access_ttl,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._key(), algorithm=ALGORITHM)

    def issue_refresh_token(self, user_id: str) -> str:
        now = self._clock()
        payload = {
            "sub": str(user_id),
            "iss": ISSUER,
            "aud": REFRESH_AUDIENCE,
            "iat": now,
            "exp": now + self.refresh_ttl,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._key(), algorithm=ALGORITHM)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_access_token(self, token: str) -> Identity:
        """Return the identity the token asserts.

        Raises TokenExpiredError or TokenInvalidError.
        """
        try:
            payload = jwt.decode(token, self._key(), algorithms=[ALGORITHM], audience=ACCESS_AUDIENCE, issuer=ISSUER)
        except ExpiredSignatureError as exc:
            raise TokenExpiredError() from exc
        except JWTError as exc:
            raise TokenInvalidError() from exc
        try:
            return Identity(
                user_id=_required(payload, "sub"),
                email=_required(payload, "email"),
                role=Role.parse(payload.get("role")),
            )
        except ValueError as exc:
            logger.warning("Access token with well-formed signature but bad claims: %s", exc)
            raise TokenInvalidError() from exc

    def verify_refresh_token(self, token: str) -> RefreshClaims:
        """Return the refresh-token claims. Any failure, expiry included, is TokenInvalidError."""
        try:
            payload = jwt.decode(token, self._key(), algorithms=[ALGORITHM], audience=REFRESH_AUDIENCE, issuer=ISSUER)
            return RefreshClaims(
                user_id=_required(payload, "sub"),
                expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
            )
        except (JWTError, KeyError, TypeError, ValueError) as exc:
            raise TokenInvalidError("Invalid refresh token.") from exc

    def expires_at(self, token: str) -> datetime:
        """Read exp from a token this service just issued, without verifying it."""
        claims = jwt.get_unverified_claims(token)
        return datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)

    def _key(self) -> str:
        return self._secrets.get_secret(JWT_SIGNING_KEY)


def _required(payload: dict, claim: str) -> str:
    value = payload.get(claim)
    if not isinstance(value, str) or not value:
        raise ValueError(f"missing claim: {claim}")
    return value
