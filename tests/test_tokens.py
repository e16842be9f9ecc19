"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - access token round trip carries user id, email and role
  - expired access token -> TokenExpiredError; expired refresh -> TokenInvalidError
  - access and refresh tokens are not interchangeable (audience check)
  - tampered payload and foreign signing key -> TokenInvalidError
  - two tokens minted in the same instant differ (jti)
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from jose import jwt

from auth.errors import TokenExpiredError, TokenInvalidError
from auth.models import Role
from auth.tokens import ACCESS_AUDIENCE, ALGORITHM, ISSUER, TokenService, utcnow
from core.secrets import JWT_SIGNING_KEY, StaticSecretProvider

KEY = "k" * 40


def _service(key: str = KEY, clock=utcnow, **kwargs) -> TokenService:
    return TokenService(StaticSecretProvider({JWT_SIGNING_KEY: key}), clock=clock, **kwargs)


def _past(hours: float):
    return lambda: utcnow() - timedelta(hours=hours)


class TestAccessTokens:
    def test_round_trip(self) -> None:
        tokens = _service()
        identity = tokens.verify_access_token(tokens.issue_access_token("user-1", "a@example.com", Role.SELLER))
        assert identity.user_id == "user-1"
        assert identity.email == "a@example.com"
        assert identity.role is Role.SELLER

    def test_claims_include_issuer_audience_and_jti(self) -> None:
        token = _service().issue_access_token("user-1", "a@example.com", Role.BUYER)
        claims = jwt.get_unverified_claims(token)
        assert claims["iss"] == ISSUER
        assert claims["aud"] == ACCESS_AUDIENCE
        assert claims["role"] == "BUYER"
        assert claims["jti"]

    def test_default_lifetime_is_24_hours(self) -> None:
        claims = jwt.get_unverified_claims(_service().issue_access_token("u", "a@example.com", Role.BUYER))
        assert claims["exp"] - claims["iat"] == 24 * 3600

    def test_expired_token_raises_expired(self) -> None:
        """A token minted 25 hours ago with a 24 hour lifetime has expired."""
        token = _service(clock=_past(25)).issue_access_token("user-1", "a@example.com", Role.BUYER)
        with pytest.raises(TokenExpiredError) as exc_info:
            _service().verify_access_token(token)
        assert exc_info.value.code == "AUTH_TOKEN_EXPIRED"

    def test_tampered_payload_is_invalid(self) -> None:
        token = _service().issue_access_token("user-1", "a@example.com", Role.BUYER)
        header, payload, signature = token.split(".")
        forged = jwt.encode(
            {"sub": "user-1", "email": "a@example.com", "role": "ADMIN", "iss": ISSUER, "aud": ACCESS_AUDIENCE},
            "another-key" * 4,
            algorithm=ALGORITHM,
        ).split(".")[1]
        with pytest.raises(TokenInvalidError):
            _service().verify_access_token(f"{header}.{forged}.{signature}")

    def test_foreign_key_is_invalid(self) -> None:
        token = _service(key="x" * 40).issue_access_token("user-1", "a@example.com", Role.BUYER)
        with pytest.raises(TokenInvalidError):
            _service().verify_access_token(token)

    def test_garbage_is_invalid(self) -> None:
        with pytest.raises(TokenInvalidError) as exc_info:
            _service().verify_access_token("not.a.jwt")
        assert exc_info.value.code == "AUTH_TOKEN_INVALID"

    def test_unknown_role_claim_is_invalid(self) -> None:
        now = utcnow()
        token = jwt.encode(
            {
                "sub": "user-1",
                "email": "a@example.com",
                "role": "SUPERUSER",
                "iss": ISSUER,
                "aud": ACCESS_AUDIENCE,
                "iat": now,
                "exp": now + timedelta(hours=1),
            },
            KEY,
            algorithm=ALGORITHM,
        )
        with pytest.raises(TokenInvalidError):
            _service().verify_access_token(token)

    def test_same_instant_tokens_differ(self) -> None:
        tokens = _service()
        assert tokens.issue_access_token("u", "a@example.com", Role.BUYER) != tokens.issue_access_token(
            "u", "a@example.com", Role.BUYER
        )


class TestRefreshTokens:
    def test_round_trip(self) -> None:
        tokens = _service()
        token = tokens.issue_refresh_token("user-1")
        claims = tokens.verify_refresh_token(token)
        assert claims.user_id == "user-1"
        assert claims.expires_at == tokens.expires_at(token)

    def test_default_lifetime_is_7_days(self) -> None:
        claims = jwt.get_unverified_claims(_service().issue_refresh_token("u"))
        assert claims["exp"] - claims["iat"] == 7 * 24 * 3600

    def test_expired_refresh_is_invalid(self) -> None:
        token = _service(clock=_past(24 * 8)).issue_refresh_token("user-1")
        with pytest.raises(TokenInvalidError):
            _service().verify_refresh_token(token)

    def test_refresh_token_rejected_as_access_token(self) -> None:
        tokens = _service()
        with pytest.raises(TokenInvalidError):
            tokens.verify_access_token(tokens.issue_refresh_token("user-1"))

    def test_access_token_rejected_as_refresh_token(self) -> None:
        tokens = _service()
        with pytest.raises(TokenInvalidError):
            tokens.verify_refresh_token(tokens.issue_access_token("user-1", "a@example.com", Role.BUYER))

    def test_foreign_key_is_invalid(self) -> None:
        token = _service(key="x" * 40).issue_refresh_token("user-1")
        with pytest.raises(TokenInvalidError):
            _service().verify_refresh_token(token)
