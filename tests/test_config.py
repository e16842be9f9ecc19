"""
tests/test_config.py -- Settings validation and secret providers.

Covers:
  - [M7] development JWT secret refused in production mode, accepted in debug
  - [M6] short JWT secrets refused in every mode
  - defaults for token lifetimes and lockout policy
  - secret providers return the signing key and reject unknown names
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import DEV_JWT_SECRET, Settings
from core.secrets import JWT_SIGNING_KEY, SettingsSecretProvider, StaticSecretProvider

STRONG_SECRET = "s" * 48


class TestJwtSecretPolicy:
    def test_dev_secret_rejected_in_production(self):
        with pytest.raises(ValidationError, match="development default"):
            Settings(debug=False, jwt_secret=DEV_JWT_SECRET)

    def test_dev_secret_allowed_in_debug(self):
        assert Settings(debug=True, jwt_secret=DEV_JWT_SECRET).jwt_secret == DEV_JWT_SECRET

    @pytest.mark.parametrize("debug", [True, False])
    def test_short_secret_rejected(self, debug):
        with pytest.raises(ValidationError, match="at least 32 characters"):
            Settings(debug=debug, jwt_secret="too-short")

    def test_strong_secret_accepted_in_production(self):
        assert Settings(debug=False, jwt_secret=STRONG_SECRET).jwt_secret == STRONG_SECRET


class TestDefaults:
    def test_token_and_lockout_defaults(self):
        settings = Settings(debug=True)
        assert settings.access_token_ttl_seconds == 24 * 3600
        assert settings.refresh_token_ttl_seconds == 7 * 24 * 3600
        assert settings.lockout_threshold == 5
        assert settings.lockout_duration_seconds == 15 * 60
        assert settings.password_scheme == "pbkdf2_sha512"
        assert settings.block_admin_registration is False

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("LOCKOUT_THRESHOLD", "3")
        monkeypatch.setenv("ACCESS_TOKEN_TTL_SECONDS", "900")
        settings = Settings(debug=True)
        assert settings.lockout_threshold == 3
        assert settings.access_token_ttl_seconds == 900

    @pytest.mark.parametrize(
        "field,value",
        [
            ("lockout_threshold", 0),
            ("access_token_ttl_seconds", 0),
            ("password_iterations", 10),
            ("store_timeout_seconds", 0),
            ("password_scheme", "md5"),
        ],
    )
    def test_out_of_range_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            Settings(debug=True, **{field: value})


class TestSecretProviders:
    def test_settings_provider_serves_jwt_secret(self):
        provider = SettingsSecretProvider(Settings(debug=True, jwt_secret=STRONG_SECRET))
        assert provider.get_secret(JWT_SIGNING_KEY) == STRONG_SECRET

    def test_unknown_secret_name(self):
        with pytest.raises(KeyError):
            StaticSecretProvider({JWT_SIGNING_KEY: STRONG_SECRET}).get_secret("database_password")
