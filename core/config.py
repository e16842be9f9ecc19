"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the marketplace auth service happen here.
No module should call os.getenv() or os.environ.get() directly -- import
get_settings() instead, or better, receive the values at construction time.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Used to refuse the well-known development signing secret when
      running in production mode.

Security notes:
  [M6] JWT_SECRET shorter than 32 chars is rejected outright. HS256 signing
       relies on key entropy -- a short key weakens every issued token.

  [M7] In production mode (DEBUG not set or false), running with
       DEV_JWT_SECRET is a hard startup failure. Anyone who has read this file
       could otherwise mint valid tokens.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("marketplace.config")

# Well-known development default. Safe only with DEBUG=true.
DEV_JWT_SECRET = "marketplace-dev-secret-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "sqlite:///marketplace_auth.db"
    # Upper bound for any single store call (connect, pool checkout, lock wait).
    store_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    jwt_secret: str = DEV_JWT_SECRET
    access_token_ttl_seconds: int = 24 * 3600
    refresh_token_ttl_seconds: int = 7 * 24 * 3600

    # ------------------------------------------------------------------
    # Passwords and lockout
    # ------------------------------------------------------------------

    password_scheme: Literal["pbkdf2_sha512", "bcrypt"] = "pbkdf2_sha512"
    password_iterations: int = 100_000
    lockout_threshold: int = 5
    lockout_duration_seconds: int = 15 * 60

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    # Any role may self-register. Set BLOCK_ADMIN_REGISTRATION=true to refuse
    # ADMIN sign-up and bootstrap admins with `python main.py create-user`.
    block_admin_registration: bool = False

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("access_token_ttl_seconds", "refresh_token_ttl_seconds", "lockout_duration_seconds")
    @classmethod
    def validate_positive_duration(cls, v: int) -> int:
        if v < 1:
            raise ValueError("durations must be at least 1 second")
        return v

    @field_validator("lockout_threshold")
    @classmethod
    def validate_lockout_threshold(cls, v: int) -> int:
        if v < 1 or v > 100:
            raise ValueError("LOCKOUT_THRESHOLD must be between 1 and 100")
        return v

    @field_validator("password_iterations")
    @classmethod
    def validate_password_iterations(cls, v: int) -> int:
        if v < 1000:
            raise ValueError("PASSWORD_ITERATIONS must be at least 1000")
        return v

    @field_validator("store_timeout_seconds")
    @classmethod
    def validate_store_timeout(cls, v: float) -> float:
        if v <= 0 or v > 60:
            raise ValueError("STORE_TIMEOUT_SECONDS must be greater than 0 and at most 60")
        return v

    @model_validator(mode="after")
    def validate_jwt_secret(self) -> "Settings":
        """Enforce JWT_SECRET policy [M6][M7].

        Dev mode (DEBUG=true): the development default is accepted with a
            warning so a fresh checkout runs without any configuration.

        Production mode (DEBUG=false or not set): refuse to start with the
            development default.

        Both modes: reject keys shorter than 32 characters.
        """
        if self.jwt_secret == DEV_JWT_SECRET:
            if self.debug:
                logger.warning("WARNING: Using the development JWT_SECRET. Never do this in production.")
            else:
                raise ValueError(
                    "JWT_SECRET is set to the development default in production mode. "
                    "Set JWT_SECRET in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.jwt_secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
