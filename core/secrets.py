"""
core/secrets.py -- Secret retrieval interface.

The auth core never reads key material from module globals. Anything that
needs a secret (the token signer today) receives a SecretProvider at
construction time. Deployments backed by an external vault implement the
same one-method protocol; tests use StaticSecretProvider with fixed values.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

from typing import Protocol

from core.config import Settings

JWT_SIGNING_KEY = "jwt_signing_key"


class SecretProvider(Protocol):
    def get_secret(self, name: str) -> str: ...


class SettingsSecretProvider:
    """Serve secrets from validated application Settings."""

    def __init__(self, settings: Settings) -> None:
        self._values = {JWT_SIGNING_KEY: settings.jwt_secret}

    def get_secret(self, name: str) -> str:
        try:
            return self._values[name]
        except KeyError:
            raise KeyError(f"Unknown secret: {name!r}") from None


class StaticSecretProvider:
    """Fixed in-memory secrets. Intended for tests and local tooling."""

    def __init__(self, values: dict[str, str]) -> None:
        self._values = dict(values)

    def get_secret(self, name: str) -> str:
        try:
            return self._values[name]
        except KeyError:
            raise KeyError(f"Unknown secret: {name!r}") from None
