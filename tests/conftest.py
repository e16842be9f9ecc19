"""
tests/conftest.py -- Shared test fixtures for the marketplace auth tests.

This module provides:
  - clock:       a settable UTC clock injected into tokens, ledger, lockout, audit
  - store:       an isolated CredentialStore per test
  - service:     a fully wired AuthService over that store and clock
  - unreachable_engine: an engine that cannot connect, swapped into a store
                 to simulate an outage
  - api_client:  TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and RATE_LIMIT_ENABLED must be set before any api/auth/core import:
get_settings() is cached on first call and the limiter reads it at import.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

# CRITICAL: Set before any api/auth/core import so get_settings() accepts the
# development JWT secret and the login rate limit does not trip mid-test.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi import APIRouter, Depends
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from api.main import app
from auth.dependencies import require_permission, require_roles
from auth.models import Identity, Role, User
from auth.passwords import PasswordHasher
from auth.service import AuthService, build_auth_service
from auth.store import CredentialStore
from auth.tokens import utcnow
from core.config import Settings
from core.secrets import JWT_SIGNING_KEY, StaticSecretProvider

TEST_SECRET = "test-signing-key-0123456789-abcdefghijklmnop"
TEST_PASSWORD = "Secret123"

# ---------------------------------------------------------------------------
# Protected sample routes
#
# The auth service itself owns no product or order endpoints. These stand in
# for a downstream service so RBAC guards can be exercised over HTTP.
# ---------------------------------------------------------------------------

sample_router = APIRouter()


@sample_router.post("/api/v1/sample/products")
def create_product(identity: Identity = Depends(require_roles(Role.SELLER))) -> dict:
    return {"createdBy": identity.user_id}


@sample_router.post("/api/v1/sample/orders")
def create_order(identity: Identity = Depends(require_permission("order:create"))) -> dict:
    return {"createdBy": identity.user_id}


@sample_router.get("/api/v1/sample/crash")
def crash() -> dict:
    raise RuntimeError("sample route failure")


if not any(getattr(r, "path", None) == "/api/v1/sample/products" for r in app.routes):
    app.include_router(sample_router)


# ---------------------------------------------------------------------------
# Clock, settings, store, service
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable UTC clock that only moves when told to.

    Starts at the real current time: python-jose checks exp against the
    wall clock, so tokens minted far from "now" would be rejected.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_settings(**overrides) -> Settings:
    values = {
        "debug": True,
        "jwt_secret": TEST_SECRET,
        "password_iterations": 1000,
        "rate_limit_enabled": False,
    }
    values.update(overrides)
    return Settings(**values)


def make_store(db_suffix: str) -> CredentialStore:
    """Create an isolated named shared-memory store.

    Args:
        db_suffix: Unique string appended to the DB name so tests and
                   modules never share rows.
    """
    return CredentialStore(db_url=f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def make_service(store: CredentialStore, clock=utcnow, **settings_overrides) -> AuthService:
    return build_auth_service(
        make_settings(**settings_overrides),
        store,
        secrets=StaticSecretProvider({JWT_SIGNING_KEY: TEST_SECRET}),
        clock=clock,
    )


@pytest.fixture(scope="session")
def signing_secrets() -> StaticSecretProvider:
    """The key every test service signs with, for minting tokens outside a service."""
    return StaticSecretProvider({JWT_SIGNING_KEY: TEST_SECRET})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    s = make_store(uuid.uuid4().hex)
    yield s
    s.close()


@pytest.fixture
def unreachable_engine() -> Generator[Engine, None, None]:
    """An engine whose every connection attempt fails, for store-outage tests."""
    engine = create_engine("sqlite:////nonexistent_dir/x.db")
    yield engine
    engine.dispose()


@pytest.fixture
def service(store: CredentialStore, clock: FakeClock) -> AuthService:
    return make_service(store, clock=clock)


@pytest.fixture
def service_factory(store: CredentialStore, clock: FakeClock):
    """Build a service over the test store and clock with Settings overrides."""

    def factory(**settings_overrides) -> AuthService:
        return make_service(store, clock=clock, **settings_overrides)

    return factory


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


def _patch_lifespan(store: CredentialStore, service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test store and service into app.state so TestClient
    routes hit the isolated in-memory DB rather than the configured one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = store
        app.state.auth_service = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The admin row is written straight into the store (as the create-user
    command does) and a token is minted for it.
    """
    store = make_store(f"api_{uuid.uuid4().hex}")
    service = make_service(store)

    admin = store.create_user(
        User(email="admin@example.com", role=Role.ADMIN, password_hash=PasswordHasher(iterations=1000).hash(TEST_PASSWORD))
    )
    token = service.tokens.issue_access_token(admin.id, admin.email, admin.role)

    app.router.lifespan_context = _patch_lifespan(store, service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin.id

    store.close()
