"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and RBAC.

Every protected route takes its identity from an Authorization: Bearer
access token. Verification is stateless (signature, issuer, audience, expiry)
-- no store lookup happens here.

try_get_identity() is the soft variant (returns None when no token is sent).
get_identity() raises 401 with AUTH_TOKEN_MISSING / AUTH_TOKEN_EXPIRED /
AUTH_TOKEN_INVALID. require_roles() and require_permission() build
per-operation guards that add the 403 check and audit every denial.

The services are read from request.app.state.auth_service, wired by the
application lifespan.

Layer rule: no imports from api/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth import rbac
from auth.errors import TokenExpiredError, TokenInvalidError, TokenMissingError
from auth.models import Identity, Role
from auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def client_origin(request: Request) -> str | None:
    return request.client.host if request.client else None


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        return token or None
    return None


def try_get_identity(request: Request) -> Identity | None:
    """Return the verified identity, or None if no bearer token was sent.

    A token that IS sent but fails verification still raises -- a bad token
    is never silently downgraded to anonymous.
    """
    token = _bearer_token(request)
    if token is None:
        return None
    return get_auth_service(request).tokens.verify_access_token(token)


def get_identity(request: Request) -> Identity:
    """Require a valid access token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_identity)): ...
    """
    service = get_auth_service(request)
    try:
        identity = try_get_identity(request)
    except (TokenExpiredError, TokenInvalidError) as exc:
        service.audit.record(
            "authenticate",
            False,
            origin=client_origin(request),
            resource=request.url.path,
            reason=exc.code,
        )
        raise
    if identity is None:
        service.audit.record(
            "authenticate", False, origin=client_origin(request), resource=request.url.path, reason="no token"
        )
        raise TokenMissingError()
    return identity


def require_roles(*allowed: Role) -> Callable[[Request], Identity]:
    """Build a dependency that admits only the given roles (ADMIN always passes).

    Usage:
        @router.post("/products", dependencies=[Depends(require_roles(Role.SELLER))])
    """

    def guard(request: Request) -> Identity:
        identity = _identity_or_none(request)
        return rbac.authorize(
            identity,
            allowed,
            audit=get_auth_service(request).audit,
            resource=request.url.path,
            action=request.method,
            origin=client_origin(request),
        )

    return guard


def require_permission(permission: str) -> Callable[[Request], Identity]:
    """Build a dependency that checks the static permission catalogue."""

    def guard(request: Request) -> Identity:
        identity = _identity_or_none(request)
        return rbac.require_permission(
            identity,
            permission,
            audit=get_auth_service(request).audit,
            resource=request.url.path,
            action=request.method,
            origin=client_origin(request),
        )

    return guard


def require_admin(request: Request) -> Identity:
    return require_roles(Role.ADMIN)(request)


def _identity_or_none(request: Request) -> Identity | None:
    # Missing tokens fall through to rbac, which audits and raises 401.
    if _bearer_token(request) is None:
        return None
    return get_identity(request)
