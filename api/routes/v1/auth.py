"""
api/routes/v1/auth.py -- Authentication and user management REST endpoints.

Routes:
  POST  /api/v1/auth/register      -- create account; returns user + token pair
  POST  /api/v1/auth/login         -- password login; returns user + token pair
  POST  /api/v1/auth/refresh       -- refresh token -> new access token
  POST  /api/v1/auth/logout        -- revoke one refresh token (requires auth)
  POST  /api/v1/auth/logout-all    -- revoke every refresh token (requires auth)
  GET   /api/v1/auth/me            -- current user (requires auth)
  PUT   /api/v1/auth/password      -- change password (requires auth)
  GET   /api/v1/auth/users         -- list users (ADMIN)
  PATCH /api/v1/auth/users/{id}    -- deactivate / reactivate (ADMIN)

Security:
  [H2] POST /register and /login are rate-limited per client IP.
  [C1] Login timing equalization lives in AuthService.login -- use it, never inline.
  [M5] Cache-Control: no-store on every response that carries a token.

Route handlers are thin: parse the body, call AuthService, map the result
into a response model. Errors are AuthError subclasses raised by the service
or the dependencies; api/main.py renders them.

Handlers are plain `def` so FastAPI runs them in its thread pool -- the
password hash and the store calls are blocking.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter, login_rate_limit
from api.models import (
    AccessTokenResponse,
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    LogoutAllResponse,
    LogoutRequest,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    UserPatch,
    UserResponse,
)
from auth.dependencies import client_origin, get_auth_service, get_identity, require_admin
from auth.models import AuthResult, Identity
from auth.service import AuthService

# Auth policy:
# - POST  /auth/register, /auth/login, /auth/refresh: public
# - POST  /auth/logout, /auth/logout-all, GET /auth/me, PUT /auth/password: bearer access token
# - GET   /auth/users, PATCH /auth/users/{id}: ADMIN
router = APIRouter()


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        user=UserResponse.from_user(result.user),
        access_token=result.access_token,
        refresh_token=result.refresh_token,
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(
    request: Request,
    response: Response,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Create an account and return it together with a fresh token pair."""
    result = service.register(body.email, body.password, body.role, origin=client_origin(request))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return _auth_response(result)


@limiter.limit(login_rate_limit)  # [H2]
@router.post("/auth/login", response_model=AuthResponse)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Authenticate with email and password.

    Unknown email and wrong password both answer 401 AUTH_INVALID_CREDENTIALS.
    A locked account answers 401 AUTH_ACCOUNT_LOCKED.
    """
    result = service.login(body.email, body.password, origin=client_origin(request))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return _auth_response(result)


@router.post("/auth/refresh", response_model=AccessTokenResponse)
def refresh(
    request: Request,
    response: Response,
    body: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
) -> AccessTokenResponse:
    """Exchange a refresh token for a new access token."""
    access_token = service.refresh(body.refresh_token, origin=client_origin(request))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return AccessTokenResponse(access_token=access_token)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    request: Request,
    body: LogoutRequest,
    identity: Identity = Depends(get_identity),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke the given refresh token. Idempotent."""
    service.logout(identity.user_id, body.refresh_token, origin=client_origin(request))
    return MessageResponse(message="Logout successful.")


@router.post("/auth/logout-all", response_model=LogoutAllResponse)
def logout_all(
    request: Request,
    identity: Identity = Depends(get_identity),
    service: AuthService = Depends(get_auth_service),
) -> LogoutAllResponse:
    """Revoke every refresh token of the caller. Outstanding access tokens live until they expire."""
    revoked = service.logout_all(identity.user_id, origin=client_origin(request))
    return LogoutAllResponse(message="Logged out of all sessions.", revoked=revoked)


@router.get("/auth/me", response_model=MeResponse)
def me(
    identity: Identity = Depends(get_identity),
    service: AuthService = Depends(get_auth_service),
) -> MeResponse:
    """Return the account behind the presented access token."""
    return MeResponse(user=UserResponse.from_user(service.current_user(identity)))


@router.put("/auth/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    identity: Identity = Depends(get_identity),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Change the caller's password. Every refresh token of the caller is revoked."""
    service.change_password(
        identity.user_id, body.current_password, body.new_password, origin=client_origin(request)
    )
    return MessageResponse(message="Password changed successfully.")


# ---------------------------------------------------------------------------
# User management (ADMIN only)
# ---------------------------------------------------------------------------


@router.get("/auth/users", response_model=list[UserResponse])
def list_users(
    _admin: Identity = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in service.list_users()]


@router.patch("/auth/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserPatch,
    admin: Identity = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Soft-deactivate or reactivate an account. Admins cannot deactivate themselves."""
    user = service.set_active(admin, user_id, body.is_active, origin=client_origin(request))
    return UserResponse.from_user(user)
