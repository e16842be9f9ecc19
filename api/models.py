"""
API request and response models for the marketplace auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

JSON field names are camelCase on the wire (accessToken, refreshToken,
currentPassword, ...) and snake_case in Python; the alias generator handles
the translation both ways.

Request models only bound sizes. Credential rules (email format, password
complexity, role enum) are enforced by auth/validation.py inside the service
so the same rules apply to every caller, the CLI included.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import User

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(CamelModel):
    """Request body for POST /api/v1/auth/register."""

    email: str = Field(max_length=255)
    password: str = Field(max_length=255)
    role: str = Field(max_length=16)


class LoginRequest(CamelModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(max_length=255)
    password: str = Field(max_length=255)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(max_length=4096)


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = Field(default=None, max_length=4096)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(max_length=255)
    new_password: str = Field(max_length=255)


class UserPatch(CamelModel):
    """Request body for PATCH /api/v1/auth/users/{id}. Role is immutable."""

    is_active: bool


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(CamelModel):
    """Public view of a user. Never includes the password hash or lockout counters."""

    id: str
    email: str
    role: str
    is_active: bool
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> UserResponse:
        return cls(
            id=user.id,
            email=user.email,
            role=user.role.value,
            is_active=user.is_active,
            created_at=user.created_at,
            last_login=user.last_login,
        )


class AuthResponse(CamelModel):
    """Response for register and login."""

    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AccessTokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"


class MeResponse(CamelModel):
    user: UserResponse


class MessageResponse(CamelModel):
    message: str


class LogoutAllResponse(CamelModel):
    message: str
    revoked: int


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[list[str] | str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    service: str = "auth-service"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
