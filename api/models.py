"""
API request and response models for SessionGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

import re
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# Identity fields are trimmed; passwords are taken byte for byte.
TrimmedEmail = Annotated[str, StringConstraints(strip_whitespace=True, pattern=EMAIL_PATTERN, max_length=255)]
TrimmedName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]

# Post-login redirect targets must stay inside the app and never point at the
# JSON API. Checked in a validator because pydantic's regex engine has no
# lookahead support.
_API_SEGMENT_RE = re.compile(r"/api(?:/|$|\?)")


def _validate_redirect(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if not value.startswith("/") or value.startswith("//") or "\\" in value:
        raise ValueError("redirect_to must be a relative path")
    if _API_SEGMENT_RE.search(value):
        raise ValueError("redirect_to must not target the API")
    return value


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    name: TrimmedName
    email: TrimmedEmail
    password: str = Field(min_length=8, max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: TrimmedEmail
    password: str = Field(min_length=8, max_length=255)
    redirect_to: Optional[str] = Field(default=None, max_length=2048)

    @field_validator("redirect_to")
    @classmethod
    def check_redirect(cls, value: Optional[str]) -> Optional[str]:
        """Open-redirect guard: only same-origin, non-API paths are accepted."""
        return _validate_redirect(value)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login. The session itself travels in Set-Cookie."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    redirect_to: str = "/"


class LogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    sessions_revoked: int = 0


class UserInfo(BaseModel):
    """Public view of a user. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    created_at: str


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me. user is null for anonymous callers."""

    model_config = ConfigDict(frozen=True)

    user: Optional[UserInfo] = None
    roles: list[str] = Field(default_factory=list)
    session_expires_at: Optional[str] = None  # absolute deadline, ISO 8601


class UserWithRolesResponse(UserInfo):
    """Response for GET /api/v1/auth/users/by-email (admin only)."""

    roles: list[str] = Field(default_factory=list)
