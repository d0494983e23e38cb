"""
API request and response models for SessionGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models only check shape and types. Policy (empty fields, minimum
password length) is enforced by SessionManager so the same rules apply to
every caller, the CLI included. Passwords are never whitespace-stripped.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import TokenPair, User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignUpRequest(BaseModel):
    """Request body for POST /signup."""

    email: str = Field(max_length=255)
    password: str


class LoginRequest(BaseModel):
    """Request body for POST /login."""

    email: str = Field(max_length=255)
    password: str


class RefreshRequest(BaseModel):
    """Request body for POST /refresh and POST /logout."""

    refresh_token: str


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class TokenResponse(BaseModel):
    """Response for POST /login and POST /refresh.

    expires_in is seconds until the access token expires; expires_at is the
    same instant as a unix timestamp.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    expires_in: int
    expires_at: int
    token_type: str = "bearer"

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenResponse":
        return cls(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.expires_in,
            expires_at=pair.expires_at,
            token_type=pair.token_type,
        )


class MeResponse(BaseModel):
    """Public profile for GET /me. Deliberately has no password field."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: str
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "MeResponse":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            created_at=user.created_at or "",
        )


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
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
