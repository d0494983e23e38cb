"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; the store, the codec and the session manager do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    user = "user"
    admin = "admin"


@dataclass
class User:
    """An identity record.

    email is unique and case-sensitive as stored -- the store never folds case.
    password_hash is the bcrypt hash and must never leave the service; the API
    layer maps User to MeResponse, which has no hash field.
    """

    email: str
    password_hash: str
    role: str = Role.user.value
    id: int | None = None
    created_at: str | None = None


@dataclass
class RefreshToken:
    """A server-side session record. One row per outstanding refresh token.

    token is the full signed refresh token string. Holding it is the
    capability; deleting the row revokes it for good.
    """

    token: str
    user_id: int
    expires_at: int  # unix seconds
    created_at: str | None = None


@dataclass(frozen=True)
class AccessClaims:
    """Decoded payload of a verified token. Never persisted."""

    user_id: int
    email: str
    issued_at: int
    expires_at: int
    token_id: str


@dataclass(frozen=True)
class TokenPair:
    """Result of a successful login or refresh."""

    access_token: str
    refresh_token: str
    expires_in: int  # seconds until the access token expires
    expires_at: int  # unix expiry of the access token
    token_type: str = "bearer"
