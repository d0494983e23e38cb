"""
auth/dependencies.py -- The authentication gate as FastAPI Depends() helpers.

Protected routes declare the verified identity as a typed parameter:

    @router.get("/me")
    def me(claims: AccessClaims = Depends(get_current_claims)): ...

The gate knows nothing about the route it guards. It:
  1. reads the Authorization header and requires "<scheme> <token>" with
     scheme "bearer" in any letter case and a non-empty token;
  2. verifies the token with the access secret from app.state.settings;
  3. hands the AccessClaims to the handler, or raises AuthenticationRequired
     before the handler runs. api/main.py renders that as a bare 401 with
     WWW-Authenticate: Bearer and no body.

A refresh token presented here fails step 2: it is signed with the refresh
secret, which differs from the access secret by construction.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.errors import AuthenticationRequired, InternalError
from auth.models import AccessClaims
from auth.tokens import TokenConfigError, TokenError, verify_token

logger = logging.getLogger("sessiongate.auth")


def parse_bearer(header: str | None) -> str | None:
    """Return the token from an Authorization header value, or None.

    None for a missing header, a non-bearer scheme, or an empty token.
    """
    if not header:
        return None
    parts = header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def authenticate(header: str | None, secret: str) -> AccessClaims:
    """Resolve an Authorization header to verified claims.

    Raises AuthenticationRequired for any client-side problem and
    InternalError when the access secret is not configured.
    """
    token = parse_bearer(header)
    if token is None:
        raise AuthenticationRequired()
    try:
        return verify_token(token, secret)
    except TokenConfigError as exc:
        logger.exception("Access secret not configured")
        raise InternalError() from exc
    except TokenError as exc:
        logger.debug("Bearer token rejected: %s", exc)
        raise AuthenticationRequired() from exc


def get_current_claims(request: Request) -> AccessClaims:
    """Require a valid access token. Use as a FastAPI dependency."""
    settings = request.app.state.settings
    return authenticate(request.headers.get("Authorization"), settings.access_secret)
