"""
auth/tokens.py -- Signed, expiring bearer tokens (the token codec).

Security design decisions:
  JWT: python-jose with HS256 and nothing else. decode() is always called
       with algorithms=[HS256], so a token whose header names another
       algorithm -- including "none" -- is rejected before its claims are
       looked at (algorithm confusion).

  One codec, two secrets: access and refresh tokens share this encoding but
       are signed with different secrets and TTLs (see core.config [S2]), so
       neither kind validates where the other is expected.

  Claims: sub (string user id), email, iat, exp, jti. jti is random so two
       tokens minted for the same user in the same second are still distinct
       strings -- the refresh-token table relies on that for uniqueness.

  Expiry: python-jose already rejects an expired exp, but verify_token()
       re-checks it after decoding rather than trusting the parser alone, and
       reports it as ExpiredTokenError so callers can tell "expired" from
       "forged".

  Subject: must be a positive decimal integer. Anything else is a hard
       verification failure -- an unparsable subject never resolves to a
       default user id.

This module is stateless: every function is a pure function of its
arguments plus the clock. Secrets are passed in, never read from config here.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import NamedTuple

from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import AccessClaims
from core.config import parse_ttl

ALGORITHM = "HS256"

_REQUIRED_CLAIMS = {
    "require_exp": True,
    "require_iat": True,
    "require_sub": True,
    "require_jti": True,
}


class TokenError(Exception):
    """Base class for every token codec failure."""


class TokenConfigError(TokenError):
    """The signing secret is missing. A server problem, not a client one."""


class InvalidTokenError(TokenError):
    """Bad signature, wrong algorithm, malformed token or bad claims."""


class ExpiredTokenError(TokenError):
    """Structurally valid and correctly signed, but past its expiry."""


class IssuedToken(NamedTuple):
    token: str
    expires_at: int  # unix seconds


def issue_token(user_id: int, email: str, secret: str, ttl: str = "") -> IssuedToken:
    """Encode a signed token for user_id/email that expires after ttl.

    Args:
        user_id: Numeric user id, carried as the string "sub" claim.
        email:   Carried as a convenience claim; the store stays authoritative.
        secret:  HS256 key. Empty -> TokenConfigError.
        ttl:     Lifetime expression, see core.config.parse_ttl. Empty means
                 15 minutes; a bare integer means minutes.

    Raises ValueError if ttl does not parse.
    """
    if not secret:
        raise TokenConfigError("signing secret not configured")

    lifetime = parse_ttl(ttl)
    now = datetime.now(timezone.utc)
    expires_at = int((now + lifetime).timestamp())
    payload = {
        "sub": str(user_id),
        "email": email,
        "iat": int(now.timestamp()),
        "exp": expires_at,
        "jti": secrets.token_urlsafe(16),
    }
    return IssuedToken(jwt.encode(payload, secret, algorithm=ALGORITHM), expires_at)


def verify_token(token: str, secret: str) -> AccessClaims:
    """Verify signature, algorithm and expiry; return the decoded claims.

    Raises:
        TokenConfigError:  secret is empty.
        ExpiredTokenError: the token is authentic but expired.
        InvalidTokenError: anything else wrong with the token.
    """
    if not secret:
        raise TokenConfigError("signing secret not configured")
    if not token:
        raise InvalidTokenError("empty token")

    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM], options=_REQUIRED_CLAIMS)
    except ExpiredSignatureError as exc:
        raise ExpiredTokenError("token expired") from exc
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc

    exp = payload.get("exp")
    iat = payload.get("iat")
    if not isinstance(exp, int) or not isinstance(iat, int):
        raise InvalidTokenError("exp and iat must be integers")
    if exp <= datetime.now(timezone.utc).timestamp():
        raise ExpiredTokenError("token expired")

    email = payload.get("email")
    if not isinstance(email, str):
        raise InvalidTokenError("missing email claim")

    return AccessClaims(
        user_id=_parse_subject(payload["sub"]),
        email=email,
        issued_at=iat,
        expires_at=exp,
        token_id=payload["jti"],
    )


def _parse_subject(sub: str) -> int:
    if not sub.isdigit() or not sub.isascii():
        raise InvalidTokenError("subject is not a numeric user id")
    user_id = int(sub)
    if user_id <= 0:
        raise InvalidTokenError("subject is not a valid user id")
    return user_id
