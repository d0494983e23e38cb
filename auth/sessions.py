"""
auth/sessions.py -- Sign-up, login, refresh rotation, logout and profile lookup.

SessionManager combines the credential store, the password verifier and the
token codec. It holds no state between calls -- only the store and the
Settings it was constructed with -- so any number of instances (threads,
workers, processes) can run against the same database.

Error policy:
  Every method raises only auth.errors.AuthError subclasses. Store failures
  (SQLAlchemyError, StoreError) and codec/config failures are logged here
  with their traceback and re-raised as InternalError; the message that
  reaches the client is always generic.

Rotation [R1]:
  refresh() verifies the token's signature and expiry with the refresh
  secret, then independently checks that the store still holds a live row
  for that exact token and user -- the store is the source of truth for
  revocation. The swap itself runs in one transaction: a conditional DELETE
  of the old row that must remove exactly one row, then the INSERT of the
  new one. If the DELETE removes nothing, a concurrent request already
  consumed the token and this one is refused. If anything fails, the
  transaction rolls back and the old token stays valid.

Login ordering [R2]:
  Tokens are minted first (pure computation), the refresh row is written
  second, and the pair is returned only after the write commits. A failed
  write returns no tokens, so a client can never hold a refresh token the
  store does not know about.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import ConflictError, InternalError, InvalidInputError, UnauthorizedError
from auth.models import Role, TokenPair, User
from auth.passwords import MIN_PASSWORD_LENGTH, hash_password, verify_dummy, verify_password
from auth.store import CredentialStore, DuplicateEmailError, StoreError
from auth.tokens import TokenConfigError, TokenError, issue_token, verify_token
from core.config import Settings

logger = logging.getLogger("sessiongate.auth")

# One message for unknown email and wrong password -- no account enumeration.
_BAD_CREDENTIALS = "Invalid email or password."
_BAD_REFRESH = "Refresh token expired or invalid."


@contextmanager
def _internal_errors(action: str) -> Iterator[None]:
    """Translate store and codec failures into InternalError."""
    try:
        yield
    except (SQLAlchemyError, StoreError, TokenConfigError, ValueError) as exc:
        logger.exception("%s failed", action)
        raise InternalError() from exc


class SessionManager:
    """Orchestrates the session lifecycle over a CredentialStore.

    Usage:
        manager = SessionManager(store, settings)
        manager.sign_up("alice@example.com", "secret1")
        pair = manager.login("alice@example.com", "secret1")
        pair = manager.refresh(pair.refresh_token)
        manager.logout(pair.refresh_token)
    """

    def __init__(self, store: CredentialStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def sign_up(self, email: str, password: str, role: str = Role.user.value) -> int:
        """Create an account and return its id. Does not log the user in."""
        if not email or not password:
            raise InvalidInputError("Email and password are required.")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidInputError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

        with _internal_errors("sign-up"):
            pw_hash = hash_password(password)
            try:
                user_id = self.store.create_user(email, pw_hash, role=role)
            except DuplicateEmailError as exc:
                raise ConflictError() from exc
        logger.info("User %d signed up", user_id)
        return user_id

    def login(self, email: str, password: str) -> TokenPair:
        """Verify credentials and open a new session [R2].

        Always runs one bcrypt verification, whether or not the email exists,
        and fails both ways with the same UnauthorizedError.
        """
        with _internal_errors("login lookup"):
            user = self.store.get_by_email(email)
        if user is None:
            verify_dummy(password)
            logger.info("Login failed: bad credentials")
            raise UnauthorizedError(_BAD_CREDENTIALS)
        if not verify_password(password, user.password_hash):
            logger.info("Login failed: bad credentials")
            raise UnauthorizedError(_BAD_CREDENTIALS)

        with _internal_errors("login"):
            access = issue_token(user.id, user.email, self.settings.access_secret, self.settings.access_ttl)
            refresh = issue_token(user.id, user.email, self.settings.refresh_secret, self.settings.refresh_ttl)
            self.store.insert_refresh_token(user.id, refresh.token, refresh.expires_at)

        logger.info("User %d logged in", user.id)
        return _token_pair(access.token, access.expires_at, refresh.token)

    def refresh(self, refresh_token: str) -> TokenPair:
        """Rotate a refresh token: consume it and mint a fresh pair [R1]."""
        try:
            claims = verify_token(refresh_token, self.settings.refresh_secret)
        except TokenConfigError as exc:
            logger.exception("refresh failed")
            raise InternalError() from exc
        except TokenError as exc:
            logger.info("Refresh rejected: %s", exc)
            raise UnauthorizedError(_BAD_REFRESH) from exc

        with _internal_errors("refresh lookup"):
            live = self.store.refresh_token_exists(refresh_token, claims.user_id)
        if not live:
            logger.warning("Refresh rejected: token for user %d is revoked or already used", claims.user_id)
            raise UnauthorizedError(_BAD_REFRESH)

        with _internal_errors("refresh rotation"):
            access = issue_token(
                claims.user_id, claims.email, self.settings.access_secret, self.settings.access_ttl
            )
            new_refresh = issue_token(
                claims.user_id, claims.email, self.settings.refresh_secret, self.settings.refresh_ttl
            )
            with self.store.transaction() as conn:
                if not self.store.consume_refresh_token(refresh_token, claims.user_id, conn=conn):
                    # Raising inside the block rolls the transaction back.
                    logger.warning("Refresh rejected: token for user %d was consumed concurrently", claims.user_id)
                    raise UnauthorizedError(_BAD_REFRESH)
                self.store.insert_refresh_token(claims.user_id, new_refresh.token, new_refresh.expires_at, conn=conn)

        logger.info("Rotated refresh token for user %d", claims.user_id)
        return _token_pair(access.token, access.expires_at, new_refresh.token)

    def logout(self, refresh_token: str) -> None:
        """Revoke a refresh token. Idempotent: unknown tokens are not an error.

        The access token issued alongside it stays valid until it expires.
        """
        with _internal_errors("logout"):
            row = self.store.get_refresh_token(refresh_token)
            if row is None:
                return
            deleted = self.store.delete_refresh_token(refresh_token)
        if deleted:
            logger.info("Refresh token revoked for user %d", row.user_id)

    def me(self, user_id: int) -> User:
        """Return the profile behind a verified access token.

        A valid token for a missing user means the data is inconsistent,
        which is a server error, not a client one.
        """
        with _internal_errors("profile lookup"):
            user = self.store.get_by_id(user_id)
        if user is None:
            logger.error("Valid access token for missing user %d", user_id)
            raise InternalError()
        return user

    def purge_expired(self) -> int:
        """Delete expired refresh-token rows. Returns how many were removed."""
        with _internal_errors("purge"):
            return self.store.purge_expired_refresh_tokens()


def _token_pair(access_token: str, access_expires_at: int, refresh_token: str) -> TokenPair:
    now = int(datetime.now(timezone.utc).timestamp())
    return TokenPair(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=max(access_expires_at - now, 0),
        expires_at=access_expires_at,
    )
