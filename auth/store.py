"""
auth/store.py -- SQLAlchemy Core persistence layer for users and refresh tokens.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_user / _row_to_refresh_token are the mappers. The session manager
never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  refresh_tokens.token is UNIQUE and is the full signed token string. A row
  exists exactly as long as the token is outstanding; deleting it is
  revocation. expires_at is stored as unix seconds so every validity check
  is a plain integer comparison done in SQL -- an expired row never counts,
  whether or not the sweep has removed it yet.

Transactions:
  transaction() yields a Connection inside engine.begin(). Methods that take
  an optional conn join that transaction; without one they run in their own.
  consume_refresh_token() is a conditional DELETE whose rowcount tells the
  caller whether *this* transaction removed the row. Two concurrent
  rotations of one token serialize on the row, and only one sees rowcount 1.

Timeouts:
  SQLite: `timeout` connect arg (busy timeout) bounds waiting for a write
  lock. All dialects: pool_timeout bounds waiting for a pooled connection.
  Either surfaces as sqlalchemy.exc.OperationalError / TimeoutError; this
  layer never retries.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.models import RefreshToken, Role, User

logger = logging.getLogger("sessiongate.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default=Role.user.value),
    Column("created_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("token", Text, nullable=False, unique=True),
    Column("expires_at", Integer, nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StoreError(Exception):
    """Base class for store failures the caller is expected to handle."""


class DuplicateEmailError(StoreError):
    """INSERT hit the UNIQUE(email) constraint."""


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _now_unix() -> int:
    return int(time.time())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for User and RefreshToken rows.

    Usage:
        store = CredentialStore("sqlite:///sessiongate.db")
        uid = store.create_user("alice@example.com", hash_password("secret1"))
        user = store.get_by_email("alice@example.com")
        store.close()
    """

    def __init__(self, db_url: str, timeout_seconds: float = 5.0) -> None:
        connect_args: dict = {}
        engine_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout_seconds
        else:
            engine_args["pool_timeout"] = timeout_seconds
            engine_args["pool_pre_ping"] = True
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Run a block of store calls as one all-or-nothing unit.

        Commits when the block exits normally; rolls back and re-raises on
        any exception, leaving every row as it was before the block.

            with store.transaction() as conn:
                store.consume_refresh_token(old, uid, conn=conn)
                store.insert_refresh_token(uid, new, exp, conn=conn)
        """
        with self.engine.begin() as conn:
            yield conn

    @contextmanager
    def _connection(self, conn: Connection | None) -> Iterator[Connection]:
        if conn is not None:
            yield conn
        else:
            with self.engine.begin() as own:
                yield own

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, email: str, password_hash: str, role: str = Role.user.value) -> int:
        """Insert a new user and return its assigned database ID.

        Raises DuplicateEmailError if the email is already registered. The
        UNIQUE constraint is the arbiter, so two concurrent sign-ups for the
        same email cannot both succeed.
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.insert().values(
                        email=email,
                        password_hash=password_hash,
                        role=role,
                        created_at=_now_iso(),
                    )
                )
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise DuplicateEmailError(email) from exc

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Refresh-token queries
    # ------------------------------------------------------------------

    def insert_refresh_token(
        self, user_id: int, token: str, expires_at: int, conn: Connection | None = None
    ) -> None:
        """Persist an outstanding refresh token."""
        with self._connection(conn) as c:
            c.execute(
                _refresh_tokens.insert().values(
                    user_id=user_id,
                    token=token,
                    expires_at=expires_at,
                    created_at=_now_iso(),
                )
            )

    def refresh_token_exists(self, token: str, user_id: int) -> bool:
        """Return True if a non-expired row exists for this exact token and user."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_refresh_tokens.c.id).where(
                    (_refresh_tokens.c.token == token)
                    & (_refresh_tokens.c.user_id == user_id)
                    & (_refresh_tokens.c.expires_at > _now_unix())
                )
            ).fetchone()
        return row is not None

    def get_refresh_token(self, token: str) -> RefreshToken | None:
        """Return the row for token regardless of expiry, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def consume_refresh_token(self, token: str, user_id: int, conn: Connection | None = None) -> bool:
        """Delete a live refresh-token row; return True only if this call removed it.

        False means the row was already gone (consumed, revoked) or expired.
        Used inside transaction() for rotation.
        """
        with self._connection(conn) as c:
            result = c.execute(
                _refresh_tokens.delete().where(
                    (_refresh_tokens.c.token == token)
                    & (_refresh_tokens.c.user_id == user_id)
                    & (_refresh_tokens.c.expires_at > _now_unix())
                )
            )
            return result.rowcount == 1

    def delete_refresh_token(self, token: str, conn: Connection | None = None) -> bool:
        """Delete a refresh token unconditionally. Idempotent.

        Returns True if a row was deleted, False if there was nothing to delete.
        Neither case is an error.
        """
        with self._connection(conn) as c:
            result = c.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token == token))
            return result.rowcount > 0

    def purge_expired_refresh_tokens(self) -> int:
        """Delete every expired refresh-token row. Returns the number removed."""
        with self.engine.begin() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at <= _now_unix()))
            removed = result.rowcount
        if removed:
            logger.info("Purged %d expired refresh tokens", removed)
        return removed

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        created_at=row.created_at,
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        token=row.token,
        user_id=row.user_id,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
