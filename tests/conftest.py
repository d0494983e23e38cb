"""
tests/conftest.py -- Shared test fixtures for SessionGate.

This module provides:
  - settings: explicit Settings with injected secrets (no environment reads)
  - store / sessions: a CredentialStore on a fresh SQLite file per test, and a
    SessionManager over it
  - _patch_lifespan(): wires test objects into app.state, bypassing real startup
  - api_client: TestClient against the real FastAPI app

Design: every store is a SQLite *file* under tmp_path, not :memory:.
TestClient runs sync route handlers in a thread pool, and the race tests use
real threads; a file database gives every connection the same data and a
working busy timeout, which shared-cache memory databases do not.

The rate limiter is disabled for the whole session: tests log in far more
than 10 times a minute from the same "testclient" address.
"""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from contextlib import asynccontextmanager

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.sessions import SessionManager
from auth.store import CredentialStore
from core.config import Settings

ACCESS_SECRET = "test-access-secret-0123456789abcdef"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdef"

limiter.enabled = False


def make_settings(**overrides) -> Settings:
    values = {
        "access_secret": ACCESS_SECRET,
        "refresh_secret": REFRESH_SECRET,
        "access_ttl": "15m",
        "refresh_ttl": "1h",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store(tmp_path) -> Generator[CredentialStore, None, None]:
    s = CredentialStore(f"sqlite:///{tmp_path / 'auth.db'}", timeout_seconds=10)
    yield s
    s.close()


@pytest.fixture
def sessions(store: CredentialStore, settings: Settings) -> SessionManager:
    return SessionManager(store, settings)


def _patch_lifespan(store: CredentialStore, settings: Settings):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown has a real
    asyncio.Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.store = store
        app.state.sessions = SessionManager(store, settings)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def api_client(store: CredentialStore, settings: Settings) -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app, wired to an isolated store.

    raise_server_exceptions=False so unexpected errors are observed as the
    500 envelope a real client would get.
    """
    app.router.lifespan_context = _patch_lifespan(store, settings)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
