"""
tests/conftest.py -- Shared test fixtures for RadarOne tests.

This module provides:
  - TEST_KEY_HEX: the fixed PII_ENCRYPTION_KEY used by the whole test session
  - _make_test_stores(): creates isolated in-memory DBs for users + sessions
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient with a user JWT for API integration tests
  - box / session_store / service: unit-level building blocks

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG and PII_ENCRYPTION_KEY env vars must be set before any core/auth
import so the cached Settings sees them.
"""

from __future__ import annotations

import copy
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

TEST_KEY_HEX = "000102030405060708090a0b0c0d0e0f101112131415161718191a1b1c1d1e1f"

# CRITICAL: Set env before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode and find the PII key.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("PII_ENCRYPTION_KEY", TEST_KEY_HEX)

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from core.crypto import SecretBox
from sessions.service import SessionCredentialService
from sessions.store import SessionStore

# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------

SAMPLE_STORAGE_STATE = {
    "cookies": [
        {"name": "ssid", "value": "abc123", "domain": ".mercadolivre.com.br", "path": "/"},
        {"name": "orgid", "value": "xyz", "domain": ".mercadolivre.com.br", "path": "/"},
        {"name": "_d2id", "value": "d2", "domain": "www.mercadolivre.com.br", "path": "/"},
    ],
    "origins": [
        {
            "origin": "https://www.mercadolivre.com.br",
            "localStorage": [{"name": "ml_session", "value": "1"}],
        }
    ],
}


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, SessionStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'sessions').
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    sessions_url = f"sqlite:///file:test_sessions_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), SessionStore(db_url=sessions_url)


def _patch_lifespan(user_store: UserStore, session_store: SessionStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the local SQLite files.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.session_store = session_store
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_state() -> dict:
    """A fresh copy of a small Mercado Livre storage state (3 cookies, 1 origin)."""
    return copy.deepcopy(SAMPLE_STORAGE_STATE)


@pytest.fixture
def box() -> SecretBox:
    return SecretBox.from_hex(TEST_KEY_HEX)


@pytest.fixture
def session_store() -> Generator[SessionStore, None, None]:
    store = SessionStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def service(session_store: SessionStore, box: SecretBox) -> SessionCredentialService:
    return SessionCredentialService(session_store, box, ttl_days=30)


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores.
    The user "ana@example.com" / "testpass123" is created before the client
    starts and its JWT is returned for use in Authorization headers.
    """
    user_store, session_store = _make_test_stores(request.module.__name__.rsplit(".", 1)[-1])

    user = User(
        email="ana@example.com",
        name="Ana Teste",
        hashed_password=hash_password("testpass123"),
    )
    uid = user_store.create_user(user)

    token = create_access_token(user_id=uid, email="ana@example.com", expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(user_store, session_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid

    user_store.close()
    session_store.close()
