"""
tests/conftest.py -- Shared test fixtures for SessionGate.

This module provides:
  - FakeClock / clock: a controllable UTC clock for expiry tests
  - engine, session_store, user_store, manager: isolated in-memory stores for unit tests
  - make_user: helper fixture that inserts a user (optionally with roles)
  - _patch_lifespan(): wires test collaborators into app.state, bypassing real startup
  - api_client: TestClient plus pre-issued session tokens for an admin and a regular user

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API fixture because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit tests run in one thread and use plain :memory:.

Environment overrides must be set before any api/ import because routes read
rate limits and allowed hosts from get_settings() at import time.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: set before importing api.main -- the middleware stack and the
# rate limit decorators read settings at import time.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.context import ContextResolver
from auth.models import User
from auth.roles import RoleResolver
from auth.session import SessionManager
from auth.store import SessionStore, UserStore, create_auth_engine
from auth.tokens import hash_password

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

ADMIN_EMAIL = "admin@example.com"
USER_EMAIL = "writer@example.com"
PASSWORD = "correct-horse-battery"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current += timedelta(**delta)
        return self.current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Unit-test stores
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    eng = create_auth_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture
def session_store(engine) -> SessionStore:
    return SessionStore(engine)


@pytest.fixture
def user_store(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def manager(session_store: SessionStore, clock: FakeClock) -> SessionManager:
    return SessionManager(session_store, clock=clock)


@pytest.fixture
def make_user(user_store: UserStore):
    """Return a factory that inserts a user and grants it the given roles.

    Password hashes are placeholders -- unit tests that need a real bcrypt
    hash call hash_password() themselves.
    """

    counter = {"n": 0}

    def _make(*roles: str, email: str | None = None) -> User:
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        user_id = user_store.create_user(User(email=email, name=f"User {counter['n']}", hashed_password="x"))
        for role in roles:
            user_store.assign_role(user_id, role)
        return user_store.get_by_id(user_id)

    return _make


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(engine):
    """Return an async context manager that replaces the real lifespan.

    Wires collaborators built on the test engine into app.state so TestClient
    routes see an isolated database. The purge_task is a long-sleeping
    coroutine so shutdown can .cancel() a real asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.session_store = SessionStore(engine)
        app.state.user_store = UserStore(engine)
        app.state.session_manager = SessionManager(app.state.session_store)
        app.state.role_resolver = RoleResolver(app.state.user_store)
        app.state.context_resolver = ContextResolver(
            app.state.session_manager,
            app.state.user_store,
            app.state.role_resolver,
        )
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, dict[str, str]], None, None]:
    """Yield (client, tokens) for API integration tests.

    tokens maps "admin" and "user" to live session tokens. The admin holds the
    "admin" and "user" roles; the regular user holds only "user". Both accounts
    share PASSWORD so login tests can use them too.
    """
    # One named DB per test module so module-scoped fixtures never collide.
    db_name = f"test_auth_{request.module.__name__}"
    engine = create_auth_engine(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    users = UserStore(engine)
    sessions = SessionManager(SessionStore(engine))

    hashed = hash_password(PASSWORD)
    admin_id = users.create_user(User(email=ADMIN_EMAIL, name="Admin User", hashed_password=hashed))
    users.assign_role(admin_id, "admin")
    users.assign_role(admin_id, "user")
    user_id = users.create_user(User(email=USER_EMAIL, name="Writer", hashed_password=hashed))
    users.assign_role(user_id, "user")

    tokens = {
        "admin": sessions.create_session(admin_id).id,
        "user": sessions.create_session(user_id).id,
    }

    app.router.lifespan_context = _patch_lifespan(engine)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, tokens

    engine.dispose()