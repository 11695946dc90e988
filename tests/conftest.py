"""
tests/conftest.py -- Shared test fixtures for Taledynamic tests.

This module provides:
  - memory_url(): a unique named shared-memory SQLite URL
  - context / users / workspaces: service-level fixtures over a fresh DB
  - _patch_lifespan(): wires a test DataContext into app.state
  - api_client: TestClient plus a seeded user's JWT for API tests
  - web_client: TestClient with follow_redirects=False for web route tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The environment must be set before any core/auth import so get_settings()
auto-generates SECRET_KEY in dev mode and accepts the TestClient Host header.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any auth/core import. get_settings() is cached on
# first call, so later changes to os.environ have no effect.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from asgi import app
from auth.tokens import create_access_token
from db.context import DataContext
from services.users import UserService
from services.workspaces import WorkspaceService

# Rate limits are exercised by hand, not by the suite; with them on, the
# auth-heavy test modules would trip 429s from the shared testclient IP.
limiter.enabled = False


def memory_url(name: str) -> str:
    """Return a unique shared-memory SQLite URL so test DBs never collide."""
    return f"sqlite:///file:{name}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


# ---------------------------------------------------------------------------
# Service-level fixtures -- one fresh database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def context() -> Generator[DataContext, None, None]:
    ctx = DataContext(memory_url("test_ctx"))
    yield ctx
    ctx.close()


@pytest.fixture
def users(context: DataContext) -> UserService:
    return UserService(context, revoke_chain_on_reuse=False)


@pytest.fixture
def workspaces(context: DataContext) -> WorkspaceService:
    return WorkspaceService(context)


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(context: DataContext):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test context and services into app.state so
    TestClient routes see an isolated in-memory DB rather than the
    configured database file.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.context = context
        app.state.users = UserService(context, revoke_chain_on_reuse=False)
        app.state.workspaces = WorkspaceService(context)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory DB. The
    seeded user is testuser@example.com / testpass123.
    """
    ctx = DataContext(memory_url("test_api"))
    user = UserService(ctx).create_user("testuser@example.com", "testpass123", "testpass123")

    # Long-lived JWT for Authorization headers
    token = create_access_token(user.id, user.email, expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(ctx)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, user.id

    ctx.close()


@pytest.fixture(scope="module")
def web_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient for web route integration tests.

    follow_redirects=False is essential for web route tests: we assert on
    redirect *locations* (e.g. 302 to /auth), which are invisible once
    the client follows the redirect and returns the final 200 response.
    """
    ctx = DataContext(memory_url("test_web"))
    app.router.lifespan_context = _patch_lifespan(ctx)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client

    ctx.close()
