"""Shared fixtures: in-memory SQLite record store and an authenticated test client.

Uses SQLite (via aiosqlite) to avoid requiring a real PostgreSQL server
during testing. Route tests get the full app with the session factory and
the owner dependency overridden.
"""

from __future__ import annotations

import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.auth.oauth2 import get_current_owner
from app.db.session import get_session_factory
from app.library.store import SelectionStore, TrackStore
from app.main import create_app
from app.models import Base
from app.models.client import Client

OWNER_ID = uuid.UUID("a1111111-1111-4111-8111-11111111111a")
OTHER_OWNER_ID = uuid.UUID("b2222222-2222-4222-8222-22222222222b")

# ---------------------------------------------------------------------------
# In-memory SQLite engine for tests
# ---------------------------------------------------------------------------

_test_engine = create_async_engine("sqlite+aiosqlite://", echo=False)
_test_session_factory = async_sessionmaker(_test_engine, expire_on_commit=False)


@event.listens_for(_test_engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign keys for SQLite (off by default)."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def session_factory():
    """Create tables for one test and drop them afterwards."""
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield _test_session_factory
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def track_store(session_factory) -> TrackStore:
    return TrackStore(session_factory, OWNER_ID)


@pytest.fixture
async def meeting_client(session_factory) -> Client:
    """A client (wedding couple) owned by the test owner."""
    async with session_factory() as session:
        client = Client(owner_id=OWNER_ID, name="Dana", partner_name="Noam Levi")
        session.add(client)
        await session.commit()
    return client


@pytest.fixture
def selection_store(session_factory, meeting_client) -> SelectionStore:
    return SelectionStore(session_factory, OWNER_ID, meeting_client.id)


@pytest.fixture
def test_app(session_factory):
    """Full application with SQLite and a fixed authenticated owner."""
    application = create_app()
    application.dependency_overrides[get_session_factory] = lambda: session_factory
    application.dependency_overrides[get_current_owner] = lambda: OWNER_ID
    return application


@pytest.fixture
async def client(test_app) -> AsyncClient:
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def owner_id() -> uuid.UUID:
    return OWNER_ID


@pytest.fixture
def other_store(session_factory) -> TrackStore:
    """Store of a second owner sharing the same database."""
    return TrackStore(session_factory, OTHER_OWNER_ID)


# ---------------------------------------------------------------------------
# Manual clock for debounce tests
# ---------------------------------------------------------------------------


class FakeHandle:
    def __init__(self, when: float, callback) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimer:
    """Manually advanced clock implementing the ``Timer`` protocol."""

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: list[FakeHandle] = []

    def call_later(self, delay, callback) -> FakeHandle:
        handle = FakeHandle(self.now + delay, callback)
        self.handles.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = [h for h in self.handles if not h.cancelled and h.when <= self.now + 1e-9]
        self.handles = [h for h in self.handles if h not in due and not h.cancelled]
        for handle in sorted(due, key=lambda h: h.when):
            handle.callback()


@pytest.fixture
def timer() -> FakeTimer:
    return FakeTimer()
