"""
VoiceNotes Backend — Test Configuration (conftest.py)
=======================================================

Fixture Hierarchy (all function-scoped):
    ├── mock_db_session: AsyncMock session for pure service unit tests
    ├── db_engine: in-memory SQLite (StaticPool) with all tables created
    ├── session_factory: async_sessionmaker bound to db_engine
    ├── current_user: mutable {"id": ...}; tests switch users through it
    ├── client: AsyncClient with DB and auth dependencies overridden
    └── anon_client: AsyncClient with only the DB overridden (real auth)
"""

import os
import tempfile

# Must run before any voicenotes import: settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="voicenotes_test_")
os.environ["PUBLIC_BASE_URL"] = "http://test"
os.environ["CLERK_ISSUER"] = "https://clerk.test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"

from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from voicenotes.database import Base, get_db_session  # noqa: E402
from voicenotes.dependencies import get_current_user  # noqa: E402
from voicenotes.main import app  # noqa: E402
from voicenotes.models.note import Note  # noqa: E402,F401
from voicenotes.schemas.auth import AuthUser  # noqa: E402

ALICE = "user_alice"
BOB = "user_bob"


@pytest.fixture
def mock_db_session():
    """
    AsyncMock standing in for AsyncSession.

    Usage:
        mock_db_session.get.return_value = note
        await note_service.get_note(mock_db_session, ALICE, 1)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock()
    session.flush = AsyncMock()
    session.delete = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    return session


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
def current_user():
    """The user the `client` fixture authenticates as; reassign ["id"] to switch."""
    return {"id": ALICE}


def _override_db(session_factory):
    async def override():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return override


@pytest_asyncio.fixture
async def client(session_factory, current_user):
    app.dependency_overrides[get_db_session] = _override_db(session_factory)
    app.dependency_overrides[get_current_user] = lambda: AuthUser(id=current_user["id"])

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def anon_client(session_factory):
    app.dependency_overrides[get_db_session] = _override_db(session_factory)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
