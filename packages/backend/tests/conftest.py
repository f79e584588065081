"""Test fixtures — a fresh in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own in-memory SQLite engine (aiosqlite). StaticPool
   keeps the single connection alive so every session sees the same DB.
2. Tables are created from the ORM metadata — no migrations needed.
3. The app's get_db dependency is overridden to hand out sessions from
   that engine, so HTTP tests exercise the real routes end to end.

Env vars are set before anything imports newtab_auth.config, so the
settings singleton picks them up (cheap bcrypt, SQLite default URL).
"""

import os

os.environ.setdefault("NEWTAB_AUTH_BCRYPT_ROUNDS", "4")
os.environ.setdefault("NEWTAB_AUTH_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("NEWTAB_AUTH_STORE_TIMEOUT_SECONDS", "2")

import uuid
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from newtab_auth.auth.jwt import TokenCodec
from newtab_auth.db.engine import get_db
from newtab_auth.db.models import Base
from newtab_auth.main import app
from newtab_auth.services.identity_service import IdentityService

TEST_SECRET = "test-jwt-secret-for-testing-only"


@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def codec():
    return TokenCodec(
        secret=TEST_SECRET,
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
    )


@pytest.fixture()
def service(db_session, codec):
    return IdentityService(db_session, codec)


@pytest.fixture()
def unique_email():
    """Factory for throwaway registration addresses."""
    def _make(prefix: str = "user") -> str:
        return f"{prefix}-{uuid.uuid4().hex[:8]}@newtab.io"
    return _make


@pytest_asyncio.fixture()
async def client(session_factory):
    """HTTP client against the real app, backed by the per-test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
