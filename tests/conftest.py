# tests/conftest.py
import os

# Must be set before app.database is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ADMIN_TOKEN"] = ""
os.environ["DISCORD_WEBHOOK_URL"] = ""
os.environ["WORKER_INGRESS_URL"] = ""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from app import models  # noqa: F401  registers tables on Base.metadata
from app.core.config import Settings, get_settings
from app.database import Base
from app.dependencies import get_db, get_discord_transport, get_email_transport, get_worker_transport
from app.main import app
from app.services.dedup_cache import DedupCache
from tests.mocks.mock_transport import MockTransport, MockWorker

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

FIXED_NOW = datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def settings():
    """Provide test settings"""
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        DISCORD_WEBHOOK_URL="https://discord.example/api/webhooks/123/abc",
        SMTP_HOST="smtp.example.com",
        SMTP_USERNAME="alerts@example.com",
        SMTP_PASSWORD="secret",
        NOTIFICATION_EMAILS="ops@example.com, buyer@example.com",
    )


@pytest.fixture
async def test_engine():
    """In-memory SQLite engine with fresh tables per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine):
    """Provide a database session for tests"""
    async_session_local = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with async_session_local() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def dedup_cache():
    return DedupCache(window_ms=5000)


@pytest.fixture
def discord_transport():
    return MockTransport(channel="discord")


@pytest.fixture
def email_transport():
    return MockTransport(channel="email")


@pytest.fixture
def worker_transport():
    return MockWorker()


@pytest.fixture
def route_db_url(tmp_path):
    """File-backed SQLite so the TestClient's own event loop can open connections."""
    path = tmp_path / "routes.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture
def api_client(settings, route_db_url, discord_transport, email_transport, worker_transport):
    """TestClient wired to a real database and in-memory transports."""
    engine = create_async_engine(route_db_url, poolclass=NullPool)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_discord_transport] = lambda: discord_transport
    app.dependency_overrides[get_email_transport] = lambda: email_transport
    app.dependency_overrides[get_worker_transport] = lambda: worker_transport
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
