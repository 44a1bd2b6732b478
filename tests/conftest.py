"""Shared test fixtures."""

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from mobile_money.config import settings
from mobile_money.database import get_session
from mobile_money.main import app
from mobile_money.models.transaction import Base


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Fresh SQLite database per test; each session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def asgi_transport(session_factory):
    """ASGI transport into the FastAPI app, backed by the test database."""

    async def _override():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _override
    yield httpx.ASGITransport(app=app)
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def api_client(asgi_transport):
    async with httpx.AsyncClient(transport=asgi_transport, base_url="http://test/api") as client:
        yield client


@pytest.fixture
def sandbox(monkeypatch):
    monkeypatch.setattr(settings, "simulate_payments", True)
    monkeypatch.setattr(settings, "mock_latency_ms", 0)


@pytest.fixture
def live(monkeypatch):
    monkeypatch.setattr(settings, "simulate_payments", False)
