from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cardledger.db.database import get_session, get_session_factory
from cardledger.main import app
from cardledger.models.card import Card
from cardledger.models.db import Base
from cardledger.repositories.local import LocalCardRepository


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def local_repository(session_factory: async_sessionmaker[AsyncSession]) -> LocalCardRepository:
    return LocalCardRepository(session_factory)


@pytest.fixture
async def client(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncClient]:
    """Provide an async test client bound to the test database."""

    async def override_get_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_card() -> Callable[..., Card]:
    """Factory for cards with sensible defaults."""

    def _make(**overrides: Any) -> Card:
        fields: dict[str, Any] = {
            "player_name": "Shohei Ohtani",
            "card_number": "1",
            "year": 2023,
            "sport": "Baseball",
            "manufacturer": "Topps",
            "brand": "Chrome",
            "team": "Los Angeles Angels",
        }
        fields.update(overrides)
        return Card(**fields)

    return _make
