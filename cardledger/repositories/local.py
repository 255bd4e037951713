"""
Card repository over local SQL storage.

Each call opens its own session and commits before returning, so a
repository instance can be shared by concurrent callers.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardledger.db import operations
from cardledger.models.card import Card, CardStats, CardStatus
from cardledger.repositories.base import ChangeFeed


class LocalCardRepository:
    """CardRepository backed by an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                raise

    async def list_cards(self, status: CardStatus | None = None) -> list[Card]:
        async with self._session_factory() as session:
            return await operations.list_cards(session, status)

    async def get_card(self, card_id: int) -> Card | None:
        async with self._session_factory() as session:
            return await operations.get_card(session, card_id)

    async def create_card(self, card: Card) -> Card:
        async with self._transaction() as session:
            return await operations.create_card(session, card)

    async def update_card(self, card: Card) -> Card:
        async with self._transaction() as session:
            return await operations.update_card(session, card)

    async def upsert_card(self, card: Card) -> Card:
        """Insert or overwrite by id, keeping the card's own timestamps."""
        async with self._transaction() as session:
            return await operations.upsert_card(session, card)

    async def delete_card(self, card_id: int) -> None:
        async with self._transaction() as session:
            await operations.delete_card(session, card_id)

    async def list_unpriced(self) -> list[Card]:
        async with self._session_factory() as session:
            return await operations.list_unpriced_cards(session)

    async def list_stale(self, threshold_days: int) -> list[Card]:
        async with self._session_factory() as session:
            return await operations.list_stale_cards(session, threshold_days)

    async def get_stats(self) -> CardStats:
        async with self._session_factory() as session:
            return await operations.get_card_stats(session)

    async def list_changes(self, since: datetime | None) -> ChangeFeed:
        async with self._session_factory() as session:
            cards = await operations.list_cards_updated_since(session, since)
        return ChangeFeed(cards=cards)

    async def sync_summary(self) -> tuple[datetime | None, int]:
        """Latest update time and card count, as reported by /sync/status."""
        async with self._session_factory() as session:
            return await operations.get_sync_summary(session)
