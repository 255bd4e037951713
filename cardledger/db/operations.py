"""
Card storage operations.

Each function issues explicit select/insert/update/delete statements
against the session it is given and returns domain models. Callers own
the transaction.
"""

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Table, delete, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger.models.card import Card, CardStats, CardStatus, as_utc, utc_now
from cardledger.models.db import CardDB
from cardledger.models.failure import NotFoundError, RecordValidationError


def dialect_insert(session: AsyncSession, table: Table) -> Any:
    """
    INSERT construct supporting ON CONFLICT for the session's dialect.

    Raises:
        RuntimeError: If the dialect has no upsert support here
    """
    dialect_name = session.get_bind().dialect.name
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    raise RuntimeError(f"Upsert is not supported for dialect {dialect_name}")


def card_to_model(row: CardDB) -> Card:
    """Convert a database card to a domain model."""
    return Card.model_validate(row)


def _card_values(card: Card) -> dict[str, Any]:
    values = card.model_dump(exclude={"id"})
    values["status"] = card.status.value
    return values


async def get_card(session: AsyncSession, card_id: int) -> Card | None:
    """
    Get a card by id.

    Returns None if no card exists with this id.
    """
    result = await session.execute(select(CardDB).where(CardDB.id == card_id))
    row = result.scalar_one_or_none()
    return card_to_model(row) if row else None


async def list_cards(session: AsyncSession, status: CardStatus | None = None) -> list[Card]:
    """List cards, newest first, optionally filtered by status."""
    query = select(CardDB)
    if status is not None:
        query = query.where(CardDB.status == status.value)
    result = await session.execute(query.order_by(CardDB.created_at.desc(), CardDB.id.desc()))
    return [card_to_model(row) for row in result.scalars().all()]


async def create_card(session: AsyncSession, card: Card) -> Card:
    """
    Insert a new card.

    The database assigns the id; both timestamps are set to now.
    """
    if card.id is not None:
        raise RecordValidationError("New cards must not carry an id", detail=f"id={card.id}")

    now = utc_now()
    values = _card_values(card)
    values["created_at"] = now
    values["updated_at"] = now

    result = await session.execute(CardDB.__table__.insert().values(**values))
    card_id = result.inserted_primary_key[0]  # type: ignore[attr-defined]
    return card.model_copy(update={"id": card_id, "created_at": now, "updated_at": now})


async def update_card(session: AsyncSession, card: Card) -> Card:
    """
    Overwrite an existing card with the given record.

    Every field except `created_at` is replaced; `updated_at` becomes now.

    Raises:
        NotFoundError: If no card exists with this id
    """
    if card.id is None:
        raise RecordValidationError("Cannot update a card without an id")

    now = utc_now()
    values = _card_values(card)
    values.pop("created_at")
    values["updated_at"] = now

    stmt = update(CardDB).where(CardDB.id == card.id).values(**values)
    result = await session.execute(stmt.execution_options(synchronize_session=False))
    # rowcount is available on UPDATE results; type stubs incomplete for async
    if int(result.rowcount) == 0:  # type: ignore[attr-defined]
        raise NotFoundError(f"Card {card.id} not found")

    stored = await get_card(session, card.id)
    if stored is None:
        raise NotFoundError(f"Card {card.id} not found")
    return stored


async def upsert_card(session: AsyncSession, card: Card) -> Card:
    """
    Insert or replace a card keyed on id, keeping its timestamps.

    Used when merging records pulled from another store, where the
    incoming `updated_at` is the consistency signal and must survive.
    """
    if card.id is None:
        raise RecordValidationError("Cannot upsert a card without an id")

    values = _card_values(card)
    stmt = dialect_insert(session, CardDB.__table__).values(id=card.id, **values)
    stmt = stmt.on_conflict_do_update(index_elements=["id"], set_=values)
    await session.execute(stmt)
    return card


async def delete_card(session: AsyncSession, card_id: int) -> None:
    """
    Delete a card.

    Raises:
        NotFoundError: If no card exists with this id
    """
    stmt = delete(CardDB).where(CardDB.id == card_id)
    result = await session.execute(stmt.execution_options(synchronize_session=False))
    if int(result.rowcount) == 0:  # type: ignore[attr-defined]
        raise NotFoundError(f"Card {card_id} not found")


async def list_cards_updated_since(session: AsyncSession, since: datetime | None) -> list[Card]:
    """
    Cards whose `updated_at` is strictly after `since`.

    A card updated at exactly `since` is excluded. Returns every card when
    `since` is None.
    """
    query = select(CardDB)
    if since is not None:
        query = query.where(CardDB.updated_at > as_utc(since))
    result = await session.execute(query.order_by(CardDB.updated_at, CardDB.id))
    return [card_to_model(row) for row in result.scalars().all()]


async def list_unpriced_cards(session: AsyncSession) -> list[Card]:
    """Cards with no listing price or a zero listing price."""
    result = await session.execute(
        select(CardDB)
        .where(or_(CardDB.listing_price.is_(None), CardDB.listing_price == 0))
        .order_by(CardDB.created_at.desc(), CardDB.id.desc())
    )
    return [card_to_model(row) for row in result.scalars().all()]


async def list_stale_cards(session: AsyncSession, threshold_days: int) -> list[Card]:
    """
    Unsold, non-draft cards whose price is older than the threshold.

    Oldest price first.
    """
    threshold = utc_now() - timedelta(days=threshold_days)
    result = await session.execute(
        select(CardDB)
        .where(
            CardDB.status.not_in([CardStatus.SOLD.value, CardStatus.DRAFT.value]),
            CardDB.price_date.is_not(None),
            CardDB.price_date < threshold,
        )
        .order_by(CardDB.price_date)
    )
    return [card_to_model(row) for row in result.scalars().all()]


async def get_card_stats(session: AsyncSession) -> CardStats:
    """Aggregate counts and listing value across the inventory."""
    priced = CardDB.listing_price > 0
    totals = await session.execute(
        select(
            func.count(CardDB.id),
            func.count(CardDB.id).filter(priced),
            func.coalesce(func.sum(CardDB.listing_price), 0.0),
        )
    )
    total, priced_count, total_value = totals.one()

    by_status = await session.execute(
        select(CardDB.status, func.count(CardDB.id)).group_by(CardDB.status)
    )
    by_sport = await session.execute(
        select(CardDB.sport, func.count(CardDB.id)).group_by(CardDB.sport)
    )

    return CardStats(
        total_cards=total,
        priced_cards=priced_count,
        unpriced_cards=total - priced_count,
        total_value=float(total_value),
        by_status={status: count for status, count in by_status.all()},
        by_sport={sport or "Unknown": count for sport, count in by_sport.all()},
    )


async def get_sync_summary(session: AsyncSession) -> tuple[datetime | None, int]:
    """Latest `updated_at` across all cards (None if empty) and the card count."""
    result = await session.execute(select(func.max(CardDB.updated_at), func.count(CardDB.id)))
    last_updated, count = result.one()
    return last_updated, count
