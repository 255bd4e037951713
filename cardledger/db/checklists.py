"""
Checklist storage operations.

Rows are converted to the plain dataclasses in `cardledger.models.checklist`
on the way out; nothing outside this module sees an ORM object.
"""

from datetime import datetime

from sqlalchemy import ColumnElement, and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger.db.operations import dialect_insert
from cardledger.models.card import utc_now
from cardledger.models.checklist import (
    ChecklistCard,
    ChecklistKey,
    MissingChecklistRecord,
    SetChecklist,
)
from cardledger.models.db import MissingChecklistDB, SetChecklistDB

KEY_COLUMNS = ["manufacturer", "brand", "year", "sport"]


def _key_from_row(row: SetChecklistDB | MissingChecklistDB) -> ChecklistKey:
    return ChecklistKey(
        manufacturer=row.manufacturer,
        brand=row.brand,
        year=row.year,
        sport=row.sport or None,
    )


def checklist_to_model(row: SetChecklistDB) -> SetChecklist:
    """Convert a database checklist to a domain model."""
    return SetChecklist(
        id=row.id,
        key=_key_from_row(row),
        cards=[ChecklistCard.from_dict(card) for card in row.cards or []],
        known_variations=list(row.known_variations or []),
        total_base_cards=row.total_base_cards,
        cached_at=row.cached_at,
        data_source=row.data_source,
        last_enriched_at=row.last_enriched_at,
        version=row.version,
    )


def missing_to_model(row: MissingChecklistDB) -> MissingChecklistRecord:
    """Convert a database miss record to a domain model."""
    return MissingChecklistRecord(
        id=row.id,
        key=_key_from_row(row),
        hit_count=row.hit_count,
        first_seen=row.first_seen,
        last_seen=row.last_seen,
    )


def _checklist_key_clause(key: ChecklistKey) -> ColumnElement[bool]:
    return and_(
        SetChecklistDB.manufacturer == key.manufacturer,
        SetChecklistDB.brand == key.brand,
        SetChecklistDB.year == key.year,
        SetChecklistDB.sport == key.storage_sport,
    )


def _missing_key_clause(key: ChecklistKey) -> ColumnElement[bool]:
    return and_(
        MissingChecklistDB.manufacturer == key.manufacturer,
        MissingChecklistDB.brand == key.brand,
        MissingChecklistDB.year == key.year,
        MissingChecklistDB.sport == key.storage_sport,
    )


def _checklist_values(checklist: SetChecklist) -> dict[str, object]:
    return {
        "cards": [card.to_dict() for card in checklist.cards],
        "known_variations": list(checklist.known_variations),
        "total_base_cards": checklist.total_base_cards,
        "data_source": checklist.data_source,
        "last_enriched_at": checklist.last_enriched_at,
    }


async def get_checklist_by_key(session: AsyncSession, key: ChecklistKey) -> SetChecklist | None:
    """Exact match on all four key parts."""
    result = await session.execute(
        select(SetChecklistDB)
        .where(_checklist_key_clause(key))
        .execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    return checklist_to_model(row) if row else None


async def get_checklist_by_id(session: AsyncSession, checklist_id: int) -> SetChecklist | None:
    result = await session.execute(
        select(SetChecklistDB)
        .where(SetChecklistDB.id == checklist_id)
        .execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    return checklist_to_model(row) if row else None


async def insert_checklist(session: AsyncSession, checklist: SetChecklist) -> SetChecklist:
    """
    Insert a new checklist and resolve any miss record for its key.

    Both statements run in the caller's transaction. A concurrent insert
    of the same key surfaces as IntegrityError.
    """
    key = checklist.key
    values = _checklist_values(checklist)
    result = await session.execute(
        SetChecklistDB.__table__.insert().values(
            manufacturer=key.manufacturer,
            brand=key.brand,
            year=key.year,
            sport=key.storage_sport,
            cached_at=checklist.cached_at,
            version=checklist.version,
            **values,
        )
    )
    await delete_missing(session, key)

    checklist.id = result.inserted_primary_key[0]  # type: ignore[attr-defined]
    return checklist


async def update_checklist(session: AsyncSession, checklist: SetChecklist) -> bool:
    """
    Overwrite the mutable parts of a stored checklist, located by id.

    The write only applies if the stored version is still the one the
    checklist was read at. On success the version moves forward by one and
    True is returned. False means another writer got there first (or the
    row is gone); nothing was written and the caller should re-read.
    """
    stmt = (
        update(SetChecklistDB)
        .where(
            SetChecklistDB.id == checklist.id,
            SetChecklistDB.version == checklist.version,
        )
        .values(**_checklist_values(checklist), version=SetChecklistDB.version + 1)
    )
    result = await session.execute(stmt.execution_options(synchronize_session=False))
    if int(result.rowcount) == 0:  # type: ignore[attr-defined]
        return False
    checklist.version += 1
    return True


async def count_checklists(session: AsyncSession) -> int:
    result = await session.execute(select(func.count(SetChecklistDB.id)))
    return int(result.scalar_one())


async def list_checklists(session: AsyncSession) -> list[SetChecklist]:
    """All checklists ordered by manufacturer, brand, year."""
    result = await session.execute(
        select(SetChecklistDB).order_by(
            SetChecklistDB.manufacturer,
            SetChecklistDB.brand,
            SetChecklistDB.year,
            SetChecklistDB.sport,
        )
    )
    return [checklist_to_model(row) for row in result.scalars().all()]


async def record_miss(
    session: AsyncSession,
    key: ChecklistKey,
    now: datetime | None = None,
) -> MissingChecklistRecord:
    """
    Count one failed lookup for a key.

    A single INSERT ... ON CONFLICT DO UPDATE, so concurrent callers each
    add exactly one hit and `first_seen` is never overwritten.
    """
    now = now or utc_now()
    stmt = dialect_insert(session, MissingChecklistDB.__table__).values(
        manufacturer=key.manufacturer,
        brand=key.brand,
        year=key.year,
        sport=key.storage_sport,
        hit_count=1,
        first_seen=now,
        last_seen=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=KEY_COLUMNS,
        set_={
            "hit_count": MissingChecklistDB.__table__.c.hit_count + 1,
            "last_seen": stmt.excluded.last_seen,
        },
    )
    await session.execute(stmt)

    record = await get_missing(session, key)
    if record is None:
        raise RuntimeError(f"Miss record for {key} vanished after upsert")
    return record


async def get_missing(session: AsyncSession, key: ChecklistKey) -> MissingChecklistRecord | None:
    result = await session.execute(
        select(MissingChecklistDB)
        .where(_missing_key_clause(key))
        .execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    return missing_to_model(row) if row else None


async def delete_missing(session: AsyncSession, key: ChecklistKey) -> bool:
    """Remove the miss record for a key. Returns True if one existed."""
    stmt = delete(MissingChecklistDB).where(_missing_key_clause(key))
    result = await session.execute(stmt.execution_options(synchronize_session=False))
    return int(result.rowcount) > 0  # type: ignore[attr-defined]


async def list_missing(session: AsyncSession) -> list[MissingChecklistRecord]:
    """Unresolved misses, most requested first."""
    result = await session.execute(
        select(MissingChecklistDB).order_by(
            MissingChecklistDB.hit_count.desc(),
            MissingChecklistDB.last_seen.desc(),
        )
    )
    return [missing_to_model(row) for row in result.scalars().all()]
