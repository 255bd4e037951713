"""
SQLAlchemy ORM models for persistent storage.

Every NOT NULL column carries a server default so schema evolution can add
it to an existing table. Unique keys are declared as unique indexes rather
than table constraints because SQLite can create an index on a live table
but cannot add a constraint to one.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    false,
    text,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Server-side rendering of models.card.EARLIEST
EARLIEST_SQL = text("'0001-01-01 00:00:00.000000'")


class UTCDateTime(TypeDecorator[datetime]):
    """
    Timestamp stored as naive UTC, returned as aware UTC.

    Sync compares timestamps in SQL, so every stored value has to be in
    the same zone and format.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CardDB(Base):
    """Inventory card record."""

    __tablename__ = "cards"
    __table_args__ = (
        Index("ix_cards_status", "status"),
        Index("ix_cards_sport", "sport"),
        Index("ix_cards_player_name", "player_name"),
        Index("ix_cards_updated_at", "updated_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    player_name: Mapped[str] = mapped_column(String(255), server_default=text("''"))
    card_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sport: Mapped[str | None] = mapped_column(String(50), nullable=True)

    manufacturer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(255), nullable=True)
    set_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    team: Mapped[str | None] = mapped_column(String(255), nullable=True)

    variation_type: Mapped[str] = mapped_column(String(50), server_default=text("'Base'"))
    parallel_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    serial_numbered: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_rookie: Mapped[bool] = mapped_column(Boolean, server_default=false())
    is_auto: Mapped[bool] = mapped_column(Boolean, server_default=false())
    is_relic: Mapped[bool] = mapped_column(Boolean, server_default=false())

    condition: Mapped[str] = mapped_column(String(50), server_default=text("'Near Mint'"))
    is_graded: Mapped[bool] = mapped_column(Boolean, server_default=false())
    grade_company: Mapped[str | None] = mapped_column(String(50), nullable=True)
    grade_value: Mapped[str | None] = mapped_column(String(20), nullable=True)

    cost_basis: Mapped[float | None] = mapped_column(Float, nullable=True)
    estimated_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    listing_price: Mapped[float | None] = mapped_column(Float, nullable=True)

    sale_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    sale_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, server_default=text("1"))
    status: Mapped[str] = mapped_column(String(20), server_default=text("'draft'"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, server_default=EARLIEST_SQL)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, server_default=EARLIEST_SQL)

    def __repr__(self) -> str:
        return f"<CardDB(id={self.id}, player={self.player_name})>"


class SetChecklistDB(Base):
    """
    Reference checklist for one card set.

    Cards and variations are stored as JSON lists inside the row.
    """

    __tablename__ = "set_checklists"
    __table_args__ = (
        Index(
            "ix_set_checklists_key",
            "manufacturer",
            "brand",
            "year",
            "sport",
            unique=True,
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    manufacturer: Mapped[str] = mapped_column(String(255))
    brand: Mapped[str] = mapped_column(String(255))
    year: Mapped[int] = mapped_column(Integer)
    sport: Mapped[str] = mapped_column(String(50), server_default=text("''"))

    cards: Mapped[list[dict[str, Any]]] = mapped_column(JSON, server_default=text("'[]'"))
    known_variations: Mapped[list[str]] = mapped_column(JSON, server_default=text("'[]'"))
    total_base_cards: Mapped[int] = mapped_column(Integer, server_default=text("0"))
    cached_at: Mapped[datetime] = mapped_column(UTCDateTime, server_default=EARLIEST_SQL)

    # Plain string tag so new sources need no migration
    data_source: Mapped[str] = mapped_column(String(20), server_default=text("'seed'"))
    last_enriched_at: Mapped[datetime] = mapped_column(UTCDateTime, server_default=EARLIEST_SQL)

    # Bumped by every update; writers only apply changes to the version they read
    version: Mapped[int] = mapped_column(Integer, server_default=text("0"))

    def __repr__(self) -> str:
        return f"<SetChecklistDB(brand={self.brand}, year={self.year})>"


class MissingChecklistDB(Base):
    """Negative cache entry for a checklist key that was not found."""

    __tablename__ = "missing_checklists"
    __table_args__ = (
        Index(
            "ix_missing_checklists_key",
            "manufacturer",
            "brand",
            "year",
            "sport",
            unique=True,
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    manufacturer: Mapped[str] = mapped_column(String(255))
    brand: Mapped[str] = mapped_column(String(255))
    year: Mapped[int] = mapped_column(Integer)
    sport: Mapped[str] = mapped_column(String(50), server_default=text("''"))

    hit_count: Mapped[int] = mapped_column(Integer, server_default=text("1"))
    first_seen: Mapped[datetime] = mapped_column(UTCDateTime, server_default=EARLIEST_SQL)
    last_seen: Mapped[datetime] = mapped_column(UTCDateTime, server_default=EARLIEST_SQL)

    def __repr__(self) -> str:
        return f"<MissingChecklistDB(brand={self.brand}, hits={self.hit_count})>"
