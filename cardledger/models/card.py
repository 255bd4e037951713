from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Stand-in for "no timestamp yet"; sorts before every real update.
EARLIEST = datetime(1, 1, 1, tzinfo=UTC)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class CardStatus(str, Enum):
    """Where a card is in the listing workflow."""

    DRAFT = "draft"
    PRICED = "priced"
    READY = "ready"
    LISTED = "listed"
    SOLD = "sold"


class Card(BaseModel):
    """
    A sellable card record and the unit of synchronization.

    Sync only interprets `id` and `updated_at`; every other field is
    owned by the inventory application and copied whole.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None

    # Identity
    player_name: str = Field(..., min_length=1)
    card_number: str | None = None
    year: int | None = None
    sport: str | None = None

    # Manufacturer / set
    manufacturer: str | None = None
    brand: str | None = None
    set_name: str | None = None
    team: str | None = None

    # Variation / parallel
    variation_type: str = "Base"
    parallel_name: str | None = None
    serial_numbered: str | None = None

    is_rookie: bool = False
    is_auto: bool = False
    is_relic: bool = False

    # Condition / grading
    condition: str = "Near Mint"
    is_graded: bool = False
    grade_company: str | None = None
    grade_value: str | None = None

    # Cost and pricing
    cost_basis: float | None = None
    estimated_value: float | None = None
    price_date: datetime | None = None
    listing_price: float | None = None

    # Sale
    sale_price: float | None = None
    sale_date: datetime | None = None

    quantity: int = Field(default=1, ge=0)
    status: CardStatus = CardStatus.DRAFT
    notes: str | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("player_name")
    @classmethod
    def _player_name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("player_name cannot be blank")
        return value

    @field_validator("created_at", "updated_at", "price_date", "sale_date")
    @classmethod
    def _normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    def is_priced(self) -> bool:
        """True when a positive listing price is set."""
        return self.listing_price is not None and self.listing_price > 0


class CardStats(BaseModel):
    """Aggregate inventory statistics."""

    total_cards: int = 0
    priced_cards: int = 0
    unpriced_cards: int = 0
    total_value: float = 0.0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_sport: dict[str, int] = Field(default_factory=dict)
