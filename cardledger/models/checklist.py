from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from cardledger.models.card import EARLIEST, utc_now


class DataSource(str, Enum):
    """Where checklist data came from, in increasing order of trust."""

    SEED = "seed"
    LEARNED = "learned"
    ENRICHED = "enriched"

    @property
    def rank(self) -> int:
        return _SOURCE_RANKS[self.value]


_SOURCE_RANKS: dict[str, int] = {
    "seed": 0,
    "learned": 1,
    "enriched": 2,
    # Tags written by older versions of the store
    "mixed": 1,
    "imported": 2,
}


def source_rank(tag: str) -> int:
    """
    Rank of a stored data-source tag.

    Tags are stored as plain strings, so unknown values can exist; they
    rank below seed and are replaced by any merge.
    """
    return _SOURCE_RANKS.get(tag, -1)


@dataclass(frozen=True, slots=True)
class ChecklistKey:
    """
    Identity of one physical card set.

    A key without a sport is distinct from the same key with one.
    """

    manufacturer: str
    brand: str
    year: int
    sport: str | None = None

    @property
    def storage_sport(self) -> str:
        """Sport as persisted; absent sport is stored as an empty string."""
        return self.sport or ""

    def __str__(self) -> str:
        label = f"{self.year} {self.manufacturer} {self.brand}"
        return f"{label} ({self.sport})" if self.sport else label


@dataclass(frozen=True, slots=True)
class ChecklistCard:
    """One card's metadata within a set checklist."""

    card_number: str
    player_name: str
    team: str | None = None
    is_rookie: bool = False
    subset: str | None = None
    source: str = DataSource.SEED.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "card_number": self.card_number,
            "player_name": self.player_name,
            "team": self.team,
            "is_rookie": self.is_rookie,
            "subset": self.subset,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChecklistCard":
        return cls(
            card_number=str(data["card_number"]),
            player_name=data.get("player_name", ""),
            team=data.get("team"),
            is_rookie=bool(data.get("is_rookie", False)),
            subset=data.get("subset"),
            source=data.get("source", DataSource.SEED.value),
        )


@dataclass
class SetChecklist:
    """
    The reference listing of cards in one set.

    Attributes:
        key: Manufacturer/brand/year/sport identity
        cards: Known cards, unique by card number
        known_variations: Known parallel/variation names
        total_base_cards: Size of the base set as far as anyone has reported
        cached_at: When the checklist was first stored
        data_source: Stored source tag (seed, learned, enriched)
        last_enriched_at: Last learned/enriched merge, EARLIEST if never
        version: Storage revision the checklist was read at
    """

    key: ChecklistKey
    cards: list[ChecklistCard] = field(default_factory=list)
    known_variations: list[str] = field(default_factory=list)
    total_base_cards: int = 0
    cached_at: datetime = field(default_factory=utc_now)
    data_source: str = DataSource.SEED.value
    last_enriched_at: datetime = EARLIEST
    id: int | None = None
    version: int = 0

    def card_numbers(self) -> list[str]:
        return [card.card_number for card in self.cards]


@dataclass
class MissingChecklistRecord:
    """A checklist key that was looked up and not found."""

    key: ChecklistKey
    hit_count: int
    first_seen: datetime
    last_seen: datetime
    id: int | None = None


def is_stale(
    checklist: SetChecklist,
    max_age_days: int | None,
    now: datetime | None = None,
) -> bool:
    """
    Whether a checklist is old enough to be worth enriching again.

    Seed checklists never go stale by age. Other checklists go stale only
    when the caller supplies a maximum age.
    """
    if checklist.data_source == DataSource.SEED.value or max_age_days is None:
        return False
    now = now or utc_now()
    return checklist.last_enriched_at < now - timedelta(days=max_age_days)
