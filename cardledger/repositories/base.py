"""
Card repository contract.

Local storage and the remote sync server implement the same operations and
raise the same `cardledger.models.failure` types, so the sync coordinator
and the API never need to know which one they were handed.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from cardledger.models.card import Card, CardStats, CardStatus


@dataclass
class RejectedRecord:
    """A record in a change feed that could not be read as a card."""

    card_id: Any
    message: str


@dataclass
class ChangeFeed:
    """
    Cards changed after a checkpoint.

    Attributes:
        cards: Valid changed cards, oldest update first
        rejected: Records that failed validation; reported, not raised
    """

    cards: list[Card] = field(default_factory=list)
    rejected: list[RejectedRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.cards)


class CardRepository(Protocol):
    """Storage-agnostic card operations."""

    async def list_cards(self, status: CardStatus | None = None) -> list[Card]: ...

    async def get_card(self, card_id: int) -> Card | None: ...

    async def create_card(self, card: Card) -> Card: ...

    async def update_card(self, card: Card) -> Card: ...

    async def delete_card(self, card_id: int) -> None: ...

    async def list_unpriced(self) -> list[Card]: ...

    async def list_stale(self, threshold_days: int) -> list[Card]: ...

    async def get_stats(self) -> CardStats: ...

    async def list_changes(self, since: datetime | None) -> ChangeFeed: ...
