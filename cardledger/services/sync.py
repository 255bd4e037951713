"""
Card synchronization between a local store and a remote authority.

A cycle moves through idle -> pulling -> merging -> pushing -> idle:

- pull: fetch remote cards updated strictly after a checkpoint and upsert
  each one locally by id, keeping the remote timestamps
- push: send local cards to the remote one at a time; a card the remote
  does not know is reported and skipped, never created

Conflicts are last-writer-wins on the whole record. A card edited on both
sides between syncs keeps whichever version was written last.

Per-item failures are collected into the result, never raised. Cancellation
is checked before each item, so an item already in flight always finishes.
"""

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ValidationError

from cardledger.models.card import Card
from cardledger.models.failure import KnownError, RecordValidationError
from cardledger.models.sync import PushSummary
from cardledger.repositories.base import CardRepository
from cardledger.repositories.local import LocalCardRepository

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    IDLE = "idle"
    PULLING = "pulling"
    MERGING = "merging"
    PUSHING = "pushing"


class PushOutcome(str, Enum):
    SYNCED = "synced"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class PushItemResult:
    """What happened to one pushed record."""

    card_id: Any
    outcome: PushOutcome
    message: str | None = None


@dataclass
class PushResult:
    """Outcome of a pushed batch, in input order."""

    items: list[PushItemResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def synced(self) -> int:
        return sum(1 for item in self.items if item.outcome is PushOutcome.SYNCED)

    @property
    def failed(self) -> int:
        return len(self.items) - self.synced

    @property
    def errors(self) -> list[str]:
        return [item.message for item in self.items if item.message]

    def to_summary(self) -> PushSummary:
        return PushSummary(synced=self.synced, failed=self.failed, errors=self.errors)


@dataclass
class PullResult:
    """Cards merged locally by a pull, plus per-record errors."""

    cards: list[Card] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def pulled(self) -> int:
        return len(self.cards)

    @property
    def latest_update(self) -> datetime | None:
        """Newest `updated_at` among merged cards, None if nothing merged."""
        return max((card.updated_at for card in self.cards), default=None)


@dataclass
class SyncCycleResult:
    pull: PullResult
    push: PushResult
    checkpoint: datetime | None


def _describe(error: Exception) -> str:
    if isinstance(error, KnownError):
        return error.message
    if isinstance(error, ValidationError):
        return f"invalid record ({error.error_count()} validation errors)"
    return str(error) or type(error).__name__


def _record_id(record: Card | Mapping[str, Any]) -> Any:
    if isinstance(record, Card):
        return record.id
    if isinstance(record, Mapping):
        return record.get("id")
    return None


def _cancelled(cancel: asyncio.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


class SyncCoordinator:
    """
    Drives pull and push between two card repositories.

    Args:
        remote: The authority cards are pulled from and pushed to
        local: Store pulled cards are merged into; required for pull
        log: Logger, defaults to this module's logger
    """

    def __init__(
        self,
        remote: CardRepository,
        local: LocalCardRepository | None = None,
        log: logging.Logger | None = None,
    ):
        self._remote = remote
        self._local = local
        self._log = log or logger
        self.phase = SyncPhase.IDLE

    def _require_local(self) -> LocalCardRepository:
        if self._local is None:
            raise RuntimeError("Pulling requires a local repository")
        return self._local

    async def pull(
        self,
        since: datetime | None,
        cancel: asyncio.Event | None = None,
    ) -> PullResult:
        """
        Merge remote cards updated strictly after `since` into local storage.

        A card updated exactly at `since` is not pulled. None pulls
        everything. Failure to fetch the feed itself raises TransportError.
        """
        local = self._require_local()
        result = PullResult()

        self.phase = SyncPhase.PULLING
        try:
            feed = await self._remote.list_changes(since)
            result.errors.extend(rejected.message for rejected in feed.rejected)
            self._log.info(
                "Pulled %d changed cards since %s (%d rejected)",
                len(feed.cards),
                since,
                len(feed.rejected),
            )

            self.phase = SyncPhase.MERGING
            for card in feed.cards:
                if _cancelled(cancel):
                    result.cancelled = True
                    self._log.info("Pull cancelled after %d cards", result.pulled)
                    break
                try:
                    await local.upsert_card(card)
                except Exception as e:
                    self._log.warning("Could not merge card %s: %s", card.id, e)
                    result.errors.append(f"Card {card.id}: {_describe(e)}")
                    continue
                result.cards.append(card)
        finally:
            self.phase = SyncPhase.IDLE

        return result

    async def push(
        self,
        records: Iterable[Card | Mapping[str, Any]],
        cancel: asyncio.Event | None = None,
    ) -> PushResult:
        """
        Send cards to the remote one at a time.

        Only cards the remote already has are updated. Raw mappings are
        validated per item, so one malformed record fails alone.
        """
        result = PushResult()

        self.phase = SyncPhase.PUSHING
        try:
            for record in records:
                if _cancelled(cancel):
                    result.cancelled = True
                    self._log.info("Push cancelled after %d cards", len(result.items))
                    break
                result.items.append(await self._push_one(record))
        finally:
            self.phase = SyncPhase.IDLE

        self._log.info("Push complete: %d synced, %d failed", result.synced, result.failed)
        return result

    async def _push_one(self, record: Card | Mapping[str, Any]) -> PushItemResult:
        card_id = _record_id(record)
        try:
            card = record if isinstance(record, Card) else Card.model_validate(record)
            if card.id is None:
                raise RecordValidationError("record has no id")

            if await self._remote.get_card(card.id) is None:
                message = f"Card {card.id} not found on server - skipping"
                self._log.warning(message)
                return PushItemResult(card.id, PushOutcome.NOT_FOUND, message)

            await self._remote.update_card(card)
            return PushItemResult(card.id, PushOutcome.SYNCED)
        except Exception as e:
            message = f"Card {card_id}: {_describe(e)}"
            self._log.warning("Push failed: %s", message)
            return PushItemResult(card_id, PushOutcome.ERROR, message)

    async def run_cycle(
        self,
        since: datetime | None,
        cancel: asyncio.Event | None = None,
    ) -> SyncCycleResult:
        """
        One full cycle: snapshot local changes, pull, then push the snapshot.

        The snapshot is taken before pulling so pulled cards are not echoed
        back. The returned checkpoint is the newest pulled `updated_at`, or
        `since` when nothing was pulled.
        """
        local = self._require_local()
        snapshot = await local.list_changes(since)
        self._log.info("Sync cycle from %s: %d local changes", since, len(snapshot.cards))

        pull = await self.pull(since, cancel)
        if pull.cancelled:
            push = PushResult(cancelled=True)
        else:
            push = await self.push(snapshot.cards, cancel)

        checkpoint = pull.latest_update or since
        return SyncCycleResult(pull=pull, push=push, checkpoint=checkpoint)
