"""
Checklist cache.

Holds the "known cards per set" reference data and a negative cache of
lookups that found nothing. Checklists are never deleted, only merged into:

- cards are unioned by normalized card number; existing entries win
- variations are unioned by normalized parallel name
- the data-source tag only moves up (seed < learned < enriched)
- total_base_cards only grows

Miss tracking is a single atomic upsert per lookup, so concurrent lookups
for the same missing key each count exactly once. Merges are optimistic:
the update only lands on the version that was read, and a merge that loses
the race re-reads and merges again.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from pathlib import Path

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardledger.db import checklists as store
from cardledger.models.card import EARLIEST, Card, utc_now
from cardledger.models.checklist import (
    ChecklistCard,
    ChecklistKey,
    DataSource,
    MissingChecklistRecord,
    SetChecklist,
    source_rank,
)
from cardledger.models.failure import (
    ConflictError,
    NotFoundError,
    RecordValidationError,
    SeedEntryError,
)
from cardledger.services.card_matching import normalize_card_number, normalize_parallel_name
from cardledger.services.seed_data import (
    BundledDefinition,
    SeedChecklistDefinition,
    find_definition,
    load_bundled_definitions,
    parse_definition,
)

logger = logging.getLogger(__name__)

# Attempts at an optimistic merge before giving up on a contended checklist
MERGE_ATTEMPTS = 10


@dataclass
class MergeResult:
    """Outcome of merging data into one checklist."""

    created: bool
    cards_added: int
    variations_added: int
    checklist: SetChecklist


@dataclass
class SeedResult:
    """
    Outcome of seeding an empty store.

    Attributes:
        seeded: Keys of the checklists inserted
        skipped: True when the store already held checklists
        errors: One entry per definition that could not be inserted
    """

    seeded: list[ChecklistKey] = field(default_factory=list)
    skipped: bool = False
    errors: list[SeedEntryError] = field(default_factory=list)


@dataclass
class LookupResult:
    """A checklist, or the miss recorded because there was none."""

    checklist: SetChecklist | None = None
    miss: MissingChecklistRecord | None = None

    @property
    def found(self) -> bool:
        return self.checklist is not None


def _validate_key(key: ChecklistKey) -> None:
    if not key.manufacturer.strip() or not key.brand.strip():
        raise RecordValidationError(
            "Checklist key needs a manufacturer and a brand", detail=str(key)
        )


def merge_into(
    checklist: SetChecklist,
    cards: Iterable[ChecklistCard],
    variations: Iterable[str],
    source: DataSource,
    total_base_cards: int = 0,
) -> tuple[int, int]:
    """
    Merge new data into a checklist in place.

    Added cards are tagged with `source`. Returns the number of cards and
    variations added.
    """
    known_numbers = {normalize_card_number(card.card_number) for card in checklist.cards}
    cards_added = 0
    for card in cards:
        number = normalize_card_number(card.card_number)
        if not number or number in known_numbers:
            continue
        checklist.cards.append(replace(card, source=source.value))
        known_numbers.add(number)
        cards_added += 1

    known_variations = {normalize_parallel_name(name) for name in checklist.known_variations}
    variations_added = 0
    for name in variations:
        normalized = normalize_parallel_name(name)
        if not normalized or normalized in known_variations:
            continue
        checklist.known_variations.append(name.strip())
        known_variations.add(normalized)
        variations_added += 1

    if source.rank >= source_rank(checklist.data_source):
        checklist.data_source = source.value
    checklist.total_base_cards = max(checklist.total_base_cards, total_base_cards)
    if source is not DataSource.SEED:
        checklist.last_enriched_at = utc_now()

    return cards_added, variations_added


class ChecklistCache:
    """
    Persistent checklist store with miss tracking and learning.

    Merges through one instance are serialized, which keeps retries rare
    inside a process. Other instances and processes are handled by the
    version check in storage: a lost update or a unique-key race is merged
    again from a fresh read, up to MERGE_ATTEMPTS times.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        log: logging.Logger | None = None,
        definitions: list[BundledDefinition] | None = None,
        learning_enabled: bool = True,
    ):
        self._session_factory = session_factory
        self._log = log or logger
        self._definitions = definitions
        self._learning_enabled = learning_enabled
        self._merge_lock = asyncio.Lock()

    @property
    def definitions(self) -> list[BundledDefinition]:
        """Bundled definitions, read from the package on first use."""
        if self._definitions is None:
            self._definitions = load_bundled_definitions()
        return self._definitions

    async def lookup(self, key: ChecklistKey) -> SetChecklist | None:
        """Exact match on manufacturer, brand, year and sport."""
        async with self._session_factory() as session:
            return await store.get_checklist_by_key(session, key)

    async def record_miss(self, key: ChecklistKey) -> MissingChecklistRecord:
        """Count one failed lookup for a key."""
        _validate_key(key)
        async with self._session_factory() as session:
            record = await store.record_miss(session, key)
            await session.commit()
        self._log.debug("Recorded miss for %s (hits=%d)", key, record.hit_count)
        return record

    async def lookup_or_record_miss(self, key: ChecklistKey) -> LookupResult:
        checklist = await self.lookup(key)
        if checklist is not None:
            return LookupResult(checklist=checklist)
        return LookupResult(miss=await self.record_miss(key))

    async def merge(
        self,
        key: ChecklistKey,
        cards: Iterable[ChecklistCard] = (),
        variations: Iterable[str] = (),
        source: DataSource = DataSource.LEARNED,
        total_base_cards: int = 0,
    ) -> MergeResult:
        """
        Create the checklist for a key, or merge into the existing one.

        Creating a checklist also resolves any miss record for its key.

        Raises:
            ConflictError: If other writers changed the checklist on every attempt
        """
        _validate_key(key)
        cards = list(cards)
        variations = list(variations)

        async with self._merge_lock:
            for attempt in range(1, MERGE_ATTEMPTS + 1):
                try:
                    result = await self._merge_once(
                        key, cards, variations, source, total_base_cards
                    )
                except IntegrityError:
                    # Another writer created the key between our read and insert
                    self._log.info("Checklist %s created concurrently, merging again", key)
                    continue
                if result is not None:
                    return result
                self._log.info(
                    "Checklist %s changed during merge (attempt %d), merging again", key, attempt
                )

        raise ConflictError(
            f"Checklist {key} kept changing during merge",
            detail=f"gave up after {MERGE_ATTEMPTS} attempts",
        )

    async def _merge_once(
        self,
        key: ChecklistKey,
        cards: list[ChecklistCard],
        variations: list[str],
        source: DataSource,
        total_base_cards: int,
    ) -> MergeResult | None:
        """One read-merge-write pass. None if the stored version moved on."""
        async with self._session_factory() as session:
            try:
                existing = await store.get_checklist_by_key(session, key)
                if existing is None:
                    checklist = SetChecklist(
                        key=key,
                        cached_at=utc_now(),
                        data_source=source.value,
                        last_enriched_at=EARLIEST,
                    )
                    cards_added, variations_added = merge_into(
                        checklist, cards, variations, source, total_base_cards
                    )
                    await store.insert_checklist(session, checklist)
                else:
                    checklist = existing
                    cards_added, variations_added = merge_into(
                        checklist, cards, variations, source, total_base_cards
                    )
                    if not await store.update_checklist(session, checklist):
                        await session.rollback()
                        return None
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                raise

        created = existing is None
        self._log.info(
            "%s checklist %s (%s): +%d cards, +%d variations",
            "Created" if created else "Merged into",
            key,
            checklist.data_source,
            cards_added,
            variations_added,
        )
        return MergeResult(
            created=created,
            cards_added=cards_added,
            variations_added=variations_added,
            checklist=checklist,
        )

    async def seed_if_empty(self, definitions: list[BundledDefinition] | None = None) -> SeedResult:
        """
        Load bundled definitions into an empty store.

        Does nothing if any checklist exists. Each definition is inserted
        in its own savepoint; a malformed or conflicting one is reported
        in the result and the rest still load.
        """
        definitions = self.definitions if definitions is None else definitions
        result = SeedResult()

        async with self._session_factory() as session:
            if await store.count_checklists(session) > 0:
                self._log.debug("Checklist store already populated, skipping seed")
                result.skipped = True
                return result

            now = utc_now()
            for bundled in definitions:
                try:
                    definition = parse_definition(bundled)
                except SeedEntryError as e:
                    self._log.warning("Skipping seed definition %s", e.message)
                    result.errors.append(e)
                    continue

                checklist = SetChecklist(
                    key=definition.key,
                    cached_at=now,
                    data_source=DataSource.SEED.value,
                )
                merge_into(
                    checklist,
                    definition.checklist_cards(DataSource.SEED),
                    definition.known_variations,
                    DataSource.SEED,
                    definition.total_base_cards,
                )
                try:
                    async with session.begin_nested():
                        await store.insert_checklist(session, checklist)
                except IntegrityError as e:
                    error = SeedEntryError(
                        bundled.name, f"duplicate checklist {definition.key}", detail=str(e.orig)
                    )
                    self._log.warning("Skipping seed definition %s", error.message)
                    result.errors.append(error)
                    continue
                result.seeded.append(definition.key)

            await session.commit()

        self._log.info(
            "Seeded %d checklists (%d errors)", len(result.seeded), len(result.errors)
        )
        return result

    async def learn_from_card(self, card: Card) -> MergeResult | None:
        """
        Record what a saved card says about its set.

        Best effort: returns None when learning is disabled, the card lacks
        manufacturer, brand or year, or anything fails. Failures are logged.
        """
        if not self._learning_enabled:
            return None
        manufacturer = (card.manufacturer or "").strip()
        brand = (card.brand or "").strip()
        if not manufacturer or not brand or card.year is None:
            return None

        key = ChecklistKey(
            manufacturer=manufacturer,
            brand=brand,
            year=card.year,
            sport=card.sport or None,
        )

        cards: list[ChecklistCard] = []
        if card.card_number and card.card_number.strip():
            cards.append(
                ChecklistCard(
                    card_number=card.card_number.strip(),
                    player_name=card.player_name,
                    team=card.team,
                    is_rookie=card.is_rookie,
                    source=DataSource.LEARNED.value,
                )
            )
        variations = [
            name
            for name in (card.parallel_name, card.variation_type)
            if name and name.strip() and name.strip().lower() != "base"
        ]

        try:
            if await self.lookup(key) is None:
                definition = find_definition(key, self.definitions)
                if definition is not None:
                    self._log.info("Found seed data for %s", key)
                    await self.merge(
                        key,
                        definition.checklist_cards(DataSource.SEED),
                        definition.known_variations,
                        DataSource.SEED,
                        definition.total_base_cards,
                    )
            elif not cards and not variations:
                return None

            return await self.merge(key, cards, variations, DataSource.LEARNED)
        except Exception:
            self._log.exception(
                "Checklist learning failed for %s (%s)", card.player_name, key
            )
            return None

    async def import_checklist(self, path: Path) -> MergeResult:
        """
        Merge a checklist file into the store as enriched data.

        Raises:
            RecordValidationError: If the file is not a valid checklist
        """
        content = Path(path).read_text(encoding="utf-8")
        try:
            definition = SeedChecklistDefinition.model_validate_json(content)
        except ValidationError as e:
            raise RecordValidationError(f"Invalid checklist file {path}", detail=str(e)) from e

        return await self.merge(
            definition.key,
            definition.checklist_cards(DataSource.ENRICHED),
            definition.known_variations,
            DataSource.ENRICHED,
            definition.total_base_cards,
        )

    async def export_checklist(self, checklist_id: int, path: Path) -> Path:
        """
        Write a stored checklist in the import file format.

        Raises:
            NotFoundError: If no checklist has this id
        """
        checklist = await self.get_checklist(checklist_id)
        if checklist is None:
            raise NotFoundError(f"Checklist {checklist_id} not found")

        path = Path(path)
        path.write_text(SeedChecklistDefinition.from_checklist(checklist).to_json(), encoding="utf-8")
        self._log.info("Exported checklist %s to %s", checklist.key, path)
        return path

    async def list_checklists(self) -> list[SetChecklist]:
        async with self._session_factory() as session:
            return await store.list_checklists(session)

    async def get_checklist(self, checklist_id: int) -> SetChecklist | None:
        async with self._session_factory() as session:
            return await store.get_checklist_by_id(session, checklist_id)

    async def list_missing(self) -> list[MissingChecklistRecord]:
        """Unresolved misses, most requested first."""
        async with self._session_factory() as session:
            return await store.list_missing(session)
