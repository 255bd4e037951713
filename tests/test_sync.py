"""Tests for the sync coordinator."""

import asyncio
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardledger.models.card import Card
from cardledger.models.failure import TransportError
from cardledger.models.db import Base
from cardledger.repositories.base import ChangeFeed, RejectedRecord
from cardledger.repositories.local import LocalCardRepository
from cardledger.services.sync import PushOutcome, SyncCoordinator, SyncPhase

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
async def remote() -> AsyncIterator[LocalCardRepository]:
    """A second store standing in for the sync server."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield LocalCardRepository(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    await engine.dispose()


@pytest.fixture
def coordinator(
    remote: LocalCardRepository, local_repository: LocalCardRepository
) -> SyncCoordinator:
    return SyncCoordinator(remote=remote, local=local_repository)


class CancellingRemote(LocalCardRepository):
    """Sets the cancel event while the first card is in flight."""

    def __init__(self, inner: LocalCardRepository, cancel: asyncio.Event):
        super().__init__(inner._session_factory)
        self._cancel = cancel

    async def get_card(self, card_id: int) -> Card | None:
        self._cancel.set()
        return await super().get_card(card_id)


class StaticFeedRemote(LocalCardRepository):
    def __init__(self, inner: LocalCardRepository, feed: ChangeFeed):
        super().__init__(inner._session_factory)
        self._feed = feed

    async def list_changes(self, since: datetime | None) -> ChangeFeed:
        return self._feed


class UnreachableRemote(LocalCardRepository):
    async def list_changes(self, since: datetime | None) -> ChangeFeed:
        raise TransportError("Could not reach sync server")


class TestPull:
    async def test_pulls_strictly_after_checkpoint(
        self,
        coordinator: SyncCoordinator,
        remote: LocalCardRepository,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        """A card updated exactly at the checkpoint is not pulled again."""
        await remote.upsert_card(make_card(id=1, updated_at=T0))
        await remote.upsert_card(make_card(id=2, updated_at=T0 + timedelta(milliseconds=1)))

        result = await coordinator.pull(T0)

        assert result.pulled == 1
        assert result.errors == []
        assert await local_repository.get_card(1) is None
        pulled = await local_repository.get_card(2)
        assert pulled is not None
        assert pulled.updated_at == T0 + timedelta(milliseconds=1)
        assert result.latest_update == T0 + timedelta(milliseconds=1)

    async def test_pull_overwrites_local_copy(
        self,
        coordinator: SyncCoordinator,
        remote: LocalCardRepository,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        """Last writer wins on the whole record."""
        await local_repository.upsert_card(make_card(id=1, notes="local", updated_at=T0))
        await remote.upsert_card(
            make_card(id=1, notes="remote", updated_at=T0 + timedelta(hours=1))
        )

        await coordinator.pull(T0)

        stored = await local_repository.get_card(1)
        assert stored is not None
        assert stored.notes == "remote"

    async def test_pull_everything_without_checkpoint(
        self,
        coordinator: SyncCoordinator,
        remote: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        await remote.upsert_card(make_card(id=1, updated_at=T0 - timedelta(days=365)))
        await remote.upsert_card(make_card(id=2, updated_at=T0))

        result = await coordinator.pull(None)

        assert result.pulled == 2

    async def test_empty_feed(self, coordinator: SyncCoordinator) -> None:
        result = await coordinator.pull(T0)

        assert result.pulled == 0
        assert result.latest_update is None

    async def test_rejected_records_become_errors(
        self,
        remote: LocalCardRepository,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        feed = ChangeFeed(
            cards=[make_card(id=4, updated_at=T0)],
            rejected=[RejectedRecord(card_id=5, message="Card 5: invalid record")],
        )
        coordinator = SyncCoordinator(remote=StaticFeedRemote(remote, feed), local=local_repository)

        result = await coordinator.pull(None)

        assert result.pulled == 1
        assert result.errors == ["Card 5: invalid record"]

    async def test_feed_failure_raises_and_resets_phase(
        self, remote: LocalCardRepository, local_repository: LocalCardRepository
    ) -> None:
        coordinator = SyncCoordinator(
            remote=UnreachableRemote(remote._session_factory), local=local_repository
        )

        with pytest.raises(TransportError):
            await coordinator.pull(T0)

        assert coordinator.phase is SyncPhase.IDLE

    async def test_pull_needs_local_store(self, remote: LocalCardRepository) -> None:
        with pytest.raises(RuntimeError):
            await SyncCoordinator(remote=remote).pull(None)

    async def test_cancelled_before_start(
        self,
        coordinator: SyncCoordinator,
        remote: LocalCardRepository,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        await remote.upsert_card(make_card(id=1, updated_at=T0))
        cancel = asyncio.Event()
        cancel.set()

        result = await coordinator.pull(None, cancel)

        assert result.cancelled
        assert result.pulled == 0
        assert await local_repository.get_card(1) is None


class TestPush:
    async def test_unknown_card_is_skipped(
        self,
        coordinator: SyncCoordinator,
        remote: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        """Push never creates cards the server does not have."""
        await remote.upsert_card(make_card(id=1, updated_at=T0))
        await remote.upsert_card(make_card(id=3, updated_at=T0))

        result = await coordinator.push(
            [
                make_card(id=1, notes="pushed"),
                make_card(id=2, notes="pushed"),
                make_card(id=3, notes="pushed"),
            ]
        )

        assert result.synced == 2
        assert result.failed == 1
        assert result.errors == ["Card 2 not found on server - skipping"]
        assert [item.outcome for item in result.items] == [
            PushOutcome.SYNCED,
            PushOutcome.NOT_FOUND,
            PushOutcome.SYNCED,
        ]
        assert await remote.get_card(2) is None
        stored = await remote.get_card(3)
        assert stored is not None
        assert stored.notes == "pushed"

    async def test_summary_shape(
        self,
        coordinator: SyncCoordinator,
        make_card: Callable[..., Card],
    ) -> None:
        summary = (await coordinator.push([make_card(id=9)])).to_summary()

        assert summary.model_dump(by_alias=True) == {
            "Synced": 0,
            "Failed": 1,
            "Errors": ["Card 9 not found on server - skipping"],
        }

    async def test_invalid_record_fails_alone(
        self,
        coordinator: SyncCoordinator,
        remote: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        await remote.upsert_card(make_card(id=1, updated_at=T0))

        result = await coordinator.push(
            [
                {"id": 7, "player_name": ""},
                {"player_name": "No Id"},
                make_card(id=1).model_dump(mode="json"),
            ]
        )

        assert result.synced == 1
        assert result.failed == 2
        assert result.items[0].outcome is PushOutcome.ERROR
        assert result.items[0].message is not None
        assert result.items[0].message.startswith("Card 7: invalid record")
        assert result.items[1].message == "Card None: record has no id"

    async def test_empty_batch(self, coordinator: SyncCoordinator) -> None:
        result = await coordinator.push([])

        assert result.synced == 0
        assert result.failed == 0
        assert coordinator.phase is SyncPhase.IDLE

    async def test_cancel_stops_before_next_item(
        self,
        remote: LocalCardRepository,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        """The card in flight finishes; the rest are not sent."""
        for card_id in (1, 2, 3):
            await remote.upsert_card(make_card(id=card_id, updated_at=T0))
        cancel = asyncio.Event()
        coordinator = SyncCoordinator(
            remote=CancellingRemote(remote, cancel), local=local_repository
        )

        result = await coordinator.push(
            [make_card(id=1, notes="x"), make_card(id=2, notes="x"), make_card(id=3, notes="x")],
            cancel,
        )

        assert result.cancelled
        assert result.synced == 1
        assert [item.card_id for item in result.items] == [1]
        untouched = await remote.get_card(2)
        assert untouched is not None
        assert untouched.notes is None
        assert coordinator.phase is SyncPhase.IDLE


class TestRunCycle:
    async def test_pull_then_push_snapshot(
        self,
        coordinator: SyncCoordinator,
        remote: LocalCardRepository,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        """Local edits made since the checkpoint reach the server; pulled cards are not echoed."""
        await remote.upsert_card(make_card(id=10, notes="server", updated_at=T0))
        await remote.upsert_card(
            make_card(id=20, notes="server", updated_at=T0 + timedelta(minutes=5))
        )
        await local_repository.upsert_card(
            make_card(id=10, notes="desktop", updated_at=T0 + timedelta(minutes=1))
        )

        result = await coordinator.run_cycle(T0)

        assert result.pull.pulled == 1
        assert [item.card_id for item in result.push.items] == [10]
        assert result.push.synced == 1
        assert result.checkpoint == T0 + timedelta(minutes=5)

        pushed = await remote.get_card(10)
        assert pushed is not None
        assert pushed.notes == "desktop"
        assert await local_repository.get_card(20) is not None

    async def test_checkpoint_unchanged_when_nothing_pulled(
        self, coordinator: SyncCoordinator
    ) -> None:
        result = await coordinator.run_cycle(T0)

        assert result.checkpoint == T0

    async def test_cancelled_pull_skips_push(
        self,
        coordinator: SyncCoordinator,
        remote: LocalCardRepository,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        await remote.upsert_card(make_card(id=1, updated_at=T0 + timedelta(minutes=1)))
        await local_repository.upsert_card(make_card(id=2, updated_at=T0 + timedelta(minutes=1)))
        cancel = asyncio.Event()
        cancel.set()

        result = await coordinator.run_cycle(T0, cancel)

        assert result.pull.cancelled
        assert result.push.cancelled
        assert result.push.items == []
        assert result.checkpoint == T0
