"""Tests for the sync wire contract."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from httpx import AsyncClient

from cardledger.models.card import Card
from cardledger.repositories.local import LocalCardRepository

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


class TestSyncStatus:
    async def test_empty_store(self, client: AsyncClient) -> None:
        """An empty store reports the earliest timestamp and no cards."""
        response = await client.get("/sync/status")

        assert response.status_code == 200
        data = response.json()
        assert data["Status"] == "ok"
        assert data["LastUpdated"] == "0001-01-01T00:00:00Z"
        assert data["CardCount"] == 0
        assert "ServerTime" in data

    async def test_reports_latest_update(
        self,
        client: AsyncClient,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        await local_repository.upsert_card(make_card(id=1, updated_at=T0))
        await local_repository.upsert_card(make_card(id=2, updated_at=T0 + timedelta(minutes=3)))

        data = (await client.get("/sync/status")).json()

        assert data["CardCount"] == 2
        assert data["LastUpdated"] == "2024-03-01T12:03:00Z"


class TestChangedCards:
    async def test_strictly_after_since(
        self,
        client: AsyncClient,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        await local_repository.upsert_card(make_card(id=1, updated_at=T0))
        await local_repository.upsert_card(
            make_card(id=2, updated_at=T0 + timedelta(milliseconds=1))
        )

        response = await client.get("/sync/cards", params={"since": "2024-03-01T12:00:00Z"})

        assert response.status_code == 200
        assert [card["id"] for card in response.json()] == [2]

    async def test_since_with_offset(
        self,
        client: AsyncClient,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        """Checkpoints in other offsets compare as the same instant."""
        await local_repository.upsert_card(make_card(id=1, updated_at=T0))

        response = await client.get("/sync/cards", params={"since": "2024-03-01T07:00:00-05:00"})

        assert response.json() == []

    async def test_without_since_returns_all(
        self,
        client: AsyncClient,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        await local_repository.upsert_card(make_card(id=1, updated_at=T0))
        await local_repository.upsert_card(make_card(id=2, updated_at=T0 - timedelta(days=30)))

        response = await client.get("/sync/cards")

        assert sorted(card["id"] for card in response.json()) == [1, 2]

    async def test_bad_since_rejected(self, client: AsyncClient) -> None:
        response = await client.get("/sync/cards", params={"since": "yesterday"})

        assert response.status_code == 422


class TestPush:
    async def test_updates_known_and_skips_unknown(
        self,
        client: AsyncClient,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        """Unknown ids are reported and never created."""
        await local_repository.upsert_card(make_card(id=1, updated_at=T0))
        await local_repository.upsert_card(make_card(id=3, updated_at=T0))
        records = [
            make_card(id=card_id, notes="from desktop").model_dump(mode="json")
            for card_id in (1, 2, 3)
        ]

        response = await client.post("/sync/push", json=records)

        assert response.status_code == 200
        assert response.json() == {
            "Synced": 2,
            "Failed": 1,
            "Errors": ["Card 2 not found on server - skipping"],
        }
        assert await local_repository.get_card(2) is None
        stored = await local_repository.get_card(3)
        assert stored is not None
        assert stored.notes == "from desktop"

    async def test_malformed_record_fails_alone(
        self,
        client: AsyncClient,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
    ) -> None:
        await local_repository.upsert_card(make_card(id=1, updated_at=T0))

        response = await client.post(
            "/sync/push",
            json=[{"id": 5, "player_name": ""}, make_card(id=1).model_dump(mode="json")],
        )

        data = response.json()
        assert data["Synced"] == 1
        assert data["Failed"] == 1
        assert data["Errors"][0].startswith("Card 5: invalid record")

    async def test_empty_batch(self, client: AsyncClient) -> None:
        response = await client.post("/sync/push", json=[])

        assert response.json() == {"Synced": 0, "Failed": 0, "Errors": []}

    async def test_body_must_be_a_list(self, client: AsyncClient) -> None:
        response = await client.post("/sync/push", json={"id": 1})

        assert response.status_code == 422
