"""
Card repository over the sync server's HTTP API.

Every transport-level problem is mapped onto the shared failure types:

- connect errors, timeouts, HTTP 5xx and unparseable bodies -> TransportError
- HTTP 404 -> NotFoundError (or None from get_card)
- HTTP 400/422 -> RecordValidationError
"""

import logging
from datetime import datetime
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from cardledger.models.card import Card, CardStats, CardStatus, as_utc
from cardledger.models.failure import NotFoundError, RecordValidationError, TransportError
from cardledger.models.sync import SyncStatus
from cardledger.repositories.base import ChangeFeed, RejectedRecord

logger = logging.getLogger(__name__)

CARDS_PATH = "/api/cards"
SYNC_PATH = "/sync"

_card_list = TypeAdapter(list[Card])


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
        if message:
            return str(message)
    return response.reason_phrase


class RemoteCardRepository:
    """
    CardRepository that forwards every call to a sync server.

    The caller owns the client; its base_url must point at the server root
    and its timeout bounds every request.
    """

    def __init__(self, client: httpx.AsyncClient, log: logging.Logger | None = None):
        self._client = client
        self._log = log or logger

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"Timed out calling {method} {path}", detail=str(e)) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"Could not reach sync server for {method} {path}", detail=str(e)
            ) from e

        if response.status_code == 404:
            raise NotFoundError(_error_message(response), detail=f"{method} {path}")
        if response.status_code in (400, 422):
            raise RecordValidationError(_error_message(response), detail=f"{method} {path}")
        if response.status_code >= 400:
            raise TransportError(
                f"Sync server answered {response.status_code} for {method} {path}",
                detail=_error_message(response),
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransportError("Sync server sent a malformed response", detail=str(e)) from e

    def _card(self, response: httpx.Response) -> Card:
        try:
            return Card.model_validate(self._json(response))
        except ValidationError as e:
            raise TransportError("Sync server sent a malformed card", detail=str(e)) from e

    def _cards(self, response: httpx.Response) -> list[Card]:
        try:
            return _card_list.validate_python(self._json(response))
        except ValidationError as e:
            raise TransportError("Sync server sent a malformed card list", detail=str(e)) from e

    async def list_cards(self, status: CardStatus | None = None) -> list[Card]:
        params = {"status": status.value} if status is not None else None
        return self._cards(await self._request("GET", CARDS_PATH, params=params))

    async def get_card(self, card_id: int) -> Card | None:
        try:
            response = await self._request("GET", f"{CARDS_PATH}/{card_id}")
        except NotFoundError:
            return None
        return self._card(response)

    async def create_card(self, card: Card) -> Card:
        response = await self._request("POST", CARDS_PATH, json=card.model_dump(mode="json"))
        return self._card(response)

    async def update_card(self, card: Card) -> Card:
        if card.id is None:
            raise RecordValidationError("Cannot update a card without an id")
        response = await self._request(
            "PUT", f"{CARDS_PATH}/{card.id}", json=card.model_dump(mode="json")
        )
        return self._card(response)

    async def delete_card(self, card_id: int) -> None:
        await self._request("DELETE", f"{CARDS_PATH}/{card_id}")

    async def list_unpriced(self) -> list[Card]:
        return self._cards(await self._request("GET", f"{CARDS_PATH}/unpriced"))

    async def list_stale(self, threshold_days: int) -> list[Card]:
        response = await self._request(
            "GET", f"{CARDS_PATH}/stale", params={"threshold_days": threshold_days}
        )
        return self._cards(response)

    async def get_stats(self) -> CardStats:
        response = await self._request("GET", f"{CARDS_PATH}/stats")
        try:
            return CardStats.model_validate(self._json(response))
        except ValidationError as e:
            raise TransportError("Sync server sent malformed stats", detail=str(e)) from e

    async def list_changes(self, since: datetime | None) -> ChangeFeed:
        """
        Cards the server changed after `since`.

        Items are validated one at a time; a bad item is reported in
        `rejected` instead of failing the whole feed.
        """
        params = {"since": as_utc(since).isoformat()} if since is not None else None
        body = self._json(await self._request("GET", f"{SYNC_PATH}/cards", params=params))
        if not isinstance(body, list):
            raise TransportError("Sync server sent a malformed change feed")

        feed = ChangeFeed()
        for item in body:
            card_id = item.get("id") if isinstance(item, dict) else None
            try:
                feed.cards.append(Card.model_validate(item))
            except ValidationError as e:
                self._log.warning("Rejected pulled record %s: %s", card_id, e)
                feed.rejected.append(
                    RejectedRecord(card_id=card_id, message=f"Card {card_id}: invalid record")
                )
        return feed

    async def sync_status(self) -> SyncStatus:
        response = await self._request("GET", f"{SYNC_PATH}/status")
        try:
            return SyncStatus.model_validate(self._json(response))
        except ValidationError as e:
            raise TransportError("Sync server sent a malformed status", detail=str(e)) from e
