"""
Wire shapes of the sync routes.

Sync payloads use PascalCase keys so older desktop clients keep working;
Python code addresses the fields in snake_case.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal

from cardledger.models.card import EARLIEST, utc_now


class SyncModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)


class SyncStatus(SyncModel):
    """Server liveness plus a cheap summary of its card table."""

    status: str = "ok"
    last_updated: datetime = EARLIEST
    card_count: int = 0
    server_time: datetime = Field(default_factory=utc_now)


class PushSummary(SyncModel):
    """Outcome of a pushed batch."""

    synced: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
