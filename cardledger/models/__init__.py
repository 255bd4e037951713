from cardledger.models.card import EARLIEST, Card, CardStats, CardStatus
from cardledger.models.checklist import (
    ChecklistCard,
    ChecklistKey,
    DataSource,
    MissingChecklistRecord,
    SetChecklist,
    is_stale,
    source_rank,
)
from cardledger.models.failure import (
    FailureDetail,
    ConflictError,
    FailureKind,
    KnownError,
    NotFoundError,
    RecordValidationError,
    SchemaFailure,
    SeedEntryError,
    TransportError,
)

__all__ = [
    "EARLIEST",
    "Card",
    "CardStats",
    "CardStatus",
    "ChecklistCard",
    "ChecklistKey",
    "ConflictError",
    "DataSource",
    "FailureDetail",
    "FailureKind",
    "KnownError",
    "MissingChecklistRecord",
    "NotFoundError",
    "RecordValidationError",
    "SchemaFailure",
    "SeedEntryError",
    "SetChecklist",
    "TransportError",
    "is_stale",
    "source_rank",
]
