"""
cardledger services.

Checklist caching and learning, card matching, and synchronization.
"""

from cardledger.services.card_matching import (
    normalize_card_number,
    normalize_parallel_name,
    similarity,
)
from cardledger.services.checklist_cache import (
    ChecklistCache,
    LookupResult,
    MergeResult,
    SeedResult,
)
from cardledger.services.seed_data import (
    BundledDefinition,
    SeedChecklistDefinition,
    load_bundled_definitions,
)
from cardledger.services.sync import (
    PullResult,
    PushItemResult,
    PushOutcome,
    PushResult,
    SyncCoordinator,
    SyncCycleResult,
    SyncPhase,
)

__all__ = [
    "BundledDefinition",
    "ChecklistCache",
    "LookupResult",
    "MergeResult",
    "PullResult",
    "PushItemResult",
    "PushOutcome",
    "PushResult",
    "SeedChecklistDefinition",
    "SeedResult",
    "SyncCoordinator",
    "SyncCycleResult",
    "SyncPhase",
    "load_bundled_definitions",
    "normalize_card_number",
    "normalize_parallel_name",
    "similarity",
]
