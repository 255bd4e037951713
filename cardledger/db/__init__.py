from cardledger.db.checklists import (
    checklist_to_model,
    count_checklists,
    delete_missing,
    get_checklist_by_id,
    get_checklist_by_key,
    get_missing,
    insert_checklist,
    list_checklists,
    list_missing,
    missing_to_model,
    record_miss,
    update_checklist,
)
from cardledger.db.database import create_engine, create_session_factory, get_session
from cardledger.db.operations import (
    card_to_model,
    create_card,
    delete_card,
    get_card,
    get_card_stats,
    get_sync_summary,
    list_cards,
    list_cards_updated_since,
    list_stale_cards,
    list_unpriced_cards,
    update_card,
    upsert_card,
)
from cardledger.db.schema import SchemaReport, evolve_schema

__all__ = [
    "SchemaReport",
    "card_to_model",
    "checklist_to_model",
    "count_checklists",
    "create_card",
    "create_engine",
    "create_session_factory",
    "delete_card",
    "delete_missing",
    "evolve_schema",
    "get_card",
    "get_card_stats",
    "get_checklist_by_id",
    "get_checklist_by_key",
    "get_missing",
    "get_session",
    "get_sync_summary",
    "insert_checklist",
    "list_cards",
    "list_cards_updated_since",
    "list_checklists",
    "list_missing",
    "list_stale_cards",
    "list_unpriced_cards",
    "missing_to_model",
    "record_miss",
    "update_card",
    "update_checklist",
    "upsert_card",
]
