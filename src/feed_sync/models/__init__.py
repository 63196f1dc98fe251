"""
Data models and the sync ledger.

Provides the SQLite schema, the connection manager, the ledger store and
the Pydantic models shared by every component.
"""

from feed_sync.models.database import Database
from feed_sync.models.entities import (
    CategoryMapping,
    DestinationPayload,
    FeedEntry,
    LedgerStats,
    SyncRecord,
    SyncStatus,
)
from feed_sync.models.ledger import LedgerStore, RollbackScope, ScopeKind
from feed_sync.models.schema import SCHEMA_SQL, create_all_tables, get_table_names

__all__ = [
    "Database",
    "LedgerStore",
    "RollbackScope",
    "ScopeKind",
    "create_all_tables",
    "get_table_names",
    "SCHEMA_SQL",
    "CategoryMapping",
    "DestinationPayload",
    "FeedEntry",
    "LedgerStats",
    "SyncRecord",
    "SyncStatus",
]
