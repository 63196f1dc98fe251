"""
Sync and rollback engines.

Provides the engines that reconcile feed entries with the destination
and the reports they return.
"""

from feed_sync.sync.engine import SyncEngine
from feed_sync.sync.outcomes import (
    BatchReport,
    ItemOutcome,
    RetryReport,
    RollbackReport,
    SyncAction,
    SyncReport,
)
from feed_sync.sync.rollback import RollbackEngine, RollbackScope

__all__ = [
    "SyncEngine",
    "RollbackEngine",
    "RollbackScope",
    "BatchReport",
    "ItemOutcome",
    "RetryReport",
    "RollbackReport",
    "SyncAction",
    "SyncReport",
]
