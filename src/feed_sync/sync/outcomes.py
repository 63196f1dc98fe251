"""
Per-entry outcomes and run reports.

Processing an entry never signals its result by raising: it returns an
``ItemOutcome`` tagged with a ``SyncAction``. The engines aggregate those
into the reports defined here, all of which serialize to JSON for the CLI.
"""

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List


class SyncAction(str, Enum):
    """Terminal outcome of processing one feed entry."""
    IMPORTED = "imported"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class ItemOutcome:
    """
    Result of processing a single feed entry.

    Attributes:
        action: What happened to the entry
        external_id: Feed identifier of the entry
        title: Entry title
        local_record_id: Destination record id (0 if none)
        message: Human-readable detail; the failure detail for errors
    """

    action: SyncAction
    external_id: str
    title: str = ""
    local_record_id: int = 0
    message: str = ""

    @property
    def success(self) -> bool:
        return self.action in (SyncAction.IMPORTED, SyncAction.UPDATED)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["action"] = self.action.value
        data["success"] = self.success
        return data


@dataclass
class RunReport:
    """Fields and counters shared by full and batch run reports."""

    success: bool = True
    error: str = ""
    total_posts: int = 0
    outcomes: List[ItemOutcome] = field(default_factory=list)
    started_at: str = ""

    def add(self, outcome: ItemOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, action: SyncAction) -> int:
        return sum(1 for outcome in self.outcomes if outcome.action == action)

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def imported(self) -> int:
        return self.count(SyncAction.IMPORTED)

    @property
    def updated(self) -> int:
        return self.count(SyncAction.UPDATED)

    @property
    def skipped(self) -> int:
        return self.count(SyncAction.SKIPPED)

    @property
    def errors(self) -> int:
        return self.count(SyncAction.ERROR)

    @property
    def error_messages(self) -> List[str]:
        return [o.message for o in self.outcomes if o.action == SyncAction.ERROR]

    def _common_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "total_posts": self.total_posts,
            "processed": self.processed,
            "imported": self.imported,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "error_messages": self.error_messages,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "started_at": self.started_at,
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


@dataclass
class SyncReport(RunReport):
    """Result of a full sync run."""

    @property
    def message(self) -> str:
        if not self.success:
            return self.error
        if self.total_posts == 0:
            return "No posts found in feed"
        return (
            f"Processed {self.processed} posts: {self.imported} imported, "
            f"{self.updated} updated, {self.skipped} skipped, {self.errors} failed"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = self._common_dict()
        data["message"] = self.message
        return data


@dataclass
class BatchReport(RunReport):
    """
    Result of one batch call.

    Callers resume by passing ``next_offset`` to the next call until
    ``has_more`` is False.
    """

    current_offset: int = 0
    next_offset: int = 0
    has_more: bool = False
    progress_percentage: float = 0.0

    @property
    def message(self) -> str:
        if not self.success:
            return self.error
        if self.total_posts == 0:
            return "No posts found in feed"
        return (
            f"Processed {self.processed} of {self.total_posts} posts "
            f"({self.progress_percentage}% complete)"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = self._common_dict()
        data.update(
            {
                "current_offset": self.current_offset,
                "next_offset": self.next_offset,
                "has_more": self.has_more,
                "progress_percentage": self.progress_percentage,
                "message": self.message,
            }
        )
        return data


@dataclass
class RetryReport:
    """Result of resetting failed entries for another attempt."""

    external_ids: List[str] = field(default_factory=list)

    @property
    def retried_count(self) -> int:
        return len(self.external_ids)

    @property
    def message(self) -> str:
        if not self.external_ids:
            return "No failed posts to retry"
        return (
            f"Reset retry status for {self.retried_count} posts. "
            "Run sync again to retry them."
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "retried_count": self.retried_count,
            "external_ids": list(self.external_ids),
            "message": self.message,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


@dataclass
class RollbackReport:
    """
    Result of a rollback.

    ``deleted_count`` counts destination records actually deleted.
    ``failed_ids`` lists records whose delete failed; their ledger rows were
    pruned anyway.
    """

    scope: str
    deleted_count: int = 0
    failed_ids: List[int] = field(default_factory=list)
    ledger_rows_removed: int = 0

    @property
    def message(self) -> str:
        text = f"Successfully removed {self.deleted_count} records from the destination"
        if self.failed_ids:
            text += f" ({len(self.failed_ids)} could not be deleted)"
        return text

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["message"] = self.message
        return data

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)
