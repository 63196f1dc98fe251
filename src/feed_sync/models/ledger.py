"""
Ledger store: durable per-entry sync state.

The ledger is the unit of truth for identity (external id to destination
record id), last outcome, retry count and timestamps. All reads and writes
go through ``LedgerStore``; the sync and rollback engines receive an
instance in their constructors.

The upsert is a single ``INSERT ... ON CONFLICT DO UPDATE`` statement. The
retry counter is derived from the existing row inside that statement, so
there is no read-then-write window between two writers for the same key.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

from dateutil import parser as date_parser

from .database import Database
from .entities import (
    LedgerStats,
    SyncRecord,
    SyncStatus,
    format_timestamp,
    parse_timestamp,
)
from .schema import LEDGER_TABLE

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
#  Scopes
# ---------------------------------------------------------------------------

class ScopeKind(str, Enum):
    """Kinds of ledger scope a rollback can target."""
    ALL = "all"
    FAILED = "failed"
    DATE_RANGE = "date"


DateLike = Union[date, datetime, str]


def _coerce_date(value: DateLike) -> date:
    """Accept a date, datetime or date string (e.g. ``2024-01-31``)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.parse(value).date()
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"Invalid date '{value}': {exc}") from exc


@dataclass(frozen=True)
class RollbackScope:
    """
    Predicate selecting ledger rows.

    Build with ``RollbackScope.all()``, ``RollbackScope.failed_only()`` or
    ``RollbackScope.date_range(date_from, date_to)``. Date bounds are whole
    calendar days: ``date_from 00:00:00`` through ``date_to 23:59:59``.
    """

    kind: ScopeKind
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    @classmethod
    def all(cls) -> "RollbackScope":
        return cls(ScopeKind.ALL)

    @classmethod
    def failed_only(cls) -> "RollbackScope":
        return cls(ScopeKind.FAILED)

    @classmethod
    def date_range(cls, date_from: DateLike, date_to: DateLike) -> "RollbackScope":
        start = _coerce_date(date_from)
        end = _coerce_date(date_to)
        if start > end:
            raise ValueError(f"Date range start {start} is after end {end}")
        return cls(ScopeKind.DATE_RANGE, start, end)

    def where_clause(self) -> Tuple[str, Tuple[Any, ...]]:
        """Return the SQL predicate and its parameters."""
        if self.kind == ScopeKind.FAILED:
            return "status = ?", (SyncStatus.ERROR.value,)
        if self.kind == ScopeKind.DATE_RANGE:
            return (
                "last_synced_at BETWEEN ? AND ?",
                (
                    f"{self.date_from.isoformat()} 00:00:00",
                    f"{self.date_to.isoformat()} 23:59:59",
                ),
            )
        return "1 = 1", ()

    def __str__(self) -> str:
        if self.kind == ScopeKind.DATE_RANGE:
            return f"date {self.date_from.isoformat()}..{self.date_to.isoformat()}"
        return self.kind.value


# ---------------------------------------------------------------------------
#  Ledger store
# ---------------------------------------------------------------------------

_UPSERT_SQL = f"""
    INSERT INTO {LEDGER_TABLE} (
        external_id, local_record_id, title, last_synced_at,
        status, retry_count, error_message
    ) VALUES (?, ?, ?, ?, ?, 0, ?)
    ON CONFLICT(external_id) DO UPDATE SET
        local_record_id = excluded.local_record_id,
        title           = excluded.title,
        last_synced_at  = excluded.last_synced_at,
        status          = excluded.status,
        retry_count     = CASE
                              WHEN excluded.status = 'error'
                              THEN {LEDGER_TABLE}.retry_count + 1
                              ELSE 0
                          END,
        error_message   = excluded.error_message
"""


class LedgerStore:
    """
    Sync ledger backed by the ``sync_log`` SQLite table.

    Example:
        >>> ledger = LedgerStore(Database(Path("data/db/feed_sync.db")))
        >>> ledger.upsert(SyncRecord(external_id="post-1", status=SyncStatus.IMPORTED,
        ...                          local_record_id=42))
        >>> ledger.find_by_external_id("post-1").local_record_id
        42
    """

    def __init__(self, db: Database):
        self.db = db

    def initialize(self) -> None:
        """Create the ledger table if needed."""
        self.db.initialize()

    def find_by_external_id(self, external_id: str) -> Optional[SyncRecord]:
        """
        Look up the ledger row for an external id.

        Args:
            external_id: Stable identifier assigned by the feed

        Returns:
            SyncRecord or None if the id was never processed
        """
        with self.db.get_connection() as conn:
            row = conn.execute(
                f"SELECT * FROM {LEDGER_TABLE} WHERE external_id = ?",
                (external_id,),
            ).fetchone()
        return SyncRecord.from_row(row) if row else None

    def upsert(self, record: SyncRecord) -> SyncRecord:
        """
        Insert or replace the row keyed by ``record.external_id``.

        ``record.retry_count`` is ignored: a write with status ``error``
        over an existing row stores the prior count plus one, any other
        write stores 0, and a first write always stores 0.
        ``last_synced_at`` defaults to now when unset.

        Args:
            record: Ledger record to write

        Returns:
            The record as stored
        """
        synced_at = record.last_synced_at or datetime.now()

        with self.db.get_connection() as conn:
            conn.execute(
                _UPSERT_SQL,
                (
                    record.external_id,
                    record.local_record_id,
                    record.title,
                    format_timestamp(synced_at),
                    record.status.value,
                    record.error_message,
                ),
            )
            row = conn.execute(
                f"SELECT * FROM {LEDGER_TABLE} WHERE external_id = ?",
                (record.external_id,),
            ).fetchone()

        stored = SyncRecord.from_row(row)
        logger.debug(
            "Ledger upsert %s: status=%s local_id=%d retry_count=%d",
            stored.external_id,
            stored.status.value,
            stored.local_record_id,
            stored.retry_count,
        )
        return stored

    def list_errors_under_retry_limit(
        self, max_retries: Optional[int] = 3
    ) -> List[SyncRecord]:
        """
        List failed entries that have not exhausted their retries.

        Args:
            max_retries: Only rows with ``retry_count < max_retries`` are
                returned; None returns every error row

        Returns:
            Error records, oldest failure first
        """
        query = f"SELECT * FROM {LEDGER_TABLE} WHERE status = ?"
        params: Tuple[Any, ...] = (SyncStatus.ERROR.value,)
        if max_retries is not None:
            query += " AND retry_count < ?"
            params += (max_retries,)
        query += " ORDER BY last_synced_at ASC, external_id ASC"

        with self.db.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [SyncRecord.from_row(row) for row in rows]

    def reset_retry(self, external_id: str) -> bool:
        """
        Clear the retry counter and mark the entry ``pending``.

        Args:
            external_id: Entry to reset

        Returns:
            True if a row was reset, False if the id is unknown
        """
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE {LEDGER_TABLE} SET retry_count = 0, status = ? WHERE external_id = ?",
                (SyncStatus.PENDING.value, external_id),
            )
        return cursor.rowcount > 0

    def reset_failed(self, max_retries: Optional[int] = None) -> List[str]:
        """
        Reset every failed entry listed by ``list_errors_under_retry_limit``.

        Returns:
            External ids that were reset, oldest failure first
        """
        reset = []
        for record in self.list_errors_under_retry_limit(max_retries):
            if self.reset_retry(record.external_id):
                reset.append(record.external_id)
        return reset

    def aggregate_stats(self) -> LedgerStats:
        """Compute ledger-wide counts in a single aggregate query."""
        with self.db.get_connection() as conn:
            row = conn.execute(
                f"""
                SELECT
                    COUNT(*) AS total_count,
                    SUM(CASE WHEN status = 'imported' THEN 1 ELSE 0 END) AS imported_count,
                    SUM(CASE WHEN status = 'updated' THEN 1 ELSE 0 END) AS updated_count,
                    SUM(CASE WHEN status = 'error' THEN 1 ELSE 0 END) AS error_count,
                    SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END) AS pending_count,
                    MAX(last_synced_at) AS last_sync_at
                FROM {LEDGER_TABLE}
                """
            ).fetchone()

        return LedgerStats(
            total_count=row["total_count"] or 0,
            imported_count=row["imported_count"] or 0,
            updated_count=row["updated_count"] or 0,
            error_count=row["error_count"] or 0,
            pending_count=row["pending_count"] or 0,
            last_sync_at=parse_timestamp(row["last_sync_at"]),
        )

    def list_recent(self, limit: int = 50) -> List[SyncRecord]:
        """
        List the most recently synced entries.

        Args:
            limit: Maximum number of rows

        Returns:
            Records, newest first
        """
        with self.db.get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM {LEDGER_TABLE} ORDER BY last_synced_at DESC, external_id ASC LIMIT ?",
                (limit,),
            ).fetchall()
        return [SyncRecord.from_row(row) for row in rows]

    def local_record_ids(self, scope: RollbackScope) -> List[int]:
        """
        Destination record ids of the rows in scope.

        Rows whose entry never produced a destination record
        (``local_record_id == 0``) are excluded.
        """
        clause, params = scope.where_clause()
        with self.db.get_connection() as conn:
            rows = conn.execute(
                f"SELECT local_record_id FROM {LEDGER_TABLE} "
                f"WHERE local_record_id > 0 AND {clause} ORDER BY last_synced_at ASC",
                params,
            ).fetchall()
        return [row[0] for row in rows]

    def delete_where(self, scope: RollbackScope) -> int:
        """
        Delete every row matching the scope.

        Returns:
            Number of rows removed
        """
        clause, params = scope.where_clause()
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                f"DELETE FROM {LEDGER_TABLE} WHERE {clause}",
                params,
            )
        logger.info("Pruned %d ledger row(s) for scope '%s'", cursor.rowcount, scope)
        return cursor.rowcount

    def count(self) -> int:
        """Number of rows in the ledger."""
        with self.db.get_connection() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {LEDGER_TABLE}").fetchone()[0]
