"""
Tests for the sync ledger store.

Covers:
- Schema creation and idempotent initialization
- Upsert insert/replace semantics and retry counting
- Error listing, ordering and retry reset
- Aggregate statistics and the recent log
- Rollback scopes, including whole-day date boundaries
"""

from datetime import date, datetime

import pytest

from feed_sync.models.entities import SyncRecord, SyncStatus
from feed_sync.models.ledger import LedgerStore, RollbackScope, ScopeKind
from feed_sync.models.schema import LEDGER_TABLE, drop_all_tables, get_table_names


def _record(
    external_id: str,
    status: SyncStatus = SyncStatus.IMPORTED,
    local_id: int = 0,
    synced_at: datetime = datetime(2024, 3, 10, 9, 0, 0),
    error: str = "",
) -> SyncRecord:
    return SyncRecord(
        external_id=external_id,
        local_record_id=local_id,
        title=f"Title {external_id}",
        last_synced_at=synced_at,
        status=status,
        error_message=error,
    )


# ===================================================================
# Schema
# ===================================================================

class TestSchema:
    """Tests for schema creation."""

    def test_creates_ledger_table(self, test_db):
        assert LEDGER_TABLE in get_table_names(test_db.db_path)

    def test_initialize_is_idempotent(self, ledger):
        ledger.upsert(_record("a", local_id=1))
        ledger.initialize()
        ledger.initialize()
        assert ledger.count() == 1

    def test_drop_all_tables(self, test_db):
        drop_all_tables(test_db.db_path)
        assert get_table_names(test_db.db_path) == []


# ===================================================================
# Upsert and lookup
# ===================================================================

class TestUpsert:
    """Tests for LedgerStore.upsert() and find_by_external_id()."""

    def test_unknown_id_returns_none(self, ledger):
        assert ledger.find_by_external_id("missing") is None

    def test_insert_then_find(self, ledger):
        stored = ledger.upsert(_record("post-1", local_id=42))

        found = ledger.find_by_external_id("post-1")
        assert found == stored
        assert found.local_record_id == 42
        assert found.status == SyncStatus.IMPORTED
        assert found.retry_count == 0
        assert found.last_synced_at == datetime(2024, 3, 10, 9, 0, 0)

    def test_upsert_replaces_single_row(self, ledger):
        ledger.upsert(_record("post-1", local_id=42))
        ledger.upsert(_record("post-1", SyncStatus.UPDATED, local_id=42))

        assert ledger.count() == 1
        assert ledger.find_by_external_id("post-1").status == SyncStatus.UPDATED

    def test_first_error_stores_zero_retries(self, ledger):
        stored = ledger.upsert(_record("post-1", SyncStatus.ERROR, error="boom"))
        assert stored.retry_count == 0
        assert stored.error_message == "boom"

    def test_repeated_errors_increment(self, ledger):
        for _ in range(4):
            stored = ledger.upsert(_record("post-1", SyncStatus.ERROR, error="boom"))
        assert stored.retry_count == 3

    def test_success_resets_retry_count(self, ledger):
        ledger.upsert(_record("post-1", SyncStatus.ERROR))
        ledger.upsert(_record("post-1", SyncStatus.ERROR))
        stored = ledger.upsert(_record("post-1", SyncStatus.IMPORTED, local_id=3))

        assert stored.retry_count == 0
        assert stored.error_message == ""

    def test_supplied_retry_count_is_ignored(self, ledger):
        record = _record("post-1", SyncStatus.ERROR).model_copy(update={"retry_count": 9})
        assert ledger.upsert(record).retry_count == 0

    def test_missing_timestamp_defaults_to_now(self, ledger):
        before = datetime.now().replace(microsecond=0)
        stored = ledger.upsert(SyncRecord(external_id="post-1", status=SyncStatus.IMPORTED))
        assert stored.last_synced_at >= before

    def test_unicode_round_trip(self, ledger):
        ledger.upsert(_record("post-ü").model_copy(update={"title": "Café ☕"}))
        assert ledger.find_by_external_id("post-ü").title == "Café ☕"


# ===================================================================
# Error listing and retry reset
# ===================================================================

class TestErrorQueries:
    """Tests for list_errors_under_retry_limit(), reset_retry() and reset_failed()."""

    def test_lists_only_errors_under_limit(self, ledger):
        ledger.upsert(_record("ok", SyncStatus.IMPORTED, local_id=1))
        ledger.upsert(_record("fresh", SyncStatus.ERROR))
        for _ in range(4):
            ledger.upsert(_record("capped", SyncStatus.ERROR))

        ids = [r.external_id for r in ledger.list_errors_under_retry_limit(3)]
        assert ids == ["fresh"]

    def test_none_limit_lists_every_error(self, ledger):
        ledger.upsert(_record("fresh", SyncStatus.ERROR))
        for _ in range(4):
            ledger.upsert(_record("capped", SyncStatus.ERROR))

        ids = {r.external_id for r in ledger.list_errors_under_retry_limit(None)}
        assert ids == {"fresh", "capped"}

    def test_oldest_failure_first(self, ledger):
        ledger.upsert(_record("late", SyncStatus.ERROR, synced_at=datetime(2024, 3, 12)))
        ledger.upsert(_record("early", SyncStatus.ERROR, synced_at=datetime(2024, 3, 11)))

        ids = [r.external_id for r in ledger.list_errors_under_retry_limit()]
        assert ids == ["early", "late"]

    def test_reset_retry_marks_pending(self, ledger):
        for _ in range(3):
            ledger.upsert(_record("post-1", SyncStatus.ERROR, local_id=8))

        assert ledger.reset_retry("post-1") is True

        record = ledger.find_by_external_id("post-1")
        assert record.status == SyncStatus.PENDING
        assert record.retry_count == 0
        assert record.local_record_id == 8

    def test_reset_unknown_id(self, ledger):
        assert ledger.reset_retry("missing") is False

    def test_reset_failed_honours_limit(self, ledger):
        ledger.upsert(_record("ok", SyncStatus.IMPORTED, local_id=1))
        ledger.upsert(_record("fresh", SyncStatus.ERROR))
        for _ in range(4):
            ledger.upsert(_record("capped", SyncStatus.ERROR))

        assert ledger.reset_failed(3) == ["fresh"]
        assert ledger.find_by_external_id("capped").status == SyncStatus.ERROR
        assert ledger.find_by_external_id("ok").status == SyncStatus.IMPORTED

    def test_reset_failed_without_limit(self, ledger):
        ledger.upsert(_record("fresh", SyncStatus.ERROR))
        for _ in range(4):
            ledger.upsert(_record("capped", SyncStatus.ERROR))

        assert set(ledger.reset_failed()) == {"fresh", "capped"}
        assert ledger.list_errors_under_retry_limit(None) == []


# ===================================================================
# Statistics and log
# ===================================================================

class TestStatsAndLog:
    """Tests for aggregate_stats() and list_recent()."""

    def test_empty_ledger_stats(self, ledger):
        stats = ledger.aggregate_stats()
        assert stats.total_count == 0
        assert stats.error_count == 0
        assert stats.last_sync_at is None

    def test_counts_by_status(self, ledger):
        ledger.upsert(_record("a", SyncStatus.IMPORTED, 1, datetime(2024, 3, 1, 10)))
        ledger.upsert(_record("b", SyncStatus.IMPORTED, 2, datetime(2024, 3, 2, 10)))
        ledger.upsert(_record("c", SyncStatus.UPDATED, 3, datetime(2024, 3, 3, 10)))
        ledger.upsert(_record("d", SyncStatus.ERROR, 0, datetime(2024, 3, 4, 10)))
        ledger.upsert(_record("e", SyncStatus.ERROR, 0, datetime(2024, 3, 5, 10)))
        ledger.reset_retry("e")

        stats = ledger.aggregate_stats()
        assert stats.total_count == 5
        assert stats.imported_count == 2
        assert stats.updated_count == 1
        assert stats.error_count == 1
        assert stats.pending_count == 1
        assert stats.last_sync_at == datetime(2024, 3, 5, 10)

    def test_recent_log_newest_first(self, ledger):
        for day in range(1, 6):
            ledger.upsert(_record(f"p{day}", local_id=day, synced_at=datetime(2024, 3, day)))

        recent = ledger.list_recent(limit=3)
        assert [r.external_id for r in recent] == ["p5", "p4", "p3"]


# ===================================================================
# Scopes
# ===================================================================

class TestRollbackScope:
    """Tests for RollbackScope construction."""

    def test_date_range_accepts_strings(self):
        scope = RollbackScope.date_range("2024-03-01", "2024-03-31")
        assert scope.kind == ScopeKind.DATE_RANGE
        assert scope.date_from == date(2024, 3, 1)
        assert scope.date_to == date(2024, 3, 31)

    def test_reversed_range_rejected(self):
        with pytest.raises(ValueError):
            RollbackScope.date_range("2024-03-31", "2024-03-01")

    def test_invalid_date_rejected(self):
        with pytest.raises(ValueError):
            RollbackScope.date_range("not-a-date", "2024-03-01")

    def test_str(self):
        assert str(RollbackScope.all()) == "all"
        assert str(RollbackScope.failed_only()) == "failed"
        assert str(RollbackScope.date_range(date(2024, 1, 1), date(2024, 1, 2))) == (
            "date 2024-01-01..2024-01-02"
        )


class TestScopedQueries:
    """Tests for local_record_ids() and delete_where()."""

    @pytest.fixture
    def populated(self, ledger: LedgerStore) -> LedgerStore:
        ledger.upsert(_record("a", SyncStatus.IMPORTED, 11, datetime(2024, 3, 9, 23, 59, 59)))
        ledger.upsert(_record("b", SyncStatus.IMPORTED, 12, datetime(2024, 3, 10, 0, 0, 0)))
        ledger.upsert(_record("c", SyncStatus.ERROR, 13, datetime(2024, 3, 10, 23, 59, 59)))
        ledger.upsert(_record("d", SyncStatus.ERROR, 0, datetime(2024, 3, 11, 0, 0, 0)))
        return ledger

    def test_all_excludes_rows_without_record(self, populated):
        assert sorted(populated.local_record_ids(RollbackScope.all())) == [11, 12, 13]

    def test_failed_only(self, populated):
        assert populated.local_record_ids(RollbackScope.failed_only()) == [13]

    def test_date_range_covers_whole_days(self, populated):
        scope = RollbackScope.date_range("2024-03-10", "2024-03-10")
        assert sorted(populated.local_record_ids(scope)) == [12, 13]

    def test_delete_where_failed_removes_rows_without_record(self, populated):
        removed = populated.delete_where(RollbackScope.failed_only())

        assert removed == 2
        assert populated.find_by_external_id("c") is None
        assert populated.find_by_external_id("d") is None
        assert populated.count() == 2

    def test_delete_where_date_range(self, populated):
        removed = populated.delete_where(RollbackScope.date_range("2024-03-10", "2024-03-10"))

        assert removed == 2
        remaining = {r.external_id for r in populated.list_recent()}
        assert remaining == {"a", "d"}

    def test_delete_where_all(self, populated):
        assert populated.delete_where(RollbackScope.all()) == 4
        assert populated.count() == 0
