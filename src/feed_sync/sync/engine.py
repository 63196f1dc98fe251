"""
Sync engine: feed entries to destination records.

For every entry the engine looks up the ledger, applies the retry cap,
creates or updates the destination record, records the outcome in the
ledger and runs the post-sync hooks. It can process the whole feed in one
call or a slice of it per call (batch mode), so long feeds can be synced
by an external driver in small, resumable steps.

This module is designed to be used in three ways:

1. **Programmatic** -- build a ``SyncEngine`` and call ``run_full_sync()``.
2. **CLI** -- invoked via ``feed-sync sync`` / ``feed-sync batch``.
3. **Scheduled** -- called periodically by an external scheduler (cron,
   systemd timer, etc.), typically one batch per invocation.

Example:
    >>> engine = SyncEngine(ledger, feed_source, destination, mapper, settings)
    >>> report = engine.run_full_sync()
    >>> print(report.message)
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from feed_sync.config import SyncSettings
from feed_sync.destinations.base import DestinationStore, NullHooks, SyncHooks
from feed_sync.exceptions import FetchError, StoreError
from feed_sync.ingestion.base import FeedSource
from feed_sync.mapping.content_mapper import ContentMapper
from feed_sync.models.entities import (
    DestinationPayload,
    FeedEntry,
    LedgerStats,
    SyncRecord,
    SyncStatus,
)
from feed_sync.models.ledger import LedgerStore
from feed_sync.sync.outcomes import (
    BatchReport,
    ItemOutcome,
    RetryReport,
    RunReport,
    SyncAction,
    SyncReport,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_REVIEW_STATUS = "draft"


class SyncEngine:
    """
    Orchestrates feed synchronization against an injected ledger.

    Attributes:
        ledger: Sync ledger
        feed_source: Fetches feed entries
        destination: Destination content store
        mapper: Builds destination payloads
        settings: Read-only sync settings
        hooks: Post-sync side effects
        max_retries: Failed entries whose retry count reached this are skipped
        review_status: Status forced on updated records
    """

    def __init__(
        self,
        ledger: LedgerStore,
        feed_source: FeedSource,
        destination: DestinationStore,
        mapper: ContentMapper,
        settings: SyncSettings,
        hooks: Optional[SyncHooks] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        review_status: str = DEFAULT_REVIEW_STATUS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.ledger = ledger
        self.feed_source = feed_source
        self.destination = destination
        self.mapper = mapper
        self.settings = settings
        self.hooks = hooks or NullHooks()
        self.max_retries = max_retries
        self.review_status = review_status
        self.clock = clock

    # -------------------------------------------------------------------
    #  Run modes
    # -------------------------------------------------------------------

    def run_full_sync(self) -> SyncReport:
        """
        Fetch the feed and process every entry in feed order.

        A failing entry never stops the run; only a fetch failure does, in
        which case nothing is processed and the report is unsuccessful.

        Returns:
            SyncReport with per-entry outcomes and counts
        """
        report = SyncReport(started_at=self._now_iso())
        entries = self._fetch(report)
        if entries is None:
            return report

        report.total_posts = len(entries)
        for entry in entries:
            report.add(self._process_safely(entry))

        logger.info("Full sync finished: %s", report.message)
        return report

    def run_batch_sync(self, batch_size: int = 1, offset: int = 0) -> BatchReport:
        """
        Process the slice ``[offset, offset + batch_size)`` of the feed.

        The feed is fetched on every call and the total count is fixed at
        that fetch. If the feed changes between calls, offsets can skip or
        repeat entries relative to a single full run.

        Args:
            batch_size: Number of entries to process (>= 1)
            offset: Index of the first entry to process (>= 0)

        Returns:
            BatchReport with ``next_offset`` and ``has_more`` for resuming

        Raises:
            ValueError: If batch_size or offset is out of range
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        if offset < 0:
            raise ValueError(f"offset must not be negative, got {offset}")

        report = BatchReport(
            started_at=self._now_iso(),
            current_offset=offset,
            next_offset=offset,
        )
        entries = self._fetch(report)
        if entries is None:
            return report

        total = len(entries)
        report.total_posts = total
        if total == 0:
            report.progress_percentage = 100.0
            return report

        for entry in entries[offset:offset + batch_size]:
            report.add(self._process_safely(entry))

        report.next_offset = offset + batch_size
        report.has_more = report.next_offset < total
        report.progress_percentage = min(
            round(report.next_offset / total * 100, 1), 100.0
        )

        logger.info(
            "Batch [%d:%d] of %d finished: %d imported, %d updated, %d skipped, %d failed",
            offset,
            report.next_offset,
            total,
            report.imported,
            report.updated,
            report.skipped,
            report.errors,
        )
        return report

    def run_until_complete(self, batch_size: int = 1, start_offset: int = 0) -> List[BatchReport]:
        """
        Drive batch calls until the feed is exhausted or a fetch fails.

        Returns:
            One BatchReport per call, in order
        """
        reports = []
        offset = start_offset
        while True:
            report = self.run_batch_sync(batch_size=batch_size, offset=offset)
            reports.append(report)
            if not report.success or not report.has_more:
                return reports
            offset = report.next_offset

    # -------------------------------------------------------------------
    #  Per-entry processing
    # -------------------------------------------------------------------

    def process_entry(self, entry: FeedEntry) -> ItemOutcome:
        """
        Decide and apply skip, import or update for one entry.

        An entry with no ledger row is imported. So is an entry whose row
        has no destination record (``local_record_id == 0``, left by a failed
        import or a reset of one), since there is nothing to update. Only
        rows with a destination record take the update path.

        Args:
            entry: Feed entry to process

        Returns:
            ItemOutcome describing what happened
        """
        existing = self.ledger.find_by_external_id(entry.id)

        if (
            existing is not None
            and existing.status == SyncStatus.ERROR
            and existing.retry_count >= self.max_retries
        ):
            logger.info(
                "Skipping %s after %d retries (max %d)",
                entry.id,
                existing.retry_count,
                self.max_retries,
            )
            return ItemOutcome(
                action=SyncAction.SKIPPED,
                external_id=entry.id,
                title=entry.title,
                local_record_id=existing.local_record_id,
                message=f"Skipped: {entry.title} (max retries exceeded)",
            )

        if existing is None or existing.local_record_id == 0:
            return self._import(entry)
        return self._update(entry, existing)

    def _import(self, entry: FeedEntry) -> ItemOutcome:
        try:
            payload = self.mapper.build_payload(entry)
            local_id = self.destination.create(payload)
        except StoreError as exc:
            return self._record_failure(entry, 0, str(exc), "import")

        self._record_success(entry, local_id, SyncStatus.IMPORTED)
        self._run_hooks(local_id, payload)
        return ItemOutcome(
            action=SyncAction.IMPORTED,
            external_id=entry.id,
            title=entry.title,
            local_record_id=local_id,
            message=f"Successfully imported: {entry.title}",
        )

    def _update(self, entry: FeedEntry, existing: SyncRecord) -> ItemOutcome:
        local_id = existing.local_record_id
        try:
            payload = self.mapper.build_payload(entry).model_copy(
                update={"status": self.review_status}
            )
            local_id = self.destination.update(existing.local_record_id, payload)
        except StoreError as exc:
            return self._record_failure(entry, existing.local_record_id, str(exc), "update")

        self._record_success(entry, local_id, SyncStatus.UPDATED)
        self._run_hooks(local_id, payload)
        return ItemOutcome(
            action=SyncAction.UPDATED,
            external_id=entry.id,
            title=entry.title,
            local_record_id=local_id,
            message=f"Successfully updated: {entry.title}",
        )

    def _record_success(self, entry: FeedEntry, local_id: int, status: SyncStatus) -> None:
        self.ledger.upsert(
            SyncRecord(
                external_id=entry.id,
                local_record_id=local_id,
                title=entry.title,
                last_synced_at=self.clock(),
                status=status,
            )
        )

    def _record_failure(
        self, entry: FeedEntry, local_id: int, detail: str, operation: str
    ) -> ItemOutcome:
        logger.error("Failed to %s %s: %s", operation, entry.id, detail)
        stored = self.ledger.upsert(
            SyncRecord(
                external_id=entry.id,
                local_record_id=local_id,
                title=entry.title,
                last_synced_at=self.clock(),
                status=SyncStatus.ERROR,
                error_message=detail,
            )
        )
        return ItemOutcome(
            action=SyncAction.ERROR,
            external_id=entry.id,
            title=entry.title,
            local_record_id=stored.local_record_id,
            message=f"Failed to {operation}: {entry.title} - {detail}",
        )

    def _run_hooks(self, local_id: int, payload: DestinationPayload) -> None:
        try:
            self.hooks.import_media(local_id, payload.body)
        except Exception as exc:
            logger.warning("Media import failed for record %d: %s", local_id, exc)

        try:
            self.hooks.normalize_template(local_id, payload.content_type)
        except Exception as exc:
            logger.warning("Template normalization failed for record %d: %s", local_id, exc)

    def _process_safely(self, entry: FeedEntry) -> ItemOutcome:
        try:
            return self.process_entry(entry)
        except Exception as exc:
            logger.exception("Unexpected error processing %s", entry.id)
            return ItemOutcome(
                action=SyncAction.ERROR,
                external_id=entry.id,
                title=entry.title,
                message=f"Error: {exc}",
            )

    def _fetch(self, report: RunReport) -> Optional[List[FeedEntry]]:
        if not self.settings.feed_url:
            logger.error("No feed URL configured")
            report.success = False
            report.error = "No feed URL configured"
            return None

        try:
            return self.feed_source.fetch_entries(self.settings.feed_url)
        except FetchError as exc:
            logger.error("Error fetching feed: %s", exc)
            report.success = False
            report.error = f"Error fetching feed: {exc}"
            return None

    def _now_iso(self) -> str:
        return self.clock().strftime("%Y-%m-%dT%H:%M:%S")

    # -------------------------------------------------------------------
    #  Retry management and queries
    # -------------------------------------------------------------------

    def retry_failed_all(self, max_retries: Optional[int] = None) -> RetryReport:
        """
        Reset failed entries so the next run attempts them again.

        Nothing is reprocessed here.

        Args:
            max_retries: Only reset entries with fewer retries than this;
                None resets every failed entry, including skipped ones

        Returns:
            RetryReport listing the reset entries
        """
        report = RetryReport(external_ids=self.ledger.reset_failed(max_retries))

        logger.info("Reset retry status for %d entries", report.retried_count)
        return report

    def get_stats(self) -> LedgerStats:
        return self.ledger.aggregate_stats()

    def get_failed_needing_retry(self, max_retries: Optional[int] = None) -> List[SyncRecord]:
        """Failed entries still under the retry cap, oldest first."""
        limit = self.max_retries if max_retries is None else max_retries
        return self.ledger.list_errors_under_retry_limit(limit)

    def get_recent_log(self, limit: int = 50) -> List[SyncRecord]:
        return self.ledger.list_recent(limit)
