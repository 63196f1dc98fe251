"""
Rollback engine.

Deletes the destination records the ledger knows about, then prunes the
matching ledger rows. Scopes select all rows, only failed rows, or rows
last synced within a date range.

Example:
    >>> engine = RollbackEngine(ledger, destination)
    >>> report = engine.rollback(RollbackScope.failed_only())
    >>> print(report.message)
"""

import logging
from datetime import date
from typing import Union

from feed_sync.destinations.base import DestinationStore
from feed_sync.exceptions import StoreError
from feed_sync.models.ledger import LedgerStore, RollbackScope
from feed_sync.sync.outcomes import RollbackReport

logger = logging.getLogger(__name__)


class RollbackEngine:
    """
    Removes synced content from the destination and the ledger.

    Attributes:
        ledger: Sync ledger
        destination: Destination content store
    """

    def __init__(self, ledger: LedgerStore, destination: DestinationStore) -> None:
        self.ledger = ledger
        self.destination = destination

    def rollback(self, scope: RollbackScope) -> RollbackReport:
        """
        Delete destination records in scope, then prune their ledger rows.

        A failed delete is recorded in ``failed_ids`` but does not stop the
        rollback; the ledger rows in scope are removed regardless.

        Args:
            scope: Which ledger rows to roll back

        Returns:
            RollbackReport with deleted and failed counts
        """
        report = RollbackReport(scope=str(scope))
        local_ids = self.ledger.local_record_ids(scope)
        logger.info("Rolling back %d record(s) for scope '%s'", len(local_ids), scope)

        for local_id in local_ids:
            try:
                deleted = self.destination.delete(local_id)
            except StoreError as exc:
                logger.warning("Could not delete record %d: %s", local_id, exc)
                deleted = False

            if deleted:
                report.deleted_count += 1
            else:
                logger.warning("Record %d was not deleted from the destination", local_id)
                report.failed_ids.append(local_id)

        report.ledger_rows_removed = self.ledger.delete_where(scope)
        logger.info(report.message)
        return report

    def rollback_all(self) -> RollbackReport:
        return self.rollback(RollbackScope.all())

    def rollback_failed(self) -> RollbackReport:
        return self.rollback(RollbackScope.failed_only())

    def rollback_by_date(
        self, date_from: Union[str, date], date_to: Union[str, date]
    ) -> RollbackReport:
        """
        Roll back rows last synced between two calendar days, inclusive.

        Raises:
            ValueError: If a date is invalid or the range is reversed
        """
        return self.rollback(RollbackScope.date_range(date_from, date_to))
