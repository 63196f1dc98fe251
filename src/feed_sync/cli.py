"""
Command-line interface for feed-sync.

Usage:
    feed-sync sync                       # Sync the whole feed
    feed-sync batch --offset 0           # Sync one batch, print next offset
    feed-sync batch --all                # Drive batches until the feed is done
    feed-sync retry                      # Reset failed entries for another attempt
    feed-sync rollback failed --yes      # Delete records whose sync failed
    feed-sync rollback date --from 2024-01-01 --to 2024-01-31
    feed-sync stats                      # Ledger statistics
    feed-sync failed                     # Failed entries still under the retry cap
    feed-sync log --limit 20             # Most recently synced entries
    feed-sync init-db                    # Create the ledger schema
    feed-sync --dry-run sync             # Preview against an in-memory destination
    feed-sync sync --output-json         # JSON output for CI integration
"""

import argparse
import json
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import List, Tuple

from feed_sync.config import CONFIG_FILE_ENV, Config, get_config
from feed_sync.destinations.memory import InMemoryDestinationStore
from feed_sync.exceptions import ConfigurationError, StoreError
from feed_sync.ingestion.rss_reader import RssFeedSource
from feed_sync.mapping.content_mapper import ContentMapper
from feed_sync.models.database import Database
from feed_sync.models.entities import SyncRecord
from feed_sync.models.ledger import LedgerStore, RollbackScope
from feed_sync.sync.engine import SyncEngine
from feed_sync.sync.outcomes import RetryReport
from feed_sync.sync.rollback import RollbackEngine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
#  Wiring
# ---------------------------------------------------------------------------

def _open_ledger(config: Config, args) -> LedgerStore:
    """Ledger for this invocation; dry runs get one inside ``args.dry_run_dir``."""
    if args.dry_run:
        db_path = args.dry_run_dir / "ledger.db"
        logger.info("Dry run: using throwaway ledger at %s", db_path)
    else:
        db_path = config.db_path
    ledger = LedgerStore(Database(db_path))
    ledger.initialize()
    return ledger


def _ledger_or_exit(args) -> Tuple[Config, LedgerStore]:
    """Open the ledger alone, for commands that never touch the destination."""
    config = get_config()
    return config, _open_ledger(config, args)


def _build_engines(config: Config, args) -> Tuple[SyncEngine, RollbackEngine]:
    """
    Wire the ledger, feed source, destination and engines from config.

    Raises:
        ConfigurationError: If the WordPress destination is not configured
            and this is not a dry run
        StoreError: If WordPress cannot be reached while resolving the
            content type
    """
    settings = config.sync_settings()
    ledger = _open_ledger(config, args)

    if args.dry_run:
        destination = InMemoryDestinationStore()
        registry = destination
        hooks = None
    else:
        if not config.wordpress_configured:
            raise ConfigurationError(
                "WordPress destination not configured. Set FEED_SYNC_WP_BASE_URL, "
                "FEED_SYNC_WP_USERNAME and FEED_SYNC_WP_APP_PASSWORD"
            )
        from feed_sync.destinations.wordpress import WordPressClient, WordPressHooks

        destination = WordPressClient(
            config.wp_base_url,
            config.wp_username,
            config.wp_app_password,
            timeout=config.request_timeout,
        )
        registry = destination
        hooks = WordPressHooks(destination, template_content_type=settings.specialized_content_type)

    mapper = ContentMapper(settings, registry)
    if not args.dry_run:
        # Id-only calls try the type new records are created as first.
        destination.preferred_content_type = mapper.resolve_content_type()

    sync_engine = SyncEngine(
        ledger,
        RssFeedSource(timeout=config.request_timeout),
        destination,
        mapper,
        settings,
        hooks=hooks,
        max_retries=config.max_retries,
        review_status=config.review_status,
    )
    return sync_engine, RollbackEngine(ledger, destination)


def _engines_or_exit(args) -> Tuple[Config, SyncEngine, RollbackEngine]:
    config = get_config()
    try:
        sync_engine, rollback_engine = _build_engines(config, args)
    except (ConfigurationError, StoreError) as exc:
        print(f"ERROR: {exc}")
        sys.exit(1)
    return config, sync_engine, rollback_engine


def _print_records(records: List[SyncRecord]) -> None:
    for record in records:
        synced = record.last_synced_at.strftime("%Y-%m-%d %H:%M:%S") if record.last_synced_at else "-"
        line = (
            f"  {synced}  {record.status.value:<8}  #{record.local_record_id:<6} "
            f"{record.title[:60]}"
        )
        if record.error_message:
            line += f"  [retries={record.retry_count}] {record.error_message}"
        print(line)


# ---------------------------------------------------------------------------
#  Sync commands
# ---------------------------------------------------------------------------

def cmd_sync(args):
    """Sync every entry in the feed."""
    _, engine, _ = _engines_or_exit(args)
    report = engine.run_full_sync()

    # JSON output mode (for CI/automation)
    if args.output_json:
        print(report.to_json())
        sys.exit(0 if report.success else 1)

    if not report.success:
        print(f"ERROR: {report.error}")
        sys.exit(1)

    print(report.message)
    for message in report.error_messages:
        print(f"  - {message}")


def cmd_batch(args):
    """Sync one batch of the feed, or all batches with --all."""
    config, engine, _ = _engines_or_exit(args)
    batch_size = args.batch_size or config.batch_size

    try:
        if args.all:
            reports = engine.run_until_complete(batch_size=batch_size, start_offset=args.offset)
        else:
            reports = [engine.run_batch_sync(batch_size=batch_size, offset=args.offset)]
    except ValueError as exc:
        print(f"ERROR: {exc}")
        sys.exit(1)

    last = reports[-1]
    if args.output_json:
        if args.all:
            print(json.dumps([r.to_dict() for r in reports], indent=2, ensure_ascii=False))
        else:
            print(last.to_json())
        sys.exit(0 if last.success else 1)

    for report in reports:
        if not report.success:
            print(f"ERROR: {report.error}")
            sys.exit(1)
        print(report.message)
        for message in report.error_messages:
            print(f"  - {message}")

    if last.has_more:
        print(f"Next offset: {last.next_offset}")
    else:
        print("Feed complete.")


def cmd_retry(args):
    """Reset failed entries so the next sync attempts them again."""
    _, ledger = _ledger_or_exit(args)
    report = RetryReport(external_ids=ledger.reset_failed(args.max_retries))

    if args.output_json:
        print(report.to_json())
        return
    print(report.message)


def cmd_rollback(args):
    """Delete synced records from the destination and prune the ledger."""
    if args.scope == "date":
        if not args.date_from or not args.date_to:
            print("ERROR: rollback date requires --from and --to")
            sys.exit(1)
        try:
            scope = RollbackScope.date_range(args.date_from, args.date_to)
        except ValueError as exc:
            print(f"ERROR: {exc}")
            sys.exit(1)
    elif args.scope == "failed":
        scope = RollbackScope.failed_only()
    else:
        scope = RollbackScope.all()

    _, engine, rollback_engine = _engines_or_exit(args)

    if not args.yes:
        pending = len(engine.ledger.local_record_ids(scope))
        answer = input(
            f"This will delete {pending} record(s) from the destination ({scope}). Continue? [y/N] "
        )
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return

    report = rollback_engine.rollback(scope)

    if args.output_json:
        print(report.to_json())
        return

    print(report.message)
    print(f"Removed {report.ledger_rows_removed} ledger row(s)")
    for local_id in report.failed_ids:
        print(f"  - could not delete record #{local_id}")


# ---------------------------------------------------------------------------
#  Query commands
# ---------------------------------------------------------------------------

def cmd_stats(args):
    """Show ledger statistics."""
    _, ledger = _ledger_or_exit(args)
    stats = ledger.aggregate_stats()

    if args.output_json:
        print(stats.model_dump_json(indent=2))
        return

    last = stats.last_sync_at.strftime("%Y-%m-%d %H:%M:%S") if stats.last_sync_at else "never"
    print(f"Total entries: {stats.total_count}")
    print(f"  Imported:    {stats.imported_count}")
    print(f"  Updated:     {stats.updated_count}")
    print(f"  Errors:      {stats.error_count}")
    print(f"  Pending:     {stats.pending_count}")
    print(f"Last sync:     {last}")


def cmd_failed(args):
    """List failed entries still under the retry cap."""
    config, ledger = _ledger_or_exit(args)
    limit = config.max_retries if args.max_retries is None else args.max_retries
    records = ledger.list_errors_under_retry_limit(limit)

    if args.output_json:
        print(json.dumps([r.model_dump(mode="json") for r in records], indent=2, ensure_ascii=False))
        return

    if not records:
        print("No failed entries awaiting retry.")
        return
    print(f"{len(records)} failed entr{'y' if len(records) == 1 else 'ies'} awaiting retry:")
    _print_records(records)


def cmd_log(args):
    """Show the most recently synced entries."""
    _, ledger = _ledger_or_exit(args)
    records = ledger.list_recent(limit=args.limit)

    if args.output_json:
        print(json.dumps([r.model_dump(mode="json") for r in records], indent=2, ensure_ascii=False))
        return

    if not records:
        print("Ledger is empty.")
        return
    _print_records(records)


def cmd_init_db(args):
    """Create the ledger schema."""
    config = get_config()
    ledger = LedgerStore(Database(config.db_path))
    ledger.initialize()
    print(f"Ledger ready at {config.db_path}")


# ---------------------------------------------------------------------------
#  Entry point
# ---------------------------------------------------------------------------

def _add_json_flag(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument(
        "--output-json",
        action="store_true",
        default=False,
        help="Output result as JSON (for CI/automation)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="feed-sync",
        description="Feed Sync -- import an RSS/Atom feed into WordPress, idempotently",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to feed_sync.yaml (default: search from the working directory)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Use an in-memory destination and a throwaway ledger",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # sync
    sub_sync = subparsers.add_parser("sync", help="Sync every entry in the feed")
    _add_json_flag(sub_sync)
    sub_sync.set_defaults(func=cmd_sync)

    # batch
    sub_batch = subparsers.add_parser("batch", help="Sync one batch of the feed")
    sub_batch.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Entries per batch (default: batch_size from config)",
    )
    sub_batch.add_argument("--offset", type=int, default=0, help="Index of the first entry")
    sub_batch.add_argument(
        "--all",
        action="store_true",
        default=False,
        help="Keep running batches until the feed is exhausted",
    )
    _add_json_flag(sub_batch)
    sub_batch.set_defaults(func=cmd_batch)

    # retry
    sub_retry = subparsers.add_parser("retry", help="Reset failed entries for another attempt")
    sub_retry.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Only reset entries with fewer retries than this (default: all failed)",
    )
    _add_json_flag(sub_retry)
    sub_retry.set_defaults(func=cmd_retry)

    # rollback
    sub_rollback = subparsers.add_parser("rollback", help="Delete synced records")
    sub_rollback.add_argument("scope", choices=["all", "failed", "date"], help="Rows to roll back")
    sub_rollback.add_argument("--from", dest="date_from", default=None, help="First day (YYYY-MM-DD)")
    sub_rollback.add_argument("--to", dest="date_to", default=None, help="Last day (YYYY-MM-DD)")
    sub_rollback.add_argument(
        "--yes",
        action="store_true",
        default=False,
        help="Skip the confirmation prompt",
    )
    _add_json_flag(sub_rollback)
    sub_rollback.set_defaults(func=cmd_rollback)

    # stats
    sub_stats = subparsers.add_parser("stats", help="Show ledger statistics")
    _add_json_flag(sub_stats)
    sub_stats.set_defaults(func=cmd_stats)

    # failed
    sub_failed = subparsers.add_parser("failed", help="List failed entries awaiting retry")
    sub_failed.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Retry cap (default: max_retries from config)",
    )
    _add_json_flag(sub_failed)
    sub_failed.set_defaults(func=cmd_failed)

    # log
    sub_log = subparsers.add_parser("log", help="Show recently synced entries")
    sub_log.add_argument("--limit", type=int, default=50, help="Number of rows")
    _add_json_flag(sub_log)
    sub_log.set_defaults(func=cmd_log)

    # init-db
    sub_init = subparsers.add_parser("init-db", help="Create the ledger schema")
    sub_init.set_defaults(func=cmd_init_db)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.config:
        os.environ[CONFIG_FILE_ENV] = args.config

    if not args.dry_run:
        args.func(args)
        return

    # Removed on the way out, including via sys.exit().
    with tempfile.TemporaryDirectory(prefix="feed-sync-") as tmpdir:
        args.dry_run_dir = Path(tmpdir)
        args.func(args)


if __name__ == "__main__":
    main()
