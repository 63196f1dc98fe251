"""
SQLite schema and database initialization.

Defines the sync ledger table: one row per external feed identifier,
holding the destination record id, last outcome, retry count and error
detail. Provides functions to create, inspect and drop the schema.
"""

import sqlite3
from pathlib import Path


LEDGER_TABLE = "sync_log"

SCHEMA_SQL = """
-- ============================================================
-- SYNC_LOG: Per-entry sync ledger, keyed by the feed's external id
-- ============================================================
CREATE TABLE IF NOT EXISTS sync_log (
    external_id     TEXT    NOT NULL PRIMARY KEY,
    local_record_id INTEGER NOT NULL DEFAULT 0 CHECK (local_record_id >= 0),
    title           TEXT    NOT NULL DEFAULT '',
    last_synced_at  TEXT    NOT NULL,  -- YYYY-MM-DD HH:MM:SS, local time
    status          TEXT    NOT NULL DEFAULT 'pending' CHECK (status IN ('imported', 'updated', 'error', 'pending')),
    retry_count     INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0),
    error_message   TEXT    NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_sync_log_status ON sync_log(status);
CREATE INDEX IF NOT EXISTS idx_sync_log_synced_at ON sync_log(last_synced_at);
CREATE INDEX IF NOT EXISTS idx_sync_log_local_id ON sync_log(local_record_id);
"""


def create_all_tables(db_path: Path) -> None:
    """
    Create the database file and the ledger table with indexes.

    Idempotent - safe to call multiple times.

    Args:
        db_path: Path to the SQLite database file to create/initialize

    Example:
        >>> create_all_tables(Path("data/db/feed_sync.db"))
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA encoding = 'UTF-8'")

    try:
        conn.executescript(SCHEMA_SQL)
        conn.commit()
    finally:
        conn.close()


def get_table_names(db_path: Path) -> list[str]:
    """
    Get list of all tables in the database.

    Args:
        db_path: Path to the SQLite database file

    Returns:
        List of table names
    """
    conn = sqlite3.connect(str(db_path))
    try:
        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        )
        return [row[0] for row in cursor.fetchall()]
    finally:
        conn.close()


def drop_all_tables(db_path: Path) -> None:
    """
    Drop all tables in the database.

    WARNING: This deletes the whole ledger. Destination records
    are not touched; use the rollback engine for that.

    Args:
        db_path: Path to the SQLite database file
    """
    conn = sqlite3.connect(str(db_path))

    try:
        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name != 'sqlite_sequence'"
        )
        tables = [row[0] for row in cursor.fetchall()]

        for table in tables:
            conn.execute(f"DROP TABLE IF EXISTS {table}")

        conn.commit()
    finally:
        conn.close()
