"""
Database connection management.

Provides a Database class for managing SQLite connections to the sync
ledger. Every connection is opened per operation, commits on success and
rolls back on error.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path

from .schema import create_all_tables


class Database:
    """
    SQLite connection manager for the sync ledger.

    Example:
        >>> db = Database(Path("data/db/feed_sync.db"))
        >>> db.initialize()
        >>> with db.get_connection() as conn:
        ...     conn.execute("SELECT COUNT(*) FROM sync_log").fetchone()[0]
    """

    def __init__(self, db_path: Path):
        """
        Initialize database manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def initialize(self) -> None:
        """
        Initialize database schema.

        Creates the ledger table and indexes if they don't exist.
        Safe to call multiple times (idempotent).
        """
        create_all_tables(self.db_path)

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.

        The connection runs in ``IMMEDIATE`` transaction mode so a write
        takes the database lock at the start of its transaction.

        Yields:
            sqlite3.Connection: Database connection with row factory set
        """
        conn = sqlite3.connect(str(self.db_path), isolation_level="IMMEDIATE")
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA encoding = 'UTF-8'")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
