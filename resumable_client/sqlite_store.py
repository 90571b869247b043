"""SQLite-backed store for upload URLs."""

import logging
import sqlite3
import threading
from typing import Optional

from resumable_client.store import Store

logger = logging.getLogger(__name__)


class SQLiteStore(Store):
    """On-disk key-value store backed by a single SQLite table.

    One connection is shared by all threads and guarded by a lock.
    """

    def __init__(self, db_path: str = "tus_urls.db"):
        """Initialize SQLite store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = sqlite3.connect(
            db_path, check_same_thread=False
        )
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._lock:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS upload_urls (
                    fingerprint TEXT PRIMARY KEY,
                    url TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            self._conn.commit()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise ValueError(f"SQLiteStore at {self.db_path} is closed")
        return self._conn

    def get_url(self, fingerprint: str) -> Optional[str]:
        """Retrieve upload URL for fingerprint."""
        with self._lock:
            cursor = self._connection().execute(
                "SELECT url FROM upload_urls WHERE fingerprint = ?", (fingerprint,)
            )
            row = cursor.fetchone()
        return row[0] if row else None

    def set_url(self, fingerprint: str, url: str) -> None:
        """Store upload URL for fingerprint."""
        with self._lock:
            conn = self._connection()
            conn.execute(
                """
                INSERT OR REPLACE INTO upload_urls (fingerprint, url)
                VALUES (?, ?)
                """,
                (fingerprint, url),
            )
            conn.commit()

    def remove_url(self, fingerprint: str) -> None:
        """Remove URL for fingerprint."""
        with self._lock:
            conn = self._connection()
            conn.execute("DELETE FROM upload_urls WHERE fingerprint = ?", (fingerprint,))
            conn.commit()

    def close(self) -> None:
        """Close the database connection. Closing twice is a no-op."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug(f"Closed SQLite store {self.db_path}")
