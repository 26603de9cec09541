"""SQLite persistence for feed records."""

import logging
import os
import sqlite3
from datetime import datetime

from rss_notify.models import FeedRecord
from rss_notify.timestamps import TimestampError, parse_timestamp

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS feeds (
    url TEXT PRIMARY KEY,
    schedule TEXT NOT NULL,
    last_seen TEXT
);
"""


class PersistenceError(Exception):
    """Raised when feed records cannot be loaded or saved."""


class Database:
    """SQLite database manager for feed records."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open database connection and initialize schema."""
        try:
            parent = os.path.dirname(self.db_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA_SQL)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Could not open {self.db_path}: {e}") from e

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "Database":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    def load_records(self) -> list[FeedRecord]:
        """Return every stored feed record."""
        try:
            rows = self.conn.execute(
                "SELECT * FROM feeds ORDER BY url"
            ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not load feed records: {e}") from e
        return [_row_to_record(r) for r in rows]

    def save_records(self, records: list[FeedRecord]) -> None:
        """Replace the stored record set with ``records`` in one transaction.

        Either every record is written or the previous contents are left as
        they were.
        """
        try:
            with self.conn:
                self.conn.execute("DELETE FROM feeds")
                self.conn.executemany(
                    "INSERT INTO feeds (url, schedule, last_seen) VALUES (?, ?, ?)",
                    [
                        (r.url, r.schedule, _dt_to_str(r.last_seen))
                        for r in records
                    ],
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not save feed records: {e}") from e
        logger.debug("Saved %d feed records to %s", len(records), self.db_path)


# --- Helper functions ---


def _dt_to_str(dt: datetime | None) -> str | None:
    """Convert datetime to ISO string for storage."""
    return dt.isoformat() if dt else None


def _str_to_dt(s: str | None) -> datetime | None:
    """Convert stored text back to datetime."""
    if not s:
        return None
    return parse_timestamp(s)


def _row_to_record(row: sqlite3.Row) -> FeedRecord:
    """Convert a database row to a FeedRecord dataclass."""
    try:
        last_seen = _str_to_dt(row["last_seen"])
    except TimestampError as e:
        logger.warning("Feed %s has unreadable last_seen (%s); treating as unchecked", row["url"], e)
        last_seen = None
    return FeedRecord(
        url=row["url"],
        schedule=row["schedule"],
        last_seen=last_seen,
    )
