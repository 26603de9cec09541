"""In-memory store of feed check history."""

import copy
import logging
from datetime import datetime
from typing import Iterable

from rss_notify.models import FeedRecord
from rss_notify.schedule import validate_schedule

logger = logging.getLogger(__name__)


class FeedRecordStore:
    """Owns every FeedRecord, keyed by feed URL."""

    def __init__(self, records: Iterable[FeedRecord] = ()):
        self._records: dict[str, FeedRecord] = {r.url: r for r in records}

    def __len__(self) -> int:
        return len(self._records)

    def get(self, url: str) -> FeedRecord | None:
        return self._records.get(url)

    def all(self) -> list[FeedRecord]:
        """Return all records ordered by URL."""
        return [self._records[url] for url in sorted(self._records)]

    def upsert(self, url: str, schedule: str) -> FeedRecord:
        """Insert a record or change its schedule. ``last_seen`` is kept.

        Raises:
            InvalidScheduleError: If the schedule is not a valid cron expression.
        """
        validate_schedule(schedule)
        record = self._records.get(url)
        if record is None:
            record = FeedRecord(url=url, schedule=schedule)
            self._records[url] = record
        else:
            record.schedule = schedule
        return record

    def remove(self, url: str) -> bool:
        """Delete a record. Returns True if it existed."""
        return self._records.pop(url, None) is not None

    def advance(self, url: str, timestamp: datetime) -> bool:
        """Move ``last_seen`` forward to ``timestamp``. Never moves it back.

        Returns:
            True if ``last_seen`` changed.

        Raises:
            KeyError: If no record exists for ``url``.
        """
        record = self._records[url]
        if record.last_seen is not None and timestamp <= record.last_seen:
            logger.debug(
                "Not advancing %s: %s is not after %s", url, timestamp, record.last_seen
            )
            return False
        record.last_seen = timestamp
        return True

    def sync(self, feeds: Iterable[tuple[str, str]]) -> tuple[list[str], list[str]]:
        """Make the set of records match the configured ``(url, schedule)`` pairs.

        New feeds get a record with no ``last_seen``; schedules of known feeds
        are updated; records of feeds no longer configured are removed.

        Returns:
            Tuple of (added URLs, removed URLs).
        """
        configured = {}
        for url, schedule in feeds:
            validate_schedule(schedule)
            configured[url] = schedule

        added = [url for url in configured if url not in self._records]
        removed = [url for url in self._records if url not in configured]

        for url, schedule in configured.items():
            self.upsert(url, schedule)
        for url in removed:
            self.remove(url)

        if added or removed:
            logger.info("Synced records: %d added, %d removed", len(added), len(removed))
        return added, removed

    def snapshot(self) -> dict[str, FeedRecord]:
        return copy.deepcopy(self._records)

    def restore(self, snapshot: dict[str, FeedRecord]) -> None:
        self._records = copy.deepcopy(snapshot)
