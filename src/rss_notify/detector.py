"""Detection of feed items published since a feed was last seen."""

import logging
from datetime import datetime

from rss_notify.models import FeedItem
from rss_notify.timestamps import TimestampError, parse_timestamp

logger = logging.getLogger(__name__)


def is_item_unseen(published_at: str, last_seen: datetime | str | None) -> bool:
    """Whether an item published at ``published_at`` is newer than ``last_seen``.

    With no ``last_seen`` every item with a valid timestamp is unseen.

    Raises:
        TimestampError: If either timestamp cannot be parsed.
    """
    published = parse_timestamp(published_at)
    if last_seen is None:
        return True
    if isinstance(last_seen, str):
        last_seen = parse_timestamp(last_seen)
    return published > last_seen


def find_unseen(
    items: list[FeedItem],
    last_seen: datetime | None,
    warnings: list[str] | None = None,
) -> list[FeedItem]:
    """Return the items newer than ``last_seen``, in feed order.

    Items are trusted to arrive newest-first: the scan stops at the first
    dated item that is not newer, and everything after it counts as seen.
    Undated items and items with malformed dates are skipped without stopping
    the scan. With no ``last_seen`` every dated item is unseen.

    Args:
        items: Feed items, newest first.
        last_seen: Timestamp of the newest item already seen, if any.
        warnings: Optional list that collects a message per skipped item.
    """
    unseen = []
    for item in items:
        if not item.published_at:
            _warn(warnings, f"Item {item.link or item.title!r} has no date")
            continue

        try:
            fresh = is_item_unseen(item.published_at, last_seen)
        except TimestampError as e:
            _warn(warnings, f"Item {item.link or item.title!r}: {e}")
            continue

        if not fresh:
            break
        unseen.append(item)

    return unseen


def newest_item(items: list[FeedItem]) -> tuple[FeedItem, datetime] | None:
    """Return the item with the latest parseable timestamp, and that timestamp."""
    newest = None
    for item in items:
        try:
            published = parse_timestamp(item.published_at)
        except TimestampError:
            continue
        if newest is None or published > newest[1]:
            newest = (item, published)
    return newest


def _warn(warnings: list[str] | None, message: str) -> None:
    logger.warning(message)
    if warnings is not None:
        warnings.append(message)
