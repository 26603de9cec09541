"""Parsing and formatting of feed timestamps."""

from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime


class TimestampError(ValueError):
    """Raised when a timestamp cannot be parsed."""


def parse_timestamp(text: str | None) -> datetime:
    """Parse an RFC 2822 timestamp, falling back to ISO 8601.

    RSS uses RFC 2822 (``Mon, 01 Jan 2024 00:00:00 +0000``); Atom feeds use
    ISO 8601. Naive results are taken to be UTC.

    Raises:
        TimestampError: If the text is empty or in neither format.
    """
    if text is None or not text.strip():
        raise TimestampError("Empty timestamp")
    text = text.strip()

    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        parsed = None

    if parsed is None:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise TimestampError(f"Unrecognized timestamp: {text!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as RFC 2822 text."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return format_datetime(dt)
