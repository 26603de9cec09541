"""Cron schedules deciding when a feed is due for a check."""

from datetime import datetime, timezone

from croniter import croniter


class InvalidScheduleError(ValueError):
    """Raised when a schedule is not a valid cron expression."""


def validate_schedule(schedule: str) -> str:
    """Check a cron expression and return it in croniter's field order.

    Five fields are ``minute hour day-of-month month day-of-week``. Six fields
    carry a leading seconds field, which croniter expects last.

    Raises:
        InvalidScheduleError: If the expression has the wrong number of
            fields or does not follow the cron grammar.
    """
    if not isinstance(schedule, str):
        raise InvalidScheduleError(f"Schedule must be a string, got {schedule!r}")

    fields = schedule.split()
    if len(fields) not in (5, 6):
        raise InvalidScheduleError(
            f"Schedule {schedule!r} must have 5 or 6 fields, got {len(fields)}"
        )
    if len(fields) == 6:
        fields = fields[1:] + fields[:1]

    expression = " ".join(fields)
    if not croniter.is_valid(expression):
        raise InvalidScheduleError(f"Invalid cron expression: {schedule!r}")
    return expression


def next_occurrence(schedule: str, after: datetime) -> datetime:
    """Return the first occurrence of the schedule strictly after ``after``."""
    expression = validate_schedule(schedule)
    start = _as_utc(after)
    return croniter(expression, start).get_next(datetime)


def is_due(schedule: str, last_seen: datetime | None, now: datetime) -> bool:
    """Whether a feed last checked at ``last_seen`` should be checked at ``now``.

    A feed that was never checked is always due. A feed checked exactly on an
    occurrence is not due again until the following one.
    """
    if last_seen is None:
        validate_schedule(schedule)
        return True
    return _as_utc(now) >= next_occurrence(schedule, last_seen)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
