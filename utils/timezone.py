"""UTC-everywhere time handling. Eliminates timezone bugs at the source."""

from datetime import date, datetime, timedelta, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def today_utc() -> date:
    """Current UTC calendar date. Request and batch numbers are keyed on it."""
    return now_utc().date()


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def hours_ago(hours: int, now: datetime | None = None) -> datetime:
    """
    Cutoff timestamp `hours` before `now` (defaults to current UTC time).

    Used by time-window sweeps: rows at or before the cutoff are past the window.
    """
    reference = to_utc(now) if now is not None else now_utc()
    return reference - timedelta(hours=hours)
