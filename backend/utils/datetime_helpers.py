"""Datetime utility functions for timezone handling."""
from datetime import datetime, time, UTC
from typing import Optional
from zoneinfo import ZoneInfo


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is timezone-aware in UTC.

    SQLite hands back naive datetimes that should be treated as UTC.

    Example:
        >>> naive_dt = datetime(2025, 1, 1, 12, 0, 0)
        >>> ensure_utc(naive_dt).tzinfo == UTC
        True

        >>> ensure_utc(None) is None
        True
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` string into a time."""
    hours, _, minutes = value.strip().partition(":")
    return time(int(hours), int(minutes or 0))


def is_within_daily_window(
    moment: datetime,
    start: str,
    end: str,
    tz_name: str = "UTC",
) -> bool:
    """
    Check whether ``moment`` falls inside a daily [start, end) window.

    The window is evaluated in ``tz_name`` local time and may wrap past
    midnight (e.g. 22:00-02:00). Equal bounds mean the window is always open.

    Example:
        >>> is_within_daily_window(datetime(2025, 1, 1, 23, 0, tzinfo=UTC), "22:00", "02:00")
        True
    """
    local_time = ensure_utc(moment).astimezone(ZoneInfo(tz_name)).time().replace(tzinfo=None)
    start_time = parse_hhmm(start)
    end_time = parse_hhmm(end)

    if start_time == end_time:
        return True
    if start_time < end_time:
        return start_time <= local_time < end_time
    return local_time >= start_time or local_time < end_time
