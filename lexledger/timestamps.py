"""
LexLedger - Timestamp Utilities

Everything in the database is naive UTC. Display code converts to the firm's
configured time zone.
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def now_utc() -> datetime:
    """Return the current time as naive UTC (compatible with database datetimes)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today_utc() -> date:
    return now_utc().date()


def to_local(dt: datetime, tz_name: str) -> datetime:
    """
    Convert a UTC datetime to the given IANA time zone.

    Args:
        dt: A datetime in UTC (naive or aware).
        tz_name: IANA zone name, e.g. "Europe/Istanbul".

    Returns:
        Timezone-aware datetime in that zone.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(ZoneInfo(tz_name))


def format_local(utc_naive: datetime, tz_name: str, fmt: str = "%d.%m.%Y %H:%M") -> str:
    """Format a naive UTC datetime for display in the firm's time zone."""
    return to_local(utc_naive, tz_name).strftime(fmt)


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """Return [start, end) of a calendar month as naive datetimes."""
    start = datetime(year, month, 1)
    if month == 12:
        end = datetime(year + 1, 1, 1)
    else:
        end = datetime(year, month + 1, 1)
    return start, end
