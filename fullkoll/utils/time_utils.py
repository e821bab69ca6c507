"""Time and timezone utilities."""

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from dateutil.parser import isoparse


def to_utc(dt: datetime, tz: str) -> datetime:
    """Convert a datetime to UTC, assuming `tz` when it is naive."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz))
    return dt.astimezone(ZoneInfo("UTC"))


def from_utc(dt: datetime, tz: str) -> datetime:
    """Convert a UTC datetime to the given timezone."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo("UTC"))
    return dt.astimezone(ZoneInfo(tz))


def at_local_time(day: date, hour: int, tz: str) -> datetime:
    """Wall-clock `hour:00` on `day` in the given timezone."""
    return datetime.combine(day, time(hour=hour), tzinfo=ZoneInfo(tz))


def start_of_day(dt: datetime, tz: str) -> datetime:
    """Local midnight of the calendar day `dt` falls on."""
    return at_local_time(from_utc(dt, tz).date(), 0, tz)


def day_window(dt: datetime, tz: str) -> tuple[datetime, datetime]:
    """The half-open local calendar day [midnight, next midnight) containing `dt`."""
    start = start_of_day(dt, tz)
    end = at_local_time(start.date() + timedelta(days=1), 0, tz)
    return start, end


def parse_clock(value: str) -> time:
    """Parse an HH:MM string (24-hour)."""
    return time.fromisoformat(value)


def format_date(dt: datetime, tz: str) -> str:
    """Format a date the way sv-SE does (2025-01-31)."""
    return from_utc(dt, tz).strftime("%Y-%m-%d")



def parse_timestamp(value: object, tz: str) -> datetime | None:
    """Parse a stored timestamp, or None when it is missing or unreadable.

    Naive values are taken to be wall-clock time in `tz`.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = isoparse(value.strip())
        except (ValueError, OverflowError):
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=ZoneInfo(tz))
    return parsed
