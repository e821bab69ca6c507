"""Tests for time utilities."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from fullkoll.utils.time_utils import (
    at_local_time,
    day_window,
    format_date,
    from_utc,
    parse_timestamp,
    to_utc,
)


def test_to_utc():
    """Test timezone conversion to UTC."""
    # CET in January is UTC+1
    dt = datetime(2026, 1, 15, 9, 0, tzinfo=ZoneInfo("Europe/Stockholm"))
    utc_dt = to_utc(dt, "Europe/Stockholm")

    assert utc_dt.tzinfo == ZoneInfo("UTC")
    assert utc_dt.hour == 8


def test_to_utc_naive_assumes_timezone():
    utc_dt = to_utc(datetime(2026, 7, 1, 9, 0), "Europe/Stockholm")
    # CEST in July is UTC+2
    assert utc_dt.hour == 7


def test_from_utc():
    """Test timezone conversion from UTC."""
    dt = datetime(2026, 7, 1, 7, 0, tzinfo=ZoneInfo("UTC"))
    local = from_utc(dt, "Europe/Stockholm")

    assert local.tzinfo == ZoneInfo("Europe/Stockholm")
    assert local.hour == 9


def test_at_local_time():
    dt = at_local_time(date(2026, 3, 20), 9, "Europe/Stockholm")
    assert dt.isoformat() == "2026-03-20T09:00:00+01:00"


def test_day_window():
    """The window is the local calendar day of the instant."""
    # 23:30 UTC on the 14th is already the 15th in Stockholm
    now = datetime(2026, 3, 14, 23, 30, tzinfo=ZoneInfo("UTC"))
    start, end = day_window(now, "Europe/Stockholm")

    assert start.isoformat() == "2026-03-15T00:00:00+01:00"
    assert end.isoformat() == "2026-03-16T00:00:00+01:00"


def test_parse_timestamp():
    parsed = parse_timestamp("2026-04-01T10:00:00Z", "UTC")
    assert parsed == datetime(2026, 4, 1, 10, 0, tzinfo=ZoneInfo("UTC"))

    # Date-only values are local midnight
    parsed = parse_timestamp("2026-04-01", "Europe/Stockholm")
    assert parsed == datetime(2026, 4, 1, tzinfo=ZoneInfo("Europe/Stockholm"))


def test_parse_timestamp_rejects_garbage():
    assert parse_timestamp(None, "UTC") is None
    assert parse_timestamp("", "UTC") is None
    assert parse_timestamp("next tuesday", "UTC") is None
    assert parse_timestamp("2026-13-45", "UTC") is None
    assert parse_timestamp(12345, "UTC") is None


def test_format_date():
    dt = datetime(2026, 3, 31, 23, 30, tzinfo=ZoneInfo("UTC"))
    assert format_date(dt, "UTC") == "2026-03-31"
    assert format_date(dt, "Europe/Stockholm") == "2026-04-01"
