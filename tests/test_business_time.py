from __future__ import annotations

from datetime import date, datetime, timezone

from optify.time.business_time import (
    business_today,
    format_date,
    format_month,
    parse_datetime,
    period_starts,
    timestamp_millis,
)


class _FakeTimestamp:
    def __init__(self, dt: datetime) -> None:
        self._dt = dt

    def to_datetime(self) -> datetime:
        return self._dt


def test_format_date_passes_strings_through() -> None:
    assert format_date("2024-03-09") == "2024-03-09"
    assert format_month("2024-03-09") == "2024-03"
    assert format_date(None) == ""
    assert format_date(12345) == ""


def test_format_date_uses_utc_calendar_date() -> None:
    late = datetime(2024, 3, 9, 23, 30, tzinfo=timezone.utc)
    assert format_date(late) == "2024-03-09"
    assert format_date(date(2024, 3, 9)) == "2024-03-09"
    assert format_date(_FakeTimestamp(late)) == "2024-03-09"
    assert format_date({"seconds": 0}) == "1970-01-01"


def test_business_today_in_sao_paulo() -> None:
    # 02:00Z is still the previous evening in Sao Paulo (-03:00).
    now = datetime(2024, 3, 10, 2, 0, tzinfo=timezone.utc)
    assert business_today(now=now, tz_name="America/Sao_Paulo") == date(2024, 3, 9)
    assert business_today(now=now, tz_name="UTC") == date(2024, 3, 10)


def test_business_today_reads_timezone_from_env(monkeypatch) -> None:
    monkeypatch.setenv("OPTIFY_TIMEZONE", "Asia/Tokyo")
    now = datetime(2024, 3, 9, 16, 0, tzinfo=timezone.utc)
    assert business_today(now=now) == date(2024, 3, 10)


def test_period_starts_week_begins_monday() -> None:
    # 2024-03-10 is a Sunday.
    p = period_starts(date(2024, 3, 10))
    assert p.today == "2024-03-10"
    assert p.week_start == "2024-03-04"
    assert p.month_start == "2024-03-01"
    assert p.year_start == "2024-01-01"

    monday = period_starts(date(2024, 3, 4))
    assert monday.week_start == "2024-03-04"


def test_parse_datetime_and_millis() -> None:
    dt = parse_datetime("2024-01-01T00:00:00Z")
    assert dt == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_datetime("not a date") is None
    assert parse_datetime(None) is None

    assert timestamp_millis(dt) == 1704067200000
    assert timestamp_millis(1704067200) == 1704067200000
    assert timestamp_millis(1704067200000) == 1704067200000
    assert timestamp_millis(True) is None
    assert timestamp_millis("2024-01-01") == 1704067200000
