"""
Date keys and reporting periods for the financial rollups.

Canonical rules:
- **Date keys** are plain `YYYY-MM-DD` strings; month keys are `YYYY-MM`.
- Strings are taken as already-normalized and passed through unchanged.
- datetimes / Firestore timestamps are keyed by their UTC calendar date.
- "Today", "this week" (Monday start), "this month" and "this year" are
  resolved in the business timezone (default America/Sao_Paulo).

No hard-coded offsets. Uses `zoneinfo` DST rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo

from optify.common import config

UTC = ZoneInfo("UTC")


def business_tz(name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(name or config.business_timezone())


def _duck_to_datetime(value: Any) -> Optional[datetime]:
    """
    Best-effort conversion for timestamp-like objects.

    Supported duck-typed shapes:
    - Firestore Timestamp (protobuf style): implements `.ToDatetime()` / `.to_datetime()`
    - serialized Timestamp mappings: {"seconds": ..., "nanoseconds": ...} or {"_seconds": ...}
    """
    for attr in ("to_datetime", "ToDatetime"):
        fn = getattr(value, attr, None)
        if callable(fn):
            dt = fn()
            if isinstance(dt, datetime):
                return dt

    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        if isinstance(seconds, (int, float)):
            return datetime.fromtimestamp(float(seconds), tz=UTC)

    return None


def to_utc(dt: datetime) -> datetime:
    """Normalize a datetime to tz-aware UTC. Naive datetimes are assumed UTC."""

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Best-effort tz-aware UTC datetime for a stored timestamp, or None.

    Accepts datetimes, dates, Firestore timestamps, {"seconds": ...} mappings
    and ISO strings (naive treated as UTC, trailing 'Z' allowed).
    """
    dt: Optional[datetime]
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        s = value.strip()
        if s.endswith("Z") or s.endswith("z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    else:
        dt = _duck_to_datetime(value)
    return to_utc(dt) if dt is not None else None


def timestamp_millis(value: Any) -> Optional[int]:
    """
    Epoch milliseconds for ordering purposes, or None when `value` is not a timestamp.

    Numeric epochs are accepted too (ms heuristic: abs(value) >= 1e12).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        v = float(value)
        return int(v if abs(v) >= 1e12 else v * 1000)

    dt = parse_datetime(value)
    if dt is None:
        return None
    return int(dt.timestamp() * 1000)


def format_date(value: Any) -> str:
    """
    Return the `YYYY-MM-DD` key for a transaction/summary date.

    Strings are returned unchanged (callers own normalization). Missing or
    unrecognized values yield "".
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        return to_utc(value).date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    dt = _duck_to_datetime(value)
    if dt is not None:
        return to_utc(dt).date().isoformat()
    return ""


def format_month(value: Any) -> str:
    return format_date(value)[:7]


def business_today(*, now: Optional[datetime] = None, tz_name: Optional[str] = None) -> date:
    now_utc = to_utc(now) if now is not None else datetime.now(tz=UTC)
    return now_utc.astimezone(business_tz(tz_name)).date()


@dataclass(frozen=True, slots=True)
class PeriodStarts:
    today: str
    week_start: str
    month_start: str
    year_start: str


def period_starts(today: date) -> PeriodStarts:
    """Period boundaries as date keys; weeks start on Monday."""
    week_start = today - timedelta(days=today.weekday())
    return PeriodStarts(
        today=today.isoformat(),
        week_start=week_start.isoformat(),
        month_start=today.replace(day=1).isoformat(),
        year_start=today.replace(month=1, day=1).isoformat(),
    )
