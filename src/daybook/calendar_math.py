# src/daybook/calendar_math.py

"""
Calendar-day helpers.

Every comparison in the engine happens on `datetime.date` values. A `date` is the
Python rendition of "midnight of the user's local day": it carries no time and no
zone, so recurrence bounds, additional dates and completion keys all compare the
same way.

Conversion into that space happens once, in normalize_day():
- date       -> itself
- datetime   -> wall date (aware values are converted to the local zone first)
- str        -> ISO-8601, date as written ("2024-06-02T00:00:00.000Z" -> 2024-06-02)
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

from dateutil.parser import isoparse
from dateutil.rrule import DAILY, rrule

DayLike = date | datetime | str


def resolve_timezone(name: str | None) -> tzinfo | None:
    """Return a zone for an IANA name; empty name means "system local" (None)."""
    if not name or not name.strip():
        return None
    return ZoneInfo(name.strip())


def normalize_day(value: DayLike, tz: tzinfo | None = None) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(tz) if tz is not None else value.astimezone()
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            raise ValueError("empty date string")
        return isoparse(raw).date()
    raise TypeError(f"unsupported day value: {value!r}")


def now_local(tz: tzinfo | None = None) -> datetime:
    """Aware current time in `tz` (or the system local zone)."""
    return datetime.now(tz) if tz is not None else datetime.now().astimezone()


def today_local(tz: tzinfo | None = None) -> date:
    return now_local(tz).date()


def format_iso_day(day: date) -> str:
    return day.strftime("%Y-%m-%d")


def format_wire_day(day: date) -> str:
    # Completion keys and recurrence bounds travel as UTC-midnight instants.
    return f"{format_iso_day(day)}T00:00:00.000Z"


def weekday_of(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def ordinal_week_of(day: date) -> int:
    """1..5: which occurrence of its weekday this day is within the month."""
    return (day.day - 1) // 7 + 1


def is_last_occurrence_of_weekday_in_month(day: date) -> bool:
    return (day + timedelta(days=7)).month != day.month


def days_between(a: date, b: date) -> int:
    return (b - a).days


def months_between(a: date, b: date) -> int:
    """Calendar-month difference (Jan 31 -> Feb 1 is one month)."""
    return (b.year - a.year) * 12 + (b.month - a.month)


def years_between(a: date, b: date) -> int:
    return b.year - a.year


def iter_days(start: date, end: date) -> Iterator[date]:
    """Inclusive day range; empty when end < start."""
    if end < start:
        return iter(())
    rule = rrule(DAILY, dtstart=datetime.combine(start, datetime.min.time()),
                 until=datetime.combine(end, datetime.min.time()))
    return (dt.date() for dt in rule)


def parse_hhmm(value: str | None) -> tuple[int, int] | None:
    """Parse a local "HH:MM" time-of-day; None for missing or malformed values."""
    if not value:
        return None
    parts = value.strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours, minutes
