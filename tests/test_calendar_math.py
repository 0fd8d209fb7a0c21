# tests/test_calendar_math.py

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from daybook.calendar_math import (
    days_between,
    format_iso_day,
    format_wire_day,
    is_last_occurrence_of_weekday_in_month,
    iter_days,
    months_between,
    normalize_day,
    ordinal_week_of,
    parse_hhmm,
    resolve_timezone,
    weekday_of,
    years_between,
)


def test_weekday_of_counts_from_sunday() -> None:
    assert weekday_of(date(2024, 6, 2)) == 0  # Sunday
    assert weekday_of(date(2024, 6, 3)) == 1
    assert weekday_of(date(2024, 6, 8)) == 6


def test_ordinal_week_and_last_weekday() -> None:
    assert ordinal_week_of(date(2024, 6, 1)) == 1
    assert ordinal_week_of(date(2024, 6, 7)) == 1
    assert ordinal_week_of(date(2024, 6, 8)) == 2
    assert ordinal_week_of(date(2024, 6, 29)) == 5

    assert is_last_occurrence_of_weekday_in_month(date(2024, 6, 28))  # last Friday
    assert not is_last_occurrence_of_weekday_in_month(date(2024, 6, 21))
    assert is_last_occurrence_of_weekday_in_month(date(2024, 2, 29))


def test_month_and_year_differences_are_calendar_based() -> None:
    assert months_between(date(2024, 1, 31), date(2024, 2, 1)) == 1
    assert months_between(date(2023, 11, 15), date(2024, 2, 1)) == 3
    assert years_between(date(2023, 12, 31), date(2024, 1, 1)) == 1
    assert days_between(date(2024, 2, 28), date(2024, 3, 1)) == 2


def test_normalize_day_accepts_wire_strings_dates_and_datetimes() -> None:
    assert normalize_day("2024-06-02T00:00:00.000Z") == date(2024, 6, 2)
    assert normalize_day("2024-06-02") == date(2024, 6, 2)
    assert normalize_day(date(2024, 6, 2)) == date(2024, 6, 2)
    assert normalize_day(datetime(2024, 6, 2, 23, 30)) == date(2024, 6, 2)

    late_utc = datetime(2024, 6, 2, 23, 30, tzinfo=timezone.utc)
    assert normalize_day(late_utc, timezone(timedelta(hours=3))) == date(2024, 6, 3)


@pytest.mark.parametrize("bad", ["2024-02-30", "", "not a date"])
def test_normalize_day_rejects_invalid_strings(bad: str) -> None:
    with pytest.raises(ValueError):
        normalize_day(bad)


def test_formatting() -> None:
    d = date(2024, 3, 5)
    assert format_iso_day(d) == "2024-03-05"
    assert format_wire_day(d) == "2024-03-05T00:00:00.000Z"
    assert normalize_day(format_wire_day(d)) == d


def test_iter_days_is_inclusive() -> None:
    days = list(iter_days(date(2024, 2, 27), date(2024, 3, 1)))
    assert days == [date(2024, 2, 27), date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]
    assert list(iter_days(date(2024, 3, 1), date(2024, 2, 1))) == []


def test_parse_hhmm_and_timezones() -> None:
    assert parse_hhmm("07:05") == (7, 5)
    assert parse_hhmm("24:00") is None
    assert parse_hhmm("soon") is None
    assert parse_hhmm(None) is None

    assert resolve_timezone("") is None
    assert resolve_timezone("UTC") is not None
