# src/daybook/tasks/recurrence.py

from __future__ import annotations

"""
Recurrence evaluation.

is_scheduled(task, day) answers "does this task occur on this calendar day?".
It is called for every task in every view, so it never raises: a malformed
record or an unparseable day is logged and treated as "not scheduled".

Precedence:
- note tasks never occur
- tasks without recurrence inherit their parent's schedule (subtasks) or never occur
- additional dates always occur (off-schedule check-ins)
- outside [start_date, end_date] nothing occurs
- exception dates are removed from the base rule
- the base rule decides the rest
"""

import logging
from collections.abc import Callable, Mapping
from datetime import date, datetime, timedelta

from ..calendar_math import (
    DayLike,
    days_between,
    is_last_occurrence_of_weekday_in_month,
    iter_days,
    months_between,
    normalize_day,
    ordinal_week_of,
    parse_hhmm,
    weekday_of,
    years_between,
)
from ..errors import InvalidRecurrence
from .task_models import RecurrenceSpec, RecurrenceType, Task, WeekPattern

logger = logging.getLogger(__name__)

# Deepest parent chain followed for inherited scheduling.
_MAX_PARENT_DEPTH = 16


def validate_recurrence(spec: RecurrenceSpec) -> RecurrenceSpec:
    """Reject malformed rules; returns the spec unchanged when it is valid."""
    kind = spec.type
    if not isinstance(kind, RecurrenceType):
        raise InvalidRecurrence(f"unknown recurrence type: {kind!r}")

    if spec.interval < 1:
        raise InvalidRecurrence(f"interval must be >= 1, got {spec.interval}")
    if spec.start_date and spec.end_date and spec.end_date < spec.start_date:
        raise InvalidRecurrence("end_date is before start_date")

    if kind == RecurrenceType.NONE:
        if spec.start_date is None:
            raise InvalidRecurrence("one-time rule requires start_date")
        return spec

    if kind == RecurrenceType.WEEKLY:
        if not spec.days:
            raise InvalidRecurrence("weekly rule requires at least one weekday")
        bad = sorted(d for d in spec.days if not 0 <= d <= 6)
        if bad:
            raise InvalidRecurrence(f"weekday out of range: {bad}")
        return spec

    if kind in (RecurrenceType.MONTHLY, RecurrenceType.YEARLY):
        if kind == RecurrenceType.YEARLY and (spec.month is None or not 1 <= spec.month <= 12):
            raise InvalidRecurrence(f"yearly rule requires month 1..12, got {spec.month!r}")
        has_days = bool(spec.day_of_month)
        has_pattern = spec.week_pattern is not None
        if has_days == has_pattern:
            raise InvalidRecurrence(f"{kind} rule requires exactly one of dayOfMonth / weekPattern")
        if has_days:
            bad = sorted(d for d in spec.day_of_month if not 1 <= d <= 31)
            if bad:
                raise InvalidRecurrence(f"day of month out of range: {bad}")
        else:
            _validate_week_pattern(spec.week_pattern)
    return spec


def _validate_week_pattern(pattern: WeekPattern | None) -> None:
    if pattern is None:
        return
    if pattern.ordinal not in (-1, 1, 2, 3, 4, 5):
        raise InvalidRecurrence(f"week pattern ordinal must be -1 or 1..5, got {pattern.ordinal}")
    if not 0 <= pattern.day_of_week <= 6:
        raise InvalidRecurrence(f"week pattern weekday out of range: {pattern.day_of_week}")


# ---- rule matchers (bounds already checked) ----


def _matches_none(spec: RecurrenceSpec, day: date) -> bool:
    return spec.start_date is not None and day == spec.start_date


def _matches_daily(spec: RecurrenceSpec, day: date) -> bool:
    if spec.start_date is None or spec.interval <= 1:
        return True
    return days_between(spec.start_date, day) % spec.interval == 0


def _matches_weekly(spec: RecurrenceSpec, day: date) -> bool:
    return weekday_of(day) in spec.days


def _matches_day_pattern(spec: RecurrenceSpec, day: date) -> bool:
    if spec.day_of_month:
        # A day number the month does not have simply never occurs.
        return day.day in spec.day_of_month
    pattern = spec.week_pattern
    if pattern is None or weekday_of(day) != pattern.day_of_week:
        return False
    if pattern.ordinal == -1:
        return is_last_occurrence_of_weekday_in_month(day)
    return ordinal_week_of(day) == pattern.ordinal


def _matches_monthly(spec: RecurrenceSpec, day: date) -> bool:
    if spec.start_date is not None and months_between(spec.start_date, day) % spec.interval != 0:
        return False
    return _matches_day_pattern(spec, day)


def _matches_yearly(spec: RecurrenceSpec, day: date) -> bool:
    if day.month != spec.month:
        return False
    if spec.start_date is not None and years_between(spec.start_date, day) % spec.interval != 0:
        return False
    return _matches_day_pattern(spec, day)


_RULES: dict[RecurrenceType, Callable[[RecurrenceSpec, date], bool]] = {
    RecurrenceType.NONE: _matches_none,
    RecurrenceType.DAILY: _matches_daily,
    RecurrenceType.WEEKLY: _matches_weekly,
    RecurrenceType.MONTHLY: _matches_monthly,
    RecurrenceType.YEARLY: _matches_yearly,
}

if set(_RULES) != set(RecurrenceType):
    raise RuntimeError(f"no matcher for: {sorted(set(RecurrenceType) - set(_RULES))}")


def _in_bounds(spec: RecurrenceSpec, day: date) -> bool:
    if spec.start_date is not None and day < spec.start_date:
        return False
    if spec.end_date is not None and day > spec.end_date:
        return False
    return True


def _coerce_day(value: DayLike) -> date | None:
    try:
        return normalize_day(value)
    except (TypeError, ValueError):
        logger.warning("Unparseable day %r; treating as not scheduled", value)
        return None


def _rule_matches(task: Task, spec: RecurrenceSpec, day: date) -> bool:
    if not _in_bounds(spec, day):
        return False
    if day in spec.exceptions:
        return False
    matcher = _RULES.get(spec.type) if isinstance(spec.type, RecurrenceType) else None
    if matcher is None:
        logger.warning("Unknown recurrence type %r on task %s; never scheduled", spec.type, task.id)
        return False
    return matcher(spec, day)


def matches_rule(task: Task, day: DayLike) -> bool:
    """Base rule only: bounds, exceptions and pattern, ignoring additional dates."""
    d = _coerce_day(day)
    if d is None or task.is_note or task.recurrence is None:
        return False
    return _rule_matches(task, task.recurrence, d)


def is_scheduled(task: Task, day: DayLike, tasks: Mapping[str, Task] | None = None) -> bool:
    """
    True when the task occurs on the given calendar day.

    `tasks` (id -> Task) lets a subtask without its own recurrence inherit its
    parent's schedule.
    """
    d = _coerce_day(day)
    if d is None:
        return False
    return _is_scheduled(task, d, tasks, 0)


def _is_scheduled(task: Task, day: date, tasks: Mapping[str, Task] | None, depth: int) -> bool:
    if task.is_note:
        return False

    spec = task.recurrence
    if spec is None:
        if task.parent_id is None or tasks is None:
            return False
        parent = tasks.get(task.parent_id)
        if parent is None:
            return False
        if depth >= _MAX_PARENT_DEPTH:
            logger.warning("Parent chain too deep (cycle?) at task %s", task.id)
            return False
        return _is_scheduled(parent, day, tasks, depth + 1)

    if day in spec.additional_dates:
        return True
    return _rule_matches(task, spec, day)


def scheduled_days(
    task: Task,
    start: DayLike,
    end: DayLike,
    tasks: Mapping[str, Task] | None = None,
) -> list[date]:
    s, e = _coerce_day(start), _coerce_day(end)
    if s is None or e is None:
        return []
    return [d for d in iter_days(s, e) if _is_scheduled(task, d, tasks, 0)]


def next_occurrence(
    task: Task,
    after: DayLike,
    tasks: Mapping[str, Task] | None = None,
    *,
    horizon_days: int = 366 * 8,
) -> date | None:
    """First scheduled day strictly after `after`, searching up to horizon_days ahead."""
    d = _coerce_day(after)
    if d is None:
        return None
    spec = task.recurrence
    for offset in range(1, horizon_days + 1):
        candidate = d + timedelta(days=offset)
        if spec is not None and spec.end_date is not None and candidate > spec.end_date:
            later = sorted(x for x in spec.additional_dates if x > d)
            return later[0] if later else None
        if _is_scheduled(task, candidate, tasks, 0):
            return candidate
    return None


# ---- date/time helpers used by the backlog and overdue badges ----


def _wall_time(now: datetime) -> datetime:
    # `now` is already in the configured zone (EngineState.now); its wall clock is local time.
    return now.replace(tzinfo=None)


def task_datetime(task: Task) -> datetime | None:
    """The task's nominal start as a naive local datetime (start of day when untimed)."""
    spec = task.recurrence
    if spec is None or spec.start_date is None:
        return None
    hhmm = parse_hhmm(task.time)
    hours, minutes = hhmm if hhmm else (0, 0)
    return datetime(spec.start_date.year, spec.start_date.month, spec.start_date.day, hours, minutes)


def has_future_date_time(task: Task, now: datetime) -> bool:
    """
    True when the task is dated in the future.

    Untimed tasks compare by day only; timed tasks compare the full local datetime.
    """
    when = task_datetime(task)
    if when is None:
        return False
    local_now = _wall_time(now)
    if parse_hhmm(task.time) is None:
        return when.date() > local_now.date()
    return when > local_now


def is_overdue(task: Task, day: DayLike, *, has_record: bool, now: datetime) -> bool:
    """
    A timed task with no record on `day` whose time has already passed.

    Untimed tasks are never overdue; any record (completed or skipped) clears it.
    """
    hhmm = parse_hhmm(task.time)
    if hhmm is None or has_record:
        return False
    spec = task.recurrence
    if spec is None:
        return False
    d = _coerce_day(day)
    if d is None:
        return False
    base = spec.start_date if spec.type == RecurrenceType.NONE else d
    if base is None:
        return False
    due = datetime(base.year, base.month, base.day, hhmm[0], hhmm[1])
    local_now = _wall_time(now)
    return due < local_now
