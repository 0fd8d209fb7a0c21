# src/daybook/tasks/recurrence_wire.py

"""
JSON wire format for recurrence rules and completion records.

Recurrence:
    {"type": "monthly", "startDate": "2024-01-01T00:00:00.000Z", "endDate": null,
     "interval": 2, "dayOfMonth": [15], "weekPattern": {"ordinal": -1, "dayOfWeek": 5},
     "month": 3, "days": [1, 3, 5], "additionalDates": [...], "exceptions": [...]}

Completion:
    {"taskId": "...", "date": "2024-06-02T00:00:00.000Z", "outcome": "completed",
     "note": null, "actualValue": null, "time": null, "startedAt": null, "completedAt": null}
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

from dateutil.parser import isoparse

from ..calendar_math import format_wire_day, normalize_day
from ..errors import InvalidRecurrence
from .recurrence import validate_recurrence
from .task_models import RecurrenceSpec, RecurrenceType, WeekPattern

logger = logging.getLogger(__name__)


def _day_or_none(raw: Any, field_name: str) -> date | None:
    if raw is None or raw == "":
        return None
    try:
        return normalize_day(raw)
    except (TypeError, ValueError) as e:
        raise InvalidRecurrence(f"{field_name}: invalid date {raw!r}") from e


def _int_set(raw: Any, field_name: str) -> frozenset[int]:
    if raw is None:
        return frozenset()
    if isinstance(raw, bool):
        raise InvalidRecurrence(f"{field_name}: expected integers, got {raw!r}")
    if isinstance(raw, int):
        return frozenset({raw})
    if not isinstance(raw, (list, tuple, set, frozenset)):
        raise InvalidRecurrence(f"{field_name}: expected an integer array, got {raw!r}")
    out: set[int] = set()
    for item in raw:
        try:
            out.add(int(item))
        except (TypeError, ValueError) as e:
            raise InvalidRecurrence(f"{field_name}: not an integer: {item!r}") from e
    return frozenset(out)


def _day_set(raw: Any, field_name: str) -> frozenset[date]:
    if not raw:
        return frozenset()
    if not isinstance(raw, (list, tuple, set, frozenset)):
        raise InvalidRecurrence(f"{field_name}: expected a date array, got {raw!r}")
    out = set()
    for item in raw:
        d = _day_or_none(item, field_name)
        if d is not None:
            out.add(d)
    return frozenset(out)


def _week_pattern(raw: Any) -> WeekPattern | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise InvalidRecurrence(f"weekPattern: expected an object, got {raw!r}")
    try:
        return WeekPattern(ordinal=int(raw["ordinal"]), day_of_week=int(raw["dayOfWeek"]))
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidRecurrence(f"weekPattern: malformed {raw!r}") from e


def recurrence_from_wire(data: dict[str, Any] | None, *, strict: bool = True) -> RecurrenceSpec | None:
    """
    Decode a wire recurrence.

    strict=True validates the rule and raises InvalidRecurrence.
    strict=False is used when loading stored records: unknown types are kept so the
    evaluator can log and skip them instead of failing the whole load.
    """
    if data is None:
        return None
    if not isinstance(data, dict):
        raise InvalidRecurrence(f"recurrence must be an object, got {type(data).__name__}")

    kind = RecurrenceType.parse(data.get("type"))
    interval_raw = data.get("interval")
    try:
        interval = 1 if interval_raw is None else int(interval_raw)
    except (TypeError, ValueError) as e:
        raise InvalidRecurrence(f"interval: not an integer: {interval_raw!r}") from e
    month_raw = data.get("month")
    try:
        month = int(month_raw) if month_raw is not None else None
    except (TypeError, ValueError) as e:
        raise InvalidRecurrence(f"month: not an integer: {month_raw!r}") from e

    spec = RecurrenceSpec(
        type=kind,
        start_date=_day_or_none(data.get("startDate"), "startDate"),
        end_date=_day_or_none(data.get("endDate"), "endDate"),
        interval=interval,
        days=_int_set(data.get("days"), "days"),
        day_of_month=_int_set(data.get("dayOfMonth"), "dayOfMonth"),
        week_pattern=_week_pattern(data.get("weekPattern")),
        month=month,
        additional_dates=_day_set(data.get("additionalDates"), "additionalDates"),
        exceptions=_day_set(data.get("exceptions"), "exceptions"),
    )

    if strict:
        return validate_recurrence(spec)
    if not isinstance(kind, RecurrenceType):
        logger.warning("Loaded recurrence with unknown type %r", kind)
    return spec


def _sorted_days(days: Iterable[date]) -> list[str]:
    return [format_wire_day(d) for d in sorted(days)]


def recurrence_to_wire(spec: RecurrenceSpec | None) -> dict[str, Any] | None:
    if spec is None:
        return None
    out: dict[str, Any] = {"type": str(spec.type)}
    if spec.start_date is not None:
        out["startDate"] = format_wire_day(spec.start_date)
    if spec.end_date is not None:
        out["endDate"] = format_wire_day(spec.end_date)
    if spec.interval != 1:
        out["interval"] = spec.interval
    if spec.days:
        out["days"] = sorted(spec.days)
    if spec.day_of_month:
        out["dayOfMonth"] = sorted(spec.day_of_month)
    if spec.week_pattern is not None:
        out["weekPattern"] = {
            "ordinal": spec.week_pattern.ordinal,
            "dayOfWeek": spec.week_pattern.day_of_week,
        }
    if spec.month is not None:
        out["month"] = spec.month
    if spec.additional_dates:
        out["additionalDates"] = _sorted_days(spec.additional_dates)
    if spec.exceptions:
        out["exceptions"] = _sorted_days(spec.exceptions)
    return out


def timestamp_to_wire(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def timestamp_from_wire(raw: Any) -> datetime | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    return isoparse(str(raw))
