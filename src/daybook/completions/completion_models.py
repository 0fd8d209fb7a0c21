# src/daybook/completions/completion_models.py

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from ..calendar_math import format_wire_day, normalize_day
from ..errors import InvalidPayload
from ..tasks.recurrence_wire import timestamp_from_wire, timestamp_to_wire
from ..tasks.task_models import CompletionType


class Outcome(StrEnum):
    COMPLETED = "completed"
    NOT_COMPLETED = "not_completed"
    ROLLED_OVER = "rolled_over"

    @classmethod
    def from_db(cls, raw: str | None) -> Outcome | None:
        """None stays None (record without a definite outcome); unknown values too."""
        if not raw:
            return None
        try:
            return cls(raw)
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class Completion:
    task_id: str
    date: date
    outcome: Outcome | None = Outcome.COMPLETED
    note: str | None = None
    actual_value: str | None = None
    time: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: float = 0.0

    @property
    def key(self) -> tuple[str, date]:
        return (self.task_id, self.date)


@dataclass(frozen=True, slots=True)
class CompletionInput:
    """One item of a batch create/delete request."""

    task_id: str
    date: date
    outcome: Outcome | None = Outcome.COMPLETED
    note: str | None = None
    actual_value: str | None = None
    time: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class BatchResult:
    """Per-item result of a batch operation; items succeed or fail independently."""

    task_id: str
    date: date
    ok: bool
    completion: Completion | None = None
    error: Exception | None = None


PAYLOAD_FIELDS = frozenset({"note", "actual_value", "time", "started_at", "completed_at"})

# Payload fields each completion type may carry. Keyed by every CompletionType.
_ALLOWED_PAYLOAD: dict[CompletionType, frozenset[str]] = {
    CompletionType.CHECKBOX: frozenset({"note", "time", "started_at", "completed_at"}),
    CompletionType.TEXT: frozenset({"note", "time", "started_at", "completed_at"}),
    CompletionType.TEXT_INPUT: frozenset({"note", "actual_value", "time", "started_at", "completed_at"}),
    CompletionType.WORKOUT: PAYLOAD_FIELDS,
    CompletionType.NOTE: frozenset({"note"}),
    CompletionType.REFLECTION: frozenset({"note", "time"}),
    CompletionType.SELECTION: frozenset({"actual_value", "note", "time"}),
}

if set(_ALLOWED_PAYLOAD) != set(CompletionType):
    raise RuntimeError(f"no payload rule for: {sorted(set(CompletionType) - set(_ALLOWED_PAYLOAD))}")


def check_payload(completion_type: CompletionType, fields: Mapping[str, Any]) -> None:
    """Raise InvalidPayload when a non-empty field is not part of the type's payload."""
    allowed = _ALLOWED_PAYLOAD[completion_type]
    extra = sorted(k for k, v in fields.items() if k in PAYLOAD_FIELDS and v is not None and k not in allowed)
    if extra:
        raise InvalidPayload(f"{completion_type} completions do not carry: {', '.join(extra)}")


def completion_to_wire(c: Completion) -> dict[str, Any]:
    return {
        "taskId": c.task_id,
        "date": format_wire_day(c.date),
        "outcome": c.outcome.value if c.outcome is not None else None,
        "note": c.note,
        "actualValue": c.actual_value,
        "time": c.time,
        "startedAt": timestamp_to_wire(c.started_at),
        "completedAt": timestamp_to_wire(c.completed_at),
    }


def completion_from_wire(data: Mapping[str, Any]) -> Completion:
    task_id = str(data.get("taskId") or "").strip()
    if not task_id:
        raise ValueError("taskId is required")
    raw_date = data.get("date")
    if raw_date is None:
        raise ValueError("date is required")

    raw_outcome = data.get("outcome")
    outcome = Outcome(raw_outcome) if raw_outcome is not None else None

    return Completion(
        task_id=task_id,
        date=normalize_day(raw_date),
        outcome=outcome,
        note=data.get("note"),
        actual_value=data.get("actualValue"),
        time=data.get("time"),
        started_at=timestamp_from_wire(data.get("startedAt")),
        completed_at=timestamp_from_wire(data.get("completedAt")),
    )
