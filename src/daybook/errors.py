# src/daybook/errors.py

from __future__ import annotations


class EngineError(Exception):
    """Base class for errors raised by the daybook engine."""


class InvalidRecurrence(EngineError, ValueError):
    """Malformed recurrence rule (rejected at construction/validation time)."""


class InvalidPayload(EngineError, ValueError):
    """Completion fields that do not fit the task's completion type."""


class DuplicateKey(EngineError):
    """A completion already exists for (task_id, date); use update() or upsert()."""

    def __init__(self, task_id: str, day: object) -> None:
        super().__init__(f"completion already exists task_id={task_id} date={day}")
        self.task_id = task_id
        self.day = day


class NotFound(EngineError, KeyError):
    """No record for the requested key."""

    def __init__(self, what: str, key: object) -> None:
        super().__init__(f"{what} not found: {key}")
        self.what = what
        self.key = key

    def __str__(self) -> str:
        return str(self.args[0])


class InvalidOperation(EngineError):
    """Operation not allowed for this task/date (e.g. rollover of an unscheduled day)."""
