# src/daybook/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the engine.

The projector and coordinator depend on Protocols instead of concrete stores.
The SQLite stores satisfy them, and so do the in-memory index and test fakes.
"""

from collections.abc import Iterable
from datetime import date
from typing import Any, Protocol

from ..calendar_math import DayLike
from ..completions.completion_models import BatchResult, Completion, CompletionInput, Outcome
from ..tasks.task_models import CompletionType, RecurrenceSpec, Task, TaskArena, TaskStatus


class CompletionLookup(Protocol):
    """Read side of the completion records (CompletionIndex and CompletionStore)."""

    def get(self, task_id: str, day: DayLike) -> Completion | None: ...
    def is_completed_on_date(self, task_id: str, day: DayLike) -> bool: ...
    def outcome_on_date(self, task_id: str, day: DayLike) -> Outcome | None: ...
    def has_record_on_date(self, task_id: str, day: DayLike) -> bool: ...
    def has_any_completion_across_all_dates(self, task_id: str) -> bool: ...
    def completions_in_range(self, task_id: str, start: DayLike, end: DayLike) -> list[Completion]: ...


class CompletionRepo(CompletionLookup, Protocol):
    def create(
            self,
            task_id: str,
            day: DayLike,
            *,
            outcome: Outcome | None = ...,
            note: str | None = None,
            actual_value: str | None = None,
            time: str | None = None,
            started_at: Any = None,
            completed_at: Any = None,
    ) -> Completion: ...

    def update(self, task_id: str, day: DayLike, **fields: Any) -> Completion: ...
    def upsert(self, task_id: str, day: DayLike, **fields: Any) -> Completion: ...
    def delete(self, task_id: str, day: DayLike) -> bool: ...
    def batch_create(self, items: Iterable[CompletionInput]) -> list[BatchResult]: ...
    def batch_delete(self, items: Iterable[tuple[str, DayLike]]) -> list[BatchResult]: ...
    def list_completions(self, start: DayLike | None = None, end: DayLike | None = None) -> list[Completion]: ...


class TaskRepo(Protocol):
    def get_task(self, task_id: str) -> Task | None: ...
    def list_tasks(self, *, section_id: str | None = None) -> list[Task]: ...
    def arena(self) -> TaskArena: ...

    def add_task(
            self,
            *,
            section_id: str | None = None,
            title: str = "",
            recurrence: RecurrenceSpec | None = None,
            parent_id: str | None = None,
            time_of_day: str | None = None,
            status: TaskStatus = ...,
            completion_type: CompletionType = ...,
            order: float | None = None,
            task_id: str | None = None,
    ) -> Task: ...

    def update_task_fields(self, task_id: str, **fields: Any) -> Task: ...
    def set_recurrence(self, task_id: str, recurrence: RecurrenceSpec | None) -> Task: ...


DayKey = tuple[str, date]
# (task_id, calendar day): the unit of per-key serialization.
