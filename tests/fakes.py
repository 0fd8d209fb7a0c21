# tests/fakes.py

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Any

from daybook.calendar_math import normalize_day
from daybook.completions.completion_index import CompletionIndex
from daybook.completions.completion_models import BatchResult, Completion, CompletionInput, Outcome
from daybook.errors import DuplicateKey, NotFound
from daybook.tasks.task_models import (
    CompletionType,
    RecurrenceSpec,
    RecurrenceType,
    Task,
    TaskArena,
    TaskStatus,
)


def make_task(
    task_id: str,
    recurrence: RecurrenceSpec | None = None,
    *,
    section_id: str | None = "s1",
    parent_id: str | None = None,
    status: TaskStatus = TaskStatus.TODO,
    completion_type: CompletionType = CompletionType.CHECKBOX,
    time: str | None = None,
    order: float = 0.0,
) -> Task:
    return Task(
        id=task_id,
        section_id=section_id,
        recurrence=recurrence,
        parent_id=parent_id,
        title=task_id,
        time=time,
        status=status,
        completion_type=completion_type,
        order=order,
    )


def daily(start: str | None = None, **kw: Any) -> RecurrenceSpec:
    return RecurrenceSpec(type=RecurrenceType.DAILY, start_date=date.fromisoformat(start) if start else None, **kw)


def one_time(day: str) -> RecurrenceSpec:
    return RecurrenceSpec(type=RecurrenceType.NONE, start_date=date.fromisoformat(day))


def weekly(days: set[int], start: str | None = None, **kw: Any) -> RecurrenceSpec:
    return RecurrenceSpec(
        type=RecurrenceType.WEEKLY,
        days=frozenset(days),
        start_date=date.fromisoformat(start) if start else None,
        **kw,
    )


class FakeTaskRepo:
    """
    In-memory TaskRepo used for coordinator unit tests.

    This avoids SQLite and keeps the tests about mutation logic: which records
    and which task fields change, in what order.
    """

    def __init__(self, tasks: list[Task]) -> None:
        self.tasks = {t.id: t for t in tasks}
        self.recurrence_writes: list[tuple[str, RecurrenceSpec | None]] = []
        self.fail_set_recurrence = False

    def get_task(self, task_id: str) -> Task | None:
        return self.tasks.get(task_id)

    def list_tasks(self, *, section_id: str | None = None) -> list[Task]:
        return [t for t in self.tasks.values() if section_id is None or t.section_id == section_id]

    def arena(self) -> TaskArena:
        return TaskArena.from_tasks(self.tasks.values())

    def add_task(self, *, section_id=None, title="", recurrence=None, parent_id=None, time_of_day=None,
                 status=TaskStatus.TODO, completion_type=CompletionType.CHECKBOX, order=None, task_id=None) -> Task:
        tid = task_id or f"t{len(self.tasks) + 1}"
        task = Task(
            id=tid,
            section_id=section_id,
            recurrence=recurrence,
            parent_id=parent_id,
            title=title,
            time=time_of_day,
            status=status,
            completion_type=completion_type,
            order=order or 0.0,
        )
        self.tasks[tid] = task
        return task

    def update_task_fields(self, task_id: str, **fields: Any) -> Task:
        t = self.tasks.get(task_id)
        if t is None:
            raise NotFound("task", task_id)
        self.tasks[task_id] = replace(t, **fields)
        return self.tasks[task_id]

    def set_recurrence(self, task_id: str, recurrence: RecurrenceSpec | None) -> Task:
        if self.fail_set_recurrence:
            raise RuntimeError("task store unavailable")
        self.recurrence_writes.append((task_id, recurrence))
        return self.update_task_fields(task_id, recurrence=recurrence)


class FakeCompletionRepo:
    """In-memory CompletionRepo with switchable write failures."""

    def __init__(self, completions: list[Completion] | None = None) -> None:
        self.records: dict[tuple[str, date], Completion] = {c.key: c for c in completions or []}
        self.fail_writes = False

    def _index(self) -> CompletionIndex:
        return CompletionIndex(self.records.values())

    def _check(self) -> None:
        if self.fail_writes:
            raise RuntimeError("completion store unavailable")

    # ---- writes ----

    def create(self, task_id: str, day, *, outcome=Outcome.COMPLETED, **fields: Any) -> Completion:
        self._check()
        d = normalize_day(day)
        if (task_id, d) in self.records:
            raise DuplicateKey(task_id, d)
        c = Completion(task_id=task_id, date=d, outcome=outcome, **fields)
        self.records[c.key] = c
        return c

    def update(self, task_id: str, day, **fields: Any) -> Completion:
        self._check()
        d = normalize_day(day)
        c = self.records.get((task_id, d))
        if c is None:
            raise NotFound("completion", (task_id, d))
        self.records[c.key] = replace(c, **fields)
        return self.records[c.key]

    def upsert(self, task_id: str, day, **fields: Any) -> Completion:
        if (task_id, normalize_day(day)) in self.records:
            return self.update(task_id, day, **fields)
        return self.create(task_id, day, **fields)

    def delete(self, task_id: str, day) -> bool:
        self._check()
        return self.records.pop((task_id, normalize_day(day)), None) is not None

    def batch_create(self, items: list[CompletionInput]) -> list[BatchResult]:
        out: list[BatchResult] = []
        for item in items:
            try:
                c = self.create(item.task_id, item.date, outcome=item.outcome, note=item.note)
                out.append(BatchResult(task_id=item.task_id, date=item.date, ok=True, completion=c))
            except (DuplicateKey, RuntimeError) as e:
                out.append(BatchResult(task_id=item.task_id, date=item.date, ok=False, error=e))
        return out

    def batch_delete(self, items) -> list[BatchResult]:
        out: list[BatchResult] = []
        for task_id, day in items:
            self.delete(task_id, day)
            out.append(BatchResult(task_id=task_id, date=normalize_day(day), ok=True))
        return out

    # ---- queries ----

    def get(self, task_id: str, day) -> Completion | None:
        return self._index().get(task_id, day)

    def is_completed_on_date(self, task_id: str, day) -> bool:
        return self._index().is_completed_on_date(task_id, day)

    def outcome_on_date(self, task_id: str, day) -> Outcome | None:
        return self._index().outcome_on_date(task_id, day)

    def has_record_on_date(self, task_id: str, day) -> bool:
        return self._index().has_record_on_date(task_id, day)

    def has_any_completion_across_all_dates(self, task_id: str) -> bool:
        return self._index().has_any_completion_across_all_dates(task_id)

    def completions_in_range(self, task_id: str, start, end) -> list[Completion]:
        return self._index().completions_in_range(task_id, start, end)

    def list_completions(self, start=None, end=None) -> list[Completion]:
        return list(self.records.values())
