# src/daybook/completions/completion_index.py

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date

from ..calendar_math import DayLike, normalize_day
from .completion_models import Completion, Outcome


class CompletionIndex:
    """
    Immutable lookup over a snapshot of completions.

    Views evaluate these queries for every (task, day) cell they render, so all
    per-key queries are dictionary lookups.
    """

    __slots__ = ("_by_key", "_days_by_task")

    def __init__(self, completions: Iterable[Completion] = ()) -> None:
        self._by_key: dict[tuple[str, date], Completion] = {}
        self._days_by_task: dict[str, set[date]] = {}
        for c in completions:
            self._by_key[c.key] = c
            self._days_by_task.setdefault(c.task_id, set()).add(c.date)

    def __len__(self) -> int:
        return len(self._by_key)

    def __iter__(self) -> Iterator[Completion]:
        return iter(self._by_key.values())

    def get(self, task_id: str, day: DayLike) -> Completion | None:
        return self._by_key.get((task_id, normalize_day(day)))

    def is_completed_on_date(self, task_id: str, day: DayLike) -> bool:
        c = self.get(task_id, day)
        return c is not None and c.outcome == Outcome.COMPLETED

    def outcome_on_date(self, task_id: str, day: DayLike) -> Outcome | None:
        c = self.get(task_id, day)
        return c.outcome if c is not None else None

    def has_record_on_date(self, task_id: str, day: DayLike) -> bool:
        return (task_id, normalize_day(day)) in self._by_key

    def has_any_completion_across_all_dates(self, task_id: str) -> bool:
        return bool(self._days_by_task.get(task_id))

    def completions_in_range(self, task_id: str, start: DayLike, end: DayLike) -> list[Completion]:
        s, e = normalize_day(start), normalize_day(end)
        days = sorted(d for d in self._days_by_task.get(task_id, ()) if s <= d <= e)
        return [self._by_key[(task_id, d)] for d in days]
