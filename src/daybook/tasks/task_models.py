# src/daybook/tasks/task_models.py

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import StrEnum


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Meaningful chiefly for non-recurring tasks; recurring tasks express completion
    through Completion records instead.
    """

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.TODO
        try:
            return cls(raw)
        except ValueError:
            return cls.TODO


class CompletionType(StrEnum):
    """How a day's entry is captured for a task (selects the completion payload shape)."""

    CHECKBOX = "checkbox"
    TEXT = "text"
    TEXT_INPUT = "text_input"
    WORKOUT = "workout"
    NOTE = "note"
    REFLECTION = "reflection"
    SELECTION = "selection"

    @classmethod
    def from_db(cls, raw: str | None) -> CompletionType:
        if not raw:
            return cls.CHECKBOX
        try:
            return cls(raw)
        except ValueError:
            return cls.CHECKBOX


class RecurrenceType(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, raw: object) -> RecurrenceType | str:
        """Known types become enum members; anything else is kept as the raw string."""
        text = str(raw or "").strip()
        try:
            return cls(text)
        except ValueError:
            return text


@dataclass(frozen=True, slots=True)
class WeekPattern:
    """Nth weekday of a month; ordinal -1 means the last one."""

    ordinal: int
    day_of_week: int


@dataclass(frozen=True, slots=True)
class RecurrenceSpec:
    type: RecurrenceType | str
    start_date: date | None = None
    end_date: date | None = None
    interval: int = 1

    days: frozenset[int] = frozenset()
    day_of_month: frozenset[int] = frozenset()
    week_pattern: WeekPattern | None = None
    month: int | None = None

    additional_dates: frozenset[date] = frozenset()
    exceptions: frozenset[date] = frozenset()

    @property
    def is_recurring(self) -> bool:
        """True for every type except one-time ("none") rules."""
        return self.type != RecurrenceType.NONE

    def with_additional_date(self, day: date) -> RecurrenceSpec:
        if day in self.additional_dates:
            return self
        return replace(self, additional_dates=self.additional_dates | {day})

    def without_additional_date(self, day: date) -> RecurrenceSpec:
        if day not in self.additional_dates:
            return self
        return replace(self, additional_dates=self.additional_dates - {day})


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    section_id: str | None
    recurrence: RecurrenceSpec | None = None
    parent_id: str | None = None
    title: str = ""
    time: str | None = None
    status: TaskStatus = TaskStatus.TODO
    completion_type: CompletionType = CompletionType.CHECKBOX
    order: float = 0.0
    started_at: datetime | None = None

    @property
    def is_note(self) -> bool:
        return self.completion_type == CompletionType.NOTE

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None and self.recurrence.is_recurring


@dataclass(frozen=True, slots=True)
class Section:
    id: str
    name: str
    order: float = 0.0
    expanded: bool = True


@dataclass(slots=True)
class TaskArena(Mapping[str, Task]):
    """
    Tasks keyed by id.

    Subtasks are ordinary tasks with a parent_id; the arena derives each parent's
    ordered child ids instead of letting parents hold copies of their children.
    """

    _by_id: dict[str, Task] = field(default_factory=dict)
    _children: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> TaskArena:
        arena = cls()
        for task in tasks:
            arena._by_id[task.id] = task
        for task in sorted(arena._by_id.values(), key=lambda t: (t.order, t.id)):
            if task.parent_id is not None:
                arena._children.setdefault(task.parent_id, []).append(task.id)
        return arena

    def __getitem__(self, task_id: str) -> Task:
        return self._by_id[task_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_id)

    def __len__(self) -> int:
        return len(self._by_id)

    def children(self, task_id: str) -> list[Task]:
        return [self._by_id[cid] for cid in self._children.get(task_id, [])]

    def roots(self) -> list[Task]:
        """Top-level tasks (no parent), in display order."""
        out = [t for t in self._by_id.values() if t.parent_id is None]
        out.sort(key=lambda t: (t.section_id or "", t.order, t.id))
        return out
