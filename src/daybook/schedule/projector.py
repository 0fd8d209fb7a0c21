# src/daybook/schedule/projector.py

from __future__ import annotations

"""
Schedule projections.

Pure functions of (tasks, completions, explicit overrides, day):
- todays_tasks: root tasks shown on a day, annotated with that day's record
- backlog: unscheduled work that still needs a day
- history_rows: per-day grid of recurring tasks for a range
- calendar_days: scheduled root tasks per day for a range

today and backlog share one predicate (appears_today), so a task is never in both.
The grace set is an explicit argument; nothing here reads clocks or globals
except backlog's `now`, which is passed in.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum

from ..calendar_math import DayLike, iter_days, normalize_day
from ..completions.completion_models import Completion, Outcome
from ..core.ports import CompletionLookup
from ..tasks.recurrence import has_future_date_time, is_overdue, is_scheduled, matches_rule
from ..tasks.task_models import RecurrenceType, Task, TaskArena, TaskStatus

logger = logging.getLogger(__name__)

TaskSource = TaskArena | Mapping[str, Task] | Iterable[Task]


@dataclass(frozen=True, slots=True)
class TaskView:
    """A task as shown for one day."""

    task: Task
    day: date
    completed: bool
    outcome: Outcome | None
    has_record: bool
    overdue: bool = False
    subtasks: tuple[TaskView, ...] = ()

    @property
    def id(self) -> str:
        return self.task.id

    @property
    def section_id(self) -> str | None:
        return self.task.section_id


class CellState(StrEnum):
    EMPTY = "empty"
    PENDING = "pending"
    RECORDED = "recorded"
    OFF_SCHEDULE = "off_schedule"


@dataclass(frozen=True, slots=True)
class HistoryCell:
    day: date
    scheduled: bool
    off_schedule: bool
    completion: Completion | None
    state: CellState


@dataclass(frozen=True, slots=True)
class HistoryRow:
    task: Task
    cells: tuple[HistoryCell, ...]

    @property
    def scheduled_count(self) -> int:
        return sum(1 for c in self.cells if c.scheduled)

    @property
    def completed_count(self) -> int:
        return sum(1 for c in self.cells if c.completion is not None and c.completion.outcome == Outcome.COMPLETED)


def _as_arena(tasks: TaskSource) -> TaskArena:
    if isinstance(tasks, TaskArena):
        return tasks
    if isinstance(tasks, Mapping):
        return TaskArena.from_tasks(tasks.values())
    return TaskArena.from_tasks(tasks)


def appears_today(task: Task, day: DayLike, tasks: Mapping[str, Task] | None = None) -> bool:
    """
    True when the task belongs on the day's list.

    An in-progress one-time or unscheduled task shows regardless of its date.
    """
    if task.is_note:
        return False
    if is_scheduled(task, day, tasks):
        return True
    spec = task.recurrence
    one_time = spec is None or spec.type == RecurrenceType.NONE
    return one_time and task.status == TaskStatus.IN_PROGRESS


def _view(
    task: Task,
    day: date,
    arena: TaskArena,
    completions: CompletionLookup,
    now: datetime | None,
) -> TaskView:
    record = completions.get(task.id, day)
    outcome = record.outcome if record is not None else None
    # Children without their own rule go wherever the parent goes.
    subtasks = tuple(
        _view(child, day, arena, completions, now)
        for child in arena.children(task.id)
        if child.recurrence is None or is_scheduled(child, day, arena)
    )
    return TaskView(
        task=task,
        day=day,
        completed=outcome == Outcome.COMPLETED,
        outcome=outcome,
        has_record=record is not None,
        overdue=now is not None and is_overdue(task, day, has_record=record is not None, now=now),
        subtasks=subtasks,
    )


def todays_tasks(
    tasks: TaskSource,
    completions: CompletionLookup,
    day: DayLike,
    *,
    grace: frozenset[str] = frozenset(),
    hide_completed: bool = False,
    now: datetime | None = None,
) -> list[TaskView]:
    """
    Root tasks shown on `day`, each annotated with its record for that day.

    Subtasks without their own rule follow the parent onto the list; subtasks
    with one are included when it selects the day. With hide_completed,
    completed tasks are dropped unless they are still in the grace window.
    """
    arena = _as_arena(tasks)
    d = normalize_day(day)

    out: list[TaskView] = []
    for task in arena.roots():
        if not appears_today(task, d, arena):
            continue
        view = _view(task, d, arena, completions, now)
        if hide_completed and view.completed and task.id not in grace:
            continue
        out.append(view)
    return out


def backlog(
    tasks: TaskSource,
    completions: CompletionLookup,
    today: DayLike,
    *,
    now: datetime,
    grace: frozenset[str] = frozenset(),
) -> list[Task]:
    """
    Root tasks that have no place on today's list and still need doing.

    - recurring tasks never appear here
    - a one-time task leaves the backlog once it has a record on any day
    - an undated task leaves the backlog once it has an outcome today
    - future-dated tasks wait for their day
    Tasks in the grace set stay visible through the last two rules.
    """
    arena = _as_arena(tasks)
    d = normalize_day(today)

    out: list[Task] = []
    for task in arena.roots():
        if task.is_note or appears_today(task, d, arena):
            continue
        if has_future_date_time(task, now):
            continue

        spec = task.recurrence
        in_grace = task.id in grace
        if spec is None:
            if completions.outcome_on_date(task.id, d) is not None and not in_grace:
                continue
        elif spec.type == RecurrenceType.NONE:
            if completions.has_any_completion_across_all_dates(task.id) and not in_grace:
                continue
        else:
            continue
        out.append(task)

    out.sort(key=lambda t: (t.order, t.id))
    return out


def _cell(task: Task, day: date, arena: TaskArena, completions: CompletionLookup) -> HistoryCell:
    scheduled = is_scheduled(task, day, arena)
    on_rule = matches_rule(task, day)
    completion = completions.get(task.id, day)

    off_schedule = (scheduled and not on_rule) or (completion is not None and not scheduled)
    if completion is None:
        state = CellState.PENDING if scheduled else CellState.EMPTY
    elif off_schedule:
        state = CellState.OFF_SCHEDULE
    else:
        state = CellState.RECORDED
    return HistoryCell(day=day, scheduled=scheduled, off_schedule=off_schedule, completion=completion, state=state)


def history_rows(
    tasks: TaskSource,
    completions: CompletionLookup,
    start: DayLike,
    end: DayLike,
) -> list[HistoryRow]:
    """Recurring tasks over [start, end]: one cell per day."""
    arena = _as_arena(tasks)
    days = list(iter_days(normalize_day(start), normalize_day(end)))

    rows: list[HistoryRow] = []
    for task in arena.roots():
        if task.is_note or not task.is_recurring:
            continue
        cells = tuple(_cell(task, d, arena, completions) for d in days)
        rows.append(HistoryRow(task=task, cells=cells))
    logger.debug("history_rows tasks=%s days=%s", len(rows), len(days))
    return rows


def tasks_by_section(views: Iterable[TaskView]) -> dict[str | None, list[TaskView]]:
    grouped: dict[str | None, list[TaskView]] = {}
    for v in views:
        grouped.setdefault(v.section_id, []).append(v)
    return grouped


def calendar_days(
    tasks: TaskSource,
    completions: CompletionLookup,
    start: DayLike,
    end: DayLike,
) -> dict[date, list[TaskView]]:
    """Scheduled root tasks per day; in-progress tasks are not spread over every day."""
    arena = _as_arena(tasks)
    out: dict[date, list[TaskView]] = {}
    for d in iter_days(normalize_day(start), normalize_day(end)):
        out[d] = [
            _view(task, d, arena, completions, None)
            for task in arena.roots()
            if is_scheduled(task, d, arena)
        ]
    return out
