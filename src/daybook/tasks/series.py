# src/daybook/tasks/series.py

from __future__ import annotations

"""
Splitting a recurring series when one occurrence is edited.

Two scopes, as calendar apps offer them:
- "this occurrence only": the day becomes an exception of the series and a
  one-time task takes its place on that day
- "this and future occurrences": the series ends the day before and a new
  series starts on that day
"""

import logging
from dataclasses import dataclass, replace
from datetime import timedelta

from ..calendar_math import DayLike, normalize_day
from ..core.ports import TaskRepo
from ..errors import InvalidOperation
from .recurrence import validate_recurrence
from .task_models import CompletionType, RecurrenceSpec, RecurrenceType, Task

logger = logging.getLogger(__name__)

_KEEP = object()

# Fields whose change alters which days the series occupies.
_PATTERN_FIELDS = ("type", "interval", "days", "day_of_month", "week_pattern", "month")


@dataclass(frozen=True, slots=True)
class NewTask:
    """Task to create as the result of a split (kwargs for TaskStore.add_task)."""

    section_id: str | None
    title: str
    time: str | None
    completion_type: CompletionType
    recurrence: RecurrenceSpec
    source_task_id: str


@dataclass(frozen=True, slots=True)
class SeriesSplit:
    original_recurrence: RecurrenceSpec
    new_task: NewTask


def requires_series_scope_decision(
    task: Task,
    *,
    day: DayLike | None = None,
    time: object = _KEEP,
    recurrence: RecurrenceSpec | None = None,
) -> bool:
    """
    True when an edit of a recurring task needs the this/future scope choice.

    Only schedule-affecting edits qualify: a moved start day, a changed time, or a
    changed pattern. Title or section changes apply to the whole series.
    """
    spec = task.recurrence
    if spec is None or not spec.is_recurring:
        return False

    if day is not None and normalize_day(day) != spec.start_date:
        return True
    if time is not _KEEP and time != task.time:
        return True
    if recurrence is not None:
        return any(getattr(recurrence, f) != getattr(spec, f) for f in _PATTERN_FIELDS)
    return False


def _recurring_spec(task: Task) -> RecurrenceSpec:
    spec = task.recurrence
    if spec is None or not spec.is_recurring:
        raise InvalidOperation(f"task {task.id} is not a recurring series")
    return spec


def this_occurrence_edit(
    task: Task,
    day: DayLike,
    *,
    title: str | None = None,
    section_id: object = _KEEP,
    time: object = _KEEP,
) -> SeriesSplit:
    """Remove `day` from the series and replace it with a one-time task."""
    spec = _recurring_spec(task)
    d = normalize_day(day)

    updated = replace(spec, exceptions=spec.exceptions | {d}, additional_dates=spec.additional_dates - {d})
    new_task = NewTask(
        section_id=task.section_id if section_id is _KEEP else section_id,  # type: ignore[arg-type]
        title=title or task.title,
        time=task.time if time is _KEEP else time,  # type: ignore[arg-type]
        completion_type=task.completion_type,
        recurrence=RecurrenceSpec(type=RecurrenceType.NONE, start_date=d),
        source_task_id=task.id,
    )
    logger.debug("Split task %s: occurrence %s detached", task.id, d)
    return SeriesSplit(original_recurrence=updated, new_task=new_task)


def future_occurrences_edit(
    task: Task,
    day: DayLike,
    *,
    title: str | None = None,
    section_id: object = _KEEP,
    time: object = _KEEP,
    recurrence: RecurrenceSpec | None = None,
) -> SeriesSplit:
    """
    End the series the day before `day` and start a new one on `day`.

    Additional and exception dates on or after `day` move to the new series; the
    original end date carries over unless `recurrence` brings its own.
    """
    spec = _recurring_spec(task)
    d = normalize_day(day)
    if spec.start_date is not None and d <= spec.start_date:
        raise InvalidOperation("split day must be after the series start; edit the whole series instead")

    cut = d - timedelta(days=1)
    earlier = replace(
        spec,
        end_date=cut if spec.end_date is None or spec.end_date > cut else spec.end_date,
        additional_dates=frozenset(x for x in spec.additional_dates if x < d),
        exceptions=frozenset(x for x in spec.exceptions if x < d),
    )

    pattern = recurrence or spec
    later = replace(
        pattern,
        start_date=d,
        end_date=pattern.end_date if recurrence is not None else spec.end_date,
        additional_dates=frozenset(x for x in spec.additional_dates if x >= d),
        exceptions=frozenset(x for x in spec.exceptions if x >= d),
    )
    validate_recurrence(later)

    new_task = NewTask(
        section_id=task.section_id if section_id is _KEEP else section_id,  # type: ignore[arg-type]
        title=title or task.title,
        time=task.time if time is _KEEP else time,  # type: ignore[arg-type]
        completion_type=task.completion_type,
        recurrence=later,
        source_task_id=task.id,
    )
    logger.debug("Split task %s: series ends %s, new series from %s", task.id, cut, d)
    return SeriesSplit(original_recurrence=earlier, new_task=new_task)


def apply_split(repo: TaskRepo, task: Task, split: SeriesSplit) -> Task:
    """Persist a split: update the original series, then create the new task."""
    repo.set_recurrence(task.id, split.original_recurrence)
    n = split.new_task
    created = repo.add_task(
        section_id=n.section_id,
        title=n.title,
        recurrence=n.recurrence,
        time_of_day=n.time,
        completion_type=n.completion_type,
    )
    logger.info("Series split task=%s new_task=%s", task.id, created.id)
    return created
