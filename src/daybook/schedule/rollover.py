# src/daybook/schedule/rollover.py

from __future__ import annotations

"""
Completion mutations.

The coordinator turns user actions into store writes:
- rollover: label a scheduled occurrence as rolled over
- off-schedule records: a completion on a day the rule does not select also
  adds that day to the rule's additional dates, and clearing it removes the day
- toggle: complete or clear a task for a day, cascading to its subtasks
- set_outcome: the outcome picker

Each write for a (task_id, day) key runs under that key's lock, so concurrent
requests on one key apply one after another. Store calls run in a worker
thread (the SQLite stores open a connection per call).
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from datetime import date, datetime
from typing import Any

from ..calendar_math import DayLike, iter_days, normalize_day, now_local
from ..completions.completion_models import BatchResult, Completion, CompletionInput, Outcome, check_payload
from ..core.keyed_lock import KeyedLock
from ..core.ports import CompletionRepo, DayKey, TaskRepo
from ..errors import InvalidOperation, NotFound
from ..tasks.recurrence import is_scheduled
from ..tasks.task_models import RecurrenceSpec, RecurrenceType, Task, TaskStatus
from .grace_window import GraceWindow
from .section_collapse import SectionCollapsePolicy

logger = logging.getLogger(__name__)


class RolloverCoordinator:
    def __init__(
        self,
        tasks: TaskRepo,
        completions: CompletionRepo,
        *,
        grace: GraceWindow | None = None,
        collapse: SectionCollapsePolicy | None = None,
        locks: KeyedLock | None = None,
        clock: Callable[[], datetime] = now_local,
    ) -> None:
        self._tasks = tasks
        self._completions = completions
        self._grace = grace
        self._collapse = collapse
        self._locks = locks or KeyedLock()
        self._clock = clock

    # ---- plumbing ----

    @staticmethod
    async def _call(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await asyncio.to_thread(fn, *args, **kwargs)

    @contextlib.asynccontextmanager
    async def _hold(self, keys: Iterable[DayKey]) -> AsyncIterator[None]:
        # Sorted acquisition keeps multi-key holders from deadlocking each other.
        async with contextlib.AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self._locks.hold(key))
            yield

    async def _require_task(self, task_id: str) -> Task:
        task = await self._call(self._tasks.get_task, task_id)
        if task is None:
            raise NotFound("task", task_id)
        return task

    # ---- rollover ----

    async def rollover(self, task_id: str, day: DayLike) -> Completion:
        """
        Mark a scheduled occurrence of a recurring task as rolled over.

        Only the label changes: no other record or occurrence is created.
        """
        d = normalize_day(day)
        async with self._hold([(task_id, d)]):
            task = await self._call(self._tasks.get_task, task_id)
            if task is None:
                raise InvalidOperation(f"rollover: task {task_id} does not exist")
            if not task.is_recurring:
                raise InvalidOperation(f"rollover: task {task_id} is not recurring")
            if not is_scheduled(task, d):
                raise InvalidOperation(f"rollover: task {task_id} is not scheduled on {d}")

            completion = await self._call(self._completions.upsert, task_id, d, outcome=Outcome.ROLLED_OVER)

        if self._grace is not None:
            self._grace.discard(task_id)
        logger.info("Rolled over task=%s date=%s", task_id, d)
        return completion

    # ---- off-schedule records ----

    async def _write_record(self, task: Task, d: date, outcome: Outcome | None, fields: dict[str, Any]) -> Completion:
        """Upsert the record; a day the rule does not select becomes an additional date first."""
        spec = task.recurrence
        added: RecurrenceSpec | None = None
        if spec is not None and not is_scheduled(task, d):
            added = spec.with_additional_date(d)
            await self._call(self._tasks.set_recurrence, task.id, added)
            logger.debug("Added off-schedule date task=%s date=%s", task.id, d)

        try:
            payload = {k: v for k, v in fields.items() if v is not None}
            return await self._call(self._completions.upsert, task.id, d, outcome=outcome, **payload)
        except Exception:
            logger.exception("Completion write failed task=%s date=%s", task.id, d)
            if added is not None:
                try:
                    await self._call(self._tasks.set_recurrence, task.id, spec)
                except Exception:
                    # reconcile_off_schedule heals the pair on the next read.
                    logger.exception("Reverting additional date failed task=%s date=%s", task.id, d)
            raise

    async def _clear_record(self, task: Task, d: date) -> bool:
        removed = await self._call(self._completions.delete, task.id, d)
        spec = task.recurrence
        if spec is not None and d in spec.additional_dates:
            await self._call(self._tasks.set_recurrence, task.id, spec.without_additional_date(d))
            logger.debug("Removed off-schedule date task=%s date=%s", task.id, d)
        return bool(removed)

    async def record_off_schedule(
        self,
        task_id: str,
        day: DayLike,
        *,
        outcome: Outcome | None = Outcome.COMPLETED,
        note: str | None = None,
        actual_value: str | None = None,
        time: str | None = None,
    ) -> Completion | None:
        """
        Record an entry for a day the rule may not select.

        outcome=None with no payload clears the entry (see clear_off_schedule).
        """
        d = normalize_day(day)
        async with self._hold([(task_id, d)]):
            task = await self._require_task(task_id)
            if task.recurrence is None:
                raise InvalidOperation(f"task {task_id} has no recurrence to extend")

            if outcome is None and note is None and actual_value is None:
                await self._clear_record(task, d)
                return None

            fields = {"note": note, "actual_value": actual_value, "time": time}
            check_payload(task.completion_type, fields)
            completion = await self._write_record(task, d, outcome, fields)

        logger.info("Off-schedule record task=%s date=%s outcome=%s", task_id, d, outcome)
        return completion

    async def clear_off_schedule(self, task_id: str, day: DayLike) -> bool:
        d = normalize_day(day)
        async with self._hold([(task_id, d)]):
            task = await self._require_task(task_id)
            return await self._clear_record(task, d)

    async def reconcile_off_schedule(self, task_id: str, start: DayLike, end: DayLike) -> list[date]:
        """
        Repair half-written off-schedule pairs in [start, end]; returns the days healed.

        Either half is taken as authoritative: a record on an unscheduled day gets its
        additional date, and an additional date without a record gets an empty record.
        """
        s, e = normalize_day(start), normalize_day(end)
        task = await self._require_task(task_id)
        spec = task.recurrence
        if spec is None:
            return []

        async with self._hold([(task_id, d) for d in iter_days(s, e)]):
            task = await self._require_task(task_id)
            spec = task.recurrence
            if spec is None:
                return []

            records = await self._call(self._completions.completions_in_range, task_id, s, e)
            recorded = {c.date for c in records}

            missing_dates = sorted(c.date for c in records if not is_scheduled(task, c.date))
            missing_records = sorted(d for d in spec.additional_dates if s <= d <= e and d not in recorded)

            if missing_dates:
                healed = spec
                for d in missing_dates:
                    healed = healed.with_additional_date(d)
                await self._call(self._tasks.set_recurrence, task_id, healed)
            for d in missing_records:
                await self._call(self._completions.upsert, task_id, d, outcome=None)

        fixed = sorted(set(missing_dates) | set(missing_records))
        if fixed:
            logger.warning("Reconciled off-schedule pairs task=%s days=%s", task_id, fixed)
        else:
            logger.debug("Off-schedule pairs consistent task=%s range=%s..%s", task_id, s, e)
        return fixed

    # ---- toggle ----

    async def toggle_completion(self, task_id: str, day: DayLike) -> list[BatchResult]:
        """
        Complete or clear a task for a day.

        A root task cascades to its subtasks: completing creates records for the
        subtasks not yet completed, clearing removes the completed ones. A subtask
        toggles alone. Pass today's date for unscheduled (backlog) tasks: completing
        one pins it to that day as a one-time task.
        """
        d = normalize_day(day)
        arena = await self._call(self._tasks.arena)
        task = arena.get(task_id)
        if task is None:
            raise NotFound("task", task_id)

        if task.parent_id is not None:
            async with self._hold([(task_id, d)]):
                return await self._toggle_subtask(task_id, d)

        keys = [(task_id, d)] + [(c.id, d) for c in arena.children(task_id)]
        async with self._hold(keys):
            return await self._toggle_root(task_id, d)

    async def _toggle_root(self, task_id: str, d: date) -> list[BatchResult]:
        arena = await self._call(self._tasks.arena)
        task = arena.get(task_id)
        if task is None:
            raise NotFound("task", task_id)
        children = arena.children(task_id)

        if await self._call(self._completions.is_completed_on_date, task_id, d):
            done = [c.id for c in children if await self._call(self._completions.is_completed_on_date, c.id, d)]
            results = await self._call(self._completions.batch_delete, [(tid, d) for tid in [task_id, *done]])
            if not task.is_recurring:
                status = TaskStatus.IN_PROGRESS if task.started_at is not None else TaskStatus.TODO
                await self._call(self._tasks.update_task_fields, task_id, status=status)
            if self._grace is not None:
                self._grace.discard(task_id)
            if self._collapse is not None and task.section_id is not None:
                self._collapse.on_task_restored(task.section_id)
            logger.info("Cleared task=%s date=%s subtasks=%s", task_id, d, len(done))
            return results

        await self._prepare_completion(task, d)
        if self._grace is not None:
            self._grace.add(task_id, task.section_id)

        results: list[BatchResult] = []
        to_create: list[CompletionInput] = []
        for tid in [task_id, *(c.id for c in children)]:
            existing = await self._call(self._completions.get, tid, d)
            if existing is None:
                to_create.append(CompletionInput(task_id=tid, date=d, outcome=Outcome.COMPLETED))
            elif existing.outcome != Outcome.COMPLETED:
                updated = await self._call(self._completions.update, tid, d, outcome=Outcome.COMPLETED)
                results.append(BatchResult(task_id=tid, date=d, ok=True, completion=updated))
        results.extend(await self._call(self._completions.batch_create, to_create))

        root = next((r for r in results if r.task_id == task_id), None)
        if root is not None and not root.ok:
            if self._grace is not None:
                self._grace.discard(task_id)
            raise root.error or InvalidOperation(f"completing task {task_id} failed")

        logger.info("Completed task=%s date=%s subtasks=%s", task_id, d, len(results) - 1)
        return results

    async def _prepare_completion(self, task: Task, d: date) -> None:
        """Task-side updates that go with completing a root task on `d`."""
        spec = task.recurrence
        if spec is None:
            await self._call(self._tasks.set_recurrence, task.id, RecurrenceSpec(type=RecurrenceType.NONE, start_date=d))
            await self._call(
                self._tasks.update_task_fields,
                task.id,
                status=TaskStatus.COMPLETE,
                time=self._clock().strftime("%H:%M"),
            )
        elif not task.is_recurring:
            fields: dict[str, Any] = {"status": TaskStatus.COMPLETE}
            if not task.time:
                fields["time"] = self._clock().strftime("%H:%M")
            await self._call(self._tasks.update_task_fields, task.id, **fields)
        elif not is_scheduled(task, d):
            await self._call(self._tasks.set_recurrence, task.id, spec.with_additional_date(d))

    async def _toggle_subtask(self, task_id: str, d: date) -> list[BatchResult]:
        arena = await self._call(self._tasks.arena)
        sub = arena[task_id]
        parent = arena.get(sub.parent_id) if sub.parent_id else None
        parent_one_time = parent is not None and not parent.is_recurring

        if await self._call(self._completions.is_completed_on_date, task_id, d):
            results = await self._call(self._completions.batch_delete, [(task_id, d)])
            if parent_one_time:
                await self._call(self._tasks.update_task_fields, task_id, status=TaskStatus.TODO)
                if parent.status == TaskStatus.COMPLETE:
                    await self._call(self._tasks.update_task_fields, parent.id, status=TaskStatus.IN_PROGRESS)
            return results

        existing = await self._call(self._completions.get, task_id, d)
        if existing is None:
            results = await self._call(
                self._completions.batch_create,
                [CompletionInput(task_id=task_id, date=d, outcome=Outcome.COMPLETED)],
            )
        else:
            updated = await self._call(self._completions.update, task_id, d, outcome=Outcome.COMPLETED)
            results = [BatchResult(task_id=task_id, date=d, ok=True, completion=updated)]

        if parent_one_time:
            await self._call(self._tasks.update_task_fields, task_id, status=TaskStatus.COMPLETE)
            if parent.status == TaskStatus.TODO:
                await self._call(
                    self._tasks.update_task_fields,
                    parent.id,
                    status=TaskStatus.IN_PROGRESS,
                    started_at=self._clock(),
                )
        return results

    # ---- outcome picker ----

    async def set_outcome(
        self,
        task_id: str,
        day: DayLike,
        outcome: Outcome | None,
        *,
        note: str | None = None,
        actual_value: str | None = None,
    ) -> Completion | None:
        """
        Set the day's outcome (and payload) for a task.

        None with no payload clears the record. Days the rule does not select are
        recorded off-schedule.
        """
        d = normalize_day(day)
        async with self._hold([(task_id, d)]):
            task = await self._require_task(task_id)

            if outcome is None and note is None and actual_value is None:
                await self._clear_record(task, d)
                completion = None
            else:
                fields = {"note": note, "actual_value": actual_value}
                check_payload(task.completion_type, fields)
                completion = await self._write_record(task, d, outcome, fields)

        if self._grace is not None:
            if outcome == Outcome.COMPLETED:
                self._grace.add(task_id, task.section_id)
            else:
                self._grace.discard(task_id)
        if outcome != Outcome.COMPLETED and self._collapse is not None and task.section_id is not None:
            self._collapse.on_task_restored(task.section_id)
        logger.info("Outcome set task=%s date=%s outcome=%s", task_id, d, outcome)
        return completion
