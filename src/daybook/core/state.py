# src/daybook/core/state.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, tzinfo

from ..calendar_math import DayLike, normalize_day, now_local, today_local
from ..completions.completion_store import CompletionStore
from ..config import Settings
from ..schedule.grace_window import GraceWindow
from ..schedule.projector import HistoryRow, TaskView, backlog, history_rows, todays_tasks
from ..schedule.rollover import RolloverCoordinator
from ..schedule.section_collapse import SectionCollapsePolicy
from ..tasks.task_models import Task
from ..tasks.task_store import TaskStore
from .keyed_lock import KeyedLock

logger = logging.getLogger(__name__)


@dataclass
class EngineState:
    # Store Settings on the state for easy access in other modules later.
    settings: Settings
    tz: tzinfo | None

    task_store: TaskStore
    completion_store: CompletionStore

    grace: GraceWindow
    collapse: SectionCollapsePolicy
    locks: KeyedLock
    coordinator: RolloverCoordinator

    def now(self) -> datetime:
        return now_local(self.tz)

    def today(self) -> date:
        return today_local(self.tz)

    def _day(self, day: DayLike | None) -> date:
        return self.today() if day is None else normalize_day(day, self.tz)

    def todays_tasks(self, day: DayLike | None = None) -> list[TaskView]:
        d = self._day(day)
        return todays_tasks(
            self.task_store.arena(),
            self.completion_store.snapshot(d, d),
            d,
            grace=self.grace.snapshot(),
            hide_completed=self.collapse.hide_completed,
            now=self.now(),
        )

    def backlog(self, day: DayLike | None = None) -> list[Task]:
        # Backlog exclusion looks at records on any day, so query the store directly.
        return backlog(
            self.task_store.arena(),
            self.completion_store,
            self._day(day),
            now=self.now(),
            grace=self.grace.snapshot(),
        )

    def history(self, start: DayLike, end: DayLike) -> list[HistoryRow]:
        s, e = normalize_day(start, self.tz), normalize_day(end, self.tz)
        return history_rows(self.task_store.arena(), self.completion_store.snapshot(s, e), s, e)

    def visible_count(self, section_id: str, day: DayLike | None = None) -> int:
        return sum(1 for v in self.todays_tasks(day) if v.section_id == section_id)

    def on_grace_expired(self, task_id: str, section_id: str | None) -> None:
        """Re-check the task's section once its completed task drops out of view."""
        if section_id is None or not self.collapse.hide_completed:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self.collapse.on_completion_event(section_id, self.visible_count(section_id))
            return
        self.collapse.schedule_check(section_id, lambda: self.visible_count(section_id))
