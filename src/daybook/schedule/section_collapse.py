# src/daybook/schedule/section_collapse.py

from __future__ import annotations

"""
Auto-collapse of sections that have nothing left to show.

Per section:
    EXPANDED --(hide completed on, last visible task completed)--> AUTO_COLLAPSED
    any      --(user toggles the section)-----------------------> MANUALLY_RE_EXPANDED
    AUTO_COLLAPSED --(a task in it is un-completed)-------------> EXPANDED
    MANUALLY_RE_EXPANDED --(view date changes)------------------> EXPANDED

Turning hide completed off resets every section to EXPANDED; turning it back on
re-enables auto-collapse. The user's own Section.expanded flag is only read.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterable, Mapping
from enum import Enum

from ..tasks.task_models import Section

logger = logging.getLogger(__name__)


class CollapseState(Enum):
    EXPANDED = "expanded"
    AUTO_COLLAPSED = "auto_collapsed"
    MANUALLY_RE_EXPANDED = "manually_re_expanded"


class SectionCollapsePolicy:
    def __init__(self, *, hide_completed: bool = False, debounce_seconds: float = 0.05) -> None:
        self._hide_completed = hide_completed
        self._debounce = max(0.0, float(debounce_seconds))
        self._states: dict[str, CollapseState] = {}
        self._pending: dict[str, asyncio.Task[CollapseState]] = {}

    @property
    def hide_completed(self) -> bool:
        return self._hide_completed

    def state(self, section_id: str) -> CollapseState:
        return self._states.get(section_id, CollapseState.EXPANDED)

    def _set(self, section_id: str, new: CollapseState) -> CollapseState:
        old = self.state(section_id)
        if new == CollapseState.EXPANDED:
            self._states.pop(section_id, None)
        else:
            self._states[section_id] = new
        if old != new:
            logger.debug("Section %s: %s -> %s", section_id, old.value, new.value)
        return new

    def initialize(self, section_ids: Iterable[str], visible_counts: Mapping[str, int]) -> None:
        """Collapse sections that start out empty (hide completed only)."""
        if not self._hide_completed:
            return
        for sid in section_ids:
            if self.state(sid) == CollapseState.EXPANDED and visible_counts.get(sid, 0) == 0:
                self._set(sid, CollapseState.AUTO_COLLAPSED)

    def on_completion_event(self, section_id: str, visible_count: int) -> CollapseState:
        current = self.state(section_id)
        if self._hide_completed and current == CollapseState.EXPANDED and visible_count == 0:
            return self._set(section_id, CollapseState.AUTO_COLLAPSED)
        return current

    def schedule_check(self, section_id: str, count_fn: Callable[[], int]) -> asyncio.Task[CollapseState]:
        """
        Debounced on_completion_event; count_fn is read after the delay.

        A newer request for the same section cancels the pending one. Must be
        called with a running event loop.
        """
        pending = self._pending.pop(section_id, None)
        if pending is not None and not pending.done():
            pending.cancel()

        async def _run() -> CollapseState:
            await asyncio.sleep(self._debounce)
            try:
                return self.on_completion_event(section_id, count_fn())
            finally:
                if self._pending.get(section_id) is task:
                    del self._pending[section_id]

        task = asyncio.get_running_loop().create_task(_run())
        self._pending[section_id] = task
        return task

    def on_user_toggle(self, section_id: str) -> CollapseState:
        return self._set(section_id, CollapseState.MANUALLY_RE_EXPANDED)

    def on_task_restored(self, section_id: str) -> CollapseState:
        if self.state(section_id) == CollapseState.AUTO_COLLAPSED:
            return self._set(section_id, CollapseState.EXPANDED)
        return self.state(section_id)

    def on_view_date_changed(self) -> None:
        for sid, st in list(self._states.items()):
            if st == CollapseState.MANUALLY_RE_EXPANDED:
                self._set(sid, CollapseState.EXPANDED)

    def set_hide_completed(self, flag: bool) -> None:
        if flag == self._hide_completed:
            return
        self._hide_completed = flag
        if not flag:
            self.cancel_pending()
            self._states.clear()
        logger.info("Hide completed -> %s", flag)

    def is_expanded(self, section: Section) -> bool:
        st = self.state(section.id)
        if st == CollapseState.AUTO_COLLAPSED:
            return False
        if st == CollapseState.MANUALLY_RE_EXPANDED:
            return True
        return section.expanded

    def cancel_pending(self) -> None:
        for task in self._pending.values():
            with contextlib.suppress(RuntimeError):
                task.cancel()
        self._pending.clear()
