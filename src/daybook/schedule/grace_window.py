# src/daybook/schedule/grace_window.py

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

ExpireCallback = Callable[[str, "str | None"], None]


@dataclass(slots=True)
class _Entry:
    deadline: float
    section_id: str | None
    handle: asyncio.TimerHandle | None = None


@dataclass(slots=True)
class GraceWindow:
    """
    Tasks kept visible for a short while after they were completed.

    Entries expire by deadline. When an event loop is running, a timer also
    removes the entry at its deadline and fires on_expire(task_id, section_id);
    without a loop, expiry is observed lazily by snapshot() and __contains__.
    discard() removes an entry at once and cancels its timer.
    """

    seconds: float = 2.0
    on_expire: ExpireCallback | None = None
    clock: Callable[[], float] = time.monotonic
    _entries: dict[str, _Entry] = field(default_factory=dict)

    def add(self, task_id: str, section_id: str | None = None) -> None:
        self.discard(task_id)
        entry = _Entry(deadline=self.clock() + self.seconds, section_id=section_id)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            entry.handle = loop.call_later(self.seconds, self._expire, task_id, entry)
        self._entries[task_id] = entry
        logger.debug("Grace window opened task=%s seconds=%s", task_id, self.seconds)

    def discard(self, task_id: str) -> bool:
        entry = self._entries.pop(task_id, None)
        if entry is None:
            return False
        if entry.handle is not None:
            entry.handle.cancel()
        logger.debug("Grace window closed early task=%s", task_id)
        return True

    def clear(self) -> None:
        for entry in self._entries.values():
            if entry.handle is not None:
                entry.handle.cancel()
        self._entries.clear()

    def _expire(self, task_id: str, entry: _Entry) -> None:
        if self._entries.get(task_id) is not entry:
            return
        del self._entries[task_id]
        if entry.handle is not None:
            entry.handle.cancel()
        logger.debug("Grace window expired task=%s", task_id)
        if self.on_expire is None:
            return
        try:
            self.on_expire(task_id, entry.section_id)
        except Exception:
            logger.exception("on_expire callback failed task=%s", task_id)

    def _prune(self, now: float) -> None:
        for task_id, entry in [(k, e) for k, e in self._entries.items() if e.deadline <= now]:
            self._expire(task_id, entry)

    def snapshot(self, now: float | None = None) -> frozenset[str]:
        """Ids still inside their window, as the projector's grace argument."""
        self._prune(self.clock() if now is None else now)
        return frozenset(self._entries)

    def __contains__(self, task_id: object) -> bool:
        entry = self._entries.get(task_id)  # type: ignore[call-overload]
        return entry is not None and entry.deadline > self.clock()

    def __len__(self) -> int:
        return len(self._entries)
