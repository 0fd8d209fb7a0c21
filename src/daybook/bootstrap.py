# src/daybook/bootstrap.py

"""
Composition root.

- loads settings once,
- ensures local (gitignored) directories exist,
- wires the SQLite stores, grace window, collapse policy and coordinator into
  EngineState.
"""

from __future__ import annotations

import logging

from .calendar_math import now_local, resolve_timezone
from .completions.completion_store import CompletionStore
from .config import Settings, get_settings
from .core.keyed_lock import KeyedLock
from .core.state import EngineState
from .logging_setup import setup_logging
from .schedule.grace_window import GraceWindow
from .schedule.rollover import RolloverCoordinator
from .schedule.section_collapse import SectionCollapsePolicy
from .tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_engine_state(*, settings: Settings | None = None, configure_logging: bool = False) -> EngineState:
    """
    Create EngineState from the provided settings.

    If settings is None, falls back to get_settings().
    configure_logging=True installs the console and file handlers first (use it
    from an application entry point, once).
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)
    if configure_logging:
        log_file = setup_logging(settings)
        logger.debug("Logging to %s", log_file)

    tz = resolve_timezone(settings.timezone)
    task_store = TaskStore(settings.db_path)
    completion_store = CompletionStore(settings.db_path)
    grace = GraceWindow(seconds=settings.grace_window_seconds)
    collapse = SectionCollapsePolicy(
        hide_completed=settings.hide_completed,
        debounce_seconds=settings.collapse_debounce_seconds,
    )
    locks = KeyedLock()

    state = EngineState(
        settings=settings,
        tz=tz,
        task_store=task_store,
        completion_store=completion_store,
        grace=grace,
        collapse=collapse,
        locks=locks,
        coordinator=RolloverCoordinator(
            task_store,
            completion_store,
            grace=grace,
            collapse=collapse,
            locks=locks,
            clock=lambda: now_local(tz),
        ),
    )
    grace.on_expire = state.on_grace_expired
    logger.info(
        "Engine ready db=%s tz=%s hide_completed=%s",
        settings.db_path,
        settings.timezone or "local",
        settings.hide_completed,
    )
    return state
