# tests/conftest.py

from __future__ import annotations

import time
from collections.abc import Iterator
from pathlib import Path
from types import SimpleNamespace

import pytest

from daybook.bootstrap import create_engine_state
from daybook.completions.completion_store import CompletionStore
from daybook.core.state import EngineState
from daybook.tasks.task_store import TaskStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with create_engine_state().

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment and any local .env.
    """
    return SimpleNamespace(
        app_name="daybook-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        db_path=tmp_path / "daybook.sqlite3",
        timezone="UTC",
        grace_window_seconds=0.05,
        collapse_debounce_seconds=0.01,
        hide_completed=False,
    )


@pytest.fixture()
def task_store(tmp_path: Path) -> TaskStore:
    return TaskStore(tmp_path / "tasks.sqlite3")


@pytest.fixture()
def completion_store(tmp_path: Path) -> CompletionStore:
    return CompletionStore(tmp_path / "completions.sqlite3")


@pytest.fixture()
def state(settings: SimpleNamespace) -> EngineState:
    """
    EngineState wired exactly as in production.

    NOTE: We keep real SQLite stores here because their correctness is part of
    what we want to test.
    """
    return create_engine_state(settings=settings)  # type: ignore[arg-type]


@pytest.fixture()
def system_tz(monkeypatch: pytest.MonkeyPatch) -> Iterator[str]:
    """
    Run the test with the process zone set to Pacific/Auckland.

    Tests pair it with America/Los_Angeles as the configured zone: the two are
    roughly a calendar day apart, so any mix-up of the zones shifts dates.
    """
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "Pacific/Auckland")
    time.tzset()
    yield "Pacific/Auckland"
    monkeypatch.undo()
    time.tzset()
