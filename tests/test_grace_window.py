# tests/test_grace_window.py

from __future__ import annotations

import asyncio

import pytest

from daybook.schedule.grace_window import GraceWindow


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_lazy_expiry_without_event_loop() -> None:
    clock = _Clock()
    expired: list[tuple[str, str | None]] = []
    grace = GraceWindow(seconds=2.0, clock=clock, on_expire=lambda t, s: expired.append((t, s)))

    grace.add("a", "s1")
    assert "a" in grace
    assert grace.snapshot() == frozenset({"a"})

    clock.now += 2.5
    assert "a" not in grace
    assert grace.snapshot() == frozenset()
    assert expired == [("a", "s1")]
    assert len(grace) == 0


def test_discard_and_re_add() -> None:
    clock = _Clock()
    grace = GraceWindow(seconds=2.0, clock=clock)
    grace.add("a")
    assert grace.discard("a") is True
    assert grace.discard("a") is False

    grace.add("b")
    clock.now += 1.5
    grace.add("b")  # re-completing restarts the window
    clock.now += 1.0
    assert "b" in grace


@pytest.mark.asyncio
async def test_timer_fires_on_expire() -> None:
    fired = asyncio.Event()
    seen: list[str] = []

    def on_expire(task_id: str, section_id: str | None) -> None:
        seen.append(task_id)
        fired.set()

    grace = GraceWindow(seconds=0.01, on_expire=on_expire)
    grace.add("a", "s1")
    await asyncio.wait_for(fired.wait(), timeout=1.0)

    assert seen == ["a"]
    assert len(grace) == 0


@pytest.mark.asyncio
async def test_discard_cancels_the_timer() -> None:
    seen: list[str] = []
    grace = GraceWindow(seconds=0.01, on_expire=lambda t, s: seen.append(t))
    grace.add("a")
    grace.discard("a")
    await asyncio.sleep(0.05)
    assert seen == []


@pytest.mark.asyncio
async def test_callback_errors_are_contained(caplog: pytest.LogCaptureFixture) -> None:
    def boom(task_id: str, section_id: str | None) -> None:
        raise RuntimeError("callback failed")

    grace = GraceWindow(seconds=0.01, on_expire=boom)
    grace.add("a")
    await asyncio.sleep(0.05)
    assert len(grace) == 0
    assert "on_expire callback failed" in caplog.text
