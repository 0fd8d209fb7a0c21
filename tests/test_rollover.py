# tests/test_rollover.py

from __future__ import annotations

import asyncio
from datetime import date, datetime

import pytest

from daybook.completions.completion_models import Completion, Outcome
from daybook.errors import InvalidOperation, InvalidPayload, NotFound
from daybook.schedule.grace_window import GraceWindow
from daybook.schedule.rollover import RolloverCoordinator
from daybook.schedule.section_collapse import CollapseState, SectionCollapsePolicy
from daybook.tasks.recurrence import is_scheduled
from daybook.tasks.task_models import CompletionType, RecurrenceType, TaskStatus

from .fakes import FakeCompletionRepo, FakeTaskRepo, daily, make_task, one_time, weekly

MON = date(2024, 6, 3)
SUN = date(2024, 6, 2)
FIXED_NOW = datetime(2024, 6, 3, 9, 30)


def _coordinator(tasks: FakeTaskRepo, completions: FakeCompletionRepo, **kw) -> RolloverCoordinator:
    return RolloverCoordinator(tasks, completions, clock=lambda: FIXED_NOW, **kw)


@pytest.mark.asyncio
async def test_rollover_labels_a_scheduled_occurrence() -> None:
    tasks = FakeTaskRepo([make_task("t", weekly({1}))])
    completions = FakeCompletionRepo()
    grace = GraceWindow(seconds=30)
    grace.add("t")
    coord = _coordinator(tasks, completions, grace=grace)

    c = await coord.rollover("t", MON)

    assert c.outcome is Outcome.ROLLED_OVER
    assert list(completions.records) == [("t", MON)]
    assert tasks.recurrence_writes == []
    assert "t" not in grace


@pytest.mark.asyncio
async def test_rollover_rejects_unscheduled_days_and_non_recurring_tasks() -> None:
    tasks = FakeTaskRepo([make_task("t", weekly({1})), make_task("once", one_time("2024-06-03"))])
    completions = FakeCompletionRepo()
    coord = _coordinator(tasks, completions)

    with pytest.raises(InvalidOperation):
        await coord.rollover("t", date(2024, 6, 4))
    with pytest.raises(InvalidOperation):
        await coord.rollover("once", MON)
    with pytest.raises(InvalidOperation):
        await coord.rollover("missing", MON)
    assert completions.records == {}


@pytest.mark.asyncio
async def test_off_schedule_record_adds_and_clear_removes_the_day() -> None:
    tasks = FakeTaskRepo([make_task("t", weekly({1}))])
    completions = FakeCompletionRepo()
    coord = _coordinator(tasks, completions)

    c = await coord.record_off_schedule("t", "2024-06-02T00:00:00.000Z", note="bonus run")
    assert c.outcome is Outcome.COMPLETED
    assert c.note == "bonus run"
    task = tasks.get_task("t")
    assert SUN in task.recurrence.additional_dates
    assert is_scheduled(task, SUN)

    assert await coord.clear_off_schedule("t", SUN) is True
    task = tasks.get_task("t")
    assert SUN not in task.recurrence.additional_dates
    assert not is_scheduled(task, SUN)
    assert not completions.has_record_on_date("t", SUN)


@pytest.mark.asyncio
async def test_off_schedule_record_on_a_rule_day_leaves_the_rule_alone() -> None:
    tasks = FakeTaskRepo([make_task("t", weekly({1}))])
    coord = _coordinator(tasks, FakeCompletionRepo())

    await coord.record_off_schedule("t", MON, outcome=Outcome.NOT_COMPLETED)
    assert tasks.recurrence_writes == []

    with pytest.raises(InvalidPayload):
        await coord.record_off_schedule("t", MON, actual_value="5km")


@pytest.mark.asyncio
async def test_failed_record_write_reverts_the_additional_date() -> None:
    original = weekly({1})
    tasks = FakeTaskRepo([make_task("t", original)])
    completions = FakeCompletionRepo()
    completions.fail_writes = True
    coord = _coordinator(tasks, completions)

    with pytest.raises(RuntimeError):
        await coord.record_off_schedule("t", SUN)

    assert tasks.get_task("t").recurrence == original
    assert [spec for _, spec in tasks.recurrence_writes] == [original.with_additional_date(SUN), original]


@pytest.mark.asyncio
async def test_reconcile_heals_both_halves() -> None:
    spec = weekly({1}, additional_dates=frozenset({date(2024, 6, 4)}))
    tasks = FakeTaskRepo([make_task("t", spec)])
    completions = FakeCompletionRepo([Completion(task_id="t", date=SUN)])
    coord = _coordinator(tasks, completions)

    healed = await coord.reconcile_off_schedule("t", date(2024, 6, 1), date(2024, 6, 7))

    assert healed == [SUN, date(2024, 6, 4)]
    assert SUN in tasks.get_task("t").recurrence.additional_dates
    orphan = completions.get("t", date(2024, 6, 4))
    assert orphan is not None and orphan.outcome is None

    assert await coord.reconcile_off_schedule("t", date(2024, 6, 1), date(2024, 6, 7)) == []


@pytest.mark.asyncio
async def test_toggle_cascades_to_subtasks() -> None:
    tasks = FakeTaskRepo(
        [
            make_task("p", daily()),
            make_task("a", None, parent_id="p"),
            make_task("b", None, parent_id="p"),
        ]
    )
    completions = FakeCompletionRepo([Completion(task_id="b", date=MON, outcome=Outcome.NOT_COMPLETED)])
    grace = GraceWindow(seconds=30)
    coord = _coordinator(tasks, completions, grace=grace)

    results = await coord.toggle_completion("p", MON)
    assert all(r.ok for r in results)
    assert {k for k, c in completions.records.items() if c.outcome is Outcome.COMPLETED} == {
        ("p", MON),
        ("a", MON),
        ("b", MON),
    }
    assert "p" in grace

    await coord.toggle_completion("p", MON)
    assert completions.records == {}
    assert "p" not in grace


@pytest.mark.asyncio
async def test_subtask_toggles_alone() -> None:
    tasks = FakeTaskRepo([make_task("p", daily()), make_task("a", None, parent_id="p")])
    completions = FakeCompletionRepo()
    coord = _coordinator(tasks, completions)

    await coord.toggle_completion("a", MON)
    assert list(completions.records) == [("a", MON)]
    await coord.toggle_completion("a", MON)
    assert completions.records == {}


@pytest.mark.asyncio
async def test_completing_a_backlog_task_pins_it_and_clearing_restores_status() -> None:
    started = datetime(2024, 6, 1, 8, 0)
    task = make_task("t", None)
    tasks = FakeTaskRepo([task])
    tasks.tasks["t"] = tasks.update_task_fields("t", status=TaskStatus.IN_PROGRESS, started_at=started)
    completions = FakeCompletionRepo()
    coord = _coordinator(tasks, completions)

    await coord.toggle_completion("t", MON)
    done = tasks.get_task("t")
    assert done.recurrence.type is RecurrenceType.NONE
    assert done.recurrence.start_date == MON
    assert done.status is TaskStatus.COMPLETE
    assert done.time == "09:30"

    await coord.toggle_completion("t", MON)
    assert tasks.get_task("t").status is TaskStatus.IN_PROGRESS
    assert completions.records == {}


@pytest.mark.asyncio
async def test_subtask_of_one_time_parent_moves_parent_in_progress() -> None:
    tasks = FakeTaskRepo([make_task("p", one_time("2024-06-03")), make_task("a", None, parent_id="p")])
    coord = _coordinator(tasks, FakeCompletionRepo())

    await coord.toggle_completion("a", MON)
    assert tasks.get_task("a").status is TaskStatus.COMPLETE
    assert tasks.get_task("p").status is TaskStatus.IN_PROGRESS
    assert tasks.get_task("p").started_at == FIXED_NOW


@pytest.mark.asyncio
async def test_concurrent_toggles_on_one_key_apply_in_order() -> None:
    tasks = FakeTaskRepo([make_task("t", daily())])
    completions = FakeCompletionRepo()
    coord = _coordinator(tasks, completions)

    await asyncio.gather(coord.toggle_completion("t", MON), coord.toggle_completion("t", MON))
    assert completions.records == {}

    await asyncio.gather(*(coord.toggle_completion("t", MON) for _ in range(3)))
    assert completions.is_completed_on_date("t", MON)


@pytest.mark.asyncio
async def test_toggle_unknown_task() -> None:
    coord = _coordinator(FakeTaskRepo([]), FakeCompletionRepo())
    with pytest.raises(NotFound):
        await coord.toggle_completion("nope", MON)


@pytest.mark.asyncio
async def test_set_outcome_and_clear() -> None:
    tasks = FakeTaskRepo(
        [
            make_task("t", weekly({1})),
            make_task("run", weekly({1}), completion_type=CompletionType.TEXT_INPUT, section_id="s2"),
        ]
    )
    completions = FakeCompletionRepo()
    grace = GraceWindow(seconds=30)
    collapse = SectionCollapsePolicy(hide_completed=True)
    collapse.on_completion_event("s1", 0)
    coord = _coordinator(tasks, completions, grace=grace, collapse=collapse)

    c = await coord.set_outcome("run", MON, Outcome.COMPLETED, actual_value="5km")
    assert c.actual_value == "5km"
    assert "run" in grace

    c = await coord.set_outcome("t", MON, Outcome.NOT_COMPLETED, note="sick")
    assert c.outcome is Outcome.NOT_COMPLETED
    assert collapse.state("s1") is CollapseState.EXPANDED

    assert await coord.set_outcome("t", MON, None) is None
    assert not completions.has_record_on_date("t", MON)

    # An unscheduled day goes through the off-schedule path.
    await coord.set_outcome("t", SUN, Outcome.COMPLETED)
    assert SUN in tasks.get_task("t").recurrence.additional_dates
