# tests/test_completion_store.py

from __future__ import annotations

from datetime import date

import pytest

from daybook.completions.completion_models import CompletionInput, Outcome, check_payload
from daybook.completions.completion_store import CompletionStore
from daybook.errors import DuplicateKey, InvalidPayload, NotFound
from daybook.tasks.task_models import CompletionType


def test_create_then_delete_clears_the_key(completion_store: CompletionStore) -> None:
    completion_store.create("t1", "2024-06-02T00:00:00.000Z", note="done early")

    assert completion_store.has_record_on_date("t1", date(2024, 6, 2))
    assert completion_store.is_completed_on_date("t1", "2024-06-02")
    assert completion_store.get("t1", date(2024, 6, 2)).note == "done early"

    assert completion_store.delete("t1", date(2024, 6, 2)) is True
    assert not completion_store.has_record_on_date("t1", date(2024, 6, 2))
    # Clearing an absent key is not an error.
    assert completion_store.delete("t1", date(2024, 6, 2)) is False


def test_duplicate_create_fails_and_upsert_updates(completion_store: CompletionStore) -> None:
    d = date(2024, 6, 2)
    completion_store.create("t1", d)
    with pytest.raises(DuplicateKey):
        completion_store.create("t1", d)

    c = completion_store.upsert("t1", d, outcome=Outcome.NOT_COMPLETED, note="rain")
    assert c.outcome is Outcome.NOT_COMPLETED
    assert c.note == "rain"
    assert completion_store.count_completions() == 1


def test_update_requires_existing_record(completion_store: CompletionStore) -> None:
    with pytest.raises(NotFound):
        completion_store.update("t1", date(2024, 6, 2), note="x")

    completion_store.create("t1", date(2024, 6, 2))
    with pytest.raises(ValueError):
        completion_store.update("t1", date(2024, 6, 2), colour="red")


def test_outcome_queries(completion_store: CompletionStore) -> None:
    completion_store.create("t1", date(2024, 6, 1), outcome=Outcome.ROLLED_OVER)
    completion_store.create("t1", date(2024, 6, 2), outcome=None)

    assert completion_store.outcome_on_date("t1", date(2024, 6, 1)) is Outcome.ROLLED_OVER
    assert not completion_store.is_completed_on_date("t1", date(2024, 6, 1))
    assert completion_store.has_record_on_date("t1", date(2024, 6, 2))
    assert completion_store.outcome_on_date("t1", date(2024, 6, 2)) is None
    assert completion_store.has_any_completion_across_all_dates("t1")
    assert not completion_store.has_any_completion_across_all_dates("t2")


def test_batch_create_reports_per_item(completion_store: CompletionStore) -> None:
    completion_store.create("t2", date(2024, 6, 2))
    results = completion_store.batch_create(
        [
            CompletionInput(task_id="t1", date=date(2024, 6, 2)),
            CompletionInput(task_id="t2", date=date(2024, 6, 2)),
            CompletionInput(task_id="t3", date=date(2024, 6, 2)),
        ]
    )
    assert [r.ok for r in results] == [True, False, True]
    assert isinstance(results[1].error, DuplicateKey)
    assert completion_store.count_completions() == 3

    deleted = completion_store.batch_delete([("t1", date(2024, 6, 2)), ("t9", date(2024, 6, 2))])
    assert all(r.ok for r in deleted)
    assert completion_store.count_completions() == 2


def test_range_queries_and_snapshot(completion_store: CompletionStore) -> None:
    for day in (1, 3, 5, 7):
        completion_store.create("t1", date(2024, 6, day))
    completion_store.create("t2", date(2024, 6, 4))

    in_range = completion_store.completions_in_range("t1", date(2024, 6, 2), date(2024, 6, 6))
    assert [c.date for c in in_range] == [date(2024, 6, 3), date(2024, 6, 5)]

    listed = completion_store.list_completions(date(2024, 6, 3), date(2024, 6, 5))
    assert [c.date for c in listed] == [date(2024, 6, 5), date(2024, 6, 4), date(2024, 6, 3)]

    snap = completion_store.snapshot(date(2024, 6, 3), date(2024, 6, 5))
    assert len(snap) == 3
    assert snap.is_completed_on_date("t2", date(2024, 6, 4))
    assert not snap.has_record_on_date("t1", date(2024, 6, 1))

    assert completion_store.delete_for_task("t1") == 4
    assert completion_store.count_completions() == 1


def test_records_survive_reopen(tmp_path) -> None:
    path = tmp_path / "c.sqlite3"
    CompletionStore(path).create("t1", date(2024, 6, 2), note="kept")
    assert CompletionStore(path).get("t1", date(2024, 6, 2)).note == "kept"


def test_every_completion_type_has_payload_rules() -> None:
    for kind in CompletionType:
        check_payload(kind, {"note": "ok"})
    with pytest.raises(InvalidPayload):
        check_payload(CompletionType.NOTE, {"actual_value": 3})
