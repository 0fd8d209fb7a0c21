# src/daybook/completions/completion_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path
from typing import Any

from ..calendar_math import DayLike, format_iso_day, normalize_day
from ..errors import DuplicateKey, NotFound
from .completion_index import CompletionIndex
from .completion_models import BatchResult, Completion, CompletionInput, Outcome

logger = logging.getLogger(__name__)

_UPDATABLE = ("outcome", "note", "actual_value", "time", "started_at", "completed_at")


class CompletionStore:
    """
    SQLite completion store keyed by (task_id, date).

    The key is a calendar day stored as 'YYYY-MM-DD'; UNIQUE(task_id, date) enforces
    at most one record per key.

    Write contract:
    - create() fails with DuplicateKey when the key exists
    - update() fails with NotFound when it does not
    - delete() is an idempotent clear
    - batch_* apply items independently and report per-item results

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "daybook.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_completions()
        except sqlite3.Error:
            total = -1
        logger.info("CompletionStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS completions (
                    task_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    outcome TEXT,
                    note TEXT,
                    actual_value TEXT,
                    time TEXT,
                    started_at TEXT,
                    completed_at TEXT,
                    created_at REAL NOT NULL,
                    UNIQUE(task_id, date)
                )
                """
            )

            cur.execute("PRAGMA table_info(completions)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE completions ADD COLUMN {name} {decl}")
                logger.info("CompletionStore migration: added column %s", name)

            add_col("actual_value", "TEXT")
            add_col("time", "TEXT")
            add_col("started_at", "TEXT")
            add_col("completed_at", "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_completions_date ON completions(date)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _ts_to_str(value: datetime | None) -> str | None:
        return value.isoformat() if value is not None else None

    @staticmethod
    def _str_to_ts(raw: str | None) -> datetime | None:
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            return None

    def _row_to_completion(self, row: sqlite3.Row) -> Completion:
        return Completion(
            task_id=str(row["task_id"]),
            date=date.fromisoformat(row["date"]),
            outcome=Outcome.from_db(row["outcome"]),
            note=row["note"],
            actual_value=row["actual_value"],
            time=row["time"],
            started_at=self._str_to_ts(row["started_at"]),
            completed_at=self._str_to_ts(row["completed_at"]),
            created_at=float(row["created_at"] or 0.0),
        )

    def _fetch(self, conn: sqlite3.Connection, task_id: str, day: date) -> Completion | None:
        cur = conn.execute(
            "SELECT * FROM completions WHERE task_id = ? AND date = ?",
            (task_id, format_iso_day(day)),
        )
        row = cur.fetchone()
        return self._row_to_completion(row) if row else None

    # ---- writes ----

    def create(
        self,
        task_id: str,
        day: DayLike,
        *,
        outcome: Outcome | None = Outcome.COMPLETED,
        note: str | None = None,
        actual_value: str | None = None,
        time: str | None = None,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
    ) -> Completion:
        if not task_id:
            raise ValueError("task_id is required")
        d = normalize_day(day)
        now = _now()

        conn = self._get_conn()
        try:
            try:
                conn.execute(
                    """
                    INSERT INTO completions(
                        task_id, date, outcome, note, actual_value, time,
                        started_at, completed_at, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        task_id,
                        format_iso_day(d),
                        outcome.value if outcome is not None else None,
                        note,
                        actual_value,
                        time,
                        self._ts_to_str(started_at),
                        self._ts_to_str(completed_at),
                        now,
                    ),
                )
                conn.commit()
            except sqlite3.IntegrityError as e:
                raise DuplicateKey(task_id, d) from e
            created = self._fetch(conn, task_id, d)
        finally:
            conn.close()

        if created is None:
            raise RuntimeError(f"completion vanished after insert task_id={task_id} date={d}")
        logger.debug("Completion created task_id=%s date=%s outcome=%s", task_id, d, outcome)
        return created

    def update(self, task_id: str, day: DayLike, **fields: Any) -> Completion:
        """Update the given fields in place; NotFound when no record exists."""
        unknown = sorted(set(fields) - set(_UPDATABLE))
        if unknown:
            raise ValueError(f"unknown completion fields: {', '.join(unknown)}")
        d = normalize_day(day)

        sets: list[str] = []
        params: list[Any] = []
        for name in _UPDATABLE:
            if name not in fields:
                continue
            value = fields[name]
            if name == "outcome":
                value = Outcome(value).value if value is not None else None
            elif name in ("started_at", "completed_at"):
                value = self._ts_to_str(value)
            sets.append(f"{name} = ?")
            params.append(value)

        conn = self._get_conn()
        try:
            if sets:
                cur = conn.execute(
                    f"UPDATE completions SET {', '.join(sets)} WHERE task_id = ? AND date = ?",
                    (*params, task_id, format_iso_day(d)),
                )
                conn.commit()
                if cur.rowcount == 0:
                    raise NotFound("completion", (task_id, d))
            updated = self._fetch(conn, task_id, d)
        finally:
            conn.close()

        if updated is None:
            raise NotFound("completion", (task_id, d))
        logger.debug("Completion updated task_id=%s date=%s fields=%s", task_id, d, sorted(fields))
        return updated

    def upsert(self, task_id: str, day: DayLike, **fields: Any) -> Completion:
        """Create the record, or update it in place when the key already exists."""
        d = normalize_day(day)
        if self.has_record_on_date(task_id, d):
            return self.update(task_id, d, **fields)
        try:
            return self.create(task_id, d, **fields)
        except DuplicateKey:
            # Created by someone else between the check and the insert.
            return self.update(task_id, d, **fields)

    def delete(self, task_id: str, day: DayLike) -> bool:
        """Remove the record; returns False (not an error) when it was absent."""
        d = normalize_day(day)
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "DELETE FROM completions WHERE task_id = ? AND date = ?",
                (task_id, format_iso_day(d)),
            )
            conn.commit()
            removed = cur.rowcount > 0
        finally:
            conn.close()
        if removed:
            logger.debug("Completion deleted task_id=%s date=%s", task_id, d)
        return removed

    def delete_for_task(self, task_id: str) -> int:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM completions WHERE task_id = ?", (task_id,))
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()

    def batch_create(self, items: Iterable[CompletionInput]) -> list[BatchResult]:
        results: list[BatchResult] = []
        for item in items:
            try:
                c = self.create(
                    item.task_id,
                    item.date,
                    outcome=item.outcome,
                    note=item.note,
                    actual_value=item.actual_value,
                    time=item.time,
                    started_at=item.started_at,
                    completed_at=item.completed_at,
                )
                results.append(BatchResult(task_id=item.task_id, date=c.date, ok=True, completion=c))
            except (DuplicateKey, ValueError, sqlite3.Error) as e:
                logger.warning("batch_create item failed task_id=%s date=%s: %s", item.task_id, item.date, e)
                results.append(BatchResult(task_id=item.task_id, date=item.date, ok=False, error=e))
        return results

    def batch_delete(self, items: Iterable[tuple[str, DayLike]]) -> list[BatchResult]:
        results: list[BatchResult] = []
        for task_id, day in items:
            try:
                d = normalize_day(day)
                self.delete(task_id, d)
                results.append(BatchResult(task_id=task_id, date=d, ok=True))
            except (TypeError, ValueError, sqlite3.Error) as e:
                logger.warning("batch_delete item failed task_id=%s date=%s: %s", task_id, day, e)
                results.append(BatchResult(task_id=task_id, date=day, ok=False, error=e))  # type: ignore[arg-type]
        return results

    # ---- queries ----

    def count_completions(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM completions").fetchone()
            return int(n)
        finally:
            conn.close()

    def get(self, task_id: str, day: DayLike) -> Completion | None:
        conn = self._get_conn()
        try:
            return self._fetch(conn, task_id, normalize_day(day))
        finally:
            conn.close()

    def is_completed_on_date(self, task_id: str, day: DayLike) -> bool:
        c = self.get(task_id, day)
        return c is not None and c.outcome == Outcome.COMPLETED

    def outcome_on_date(self, task_id: str, day: DayLike) -> Outcome | None:
        c = self.get(task_id, day)
        return c.outcome if c is not None else None

    def has_record_on_date(self, task_id: str, day: DayLike) -> bool:
        return self.get(task_id, day) is not None

    def has_any_completion_across_all_dates(self, task_id: str) -> bool:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT 1 FROM completions WHERE task_id = ? LIMIT 1", (task_id,)).fetchone()
            return row is not None
        finally:
            conn.close()

    def completions_in_range(self, task_id: str, start: DayLike, end: DayLike) -> list[Completion]:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                SELECT *
                FROM completions
                WHERE task_id = ?
                  AND date >= ?
                  AND date <= ?
                ORDER BY date ASC
                """,
                (task_id, format_iso_day(normalize_day(start)), format_iso_day(normalize_day(end))),
            )
            return [self._row_to_completion(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def list_completions(self, start: DayLike | None = None, end: DayLike | None = None) -> list[Completion]:
        clauses: list[str] = []
        params: list[str] = []
        if start is not None:
            clauses.append("date >= ?")
            params.append(format_iso_day(normalize_day(start)))
        if end is not None:
            clauses.append("date <= ?")
            params.append(format_iso_day(normalize_day(end)))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._get_conn()
        try:
            cur = conn.execute(f"SELECT * FROM completions {where} ORDER BY date DESC, task_id ASC", params)
            return [self._row_to_completion(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def snapshot(self, start: DayLike | None = None, end: DayLike | None = None) -> CompletionIndex:
        """In-memory index over the (optionally range-scoped) records, for the projector."""
        return CompletionIndex(self.list_completions(start, end))


def _now() -> float:
    return time.time()
