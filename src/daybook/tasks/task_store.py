# src/daybook/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from ..errors import InvalidRecurrence, NotFound
from .recurrence import validate_recurrence
from .recurrence_wire import recurrence_from_wire, recurrence_to_wire
from .task_models import CompletionType, RecurrenceSpec, Section, Task, TaskArena, TaskStatus

logger = logging.getLogger(__name__)

_UPDATABLE = ("title", "time", "status", "completion_type", "order", "section_id", "started_at")

# Stored recurrences that fail to decode keep this type, so evaluation skips them.
_MALFORMED_TYPE = "malformed"


class TaskStore:
    """
    SQLite task and section store.

    The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Recurrence rules are stored as their JSON wire form and decoded leniently on
    read: one malformed record is logged and never scheduled, the rest load.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "daybook.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except sqlite3.Error:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

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
                CREATE TABLE IF NOT EXISTS sections (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    sort_order REAL NOT NULL DEFAULT 0,
                    expanded INTEGER NOT NULL DEFAULT 1
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    parent_id TEXT,
                    section_id TEXT,
                    title TEXT NOT NULL DEFAULT '',
                    recurrence TEXT,
                    time TEXT,
                    status TEXT NOT NULL DEFAULT 'todo',
                    completion_type TEXT NOT NULL DEFAULT 'checkbox',
                    sort_order REAL NOT NULL DEFAULT 0,
                    started_at TEXT,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("title", "TEXT NOT NULL DEFAULT ''")
            add_col("time", "TEXT")
            add_col("completion_type", "TEXT NOT NULL DEFAULT 'checkbox'")
            add_col("started_at", "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_parent ON tasks(parent_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_section ON tasks(section_id, sort_order)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _recurrence_to_str(spec: RecurrenceSpec | None) -> str | None:
        """Validate and encode a rule for writing; InvalidRecurrence when malformed."""
        if spec is not None:
            validate_recurrence(spec)
        wire = recurrence_to_wire(spec)
        return json.dumps(wire, ensure_ascii=False) if wire is not None else None

    @staticmethod
    def _str_to_recurrence(s: str | None, task_id: str) -> RecurrenceSpec | None:
        if not s:
            return None
        try:
            data = json.loads(s)
        except json.JSONDecodeError:
            logger.warning("Task %s has unreadable recurrence JSON; never scheduled", task_id)
            return RecurrenceSpec(type=_MALFORMED_TYPE)
        try:
            return recurrence_from_wire(data, strict=False)
        except InvalidRecurrence as e:
            logger.warning("Task %s has malformed recurrence (%s); never scheduled", task_id, e)
            return RecurrenceSpec(type=_MALFORMED_TYPE)

    @staticmethod
    def _str_to_ts(raw: str | None) -> datetime | None:
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            return None

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        task_id = str(row["id"])
        return Task(
            id=task_id,
            parent_id=row["parent_id"],
            section_id=row["section_id"],
            title=str(row["title"] or ""),
            recurrence=self._str_to_recurrence(row["recurrence"], task_id),
            time=row["time"],
            status=TaskStatus.from_db(row["status"]),
            completion_type=CompletionType.from_db(row["completion_type"]),
            order=float(row["sort_order"] or 0.0),
            started_at=self._str_to_ts(row["started_at"]),
        )

    @staticmethod
    def _row_to_section(row: sqlite3.Row) -> Section:
        return Section(
            id=str(row["id"]),
            name=str(row["name"] or ""),
            order=float(row["sort_order"] or 0.0),
            expanded=bool(row["expanded"]),
        )

    # ---- sections ----

    def add_section(
        self,
        name: str,
        *,
        order: float | None = None,
        expanded: bool = True,
        section_id: str | None = None,
    ) -> Section:
        if not name or not name.strip():
            raise ValueError("name is required")
        sid = section_id or uuid.uuid4().hex

        conn = self._get_conn()
        try:
            if order is None:
                (mx,) = conn.execute("SELECT COALESCE(MAX(sort_order), -1) FROM sections").fetchone()
                order = float(mx) + 1.0
            conn.execute(
                "INSERT INTO sections(id, name, sort_order, expanded) VALUES (?, ?, ?, ?)",
                (sid, name.strip(), float(order), 1 if expanded else 0),
            )
            conn.commit()
        finally:
            conn.close()

        logger.debug("Section added id=%s name=%s", sid, name)
        return Section(id=sid, name=name.strip(), order=float(order), expanded=expanded)

    def list_sections(self) -> list[Section]:
        conn = self._get_conn()
        try:
            cur = conn.execute("SELECT * FROM sections ORDER BY sort_order ASC, id ASC")
            return [self._row_to_section(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def get_section(self, section_id: str) -> Section | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM sections WHERE id = ?", (section_id,)).fetchone()
            return self._row_to_section(row) if row else None
        finally:
            conn.close()

    def set_section_expanded(self, section_id: str, expanded: bool) -> None:
        """User-controlled flag; the engine only ever reads it."""
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "UPDATE sections SET expanded = ? WHERE id = ?",
                (1 if expanded else 0, section_id),
            )
            conn.commit()
            if cur.rowcount == 0:
                raise NotFound("section", section_id)
        finally:
            conn.close()

    # ---- tasks ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(
        self,
        *,
        section_id: str | None = None,
        title: str = "",
        recurrence: RecurrenceSpec | None = None,
        parent_id: str | None = None,
        time_of_day: str | None = None,
        status: TaskStatus = TaskStatus.TODO,
        completion_type: CompletionType = CompletionType.CHECKBOX,
        order: float | None = None,
        task_id: str | None = None,
    ) -> Task:
        """
        Insert a task and return it.

        A subtask without its own section takes its parent's; every task except a
        note must end up in a section.
        """
        if parent_id is not None and section_id is None:
            parent = self.get_task(parent_id)
            if parent is None:
                raise NotFound("task", parent_id)
            section_id = parent.section_id
        if section_id is None and completion_type != CompletionType.NOTE:
            raise ValueError("section_id is required unless the task is a note")
        recurrence_json = self._recurrence_to_str(recurrence)

        tid = task_id or uuid.uuid4().hex
        now = time.time()

        conn = self._get_conn()
        try:
            if order is None:
                (mx,) = conn.execute(
                    "SELECT COALESCE(MAX(sort_order), -1) FROM tasks WHERE section_id IS ? AND parent_id IS ?",
                    (section_id, parent_id),
                ).fetchone()
                order = float(mx) + 1.0
            conn.execute(
                """
                INSERT INTO tasks(
                    id, parent_id, section_id, title, recurrence, time,
                    status, completion_type, sort_order, started_at,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tid,
                    parent_id,
                    section_id,
                    title.strip(),
                    recurrence_json,
                    time_of_day,
                    status.value,
                    completion_type.value,
                    float(order),
                    None,
                    now,
                    now,
                ),
            )
            conn.commit()
        finally:
            conn.close()

        logger.debug(
            "Task added id=%s section=%s parent=%s recurrence=%s",
            tid,
            section_id,
            parent_id,
            recurrence.type if recurrence else None,
        )
        task = self.get_task(tid)
        if task is None:
            raise RuntimeError(f"task vanished after insert id={tid}")
        return task

    def get_task(self, task_id: str) -> Task | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def list_tasks(self, *, section_id: str | None = None) -> list[Task]:
        conn = self._get_conn()
        try:
            if section_id is None:
                cur = conn.execute("SELECT * FROM tasks ORDER BY sort_order ASC, id ASC")
            else:
                cur = conn.execute(
                    "SELECT * FROM tasks WHERE section_id = ? ORDER BY sort_order ASC, id ASC",
                    (section_id,),
                )
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def arena(self) -> TaskArena:
        return TaskArena.from_tasks(self.list_tasks())

    def update_task_fields(self, task_id: str, **fields: Any) -> Task:
        """Set the given fields (None clears nullable ones); NotFound when absent."""
        unknown = sorted(set(fields) - set(_UPDATABLE))
        if unknown:
            raise ValueError(f"unknown task fields: {', '.join(unknown)}")

        sets: list[str] = []
        params: list[Any] = []
        for name in _UPDATABLE:
            if name not in fields:
                continue
            value = fields[name]
            column = name
            if name == "status":
                value = TaskStatus(value).value
            elif name == "completion_type":
                value = CompletionType(value).value
            elif name == "order":
                column = "sort_order"
                value = float(value)
            elif name == "started_at":
                value = value.isoformat() if value is not None else None
            elif name == "title":
                value = str(value or "").strip()
            sets.append(f"{column} = ?")
            params.append(value)

        return self._update(task_id, sets, params, sorted(fields))

    def set_recurrence(self, task_id: str, recurrence: RecurrenceSpec | None) -> Task:
        return self._update(
            task_id,
            ["recurrence = ?"],
            [self._recurrence_to_str(recurrence)],
            ["recurrence"],
        )

    def _update(self, task_id: str, sets: list[str], params: list[Any], names: list[str]) -> Task:
        if sets:
            sets = [*sets, "updated_at = ?"]
            params = [*params, time.time(), task_id]
            conn = self._get_conn()
            try:
                cur = conn.execute(f"UPDATE tasks SET {', '.join(sets)} WHERE id = ?", params)
                conn.commit()
                if cur.rowcount == 0:
                    raise NotFound("task", task_id)
            finally:
                conn.close()
            logger.debug("Task updated id=%s fields=%s", task_id, names)

        task = self.get_task(task_id)
        if task is None:
            raise NotFound("task", task_id)
        return task

    def delete_task(self, task_id: str) -> bool:
        """Delete a task and its subtasks; returns False when it did not exist."""
        conn = self._get_conn()
        try:
            ids = [task_id]
            frontier = [task_id]
            while frontier:
                placeholders = ",".join("?" for _ in frontier)
                cur = conn.execute(f"SELECT id FROM tasks WHERE parent_id IN ({placeholders})", frontier)
                frontier = [str(r["id"]) for r in cur.fetchall() if str(r["id"]) not in ids]
                ids.extend(frontier)

            placeholders = ",".join("?" for _ in ids)
            cur = conn.execute(f"DELETE FROM tasks WHERE id IN ({placeholders})", ids)
            conn.commit()
            removed = cur.rowcount
        finally:
            conn.close()

        if removed:
            logger.debug("Task deleted id=%s (with %s subtasks)", task_id, removed - 1)
        return removed > 0
