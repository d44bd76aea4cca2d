# src/taskcal/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterable, Iterator
from datetime import date
from pathlib import Path

from ..errors import PersistenceError, ValidationError
from .task_models import Frequency, Task, TaskCategory, TaskMode, task_category

logger = logging.getLogger(__name__)

# SQL form of task_category(); keep both in sync.
_CATEGORY_SQL: dict[TaskCategory, str] = {
    TaskCategory.PERIODIC: "frequency IS NOT NULL",
    TaskCategory.SPECIFIC: "frequency IS NULL AND due_date IS NOT NULL",
    TaskCategory.OPEN_ENDED: "frequency IS NULL AND due_date IS NULL",
}


class TaskStore:
    """
    SQLite task store (implements the TaskRepo port).

    - create table if missing, add missing columns with ALTER TABLE
    - each method opens its own SQLite connection
    - every query is scoped by user_id
    - sqlite3 errors surface as PersistenceError

    The public API is async to match the port; the SQLite calls themselves are
    short and run inline.
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("TaskStore ready db=%s total=%s", self._db_path, self._count_tasks())

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

    @contextlib.contextmanager
    def _conn(self, op: str) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._get_conn()
        except sqlite3.Error as exc:
            raise PersistenceError(f"{op}: cannot open task database") from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            conn.rollback()
            logger.exception("TaskStore %s failed", op)
            raise PersistenceError(f"{op} failed: {exc}") from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._conn("ensure_schema") as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    frequency TEXT,
                    due_date TEXT,
                    mode TEXT NOT NULL DEFAULT 'any',
                    display_order INTEGER,
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

            add_col("description", "TEXT NOT NULL DEFAULT ''")
            add_col("mode", "TEXT NOT NULL DEFAULT 'any'")
            add_col("display_order", "INTEGER")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user_due ON tasks(user_id, due_date)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user_order ON tasks(user_id, display_order)")
            conn.commit()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        due_raw = row["due_date"]
        return Task(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            title=str(row["title"] or ""),
            description=str(row["description"] or ""),
            frequency=Frequency.from_db(row["frequency"]),
            due_date=date.fromisoformat(due_raw) if due_raw else None,
            mode=TaskMode.from_db(row["mode"]),
            display_order=int(row["display_order"]) if row["display_order"] is not None else None,
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    def _count_tasks(self) -> int:
        with self._conn("count_tasks") as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)

    @staticmethod
    def _next_display_order(
        conn: sqlite3.Connection,
        user_id: str,
        category: TaskCategory,
        exclude_task_id: str | None = None,
    ) -> int:
        sql = (
            f"SELECT MAX(display_order) FROM tasks WHERE user_id = ? AND {_CATEGORY_SQL[category]}"
        )
        params: list[object] = [user_id]
        if exclude_task_id is not None:
            sql += " AND id != ?"
            params.append(exclude_task_id)
        (current,) = conn.execute(sql, params).fetchone()
        return int(current or 0) + 1

    # ---- public API ----

    async def count_tasks(self) -> int:
        return self._count_tasks()

    async def add_task(
        self,
        *,
        user_id: str,
        title: str,
        description: str = "",
        frequency: Frequency | None = None,
        due_date: date | None = None,
        mode: TaskMode = TaskMode.ANY,
    ) -> Task:
        """Insert a task at the end of its category."""
        if not user_id:
            raise ValidationError("user_id is required")
        if not title or not title.strip():
            raise ValidationError("title is required")

        now = time.time()
        task_id = uuid.uuid4().hex
        category = task_category(frequency, due_date)

        with self._conn("add_task") as conn:
            display_order = self._next_display_order(conn, user_id, category)
            conn.execute(
                """
                INSERT INTO tasks(
                    id, user_id, title, description, frequency, due_date,
                    mode, display_order, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task_id,
                    user_id,
                    title.strip(),
                    description,
                    frequency.value if frequency else None,
                    due_date.isoformat() if due_date else None,
                    mode.value,
                    display_order,
                    now,
                    now,
                ),
            )
            conn.commit()

        logger.debug(
            "Task added id=%s user=%s category=%s order=%s",
            task_id,
            user_id,
            category.value,
            display_order,
        )
        return Task(
            id=task_id,
            user_id=user_id,
            title=title.strip(),
            description=description,
            frequency=frequency,
            due_date=due_date,
            mode=mode,
            display_order=display_order,
            created_at=now,
            updated_at=now,
        )

    async def get_task(self, user_id: str, task_id: str) -> Task | None:
        with self._conn("get_task") as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?",
                (task_id, user_id),
            ).fetchone()
            return self._row_to_task(row) if row else None

    async def list_tasks_for_user(self, user_id: str) -> list[Task]:
        with self._conn("list_tasks_for_user") as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE user_id = ? ORDER BY updated_at DESC",
                (user_id,),
            ).fetchall()
            return [self._row_to_task(r) for r in rows]

    async def list_category_tasks_ordered(self, user_id: str, category: TaskCategory) -> list[Task]:
        """Tasks of one category, display_order ascending with NULLs last."""
        with self._conn("list_category_tasks_ordered") as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM tasks
                WHERE user_id = ?
                  AND {_CATEGORY_SQL[category]}
                ORDER BY display_order IS NULL, display_order ASC, created_at ASC
                """,
                (user_id,),
            ).fetchall()
            return [self._row_to_task(r) for r in rows]

    async def write_display_orders(self, user_id: str, orders: Iterable[tuple[str, int]]) -> None:
        """All (task_id, display_order) pairs in one transaction: all or nothing."""
        rows = list(orders)
        if not rows:
            return
        now = time.time()
        with self._conn("write_display_orders") as conn:
            conn.executemany(
                "UPDATE tasks SET display_order = ?, updated_at = ? WHERE id = ? AND user_id = ?",
                [(int(order), now, task_id, user_id) for task_id, order in rows],
            )
            conn.commit()
        logger.debug("display_order written user=%s rows=%d", user_id, len(rows))

    async def update_task_due_date(self, user_id: str, task_id: str, new_date: date) -> None:
        """
        Move a task to another date.

        If that changes the task's category (an open-ended task getting a date)
        it is appended at the end of the new category.
        """
        with self._conn("update_task_due_date") as conn:
            row = conn.execute(
                "SELECT frequency, due_date FROM tasks WHERE id = ? AND user_id = ?",
                (task_id, user_id),
            ).fetchone()
            if row is None:
                raise ValidationError(f"task not found or not owned by caller: {task_id}")

            frequency = Frequency.from_db(row["frequency"])
            old_due = date.fromisoformat(row["due_date"]) if row["due_date"] else None
            old_category = task_category(frequency, old_due)
            new_category = task_category(frequency, new_date)

            fields = ["due_date = ?", "updated_at = ?"]
            params: list[object] = [new_date.isoformat(), time.time()]
            if new_category != old_category:
                fields.append("display_order = ?")
                params.append(self._next_display_order(conn, user_id, new_category, exclude_task_id=task_id))

            params.extend([task_id, user_id])
            conn.execute(f"UPDATE tasks SET {', '.join(fields)} WHERE id = ? AND user_id = ?", params)
            conn.commit()

        logger.debug("Task due date updated id=%s user=%s due=%s", task_id, user_id, new_date)

    async def update_task_mode(self, user_id: str, task_id: str, mode: TaskMode) -> None:
        with self._conn("update_task_mode") as conn:
            cur = conn.execute(
                "UPDATE tasks SET mode = ?, updated_at = ? WHERE id = ? AND user_id = ?",
                (mode.value, time.time(), task_id, user_id),
            )
            conn.commit()
            if cur.rowcount != 1:
                raise ValidationError(f"task not found or not owned by caller: {task_id}")
