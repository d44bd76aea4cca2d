# src/taskcal/workdays/workday_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from collections.abc import Collection, Iterable, Iterator
from datetime import date, timedelta
from pathlib import Path

from ..core.ports import HolidaySource
from ..errors import PersistenceError
from .workday_defaults import DEFAULT_REMOTE_WEEKDAYS, NoHolidays, default_work_mode
from .workday_models import WorkdayChange, WorkMode

logger = logging.getLogger(__name__)


class WorkdayStore:
    """
    SQLite workday store (implements the WorkdayRepo port).

    One row per (user_id, work_date). Days without a row get the computed
    default (weekends, public holidays, remote weekdays).
    """

    def __init__(
        self,
        db_path: str | Path = "workdays.sqlite3",
        *,
        holidays: HolidaySource | None = None,
        remote_weekdays: Collection[int] = DEFAULT_REMOTE_WEEKDAYS,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._holidays: HolidaySource = holidays or NoHolidays()
        self._remote_weekdays = tuple(remote_weekdays)
        self._ensure_schema()
        logger.info("WorkdayStore ready db=%s", self._db_path)

    def close(self) -> None:
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
            raise PersistenceError(f"{op}: cannot open workday database") from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            conn.rollback()
            logger.exception("WorkdayStore %s failed", op)
            raise PersistenceError(f"{op} failed: {exc}") from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._conn("ensure_schema") as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS workdays (
                    user_id TEXT NOT NULL,
                    work_date TEXT NOT NULL,
                    work_mode TEXT NOT NULL,
                    updated_at REAL NOT NULL,
                    PRIMARY KEY (user_id, work_date)
                )
                """
            )
            conn.commit()

    @staticmethod
    def _upsert(conn: sqlite3.Connection, user_id: str, rows: list[tuple[date, WorkMode]]) -> None:
        now = time.time()
        conn.executemany(
            """
            INSERT INTO workdays(user_id, work_date, work_mode, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id, work_date)
            DO UPDATE SET work_mode = excluded.work_mode, updated_at = excluded.updated_at
            """,
            [(user_id, day.isoformat(), mode.value, now) for day, mode in rows],
        )

    async def default_mode(self, day: date) -> WorkMode:
        holidays = await self._holidays.holidays_for_year(day.year)
        return default_work_mode(day, holidays, self._remote_weekdays)

    # ---- public API ----

    async def get_explicit_mode(self, user_id: str, day: date) -> WorkMode | None:
        with self._conn("get_explicit_mode") as conn:
            row = conn.execute(
                "SELECT work_mode FROM workdays WHERE user_id = ? AND work_date = ?",
                (user_id, day.isoformat()),
            ).fetchone()
        return WorkMode.from_db(row["work_mode"]) if row else None

    async def get_work_mode(self, user_id: str, day: date) -> WorkMode:
        explicit = await self.get_explicit_mode(user_id, day)
        if explicit is not None:
            return explicit
        return await self.default_mode(day)

    async def get_work_modes_in_range(self, user_id: str, start: date, end: date) -> dict[date, WorkMode]:
        """Effective mode of every day in [start, end] (explicit rows win over defaults)."""
        with self._conn("get_work_modes_in_range") as conn:
            rows = conn.execute(
                """
                SELECT work_date, work_mode
                FROM workdays
                WHERE user_id = ?
                  AND work_date BETWEEN ? AND ?
                """,
                (user_id, start.isoformat(), end.isoformat()),
            ).fetchall()

        explicit: dict[date, WorkMode] = {}
        for r in rows:
            mode = WorkMode.from_db(r["work_mode"])
            if mode is not None:
                explicit[date.fromisoformat(r["work_date"])] = mode

        out: dict[date, WorkMode] = {}
        day = start
        while day <= end:
            out[day] = explicit[day] if day in explicit else await self.default_mode(day)
            day += timedelta(days=1)
        return out

    async def set_work_mode(self, user_id: str, day: date, mode: WorkMode) -> None:
        with self._conn("set_work_mode") as conn:
            self._upsert(conn, user_id, [(day, mode)])
            conn.commit()
        logger.debug("Workday set user=%s date=%s mode=%s", user_id, day, mode.value)

    async def set_work_modes_batch(self, user_id: str, changes: Iterable[WorkdayChange]) -> None:
        rows = [(c.date, c.new_mode) for c in changes]
        if not rows:
            return
        with self._conn("set_work_modes_batch") as conn:
            self._upsert(conn, user_id, rows)
            conn.commit()
        logger.debug("Workdays set user=%s rows=%d", user_id, len(rows))
