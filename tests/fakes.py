# tests/fakes.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date

from taskcal.errors import PersistenceError
from taskcal.tasks.task_models import Task, TaskCategory, category_matches, sort_by_display_order
from taskcal.workdays.workday_models import WorkdayChange, WorkMode


def make_task(
    task_id: str,
    *,
    order: int | None = None,
    due: date | None = None,
    mode=None,
    frequency=None,
    user_id: str = "u1",
) -> Task:
    kwargs = {}
    if mode is not None:
        kwargs["mode"] = mode
    return Task(
        id=task_id,
        user_id=user_id,
        title=f"task {task_id}",
        frequency=frequency,
        due_date=due,
        display_order=order,
        **kwargs,
    )


class FakeTaskRepo:
    """
    In-memory TaskRepo.

    - records every batch of display orders and every due date update
    - fail_writes / fail_due_date_updates make the next calls raise PersistenceError
    """

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self.tasks: dict[str, Task] = {t.id: t for t in tasks}
        self.order_batches: list[list[tuple[str, int]]] = []
        self.due_date_updates: list[tuple[str, date]] = []
        self.list_calls = 0
        self.fail_writes = False
        self.fail_due_date_updates = 0

    async def list_tasks_for_user(self, user_id: str) -> list[Task]:
        self.list_calls += 1
        return [t for t in self.tasks.values() if t.user_id == user_id]

    async def list_category_tasks_ordered(self, user_id: str, category: TaskCategory) -> list[Task]:
        self.list_calls += 1
        tasks = [t for t in self.tasks.values() if t.user_id == user_id and category_matches(t, category)]
        return sort_by_display_order(tasks)

    async def write_display_orders(self, user_id: str, orders: Iterable[tuple[str, int]]) -> None:
        if self.fail_writes:
            raise PersistenceError("write_display_orders failed")
        rows = list(orders)
        self.order_batches.append(rows)
        for task_id, order in rows:
            self.tasks[task_id] = replace(self.tasks[task_id], display_order=order)

    async def update_task_due_date(self, user_id: str, task_id: str, new_date: date) -> None:
        if self.fail_due_date_updates > 0:
            self.fail_due_date_updates -= 1
            raise PersistenceError("update_task_due_date failed")
        self.due_date_updates.append((task_id, new_date))
        self.tasks[task_id] = replace(self.tasks[task_id], due_date=new_date)


class RowOnlyTaskRepo:
    """TaskRepo variant without batched writes (per-row fallback path)."""

    def __init__(self, tasks: Iterable[Task] = (), failing_ids: Iterable[str] = ()) -> None:
        self.tasks = list(tasks)
        self.failing_ids = set(failing_ids)
        self.written: dict[str, int] = {}

    async def list_category_tasks_ordered(self, user_id: str, category: TaskCategory) -> list[Task]:
        return sort_by_display_order([t for t in self.tasks if category_matches(t, category)])

    async def write_display_order(self, user_id: str, task_id: str, display_order: int) -> None:
        if task_id in self.failing_ids:
            raise PersistenceError(f"write failed for {task_id}")
        self.written[task_id] = display_order


@dataclass(slots=True)
class FakeWorkdayRepo:
    """
    In-memory WorkdayRepo.

    Days without an explicit mode get `default`. fail_batches / fail_single
    make that many upcoming calls raise PersistenceError.
    """

    modes: dict[date, WorkMode] = field(default_factory=dict)
    default: WorkMode = WorkMode.ON_SITE

    queried: list[date] = field(default_factory=list)
    single_writes: list[tuple[date, WorkMode]] = field(default_factory=list)
    batches: list[list[WorkdayChange]] = field(default_factory=list)

    fail_batches: int = 0
    fail_single: int = 0
    fail_reads: bool = False

    async def get_work_mode(self, user_id: str, day: date) -> WorkMode:
        if self.fail_reads:
            raise PersistenceError("get_work_mode failed")
        self.queried.append(day)
        return self.modes.get(day, self.default)

    async def set_work_mode(self, user_id: str, day: date, mode: WorkMode) -> None:
        if self.fail_single > 0:
            self.fail_single -= 1
            raise PersistenceError("set_work_mode failed")
        self.single_writes.append((day, mode))
        self.modes[day] = mode

    async def set_work_modes_batch(self, user_id: str, changes: Iterable[WorkdayChange]) -> None:
        if self.fail_batches > 0:
            self.fail_batches -= 1
            raise PersistenceError("set_work_modes_batch failed")
        rows = list(changes)
        self.batches.append(rows)
        for c in rows:
            self.modes[c.date] = c.new_mode


class StaticHolidays:
    """HolidaySource returning a fixed set of dates."""

    def __init__(self, days: Iterable[date] = ()) -> None:
        self.days = frozenset(days)
        self.years: list[int] = []

    async def holidays_for_year(self, year: int) -> frozenset[date]:
        self.years.append(year)
        return frozenset(d for d in self.days if d.year == year)
