# src/taskcal/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The ordering and work-mode logic depends on these Protocols instead of the
SQLite stores, so storage stays swappable and the logic is testable with
in-memory fakes. Every storage call is awaitable; a failing call raises
PersistenceError.
"""

from collections.abc import Awaitable, Iterable
from datetime import date
from typing import Protocol

from ..tasks.task_models import Task, TaskCategory
from ..workdays.workday_models import WorkdayChange, WorkMode


class TaskRepo(Protocol):
    def list_tasks_for_user(self, user_id: str) -> Awaitable[list[Task]]: ...

    def list_category_tasks_ordered(
            self,
            user_id: str,
            category: TaskCategory,
    ) -> Awaitable[list[Task]]:
        """Tasks of one category, ascending by display_order, nulls last."""
        ...

    def write_display_orders(
            self,
            user_id: str,
            orders: Iterable[tuple[str, int]],
    ) -> Awaitable[None]:
        """Batched (transactional where possible) (task_id, display_order) writes."""
        ...

    def update_task_due_date(
            self,
            user_id: str,
            task_id: str,
            new_date: date,
    ) -> Awaitable[None]: ...


class RowOrderWriter(Protocol):
    """Fallback for stores that can only write one display order at a time."""

    def write_display_order(
            self,
            user_id: str,
            task_id: str,
            display_order: int,
    ) -> Awaitable[None]: ...


class WorkdayRepo(Protocol):
    def get_work_mode(self, user_id: str, day: date) -> Awaitable[WorkMode]:
        """Explicit mode for the day, or the computed default if none is stored."""
        ...

    def set_work_mode(self, user_id: str, day: date, mode: WorkMode) -> Awaitable[None]: ...

    def set_work_modes_batch(
            self,
            user_id: str,
            changes: Iterable[WorkdayChange],
    ) -> Awaitable[None]: ...


class HolidaySource(Protocol):
    def holidays_for_year(self, year: int) -> Awaitable[frozenset[date]]: ...
