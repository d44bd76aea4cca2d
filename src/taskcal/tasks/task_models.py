# src/taskcal/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import StrEnum

from ..errors import ValidationError


class TaskMode(StrEnum):
    """Which work modes a task can be done in. ANY is unconstrained."""

    ANY = "any"
    ON_SITE = "on_site"
    REMOTE = "remote"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskMode:
        if not raw:
            return cls.ANY
        try:
            return cls(raw)
        except ValueError:
            return cls.ANY

    @classmethod
    def parse(cls, raw: str) -> TaskMode:
        """Strict parsing for user input (CLI, request handlers)."""
        key = (raw or "").strip().lower().replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"unknown task mode: {raw!r}") from None


class Frequency(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ANNUALLY = "annually"
    CUSTOM = "custom"

    @classmethod
    def from_db(cls, raw: str | None) -> Frequency | None:
        if not raw:
            return None
        try:
            return cls(raw)
        except ValueError:
            return None


class TaskCategory(StrEnum):
    """
    Derived, never stored. See task_category() for the precedence rule.

    display_order is only meaningful (and unique) within one category.
    """

    PERIODIC = "periodic"
    SPECIFIC = "specific"
    OPEN_ENDED = "open_ended"

    @classmethod
    def parse(cls, raw: str) -> TaskCategory:
        key = (raw or "").strip().lower().replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"unknown task category: {raw!r}") from None


def task_category(frequency: Frequency | None, due_date: date | None) -> TaskCategory:
    """
    Classify a task by which optional fields are set.

    Precedence is fixed:
      frequency present -> PERIODIC
      else due date     -> SPECIFIC
      else              -> OPEN_ENDED
    """
    if frequency is not None:
        return TaskCategory.PERIODIC
    if due_date is not None:
        return TaskCategory.SPECIFIC
    return TaskCategory.OPEN_ENDED


@dataclass(slots=True)
class Task:
    id: str
    user_id: str
    title: str

    frequency: Frequency | None = None
    due_date: date | None = None
    mode: TaskMode = TaskMode.ANY
    display_order: int | None = None

    description: str = ""
    created_at: float = 0.0
    updated_at: float = 0.0

    @property
    def category(self) -> TaskCategory:
        return task_category(self.frequency, self.due_date)


def category_matches(task: Task, category: TaskCategory) -> bool:
    """Filter predicate: whether the task currently falls in category."""
    return task.category == category


def sort_by_display_order(tasks: list[Task]) -> list[Task]:
    """Ascending display_order, tasks without one last (stable)."""
    return sorted(
        tasks,
        key=lambda t: (t.display_order is None, t.display_order if t.display_order is not None else 0),
    )
