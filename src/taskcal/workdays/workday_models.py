# src/taskcal/workdays/workday_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import StrEnum

from ..errors import ValidationError
from ..tasks.task_models import TaskMode


class WorkMode(StrEnum):
    """Per-day work mode. There is no ANY: a day is always one of these."""

    ON_SITE = "on_site"
    REMOTE = "remote"
    OFF = "off"

    @classmethod
    def from_db(cls, raw: str | None) -> WorkMode | None:
        if not raw:
            return None
        try:
            return cls(raw)
        except ValueError:
            return None

    @classmethod
    def parse(cls, raw: str) -> WorkMode:
        key = (raw or "").strip().lower().replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"unknown work mode: {raw!r}") from None


def workday_mode_for_task(task_mode: TaskMode) -> WorkMode:
    """Work mode that satisfies a task. ANY maps to ON_SITE by convention."""
    if task_mode == TaskMode.REMOTE:
        return WorkMode.REMOTE
    return WorkMode.ON_SITE


@dataclass(slots=True, frozen=True)
class WorkdayChange:
    """A requested (not yet persisted) work mode for one date."""

    date: date
    new_mode: WorkMode


@dataclass(slots=True, frozen=True)
class ModeConflict:
    """
    A task whose mode is incompatible with a proposed work mode on its due date.

    Transient: produced by one detection pass, consumed by one resolution flow.
    work_mode is the proposed (not the persisted) mode of the day.
    """

    date: date
    task_mode: TaskMode
    work_mode: WorkMode
    task_id: str | None = None
    task_title: str = ""
