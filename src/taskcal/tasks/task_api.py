# src/taskcal/tasks/task_api.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum

from ..core.ports import WorkdayRepo
from ..errors import ValidationError
from ..workdays.conflicts import check_task_conflict
from ..workdays.workday_models import ModeConflict
from .task_models import Frequency, Task, TaskMode
from .task_store import TaskStore

logger = logging.getLogger(__name__)


class TaskActionKind(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"


@dataclass(slots=True, frozen=True)
class TaskActionResult:
    kind: TaskActionKind
    task: Task | None = None
    conflict: ModeConflict | None = None


async def _conflict_for(
    workdays: WorkdayRepo,
    user_id: str,
    *,
    mode: TaskMode,
    due_date: date | None,
    task_id: str | None = None,
    title: str = "",
) -> ModeConflict | None:
    if due_date is None:
        return None
    work_mode = await workdays.get_work_mode(user_id, due_date)
    return check_task_conflict(mode, due_date, work_mode, task_id=task_id, task_title=title)


async def create_task(
    tasks: TaskStore,
    workdays: WorkdayRepo,
    *,
    user_id: str,
    title: str,
    description: str = "",
    frequency: Frequency | None = None,
    due_date: date | None = None,
    mode: TaskMode = TaskMode.ANY,
    ignore_conflict: bool = False,
) -> TaskActionResult:
    """
    Create a task unless its due date's work mode does not suit it.

    With ignore_conflict the task is created anyway. Periodic tasks are not
    checked (their due date, if any, is not what schedules them).
    """
    if not ignore_conflict and frequency is None:
        conflict = await _conflict_for(workdays, user_id, mode=mode, due_date=due_date, title=title)
        if conflict is not None:
            logger.info("Task creation blocked by mode conflict user=%s date=%s", user_id, due_date)
            return TaskActionResult(TaskActionKind.CONFLICT, conflict=conflict)

    task = await tasks.add_task(
        user_id=user_id,
        title=title,
        description=description,
        frequency=frequency,
        due_date=due_date,
        mode=mode,
    )
    return TaskActionResult(TaskActionKind.OK, task=task)


async def update_task_schedule(
    tasks: TaskStore,
    workdays: WorkdayRepo,
    *,
    user_id: str,
    task_id: str,
    due_date: date | None = None,
    mode: TaskMode | None = None,
    ignore_conflict: bool = False,
) -> TaskActionResult:
    """Change a task's due date and/or mode, checking the resulting combination."""
    current = await tasks.get_task(user_id, task_id)
    if current is None:
        raise ValidationError(f"task not found or not owned by caller: {task_id}")
    if due_date is None and mode is None:
        return TaskActionResult(TaskActionKind.OK, task=current)

    new_due = due_date if due_date is not None else current.due_date
    new_mode = mode if mode is not None else current.mode

    if not ignore_conflict and current.frequency is None:
        conflict = await _conflict_for(
            workdays,
            user_id,
            mode=new_mode,
            due_date=new_due,
            task_id=task_id,
            title=current.title,
        )
        if conflict is not None:
            return TaskActionResult(TaskActionKind.CONFLICT, conflict=conflict)

    if due_date is not None:
        await tasks.update_task_due_date(user_id, task_id, due_date)
    if mode is not None:
        await tasks.update_task_mode(user_id, task_id, mode)

    return TaskActionResult(TaskActionKind.OK, task=await tasks.get_task(user_id, task_id))
