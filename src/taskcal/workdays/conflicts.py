# src/taskcal/workdays/conflicts.py

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date

from ..tasks.task_models import Task, TaskMode
from .workday_models import ModeConflict, WorkdayChange, WorkMode

logger = logging.getLogger(__name__)


def is_mode_compatible(task_mode: TaskMode, work_mode: WorkMode) -> bool:
    """
    OFF is incompatible with every task, ANY included.
    Otherwise ANY fits any work mode and a constrained task needs an exact match.
    """
    if work_mode == WorkMode.OFF:
        return False
    if task_mode == TaskMode.ANY:
        return True
    return task_mode.value == work_mode.value


def check_task_conflict(
    task_mode: TaskMode | None,
    due_date: date | None,
    work_mode: WorkMode,
    *,
    task_id: str | None = None,
    task_title: str = "",
) -> ModeConflict | None:
    """Conflict check for one task against the (existing) mode of its due date."""
    if due_date is None:
        return None
    mode = task_mode or TaskMode.ANY
    if is_mode_compatible(mode, work_mode):
        return None
    return ModeConflict(
        date=due_date,
        task_mode=mode,
        work_mode=work_mode,
        task_id=task_id,
        task_title=task_title,
    )


def detect_conflicts(
    proposed_changes: Sequence[WorkdayChange],
    tasks_for_user: Iterable[Task],
) -> dict[date, list[ModeConflict]]:
    """
    Tasks that a batch of work mode changes would put in conflict, per date.

    Tasks are grouped by due date in a single pass, so a whole month of
    changes costs one scan of the task list. Only dates with at least one
    conflict are returned, in the order the changes were given. If the same
    date is proposed twice the last change wins.
    """
    if not proposed_changes:
        return {}

    new_mode_by_date: dict[date, WorkMode] = {}
    for change in proposed_changes:
        new_mode_by_date[change.date] = change.new_mode

    tasks_by_date: dict[date, list[Task]] = defaultdict(list)
    for task in tasks_for_user:
        if task.due_date is not None and task.due_date in new_mode_by_date:
            tasks_by_date[task.due_date].append(task)

    out: dict[date, list[ModeConflict]] = {}
    for day, new_mode in new_mode_by_date.items():
        found: list[ModeConflict] = []
        for task in tasks_by_date.get(day, []):
            conflict = check_task_conflict(
                task.mode, day, new_mode, task_id=task.id, task_title=task.title
            )
            if conflict is not None:
                found.append(conflict)
        if found:
            out[day] = found

    if out:
        logger.info(
            "Mode conflicts detected: %d conflicts on %d of %d dates",
            sum(len(v) for v in out.values()),
            len(out),
            len(new_mode_by_date),
        )
    return out
