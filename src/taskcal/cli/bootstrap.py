# src/taskcal/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the SQLite stores, the holiday source and the planners into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import HolidaySource
from ..core.state import AppState
from ..tasks.order_merge import OrderMerger
from ..tasks.task_store import TaskStore
from ..workdays.resolution import ConflictResolutionCoordinator
from ..workdays.workday_defaults import HolidayCalendar, NoHolidays
from ..workdays.workday_store import WorkdayStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.workdays_db_path.parent.mkdir(parents=True, exist_ok=True)


def _holiday_source(settings) -> HolidaySource:
    if not getattr(settings, "holidays_enabled", False):
        return NoHolidays()
    return HolidayCalendar(
        settings.holidays_url,
        timeout_seconds=float(getattr(settings, "holidays_timeout_seconds", 5.0)),
    )


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    task_store = TaskStore(settings.tasks_db_path)
    workday_store = WorkdayStore(
        settings.workdays_db_path,
        holidays=_holiday_source(settings),
        remote_weekdays=settings.remote_weekdays,
    )

    user_id = str(getattr(settings, "user_id", "local"))
    state = AppState(
        settings=settings,
        user_id=user_id,
        task_store=task_store,
        workday_store=workday_store,
        order_merger=OrderMerger(task_store),
        coordinator=ConflictResolutionCoordinator(
            user_id=user_id,
            task_repo=task_store,
            workday_repo=workday_store,
            max_lookahead=int(getattr(settings, "propose_lookahead_days", 10)),
        ),
    )
    logger.info("State ready user=%s", user_id)
    return state
