# src/taskcal/workdays/date_proposer.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import date, timedelta

from .conflicts import is_mode_compatible
from .workday_models import ModeConflict, WorkMode

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOOKAHEAD = 10

WorkModeLookup = Callable[[date], Awaitable[WorkMode]]


async def propose_date(
    conflict: ModeConflict,
    work_mode_at: WorkModeLookup,
    max_lookahead: int = DEFAULT_MAX_LOOKAHEAD,
) -> date | None:
    """
    First date after conflict.date whose work mode suits the conflicting task.

    Days are checked one by one, starting the day after the conflict, and each
    day is looked up exactly once. At most max_lookahead days are queried;
    None means nothing matched in that window (not an error).
    Lookup errors propagate.
    """
    candidate = conflict.date
    for _ in range(max(0, int(max_lookahead))):
        candidate = candidate + timedelta(days=1)
        mode = await work_mode_at(candidate)
        if is_mode_compatible(conflict.task_mode, mode):
            logger.debug(
                "Proposed %s for task_id=%s (mode=%s) instead of %s",
                candidate,
                conflict.task_id,
                conflict.task_mode.value,
                conflict.date,
            )
            return candidate

    logger.info(
        "No compatible date within %d days after %s for mode=%s",
        max_lookahead,
        conflict.date,
        conflict.task_mode.value,
    )
    return None
