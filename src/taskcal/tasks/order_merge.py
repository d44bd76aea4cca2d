# src/taskcal/tasks/order_merge.py

from __future__ import annotations

"""
Partial-reorder merge.

The user drags a subset of one category's tasks into a new relative order.
merge_order() recomputes a dense 1..N display_order for the whole category so
that:
- the moved subset appears exactly in the submitted order,
- every pair of untouched tasks keeps its previous relative order,
- untouched tasks stay behind the moved tasks that now precede them.

OrderMerger wires the pure merge to a TaskRepo (read category, write orders).
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from ..core.ports import RowOrderWriter, TaskRepo
from ..errors import PersistenceError, ValidationError
from .sort_keys import preceding_moved_new_max_all, reordered_key, untouched_key
from .task_models import Task, TaskCategory

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class OrderAssignment:
    id: str
    new_display_order: int


def _validate_reorder(tasks: Sequence[Task], reordered_ids: Sequence[str]) -> None:
    known = {t.id for t in tasks}
    missing = [tid for tid in reordered_ids if tid not in known]
    if missing:
        raise ValidationError(
            f"task not found or not owned by caller: {', '.join(missing)}"
        )
    if len(set(reordered_ids)) != len(reordered_ids):
        raise ValidationError("reordered ids contain duplicates")


def merge_order(
    category_tasks: Sequence[Task],
    reordered_ids: Sequence[str],
) -> list[OrderAssignment]:
    """
    Compute the new display order of a whole category.

    category_tasks must be in current order (display_order ascending, nulls
    last). reordered_ids is the moved subset in its new relative order. With an
    empty subset the result is a plain renumbering of the current order.

    Raises ValidationError before computing anything if an id is unknown.
    """
    _validate_reorder(category_tasks, reordered_ids)

    total = len(category_tasks)
    old_position = {t.id: i for i, t in enumerate(category_tasks)}
    new_position = {tid: i for i, tid in enumerate(reordered_ids)}

    moved = {old_position[tid]: new for tid, new in new_position.items()}
    untouched = [old_position[t.id] for t in category_tasks if t.id not in new_position]
    bucket = preceding_moved_new_max_all(untouched, moved)

    keyed: list[tuple[float, int, str]] = []
    for t in category_tasks:
        old = old_position[t.id]
        if t.id in new_position:
            key = reordered_key(new_position[t.id])
        else:
            key = untouched_key(old, bucket[old], total)
        keyed.append((key, old, t.id))

    keyed.sort()
    return [OrderAssignment(id=tid, new_display_order=i) for i, (_, _, tid) in enumerate(keyed, start=1)]


class OrderMerger:
    """Apply a user's partial reorder to the stored order of one category."""

    def __init__(self, task_repo: TaskRepo | RowOrderWriter) -> None:
        self._repo = task_repo

    async def reorder(
        self,
        user_id: str,
        category: TaskCategory,
        reordered_ids: Sequence[str],
    ) -> list[OrderAssignment]:
        """
        Read the category, merge, persist every task's new display_order.

        An empty reordered_ids is a no-op (nothing read, nothing written).
        Storage errors propagate unchanged; rows already written stay written.
        """
        if not reordered_ids:
            return []

        tasks = await self._repo.list_category_tasks_ordered(user_id, category)
        assignments = merge_order(tasks, reordered_ids)
        logger.debug(
            "Merged reorder user=%s category=%s moved=%d total=%d",
            user_id,
            category.value,
            len(reordered_ids),
            len(tasks),
        )

        await self._persist(user_id, assignments)
        logger.info(
            "Display order updated user=%s category=%s tasks=%d",
            user_id,
            category.value,
            len(assignments),
        )
        return assignments

    async def _persist(self, user_id: str, assignments: list[OrderAssignment]) -> None:
        batch = getattr(self._repo, "write_display_orders", None)
        if callable(batch):
            await batch(user_id, [(a.id, a.new_display_order) for a in assignments])
            return

        # Per-row fallback: best-effort, no rollback of rows already written.
        write_row = getattr(self._repo, "write_display_order", None)
        if not callable(write_row):
            raise PersistenceError("task repository cannot write display orders")

        failed: list[str] = []
        for a in assignments:
            try:
                await write_row(user_id, a.id, a.new_display_order)
            except PersistenceError:
                logger.warning("display_order write failed user=%s task_id=%s", user_id, a.id)
                failed.append(a.id)

        if failed:
            raise PersistenceError(
                f"failed to write display order for {len(failed)} of {len(assignments)} tasks",
                failed_ids=failed,
            )
