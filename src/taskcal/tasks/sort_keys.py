# src/taskcal/tasks/sort_keys.py

"""
Sort keys for merging a partial reorder back into a full category.

Positions are 0-based indexes: "old" positions index the category as it was
stored, "new" positions index the reordered subset as the user submitted it.
Keys are transient floats; only the integer order derived from them is stored.
"""

from __future__ import annotations

from bisect import bisect_left, insort
from collections.abc import Iterable, Mapping


def reordered_key(new_position: int) -> float:
    """A moved task sorts purely by its new position in the submitted subset."""
    return float(new_position)


def untouched_key(
    old_position: int,
    preceding_moved_new_max: int | None,
    total_task_count: int,
) -> float:
    """
    Key for a task the user did not move.

    The bucket base sits right after the highest-placed moved task that now
    precedes this task (or at -1 when none does). The fractional part
    old_position / (total + 1) is < 1, so untouched tasks sharing a bucket keep
    their old relative order and never spill into the next bucket.
    """
    base = -1 if preceding_moved_new_max is None else preceding_moved_new_max + 1
    return base + old_position / (total_task_count + 1)


def moved_precedes(moved_old: int, moved_new: int, untouched_old: int) -> bool:
    """
    Whether a moved task now comes before an untouched task at untouched_old.

    True if it was already before it, or if it was after it but jumped back
    past its position.
    """
    if moved_old < untouched_old:
        return True
    return moved_old > untouched_old and moved_new < untouched_old


def preceding_moved_new_max(
    untouched_old: int,
    moved: Iterable[tuple[int, int]],
) -> int | None:
    """Reference form of the "precedes" rule over (old, new) pairs of moved tasks."""
    best: int | None = None
    for old, new in moved:
        if moved_precedes(old, new, untouched_old) and (best is None or new > best):
            best = new
    return best


def preceding_moved_new_max_all(
    untouched_positions: Iterable[int],
    moved: Mapping[int, int],
) -> dict[int, int | None]:
    """
    preceding_moved_new_max() for every untouched position at once.

    moved maps old position -> new position. Two sweeps over old positions:
    - ascending: running max of new positions among moved tasks with old < p
    - descending: sorted new positions of moved tasks with old > p, queried for
      the largest one < p
    """
    positions = sorted(set(untouched_positions))
    moved_by_old = sorted(moved.items())

    before: dict[int, int | None] = {}
    running: int | None = None
    i = 0
    for p in positions:
        while i < len(moved_by_old) and moved_by_old[i][0] < p:
            new = moved_by_old[i][1]
            running = new if running is None else max(running, new)
            i += 1
        before[p] = running

    jumped: dict[int, int | None] = {}
    later_news: list[int] = []
    j = len(moved_by_old) - 1
    for p in reversed(positions):
        while j >= 0 and moved_by_old[j][0] > p:
            insort(later_news, moved_by_old[j][1])
            j -= 1
        k = bisect_left(later_news, p)
        jumped[p] = later_news[k - 1] if k > 0 else None

    out: dict[int, int | None] = {}
    for p in positions:
        candidates = [v for v in (before[p], jumped[p]) if v is not None]
        out[p] = max(candidates) if candidates else None
    return out
