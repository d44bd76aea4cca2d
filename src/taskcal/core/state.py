# src/taskcal/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..tasks.order_merge import OrderMerger
from ..tasks.task_store import TaskStore
from ..workdays.resolution import ConflictResolutionCoordinator, ResolutionSession
from ..workdays.workday_store import WorkdayStore


@dataclass
class AppState:
    # Settings (or a SimpleNamespace in tests).
    settings: object

    user_id: str
    task_store: TaskStore
    workday_store: WorkdayStore
    order_merger: OrderMerger
    coordinator: ConflictResolutionCoordinator

    # Active work mode conflict resolution, if any.
    resolution: ResolutionSession | None = None
