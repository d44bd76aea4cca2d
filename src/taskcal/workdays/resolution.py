# src/taskcal/workdays/resolution.py

from __future__ import annotations

"""
Work mode conflict resolution.

Editing work modes (one day or a whole month) goes through two phases:
1. start(): changes that hurt no task are committed at once in one batch;
   the remaining ones become a list of ModeConflict presented one by one.
2. For the current conflict the user either changes the day's mode to suit
   the task, moves the task to a proposed date, or confirms the conflict.
   When the last conflict is addressed, the requested modes that are still
   pending are force-written in one batch.

All state lives in an immutable ResolutionSession that each action receives
and returns inside an ActionResult; the coordinator itself only holds the
collaborators. Actions are single-flight: the caller must not start a new
action on a session before the previous one has returned.

A storage failure never moves the session forward: the ActionResult carries
kind=ERROR and the session that was passed in, so the same action can be
retried.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum

from ..core.ports import TaskRepo, WorkdayRepo
from ..errors import PersistenceError, ValidationError
from .conflicts import detect_conflicts, is_mode_compatible
from .date_proposer import DEFAULT_MAX_LOOKAHEAD, propose_date
from .workday_models import ModeConflict, WorkdayChange, WorkMode, workday_mode_for_task

logger = logging.getLogger(__name__)


class ResolutionPhase(str, Enum):
    IDLE = "idle"
    PRESENTING = "presenting"
    ALL_RESOLVED = "all_resolved"
    CANCELLED = "cancelled"


class Resolution(str, Enum):
    MODE_CHANGED = "mode_changed"
    DATE_CHANGED = "date_changed"
    OVERRIDDEN = "overridden"


class ResultKind(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"  # conflicts remain to be presented
    NOTICE = "notice"  # nothing changed, tell the user why
    ERROR = "error"  # storage failed, nothing changed, action can be retried


@dataclass(slots=True, frozen=True)
class ResolutionSession:
    phase: ResolutionPhase = ResolutionPhase.IDLE
    conflicts: tuple[ModeConflict, ...] = ()
    index: int = 0
    resolutions: tuple[Resolution | None, ...] = ()

    # Persisted modes before the edit, and the caller's working copy.
    original_modes: Mapping[date, WorkMode] = field(default_factory=dict)
    local_modes: Mapping[date, WorkMode] = field(default_factory=dict)

    committed_before_conflicts: bool = False
    proposed_date: date | None = None
    reload_required: bool = False

    @property
    def total(self) -> int:
        return len(self.conflicts)

    @property
    def current_conflict(self) -> ModeConflict | None:
        if self.phase != ResolutionPhase.PRESENTING or not 0 <= self.index < self.total:
            return None
        return self.conflicts[self.index]

    @property
    def confirmed(self) -> frozenset[int]:
        return frozenset(i for i, r in enumerate(self.resolutions) if r == Resolution.OVERRIDDEN)

    @property
    def all_resolved(self) -> bool:
        return len(self.resolutions) == self.total and all(r is not None for r in self.resolutions)


@dataclass(slots=True, frozen=True)
class ActionResult:
    kind: ResultKind
    session: ResolutionSession
    conflicts: tuple[ModeConflict, ...] = ()
    proposed_date: date | None = None
    task_id: str | None = None
    message: str = ""
    error: Exception | None = None


def plan_workday_changes(
    persisted: Mapping[date, WorkMode],
    local: Mapping[date, WorkMode],
    dates: Sequence[date] | None = None,
) -> list[WorkdayChange]:
    """
    Changes between persisted and locally edited modes, in date order.

    Dates missing on either side count as ON_SITE. dates restricts the
    comparison (e.g. the days of the displayed month); by default every date
    edited locally is compared.
    """
    days = sorted(set(dates) if dates is not None else set(local))
    out: list[WorkdayChange] = []
    for day in days:
        before = persisted.get(day, WorkMode.ON_SITE)
        after = local.get(day, WorkMode.ON_SITE)
        if before != after:
            out.append(WorkdayChange(date=day, new_mode=after))
    return out


def _with_resolution(
    resolutions: tuple[Resolution | None, ...],
    index: int,
    resolution: Resolution,
) -> tuple[Resolution | None, ...]:
    items = list(resolutions)
    items[index] = resolution
    return tuple(items)


class ConflictResolutionCoordinator:
    def __init__(
        self,
        *,
        user_id: str,
        task_repo: TaskRepo,
        workday_repo: WorkdayRepo,
        max_lookahead: int = DEFAULT_MAX_LOOKAHEAD,
    ) -> None:
        self.user_id = user_id
        self._tasks = task_repo
        self._workdays = workday_repo
        self._max_lookahead = int(max_lookahead)

    # ---- entry point ----

    async def start(
        self,
        changes: Sequence[WorkdayChange],
        original_modes: Mapping[date, WorkMode],
        local_modes: Mapping[date, WorkMode] | None = None,
    ) -> ActionResult:
        """
        Commit the conflict-free changes, queue the rest.

        Returns OK (phase ALL_RESOLVED) when nothing conflicts, CONFLICT with
        the queued conflicts (phase PRESENTING, index 0) otherwise.
        """
        if local_modes is None:
            local = dict(original_modes)
            local.update({c.date: c.new_mode for c in changes})
        else:
            local = dict(local_modes)

        idle = ResolutionSession(original_modes=dict(original_modes), local_modes=local)

        if not changes:
            return ActionResult(ResultKind.OK, replace(idle, phase=ResolutionPhase.ALL_RESOLVED))

        try:
            tasks = await self._tasks.list_tasks_for_user(self.user_id)
        except PersistenceError as exc:
            return self._failed(idle, exc, "Could not load tasks to check work mode conflicts.")

        by_date = detect_conflicts(changes, tasks)
        clear = [c for c in changes if c.date not in by_date]

        if clear:
            try:
                await self._workdays.set_work_modes_batch(self.user_id, clear)
            except PersistenceError as exc:
                return self._failed(idle, exc, "Could not save work modes.")
            logger.info("Committed %d conflict-free work mode changes user=%s", len(clear), self.user_id)

        conflicts = tuple(c for day_conflicts in by_date.values() for c in day_conflicts)
        if not conflicts:
            return ActionResult(ResultKind.OK, replace(idle, phase=ResolutionPhase.ALL_RESOLVED))

        session = replace(
            idle,
            phase=ResolutionPhase.PRESENTING,
            conflicts=conflicts,
            index=0,
            resolutions=(None,) * len(conflicts),
            committed_before_conflicts=bool(clear),
        )
        logger.info(
            "Presenting %d conflicts on %d dates user=%s",
            len(conflicts),
            len(by_date),
            self.user_id,
        )
        return ActionResult(ResultKind.CONFLICT, session, conflicts=conflicts)

    # ---- per-conflict actions ----

    async def change_workday_mode(self, session: ResolutionSession) -> ActionResult:
        """
        Set the conflict's day to the task's mode (ANY -> ON_SITE) right away.

        Other conflicts waiting on the same day are re-checked against the new
        mode: those it suits are settled with it, the rest now show it. The
        change is refused (NOTICE, session unchanged) if it would break a task
        of that day already settled by staying on it.
        """
        conflict = self._current(session)
        mode = workday_mode_for_task(conflict.task_mode)

        broken = [
            other
            for i, (other, r) in enumerate(zip(session.conflicts, session.resolutions))
            if i != session.index
            and other.date == conflict.date
            and r in (Resolution.MODE_CHANGED, Resolution.OVERRIDDEN)
            and not is_mode_compatible(other.task_mode, mode)
        ]
        if broken:
            names = ", ".join(c.task_title or str(c.task_id) for c in broken)
            return ActionResult(
                ResultKind.NOTICE,
                session,
                task_id=conflict.task_id,
                message=(
                    f"Setting {conflict.date} to {mode.value} would conflict with {names} again. "
                    "Move this task or confirm the conflict instead."
                ),
            )

        try:
            await self._workdays.set_work_mode(self.user_id, conflict.date, mode)
        except PersistenceError as exc:
            return self._failed(session, exc, f"Could not change the work mode of {conflict.date}.")

        logger.info("Conflict %d/%d: %s set to %s", session.index + 1, session.total, conflict.date, mode.value)

        conflicts = list(session.conflicts)
        resolutions = list(session.resolutions)
        resolutions[session.index] = Resolution.MODE_CHANGED
        for i, other in enumerate(conflicts):
            if resolutions[i] is not None or other.date != conflict.date:
                continue
            if is_mode_compatible(other.task_mode, mode):
                resolutions[i] = Resolution.MODE_CHANGED
            else:
                conflicts[i] = replace(other, work_mode=mode)

        updated = replace(
            session,
            conflicts=tuple(conflicts),
            local_modes={**session.local_modes, conflict.date: mode},
            resolutions=tuple(resolutions),
            proposed_date=None,
        )
        return await self._advance(updated, fallback=session)

    async def propose_date(self, session: ResolutionSession) -> ActionResult:
        """Search forward for a date suiting the task; the session remembers it."""
        conflict = self._current(session)
        pending = session.local_modes

        async def work_mode_at(day: date) -> WorkMode:
            if day in pending:
                return pending[day]
            return await self._workdays.get_work_mode(self.user_id, day)

        try:
            candidate = await propose_date(conflict, work_mode_at, self._max_lookahead)
        except PersistenceError as exc:
            return self._failed(session, exc, "Could not look up work modes to propose a date.")

        if candidate is None:
            return ActionResult(
                ResultKind.NOTICE,
                session,
                message=f"No compatible date found in the {self._max_lookahead} days after {conflict.date}.",
            )

        return ActionResult(
            ResultKind.OK,
            replace(session, proposed_date=candidate),
            proposed_date=candidate,
            task_id=conflict.task_id,
        )

    async def accept_proposed_date(self, session: ResolutionSession) -> ActionResult:
        """Move the task to the proposed date and go to the next conflict."""
        conflict = self._current(session)
        new_date = session.proposed_date
        if new_date is None:
            raise ValidationError("no proposed date to accept")
        if conflict.task_id is None:
            raise ValidationError("conflict does not reference a task")

        try:
            await self._tasks.update_task_due_date(self.user_id, conflict.task_id, new_date)
        except PersistenceError as exc:
            return self._failed(session, exc, "Could not change the task's date.")

        logger.info("Conflict %d/%d: task_id=%s moved %s -> %s",
                    session.index + 1, session.total, conflict.task_id, conflict.date, new_date)
        updated = replace(
            session,
            resolutions=_with_resolution(session.resolutions, session.index, Resolution.DATE_CHANGED),
            proposed_date=None,
        )
        return await self._advance(updated, fallback=session)

    def choose_date_manually(self, session: ResolutionSession) -> ActionResult:
        """Leave the flow so the user can edit the task's date by hand."""
        conflict = self._current(session)
        result = self.cancel(session)
        return replace(
            result,
            task_id=conflict.task_id,
            message=f"Pick a new date for task {conflict.task_title or conflict.task_id}.",
        )

    async def confirm_anyway(self, session: ResolutionSession) -> ActionResult:
        """Accept the conflict; its date is written when the last conflict is addressed."""
        self._current(session)
        updated = replace(
            session,
            resolutions=_with_resolution(session.resolutions, session.index, Resolution.OVERRIDDEN),
            proposed_date=None,
        )
        return await self._advance(updated, fallback=session)

    def cancel(self, session: ResolutionSession) -> ActionResult:
        """
        Drop the pending edits of the conflicted dates and stop.

        Writes already made (conflict-free batch, mode changes, moved tasks)
        stay; reload_required tells the caller to refetch persisted state.
        """
        if session.phase != ResolutionPhase.PRESENTING:
            raise ValidationError(f"nothing to cancel in phase {session.phase.value}")

        mode_changed = {
            c.date for c, r in zip(session.conflicts, session.resolutions) if r == Resolution.MODE_CHANGED
        }
        local = dict(session.local_modes)
        for conflict in session.conflicts:
            if conflict.date in mode_changed:
                continue
            if conflict.date in session.original_modes:
                local[conflict.date] = session.original_modes[conflict.date]
            else:
                local.pop(conflict.date, None)

        reload_required = session.committed_before_conflicts or any(
            r in (Resolution.MODE_CHANGED, Resolution.DATE_CHANGED) for r in session.resolutions
        )
        logger.info(
            "Conflict resolution cancelled at %d/%d user=%s reload=%s",
            session.index + 1,
            session.total,
            self.user_id,
            reload_required,
        )
        cancelled = replace(
            session,
            phase=ResolutionPhase.CANCELLED,
            local_modes=local,
            proposed_date=None,
            reload_required=reload_required,
        )
        return ActionResult(ResultKind.OK, cancelled, message="Work mode changes cancelled.")

    # ---- internals ----

    def _current(self, session: ResolutionSession) -> ModeConflict:
        conflict = session.current_conflict
        if conflict is None:
            raise ValidationError(f"no conflict to resolve in phase {session.phase.value}")
        return conflict

    def _failed(self, session: ResolutionSession, exc: PersistenceError, message: str) -> ActionResult:
        logger.warning("%s user=%s error=%s", message, self.user_id, exc)
        return ActionResult(ResultKind.ERROR, session, message=message, error=exc)

    async def _advance(self, session: ResolutionSession, *, fallback: ResolutionSession) -> ActionResult:
        # Conflicts settled by a mode change on their day are skipped.
        for i in range(session.index + 1, session.total):
            if session.resolutions[i] is None:
                nxt = replace(session, index=i)
                remaining = tuple(
                    c for c, r in zip(nxt.conflicts[i:], nxt.resolutions[i:]) if r is None
                )
                return ActionResult(ResultKind.CONFLICT, nxt, conflicts=remaining)
        return await self._finish(session, fallback=fallback)

    async def _finish(self, session: ResolutionSession, *, fallback: ResolutionSession) -> ActionResult:
        if not session.all_resolved:
            # Unreachable through the linear walk; never commit with open conflicts.
            logger.warning("Reached the last conflict with unresolved ones user=%s", self.user_id)
            return ActionResult(ResultKind.NOTICE, session, message="Some conflicts are still unresolved.")

        pending = self._pending_writes(session)
        if pending:
            try:
                await self._workdays.set_work_modes_batch(self.user_id, pending)
            except PersistenceError as exc:
                return self._failed(fallback, exc, "Could not save the confirmed work modes.")
            logger.info("Committed %d confirmed work mode changes user=%s", len(pending), self.user_id)

        done = replace(
            session,
            phase=ResolutionPhase.ALL_RESOLVED,
            proposed_date=None,
            reload_required=True,
        )
        return ActionResult(ResultKind.OK, done, message="All conflicts resolved.")

    @staticmethod
    def _pending_writes(session: ResolutionSession) -> list[WorkdayChange]:
        """
        Requested modes still to write: one per date, for dates none of whose
        conflicts was settled by a mode change (those dates are already written).
        """
        requested: dict[date, WorkMode] = {}
        mode_changed: set[date] = set()
        for conflict, resolution in zip(session.conflicts, session.resolutions):
            requested.setdefault(conflict.date, conflict.work_mode)
            if resolution == Resolution.MODE_CHANGED:
                mode_changed.add(conflict.date)
        return [
            WorkdayChange(date=day, new_mode=mode)
            for day, mode in requested.items()
            if day not in mode_changed
        ]
