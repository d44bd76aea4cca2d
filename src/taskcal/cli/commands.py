# src/taskcal/cli/commands.py

from __future__ import annotations

import calendar
import logging
from collections.abc import Awaitable, Callable
from datetime import date

from ..core.state import AppState
from ..errors import PersistenceError, ValidationError
from ..tasks.task_api import TaskActionKind, create_task, update_task_schedule
from ..tasks.task_models import Frequency, Task, TaskCategory, TaskMode, sort_by_display_order
from ..workdays.resolution import ActionResult, ResolutionPhase, ResultKind, plan_workday_changes
from ..workdays.workday_models import ModeConflict, WorkMode

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Slash-command registry used by the console connector (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return await handler(state, args, emit)
        except ValidationError as exc:
            return f"Invalid request: {exc}"
        except PersistenceError as exc:
            logger.warning("Command /%s failed: %s", name, exc)
            return f"Storage error, please retry: {exc}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- parsing / formatting helpers ----


def _parse_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"bad date {raw!r}, expected YYYY-MM-DD") from None


def _parse_month(raw: str) -> tuple[int, int]:
    try:
        year_s, month_s = raw.split("-", 1)
        year, month = int(year_s), int(month_s)
    except ValueError:
        raise ValidationError(f"bad month {raw!r}, expected YYYY-MM") from None
    if not 1 <= month <= 12:
        raise ValidationError(f"bad month {raw!r}, expected YYYY-MM")
    return year, month


def _month_days(year: int, month: int) -> list[date]:
    last = calendar.monthrange(year, month)[1]
    return [date(year, month, d) for d in range(1, last + 1)]


def _resolve_ids(tasks: list[Task], tokens: list[str]) -> list[str]:
    """Expand unambiguous id prefixes; anything else is passed through unchanged."""
    out: list[str] = []
    for token in tokens:
        matches = [t.id for t in tasks if t.id.startswith(token)]
        out.append(matches[0] if len(matches) == 1 else token)
    return out


def _fmt_task(task: Task) -> str:
    due = f" due={task.due_date}" if task.due_date else ""
    freq = f" freq={task.frequency.value}" if task.frequency else ""
    return f"[{task.display_order if task.display_order is not None else '-'}] {task.id[:8]} {task.title} ({task.mode.value}{due}{freq})"


def _fmt_conflict(conflict: ModeConflict, index: int, total: int) -> str:
    return (
        f"Conflict {index + 1}/{total}: {conflict.date} would be {conflict.work_mode.value}, "
        f"but task {conflict.task_title or conflict.task_id} needs {conflict.task_mode.value}.\n"
        "  /resolve mode | propose | confirm | cancel"
    )


def _apply_result(state: AppState, result: ActionResult) -> str:
    session = result.session
    reloaded = False
    if session.phase in (ResolutionPhase.ALL_RESOLVED, ResolutionPhase.CANCELLED):
        state.resolution = None
        if session.reload_required:
            logger.debug("Resolution finished, persisted state changed; views reload from storage.")
            reloaded = session.phase == ResolutionPhase.CANCELLED
    elif session.phase == ResolutionPhase.PRESENTING:
        state.resolution = session

    lines: list[str] = []
    if result.message:
        lines.append(result.message)
    if result.kind == ResultKind.ERROR:
        lines.append("Nothing changed; retry the same action.")
    if reloaded:
        lines.append("Changes saved before cancelling were kept; work modes reloaded from storage.")
    if result.task_id is not None and session.phase == ResolutionPhase.CANCELLED:
        lines.append(f"Use /due {result.task_id[:8]} YYYY-MM-DD to move it.")
    if result.proposed_date is not None:
        lines.append(f"Proposed date: {result.proposed_date}. /resolve accept or /resolve manual")

    current = session.current_conflict
    if result.kind == ResultKind.CONFLICT and current is not None:
        lines.append(_fmt_conflict(current, session.index, session.total))
    elif result.kind == ResultKind.OK and session.phase == ResolutionPhase.ALL_RESOLVED and not lines:
        lines.append("Work modes saved.")
    return "\n".join(lines) if lines else "OK."


async def _start_resolution(
    state: AppState,
    persisted: dict[date, WorkMode],
    local: dict[date, WorkMode],
    dates: list[date] | None = None,
) -> str:
    if state.resolution is not None:
        return "A conflict resolution is in progress. Finish it with /resolve first."

    changes = plan_workday_changes(persisted, local, dates)
    if not changes:
        return "No work mode changes."
    result = await state.coordinator.start(changes, persisted, local)
    return _apply_result(state, result)


# ---- commands ----


async def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    total = await state.task_store.count_tasks()
    resolution = state.resolution
    pending = f"{resolution.index + 1}/{resolution.total}" if resolution is not None else "none"
    return (
        "Status:\n"
        f"  User: {state.user_id}\n"
        f"  Tasks: {total}\n"
        f"  Conflict resolution: {pending}"
    )


async def cmd_tasks(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /tasks              -> all categories
    /tasks <category>   -> periodic | specific | open_ended
    """
    categories = [TaskCategory.parse(args[0])] if args else list(TaskCategory)
    lines: list[str] = []
    for category in categories:
        tasks = await state.task_store.list_category_tasks_ordered(state.user_id, category)
        lines.append(f"{category.value} ({len(tasks)}):")
        lines.extend(f"  {_fmt_task(t)}" for t in sort_by_display_order(tasks))
    return "\n".join(lines)


async def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /add <title words> [due=YYYY-MM-DD] [mode=any|on_site|remote] [freq=...] [force]
    """
    title_words: list[str] = []
    due: date | None = None
    mode = TaskMode.ANY
    freq: Frequency | None = None
    force = False

    for token in args:
        key, sep, value = token.partition("=")
        if sep and key == "due":
            due = _parse_date(value)
        elif sep and key == "mode":
            mode = TaskMode.parse(value)
        elif sep and key == "freq":
            freq = Frequency.from_db(value.lower())
            if freq is None:
                raise ValidationError(f"unknown frequency: {value!r}")
        elif token == "force":
            force = True
        else:
            title_words.append(token)

    if not title_words:
        return "Usage: /add <title> [due=YYYY-MM-DD] [mode=any|on_site|remote] [freq=daily|weekly|monthly|annually|custom] [force]"

    result = await create_task(
        state.task_store,
        state.workday_store,
        user_id=state.user_id,
        title=" ".join(title_words),
        frequency=freq,
        due_date=due,
        mode=mode,
        ignore_conflict=force,
    )
    if result.kind == TaskActionKind.CONFLICT and result.conflict is not None:
        c = result.conflict
        return (
            f"{c.date} is {c.work_mode.value}, task needs {c.task_mode.value}. "
            "Pick another date or repeat with 'force'."
        )
    if result.task is None:
        return "Task was not created."
    return f"Added {_fmt_task(result.task)}"


async def cmd_reorder(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /reorder <category> <id> <id> ...   (moved tasks, in their new order; id prefixes accepted)
    """
    if len(args) < 2:
        return "Usage: /reorder <periodic|specific|open_ended> <id> [<id> ...]"

    category = TaskCategory.parse(args[0])
    tasks = await state.task_store.list_category_tasks_ordered(state.user_id, category)
    ids = _resolve_ids(tasks, args[1:])

    assignments = await state.order_merger.reorder(state.user_id, category, ids)
    by_id = {t.id: t for t in tasks}
    lines = [f"{category.value} reordered:"]
    for a in assignments:
        lines.append(f"  {a.new_display_order}. {by_id[a.id].title} ({a.id[:8]})")
    return "\n".join(lines)


async def cmd_due(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /due <id> <YYYY-MM-DD> [mode=any|on_site|remote] [force]
    """
    if len(args) < 2:
        return "Usage: /due <id> <YYYY-MM-DD> [mode=any|on_site|remote] [force]"

    tasks = await state.task_store.list_tasks_for_user(state.user_id)
    (task_id,) = _resolve_ids(tasks, args[:1])
    due = _parse_date(args[1])
    mode: TaskMode | None = None
    force = False
    for token in args[2:]:
        key, sep, value = token.partition("=")
        if sep and key == "mode":
            mode = TaskMode.parse(value)
        elif token == "force":
            force = True
        else:
            raise ValidationError(f"unexpected argument {token!r}")

    result = await update_task_schedule(
        state.task_store,
        state.workday_store,
        user_id=state.user_id,
        task_id=task_id,
        due_date=due,
        mode=mode,
        ignore_conflict=force,
    )
    if result.kind == TaskActionKind.CONFLICT and result.conflict is not None:
        c = result.conflict
        return (
            f"{c.date} is {c.work_mode.value}, task needs {c.task_mode.value}. "
            "Pick another date or repeat with 'force'."
        )
    if result.task is None:
        return "Task not found."
    return f"Updated {_fmt_task(result.task)}"


async def cmd_modes(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /modes <YYYY-MM>   -> effective work mode of every day of the month
    """
    if not args:
        return "Usage: /modes <YYYY-MM>"
    days = _month_days(*_parse_month(args[0]))
    modes = await state.workday_store.get_work_modes_in_range(state.user_id, days[0], days[-1])
    return "\n".join(f"  {d} {d.strftime('%a')} {modes[d].value}" for d in days)


async def cmd_workdays(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /workdays <YYYY-MM-DD>=<mode> [...]
    """
    if not args:
        return "Usage: /workdays <YYYY-MM-DD>=<on_site|remote|off> [...]"

    edits: dict[date, WorkMode] = {}
    for token in args:
        raw_day, sep, raw_mode = token.partition("=")
        if not sep:
            raise ValidationError(f"expected <date>=<mode>, got {token!r}")
        edits[_parse_date(raw_day)] = WorkMode.parse(raw_mode)

    persisted = {d: await state.workday_store.get_work_mode(state.user_id, d) for d in edits}
    local = {**persisted, **edits}
    return await _start_resolution(state, persisted, local, sorted(edits))


async def cmd_month(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /month <YYYY-MM> <mode>   -> set every weekday (Mon-Fri) of the month
    """
    if len(args) < 2:
        return "Usage: /month <YYYY-MM> <on_site|remote|off>"

    days = _month_days(*_parse_month(args[0]))
    mode = WorkMode.parse(args[1])
    persisted = await state.workday_store.get_work_modes_in_range(state.user_id, days[0], days[-1])
    local = dict(persisted)
    for d in days:
        if d.weekday() < 5:
            local[d] = mode
    return await _start_resolution(state, persisted, local, days)


async def cmd_resolve(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /resolve mode      -> change the day's work mode to suit the task
    /resolve propose   -> search the next compatible date for the task
    /resolve accept    -> move the task to the proposed date
    /resolve manual    -> stop here and edit the task's date yourself
    /resolve confirm   -> keep the conflict
    /resolve cancel    -> drop the pending work mode edits
    """
    session = state.resolution
    if session is None:
        return "No conflict to resolve."
    if not args:
        current = session.current_conflict
        if current is None:
            return "No conflict to resolve."
        return _fmt_conflict(current, session.index, session.total)

    coordinator = state.coordinator
    action = args[0].lower()
    if action == "mode":
        result = await coordinator.change_workday_mode(session)
    elif action == "propose":
        result = await coordinator.propose_date(session)
    elif action == "accept":
        result = await coordinator.accept_proposed_date(session)
    elif action == "manual":
        result = coordinator.choose_date_manually(session)
    elif action == "confirm":
        result = await coordinator.confirm_anyway(session)
    elif action == "cancel":
        result = coordinator.cancel(session)
    else:
        return "Usage: /resolve mode | propose | accept | manual | confirm | cancel"

    return _apply_result(state, result)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show user, task count and pending conflicts.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [periodic|specific|open_ended].")
registry.register("add", cmd_add, help_text="Add a task: /add <title> [due=...] [mode=...] [freq=...] [force].")
registry.register("reorder", cmd_reorder, help_text="Reorder tasks: /reorder <category> <id...>.")
registry.register("due", cmd_due, help_text="Move a task: /due <id> <YYYY-MM-DD> [mode=...] [force].")
registry.register("modes", cmd_modes, help_text="Show a month's work modes: /modes <YYYY-MM>.")
registry.register("workdays", cmd_workdays, help_text="Set work modes: /workdays <date>=<mode> ...")
registry.register("month", cmd_month, help_text="Set a month's weekdays: /month <YYYY-MM> <mode>.")
registry.register(
    "resolve",
    cmd_resolve,
    help_text="Resolve conflicts: /resolve mode | propose | accept | manual | confirm | cancel.",
)
