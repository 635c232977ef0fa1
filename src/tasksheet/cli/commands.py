# src/tasksheet/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import date, timedelta

from ..core.state import AppState
from ..sync.engine import MutationOutcome, MutationState
from ..tasks.scheduling import DragKind, bar_geometry, dependency_links
from ..tasks.task_models import Priority, Task, TaskDraft, TaskStatus, Visibility
from ..tasks.views import TaskFilter

CommandHandler = Callable[[AppState, list[str]], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /board, ...)."""

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

    async def handle(self, state: AppState, line: str) -> str | None:
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

        logger.debug("Command /%s args=%s", name, args)

        try:
            return await handler(state, args)
        except UsageError as e:
            return str(e)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


class UsageError(ValueError):
    """Bad command arguments; the message is shown to the user as-is."""


registry = CommandRegistry()


# ---- argument parsing ----

_STATUS_ALIASES = {
    "todo": TaskStatus.NOT_STARTED,
    "not_started": TaskStatus.NOT_STARTED,
    "doing": TaskStatus.IN_PROGRESS,
    "in_progress": TaskStatus.IN_PROGRESS,
    "done": TaskStatus.COMPLETED,
    "completed": TaskStatus.COMPLETED,
}

_COLUMN_TITLES = {
    TaskStatus.NOT_STARTED: "Not started",
    TaskStatus.IN_PROGRESS: "In progress",
    TaskStatus.COMPLETED: "Completed",
}


def _split_options(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """`a b key=value c` -> (["a", "b", "c"], {"key": "value"})."""
    words: list[str] = []
    options: dict[str, str] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        if sep and key:
            options[key.lower()] = value
        else:
            words.append(arg)
    return words, options


def parse_status(raw: str) -> TaskStatus:
    status = _STATUS_ALIASES.get(raw.strip().lower())
    if status is None:
        raise UsageError(f"Unknown status {raw!r}. Use todo | doing | done.")
    return status


def parse_date(raw: str, today: date) -> date | None:
    """ISO date, `today`, `+N`/`-N` days from today, or `none`."""
    raw = raw.strip().lower()
    if raw in ("", "none", "-"):
        return None
    if raw == "today":
        return today
    if raw[0] in "+-" and raw[1:].isdigit():
        return today + timedelta(days=int(raw))
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise UsageError(f"Bad date {raw!r}. Use YYYY-MM-DD, today or +N.") from None


def _parse_priority(raw: str) -> Priority:
    try:
        return Priority(raw.strip().upper())
    except ValueError:
        raise UsageError(f"Unknown priority {raw!r}. Use high | medium | low.") from None


def _yes(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _filter_from(words: list[str], options: dict[str, str]) -> TaskFilter:
    return TaskFilter(
        search=" ".join(words),
        assignee_email=options.get("assignee") or None,
        status=parse_status(options["status"]) if options.get("status") else None,
        tag=options.get("tag") or None,
        department=options.get("dept") or None,
    )


# ---- formatting ----


def _task_line(task: Task) -> str:
    dates = ""
    if task.start_date or task.due_date:
        start = task.start_date.isoformat() if task.start_date else "?"
        due = task.due_date.isoformat() if task.due_date else "?"
        dates = f" {start}..{due}"
    extras = []
    if task.tag:
        extras.append(f"#{task.tag}")
    if task.predecessor_task_id:
        extras.append(f"after {task.predecessor_task_id}")
    if task.visibility == Visibility.PRIVATE:
        extras.append("private")
    if task.calendar_event_id:
        extras.append("cal")
    suffix = f" [{', '.join(extras)}]" if extras else ""
    return f"{task.id} {task.title} ({task.priority.value.lower()}, {task.assignee_email}){dates}{suffix}"


def _outcome_text(outcome: MutationOutcome, done: str) -> str:
    if outcome.state == MutationState.COMMITTED:
        return done
    if outcome.state == MutationState.REJECTED:
        return f"Not allowed: {outcome.reason}"
    return f"Reverted: {outcome.reason}"


def _require_task(state: AppState, task_id: str) -> Task:
    task = state.engine.store.get(task_id)
    if task is None:
        raise UsageError(f"No such task: {task_id}")
    return task


# ---- commands ----


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_whoami(state: AppState, args: list[str]) -> str:
    engine = state.engine
    user = engine.current_user
    mode = "offline demo board" if state.offline else "Google Sheets"
    if user is None:
        return f"Signed in as {engine.current_user_email or '-'} (not in the Users sheet). Backend: {mode}."
    dept = f", {user.department}" if user.department else ""
    return f"Signed in as {user.name} <{user.email}> ({user.role.value}{dept}). Backend: {mode}."


async def cmd_list(state: AppState, args: list[str]) -> str:
    """
    /list [text] [status=..] [tag=..] [assignee=..] [dept=..]
    """
    words, options = _split_options(args)
    tasks = state.engine.visible_tasks(_filter_from(words, options))
    if not tasks:
        return "No tasks."
    return "\n".join(_task_line(t) for t in tasks)


async def cmd_board(state: AppState, args: list[str]) -> str:
    words, options = _split_options(args)
    board = state.engine.board(_filter_from(words, options))
    lines: list[str] = []
    for status, column in board.items():
        lines.append(f"== {_COLUMN_TITLES[status]} ({len(column)})")
        lines.extend(f"  {i}. {_task_line(t)}" for i, t in enumerate(column))
    return "\n".join(lines)


async def cmd_timeline(state: AppState, args: list[str]) -> str:
    engine = state.engine
    words, options = _split_options(args)
    task_filter = _filter_from(words, options)
    ordered = engine.timeline(task_filter)
    if not ordered:
        return "No tasks."
    window = engine.window(task_filter)

    lines = [f"Window {window.start.isoformat()}..{window.end.isoformat()} ({len(window)} days)"]
    for row, task in enumerate(ordered):
        geometry = bar_geometry(task, window, 1)
        if geometry is None:
            bar = "(unscheduled)"
        else:
            bar = " " * max(0, geometry.x) + "#" * geometry.width
        lines.append(f"{row:>3} {bar} {task.title} [{task.id}]")
    links = dependency_links(ordered)
    if links:
        lines.append("Links: " + ", ".join(f"{a}->{b}" for a, b in links))
    return "\n".join(lines)


async def cmd_stats(state: AppState, args: list[str]) -> str:
    stats = state.engine.workload()
    if not stats:
        return "No team members."
    lines = ["Workload (due today / active / completed / total):"]
    for s in stats:
        lines.append(f"  {s.user.name}: {s.due_today} / {s.active} / {s.completed} / {s.total}")
    return "\n".join(lines)


async def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <title> [assignee=..] [tag=..] [start=..] [due=..] [priority=..]
                 [status=..] [after=<task id>] [private=yes] [detail=..] [calendar=yes]
    """
    engine = state.engine
    words, options = _split_options(args)
    if not words:
        raise UsageError("Usage: /add <title> [assignee=..] [tag=..] [start=..] [due=..] ...")

    today = engine.today()
    draft = TaskDraft(
        title=" ".join(words),
        assignee_email=options.get("assignee") or engine.current_user_email or "",
        detail=options.get("detail", "").replace("_", " "),
        tag=options.get("tag", ""),
        start_date=parse_date(options.get("start", ""), today),
        due_date=parse_date(options.get("due", ""), today),
        priority=_parse_priority(options["priority"]) if "priority" in options else Priority.MEDIUM,
        status=parse_status(options["status"]) if "status" in options else TaskStatus.NOT_STARTED,
        visibility=Visibility.PRIVATE if _yes(options.get("private", "")) else Visibility.PUBLIC,
        predecessor_task_id=options.get("after") or None,
    )
    outcome = await engine.create_task(draft, add_to_calendar=_yes(options.get("calendar", "")))
    return _outcome_text(outcome, f"Created {outcome.task_id}.")


async def cmd_edit(state: AppState, args: list[str]) -> str:
    """
    /edit <id> [title=..] [assignee=..] [tag=..] [start=..] [due=..] [priority=..]
               [after=<id>|none] [private=yes|no] [detail=..]
    """
    engine = state.engine
    words, options = _split_options(args)
    if len(words) != 1 or not options:
        raise UsageError("Usage: /edit <id> key=value ...")
    _require_task(state, words[0])

    today = engine.today()
    changes: dict[str, object] = {}
    for key, value in options.items():
        if key == "title":
            changes["title"] = value.replace("_", " ")
        elif key == "detail":
            changes["detail"] = value.replace("_", " ")
        elif key == "assignee":
            changes["assignee_email"] = value
        elif key == "tag":
            changes["tag"] = value
        elif key == "start":
            changes["start_date"] = parse_date(value, today)
        elif key == "due":
            changes["due_date"] = parse_date(value, today)
        elif key == "priority":
            changes["priority"] = _parse_priority(value)
        elif key == "status":
            changes["status"] = parse_status(value)
        elif key == "after":
            changes["predecessor_task_id"] = None if value.lower() in ("", "none", "-") else value
        elif key == "private":
            changes["visibility"] = Visibility.PRIVATE if _yes(value) else Visibility.PUBLIC
        else:
            raise UsageError(f"Unknown field {key!r}.")

    outcome = await engine.edit_task(words[0], **changes)
    return _outcome_text(outcome, f"Updated {words[0]}.")


async def cmd_move(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        raise UsageError("Usage: /move <id> <todo|doing|done>")
    _require_task(state, args[0])
    outcome = await state.engine.change_status(args[0], parse_status(args[1]))
    return _outcome_text(outcome, f"Moved {args[0]}.")


async def cmd_reorder(state: AppState, args: list[str]) -> str:
    if len(args) != 3 or not args[2].lstrip("-").isdigit():
        raise UsageError("Usage: /reorder <id> <todo|doing|done> <index>")
    _require_task(state, args[0])
    outcome = await state.engine.reorder(args[0], parse_status(args[1]), int(args[2]))
    return _outcome_text(outcome, f"Placed {args[0]} at {args[1]}[{args[2]}].")


async def cmd_drag(state: AppState, args: list[str]) -> str:
    """/drag <id> <move|left|right> <pixels>"""
    if len(args) != 3:
        raise UsageError("Usage: /drag <id> <move|left|right> <pixels>")
    try:
        kind = DragKind(args[1].lower())
        pixels = float(args[2])
    except ValueError:
        raise UsageError("Usage: /drag <id> <move|left|right> <pixels>") from None
    _require_task(state, args[0])

    outcome = await state.engine.reschedule(args[0], kind, pixels)
    if outcome.ok and outcome.task is not None:
        t = outcome.task
        return f"{t.id}: {t.start_date}..{t.due_date}"
    return _outcome_text(outcome, "")


async def cmd_delete(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        raise UsageError("Usage: /delete <id>")
    _require_task(state, args[0])
    outcome = await state.engine.delete_task(args[0])
    return _outcome_text(outcome, f"Deleted {args[0]}.")


async def cmd_calendar(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        raise UsageError("Usage: /calendar <id>")
    _require_task(state, args[0])
    outcome = await state.engine.add_to_calendar(args[0])
    return _outcome_text(outcome, f"Added {args[0]} to the calendar.")


async def cmd_refresh(state: AppState, args: list[str]) -> str:
    ok = await state.engine.refresh(silent=False)
    return f"Reloaded {len(state.engine.store)} tasks." if ok else "Reload failed; showing the last known data."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("whoami", cmd_whoami, help_text="Show the signed-in user and backend.")
registry.register("list", cmd_list, help_text="List tasks: /list [text] [status=..] [tag=..] [assignee=..] [dept=..].")
registry.register("board", cmd_board, help_text="Show the board columns.")
registry.register("timeline", cmd_timeline, help_text="Show the dependency-ordered timeline.")
registry.register("stats", cmd_stats, help_text="Team workload.")
registry.register("add", cmd_add, help_text="Create a task: /add <title> [key=value ...].")
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <id> key=value ...")
registry.register("move", cmd_move, help_text="Change status: /move <id> <todo|doing|done>.")
registry.register("reorder", cmd_reorder, help_text="Board drag: /reorder <id> <status> <index>.")
registry.register("drag", cmd_drag, help_text="Timeline drag: /drag <id> <move|left|right> <pixels>.")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <id>.", aliases=["rm"])
registry.register("calendar", cmd_calendar, help_text="Add a task to the calendar: /calendar <id>.")
registry.register("refresh", cmd_refresh, help_text="Reload everything from the sheet.")
