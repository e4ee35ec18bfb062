# src/itodo/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import date
from pathlib import Path

from ..core.errors import GatewayError, friendly_gateway_error_message
from ..core.state import AppState
from ..tasks.recurrence import RepeatRule, RepeatType, describe_repeat, next_occurrence
from ..tasks.task_models import (
    CreateListInput,
    CreateSubtaskInput,
    CreateTaskInput,
    FilterType,
    Subtask,
    Task,
    TaskList,
    UpdateSubtaskInput,
    UpdateTaskInput,
    date_to_wire,
    parse_wire_date,
)

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /tasks, ...)."""

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
        except GatewayError as e:
            return f"Error: {friendly_gateway_error_message(e)}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- rendering ----


def _fmt_date(raw: str | None) -> str:
    d = parse_wire_date(raw)
    return d.isoformat() if d else ""


def _repeat_line(task: Task, today: date) -> str:
    if not task.repeat_rule:
        return ""
    label = describe_repeat(task.repeat or task.repeat_rule)
    ref = parse_wire_date(task.due_date) or today
    nxt = next_occurrence(task.repeat or task.repeat_rule, ref)
    return f"{label} (next: {nxt.isoformat()})" if nxt else label


def render_lists(state: AppState) -> str:
    store = state.store
    state.list_view = [lst.id for lst in store.lists]
    if not store.lists:
        return "No lists."
    lines = ["Lists:"]
    for i, lst in enumerate(store.lists, start=1):
        marks = " (default)" if lst.is_default else ""
        sel = "> " if lst.id == store.selected_list_id else "  "
        lines.append(f"{sel}{i}. {lst.name}{marks}")
    return "\n".join(lines)


def _view_title(state: AppState) -> str:
    store = state.store
    if store.search_query.strip():
        return f'Search: "{store.search_query.strip()}"'
    lst = store.selected_list
    if lst is not None:
        return lst.name
    return store.filter.value.capitalize()


def render_tasks(state: AppState, *, today: date | None = None) -> str:
    store = state.store
    today = today or date.today()
    state.task_view = [t.id for t in store.tasks]

    open_count = sum(1 for t in store.tasks if not t.is_completed)
    lines = [f"{_view_title(state)} - {open_count} open"]
    if not store.tasks:
        lines.append("  (no tasks)")
    for i, t in enumerate(store.tasks, start=1):
        check = "[x]" if t.is_completed else "[ ]"
        star = " *" if t.is_important else ""
        extra = []
        if t.due_date:
            extra.append(f"due {_fmt_date(t.due_date)}")
        if t.repeat_rule:
            extra.append(describe_repeat(t.repeat or t.repeat_rule))
        tail = f"  ({'; '.join(extra)})" if extra else ""
        lines.append(f"  {i}. {check} {t.title}{star}{tail}")
    if store.error:
        lines.append(f"  ! {store.error}")
    return "\n".join(lines)


def _render_subtasks(state: AppState, subtasks: list[Subtask]) -> list[str]:
    state.subtask_view = [s.id for s in subtasks]
    if not subtasks:
        return ["  Subtasks: none"]
    lines = ["  Subtasks:"]
    for i, s in enumerate(subtasks, start=1):
        lines.append(f"    {i}. {'[x]' if s.is_completed else '[ ]'} {s.title}")
    return lines


def render_task_detail(state: AppState, task: Task, *, today: date | None = None) -> str:
    store = state.store
    today = today or date.today()
    lst = store.find_list(task.list_id)
    lines = [
        f"{task.title}{' *' if task.is_important else ''}",
        f"  Status: {'completed' if task.is_completed else 'open'}",
        f"  List: {lst.name if lst else 'Unknown list'}",
        f"  Due: {_fmt_date(task.due_date) or 'none'}",
        f"  Start: {_fmt_date(task.start_date) or 'none'}",
        f"  Reminder: {_fmt_date(task.remind_time) or 'none'}",
        f"  Repeat: {_repeat_line(task, today) or 'none'}",
        f"  Note: {task.content or 'none'}",
    ]
    lines.extend(_render_subtasks(state, store.subtasks_for(task.id)))
    return "\n".join(lines)


# ---- argument helpers ----


def _resolve_ref(ref: str, view: list[str], candidates: list[str]) -> str | None:
    """A 1-based index into the last rendered view, or an id prefix."""
    if ref.isdigit():
        idx = int(ref) - 1
        return view[idx] if 0 <= idx < len(view) else None
    hits = [c for c in candidates if c.startswith(ref)]
    return hits[0] if len(hits) == 1 else None


def _resolve_task(state: AppState, ref: str) -> Task | None:
    task_id = _resolve_ref(ref, state.task_view, [t.id for t in state.store.tasks])
    return state.store.find_task(task_id) if task_id else None


def _resolve_list(state: AppState, ref: str) -> TaskList | None:
    list_id = _resolve_ref(ref, state.list_view, [lst.id for lst in state.store.lists])
    return state.store.find_list(list_id) if list_id else None


def parse_repeat_arg(raw: str) -> str:
    """
    Edit-form shorthand to a serialized rule:
    daily | yearly | weekly:mon,wed | monthly:1,15 | any raw JSON string.
    """
    text = raw.strip()
    kind, _, rest = text.partition(":")
    try:
        rtype = RepeatType(kind.lower())
    except ValueError:
        return text

    items = [x.strip() for x in rest.split(",") if x.strip()]
    if rtype == RepeatType.WEEKLY:
        return RepeatRule(type=rtype, days=tuple(x.lower()[:3] for x in items)).to_json()
    if rtype == RepeatType.MONTHLY:
        return RepeatRule(type=rtype, days_of_month=tuple(int(x) for x in items if x.isdigit())).to_json()
    return RepeatRule(type=rtype).to_json()


def _date_arg(raw: str) -> str:
    return date_to_wire(date.fromisoformat(raw))


# ---- commands ----


async def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    store = state.store
    url = str(getattr(state.settings, "gateway_url", "") or "")
    lst = store.selected_list
    return (
        "Status:\n"
        f"  Backend: {url or 'offline (in-process)'}\n"
        f"  Filter: {store.filter.value}\n"
        f"  List: {lst.name if lst else 'none'}\n"
        f"  Search: {store.search_query or 'none'}\n"
        f"  Tasks in view: {len(store.tasks)}\n"
        f"  Last error: {store.error or 'none'}"
    )


async def cmd_lists(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    await state.store.fetch_lists()
    return render_lists(state)


async def cmd_list(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /list        -> back to all tasks
    /list <ref>  -> show tasks of a list
    """
    if not args:
        await state.store.select_list(None)
        return render_tasks(state)
    lst = _resolve_list(state, args[0])
    if lst is None:
        return f"No such list: {args[0]}. Use /lists."
    await state.store.select_list(lst.id)
    return render_tasks(state)


async def cmd_newlist(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    name = " ".join(args).strip()
    if not name:
        return "Usage: /newlist <name>"
    await state.store.create_list(CreateListInput(name=name))
    return render_lists(state)


async def cmd_rmlist(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /rmlist <ref>"
    lst = _resolve_list(state, args[0])
    if lst is None:
        return f"No such list: {args[0]}. Use /lists."
    await state.store.delete_list(lst.id)
    return render_lists(state)


async def cmd_filter(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    try:
        ftype = FilterType.parse(args[0] if args else "all")
    except ValueError:
        return "Usage: /filter all|today|planned|important|completed"
    await state.store.select_filter(ftype)
    return render_tasks(state)


async def cmd_search(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/search <text> searches all tasks; /search alone clears the search."""
    await state.store.set_search_query(" ".join(args))
    return render_tasks(state)


async def cmd_tasks(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    await state.store.fetch_tasks()
    return render_tasks(state)


async def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    title = " ".join(args).strip()
    if not title:
        return "Usage: /add <title>"
    store = state.store
    if not store.lists:
        await store.fetch_lists()
    target = store.selected_list or store.default_list
    if target is None:
        return "No list to add the task to. Create one with /newlist."
    await store.create_task(CreateTaskInput(title=title, list_id=target.id))
    return render_tasks(state)


async def cmd_open(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        await state.store.select_task(None)
        return "Selection cleared."
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No such task: {args[0]}. Use /tasks."
    await state.store.select_task(task)
    return render_task_detail(state, task)


_EDIT_USAGE = (
    "Usage: /edit <ref> key=value ...\n"
    "  keys: title, note, due, start, remind (YYYY-MM-DD), list (<list ref>),\n"
    "        repeat (daily | weekly:mon,wed | monthly:1,15 | yearly)\n"
    "  use _ for spaces in values, e.g. title=Buy_milk"
)


async def cmd_edit(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return _EDIT_USAGE
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No such task: {args[0]}. Use /tasks."

    data = UpdateTaskInput(id=task.id)
    try:
        for pair in args[1:]:
            key, sep, value = pair.partition("=")
            if not sep:
                return _EDIT_USAGE
            value = value.replace("_", " ")
            key = key.lower()
            if key == "title":
                data.title = value
            elif key in ("note", "content"):
                data.content = value
            elif key == "due":
                data.due_date = _date_arg(value)
            elif key == "start":
                data.start_date = _date_arg(value)
            elif key == "remind":
                data.remind_time = _date_arg(value)
            elif key == "repeat":
                data.repeat_rule = parse_repeat_arg(value)
            elif key == "list":
                lst = _resolve_list(state, value)
                if lst is None:
                    return f"No such list: {value}. Use /lists."
                data.list_id = lst.id
            else:
                return _EDIT_USAGE
    except ValueError as e:
        return f"Invalid value: {e}"

    updated = await state.store.update_task(data)
    return render_task_detail(state, updated)


async def cmd_done(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    task = _resolve_task(state, args[0]) if args else None
    if task is None:
        return "Usage: /done <ref>"
    await state.store.toggle_task_completed(task.id)
    return render_tasks(state)


async def cmd_star(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    task = _resolve_task(state, args[0]) if args else None
    if task is None:
        return "Usage: /star <ref>"
    await state.store.toggle_task_important(task.id)
    return render_tasks(state)


async def cmd_rm(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    task = _resolve_task(state, args[0]) if args else None
    if task is None:
        return "Usage: /rm <ref>"
    await state.store.delete_task(task.id)
    return render_tasks(state)


_SUB_USAGE = (
    "Subtasks of the opened task:\n"
    "  /sub add <title>\n"
    "  /sub done <n>\n"
    "  /sub rename <n> <title>\n"
    "  /sub rm <n>"
)


async def cmd_sub(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    store = state.store
    task = store.selected_task
    if task is None:
        return "Open a task first: /open <ref>"
    if not args:
        return _SUB_USAGE

    sub = args[0].lower()
    rest = args[1:]

    if sub == "add":
        title = " ".join(rest).strip()
        if not title:
            return _SUB_USAGE
        await store.create_subtask(CreateSubtaskInput(task_id=task.id, title=title))
        return render_task_detail(state, store.selected_task or task)

    if not rest:
        return _SUB_USAGE
    subtask_id = _resolve_ref(rest[0], state.subtask_view, [s.id for s in store.subtasks_for(task.id)])
    if subtask_id is None:
        return f"No such subtask: {rest[0]}"

    if sub == "done":
        await store.toggle_subtask_completed(subtask_id)
    elif sub == "rename":
        title = " ".join(rest[1:]).strip()
        if not title:
            return _SUB_USAGE
        await store.update_subtask(UpdateSubtaskInput(id=subtask_id, title=title))
    elif sub in ("rm", "del"):
        await store.delete_subtask(subtask_id)
    else:
        return _SUB_USAGE
    return render_task_detail(state, store.selected_task or task)


async def cmd_export(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if args:
        path = Path(args[0]).expanduser()
    else:
        export_dir = Path(getattr(state.settings, "export_dir", "."))
        path = export_dir / f"itodo-export-{date.today().isoformat()}.json"
    if emit is not None:
        emit(f"Exporting to {path}...")
    await state.store.export_tasks(str(path))
    return f"Exported to {path}"


async def cmd_import(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /import <path>"
    path = Path(args[0]).expanduser()
    try:
        payload = path.read_text("utf-8")
    except OSError as e:
        return f"Cannot read {path}: {e}"
    if emit is not None:
        emit(f"Importing {path}...")
    imported = await state.store.import_tasks(payload)
    return f"Imported {len(imported)} tasks.\n" + render_tasks(state)


async def cmd_error(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /error        -> show the last recorded error
    /error clear  -> reset it
    """
    if args and args[0].lower() == "clear":
        state.store.clear_error()
        return "Error cleared."
    return f"Last error: {state.store.error or 'none'}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show backend and current view.")
registry.register("lists", cmd_lists, help_text="Show all lists.")
registry.register("list", cmd_list, help_text="Show a list's tasks: /list <ref> (no ref = all tasks).")
registry.register("newlist", cmd_newlist, help_text="Create a list: /newlist <name>.")
registry.register("rmlist", cmd_rmlist, help_text="Delete a list and its tasks: /rmlist <ref>.")
registry.register(
    "filter", cmd_filter, help_text="Switch filter: /filter all|today|planned|important|completed."
)
registry.register("search", cmd_search, help_text="Search all tasks: /search <text> (empty clears).")
registry.register("tasks", cmd_tasks, help_text="Refresh and show the current view.", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task to the current (or default) list.")
registry.register("open", cmd_open, help_text="Show task details and subtasks: /open <ref>.")
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <ref> key=value ...")
registry.register("done", cmd_done, help_text="Toggle completed: /done <ref>.")
registry.register("star", cmd_star, help_text="Toggle important: /star <ref>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <ref>.")
registry.register("sub", cmd_sub, help_text="Subtasks of the opened task: /sub add|done|rename|rm.")
registry.register("export", cmd_export, help_text="Export tasks to JSON: /export [path].")
registry.register("import", cmd_import, help_text="Import tasks from JSON: /import <path>.")
registry.register("error", cmd_error, help_text="Show or clear the last error: /error [clear].")
