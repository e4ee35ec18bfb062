# src/itodo/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime, timezone
from enum import StrEnum
from typing import Any

from .recurrence import RepeatSpec, parse_repeat_rule


class FilterType(StrEnum):
    """Named task predicates, orthogonal to list scoping."""

    ALL = "all"
    TODAY = "today"
    PLANNED = "planned"
    IMPORTANT = "important"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, raw: str | None) -> FilterType:
        if not raw:
            return cls.ALL
        try:
            return cls(raw.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown filter: {raw!r}") from None


# ---- wire helpers ----


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def date_to_wire(value: date) -> str:
    """Date-only fields travel as midnight UTC."""
    return f"{value.isoformat()}T00:00:00Z"


def parse_wire_date(raw: str | None) -> date | None:
    """Return the calendar date of a wire timestamp (best-effort)."""
    if not raw:
        return None
    s = raw.strip()
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        return None


def _opt_str(v: Any) -> str | None:
    if v is None:
        return None
    return str(v)


# ---- entities ----


@dataclass(slots=True)
class Task:
    id: str
    title: str
    list_id: str
    created_at: str
    updated_at: str

    is_completed: bool = False
    is_important: bool = False
    content: str | None = None
    due_date: str | None = None
    start_date: str | None = None
    remind_time: str | None = None
    repeat_rule: str | None = None

    # Parsed once at the store boundary; never sent back over the wire.
    repeat: RepeatSpec | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Task:
        raw_rule = _opt_str(data.get("repeat_rule"))
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            list_id=str(data["list_id"]),
            created_at=str(data.get("created_at") or ""),
            updated_at=str(data.get("updated_at") or ""),
            is_completed=bool(data.get("is_completed", False)),
            is_important=bool(data.get("is_important", False)),
            content=_opt_str(data.get("content")),
            due_date=_opt_str(data.get("due_date")),
            start_date=_opt_str(data.get("start_date")),
            remind_time=_opt_str(data.get("remind_time")),
            repeat_rule=raw_rule,
            repeat=parse_repeat_rule(raw_rule),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "is_completed": self.is_completed,
            "is_important": self.is_important,
            "due_date": self.due_date,
            "start_date": self.start_date,
            "remind_time": self.remind_time,
            "repeat_rule": self.repeat_rule,
            "list_id": self.list_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(slots=True)
class TaskList:
    """A named container of tasks. Exactly one list is the default one."""

    id: str
    name: str
    created_at: str
    order: int = 0
    is_default: bool = False
    color: str | None = None
    icon: str | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> TaskList:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            created_at=str(data.get("created_at") or ""),
            order=int(data.get("order") or 0),
            is_default=bool(data.get("is_default", False)),
            color=_opt_str(data.get("color")),
            icon=_opt_str(data.get("icon")),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "icon": self.icon,
            "is_default": self.is_default,
            "created_at": self.created_at,
            "order": self.order,
        }


@dataclass(slots=True)
class Subtask:
    id: str
    task_id: str
    title: str
    created_at: str
    updated_at: str
    is_completed: bool = False

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Subtask:
        return cls(
            id=str(data["id"]),
            task_id=str(data["task_id"]),
            title=str(data.get("title") or ""),
            created_at=str(data.get("created_at") or ""),
            updated_at=str(data.get("updated_at") or ""),
            is_completed=bool(data.get("is_completed", False)),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "title": self.title,
            "is_completed": self.is_completed,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


# ---- command inputs ----


class _Payload:
    """Wire encoding for inputs: unset (None) fields are omitted."""

    __slots__ = ()

    def to_wire(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if value is not None:
                out[f.name] = value
        return out


@dataclass(slots=True)
class CreateListInput(_Payload):
    name: str
    color: str | None = None
    icon: str | None = None


@dataclass(slots=True)
class UpdateListInput(_Payload):
    id: str
    name: str | None = None
    color: str | None = None
    icon: str | None = None
    order: int | None = None


@dataclass(slots=True)
class CreateTaskInput(_Payload):
    title: str
    list_id: str
    content: str | None = None
    due_date: str | None = None
    start_date: str | None = None
    remind_time: str | None = None
    repeat_rule: str | None = None


@dataclass(slots=True)
class UpdateTaskInput(_Payload):
    id: str
    title: str | None = None
    content: str | None = None
    is_completed: bool | None = None
    is_important: bool | None = None
    due_date: str | None = None
    start_date: str | None = None
    remind_time: str | None = None
    repeat_rule: str | None = None
    list_id: str | None = None


@dataclass(slots=True)
class CreateSubtaskInput(_Payload):
    task_id: str
    title: str


@dataclass(slots=True)
class UpdateSubtaskInput(_Payload):
    id: str
    title: str | None = None
    is_completed: bool | None = None
