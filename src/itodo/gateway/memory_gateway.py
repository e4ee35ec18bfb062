# src/itodo/gateway/memory_gateway.py

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from ..core.errors import GatewayError
from ..tasks.task_models import (
    CreateListInput,
    CreateSubtaskInput,
    CreateTaskInput,
    Subtask,
    Task,
    TaskList,
    UpdateListInput,
    UpdateSubtaskInput,
    UpdateTaskInput,
    parse_wire_date,
)

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
DEFAULT_LIST_NAME = "My Day"

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


class OfflineGateway:
    """
    In-process backend used for demos without a remote server, and by tests.

    It honors the same command contract as the remote backend (ordering,
    today/planned predicates, cascades, default-list protection) but keeps
    everything in memory; nothing survives the process.
    """

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        default_list_name: str = DEFAULT_LIST_NAME,
        latency_seconds: float = 0.0,
    ) -> None:
        self._clock = clock or _utc_now
        self._latency = max(0.0, float(latency_seconds))
        self._lists: dict[str, TaskList] = {}
        self._tasks: dict[str, Task] = {}
        self._subtasks: dict[str, Subtask] = {}
        self._last_ts: datetime | None = None

        default = TaskList(
            id=str(uuid.uuid4()),
            name=default_list_name,
            created_at=self._now(),
            order=0,
            is_default=True,
            color="#0078D4",
            icon="sun",
        )
        self._lists[default.id] = default

    # ---- helpers ----

    def _now(self) -> str:
        # Strictly increasing, so ordering by timestamp is stable even with a frozen clock.
        ts = self._clock()
        if self._last_ts is not None and ts <= self._last_ts:
            ts = self._last_ts + timedelta(microseconds=1)
        self._last_ts = ts
        return _iso(ts)

    def _today(self) -> date:
        return self._clock().astimezone(timezone.utc).date()

    async def _roundtrip(self) -> None:
        await asyncio.sleep(self._latency)

    def _get_list(self, list_id: str, command: str) -> TaskList:
        lst = self._lists.get(list_id)
        if lst is None:
            raise GatewayError(f"List not found: {list_id}", command=command)
        return lst

    def _get_task(self, task_id: str, command: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise GatewayError(f"Task not found: {task_id}", command=command)
        return task

    def _get_subtask(self, subtask_id: str, command: str) -> Subtask:
        sub = self._subtasks.get(subtask_id)
        if sub is None:
            raise GatewayError(f"Subtask not found: {subtask_id}", command=command)
        return sub

    @staticmethod
    def _open_first(tasks: list[Task]) -> list[Task]:
        # is_completed ASC, created_at DESC
        out = sorted(tasks, key=lambda t: t.created_at, reverse=True)
        return sorted(out, key=lambda t: t.is_completed)

    def _list_tasks(self, list_id: str | None) -> list[Task]:
        return [t for t in self._tasks.values() if list_id is None or t.list_id == list_id]

    def _drop_task(self, task_id: str) -> None:
        self._tasks.pop(task_id, None)
        for sid in [s.id for s in self._subtasks.values() if s.task_id == task_id]:
            del self._subtasks[sid]

    # ---- lists ----

    async def get_lists(self) -> list[TaskList]:
        await self._roundtrip()
        return sorted(self._lists.values(), key=lambda lst: (lst.order, lst.created_at))

    async def create_list(self, data: CreateListInput) -> TaskList:
        await self._roundtrip()
        if not data.name or not data.name.strip():
            raise GatewayError("name is required", command="create_list")
        order = max((lst.order for lst in self._lists.values()), default=0) + 1
        lst = TaskList(
            id=str(uuid.uuid4()),
            name=data.name,
            created_at=self._now(),
            order=order,
            is_default=False,
            color=data.color,
            icon=data.icon,
        )
        self._lists[lst.id] = lst
        return replace(lst)

    async def update_list(self, data: UpdateListInput) -> TaskList:
        await self._roundtrip()
        lst = self._get_list(data.id, "update_list")
        if data.name is not None:
            lst.name = data.name
        if data.color is not None:
            lst.color = data.color
        if data.icon is not None:
            lst.icon = data.icon
        if data.order is not None:
            lst.order = data.order
        return replace(lst)

    async def delete_list(self, list_id: str) -> None:
        await self._roundtrip()
        lst = self._get_list(list_id, "delete_list")
        if lst.is_default:
            raise GatewayError("Cannot delete default list", command="delete_list")
        for task in self._list_tasks(list_id):
            self._drop_task(task.id)
        del self._lists[list_id]

    # ---- task queries ----

    async def get_tasks(self, list_id: str | None = None) -> list[Task]:
        await self._roundtrip()
        return [replace(t) for t in self._open_first(self._list_tasks(list_id))]

    async def get_today_tasks(self) -> list[Task]:
        await self._roundtrip()
        today = self._today()
        hits = [t for t in self._tasks.values() if parse_wire_date(t.due_date) == today]
        return [replace(t) for t in self._open_first(hits)]

    async def get_planned_tasks(self) -> list[Task]:
        await self._roundtrip()
        today = self._today()

        def _after_today(raw: str | None) -> bool:
            d = parse_wire_date(raw)
            return d is not None and d > today

        hits = [t for t in self._tasks.values() if _after_today(t.due_date) or _after_today(t.start_date)]
        hits.sort(key=lambda t: t.created_at, reverse=True)
        hits.sort(key=lambda t: (t.due_date is None, t.due_date or ""))
        return [replace(t) for t in hits]

    async def get_important_tasks(self) -> list[Task]:
        await self._roundtrip()
        hits = [t for t in self._tasks.values() if t.is_important]
        return [replace(t) for t in self._open_first(hits)]

    async def get_completed_tasks(self) -> list[Task]:
        await self._roundtrip()
        hits = [t for t in self._tasks.values() if t.is_completed]
        hits.sort(key=lambda t: t.updated_at, reverse=True)
        return [replace(t) for t in hits]

    async def search_tasks(self, query: str) -> list[Task]:
        await self._roundtrip()
        needle = (query or "").lower()
        hits = [
            t
            for t in self._tasks.values()
            if needle in t.title.lower() or needle in (t.content or "").lower()
        ]
        return [replace(t) for t in self._open_first(hits)]

    # ---- task mutations ----

    async def create_task(self, data: CreateTaskInput) -> Task:
        await self._roundtrip()
        if not data.title or not data.title.strip():
            raise GatewayError("title is required", command="create_task")
        self._get_list(data.list_id, "create_task")
        now = self._now()
        task = Task.from_wire(
            {
                **data.to_wire(),
                "id": str(uuid.uuid4()),
                "is_completed": False,
                "is_important": False,
                "created_at": now,
                "updated_at": now,
            }
        )
        self._tasks[task.id] = task
        return replace(task)

    async def update_task(self, data: UpdateTaskInput) -> Task:
        await self._roundtrip()
        current = self._get_task(data.id, "update_task")
        if data.list_id is not None:
            self._get_list(data.list_id, "update_task")
        merged = {**current.to_wire(), **data.to_wire(), "updated_at": self._now()}
        task = Task.from_wire(merged)
        self._tasks[task.id] = task
        return replace(task)

    async def delete_task(self, task_id: str) -> None:
        await self._roundtrip()
        self._get_task(task_id, "delete_task")
        self._drop_task(task_id)

    async def toggle_task_important(self, task_id: str) -> Task:
        await self._roundtrip()
        current = self._get_task(task_id, "toggle_task_important")
        task = replace(current, is_important=not current.is_important, updated_at=self._now())
        self._tasks[task_id] = task
        return replace(task)

    async def toggle_task_completed(self, task_id: str) -> Task:
        await self._roundtrip()
        current = self._get_task(task_id, "toggle_task_completed")
        task = replace(current, is_completed=not current.is_completed, updated_at=self._now())
        self._tasks[task_id] = task
        return replace(task)

    # ---- subtasks ----

    async def get_subtasks(self, task_id: str) -> list[Subtask]:
        await self._roundtrip()
        hits = [s for s in self._subtasks.values() if s.task_id == task_id]
        return [replace(s) for s in sorted(hits, key=lambda s: s.created_at)]

    async def get_all_subtasks(self) -> list[Subtask]:
        await self._roundtrip()
        return [replace(s) for s in sorted(self._subtasks.values(), key=lambda s: s.created_at)]

    async def create_subtask(self, data: CreateSubtaskInput) -> Subtask:
        await self._roundtrip()
        self._get_task(data.task_id, "create_subtask")
        if not data.title or not data.title.strip():
            raise GatewayError("title is required", command="create_subtask")
        now = self._now()
        sub = Subtask(
            id=str(uuid.uuid4()),
            task_id=data.task_id,
            title=data.title,
            created_at=now,
            updated_at=now,
        )
        self._subtasks[sub.id] = sub
        return replace(sub)

    async def update_subtask(self, data: UpdateSubtaskInput) -> Subtask:
        await self._roundtrip()
        current = self._get_subtask(data.id, "update_subtask")
        sub = replace(
            current,
            title=current.title if data.title is None else data.title,
            is_completed=current.is_completed if data.is_completed is None else data.is_completed,
            updated_at=self._now(),
        )
        self._subtasks[sub.id] = sub
        return replace(sub)

    async def delete_subtask(self, subtask_id: str) -> None:
        await self._roundtrip()
        self._get_subtask(subtask_id, "delete_subtask")
        del self._subtasks[subtask_id]

    async def toggle_subtask_completed(self, subtask_id: str) -> Subtask:
        await self._roundtrip()
        current = self._get_subtask(subtask_id, "toggle_subtask_completed")
        sub = replace(current, is_completed=not current.is_completed, updated_at=self._now())
        self._subtasks[sub.id] = sub
        return replace(sub)

    # ---- import / export ----

    def _export_document(self, list_id: str | None) -> dict[str, Any]:
        return {
            "version": EXPORT_VERSION,
            "export_date": _iso(self._clock()),
            "tasks": [t.to_wire() for t in self._open_first(self._list_tasks(list_id))],
            "lists": [lst.to_wire() for lst in self._lists.values()],
        }

    async def export_tasks_to_path(self, file_path: str, list_id: str | None = None) -> None:
        await self._roundtrip()
        doc = self._export_document(list_id)
        path = Path(file_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(doc, ensure_ascii=False, indent=2), "utf-8")
        except OSError as e:
            raise GatewayError(f"Failed to write file: {e}", command="export_tasks_to_path") from e
        logger.info("Exported %d tasks to %s", len(doc["tasks"]), path)

    async def import_tasks(self, json_data: str) -> list[Task]:
        await self._roundtrip()
        try:
            doc = json.loads(json_data)
        except ValueError as e:
            raise GatewayError(f"Failed to parse import data: {e}", command="import_tasks") from e

        if isinstance(doc, list):
            raw_lists: list[Any] = []
            raw_tasks: list[Any] = doc
        elif isinstance(doc, dict):
            raw_lists = doc.get("lists") or []
            raw_tasks = doc.get("tasks") or []
        else:
            raise GatewayError("Failed to parse import data: expected object", command="import_tasks")

        try:
            lists = [TaskList.from_wire(x) for x in raw_lists]
            tasks = [Task.from_wire(x) for x in raw_tasks]
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError(f"Failed to parse import data: {e}", command="import_tasks") from e

        for lst in lists:
            if lst.id not in self._lists:
                # Imported lists never take over the default flag.
                self._lists[lst.id] = replace(lst, is_default=False)

        imported: list[Task] = []
        for src in tasks:
            if src.list_id not in self._lists:
                raise GatewayError(f"List not found: {src.list_id}", command="import_tasks")
            now = self._now()
            task = replace(src, id=str(uuid.uuid4()), created_at=now, updated_at=now)
            self._tasks[task.id] = task
            imported.append(replace(task))

        logger.info("Imported %d tasks", len(imported))
        return imported

    async def aclose(self) -> None:
        return
