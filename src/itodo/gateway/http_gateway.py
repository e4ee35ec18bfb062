# src/itodo/gateway/http_gateway.py

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

import httpx

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
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _make_timeout(total_s: float) -> httpx.Timeout:
    return httpx.Timeout(total_s, connect=min(5.0, total_s))


def _error_text(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        msg = body.get("error") or body.get("message")
        if msg:
            return str(msg)
    if isinstance(body, str) and body:
        return body
    text = resp.text.strip()
    return text or f"HTTP {resp.status_code}"


class HttpGateway:
    """
    Remote command gateway.

    Every command is ``POST {base_url}/commands/{name}`` with a JSON object of
    named arguments; the response body is the command's JSON result. Any
    non-2xx status, transport failure or malformed body raises GatewayError.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url or not base_url.strip():
            raise ValueError("base_url is required")
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=_make_timeout(float(timeout_seconds)),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- transport ----

    async def _invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        try:
            resp = await self._client.post(f"/commands/{command}", json=args or {})
        except httpx.HTTPError as e:
            logger.debug("Gateway transport error command=%s", command, exc_info=True)
            raise GatewayError(f"Backend unreachable: {e}", command=command) from e

        if resp.status_code >= 400:
            raise GatewayError(_error_text(resp), command=command)

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise GatewayError("Invalid JSON in backend response", command=command) from e

    async def _one(self, command: str, args: dict[str, Any], decode: Callable[[dict[str, Any]], T]) -> T:
        data = await self._invoke(command, args)
        if not isinstance(data, dict):
            raise GatewayError("Expected an object in backend response", command=command)
        try:
            return decode(data)
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError(f"Malformed entity: {e}", command=command) from e

    async def _many(
        self, command: str, args: dict[str, Any] | None, decode: Callable[[dict[str, Any]], T]
    ) -> list[T]:
        data = await self._invoke(command, args)
        if not isinstance(data, list):
            raise GatewayError("Expected an array in backend response", command=command)
        try:
            return [decode(x) for x in data]
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError(f"Malformed entity: {e}", command=command) from e

    # ---- lists ----

    async def get_lists(self) -> list[TaskList]:
        return await self._many("get_lists", None, TaskList.from_wire)

    async def create_list(self, data: CreateListInput) -> TaskList:
        return await self._one("create_list", {"input": data.to_wire()}, TaskList.from_wire)

    async def update_list(self, data: UpdateListInput) -> TaskList:
        return await self._one("update_list", {"input": data.to_wire()}, TaskList.from_wire)

    async def delete_list(self, list_id: str) -> None:
        await self._invoke("delete_list", {"id": list_id})

    # ---- task queries ----

    async def get_tasks(self, list_id: str | None = None) -> list[Task]:
        return await self._many("get_tasks", {"listId": list_id}, Task.from_wire)

    async def get_today_tasks(self) -> list[Task]:
        return await self._many("get_today_tasks", None, Task.from_wire)

    async def get_planned_tasks(self) -> list[Task]:
        return await self._many("get_planned_tasks", None, Task.from_wire)

    async def get_important_tasks(self) -> list[Task]:
        return await self._many("get_important_tasks", None, Task.from_wire)

    async def get_completed_tasks(self) -> list[Task]:
        return await self._many("get_completed_tasks", None, Task.from_wire)

    async def search_tasks(self, query: str) -> list[Task]:
        return await self._many("search_tasks", {"query": query}, Task.from_wire)

    # ---- task mutations ----

    async def create_task(self, data: CreateTaskInput) -> Task:
        return await self._one("create_task", {"input": data.to_wire()}, Task.from_wire)

    async def update_task(self, data: UpdateTaskInput) -> Task:
        return await self._one("update_task", {"input": data.to_wire()}, Task.from_wire)

    async def delete_task(self, task_id: str) -> None:
        await self._invoke("delete_task", {"id": task_id})

    async def toggle_task_important(self, task_id: str) -> Task:
        return await self._one("toggle_task_important", {"id": task_id}, Task.from_wire)

    async def toggle_task_completed(self, task_id: str) -> Task:
        return await self._one("toggle_task_completed", {"id": task_id}, Task.from_wire)

    # ---- subtasks ----

    async def get_subtasks(self, task_id: str) -> list[Subtask]:
        return await self._many("get_subtasks", {"taskId": task_id}, Subtask.from_wire)

    async def get_all_subtasks(self) -> list[Subtask]:
        return await self._many("get_all_subtasks", None, Subtask.from_wire)

    async def create_subtask(self, data: CreateSubtaskInput) -> Subtask:
        return await self._one("create_subtask", {"input": data.to_wire()}, Subtask.from_wire)

    async def update_subtask(self, data: UpdateSubtaskInput) -> Subtask:
        return await self._one("update_subtask", {"input": data.to_wire()}, Subtask.from_wire)

    async def delete_subtask(self, subtask_id: str) -> None:
        await self._invoke("delete_subtask", {"id": subtask_id})

    async def toggle_subtask_completed(self, subtask_id: str) -> Subtask:
        return await self._one("toggle_subtask_completed", {"id": subtask_id}, Subtask.from_wire)

    # ---- import / export ----

    async def export_tasks_to_path(self, file_path: str, list_id: str | None = None) -> None:
        await self._invoke("export_tasks_to_path", {"filePath": file_path, "listId": list_id})

    async def import_tasks(self, json_data: str) -> list[Task]:
        return await self._many("import_tasks", {"jsonData": json_data}, Task.from_wire)
