# src/itodo/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The domain store depends on the Gateway Protocol instead of a concrete
backend. This keeps the remote backend swappable and makes testing easier.
"""

from typing import Protocol

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


class Gateway(Protocol):
    """
    Command surface of the task backend.

    Every method is one round trip. Failures raise GatewayError; there is no
    cancellation and no retry at this level.
    """

    # Lists
    async def get_lists(self) -> list[TaskList]: ...
    async def create_list(self, data: CreateListInput) -> TaskList: ...
    async def update_list(self, data: UpdateListInput) -> TaskList: ...
    async def delete_list(self, list_id: str) -> None: ...

    # Task queries
    async def get_tasks(self, list_id: str | None = None) -> list[Task]: ...
    async def get_today_tasks(self) -> list[Task]: ...
    async def get_planned_tasks(self) -> list[Task]: ...
    async def get_important_tasks(self) -> list[Task]: ...
    async def get_completed_tasks(self) -> list[Task]: ...
    async def search_tasks(self, query: str) -> list[Task]: ...

    # Task mutations
    async def create_task(self, data: CreateTaskInput) -> Task: ...
    async def update_task(self, data: UpdateTaskInput) -> Task: ...
    async def delete_task(self, task_id: str) -> None: ...
    async def toggle_task_important(self, task_id: str) -> Task: ...
    async def toggle_task_completed(self, task_id: str) -> Task: ...

    # Subtasks
    async def get_subtasks(self, task_id: str) -> list[Subtask]: ...
    async def get_all_subtasks(self) -> list[Subtask]: ...
    async def create_subtask(self, data: CreateSubtaskInput) -> Subtask: ...
    async def update_subtask(self, data: UpdateSubtaskInput) -> Subtask: ...
    async def delete_subtask(self, subtask_id: str) -> None: ...
    async def toggle_subtask_completed(self, subtask_id: str) -> Subtask: ...

    # Import / export
    async def export_tasks_to_path(self, file_path: str, list_id: str | None = None) -> None: ...
    async def import_tasks(self, json_data: str) -> list[Task]: ...

    async def aclose(self) -> None: ...
