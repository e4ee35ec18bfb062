# src/itodo/store/subtask_cache.py

from __future__ import annotations

from collections.abc import Iterable

from ..tasks.task_models import Subtask


class SubtaskCache:
    """
    Subtasks partitioned by parent task id.

    Keeps a child -> parent index next to the partitions so updates and
    toggles locate their partition without scanning every task.
    """

    def __init__(self) -> None:
        self._by_task: dict[str, list[Subtask]] = {}
        self._parent_of: dict[str, str] = {}

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._by_task

    def get(self, task_id: str) -> list[Subtask]:
        return list(self._by_task.get(task_id, ()))

    def parent_of(self, subtask_id: str) -> str | None:
        return self._parent_of.get(subtask_id)

    def task_ids(self) -> list[str]:
        return list(self._by_task)

    def replace_partition(self, task_id: str, subtasks: Iterable[Subtask]) -> None:
        self.evict(task_id)
        items = list(subtasks)
        self._by_task[task_id] = items
        for s in items:
            self._parent_of[s.id] = task_id

    def replace_all(self, subtasks: Iterable[Subtask]) -> None:
        self.clear()
        for s in subtasks:
            self._by_task.setdefault(s.task_id, []).append(s)
            self._parent_of[s.id] = s.task_id

    def upsert(self, subtask: Subtask) -> None:
        """Splice a subtask returned by the backend into its partition."""
        old_parent = self._parent_of.get(subtask.id)
        if old_parent is not None and old_parent != subtask.task_id:
            self._drop_child(old_parent, subtask.id)

        items = self._by_task.setdefault(subtask.task_id, [])
        for i, existing in enumerate(items):
            if existing.id == subtask.id:
                items[i] = subtask
                break
        else:
            items.append(subtask)
        self._parent_of[subtask.id] = subtask.task_id

    def remove(self, subtask_id: str) -> str | None:
        parent = self._parent_of.pop(subtask_id, None)
        if parent is not None:
            self._drop_child(parent, subtask_id)
        return parent

    def evict(self, task_id: str) -> None:
        for s in self._by_task.pop(task_id, ()):
            self._parent_of.pop(s.id, None)

    def clear(self) -> None:
        self._by_task.clear()
        self._parent_of.clear()

    def _drop_child(self, task_id: str, subtask_id: str) -> None:
        items = self._by_task.get(task_id)
        if items is None:
            return
        self._by_task[task_id] = [s for s in items if s.id != subtask_id]
