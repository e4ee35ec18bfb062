# src/itodo/store/domain_store.py

"""
Domain store.

In-memory mirror of lists, the active task collection and per-task subtask
partitions. Every mutation goes through the gateway first and then refreshes
the smallest affected slice:

- list mutations    -> refetch the list collection
- task mutations    -> refetch the active task collection (filter dispatcher)
- toggles           -> splice the returned task in place, no refetch
- subtask mutations -> splice the returned subtask into its partition, no refetch

Nothing is patched optimistically, so a failed call leaves state untouched.
Mutations record the failure in ``error`` and re-raise; queries only record.
Query responses carry a per-collection request token and are dropped when a
newer query for the same collection was issued in the meantime. Splices made
while a query is in flight are replayed over its response when it commits.
Point edits carry a token on the edited entity, so a response to an older
update or toggle never replaces the result of a newer one.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from ..core.ports import Gateway
from ..tasks.filters import FilterState, resolve_query, run_query, select_filter, select_list, set_search
from ..tasks.task_models import (
    CreateListInput,
    CreateSubtaskInput,
    CreateTaskInput,
    FilterType,
    Subtask,
    Task,
    TaskList,
    UpdateListInput,
    UpdateSubtaskInput,
    UpdateTaskInput,
)
from .sequencing import RequestSequencer, replay
from .subtask_cache import SubtaskCache

logger = logging.getLogger(__name__)

Listener = Callable[["DomainStore"], None]

LISTS_KEY = "lists"
TASKS_KEY = "tasks"
ALL_SUBTASKS_KEY = "subtasks:*"


def _subtasks_key(task_id: str) -> str:
    return f"subtasks:{task_id}"


def _task_edit_key(task_id: str) -> str:
    return f"task:{task_id}"


def _subtask_edit_key(subtask_id: str) -> str:
    return f"subtask:{subtask_id}"


def _sort_lists(lists: list[TaskList]) -> list[TaskList]:
    return sorted(lists, key=lambda lst: (lst.order, lst.created_at))


class DomainStore:
    def __init__(self, gateway: Gateway) -> None:
        self._gateway = gateway
        self._seq = RequestSequencer()
        self._subtasks = SubtaskCache()
        self._listeners: list[Listener] = []

        self.lists: list[TaskList] = []
        self.tasks: list[Task] = []
        self.selected_task: Task | None = None
        self.filter_state = FilterState()
        self.is_loading = False
        self.error: str | None = None

    # ---- read-only views ----

    @property
    def filter(self) -> FilterType:
        return self.filter_state.filter

    @property
    def selected_list_id(self) -> str | None:
        return self.filter_state.selected_list_id

    @property
    def search_query(self) -> str:
        return self.filter_state.search_query

    @property
    def selected_list(self) -> TaskList | None:
        return self.find_list(self.selected_list_id) if self.selected_list_id else None

    @property
    def default_list(self) -> TaskList | None:
        for lst in self.lists:
            if lst.is_default:
                return lst
        return None

    def find_list(self, list_id: str) -> TaskList | None:
        for lst in self.lists:
            if lst.id == list_id:
                return lst
        return None

    def find_task(self, task_id: str) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    def subtasks_for(self, task_id: str) -> list[Subtask]:
        return self._subtasks.get(task_id)

    def has_subtasks_loaded(self, task_id: str) -> bool:
        return task_id in self._subtasks

    # ---- observers ----

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change callback; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Store listener failed")

    def clear_error(self) -> None:
        self.error = None
        self._notify()

    # ---- operation brackets ----

    def _record_error(self, op: str, exc: BaseException) -> None:
        self.error = str(exc) or exc.__class__.__name__
        logger.warning("%s failed: %s", op, self.error)

    @contextlib.asynccontextmanager
    async def _mutation(self, op: str, *, busy: bool = True) -> AsyncIterator[None]:
        self.error = None
        if busy:
            self.is_loading = True
        try:
            yield
        except Exception as exc:
            self._record_error(op, exc)
            raise
        finally:
            if busy:
                self.is_loading = False
            self._notify()

    @contextlib.asynccontextmanager
    async def _query(self, op: str, *, busy: bool = True) -> AsyncIterator[None]:
        self.error = None
        if busy:
            self.is_loading = True
        try:
            yield
        except Exception as exc:
            self._record_error(op, exc)
        finally:
            if busy:
                self.is_loading = False
            self._notify()

    async def _refresh(self, loader: Callable[[], Awaitable[bool]], op: str) -> bool:
        """Refetch after a successful write; failures are recorded, not raised."""
        try:
            return await loader()
        except Exception as exc:
            self._record_error(op, exc)
            return False

    # ---- loaders (raise on failure) ----

    async def _load_lists(self) -> bool:
        token = self._seq.issue(LISTS_KEY)
        lists = await self._gateway.get_lists()
        if not self._seq.is_current(LISTS_KEY, token):
            logger.debug("Discarding stale lists response token=%s", token)
            return False
        self._seq.settle(LISTS_KEY)
        self.lists = _sort_lists(lists)
        logger.debug("Lists committed token=%s count=%d", token, len(lists))
        return True

    async def _load_tasks(self) -> bool:
        query = resolve_query(self.filter_state)
        token = self._seq.issue(TASKS_KEY)
        tasks = await run_query(self._gateway, query)
        if not self._seq.is_current(TASKS_KEY, token):
            logger.debug("Discarding stale tasks response token=%s query=%s", token, query.command)
            return False
        self.tasks = replay(list(tasks), self._seq.settle(TASKS_KEY), append=False)
        logger.debug(
            "Tasks committed token=%s query=%s count=%d", token, query.command, len(tasks)
        )
        return True

    async def _load_subtasks(self, task_id: str) -> bool:
        key = _subtasks_key(task_id)
        token = self._seq.issue(key)
        subtasks = await self._gateway.get_subtasks(task_id)
        if not self._seq.is_current(key, token):
            logger.debug("Discarding stale subtasks response task_id=%s token=%s", task_id, token)
            return False
        late = self._seq.settle(key)
        self._subtasks.replace_partition(task_id, replay(list(subtasks), late, append=True))
        return True

    # ---- queries ----

    async def load(self) -> None:
        """Initial sync: lists first, then the active task collection."""
        await self.fetch_lists()
        await self.fetch_tasks()

    async def fetch_lists(self) -> None:
        async with self._query("fetch_lists"):
            await self._load_lists()

    async def fetch_tasks(self) -> None:
        async with self._query("fetch_tasks"):
            await self._load_tasks()

    async def fetch_subtasks(self, task_id: str) -> None:
        async with self._query("fetch_subtasks", busy=False):
            await self._load_subtasks(task_id)

    async def fetch_all_subtasks(self) -> None:
        async with self._query("fetch_all_subtasks", busy=False):
            before = self._seq.snapshot()
            token = self._seq.issue(ALL_SUBTASKS_KEY)
            subtasks = await self._gateway.get_all_subtasks()
            if not self._seq.is_current(ALL_SUBTASKS_KEY, token):
                logger.debug("Discarding stale all-subtasks response token=%s", token)
                return

            grouped: dict[str, list[Subtask]] = {}
            late = self._seq.settle(ALL_SUBTASKS_KEY)
            for s in replay(list(subtasks), late, append=True):
                grouped.setdefault(s.task_id, []).append(s)

            # A partition fetched after this request started is fresher; keep it.
            for task_id in set(grouped) | set(self._subtasks.task_ids()):
                key = _subtasks_key(task_id)
                if self._seq.current(key) != before.get(key, 0):
                    continue
                self._subtasks.replace_partition(task_id, grouped.get(task_id, []))

    # ---- selection ----

    async def select_list(self, list_id: str | None) -> None:
        self.filter_state = select_list(self.filter_state, list_id)
        await self.fetch_tasks()

    async def select_filter(self, filter_type: FilterType | str) -> None:
        self.filter_state = select_filter(self.filter_state, FilterType.parse(str(filter_type)))
        await self.fetch_tasks()

    async def set_search_query(self, query: str) -> None:
        self.filter_state = set_search(self.filter_state, query)
        await self.fetch_tasks()

    async def select_task(self, task: Task | str | None) -> None:
        if isinstance(task, str):
            task = self.find_task(task)
        self.selected_task = task
        self._notify()
        if task is not None:
            await self.fetch_subtasks(task.id)

    # ---- list mutations ----

    async def create_list(self, data: CreateListInput) -> TaskList:
        async with self._mutation("create_list"):
            created = await self._gateway.create_list(data)
            await self._refresh(self._load_lists, "create_list")
        logger.info("List created id=%s name=%r", created.id, created.name)
        return created

    async def update_list(self, data: UpdateListInput) -> TaskList:
        async with self._mutation("update_list"):
            updated = await self._gateway.update_list(data)
            await self._refresh(self._load_lists, "update_list")
        logger.info("List updated id=%s", updated.id)
        return updated

    async def delete_list(self, list_id: str) -> None:
        async with self._mutation("delete_list"):
            await self._gateway.delete_list(list_id)

            # The backend drops the list's tasks; drop their subtasks locally.
            for t in self.tasks:
                if t.list_id == list_id:
                    self._subtasks.evict(t.id)
            if self.selected_task is not None and self.selected_task.list_id == list_id:
                self._subtasks.evict(self.selected_task.id)
                self.selected_task = None

            await self._refresh(self._load_lists, "delete_list")
            if self.selected_list_id == list_id:
                self.filter_state = FilterState()
            await self._refresh(self._load_tasks, "delete_list")
        logger.info("List deleted id=%s", list_id)

    # ---- task mutations ----

    async def create_task(self, data: CreateTaskInput) -> Task:
        async with self._mutation("create_task"):
            created = await self._gateway.create_task(data)
            await self._refresh(self._load_tasks, "create_task")
        logger.info("Task created id=%s list_id=%s", created.id, created.list_id)
        return created

    async def update_task(self, data: UpdateTaskInput) -> Task:
        key = _task_edit_key(data.id)
        token = self._seq.issue(key, track_edits=False)
        async with self._mutation("update_task"):
            updated = await self._gateway.update_task(data)
            refreshed = await self._refresh(self._load_tasks, "update_task")
            applied = self._seq.claim(key, token)
            if self.selected_task is not None and self.selected_task.id == updated.id:
                fresh = self.find_task(updated.id) if refreshed else None
                if fresh is not None:
                    self.selected_task = fresh
                elif applied:
                    self.selected_task = updated
        logger.info("Task updated id=%s", updated.id)
        return updated

    async def delete_task(self, task_id: str) -> None:
        key = _task_edit_key(task_id)
        token = self._seq.issue(key, track_edits=False)
        async with self._mutation("delete_task"):
            await self._gateway.delete_task(task_id)
            self._seq.claim(key, token)
            self._subtasks.evict(task_id)
            if self.selected_task is not None and self.selected_task.id == task_id:
                self.selected_task = None
            await self._refresh(self._load_tasks, "delete_task")
        logger.info("Task deleted id=%s", task_id)

    def _splice_task(self, task: Task, token: int) -> bool:
        if not self._seq.claim(_task_edit_key(task.id), token):
            logger.debug("Discarding stale task response id=%s token=%s", task.id, token)
            return False
        self._seq.note(TASKS_KEY, task.id, task)
        self.tasks = [task if t.id == task.id else t for t in self.tasks]
        if self.selected_task is not None and self.selected_task.id == task.id:
            self.selected_task = task
        return True

    async def toggle_task_completed(self, task_id: str) -> Task:
        token = self._seq.issue(_task_edit_key(task_id), track_edits=False)
        async with self._mutation("toggle_task_completed"):
            task = await self._gateway.toggle_task_completed(task_id)
            self._splice_task(task, token)
        return task

    async def toggle_task_important(self, task_id: str) -> Task:
        token = self._seq.issue(_task_edit_key(task_id), track_edits=False)
        async with self._mutation("toggle_task_important"):
            task = await self._gateway.toggle_task_important(task_id)
            self._splice_task(task, token)
        return task

    # ---- subtask mutations (best-effort, no busy flag) ----

    def _splice_subtask(self, subtask: Subtask, token: int | None = None) -> bool:
        if token is not None and not self._seq.claim(_subtask_edit_key(subtask.id), token):
            logger.debug("Discarding stale subtask response id=%s token=%s", subtask.id, token)
            return False
        self._subtasks.upsert(subtask)
        self._seq.note(_subtasks_key(subtask.task_id), subtask.id, subtask)
        self._seq.note(ALL_SUBTASKS_KEY, subtask.id, subtask)
        return True

    async def create_subtask(self, data: CreateSubtaskInput) -> Subtask:
        async with self._mutation("create_subtask", busy=False):
            subtask = await self._gateway.create_subtask(data)
            self._splice_subtask(subtask)
        return subtask

    async def update_subtask(self, data: UpdateSubtaskInput) -> Subtask:
        token = self._seq.issue(_subtask_edit_key(data.id), track_edits=False)
        async with self._mutation("update_subtask", busy=False):
            subtask = await self._gateway.update_subtask(data)
            self._splice_subtask(subtask, token)
        return subtask

    async def delete_subtask(self, subtask_id: str) -> None:
        key = _subtask_edit_key(subtask_id)
        token = self._seq.issue(key, track_edits=False)
        async with self._mutation("delete_subtask", busy=False):
            await self._gateway.delete_subtask(subtask_id)
            self._seq.claim(key, token)
            parent = self._subtasks.remove(subtask_id)
            if parent is not None:
                self._seq.note(_subtasks_key(parent), subtask_id, None)
            self._seq.note(ALL_SUBTASKS_KEY, subtask_id, None)

    async def toggle_subtask_completed(self, subtask_id: str) -> Subtask:
        token = self._seq.issue(_subtask_edit_key(subtask_id), track_edits=False)
        async with self._mutation("toggle_subtask_completed", busy=False):
            subtask = await self._gateway.toggle_subtask_completed(subtask_id)
            self._splice_subtask(subtask, token)
        return subtask

    # ---- import / export ----

    async def export_tasks(self, file_path: str, *, list_id: str | None = None) -> None:
        """Export ``list_id`` (default: the selected list, else everything)."""
        scope = list_id if list_id is not None else self.selected_list_id
        async with self._mutation("export_tasks"):
            await self._gateway.export_tasks_to_path(file_path, scope)
        logger.info("Exported tasks to %s list_id=%s", file_path, scope)

    async def import_tasks(self, json_data: str) -> list[Task]:
        async with self._mutation("import_tasks"):
            imported = await self._gateway.import_tasks(json_data)
            await self._refresh(self._load_lists, "import_tasks")
            await self._refresh(self._load_tasks, "import_tasks")
        logger.info("Imported %d tasks", len(imported))
        return imported
