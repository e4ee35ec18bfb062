# src/itodo/tasks/filters.py

"""
Filter dispatcher.

Resolves (filter, selected list, search query) into exactly one canonical
task query. Precedence, highest first:

1. non-empty search query -> full-text search (filter/list ignored)
2. selected list          -> list-scoped fetch
3. today/planned/important/completed -> predicate query
4. otherwise              -> all tasks

Search is an overlay: it does not erase the filter/list selection, which
resumes once the query is cleared. Changing the list or filter axis always
clears the search so the visible set never straddles two modes.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum

from ..core.ports import Gateway
from .task_models import FilterType, Task


@dataclass(slots=True, frozen=True)
class FilterState:
    filter: FilterType = FilterType.ALL
    selected_list_id: str | None = None
    search_query: str = ""

    @property
    def is_searching(self) -> bool:
        return bool(self.search_query.strip())


class QueryKind(StrEnum):
    SEARCH = "search"
    LIST = "list"
    PREDICATE = "predicate"
    ALL = "all"


@dataclass(slots=True, frozen=True)
class TaskQuery:
    """The single query that defines the active task collection."""

    kind: QueryKind
    command: str
    list_id: str | None = None
    text: str | None = None


_PREDICATE_COMMANDS: dict[FilterType, str] = {
    FilterType.TODAY: "get_today_tasks",
    FilterType.PLANNED: "get_planned_tasks",
    FilterType.IMPORTANT: "get_important_tasks",
    FilterType.COMPLETED: "get_completed_tasks",
}


# ---- transitions ----


def select_list(state: FilterState, list_id: str | None) -> FilterState:
    return replace(state, filter=FilterType.ALL, selected_list_id=list_id, search_query="")


def select_filter(state: FilterState, filter_type: FilterType) -> FilterState:
    return replace(state, filter=filter_type, selected_list_id=None, search_query="")


def set_search(state: FilterState, query: str) -> FilterState:
    return replace(state, search_query=query or "")


# ---- resolution ----


def resolve_query(state: FilterState) -> TaskQuery:
    query = state.search_query.strip()
    if query:
        return TaskQuery(kind=QueryKind.SEARCH, command="search_tasks", text=query)

    if state.selected_list_id:
        return TaskQuery(kind=QueryKind.LIST, command="get_tasks", list_id=state.selected_list_id)

    command = _PREDICATE_COMMANDS.get(state.filter)
    if command is not None:
        return TaskQuery(kind=QueryKind.PREDICATE, command=command)

    return TaskQuery(kind=QueryKind.ALL, command="get_tasks")


async def run_query(gateway: Gateway, query: TaskQuery) -> list[Task]:
    if query.kind == QueryKind.SEARCH:
        return await gateway.search_tasks(query.text or "")
    if query.kind == QueryKind.LIST:
        return await gateway.get_tasks(query.list_id)
    if query.kind == QueryKind.PREDICATE:
        return await getattr(gateway, query.command)()
    return await gateway.get_tasks(None)
