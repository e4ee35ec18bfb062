# tests/test_store_concurrency.py

"""
Overlapping queries and mutations.

GatedGateway.hold() parks a response after the backend produced it, which
lets a test resolve requests in the opposite order they were issued.
"""

from __future__ import annotations

import asyncio

import pytest

from itodo.gateway.memory_gateway import OfflineGateway
from itodo.store.domain_store import DomainStore
from itodo.tasks.task_models import (
    CreateListInput,
    CreateSubtaskInput,
    CreateTaskInput,
    FilterType,
    UpdateTaskInput,
)

from .fakes import GatedGateway, wait_for_call


async def _seed(store: DomainStore) -> tuple[str, str]:
    await store.load()
    default_id = store.default_list.id
    starred = await store.create_task(CreateTaskInput(title="starred", list_id=default_id))
    await store.create_task(CreateTaskInput(title="plain", list_id=default_id))
    await store.toggle_task_important(starred.id)
    return default_id, starred.id


@pytest.mark.asyncio
async def test_stale_filter_response_is_discarded(
    store: DomainStore, gateway: GatedGateway
) -> None:
    default_id, _ = await _seed(store)
    gate = gateway.hold("get_important_tasks")

    slow = asyncio.create_task(store.select_filter(FilterType.IMPORTANT))
    await wait_for_call(gateway, "get_important_tasks")
    await store.select_list(default_id)
    assert sorted(t.title for t in store.tasks) == ["plain", "starred"]

    gate.set()
    await slow

    assert store.selected_list_id == default_id
    assert sorted(t.title for t in store.tasks) == ["plain", "starred"]


@pytest.mark.asyncio
async def test_stale_search_response_is_discarded(
    store: DomainStore, gateway: GatedGateway
) -> None:
    await _seed(store)
    gate = gateway.hold("search_tasks")

    slow = asyncio.create_task(store.set_search_query("s"))
    await wait_for_call(gateway, "search_tasks")
    await store.set_search_query("plain")

    gate.set()
    await slow

    assert store.search_query == "plain"
    assert [t.title for t in store.tasks] == ["plain"]


@pytest.mark.asyncio
async def test_refetch_after_write_does_not_clobber_newer_view(
    store: DomainStore, gateway: GatedGateway
) -> None:
    default_id, _ = await _seed(store)
    gate = gateway.hold("get_tasks")

    write = asyncio.create_task(
        store.create_task(CreateTaskInput(title="third", list_id=default_id))
    )
    await wait_for_call(gateway, "get_tasks", count=gateway.calls.count("get_tasks") + 1)
    await store.select_filter(FilterType.IMPORTANT)

    gate.set()
    await write

    assert store.filter == FilterType.IMPORTANT
    assert [t.title for t in store.tasks] == ["starred"]


@pytest.mark.asyncio
async def test_overlapping_updates_never_merge_fields(
    store: DomainStore, gateway: GatedGateway, offline: OfflineGateway
) -> None:
    default_id, starred_id = await _seed(store)
    await store.select_task(starred_id)
    gate = gateway.hold("update_task")

    first = asyncio.create_task(store.update_task(UpdateTaskInput(id=starred_id, title="one")))
    await wait_for_call(gateway, "update_task")
    second = await store.update_task(UpdateTaskInput(id=starred_id, content="two"))

    gate.set()
    await first

    # Whatever the store shows is exactly one backend snapshot.
    backend = {t.id: t for t in await offline.get_tasks(None)}
    assert store.find_task(starred_id) == backend[starred_id]
    assert store.selected_task == backend[starred_id]
    assert store.selected_task.content == "two"
    assert second.content == "two"


@pytest.mark.asyncio
async def test_overlapping_toggles_keep_newest_response(
    store: DomainStore, gateway: GatedGateway, offline: OfflineGateway
) -> None:
    default_id, starred_id = await _seed(store)
    await store.select_task(starred_id)
    gate = gateway.hold("toggle_task_completed")

    first = asyncio.create_task(store.toggle_task_completed(starred_id))
    await wait_for_call(gateway, "toggle_task_completed")
    second = await store.toggle_task_completed(starred_id)

    gate.set()
    stale = await first

    backend = {t.id: t for t in await offline.get_tasks(None)}
    assert stale.is_completed is True
    assert second.is_completed is False
    assert store.find_task(starred_id) == backend[starred_id]
    assert store.selected_task == backend[starred_id]
    assert store.find_task(starred_id).is_completed is False


@pytest.mark.asyncio
async def test_overlapping_subtask_toggles_keep_newest_response(
    store: DomainStore, gateway: GatedGateway, offline: OfflineGateway
) -> None:
    default_id, starred_id = await _seed(store)
    await store.select_task(starred_id)
    sub = await store.create_subtask(CreateSubtaskInput(task_id=starred_id, title="a"))
    gate = gateway.hold("toggle_subtask_completed")

    first = asyncio.create_task(store.toggle_subtask_completed(sub.id))
    await wait_for_call(gateway, "toggle_subtask_completed")
    await store.toggle_subtask_completed(sub.id)

    gate.set()
    await first

    assert store.subtasks_for(starred_id) == await offline.get_subtasks(starred_id)
    assert store.subtasks_for(starred_id)[0].is_completed is False


@pytest.mark.asyncio
async def test_toggle_during_refetch_survives_stale_response(
    store: DomainStore, gateway: GatedGateway
) -> None:
    default_id, starred_id = await _seed(store)
    gate = gateway.hold("get_tasks")

    refetch = asyncio.create_task(store.fetch_tasks())
    await wait_for_call(gateway, "get_tasks", count=gateway.calls.count("get_tasks") + 1)
    await store.toggle_task_completed(starred_id)

    gate.set()
    await refetch

    assert store.find_task(starred_id).is_completed is True


@pytest.mark.asyncio
async def test_stale_subtask_partition_is_discarded(
    store: DomainStore, gateway: GatedGateway, offline: OfflineGateway
) -> None:
    default_id, starred_id = await _seed(store)
    await offline.create_subtask(CreateSubtaskInput(task_id=starred_id, title="a"))
    gate = gateway.hold("get_subtasks")

    slow = asyncio.create_task(store.fetch_subtasks(starred_id))
    await wait_for_call(gateway, "get_subtasks")
    await offline.create_subtask(CreateSubtaskInput(task_id=starred_id, title="b"))
    await store.fetch_subtasks(starred_id)

    gate.set()
    await slow

    assert [s.title for s in store.subtasks_for(starred_id)] == ["a", "b"]


@pytest.mark.asyncio
async def test_subtask_splice_during_partition_fetch_is_kept(
    store: DomainStore, gateway: GatedGateway
) -> None:
    default_id, starred_id = await _seed(store)
    gate = gateway.hold("get_subtasks")

    slow = asyncio.create_task(store.select_task(starred_id))
    await wait_for_call(gateway, "get_subtasks")
    created = await store.create_subtask(CreateSubtaskInput(task_id=starred_id, title="new"))

    gate.set()
    await slow

    assert [s.id for s in store.subtasks_for(starred_id)] == [created.id]


@pytest.mark.asyncio
async def test_all_subtasks_does_not_clobber_fresher_partition(
    store: DomainStore, gateway: GatedGateway, offline: OfflineGateway
) -> None:
    default_id, starred_id = await _seed(store)
    await offline.create_subtask(CreateSubtaskInput(task_id=starred_id, title="a"))
    gate = gateway.hold("get_all_subtasks")

    slow = asyncio.create_task(store.fetch_all_subtasks())
    await wait_for_call(gateway, "get_all_subtasks")
    await offline.create_subtask(CreateSubtaskInput(task_id=starred_id, title="b"))
    await store.fetch_subtasks(starred_id)

    gate.set()
    await slow

    assert [s.title for s in store.subtasks_for(starred_id)] == ["a", "b"]


@pytest.mark.asyncio
async def test_unrelated_collections_do_not_interfere(
    store: DomainStore, gateway: GatedGateway
) -> None:
    await _seed(store)
    gate = gateway.hold("get_lists")

    slow = asyncio.create_task(store.create_list(CreateListInput(name="Work")))
    await wait_for_call(gateway, "get_lists", count=gateway.calls.count("get_lists") + 1)
    await store.select_filter(FilterType.COMPLETED)

    gate.set()
    await slow

    assert [lst.name for lst in store.lists] == ["My Day", "Work"]
    assert store.filter == FilterType.COMPLETED
    assert store.tasks == []
