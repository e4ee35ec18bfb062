# tests/test_offline_gateway.py

from __future__ import annotations

import json

import pytest

from itodo.core.errors import GatewayError
from itodo.gateway.memory_gateway import OfflineGateway
from itodo.tasks.task_models import (
    CreateListInput,
    CreateSubtaskInput,
    CreateTaskInput,
    UpdateListInput,
    UpdateSubtaskInput,
    UpdateTaskInput,
)


async def _default_id(gw: OfflineGateway) -> str:
    lists = await gw.get_lists()
    assert [lst.is_default for lst in lists] == [True]
    return lists[0].id


@pytest.mark.asyncio
async def test_seeds_exactly_one_default_list(offline: OfflineGateway) -> None:
    [default] = await offline.get_lists()
    assert default.name == "My Day"
    assert default.order == 0


@pytest.mark.asyncio
async def test_default_list_cannot_be_deleted(offline: OfflineGateway) -> None:
    default_id = await _default_id(offline)
    with pytest.raises(GatewayError) as ei:
        await offline.delete_list(default_id)
    assert ei.value.message == "Cannot delete default list"
    assert ei.value.command == "delete_list"


@pytest.mark.asyncio
async def test_new_lists_are_appended(offline: OfflineGateway) -> None:
    await _default_id(offline)
    a = await offline.create_list(CreateListInput(name="A"))
    b = await offline.create_list(CreateListInput(name="B"))
    assert (a.order, b.order) == (1, 2)

    await offline.update_list(UpdateListInput(id=b.id, order=0, name="B2"))
    names = [lst.name for lst in await offline.get_lists()]
    assert names[:2] == ["My Day", "B2"]


@pytest.mark.asyncio
async def test_deleting_list_cascades(offline: OfflineGateway) -> None:
    await _default_id(offline)
    work = await offline.create_list(CreateListInput(name="Work"))
    task = await offline.create_task(CreateTaskInput(title="t", list_id=work.id))
    await offline.create_subtask(CreateSubtaskInput(task_id=task.id, title="s"))

    await offline.delete_list(work.id)

    assert await offline.get_tasks(None) == []
    assert await offline.get_all_subtasks() == []


@pytest.mark.asyncio
async def test_returned_entities_are_copies(offline: OfflineGateway) -> None:
    default_id = await _default_id(offline)
    task = await offline.create_task(CreateTaskInput(title="orig", list_id=default_id))
    task.title = "mutated"

    [stored] = await offline.get_tasks(default_id)
    assert stored.title == "orig"


@pytest.mark.asyncio
async def test_create_validates_input(offline: OfflineGateway) -> None:
    default_id = await _default_id(offline)
    with pytest.raises(GatewayError, match="title is required"):
        await offline.create_task(CreateTaskInput(title="  ", list_id=default_id))
    with pytest.raises(GatewayError, match="List not found"):
        await offline.create_task(CreateTaskInput(title="x", list_id="nope"))
    with pytest.raises(GatewayError, match="Task not found"):
        await offline.toggle_task_completed("nope")


@pytest.mark.asyncio
async def test_update_task_is_partial(offline: OfflineGateway) -> None:
    default_id = await _default_id(offline)
    task = await offline.create_task(
        CreateTaskInput(title="t", list_id=default_id, content="keep me")
    )

    updated = await offline.update_task(UpdateTaskInput(id=task.id, is_important=True))

    assert updated.content == "keep me"
    assert updated.is_important is True
    assert updated.updated_at > task.updated_at


@pytest.mark.asyncio
async def test_double_toggle_changes_only_completion(offline: OfflineGateway) -> None:
    default_id = await _default_id(offline)
    task = await offline.create_task(
        CreateTaskInput(
            title="Water plants",
            list_id=default_id,
            content="balcony first",
            due_date="2026-03-20",
            repeat_rule="monthly:1,15",
        )
    )

    once = await offline.toggle_task_completed(task.id)
    twice = await offline.toggle_task_completed(task.id)

    assert once.is_completed is True
    assert twice.is_completed is False
    assert once.updated_at < twice.updated_at
    expected = task.to_wire()
    expected.pop("updated_at")
    for toggled in (once, twice):
        wire = toggled.to_wire()
        wire.pop("updated_at")
        assert wire == {**expected, "is_completed": toggled.is_completed}


@pytest.mark.asyncio
async def test_completed_orders_by_most_recent_change(offline: OfflineGateway) -> None:
    default_id = await _default_id(offline)
    a = await offline.create_task(CreateTaskInput(title="a", list_id=default_id))
    b = await offline.create_task(CreateTaskInput(title="b", list_id=default_id))
    await offline.toggle_task_completed(b.id)
    await offline.toggle_task_completed(a.id)

    assert [t.title for t in await offline.get_completed_tasks()] == ["a", "b"]


@pytest.mark.asyncio
async def test_planned_includes_future_start_dates(offline: OfflineGateway) -> None:
    default_id = await _default_id(offline)
    await offline.create_task(
        CreateTaskInput(title="late", list_id=default_id, due_date="2026-05-01T00:00:00Z")
    )
    await offline.create_task(
        CreateTaskInput(title="soon", list_id=default_id, due_date="2026-03-20T00:00:00Z")
    )
    await offline.create_task(
        CreateTaskInput(title="starts", list_id=default_id, start_date="2026-04-01T00:00:00Z")
    )
    await offline.create_task(
        CreateTaskInput(title="past", list_id=default_id, due_date="2026-03-01T00:00:00Z")
    )

    assert [t.title for t in await offline.get_planned_tasks()] == ["soon", "late", "starts"]


@pytest.mark.asyncio
async def test_subtask_lifecycle(offline: OfflineGateway) -> None:
    default_id = await _default_id(offline)
    task = await offline.create_task(CreateTaskInput(title="t", list_id=default_id))
    sub = await offline.create_subtask(CreateSubtaskInput(task_id=task.id, title="s"))

    toggled = await offline.toggle_subtask_completed(sub.id)
    assert toggled.is_completed is True

    renamed = await offline.update_subtask(UpdateSubtaskInput(id=sub.id, title="s2"))
    assert (renamed.title, renamed.is_completed) == ("s2", True)

    await offline.delete_subtask(sub.id)
    assert await offline.get_subtasks(task.id) == []
    with pytest.raises(GatewayError, match="Subtask not found"):
        await offline.delete_subtask(sub.id)


@pytest.mark.asyncio
async def test_export_then_import_reassigns_ids(offline: OfflineGateway, tmp_path) -> None:
    default_id = await _default_id(offline)
    task = await offline.create_task(
        CreateTaskInput(title="t", list_id=default_id, repeat_rule='{"type": "daily"}')
    )
    path = tmp_path / "export.json"

    await offline.export_tasks_to_path(str(path))
    doc = json.loads(path.read_text("utf-8"))
    assert set(doc) == {"version", "export_date", "tasks", "lists"}

    imported = await offline.import_tasks(json.dumps(doc["tasks"]))

    assert len(imported) == 1
    assert imported[0].id != task.id
    assert imported[0].repeat_rule == '{"type": "daily"}'
    assert len(await offline.get_tasks(None)) == 2


@pytest.mark.asyncio
async def test_import_requires_known_list(offline: OfflineGateway) -> None:
    payload = [{"id": "x", "title": "t", "list_id": "missing"}]
    with pytest.raises(GatewayError, match="List not found"):
        await offline.import_tasks(json.dumps(payload))


@pytest.mark.asyncio
async def test_imported_lists_never_become_default(offline: OfflineGateway) -> None:
    doc = {"lists": [{"id": "ext", "name": "Ext", "is_default": True}], "tasks": []}
    await offline.import_tasks(json.dumps(doc))

    defaults = [lst for lst in await offline.get_lists() if lst.is_default]
    assert len(defaults) == 1
    assert defaults[0].name == "My Day"
