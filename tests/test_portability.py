from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path

import pytest

from planboard.runtime.domain.models import PLACEHOLDER_PASSWORD_HASH
from planboard.runtime.errors import ValidationError
from planboard.runtime.events import EventBus
from planboard.runtime.planning.plans import PlanService
from planboard.runtime.planning.service import TaskService
from planboard.runtime.planning.users import UserService
from planboard.runtime.storage import Container


def _setup(tmp_path: Path):
    container = Container(tmp_path)
    bus = EventBus(container.events)
    users = UserService(container, bus)
    owner = users.register("owner@example.com", "Owner", "password123")
    plans = PlanService(container, bus)
    return container, TaskService(container, bus), plans, users, owner


def _snapshot(**overrides):
    snapshot = {
        "plan": {"name": "Imported", "description": "from elsewhere", "members": []},
        "tasks": [],
        "export_metadata": {"exported_at": "2024-05-01T00:00:00+00:00", "version": "1.0"},
    }
    snapshot.update(overrides)
    return snapshot


def test_export_then_import_round_trips_the_plan(tmp_path: Path) -> None:
    container, service, plans, users, owner = _setup(tmp_path)
    alice = users.register("alice@example.com", "Alice", "password123")
    plan = plans.create_plan("Roadmap", "H2 roadmap", owner.id)
    plans.add_member(plan.id, alice.id, "editor", owner.id)
    a = service.create_task(
        plan.id,
        {"title": "Design", "tags": ["ux"], "priority": "high", "assignee_ids": [alice.id]},
        owner.id,
    )
    b = service.create_task(plan.id, {"title": "Build", "status": "in_progress", "parent_id": a.id}, owner.id)
    service.create_task(plan.id, {"title": "Ship", "status": "done", "dependency_ids": [a.id, b.id]}, owner.id)
    service.create_task(plan.id, {"title": "Polish", "priority": "low"}, owner.id)

    exported = service.export_plan(plan.id, owner.id)
    result = service.import_plan(exported, owner.id)

    copy = result["plan"]
    assert result["tasks_created"] == 4
    assert copy.id != plan.id
    assert copy.name == plan.name
    assert copy.description == plan.description
    assert copy.owner_id == owner.id
    assert len(copy.members) == len(plan.members)
    assert copy.members[0].user_id == alice.id
    assert copy.members[0].role == "editor"

    originals = container.tasks.list_for_plan(plan.id)
    copies = container.tasks.list_for_plan(copy.id)
    assert Counter(task.status for task in copies) == Counter(task.status for task in originals)
    by_title = {task.title: task for task in copies}
    for original in originals:
        twin = by_title[original.title]
        assert twin.id != original.id
        assert (twin.status, twin.priority, twin.tags, twin.order_index) == (
            original.status,
            original.priority,
            original.tags,
            original.order_index,
        )
    assert by_title["Design"].assignee_ids == [alice.id]
    assert by_title["Build"].parent_id == by_title["Design"].id
    assert by_title["Ship"].dependency_ids == [by_title["Design"].id, by_title["Build"].id]


def test_export_identifies_people_by_email(tmp_path: Path) -> None:
    _, service, plans, users, owner = _setup(tmp_path)
    bob = users.register("bob@example.com", "Bob", "password123")
    plan = plans.create_plan("Roadmap", None, owner.id)
    plans.add_member(plan.id, bob.id, "viewer", owner.id)
    service.create_task(plan.id, {"title": "Todo item", "assignee_ids": [bob.id]}, owner.id)
    service.create_task(plan.id, {"title": "Done item", "status": "done"}, owner.id)

    exported = service.export_plan(plan.id, owner.id)

    assert exported["plan"] == {
        "name": "Roadmap",
        "description": None,
        "members": [{"name": "Bob", "email": "bob@example.com", "role": "viewer"}],
    }
    assert exported["export_metadata"]["version"] == "1.0"
    assert exported["export_metadata"]["exported_by"] == {"name": "Owner", "email": "owner@example.com"}
    assert [task["title"] for task in exported["tasks"]] == ["Done item", "Todo item"]
    first_todo = exported["tasks"][1]
    assert first_todo["assignees"] == [{"name": "Bob", "email": "bob@example.com"}]
    assert "assignee_ids" not in first_todo
    assert "plan_id" not in first_todo


def test_import_creates_placeholders_that_registration_claims(tmp_path: Path) -> None:
    container, service, _, users, owner = _setup(tmp_path)
    snapshot = _snapshot(
        plan={
            "name": "Imported",
            "members": [
                {"name": "Bob", "email": "Bob@Example.com", "role": "owner"},
                {"name": "Owner", "email": "owner@example.com", "role": "editor"},
            ],
        },
        tasks=[{"id": "t1", "title": "Assigned", "assignees": [{"name": "Carol", "email": "carol@example.com"}]}],
    )

    result = service.import_plan(snapshot, owner.id)

    plan = result["plan"]
    bob = container.users.find_by_email("bob@example.com")
    carol = container.users.find_by_email("carol@example.com")
    assert bob is not None and bob.is_placeholder
    assert bob.password_hash == PLACEHOLDER_PASSWORD_HASH
    assert carol is not None and carol.is_placeholder
    assert [(member.user_id, member.role) for member in plan.members] == [(bob.id, "editor")]
    assert container.tasks.list_for_plan(plan.id)[0].assignee_ids == [carol.id]

    claimed = users.register("bob@example.com", "Robert", "password123")
    assert claimed.id == bob.id
    assert not claimed.is_placeholder
    assert claimed.name == "Robert"


def test_import_drops_references_outside_the_snapshot(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    container, service, _, _, owner = _setup(tmp_path)
    snapshot = _snapshot(
        tasks=[
            {"id": "old-1", "title": "Kept"},
            {"id": "old-2", "title": "Dangling", "parent_id": "old-ghost", "dependency_ids": ["old-1", "old-missing"]},
        ]
    )

    caplog.set_level(logging.WARNING)
    result = service.import_plan(snapshot, owner.id)

    tasks = {task.title: task for task in container.tasks.list_for_plan(result["plan"].id)}
    assert tasks["Dangling"].parent_id is None
    assert tasks["Dangling"].dependency_ids == [tasks["Kept"].id]
    assert "old-ghost" in caplog.text
    assert "old-missing" in caplog.text


def test_import_defaults_order_index_to_batch_position(tmp_path: Path) -> None:
    container, service, _, _, owner = _setup(tmp_path)
    snapshot = _snapshot(
        tasks=[
            {"title": "First"},
            {"title": "Second", "order_index": 7},
            {"title": "Third", "status": "done"},
        ]
    )

    result = service.import_plan(snapshot, owner.id)

    slots = {task.title: task.order_index for task in container.tasks.list_for_plan(result["plan"].id)}
    assert slots == {"First": 1, "Second": 7, "Third": 3}
    assert result["message"] == "Imported plan 'Imported' with 3 tasks"


def test_import_rejects_unknown_version(tmp_path: Path) -> None:
    _, service, plans, _, owner = _setup(tmp_path)
    snapshot = _snapshot(export_metadata={"exported_at": "2024-05-01", "version": "2.0"})

    with pytest.raises(ValidationError) as excinfo:
        service.import_plan(snapshot, owner.id)

    assert excinfo.value.field == "export_metadata.version"
    assert plans.list_plans(owner.id) == []


def test_import_validates_every_task_before_writing(tmp_path: Path) -> None:
    container, service, plans, _, owner = _setup(tmp_path)
    snapshot = _snapshot(
        plan={"name": "Imported", "members": [{"name": "Dan", "email": "dan@example.com", "role": "viewer"}]},
        tasks=[
            {"title": "Fine"},
            {"title": "Backwards", "start_date": "2024-02-01", "due_date": "2024-01-01"},
        ],
    )

    with pytest.raises(ValidationError) as excinfo:
        service.import_plan(snapshot, owner.id)

    assert excinfo.value.field == "tasks[1].due_date"
    assert plans.list_plans(owner.id) == []
    assert container.users.find_by_email("dan@example.com") is None


def test_import_reports_schema_errors_with_item_paths(tmp_path: Path) -> None:
    _, service, _, _, owner = _setup(tmp_path)
    snapshot = _snapshot(tasks=[{"title": "Fine"}, {"status": "todo"}])

    with pytest.raises(ValidationError) as excinfo:
        service.import_plan(snapshot, owner.id)

    assert excinfo.value.field == "tasks[1].title"


def test_import_rejects_duplicate_task_ids_before_writing(tmp_path: Path) -> None:
    container, service, plans, _, owner = _setup(tmp_path)
    snapshot = _snapshot(
        plan={"name": "Copy", "members": [{"name": "Eve", "email": "eve@example.com", "role": "editor"}]},
        tasks=[{"id": "t1", "title": "A"}, {"id": "t1", "title": "B"}],
    )

    with pytest.raises(ValidationError) as excinfo:
        service.import_plan(snapshot, owner.id)

    assert excinfo.value.field == "tasks[1].id"
    assert plans.list_plans(owner.id) == []
    assert container.users.find_by_email("eve@example.com") is None


def test_import_drops_self_parent(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    container, service, _, _, owner = _setup(tmp_path)
    snapshot = _snapshot(tasks=[{"id": "t1", "title": "Loop", "parent_id": "t1"}])

    with caplog.at_level(logging.WARNING):
        result = service.import_plan(snapshot, owner.id)

    (task,) = container.tasks.list_for_plan(result["plan"].id)
    assert task.parent_id is None
    assert "self-parent" in caplog.text
    service.delete_task(result["plan"].id, task.id, owner.id)
    assert container.tasks.list_for_plan(result["plan"].id) == []
