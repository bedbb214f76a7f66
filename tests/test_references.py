from __future__ import annotations

from pathlib import Path

import pytest

from planboard.runtime.domain.models import Task
from planboard.runtime.errors import ValidationError
from planboard.runtime.events import EventBus
from planboard.runtime.planning.plans import PlanService
from planboard.runtime.planning.references import ReferenceIndex
from planboard.runtime.planning.service import TaskService
from planboard.runtime.planning.users import UserService
from planboard.runtime.storage import Container


def _setup(tmp_path: Path):
    container = Container(tmp_path)
    bus = EventBus(container.events)
    owner = UserService(container, bus).register("owner@example.com", "Owner", "password123")
    plans = PlanService(container, bus)
    plan = plans.create_plan("Launch", None, owner.id)
    other = plans.create_plan("Elsewhere", None, owner.id)
    return container, TaskService(container, bus), plan, other, owner


def _enable_cycle_detection(container: Container) -> None:
    config = container.config.load()
    config["planning"]["detect_cycles"] = True
    container.config.save(config)


def test_parent_in_another_plan_is_rejected(tmp_path: Path) -> None:
    container, service, plan, other, owner = _setup(tmp_path)
    foreign = service.create_task(other.id, {"title": "Foreign"}, owner.id)

    with pytest.raises(ValidationError) as excinfo:
        service.create_task(plan.id, {"title": "Child", "parent_id": foreign.id}, owner.id)

    assert excinfo.value.field == "parent_id"
    assert "not in same plan" in excinfo.value.message
    assert container.tasks.list_for_plan(plan.id) == []


def test_missing_dependencies_are_named_in_the_error(tmp_path: Path) -> None:
    _, service, plan, other, owner = _setup(tmp_path)
    present = service.create_task(plan.id, {"title": "Present"}, owner.id)
    foreign = service.create_task(other.id, {"title": "Foreign"}, owner.id)

    with pytest.raises(ValidationError) as excinfo:
        service.create_task(
            plan.id,
            {"title": "Needs things", "dependency_ids": [present.id, foreign.id, "task-ghost"]},
            owner.id,
        )

    assert excinfo.value.field == "dependency_ids"
    assert "Needs things" in excinfo.value.message
    assert foreign.id in excinfo.value.message
    assert "task-ghost" in excinfo.value.message
    assert present.id not in excinfo.value.message


def test_duplicate_dependency_ids_fail_the_count_check(tmp_path: Path) -> None:
    _, service, plan, _, owner = _setup(tmp_path)
    a = service.create_task(plan.id, {"title": "A"}, owner.id)

    with pytest.raises(ValidationError) as excinfo:
        service.create_task(plan.id, {"title": "B", "dependency_ids": [a.id, a.id]}, owner.id)

    assert "Duplicate dependencies" in excinfo.value.message


def test_unchanged_references_are_not_revalidated_on_update(tmp_path: Path) -> None:
    container, service, plan, _, owner = _setup(tmp_path)
    stale = Task(plan_id=plan.id, title="Stale", dependency_ids=["task-gone"], created_by=owner.id)
    container.tasks.insert(stale)

    updated = service.update_task(
        plan.id,
        stale.id,
        {"title": "Renamed", "dependency_ids": ["task-gone"]},
        owner.id,
    )

    assert updated.title == "Renamed"
    with pytest.raises(ValidationError):
        service.update_task(plan.id, stale.id, {"dependency_ids": ["task-gone", "task-other"]}, owner.id)


def test_bulk_create_resolves_temporary_ids_within_the_batch(tmp_path: Path) -> None:
    container, service, plan, _, owner = _setup(tmp_path)
    existing = service.create_task(plan.id, {"title": "Existing"}, owner.id)

    created, id_map = service.bulk_create(
        plan.id,
        [
            {"id": "tmp-epic", "title": "Epic"},
            {"id": "tmp-story", "title": "Story", "parent_id": "tmp-epic", "dependency_ids": [existing.id]},
            {"title": "Follow-up", "dependency_ids": ["tmp-story", "tmp-epic"]},
        ],
        owner.id,
    )

    assert len(created) == 3
    epic_id = id_map["tmp-epic"]
    story_id = id_map["tmp-story"]
    assert epic_id != "tmp-epic"
    stored = {task.title: task for task in container.tasks.list_for_plan(plan.id)}
    assert stored["Epic"].id == epic_id
    assert stored["Story"].parent_id == epic_id
    assert stored["Story"].dependency_ids == [existing.id]
    assert stored["Follow-up"].dependency_ids == [story_id, epic_id]


def test_bulk_create_is_all_or_nothing_on_invalid_reference(tmp_path: Path) -> None:
    container, service, plan, _, owner = _setup(tmp_path)

    with pytest.raises(ValidationError) as excinfo:
        service.bulk_create(
            plan.id,
            [
                {"id": "tmp-1", "title": "Fine"},
                {"id": "tmp-2", "title": "Broken", "dependency_ids": ["tmp-1", "task-nope"]},
            ],
            owner.id,
        )

    assert excinfo.value.field == "tasks[1].dependency_ids"
    assert "task-nope" in excinfo.value.message
    assert container.tasks.list_for_plan(plan.id) == []


def test_bulk_create_rejects_unknown_parent_and_bad_dates(tmp_path: Path) -> None:
    container, service, plan, _, owner = _setup(tmp_path)

    with pytest.raises(ValidationError) as excinfo:
        service.bulk_create(plan.id, [{"title": "Orphan", "parent_id": "tmp-none"}], owner.id)
    assert excinfo.value.field == "tasks[0].parent_id"

    with pytest.raises(ValidationError) as excinfo:
        service.bulk_create(
            plan.id,
            [{"title": "Fine"}, {"title": "Late", "start_date": "2024-02-01", "due_date": "2024-01-01"}],
            owner.id,
        )
    assert excinfo.value.field == "tasks[1].due_date"
    assert container.tasks.list_for_plan(plan.id) == []


def test_cycles_are_accepted_unless_detection_is_enabled(tmp_path: Path) -> None:
    container, service, plan, _, owner = _setup(tmp_path)
    a = service.create_task(plan.id, {"title": "A"}, owner.id)
    b = service.create_task(plan.id, {"title": "B", "dependency_ids": [a.id]}, owner.id)

    service.update_task(plan.id, a.id, {"dependency_ids": [b.id]}, owner.id)
    assert container.tasks.get(a.id).dependency_ids == [b.id]

    _enable_cycle_detection(container)
    c = service.create_task(plan.id, {"title": "C"}, owner.id)
    d = service.create_task(plan.id, {"title": "D", "dependency_ids": [c.id]}, owner.id)
    with pytest.raises(ValidationError) as excinfo:
        service.update_task(plan.id, c.id, {"dependency_ids": [d.id]}, owner.id)
    assert excinfo.value.field == "dependency_ids"
    assert container.tasks.get(c.id).dependency_ids == []


def test_parent_cycle_is_rejected_when_detection_is_enabled(tmp_path: Path) -> None:
    container, service, plan, _, owner = _setup(tmp_path)
    _enable_cycle_detection(container)
    root = service.create_task(plan.id, {"title": "Root"}, owner.id)
    child = service.create_task(plan.id, {"title": "Child", "parent_id": root.id}, owner.id)

    with pytest.raises(ValidationError) as excinfo:
        service.update_task(plan.id, root.id, {"parent_id": child.id}, owner.id)

    assert excinfo.value.field == "parent_id"
    assert "cycle" in excinfo.value.message


def test_batch_cycle_is_rejected_when_detection_is_enabled(tmp_path: Path) -> None:
    container, service, plan, _, owner = _setup(tmp_path)
    _enable_cycle_detection(container)

    with pytest.raises(ValidationError) as excinfo:
        service.bulk_create(
            plan.id,
            [
                {"id": "x", "title": "X", "dependency_ids": ["y"]},
                {"id": "y", "title": "Y", "dependency_ids": ["x"]},
            ],
            owner.id,
        )

    assert excinfo.value.field == "tasks[0].dependency_ids"
    assert container.tasks.list_for_plan(plan.id) == []


def test_reference_index_walks_parents_and_dependencies() -> None:
    index = ReferenceIndex.from_tasks(
        [
            Task(id="a", title="A"),
            Task(id="b", title="B", parent_id="a", dependency_ids=["a"]),
            Task(id="c", title="C", parent_id="b", dependency_ids=["b"]),
        ]
    )

    assert "b" in index
    assert index.parent_cycle("a", "c")
    assert not index.parent_cycle("c", "a")
    assert index.dependency_cycle("a", ["c"])
    assert not index.dependency_cycle("c", ["a"])
    assert index.dependency_cycle("a", ["a"])


def test_task_cannot_be_its_own_parent(tmp_path: Path) -> None:
    container, service, plan, _, owner = _setup(tmp_path)
    task = service.create_task(plan.id, {"title": "Loop"}, owner.id)

    with pytest.raises(ValidationError) as excinfo:
        service.update_task(plan.id, task.id, {"parent_id": task.id}, owner.id)
    assert excinfo.value.field == "parent_id"
    assert container.tasks.get(task.id).parent_id is None

    with pytest.raises(ValidationError) as excinfo:
        service.bulk_create(plan.id, [{"title": "Fine"}, {"id": "tmp-1", "title": "Loop", "parent_id": "tmp-1"}], owner.id)
    assert excinfo.value.field == "tasks[1].parent_id"
    assert [item.id for item in container.tasks.list_for_plan(plan.id)] == [task.id]

    service.delete_task(plan.id, task.id, owner.id)
    assert container.tasks.get(task.id) is None
