from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from planboard.runtime.domain.models import Task
from planboard.runtime.errors import ConflictError, StorageError
from planboard.runtime.storage import ASC, DESC, Container, TaskQuery
from planboard.runtime.storage.bootstrap import SCHEMA_VERSION, ensure_state_root
from planboard.runtime.storage.file_repos import matches, sort_documents


def test_ensure_state_root_seeds_collections_and_config(tmp_path: Path) -> None:
    state_root = ensure_state_root(tmp_path)

    assert state_root == tmp_path / ".planboard"
    for name in ("tasks.yaml", "plans.yaml", "users.yaml", "events.jsonl", "config.yaml"):
        assert (state_root / name).exists()
    config = yaml.safe_load((state_root / "config.yaml").read_text(encoding="utf-8"))
    assert config["schema_version"] == SCHEMA_VERSION
    assert config["planning"]["detect_cycles"] is False


def test_ensure_state_root_keeps_existing_config_values(tmp_path: Path) -> None:
    state_root = tmp_path / ".planboard"
    state_root.mkdir()
    (state_root / "config.yaml").write_text("planning:\n  max_page_limit: 25\n", encoding="utf-8")

    ensure_state_root(tmp_path)

    config = yaml.safe_load((state_root / "config.yaml").read_text(encoding="utf-8"))
    assert config["planning"]["max_page_limit"] == 25
    assert config["planning"]["default_page_limit"] == 50


def test_filter_matching_semantics() -> None:
    doc = {"status": "todo", "tags": ["api", "web"], "parent_id": None, "title": "Fix Login", "description": None}

    assert matches(doc, {"status": ["todo", "done"]})
    assert not matches(doc, {"status": "done"})
    assert matches(doc, {"tags": "web"})
    assert matches(doc, {"tags": ["mobile", "api"]})
    assert matches(doc, {"parent_id": None})
    assert matches(doc, {"$text": "login"})
    assert matches(doc, {"$text": "nothing API"})
    assert not matches(doc, {"$text": "signup"})


def test_sort_documents_places_missing_values_first_ascending() -> None:
    docs = [{"n": 2, "k": "b"}, {"n": None, "k": "a"}, {"n": 1, "k": "c"}, {"n": 2, "k": "a"}]

    ascending = sort_documents(docs, [("n", ASC), ("k", ASC)])
    descending = sort_documents(docs, [("n", DESC), ("k", ASC)])

    assert [(doc["n"], doc["k"]) for doc in ascending] == [(None, "a"), (1, "c"), (2, "a"), (2, "b")]
    assert [(doc["n"], doc["k"]) for doc in descending] == [(2, "a"), (2, "b"), (1, "c"), (None, "a")]


def test_task_repository_queries_and_counts(tmp_path: Path) -> None:
    container = Container(tmp_path)
    container.tasks.insert_many(
        [
            Task(id="t1", plan_id="p1", title="One", status="todo", order_index=2),
            Task(id="t2", plan_id="p1", title="Two", status="todo", order_index=1),
            Task(id="t3", plan_id="p1", title="Three", status="done", order_index=1, parent_id="t1"),
            Task(id="t4", plan_id="p2", title="Elsewhere", status="todo", order_index=1),
        ]
    )

    query = TaskQuery(plan_id="p1", statuses=["todo"], sort=[("order_index", ASC)], limit=1)
    assert [task.id for task in container.tasks.query(query)] == ["t2"]
    assert container.tasks.count(query) == 2
    assert container.tasks.max_order_index("p1", "todo") == 2
    assert container.tasks.max_order_index("p1", "in_progress") is None
    assert container.tasks.has_children("t1")
    assert not container.tasks.has_children("t2")
    assert sorted(task.id for task in container.tasks.find_in_plan("p1", ["t1", "t4", "t1"])) == ["t1"]
    assert container.tasks.bulk_reorder("p1", [("t1", 1), ("t4", 2), ("zz", 3)], "user-1") == 1
    assert container.tasks.get("t4").order_index == 1
    assert container.tasks.delete_for_plan("p1") == 3
    assert [task.id for task in container.tasks.list_for_plan("p2")] == ["t4"]


def test_duplicate_ids_are_rejected_without_partial_write(tmp_path: Path) -> None:
    container = Container(tmp_path)
    container.tasks.insert(Task(id="t1", plan_id="p1", title="One"))

    with pytest.raises(ConflictError):
        container.tasks.insert_many([Task(id="t2", plan_id="p1", title="Two"), Task(id="t1", plan_id="p1", title="Dup")])

    assert [task.id for task in container.tasks.list_for_plan("p1")] == ["t1"]


def test_corrupt_collection_raises_storage_error(tmp_path: Path) -> None:
    container = Container(tmp_path)
    (container.state_root / "tasks.yaml").write_text("tasks: [\n  - id: broken\n", encoding="utf-8")

    with pytest.raises(StorageError):
        container.tasks.list_for_plan("p1")
