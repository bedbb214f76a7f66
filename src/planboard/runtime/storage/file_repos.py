"""File-backed repository implementations.

Each collection is one YAML document rewritten atomically on every write, so a
multi-document insert is all-or-nothing on disk.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from collections import deque
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Sequence

import yaml

from ...io_utils import FileLock
from ..domain.models import Plan, Task, User, normalize_email, now_iso
from ..errors import ConflictError, NotFoundError, StorageError
from .interfaces import (
    DESC,
    EventRepository,
    OrderAllocator,
    PlanRepository,
    SortSpec,
    TaskQuery,
    TaskRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("title", "description", "tags")


def _field_matches(actual: Any, expected: Any) -> bool:
    if isinstance(expected, (list, tuple, set)):
        wanted = set(expected)
        if isinstance(actual, list):
            return any(item in wanted for item in actual)
        return actual in wanted
    if expected is None:
        return actual is None or actual == []
    if isinstance(actual, list):
        return expected in actual
    return actual == expected


def _text_matches(doc: dict[str, Any], text: str) -> bool:
    terms = [term.lower() for term in text.split() if term]
    if not terms:
        return True
    haystack: list[str] = []
    for name in _TEXT_FIELDS:
        value = doc.get(name)
        if isinstance(value, list):
            haystack.extend(str(item).lower() for item in value)
        elif value:
            haystack.append(str(value).lower())
    return any(term in chunk for term in terms for chunk in haystack)


def matches(doc: dict[str, Any], flt: dict[str, Any]) -> bool:
    """Evaluate an equality/membership filter against one document.

    A list-like filter value means "one of"; a list-valued document field matches
    when it contains the wanted value; ``$text`` runs a case-insensitive term
    search over title, description and tags.
    """
    for key, expected in flt.items():
        if key == "$text":
            if not _text_matches(doc, str(expected)):
                return False
            continue
        if not _field_matches(doc.get(key), expected):
            return False
    return True


def sort_documents(docs: list[dict[str, Any]], sort: SortSpec) -> list[dict[str, Any]]:
    """Sort documents by multiple keys; missing values order before present ones."""
    out = list(docs)
    for name, direction in reversed(sort):
        out.sort(
            key=lambda doc: (0, "") if doc.get(name) is None else (1, doc.get(name)),
            reverse=direction == DESC,
        )
    return out


class _YamlCollection:
    """Document collection persisted as a single YAML file."""

    def __init__(self, path: Path, lock_path: Path, key: str) -> None:
        """Initialize the collection.

        Args:
            path (Path): YAML file path containing this collection.
            lock_path (Path): Lock file path used for cross-process synchronization.
            key (str): Top-level YAML key that stores serialized documents.
        """
        self._path = path
        self._lock = FileLock(lock_path)
        self._thread_lock = threading.RLock()
        self._key = key

    @contextmanager
    def locked(self) -> Iterator[None]:
        with self._thread_lock:
            with self._lock:
                yield

    def _load(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise StorageError(f"Failed to read {self._key} collection") from exc
        if not isinstance(raw, dict):
            return []
        items = raw.get(self._key, [])
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]

    def _save(self, docs: list[dict[str, Any]]) -> None:
        payload = {"version": 1, self._key: docs}
        tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                yaml.safe_dump(payload, handle, sort_keys=False)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self._path)
        except (OSError, yaml.YAMLError) as exc:
            raise StorageError(f"Failed to write {self._key} collection") from exc

    def find(
        self,
        flt: dict[str, Any],
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        with self.locked():
            docs = [doc for doc in self._load() if matches(doc, flt)]
        if sort:
            docs = sort_documents(docs, sort)
        if skip:
            docs = docs[skip:]
        if limit is not None:
            docs = docs[:limit]
        return docs

    def find_one(self, flt: dict[str, Any]) -> Optional[dict[str, Any]]:
        with self.locked():
            for doc in self._load():
                if matches(doc, flt):
                    return doc
        return None

    def count_documents(self, flt: dict[str, Any]) -> int:
        with self.locked():
            return sum(1 for doc in self._load() if matches(doc, flt))

    def insert_one(self, doc: dict[str, Any]) -> dict[str, Any]:
        self.insert_many([doc])
        return doc

    def insert_many(self, docs: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        with self.locked():
            current = self._load()
            existing_ids = {doc.get("id") for doc in current}
            for doc in docs:
                if doc.get("id") in existing_ids:
                    raise ConflictError(f"Duplicate id {doc.get('id')} in {self._key}", field="id")
                existing_ids.add(doc.get("id"))
            current.extend(docs)
            self._save(current)
        return list(docs)

    def update_one(self, flt: dict[str, Any], update: dict[str, Any]) -> int:
        return self.bulk_write([(flt, update)])

    def bulk_write(self, operations: Iterable[tuple[dict[str, Any], dict[str, Any]]]) -> int:
        """Apply ``(filter, fields-to-set)`` pairs in order; each updates its first match.

        Returns:
            int: Number of operations that matched a document.
        """
        matched = 0
        with self.locked():
            docs = self._load()
            for flt, update in operations:
                for doc in docs:
                    if matches(doc, flt):
                        doc.update(update)
                        matched += 1
                        break
            if matched:
                self._save(docs)
        return matched

    def replace_one(self, flt: dict[str, Any], replacement: dict[str, Any]) -> bool:
        with self.locked():
            docs = self._load()
            for idx, doc in enumerate(docs):
                if matches(doc, flt):
                    docs[idx] = replacement
                    self._save(docs)
                    return True
        return False

    def delete_one(self, flt: dict[str, Any]) -> int:
        with self.locked():
            docs = self._load()
            for idx, doc in enumerate(docs):
                if matches(doc, flt):
                    del docs[idx]
                    self._save(docs)
                    return 1
        return 0

    def delete_many(self, flt: dict[str, Any]) -> int:
        with self.locked():
            docs = self._load()
            keep = [doc for doc in docs if not matches(doc, flt)]
            removed = len(docs) - len(keep)
            if removed:
                self._save(keep)
        return removed


class FileTaskRepository(TaskRepository):
    """YAML-backed task repository with coarse file/process locking."""

    def __init__(self, path: Path, lock_path: Path) -> None:
        """Initialize the FileTaskRepository.

        Args:
            path (Path): YAML file path for task records.
            lock_path (Path): Lock file path used while mutating task data.
        """
        self._docs = _YamlCollection(path, lock_path, "tasks")

    def query(self, query: TaskQuery) -> list[Task]:
        docs = self._docs.find(query.document_filter(), sort=query.sort, skip=query.skip, limit=query.limit)
        return [Task.from_dict(doc) for doc in docs]

    def count(self, query: TaskQuery) -> int:
        return self._docs.count_documents(query.document_filter())

    def get(self, task_id: str) -> Optional[Task]:
        doc = self._docs.find_one({"id": task_id})
        return Task.from_dict(doc) if doc else None

    def get_in_plan(self, plan_id: str, task_id: str) -> Optional[Task]:
        doc = self._docs.find_one({"id": task_id, "plan_id": plan_id})
        return Task.from_dict(doc) if doc else None

    def list_for_plan(self, plan_id: str) -> list[Task]:
        return [Task.from_dict(doc) for doc in self._docs.find({"plan_id": plan_id})]

    def find_in_plan(self, plan_id: str, task_ids: Sequence[str]) -> list[Task]:
        if not task_ids:
            return []
        docs = self._docs.find({"plan_id": plan_id, "id": list(task_ids)})
        return [Task.from_dict(doc) for doc in docs]

    def has_children(self, task_id: str) -> bool:
        return self._docs.find_one({"parent_id": task_id}) is not None

    def max_order_index(self, plan_id: str, status: str) -> Optional[int]:
        docs = self._docs.find(
            {"plan_id": plan_id, "status": status},
            sort=[("order_index", DESC)],
            limit=1,
        )
        if not docs:
            return None
        return Task.from_dict(docs[0]).order_index

    def insert(self, task: Task, *, allocate_order: Optional[OrderAllocator] = None) -> Task:
        """Insert a task, allocating its partition slot under the write lock when asked.

        Args:
            task (Task): Task to insert.
            allocate_order (Optional[OrderAllocator]): Allocator applied when
                ``task.order_index`` is ``None``.

        Returns:
            Task: Persisted task record.
        """
        with self._docs.locked():
            if task.order_index is None and allocate_order is not None:
                partition = [
                    Task.from_dict(doc)
                    for doc in self._docs.find({"plan_id": task.plan_id, "status": task.status})
                ]
                task.order_index = allocate_order(partition)
            if task.order_index is None:
                task.order_index = 0
            task.created_at = task.created_at or now_iso()
            task.updated_at = now_iso()
            self._docs.insert_one(task.to_dict())
        return task

    def insert_many(self, tasks: Sequence[Task]) -> list[Task]:
        stamp = now_iso()
        for task in tasks:
            if task.order_index is None:
                task.order_index = 0
            task.updated_at = stamp
        self._docs.insert_many([task.to_dict() for task in tasks])
        return list(tasks)

    def patch(self, task_id: str, fields: dict[str, Any]) -> Task:
        changes = dict(fields)
        changes["updated_at"] = now_iso()
        with self._docs.locked():
            if not self._docs.update_one({"id": task_id}, changes):
                raise NotFoundError("Task not found", field="id")
            doc = self._docs.find_one({"id": task_id})
        return Task.from_dict(doc)

    def bulk_reorder(self, plan_id: str, placements: Sequence[tuple[str, int]], actor_id: str) -> int:
        stamp = now_iso()
        operations = [
            ({"id": task_id, "plan_id": plan_id}, {"order_index": index, "updated_by": actor_id, "updated_at": stamp})
            for task_id, index in placements
        ]
        return self._docs.bulk_write(operations)

    def delete(self, task_id: str) -> bool:
        return self._docs.delete_one({"id": task_id}) > 0

    def delete_for_plan(self, plan_id: str) -> int:
        return self._docs.delete_many({"plan_id": plan_id})


class FilePlanRepository(PlanRepository):
    """YAML-backed repository for plans and their member lists."""

    def __init__(self, path: Path, lock_path: Path) -> None:
        self._docs = _YamlCollection(path, lock_path, "plans")

    def get(self, plan_id: str) -> Optional[Plan]:
        doc = self._docs.find_one({"id": plan_id})
        return Plan.from_dict(doc) if doc else None

    def list_for_user(self, user_id: str) -> list[Plan]:
        plans = [Plan.from_dict(doc) for doc in self._docs.find({})]
        visible = [plan for plan in plans if user_id in plan.user_ids()]
        return sorted(visible, key=lambda plan: plan.created_at, reverse=True)

    def insert(self, plan: Plan) -> Plan:
        plan.updated_at = now_iso()
        self._docs.insert_one(plan.to_dict())
        return plan

    def update(self, plan: Plan) -> Plan:
        plan.updated_at = now_iso()
        if not self._docs.replace_one({"id": plan.id}, plan.to_dict()):
            raise NotFoundError("Plan not found", field="plan_id")
        return plan

    def delete(self, plan_id: str) -> bool:
        return self._docs.delete_one({"id": plan_id}) > 0


class FileUserRepository(UserRepository):
    """YAML-backed repository for users; email is unique."""

    def __init__(self, path: Path, lock_path: Path) -> None:
        self._docs = _YamlCollection(path, lock_path, "users")

    def get(self, user_id: str) -> Optional[User]:
        doc = self._docs.find_one({"id": user_id})
        return User.from_dict(doc) if doc else None

    def get_many(self, user_ids: Sequence[str]) -> list[User]:
        if not user_ids:
            return []
        return [User.from_dict(doc) for doc in self._docs.find({"id": list(set(user_ids))})]

    def find_by_email(self, email: str) -> Optional[User]:
        doc = self._docs.find_one({"email": normalize_email(email)})
        return User.from_dict(doc) if doc else None

    def insert(self, user: User) -> User:
        user.email = normalize_email(user.email)
        with self._docs.locked():
            if self._docs.find_one({"email": user.email}) is not None:
                raise ConflictError("User already exists", field="email")
            self._docs.insert_one(user.to_dict())
        return user

    def update(self, user: User) -> User:
        user.updated_at = now_iso()
        if not self._docs.replace_one({"id": user.id}, user.to_dict()):
            raise NotFoundError("User not found", field="user_id")
        return user


class FileEventRepository(EventRepository):
    """JSONL-backed event stream repository."""

    def __init__(self, path: Path, lock_path: Path) -> None:
        """Initialize the FileEventRepository.

        Args:
            path (Path): JSONL file path where event envelopes are appended.
            lock_path (Path): Lock file path used while writing or reading events.
        """
        self._path = path
        self._lock = FileLock(lock_path)
        self._thread_lock = threading.RLock()

    def append(self, *, channel: str, event_type: str, entity_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Append one event envelope to the JSONL stream.

        Args:
            channel (str): Channel namespace for the event stream.
            event_type (str): Specific event type emitted in the channel.
            entity_id (str): Identifier for the related entity.
            payload (dict[str, Any]): JSON-serializable event payload body.

        Returns:
            dict[str, Any]: Persisted event envelope including generated id and timestamp.
        """
        event = {
            "id": f"evt-{uuid.uuid4().hex[:10]}",
            "ts": now_iso(),
            "channel": channel,
            "type": event_type,
            "entity_id": entity_id,
            "payload": payload,
        }
        try:
            with self._thread_lock:
                with self._lock:
                    self._path.parent.mkdir(parents=True, exist_ok=True)
                    with self._path.open("a", encoding="utf-8") as handle:
                        handle.write(json.dumps(event) + "\n")
                        handle.flush()
                        os.fsync(handle.fileno())
        except OSError as exc:
            raise StorageError("Failed to append event") from exc
        return event

    def list_recent(self, limit: int = 100) -> list[dict[str, Any]]:
        """Read the newest events up to ``limit``."""
        if limit <= 0 or not self._path.exists():
            return []
        with self._thread_lock:
            with self._lock:
                with self._path.open("r", encoding="utf-8") as handle:
                    selected = list(deque(handle, maxlen=limit))
        events: list[dict[str, Any]] = []
        for line in selected:
            try:
                parsed = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping malformed event line in %s", self._path)
                continue
            if isinstance(parsed, dict):
                events.append(parsed)
        return events


class FileConfigRepository:
    """YAML-backed repository for runtime configuration."""

    def __init__(self, path: Path, lock_path: Path) -> None:
        self._path = path
        self._lock = FileLock(lock_path)
        self._thread_lock = threading.RLock()

    def load(self) -> dict[str, Any]:
        """Load configuration from disk.

        Returns:
            dict[str, Any]: Configuration mapping from disk, or an empty mapping.
        """
        with self._thread_lock:
            with self._lock:
                if not self._path.exists():
                    return {}
                try:
                    raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
                except (OSError, yaml.YAMLError) as exc:
                    raise StorageError("Failed to read configuration") from exc
                return raw if isinstance(raw, dict) else {}

    def save(self, config: dict[str, Any]) -> dict[str, Any]:
        """Persist configuration to disk atomically."""
        with self._thread_lock:
            with self._lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
                with tmp_path.open("w", encoding="utf-8") as handle:
                    yaml.safe_dump(config, handle, sort_keys=False)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_path, self._path)
        return config

    def section(self, name: str) -> dict[str, Any]:
        """Return one top-level config mapping, or an empty mapping."""
        value = self.load().get(name)
        return dict(value) if isinstance(value, dict) else {}
