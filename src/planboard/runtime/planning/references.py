"""Referential checks for ``parent_id`` and ``dependency_ids`` within one plan."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from ..domain.models import Task
from ..errors import ValidationError
from ..storage.interfaces import TaskRepository


@dataclass
class ReferenceIndex:
    """Adjacency view of one plan's task set, plus any uncommitted batch items."""

    titles: dict[str, str] = field(default_factory=dict)
    parents: dict[str, Optional[str]] = field(default_factory=dict)
    dependencies: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> "ReferenceIndex":
        index = cls()
        for task in tasks:
            index.add(task.id, task.title, task.parent_id, task.dependency_ids)
        return index

    def add(self, task_id: str, title: str, parent_id: Optional[str], dependency_ids: Sequence[str]) -> None:
        """Insert or replace the edges of one node."""
        self.titles[task_id] = title
        self.parents[task_id] = parent_id or None
        self.dependencies[task_id] = list(dependency_ids)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self.titles

    def parent_cycle(self, task_id: str, parent_id: Optional[str]) -> bool:
        """Whether making ``parent_id`` the parent of ``task_id`` closes a loop."""
        seen: set[str] = set()
        node = parent_id
        while node:
            if node == task_id:
                return True
            if node in seen:
                return False
            seen.add(node)
            node = self.parents.get(node)
        return False

    def dependency_cycle(self, task_id: str, dependency_ids: Sequence[str]) -> bool:
        """Whether ``task_id`` depending on ``dependency_ids`` closes a loop."""
        visited: set[str] = set()
        stack = list(dependency_ids)
        while stack:
            node = stack.pop()
            if node == task_id:
                return True
            if node in visited:
                continue
            visited.add(node)
            stack.extend(self.dependencies.get(node, []))
        return False


def _unresolved(dependency_ids: Sequence[str], known: Iterable[str]) -> list[str]:
    known_set = set(known)
    return [dep_id for dep_id in dependency_ids if dep_id not in known_set]


class ReferenceValidator:
    """Read-only verification of parent and dependency references.

    Args:
        tasks (TaskRepository): Source of persisted tasks.
        detect_cycles (bool): Also reject parent chains and dependency edges
            that would form a cycle.
    """

    def __init__(self, tasks: TaskRepository, *, detect_cycles: bool = False) -> None:
        self.tasks = tasks
        self.detect_cycles = detect_cycles

    def check_task(
        self,
        plan_id: str,
        *,
        task_id: str,
        title: str,
        parent_id: Optional[str] = None,
        dependency_ids: Optional[Sequence[str]] = None,
    ) -> None:
        """Validate the references of a single task being created or updated.

        Pass only the references that need checking: ``None`` (or an empty
        list) skips that reference.

        Raises:
            ValidationError: On an unresolved reference or, when enabled, a cycle.
        """
        deps = list(dependency_ids or [])
        if parent_id and parent_id == task_id:
            raise ValidationError("A task cannot be its own parent", field="parent_id")
        if parent_id:
            if self.tasks.get_in_plan(plan_id, parent_id) is None:
                raise ValidationError("Parent task not found or not in same plan", field="parent_id")
        if deps:
            found = self.tasks.find_in_plan(plan_id, deps)
            if len(found) != len(deps):
                missing = _unresolved(deps, (task.id for task in found))
                raise ValidationError(_dependency_message(title, missing), field="dependency_ids")
        if self.detect_cycles and (parent_id or deps):
            index = ReferenceIndex.from_tasks(self.tasks.list_for_plan(plan_id))
            self._check_cycles(index, task_id, parent_id, deps, field_prefix="")

    def check_batch(self, plan_id: str, items: Sequence[Task]) -> None:
        """Validate a batch whose items may reference each other by temporary id.

        The plan's persisted tasks are indexed once; every item is then checked
        against the union of that index and the batch. Nothing is written, so
        the first failure rejects the whole batch.

        Raises:
            ValidationError: Naming the offending item by position and title.
        """
        persisted = ReferenceIndex.from_tasks(self.tasks.list_for_plan(plan_id))
        batch_ids = {item.id for item in items}
        for position, item in enumerate(items):
            if item.parent_id and item.parent_id == item.id:
                raise ValidationError(
                    f"Task {item.title} cannot be its own parent",
                    field=f"tasks[{position}].parent_id",
                )
            if item.parent_id and item.parent_id not in batch_ids and item.parent_id not in persisted:
                raise ValidationError(
                    f"Parent task {item.parent_id} not found for task {item.title}",
                    field=f"tasks[{position}].parent_id",
                )
            if item.dependency_ids:
                resolved = {dep_id for dep_id in item.dependency_ids if dep_id in batch_ids or dep_id in persisted}
                if len(resolved) != len(item.dependency_ids):
                    missing = _unresolved(item.dependency_ids, resolved)
                    raise ValidationError(
                        _dependency_message(item.title, missing),
                        field=f"tasks[{position}].dependency_ids",
                    )
        if not self.detect_cycles:
            return
        index = persisted
        for item in items:
            index.add(item.id, item.title, item.parent_id, item.dependency_ids)
        for position, item in enumerate(items):
            self._check_cycles(index, item.id, item.parent_id, item.dependency_ids, field_prefix=f"tasks[{position}].")

    def _check_cycles(
        self,
        index: ReferenceIndex,
        task_id: str,
        parent_id: Optional[str],
        dependency_ids: Sequence[str],
        *,
        field_prefix: str,
    ) -> None:
        if parent_id and index.parent_cycle(task_id, parent_id):
            raise ValidationError("Parent assignment would create a cycle", field=f"{field_prefix}parent_id")
        if dependency_ids and index.dependency_cycle(task_id, dependency_ids):
            raise ValidationError("Dependencies would create a cycle", field=f"{field_prefix}dependency_ids")


def _dependency_message(title: str, missing: Sequence[str]) -> str:
    if not missing:
        return f"Duplicate dependencies listed for task {title}"
    return f"Some dependencies not found for task {title}: {', '.join(missing)}"
