"""Task orchestration: validation, ordering and persistence for one plan."""

from __future__ import annotations

import logging
import math
from typing import Any, Optional, Sequence

from ..domain.models import Task, User, new_id
from ..errors import ConflictError, NotFoundError, ValidationError
from ..events.bus import EventBus
from ..storage.container import Container
from ..storage.interfaces import TaskQuery
from .access import PlanAccessGate
from .fields import check_schedule, clean_task_fields
from .ordering import OrderingEngine, listing_sort
from .portability import PlanPorter
from .references import ReferenceValidator

logger = logging.getLogger(__name__)


def _user_ref(user_id: str, users: dict[str, User]) -> dict[str, Any]:
    user = users.get(user_id)
    if user is None:
        return {"id": user_id, "name": None, "email": None, "avatar": None}
    return user.public_dict()


class TaskService:
    """Entry points for task create, update, delete, bulk create, reorder and transfer.

    Each operation checks the actor's plan role once, validates everything it
    can before writing, and then writes without a surrounding transaction.
    """

    def __init__(self, container: Container, bus: EventBus) -> None:
        self.container = container
        self.bus = bus
        self.gate = PlanAccessGate(container.plans)
        self.ordering = OrderingEngine(container.tasks)
        self.porter = PlanPorter(container, bus)

    def _planning_config(self) -> dict[str, Any]:
        return self.container.config.section("planning")

    def _validator(self) -> ReferenceValidator:
        detect = bool(self._planning_config().get("detect_cycles", False))
        return ReferenceValidator(self.container.tasks, detect_cycles=detect)

    # Reads

    def list_tasks(
        self,
        plan_id: str,
        actor_id: str,
        *,
        statuses: Sequence[str] = (),
        assignee_ids: Sequence[str] = (),
        tags: Sequence[str] = (),
        priorities: Sequence[str] = (),
        parent_id: Optional[str] = None,
        q: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
        sort: str = "order_index",
        order: str = "asc",
    ) -> tuple[list[Task], dict[str, int]]:
        """Filter, sort and paginate a plan's tasks.

        Args:
            parent_id: Restrict to children of this task; ``"null"`` selects
                top-level tasks; ``None`` disables the filter.

        Returns:
            tuple[list[Task], dict[str, int]]: One page of tasks and
            ``{page, limit, total, pages}``.
        """
        self.gate.require(plan_id, actor_id, "viewer")
        cfg = self._planning_config()
        max_limit = int(cfg.get("max_page_limit", 200) or 200)
        default_limit = int(cfg.get("default_page_limit", 50) or 50)
        page = max(1, int(page or 1))
        limit = min(max(1, int(limit or default_limit)), max_limit)
        query = TaskQuery(
            plan_id=plan_id,
            statuses=list(statuses),
            assignee_ids=list(assignee_ids),
            tags=list(tags),
            priorities=list(priorities),
            parent_id=None if parent_id == "null" else parent_id,
            filter_parent=parent_id is not None,
            text=q,
            sort=listing_sort(sort, order),
            skip=(page - 1) * limit,
            limit=limit,
        )
        tasks = self.container.tasks.query(query)
        total = self.container.tasks.count(query)
        pagination = {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)}
        return tasks, pagination

    def get_task(self, plan_id: str, task_id: str, actor_id: str) -> Task:
        self.gate.require(plan_id, actor_id, "viewer")
        task = self.container.tasks.get_in_plan(plan_id, task_id)
        if task is None:
            raise NotFoundError("Task not found", field="id")
        return task

    def expand(self, task: Task) -> dict[str, Any]:
        return self.expand_many([task])[0]

    def expand_many(self, tasks: Sequence[Task]) -> list[dict[str, Any]]:
        """Task payloads with assignee, creator and updater resolved to display fields."""
        wanted: set[str] = set()
        for task in tasks:
            wanted.update(task.assignee_ids)
            wanted.update(uid for uid in (task.created_by, task.updated_by) if uid)
        users = {user.id: user for user in self.container.users.get_many(sorted(wanted))}
        out: list[dict[str, Any]] = []
        for task in tasks:
            payload = task.to_dict()
            payload["assignees"] = [_user_ref(uid, users) for uid in task.assignee_ids]
            payload["created_by"] = _user_ref(task.created_by, users)
            payload["updated_by"] = _user_ref(task.updated_by, users)
            out.append(payload)
        return out

    # Mutations

    def create_task(self, plan_id: str, payload: dict[str, Any], actor_id: str) -> Task:
        """Validate and persist one task, placing it at the end of its column if unordered."""
        self.gate.require(plan_id, actor_id, "editor")
        fields = clean_task_fields(payload, partial=False)
        check_schedule(fields.get("start_date"), fields.get("due_date"))
        task = Task(plan_id=plan_id, created_by=actor_id, updated_by=actor_id)
        for key, value in fields.items():
            setattr(task, key, value)
        self._validator().check_task(
            plan_id,
            task_id=task.id,
            title=task.title,
            parent_id=task.parent_id,
            dependency_ids=task.dependency_ids,
        )
        self.ordering.place(task)
        logger.info("Created task %s in plan %s at %s/%s", task.id, plan_id, task.status, task.order_index)
        self.bus.emit(
            channel="tasks",
            event_type="task.created",
            entity_id=task.id,
            payload={"plan_id": plan_id, "status": task.status, "order_index": task.order_index},
        )
        return task

    def update_task(self, plan_id: str, task_id: str, payload: dict[str, Any], actor_id: str) -> Task:
        """Apply a partial update, re-validating only references that changed."""
        self.gate.require(plan_id, actor_id, "editor")
        task = self.container.tasks.get_in_plan(plan_id, task_id)
        if task is None:
            raise NotFoundError("Task not found", field="id")
        if "plan_id" in payload and payload["plan_id"] not in (None, plan_id):
            raise ValidationError("A task cannot be moved to another plan", field="plan_id")
        fields = clean_task_fields(payload, partial=True)
        check_schedule(
            fields.get("start_date", task.start_date),
            fields.get("due_date", task.due_date),
        )
        new_parent = fields.get("parent_id")
        parent_changed = bool(new_parent) and new_parent != task.parent_id
        new_deps = fields.get("dependency_ids")
        deps_changed = new_deps is not None and new_deps != task.dependency_ids
        if parent_changed or deps_changed:
            self._validator().check_task(
                plan_id,
                task_id=task.id,
                title=fields.get("title", task.title),
                parent_id=new_parent if parent_changed else None,
                dependency_ids=new_deps if deps_changed else None,
            )
        previous_status = task.status
        task = self.container.tasks.patch(task.id, {**fields, "updated_by": actor_id})
        self.bus.emit(
            channel="tasks",
            event_type="task.updated",
            entity_id=task.id,
            payload={"plan_id": plan_id, "fields": sorted(fields), "status": task.status, "previous_status": previous_status},
        )
        return task

    def delete_task(self, plan_id: str, task_id: str, actor_id: str) -> None:
        """Delete a childless task and drop it from sibling dependency lists.

        Raises:
            NotFoundError: If the task is not in the plan.
            ConflictError: If any task still names it as parent.
        """
        self.gate.require(plan_id, actor_id, "editor")
        task = self.container.tasks.get_in_plan(plan_id, task_id)
        if task is None:
            raise NotFoundError("Task not found", field="id")
        if self.container.tasks.has_children(task_id):
            raise ConflictError("Cannot delete task with subtasks. Delete subtasks first.", field="id")
        if not self.container.tasks.delete(task_id):
            raise NotFoundError("Task not found", field="id")
        for other in self.container.tasks.list_for_plan(plan_id):
            if task_id in other.dependency_ids:
                self.container.tasks.patch(
                    other.id,
                    {
                        "dependency_ids": [dep_id for dep_id in other.dependency_ids if dep_id != task_id],
                        "updated_by": actor_id,
                    },
                )
        logger.info("Deleted task %s from plan %s", task_id, plan_id)
        self.bus.emit(channel="tasks", event_type="task.deleted", entity_id=task_id, payload={"plan_id": plan_id})

    def bulk_create(
        self,
        plan_id: str,
        payloads: Sequence[dict[str, Any]],
        actor_id: str,
    ) -> tuple[list[Task], dict[str, str]]:
        """Create a batch of tasks that may reference each other by temporary id.

        Every item is validated before anything is written; one bad item rejects
        the batch. Persisted tasks receive fresh ids and in-batch references are
        rewritten to them.

        Returns:
            tuple[list[Task], dict[str, str]]: Created tasks and the
            temporary-id to persisted-id map.
        """
        self.gate.require(plan_id, actor_id, "editor")
        items: list[Task] = []
        seen: set[str] = set()
        for position, payload in enumerate(payloads):
            prefix = f"tasks[{position}]."
            if "plan_id" in payload and payload["plan_id"] not in (None, plan_id):
                raise ValidationError("Task plan_id does not match the batch plan", field=f"{prefix}plan_id")
            fields = clean_task_fields(payload, partial=False, prefix=prefix)
            check_schedule(fields.get("start_date"), fields.get("due_date"), prefix=prefix)
            temp_id = str(payload.get("id") or new_id("tmp"))
            if temp_id in seen:
                raise ValidationError(f"Duplicate batch id {temp_id}", field=f"{prefix}id")
            seen.add(temp_id)
            item = Task(id=temp_id, plan_id=plan_id, created_by=actor_id, updated_by=actor_id)
            for key, value in fields.items():
                setattr(item, key, value)
            items.append(item)
        self._validator().check_batch(plan_id, items)

        id_map = {item.id: new_id("task") for item in items}
        for item in items:
            item.id = id_map[item.id]
            if item.parent_id in id_map:
                item.parent_id = id_map[item.parent_id]
            item.dependency_ids = [id_map.get(dep_id, dep_id) for dep_id in item.dependency_ids]
        self.ordering.assign_batch(plan_id, items)
        created = self.container.tasks.insert_many(items)
        logger.info("Bulk created %d tasks in plan %s", len(created), plan_id)
        self.bus.emit(
            channel="tasks",
            event_type="tasks.bulk_created",
            entity_id=plan_id,
            payload={"task_ids": [task.id for task in created]},
        )
        return created, id_map

    def reorder(self, plan_id: str, task_ids: Sequence[str], actor_id: str) -> int:
        """Rewrite ``order_index`` to match ``task_ids``; returns the number updated."""
        self.gate.require(plan_id, actor_id, "editor")
        updated = self.ordering.reorder(plan_id, list(task_ids), actor_id)
        self.bus.emit(
            channel="tasks",
            event_type="tasks.reordered",
            entity_id=plan_id,
            payload={"task_ids": list(task_ids), "updated": updated},
        )
        return updated

    # Transfer

    def export_plan(self, plan_id: str, actor_id: str) -> dict[str, Any]:
        plan, _ = self.gate.require(plan_id, actor_id, "viewer")
        return self.porter.export_plan(plan, actor_id)

    def import_plan(self, snapshot: Any, actor_id: str) -> dict[str, Any]:
        return self.porter.import_plan(snapshot, actor_id)
