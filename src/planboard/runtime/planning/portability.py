"""Portable plan snapshots: export by email identity, import with id remapping."""

from __future__ import annotations

import logging
from typing import Any, Literal, Optional, Sequence, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from ..domain.models import Plan, PlanMember, Task, User, new_id, normalize_email, now_iso
from ..errors import NotFoundError, ValidationError
from ..events.bus import EventBus
from ..storage.container import Container
from .fields import check_schedule, clean_task_fields
from .plans import clean_plan_description, clean_plan_name
from .users import UserService

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0"


class SnapshotPerson(BaseModel):
    name: str = ""
    email: str


class SnapshotMember(SnapshotPerson):
    role: str = "viewer"


class SnapshotPlan(BaseModel):
    name: str
    description: Optional[str] = None
    members: list[SnapshotMember] = Field(default_factory=list)


class SnapshotTask(BaseModel):
    id: Optional[str] = None
    title: str
    description: Optional[str] = None
    goal: Optional[str] = None
    notes: Optional[str] = None
    deliverables: Optional[str] = None
    status: str = "todo"
    priority: Optional[str] = None
    assignees: list[SnapshotPerson] = Field(default_factory=list)
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    progress_pct: float = 0
    parent_id: Optional[str] = None
    dependency_ids: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    estimate_hours: Optional[float] = None
    order_index: Optional[int] = None


class ExportMetadata(BaseModel):
    exported_at: str
    exported_by: Optional[SnapshotPerson] = None
    version: Literal["1.0"]


class PlanSnapshot(BaseModel):
    plan: SnapshotPlan
    tasks: list[SnapshotTask] = Field(default_factory=list)
    export_metadata: ExportMetadata


def _loc_path(loc: Sequence[Union[str, int]]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def parse_snapshot(data: Any) -> PlanSnapshot:
    """Validate a raw snapshot document.

    Raises:
        ValidationError: On the first schema violation, with its location as field.
    """
    if isinstance(data, PlanSnapshot):
        return data
    try:
        return PlanSnapshot.model_validate(data)
    except SchemaError as exc:
        first = exc.errors()[0]
        raise ValidationError(f"Invalid plan snapshot: {first['msg']}", field=_loc_path(first["loc"])) from exc


def _person(user: Optional[User]) -> Optional[dict[str, str]]:
    if user is None:
        return None
    return {"name": user.name, "email": user.email}


def _task_order_key(task: Task) -> tuple[str, int, str]:
    return (task.status, task.order_index if task.order_index is not None else 0, task.created_at)


class PlanPorter:
    """Produce and consume plan snapshots.

    Snapshots identify people by email rather than id, so a plan can move
    between data directories. Placeholder users stand in for collaborators who
    have not registered yet.
    """

    def __init__(self, container: Container, bus: EventBus) -> None:
        self.container = container
        self.bus = bus
        self.users = UserService(container, bus)

    def export_plan(self, plan: Plan, actor_id: str) -> dict[str, Any]:
        tasks = sorted(self.container.tasks.list_for_plan(plan.id), key=_task_order_key)
        wanted = set(plan.user_ids()) | {actor_id}
        for task in tasks:
            wanted.update(task.assignee_ids)
        users = {user.id: user for user in self.container.users.get_many(sorted(wanted))}

        members = []
        for member in plan.members:
            user = users.get(member.user_id)
            if user is None:
                continue
            members.append({"name": user.name, "email": user.email, "role": member.role})

        exported_tasks = []
        for task in tasks:
            data = task.to_dict()
            for key in ("plan_id", "assignee_ids", "created_by", "updated_by", "created_at", "updated_at"):
                data.pop(key, None)
            data["assignees"] = [_person(users[uid]) for uid in task.assignee_ids if uid in users]
            exported_tasks.append(data)

        logger.info("Exported plan %s with %d tasks", plan.id, len(exported_tasks))
        return {
            "plan": {"name": plan.name, "description": plan.description, "members": members},
            "tasks": exported_tasks,
            "export_metadata": {
                "exported_at": now_iso(),
                "exported_by": _person(users.get(actor_id)),
                "version": SNAPSHOT_VERSION,
            },
        }

    def import_plan(self, data: Any, actor_id: str) -> dict[str, Any]:
        """Create a new plan owned by ``actor_id`` from a snapshot.

        Task payloads are fully validated before anything is written. Task
        references are rewritten from snapshot ids to the new ids; references
        that point outside the snapshot are dropped. Placeholder users created
        here are kept even if a later write fails.

        Returns:
            dict[str, Any]: ``{"plan", "tasks_created", "message"}``.
        """
        snapshot = parse_snapshot(data)
        actor = self.container.users.get(actor_id)
        if actor is None:
            raise NotFoundError("User not found", field="user_id")
        name = clean_plan_name(snapshot.plan.name)
        description = clean_plan_description(snapshot.plan.description)

        cleaned: list[dict[str, Any]] = []
        seen: set[str] = set()
        for position, item in enumerate(snapshot.tasks):
            prefix = f"tasks[{position}]."
            if item.id:
                if item.id in seen:
                    raise ValidationError(f"Duplicate task id {item.id} in snapshot", field=f"{prefix}id")
                seen.add(item.id)
            payload = item.model_dump(exclude={"id", "assignees"})
            fields = clean_task_fields(payload, partial=False, prefix=prefix)
            check_schedule(fields.get("start_date"), fields.get("due_date"), prefix=prefix)
            cleaned.append(fields)

        plan = Plan(name=name, description=description, owner_id=actor.id)
        for member in snapshot.plan.members:
            email = normalize_email(member.email)
            if not email or email == actor.email:
                continue
            user = self.users.ensure_by_email(email, member.name)
            if user.id == actor.id or plan.member(user.id) is not None:
                continue
            role = member.role if member.role in ("editor", "viewer") else "editor"
            plan.members.append(PlanMember(user_id=user.id, role=role))  # type: ignore[arg-type]

        id_map = {item.id: new_id("task") for item in snapshot.tasks if item.id}
        tasks: list[Task] = []
        for position, (item, fields) in enumerate(zip(snapshot.tasks, cleaned), start=1):
            task = Task(
                id=id_map.get(item.id or "") or new_id("task"),
                plan_id=plan.id,
                created_by=actor.id,
                updated_by=actor.id,
            )
            for key, value in fields.items():
                setattr(task, key, value)
            task.assignee_ids = [
                self.users.ensure_by_email(normalize_email(person.email), person.name).id
                for person in item.assignees
                if normalize_email(person.email)
            ]
            if task.parent_id and task.parent_id == item.id:
                logger.warning("Dropping self-parent on imported task %r", task.title)
                task.parent_id = None
            task.parent_id = self._remap(task.parent_id, id_map, task.title) if task.parent_id else None
            task.dependency_ids = [
                new
                for new in (self._remap(dep_id, id_map, task.title) for dep_id in task.dependency_ids)
                if new is not None
            ]
            if task.order_index is None:
                task.order_index = position
            tasks.append(task)

        self.container.plans.insert(plan)
        self.container.tasks.insert_many(tasks)
        logger.info("Imported plan %r (%s) with %d tasks for %s", plan.name, plan.id, len(tasks), actor.email)
        self.bus.emit(
            channel="plans",
            event_type="plan.imported",
            entity_id=plan.id,
            payload={"tasks_created": len(tasks), "members": len(plan.members)},
        )
        return {
            "plan": plan,
            "tasks_created": len(tasks),
            "message": f"Imported plan '{plan.name}' with {len(tasks)} tasks",
        }

    @staticmethod
    def _remap(old_id: str, id_map: dict[str, str], title: str) -> Optional[str]:
        new = id_map.get(old_id)
        if new is None:
            logger.warning("Dropping reference %s on imported task %r: not in snapshot", old_id, title)
        return new
