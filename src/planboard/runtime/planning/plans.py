"""Plan lifecycle and membership management."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from ..domain.models import Plan, PlanMember, User
from ..errors import ConflictError, NotFoundError, ValidationError
from ..events.bus import EventBus
from ..storage.container import Container
from ..storage.interfaces import TaskQuery
from .access import PlanAccessGate

logger = logging.getLogger(__name__)

_ASSIGNABLE_ROLES = ("editor", "viewer")


def clean_plan_name(value: Any) -> str:
    name = str(value or "").strip()
    if not name:
        raise ValidationError("Plan name is required", field="name")
    if len(name) > 100:
        raise ValidationError("Plan name too long", field="name")
    return name


def clean_plan_description(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if len(text) > 500:
        raise ValidationError("Description too long", field="description")
    return text or None


def _check_assignable_role(role: str) -> None:
    if role not in _ASSIGNABLE_ROLES:
        raise ValidationError("Role must be 'editor' or 'viewer'", field="role")


class PlanService:
    """Create, share and delete plans. Plan settings require the owner role."""

    def __init__(self, container: Container, bus: EventBus) -> None:
        self.container = container
        self.bus = bus
        self.gate = PlanAccessGate(container.plans)

    def create_plan(self, name: str, description: Optional[str], actor_id: str) -> Plan:
        if self.container.users.get(actor_id) is None:
            raise NotFoundError("User not found", field="user_id")
        plan = Plan(name=clean_plan_name(name), description=clean_plan_description(description), owner_id=actor_id)
        self.container.plans.insert(plan)
        logger.info("Created plan %r (%s) with owner %s", plan.name, plan.id, actor_id)
        self.bus.emit(channel="plans", event_type="plan.created", entity_id=plan.id, payload={"name": plan.name})
        return plan

    def list_plans(self, actor_id: str) -> list[Plan]:
        return self.container.plans.list_for_user(actor_id)

    def get_plan(self, plan_id: str, actor_id: str) -> tuple[Plan, str]:
        """Return the plan and the actor's role in it (viewer or higher)."""
        return self.gate.require(plan_id, actor_id, "viewer")

    def task_count(self, plan_id: str) -> int:
        return self.container.tasks.count(TaskQuery(plan_id=plan_id))

    def update_plan(self, plan_id: str, changes: dict[str, Any], actor_id: str) -> Plan:
        plan, _ = self.gate.require(plan_id, actor_id, "owner")
        if "name" in changes:
            plan.name = clean_plan_name(changes["name"])
        if "description" in changes:
            plan.description = clean_plan_description(changes["description"])
        self.container.plans.update(plan)
        self.bus.emit(channel="plans", event_type="plan.updated", entity_id=plan.id, payload={"fields": sorted(changes)})
        return plan

    def delete_plan(self, plan_id: str, actor_id: str) -> int:
        """Delete a plan and every task under it; returns the number of tasks removed."""
        self.gate.require(plan_id, actor_id, "owner")
        removed = self.container.tasks.delete_for_plan(plan_id)
        self.container.plans.delete(plan_id)
        logger.info("Deleted plan %s and %d tasks", plan_id, removed)
        self.bus.emit(channel="plans", event_type="plan.deleted", entity_id=plan_id, payload={"tasks_removed": removed})
        return removed

    def add_member(self, plan_id: str, user_id: str, role: str, actor_id: str) -> Plan:
        plan, _ = self.gate.require(plan_id, actor_id, "owner")
        _check_assignable_role(role)
        user = self.container.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found", field="user_id")
        if plan.owner_id == user_id:
            raise ConflictError("User is already the owner", field="user_id")
        if plan.member(user_id) is not None:
            raise ConflictError("User is already a member", field="user_id")
        plan.members.append(PlanMember(user_id=user_id, role=role))  # type: ignore[arg-type]
        self.container.plans.update(plan)
        logger.info("Added %s as %s to plan %s", user.email, role, plan.name)
        self.bus.emit(channel="plans", event_type="plan.member_added", entity_id=plan.id, payload={"user_id": user_id, "role": role})
        return plan

    def remove_member(self, plan_id: str, user_id: str, actor_id: str) -> Plan:
        plan, _ = self.gate.require(plan_id, actor_id, "owner")
        plan.members = [member for member in plan.members if member.user_id != user_id]
        self.container.plans.update(plan)
        self.bus.emit(channel="plans", event_type="plan.member_removed", entity_id=plan.id, payload={"user_id": user_id})
        return plan

    def update_member_role(self, plan_id: str, user_id: str, role: str, actor_id: str) -> Plan:
        plan, _ = self.gate.require(plan_id, actor_id, "owner")
        _check_assignable_role(role)
        member = plan.member(user_id)
        if member is None:
            raise NotFoundError("Member not found", field="user_id")
        member.role = role  # type: ignore[assignment]
        self.container.plans.update(plan)
        self.bus.emit(channel="plans", event_type="plan.member_role_changed", entity_id=plan.id, payload={"user_id": user_id, "role": role})
        return plan

    def expand(self, plan: Plan, *, task_count: Optional[int] = None) -> dict[str, Any]:
        """Plan payload with owner and members resolved to display fields."""
        users = _users_by_id(self.container.users.get_many(plan.user_ids()))
        owner = users.get(plan.owner_id)
        payload = plan.to_dict()
        payload["owner"] = owner.public_dict() if owner else {"id": plan.owner_id}
        payload["members"] = [
            {
                **member.to_dict(),
                "user": users[member.user_id].public_dict() if member.user_id in users else {"id": member.user_id},
            }
            for member in plan.members
        ]
        if task_count is not None:
            payload["task_count"] = task_count
        return payload


def _users_by_id(users: Sequence[User]) -> dict[str, User]:
    return {user.id: user for user in users}
