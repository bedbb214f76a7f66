"""Role resolution for plan-scoped operations (owner > editor > viewer)."""

from __future__ import annotations

import logging
from typing import Optional

from ..domain.models import Plan
from ..errors import AccessError, NotFoundError
from ..storage.interfaces import PlanRepository

logger = logging.getLogger(__name__)

ROLE_RANK: dict[str, int] = {"viewer": 1, "editor": 2, "owner": 3}


def resolve_role(plan: Plan, user_id: str) -> Optional[str]:
    """Return the role ``user_id`` holds in ``plan``, or ``None`` without access."""
    if user_id and plan.owner_id == user_id:
        return "owner"
    member = plan.member(user_id)
    return member.role if member else None


def role_satisfies(role: Optional[str], minimum: str) -> bool:
    if role is None:
        return False
    return ROLE_RANK.get(role, 0) >= ROLE_RANK[minimum]


class PlanAccessGate:
    """Admission check run once per operation before any mutation."""

    def __init__(self, plans: PlanRepository) -> None:
        self.plans = plans

    def require(self, plan_id: str, actor_id: str, minimum: str) -> tuple[Plan, str]:
        """Load a plan and verify the actor holds at least ``minimum``.

        Args:
            plan_id (str): Plan being accessed.
            actor_id (str): Acting user id.
            minimum (str): Minimum role required by the operation.

        Returns:
            tuple[Plan, str]: The plan and the actor's resolved role.

        Raises:
            NotFoundError: If the plan does not exist.
            AccessError: If the actor has no role or an insufficient one.
        """
        plan = self.plans.get(plan_id)
        if plan is None:
            raise NotFoundError("Plan not found", field="plan_id")
        role = resolve_role(plan, actor_id)
        if role is None:
            logger.info("User %s has no access to plan %s", actor_id, plan_id)
            raise AccessError("No access to this plan")
        if not role_satisfies(role, minimum):
            raise AccessError(f"Requires {minimum} access or higher")
        return plan, role
