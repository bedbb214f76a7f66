"""Plan, membership and transfer route registration."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from .deps import RouteDeps, actor_id
from .schemas import AddMemberRequest, CreatePlanRequest, UpdateMemberRequest, UpdatePlanRequest


def register_plan_routes(router: APIRouter, deps: RouteDeps) -> None:
    """Register plan CRUD, member management and export/import endpoints."""

    @router.get("/plans")
    async def list_plans(actor: str = Depends(actor_id)) -> dict[str, Any]:
        service = deps.plans()
        plans = service.list_plans(actor)
        return {"plans": [service.expand(plan, task_count=service.task_count(plan.id)) for plan in plans]}

    @router.post("/plans", status_code=201)
    async def create_plan(body: CreatePlanRequest, actor: str = Depends(actor_id)) -> dict[str, Any]:
        service = deps.plans()
        plan = service.create_plan(body.name, body.description, actor)
        return {"plan": service.expand(plan, task_count=0)}

    @router.post("/plans/import", status_code=201)
    async def import_plan(body: dict[str, Any], actor: str = Depends(actor_id)) -> dict[str, Any]:
        """Create a new plan from an exported snapshot, owned by the caller."""
        result = deps.tasks().import_plan(body, actor)
        plans = deps.plans()
        plan = result["plan"]
        return {
            "plan": plans.expand(plan, task_count=result["tasks_created"]),
            "tasks_created": result["tasks_created"],
            "message": result["message"],
        }

    @router.get("/plans/{plan_id}")
    async def get_plan(plan_id: str, actor: str = Depends(actor_id)) -> dict[str, Any]:
        service = deps.plans()
        plan, role = service.get_plan(plan_id, actor)
        return {"plan": service.expand(plan, task_count=service.task_count(plan.id)), "role": role}

    @router.patch("/plans/{plan_id}")
    async def update_plan(plan_id: str, body: UpdatePlanRequest, actor: str = Depends(actor_id)) -> dict[str, Any]:
        service = deps.plans()
        plan = service.update_plan(plan_id, body.model_dump(exclude_unset=True), actor)
        return {"plan": service.expand(plan)}

    @router.delete("/plans/{plan_id}")
    async def delete_plan(plan_id: str, actor: str = Depends(actor_id)) -> dict[str, Any]:
        removed = deps.plans().delete_plan(plan_id, actor)
        return {"message": "Plan deleted", "tasks_removed": removed}

    @router.get("/plans/{plan_id}/export")
    async def export_plan(plan_id: str, actor: str = Depends(actor_id)) -> dict[str, Any]:
        return deps.tasks().export_plan(plan_id, actor)

    @router.post("/plans/{plan_id}/members", status_code=201)
    async def add_member(plan_id: str, body: AddMemberRequest, actor: str = Depends(actor_id)) -> dict[str, Any]:
        service = deps.plans()
        plan = service.add_member(plan_id, body.user_id, body.role, actor)
        return {"plan": service.expand(plan)}

    @router.patch("/plans/{plan_id}/members/{user_id}")
    async def update_member(
        plan_id: str,
        user_id: str,
        body: UpdateMemberRequest,
        actor: str = Depends(actor_id),
    ) -> dict[str, Any]:
        service = deps.plans()
        plan = service.update_member_role(plan_id, user_id, body.role, actor)
        return {"plan": service.expand(plan)}

    @router.delete("/plans/{plan_id}/members/{user_id}")
    async def remove_member(plan_id: str, user_id: str, actor: str = Depends(actor_id)) -> dict[str, Any]:
        service = deps.plans()
        plan = service.remove_member(plan_id, user_id, actor)
        return {"plan": service.expand(plan)}
