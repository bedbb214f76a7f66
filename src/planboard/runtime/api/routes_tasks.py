"""Task-focused route registration for the API."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from .deps import RouteDeps, actor_id
from .helpers import _csv
from .schemas import BulkCreateRequest, CreateTaskRequest, ReorderRequest, UpdateTaskRequest, task_body


def register_task_routes(router: APIRouter, deps: RouteDeps) -> None:
    """Register task listing, CRUD, bulk and reorder endpoints on the shared router."""

    @router.get("/tasks")
    async def list_tasks(
        plan_id: str = Query(...),
        status: list[str] = Query(default=[]),
        assignee: list[str] = Query(default=[]),
        tags: list[str] = Query(default=[]),
        priority: list[str] = Query(default=[]),
        parent_id: Optional[str] = Query(None),
        q: Optional[str] = Query(None),
        page: int = Query(1),
        limit: Optional[int] = Query(None),
        sort: str = Query("order_index"),
        order: str = Query("asc"),
        actor: str = Depends(actor_id),
    ) -> dict[str, Any]:
        """List a plan's tasks.

        Multi-value filters accept repeated parameters or comma-separated values.
        ``parent_id=null`` selects top-level tasks.
        """
        service = deps.tasks()
        tasks, pagination = service.list_tasks(
            plan_id,
            actor,
            statuses=_csv(status),
            assignee_ids=_csv(assignee),
            tags=_csv(tags),
            priorities=_csv(priority),
            parent_id=parent_id,
            q=q,
            page=page,
            limit=limit,
            sort=sort,
            order=order,
        )
        return {"tasks": service.expand_many(tasks), "pagination": pagination}

    @router.post("/tasks", status_code=201)
    async def create_task(body: CreateTaskRequest, actor: str = Depends(actor_id)) -> dict[str, Any]:
        service = deps.tasks()
        task = service.create_task(body.plan_id, task_body(body, exclude={"plan_id"}), actor)
        return {"task": service.expand(task)}

    @router.post("/tasks/bulk", status_code=201)
    async def bulk_create_tasks(body: BulkCreateRequest, actor: str = Depends(actor_id)) -> dict[str, Any]:
        """Create a batch of tasks; items may reference each other by temporary ``id``."""
        service = deps.tasks()
        payloads = [task_body(item, exclude=set()) for item in body.tasks]
        tasks, id_map = service.bulk_create(body.plan_id, payloads, actor)
        return {"tasks": service.expand_many(tasks), "id_map": id_map}

    @router.post("/tasks/reorder")
    async def reorder_tasks(body: ReorderRequest, actor: str = Depends(actor_id)) -> dict[str, Any]:
        updated = deps.tasks().reorder(body.plan_id, body.task_ids, actor)
        return {"updated": updated}

    @router.get("/tasks/{task_id}")
    async def get_task(task_id: str, plan_id: str = Query(...), actor: str = Depends(actor_id)) -> dict[str, Any]:
        service = deps.tasks()
        return {"task": service.expand(service.get_task(plan_id, task_id, actor))}

    @router.patch("/tasks/{task_id}")
    async def update_task(
        task_id: str,
        body: UpdateTaskRequest,
        plan_id: str = Query(...),
        actor: str = Depends(actor_id),
    ) -> dict[str, Any]:
        service = deps.tasks()
        task = service.update_task(plan_id, task_id, task_body(body, exclude=set()), actor)
        return {"task": service.expand(task)}

    @router.delete("/tasks/{task_id}")
    async def delete_task(task_id: str, plan_id: str = Query(...), actor: str = Depends(actor_id)) -> dict[str, Any]:
        deps.tasks().delete_task(plan_id, task_id, actor)
        return {"message": "Task deleted", "id": task_id}
