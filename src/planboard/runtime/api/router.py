"""FastAPI routes for plans, tasks and users."""

from __future__ import annotations

from collections.abc import Callable

from fastapi import APIRouter

from ..events.bus import EventBus
from ..storage.container import Container
from .deps import RouteDeps
from .routes_plans import register_plan_routes
from .routes_tasks import register_task_routes
from .routes_users import register_user_routes


def create_router(resolve_container: Callable[[], Container]) -> APIRouter:
    """Create the API router.

    Args:
        resolve_container (Callable[[], Container]): Returns the ``Container``
            for the served data directory.

    Returns:
        APIRouter: Router exposing plan, membership, task and user endpoints
        under ``/api``.
    """
    router = APIRouter(prefix="/api", tags=["api"])

    def _ctx() -> tuple[Container, EventBus]:
        container = resolve_container()
        return container, EventBus(container.events)

    deps = RouteDeps(resolve_container=resolve_container, ctx=_ctx)
    register_plan_routes(router, deps)
    register_task_routes(router, deps)
    register_user_routes(router, deps)
    return router
