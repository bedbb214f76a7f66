"""User registration route registration."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from .deps import RouteDeps, actor_id
from .schemas import RegisterRequest


def register_user_routes(router: APIRouter, deps: RouteDeps) -> None:
    """Register user signup and lookup endpoints."""

    @router.post("/users", status_code=201)
    async def register_user(body: RegisterRequest) -> dict[str, Any]:
        """Register a user, claiming any placeholder created for the same email."""
        user = deps.users().register(body.email, body.name, body.password)
        return {"user": user.public_dict()}

    @router.get("/users/me")
    async def current_user(actor: str = Depends(actor_id)) -> dict[str, Any]:
        return {"user": deps.users().get_user(actor).public_dict()}

    @router.get("/users/{user_id}")
    async def get_user(user_id: str, actor: str = Depends(actor_id)) -> dict[str, Any]:
        return {"user": deps.users().get_user(user_id).public_dict()}
