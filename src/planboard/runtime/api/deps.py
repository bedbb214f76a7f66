"""Shared dependency context for API route registration."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

from ..events.bus import EventBus
from ..planning.plans import PlanService
from ..planning.service import TaskService
from ..planning.users import UserService
from ..storage.container import Container


@dataclass(frozen=True)
class RouteDeps:
    """Route registration dependency bundle."""

    resolve_container: Callable[[], Container]
    ctx: Callable[[], tuple[Container, EventBus]]

    def tasks(self) -> TaskService:
        return TaskService(*self.ctx())

    def plans(self) -> PlanService:
        return PlanService(*self.ctx())

    def users(self) -> UserService:
        return UserService(*self.ctx())


def actor_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Resolve the acting user from the ``X-User-Id`` header.

    Authentication happens upstream; this only requires that an identity was
    forwarded.
    """
    value = str(x_user_id or "").strip()
    if not value:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return value
