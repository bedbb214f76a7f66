"""Pydantic request schemas for API routes.

Schemas check shapes only; value rules (enums, ranges, dates, references) are
enforced by the planning services so they surface as validation errors.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class TaskFields(BaseModel):
    """Task attributes shared by create and bulk payloads."""

    title: str
    description: Optional[str] = None
    goal: Optional[str] = None
    notes: Optional[str] = None
    deliverables: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    assignee_ids: list[str] = Field(default_factory=list)
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    progress_pct: Optional[float] = None
    parent_id: Optional[str] = None
    dependency_ids: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    estimate_hours: Optional[float] = None
    order_index: Optional[int] = None


class CreateTaskRequest(TaskFields):
    """Payload for creating a single task."""

    plan_id: str


class BulkTaskItem(TaskFields):
    """One batch item; ``id`` is a client-side temporary id other items may reference."""

    id: Optional[str] = None
    plan_id: Optional[str] = None


class BulkCreateRequest(BaseModel):
    plan_id: str
    tasks: list[BulkTaskItem] = Field(min_length=1)


class UpdateTaskRequest(BaseModel):
    """Partial task update; only fields present in the body are applied."""

    plan_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    goal: Optional[str] = None
    notes: Optional[str] = None
    deliverables: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    assignee_ids: Optional[list[str]] = None
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    progress_pct: Optional[float] = None
    parent_id: Optional[str] = None
    dependency_ids: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    estimate_hours: Optional[float] = None
    order_index: Optional[int] = None


class ReorderRequest(BaseModel):
    plan_id: str
    task_ids: list[str]


class CreatePlanRequest(BaseModel):
    name: str
    description: Optional[str] = None


class UpdatePlanRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class AddMemberRequest(BaseModel):
    user_id: str
    role: str = "viewer"


class UpdateMemberRequest(BaseModel):
    role: str


class RegisterRequest(BaseModel):
    email: str
    name: str
    password: str


def task_body(body: BaseModel, *, exclude: set[str]) -> dict[str, Any]:
    """Dump only fields the client actually sent."""
    return body.model_dump(exclude_unset=True, exclude=exclude)
