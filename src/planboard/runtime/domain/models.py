"""Domain model dataclasses and normalization helpers."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional, cast


TaskStatus = Literal["todo", "in_progress", "done"]
Priority = Literal["low", "medium", "high", "urgent"]
PlanRole = Literal["owner", "editor", "viewer"]

TASK_STATUSES: tuple[str, ...] = ("todo", "in_progress", "done")
PRIORITIES: tuple[str, ...] = ("low", "medium", "high", "urgent")
PLAN_ROLES: tuple[str, ...] = ("owner", "editor", "viewer")
_VALID_TASK_STATUSES = set(TASK_STATUSES)
_VALID_PRIORITIES = set(PRIORITIES)
_VALID_PLAN_ROLES = set(PLAN_ROLES)

PLACEHOLDER_PASSWORD_HASH = "!placeholder"


def now_iso() -> str:
    """Get the current UTC timestamp formatted as ISO-8601 text."""
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text else None


def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if item is not None and str(item)]


@dataclass
class Task:
    """A unit of work owned by exactly one plan."""
    id: str = field(default_factory=lambda: new_id("task"))
    plan_id: str = ""
    title: str = ""
    description: Optional[str] = None
    goal: Optional[str] = None
    notes: Optional[str] = None
    deliverables: Optional[str] = None
    status: TaskStatus = "todo"
    priority: Optional[Priority] = "medium"
    assignee_ids: list[str] = field(default_factory=list)
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    progress_pct: float = 0
    parent_id: Optional[str] = None
    dependency_ids: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    estimate_hours: Optional[float] = None
    # None until the ordering engine places the task in its partition.
    order_index: Optional[int] = None
    created_by: str = ""
    updated_by: str = ""
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        """Serialize a task to a dictionary payload."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Deserialize and normalize a task from persisted data."""
        status = str(data.get("status") or "todo")
        if status not in _VALID_TASK_STATUSES:
            status = "todo"
        raw_priority = data.get("priority")
        priority = str(raw_priority) if raw_priority is not None and str(raw_priority) in _VALID_PRIORITIES else None
        try:
            progress = float(data.get("progress_pct") or 0)
        except (TypeError, ValueError):
            progress = 0
        raw_order = data.get("order_index")
        try:
            order_index = int(raw_order) if raw_order is not None else 0
        except (TypeError, ValueError):
            order_index = 0
        return cls(
            id=str(data.get("id") or new_id("task")),
            plan_id=str(data.get("plan_id") or ""),
            title=str(data.get("title") or ""),
            description=_opt_str(data.get("description")),
            goal=_opt_str(data.get("goal")),
            notes=_opt_str(data.get("notes")),
            deliverables=_opt_str(data.get("deliverables")),
            status=cast(TaskStatus, status),
            priority=cast(Optional[Priority], priority),
            assignee_ids=_str_list(data.get("assignee_ids")),
            start_date=_opt_str(data.get("start_date")),
            due_date=_opt_str(data.get("due_date")),
            progress_pct=progress,
            parent_id=_opt_str(data.get("parent_id")),
            dependency_ids=_str_list(data.get("dependency_ids")),
            tags=_str_list(data.get("tags")),
            estimate_hours=_opt_float(data.get("estimate_hours")),
            order_index=order_index,
            created_by=str(data.get("created_by") or ""),
            updated_by=str(data.get("updated_by") or ""),
            created_at=str(data.get("created_at") or now_iso()),
            updated_at=str(data.get("updated_at") or now_iso()),
        )


@dataclass
class PlanMember:
    """Membership of a non-owner user in a plan."""
    user_id: str = ""
    role: PlanRole = "viewer"
    joined_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlanMember":
        role = str(data.get("role") or "viewer")
        if role not in _VALID_PLAN_ROLES:
            role = "viewer"
        return cls(
            user_id=str(data.get("user_id") or ""),
            role=cast(PlanRole, role),
            joined_at=str(data.get("joined_at") or now_iso()),
        )


@dataclass
class Plan:
    """Named container of tasks with an owner and role-bearing members."""
    id: str = field(default_factory=lambda: new_id("plan"))
    name: str = ""
    description: Optional[str] = None
    owner_id: str = ""
    members: list[PlanMember] = field(default_factory=list)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def member(self, user_id: str) -> Optional[PlanMember]:
        """Return the membership entry for ``user_id`` if present."""
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def user_ids(self) -> list[str]:
        return [self.owner_id, *[member.user_id for member in self.members]]

    def to_dict(self) -> dict[str, Any]:
        """Serialize the plan, including nested members."""
        data = asdict(self)
        data["members"] = [member.to_dict() for member in self.members]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Plan":
        """Deserialize a plan, dropping any member entry that duplicates the owner."""
        owner_id = str(data.get("owner_id") or "")
        members = [
            PlanMember.from_dict(item)
            for item in list(data.get("members") or [])
            if isinstance(item, dict)
        ]
        return cls(
            id=str(data.get("id") or new_id("plan")),
            name=str(data.get("name") or ""),
            description=_opt_str(data.get("description")),
            owner_id=owner_id,
            members=[member for member in members if member.user_id and member.user_id != owner_id],
            created_at=str(data.get("created_at") or now_iso()),
            updated_at=str(data.get("updated_at") or now_iso()),
        )


@dataclass
class User:
    """Registered (or placeholder) collaborator."""
    id: str = field(default_factory=lambda: new_id("user"))
    email: str = ""
    name: str = ""
    password_hash: str = ""
    avatar: Optional[str] = None
    is_placeholder: bool = False
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def public_dict(self) -> dict[str, Any]:
        """Display fields safe to return to API callers."""
        return {"id": self.id, "name": self.name, "email": self.email, "avatar": self.avatar}

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        return cls(
            id=str(data.get("id") or new_id("user")),
            email=normalize_email(data.get("email")),
            name=str(data.get("name") or ""),
            password_hash=str(data.get("password_hash") or ""),
            avatar=_opt_str(data.get("avatar")),
            is_placeholder=bool(data.get("is_placeholder") or False),
            created_at=str(data.get("created_at") or now_iso()),
            updated_at=str(data.get("updated_at") or now_iso()),
        )


def normalize_email(value: Any) -> str:
    return str(value or "").strip().lower()
