"""Normalization and cross-field checks for task payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from ..domain.models import PRIORITIES, TASK_STATUSES
from ..errors import ValidationError

_TEXT_FIELDS = ("description", "goal", "notes", "deliverables")
_LIST_FIELDS = ("assignee_ids", "dependency_ids", "tags")
TITLE_MAX_LENGTH = 200


def parse_iso_date(value: str, field: str) -> datetime:
    """Parse an ISO date or datetime string; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError) as exc:
        raise ValidationError(f"Invalid ISO date: {value!r}", field=field) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def check_schedule(start_date: Optional[str], due_date: Optional[str], *, prefix: str = "") -> None:
    """Reject a due date earlier than the start date when both are set."""
    start = parse_iso_date(start_date, f"{prefix}start_date") if start_date else None
    due = parse_iso_date(due_date, f"{prefix}due_date") if due_date else None
    if start is not None and due is not None and due < start:
        raise ValidationError("Due date must be after start date", field=f"{prefix}due_date")


def _number(value: Any, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("Expected a number", field=field)
    return value


def clean_task_fields(payload: dict[str, Any], *, partial: bool, prefix: str = "") -> dict[str, Any]:
    """Normalize a task payload into validated domain fields.

    Only keys present in ``payload`` are returned when ``partial`` is set;
    otherwise title is required and status defaults to ``todo``. Unknown keys
    are ignored.

    Raises:
        ValidationError: With a field path prefixed by ``prefix``.
    """
    out: dict[str, Any] = {}
    if "title" in payload or not partial:
        title = str(payload.get("title") or "").strip()
        if not title:
            raise ValidationError("Title is required", field=f"{prefix}title")
        if len(title) > TITLE_MAX_LENGTH:
            raise ValidationError("Title too long", field=f"{prefix}title")
        out["title"] = title
    for name in _TEXT_FIELDS:
        if name in payload:
            value = payload[name]
            out[name] = str(value).strip() or None if value is not None else None
    if "status" in payload or not partial:
        if partial and payload["status"] is None:
            raise ValidationError("Status cannot be cleared", field=f"{prefix}status")
        status = payload.get("status") or "todo"
        if status not in TASK_STATUSES:
            raise ValidationError(f"Status must be one of {', '.join(TASK_STATUSES)}", field=f"{prefix}status")
        out["status"] = status
    if "priority" in payload:
        priority = payload["priority"]
        if partial and priority is None:
            raise ValidationError("Priority cannot be cleared", field=f"{prefix}priority")
        if priority is not None and priority not in PRIORITIES:
            raise ValidationError(f"Priority must be one of {', '.join(PRIORITIES)}", field=f"{prefix}priority")
        out["priority"] = priority
    for name in _LIST_FIELDS:
        if name in payload:
            value = payload[name] or []
            if not isinstance(value, (list, tuple)):
                raise ValidationError("Expected a list", field=f"{prefix}{name}")
            out[name] = [str(item) for item in value]
    for name in ("start_date", "due_date"):
        if name in payload:
            value = payload[name] or None
            if value is not None:
                parse_iso_date(str(value), f"{prefix}{name}")
            out[name] = value
    if "progress_pct" in payload:
        value = payload["progress_pct"]
        progress = 0 if value is None else _number(value, f"{prefix}progress_pct")
        if not 0 <= progress <= 100:
            raise ValidationError("Progress must be between 0 and 100", field=f"{prefix}progress_pct")
        out["progress_pct"] = progress
    if "estimate_hours" in payload:
        value = payload["estimate_hours"]
        if value is not None and _number(value, f"{prefix}estimate_hours") < 0:
            raise ValidationError("Estimate must not be negative", field=f"{prefix}estimate_hours")
        out["estimate_hours"] = value
    if "parent_id" in payload:
        out["parent_id"] = str(payload["parent_id"]) if payload["parent_id"] else None
    if "order_index" in payload:
        value = payload["order_index"]
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise ValidationError("order_index must be an integer", field=f"{prefix}order_index")
        out["order_index"] = value
    return out

