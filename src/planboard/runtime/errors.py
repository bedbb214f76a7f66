"""Error taxonomy raised by planning services.

Services raise these; only the API layer translates them into HTTP responses.
"""

from __future__ import annotations

from typing import Any, Optional


class PlanningError(Exception):
    """Base class carrying a stable category, a message and an optional field path."""

    category = "error"
    status_code = 500

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        return {"category": self.category, "message": self.message, "field": self.field}


class ValidationError(PlanningError):
    """Malformed payload, cross-field violation or unresolved reference."""

    category = "validation"
    status_code = 400


class AccessError(PlanningError):
    """Actor lacks the plan role required by an operation."""

    category = "access"
    status_code = 403


class NotFoundError(PlanningError):
    """Target record is missing or outside the expected plan."""

    category = "not_found"
    status_code = 404


class ConflictError(PlanningError):
    """Operation conflicts with current state (children exist, duplicate member, ...)."""

    category = "conflict"
    status_code = 409


class StorageError(PlanningError):
    """Underlying persistence failure; never retried automatically."""

    category = "storage"
    status_code = 500
