"""Response helpers shared by API routes."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from ..errors import PlanningError, StorageError

logger = logging.getLogger(__name__)


def _csv(values: list[str]) -> list[str]:
    """Flatten repeated and comma-separated query values."""
    out: list[str] = []
    for value in values:
        out.extend(part.strip() for part in str(value).split(",") if part.strip())
    return out


def planning_error_response(request: Request, exc: PlanningError, *, debug: bool) -> JSONResponse:
    """Translate a planning error into the ``{"error": {...}}`` envelope.

    Storage failures are logged with the request context and, unless ``debug``
    is set, returned with a generic message.
    """
    body: dict[str, Any] = exc.to_dict()
    if isinstance(exc, StorageError):
        logger.exception("Storage failure during %s %s", request.method, request.url.path, exc_info=exc)
        if not debug:
            body = {"category": exc.category, "message": "Storage failure", "field": None}
    return JSONResponse(status_code=exc.status_code, content={"error": body})
