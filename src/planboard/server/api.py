"""FastAPI app wiring for the planning backend."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, cast

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..runtime.api import create_router
from ..runtime.api.helpers import planning_error_response
from ..runtime.errors import PlanningError
from ..runtime.storage import Container
from ..runtime.storage.bootstrap import SCHEMA_VERSION


def create_app(data_dir: Optional[Path] = None, enable_cors: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        data_dir (Optional[Path]): Directory holding the ``.planboard`` state
            root. Falls back to ``PLANBOARD_DATA_DIR``, then the current
            working directory; resolved lazily on first request.
        enable_cors (bool): Whether to install permissive CORS middleware for
            browser clients.

    Returns:
        FastAPI: Configured application with the API router, health endpoints
        and the planning error handler installed.
    """
    app = FastAPI(
        title="Planboard",
        description="Plans, tasks, ordering and dependency validation",
        version=__version__,
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.state.data_dir = data_dir
    app.state.container = None

    def _resolve_container() -> Container:
        if app.state.container is None:
            configured = app.state.data_dir or os.environ.get("PLANBOARD_DATA_DIR")
            root = Path(configured).expanduser().resolve() if configured else Path.cwd().resolve()
            app.state.container = Container(root)
        return cast(Container, app.state.container)

    app.include_router(create_router(_resolve_container))

    @app.exception_handler(PlanningError)
    async def handle_planning_error(request: Request, exc: PlanningError) -> JSONResponse:
        debug = bool(_resolve_container().config.section("server").get("debug_errors", False))
        return planning_error_response(request, exc, debug=debug)

    @app.get("/")
    async def root() -> dict[str, object]:
        container = _resolve_container()
        return {
            "name": "Planboard",
            "version": __version__,
            "data_dir": str(container.data_dir),
            "schema_version": SCHEMA_VERSION,
        }

    @app.get("/healthz")
    async def healthz() -> dict[str, object]:
        """Expose liveness status for process-level health checks."""
        return {"status": "ok", "version": __version__}

    return app


app = create_app()
