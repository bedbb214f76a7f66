"""HTTP API routers."""

from .router import create_router

__all__ = ["create_router"]
