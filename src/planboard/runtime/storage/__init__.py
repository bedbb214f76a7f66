"""Storage exports."""

from .container import Container
from .interfaces import ASC, DESC, TaskQuery

__all__ = ["Container", "TaskQuery", "ASC", "DESC"]
