"""Planboard: plan/task backend with ordering, hierarchy and dependency validation."""

__version__ = "1.0.0"
