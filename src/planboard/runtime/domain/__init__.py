"""Domain models for plans, tasks and users."""

from .models import Plan, PlanMember, Task, User

__all__ = [
    "Task",
    "Plan",
    "PlanMember",
    "User",
]
