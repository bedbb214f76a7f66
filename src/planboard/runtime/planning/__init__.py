"""Planning services: tasks, ordering, references, plans, users, transfer."""

from .access import PlanAccessGate
from .ordering import OrderingEngine
from .plans import PlanService
from .portability import PlanPorter
from .references import ReferenceValidator
from .service import TaskService
from .users import UserService

__all__ = [
    "OrderingEngine",
    "PlanAccessGate",
    "PlanPorter",
    "PlanService",
    "ReferenceValidator",
    "TaskService",
    "UserService",
]
