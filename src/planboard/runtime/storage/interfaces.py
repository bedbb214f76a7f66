"""Repository interfaces for plan, task and user persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from ..domain.models import Plan, Task, User

# Sort direction markers, document-store style.
ASC = 1
DESC = -1

SortSpec = List[tuple[str, int]]
OrderAllocator = Callable[[List[Task]], int]


@dataclass
class TaskQuery:
    """Filter, sort and window for a plan-scoped task listing.

    Attributes:
        plan_id: Plan the listing is scoped to.
        statuses: Keep tasks whose status is one of these values.
        assignee_ids: Keep tasks assigned to any of these users.
        tags: Keep tasks carrying any of these tags.
        priorities: Keep tasks whose priority is one of these values.
        parent_id: Parent filter, applied only when ``filter_parent`` is set;
            ``None`` then selects top-level tasks.
        filter_parent: Whether ``parent_id`` participates in the filter.
        text: Free-text search over title, description and tags.
        sort: Ordered ``(field, ASC|DESC)`` pairs.
        skip: Number of matching tasks to skip.
        limit: Maximum number of tasks to return; ``None`` means unbounded.
    """

    plan_id: str
    statuses: list[str] = field(default_factory=list)
    assignee_ids: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    priorities: list[str] = field(default_factory=list)
    parent_id: Optional[str] = None
    filter_parent: bool = False
    text: Optional[str] = None
    sort: SortSpec = field(default_factory=list)
    skip: int = 0
    limit: Optional[int] = None

    def document_filter(self) -> dict[str, Any]:
        """Translate the query into a collection filter mapping."""
        flt: dict[str, Any] = {"plan_id": self.plan_id}
        if self.statuses:
            flt["status"] = list(self.statuses)
        if self.assignee_ids:
            flt["assignee_ids"] = list(self.assignee_ids)
        if self.tags:
            flt["tags"] = list(self.tags)
        if self.priorities:
            flt["priority"] = list(self.priorities)
        if self.filter_parent:
            flt["parent_id"] = self.parent_id
        if self.text and self.text.strip():
            flt["$text"] = self.text.strip()
        return flt


class TaskRepository(ABC):
    """Persistence contract for task records."""

    @abstractmethod
    def query(self, query: TaskQuery) -> List[Task]:
        """Return tasks matching ``query``, sorted and windowed.

        Args:
            query (TaskQuery): Filter, sort and pagination window.

        Returns:
            List[Task]: Matching tasks in requested order.
        """
        raise NotImplementedError

    @abstractmethod
    def count(self, query: TaskQuery) -> int:
        """Count tasks matching the filter part of ``query``, ignoring the window.

        Args:
            query (TaskQuery): Filter to count against.

        Returns:
            int: Number of matching tasks.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, task_id: str) -> Optional[Task]:
        """Fetch a task by id, or ``None`` when no record exists."""
        raise NotImplementedError

    @abstractmethod
    def get_in_plan(self, plan_id: str, task_id: str) -> Optional[Task]:
        """Fetch a task only if it belongs to ``plan_id``."""
        raise NotImplementedError

    @abstractmethod
    def list_for_plan(self, plan_id: str) -> List[Task]:
        """List every task in a plan, in storage order."""
        raise NotImplementedError

    @abstractmethod
    def find_in_plan(self, plan_id: str, task_ids: Sequence[str]) -> List[Task]:
        """Return the persisted tasks of ``plan_id`` whose id is in ``task_ids``.

        Each stored task is returned at most once regardless of duplicates in
        ``task_ids``.
        """
        raise NotImplementedError

    @abstractmethod
    def has_children(self, task_id: str) -> bool:
        """Report whether any task names ``task_id`` as its parent."""
        raise NotImplementedError

    @abstractmethod
    def max_order_index(self, plan_id: str, status: str) -> Optional[int]:
        """Largest ``order_index`` in a (plan, status) partition, or ``None`` if empty."""
        raise NotImplementedError

    @abstractmethod
    def insert(self, task: Task, *, allocate_order: Optional[OrderAllocator] = None) -> Task:
        """Persist a new task.

        Args:
            task (Task): Task to insert.
            allocate_order (Optional[OrderAllocator]): When given and
                ``task.order_index`` is ``None``, called with the current tasks of
                the task's (plan, status) partition while the write lock is held;
                its result becomes the task's ``order_index``.

        Returns:
            Task: The persisted task.
        """
        raise NotImplementedError

    @abstractmethod
    def insert_many(self, tasks: Sequence[Task]) -> List[Task]:
        """Persist a batch of new tasks in a single write."""
        raise NotImplementedError

    @abstractmethod
    def patch(self, task_id: str, fields: dict[str, Any]) -> Task:
        """Set only ``fields`` on a stored task, refresh ``updated_at`` and return it.

        Keys not named in ``fields`` keep their stored values, so concurrent
        writes to other fields (a reorder, say) are not overwritten.

        Raises:
            NotFoundError: If no task with that id exists.
        """
        raise NotImplementedError

    @abstractmethod
    def bulk_reorder(self, plan_id: str, placements: Sequence[tuple[str, int]], actor_id: str) -> int:
        """Set ``order_index`` for each ``(task_id, index)`` matched inside ``plan_id``.

        Unmatched ids are skipped.

        Returns:
            int: Number of placements that matched a task.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, task_id: str) -> bool:
        """Delete a task by id and return whether anything was removed."""
        raise NotImplementedError

    @abstractmethod
    def delete_for_plan(self, plan_id: str) -> int:
        """Delete every task of a plan and return how many were removed."""
        raise NotImplementedError


class PlanRepository(ABC):
    """Persistence contract for plan records."""

    @abstractmethod
    def get(self, plan_id: str) -> Optional[Plan]:
        """Fetch a plan by id, or ``None`` when no record exists."""
        raise NotImplementedError

    @abstractmethod
    def list_for_user(self, user_id: str) -> List[Plan]:
        """List plans owned by or shared with ``user_id``, newest first."""
        raise NotImplementedError

    @abstractmethod
    def insert(self, plan: Plan) -> Plan:
        """Persist a new plan."""
        raise NotImplementedError

    @abstractmethod
    def update(self, plan: Plan) -> Plan:
        """Replace a stored plan by id and refresh ``updated_at``."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, plan_id: str) -> bool:
        """Delete a plan by id and return whether anything was removed."""
        raise NotImplementedError


class UserRepository(ABC):
    """Persistence contract for user records."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[User]:
        """Fetch a user by id, or ``None`` when no record exists."""
        raise NotImplementedError

    @abstractmethod
    def get_many(self, user_ids: Sequence[str]) -> List[User]:
        """Fetch every user whose id is in ``user_ids``."""
        raise NotImplementedError

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[User]:
        """Fetch a user by normalized email."""
        raise NotImplementedError

    @abstractmethod
    def insert(self, user: User) -> User:
        """Persist a new user.

        Raises:
            ConflictError: If the email is already taken.
        """
        raise NotImplementedError

    @abstractmethod
    def update(self, user: User) -> User:
        """Replace a stored user by id and refresh ``updated_at``."""
        raise NotImplementedError


class EventRepository(ABC):
    """Persistence contract for the mutation event log."""

    @abstractmethod
    def append(self, *, channel: str, event_type: str, entity_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Append an event envelope and return the persisted record."""
        raise NotImplementedError

    @abstractmethod
    def list_recent(self, limit: int = 100) -> List[dict[str, Any]]:
        """List the most recent events, capped at ``limit`` records."""
        raise NotImplementedError
