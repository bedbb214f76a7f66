"""Manual ordering of tasks within (plan, status) partitions."""

from __future__ import annotations

import logging
from typing import Sequence

from ..domain.models import Task
from ..errors import ValidationError
from ..storage.interfaces import ASC, DESC, SortSpec, TaskRepository

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = (
    "order_index",
    "title",
    "status",
    "priority",
    "start_date",
    "due_date",
    "progress_pct",
    "estimate_hours",
    "created_at",
    "updated_at",
)


def next_order_index(partition: Sequence[Task]) -> int:
    """Slot after the current maximum of a partition, or 1 when it is empty."""
    indices = [task.order_index for task in partition if task.order_index is not None]
    return (max(indices) if indices else 0) + 1


def listing_sort(sort: str = "order_index", order: str = "asc") -> SortSpec:
    """Build the sort spec for a task listing.

    Sorting by ``order_index`` groups by status first so each board column comes
    back as its own contiguous run.
    """
    if sort not in SORTABLE_FIELDS:
        raise ValidationError(f"Unsupported sort field: {sort}", field="sort")
    if order not in ("asc", "desc"):
        raise ValidationError("order must be 'asc' or 'desc'", field="order")
    direction = DESC if order == "desc" else ASC
    if sort == "order_index":
        return [("status", ASC), ("order_index", direction), ("created_at", ASC)]
    return [(sort, direction), ("created_at", ASC)]


class OrderingEngine:
    """Assign and rewrite ``order_index`` values.

    Status changes never renumber either partition; callers send a follow-up
    reorder after moving a card between columns.
    """

    def __init__(self, tasks: TaskRepository) -> None:
        self.tasks = tasks

    def place(self, task: Task) -> Task:
        """Persist a new task, taking the next slot of its partition if it has none.

        The slot is computed under the repository write lock, so concurrent
        creates in one partition never receive the same index.
        """
        return self.tasks.insert(task, allocate_order=next_order_index)

    def assign_batch(self, plan_id: str, tasks: Sequence[Task]) -> None:
        """Give unordered batch items consecutive slots after each partition's maximum."""
        cursors: dict[str, int] = {}
        for task in tasks:
            if task.order_index is not None:
                continue
            if task.status not in cursors:
                current = self.tasks.max_order_index(plan_id, task.status)
                cursors[task.status] = (current or 0) + 1
            task.order_index = cursors[task.status]
            cursors[task.status] += 1

    def reorder(self, plan_id: str, task_ids: Sequence[str], actor_id: str) -> int:
        """Set each listed task's ``order_index`` to its 1-based list position.

        Ids that do not belong to the plan are skipped without error.

        Returns:
            int: Number of positions that matched a task of the plan.
        """
        placements = [(task_id, position) for position, task_id in enumerate(task_ids, start=1)]
        matched = self.tasks.bulk_reorder(plan_id, placements, actor_id)
        if matched < len(placements):
            logger.warning(
                "Reorder in plan %s matched %d of %d task ids",
                plan_id,
                matched,
                len(placements),
            )
        return matched
