"""Task grouping — pure business logic.

Partitions a task list into named buckets for display: one bucket per
assignee, or "Shared Tasks" vs "Individual Tasks". Bucket contents keep the
input order. Tasks without a usable assignee list are dropped, not raised on.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Hashable

from src.data.models import Task

logger = logging.getLogger(__name__)

SHARED_TASKS = "Shared Tasks"
INDIVIDUAL_TASKS = "Individual Tasks"


class GroupBy(str, Enum):
    INDIVIDUAL = "individual"   # one bucket per assignee
    SHARED = "shared"           # shared vs individual


def _assignees(task: object) -> list | None:
    """Return the task's assignee list, or None if it's unusable."""
    assigned = getattr(task, "assigned_to", None)
    if not isinstance(assigned, (list, tuple)):
        return None
    return list(assigned)


def is_shared(task: Task) -> bool:
    """A task is shared when more than one member is assigned to it."""
    assigned = _assignees(task)
    return assigned is not None and len(assigned) > 1


def group_by_assignee(tasks: list[Task]) -> dict[Hashable, list[Task]]:
    """Bucket tasks under every assignee they're assigned to.

    Assignees with no tasks are absent from the result. A task appears at
    most once per bucket even if its assignee list repeats an entry.
    """
    grouped: dict[Hashable, list[Task]] = {}
    seen: dict[Hashable, set] = {}

    for task in tasks:
        assigned = _assignees(task)
        if assigned is None:
            logger.debug("Skipping task without assignee list: %r", task)
            continue
        for assignee in assigned:
            bucket_ids = seen.setdefault(assignee, set())
            if task.id in bucket_ids:
                continue
            bucket_ids.add(task.id)
            grouped.setdefault(assignee, []).append(task)

    return grouped


def group_by_shared_vs_individual(tasks: list[Task]) -> dict[str, list[Task]]:
    """Split tasks into shared (2+ assignees) and individual (exactly 1).

    Both keys are always present. Tasks with a missing, non-list or empty
    assignee list are left out of both buckets.
    """
    shared: list[Task] = []
    individual: list[Task] = []

    for task in tasks:
        assigned = _assignees(task)
        if not assigned:
            logger.debug("Dropping invalid task from grouping: %r", task)
            continue
        if len(assigned) > 1:
            shared.append(task)
        else:
            individual.append(task)

    return {SHARED_TASKS: shared, INDIVIDUAL_TASKS: individual}


def group_tasks(
    tasks: list[Task], group_by: GroupBy | str = GroupBy.INDIVIDUAL,
) -> dict[Hashable, list[Task]]:
    """Dispatch to the grouping selected in the task list view."""
    if GroupBy(group_by) is GroupBy.SHARED:
        return group_by_shared_vs_individual(tasks)
    return group_by_assignee(tasks)
