# src/tasksheet/tasks/dependency.py

"""
Predecessor gating.

A task that names a predecessor may not move forward (IN_PROGRESS or
COMPLETED) until that predecessor is COMPLETED. Moving back to NOT_STARTED is
always allowed. A predecessor id that does not resolve to a known task fails
open: the check is skipped, the transition is allowed.

Every status-changing path (status toggle, column drag, form edit, create)
must go through `can_transition`.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .task_models import GATED_STATUSES, Task, TaskStatus


@dataclass(slots=True, frozen=True)
class TransitionCheck:
    allowed: bool
    reason: str | None = None
    blocking_task_id: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = TransitionCheck(allowed=True)


def find_task(task_id: str | None, all_tasks: Iterable[Task]) -> Task | None:
    if not task_id:
        return None
    return next((t for t in all_tasks if t.id == task_id), None)


def can_transition(task: Task, proposed_status: TaskStatus, all_tasks: Iterable[Task]) -> TransitionCheck:
    if proposed_status not in GATED_STATUSES:
        return ALLOWED
    if not task.predecessor_task_id:
        return ALLOWED

    predecessor = find_task(task.predecessor_task_id, all_tasks)
    if predecessor is None:
        # Dangling reference: fail open.
        return ALLOWED
    if predecessor.status == TaskStatus.COMPLETED:
        return ALLOWED

    return TransitionCheck(
        allowed=False,
        reason=(
            f'Predecessor task "{predecessor.title}" is not completed yet. '
            "Complete the predecessor first."
        ),
        blocking_task_id=predecessor.id,
    )


def validate_predecessor(task: Task, all_tasks: Iterable[Task]) -> str | None:
    """
    Save-time check of the predecessor reference.

    Returns a rejection reason, or None when the reference is acceptable.
    Cycles are deliberately not detected.
    """
    pred_id = task.predecessor_task_id
    if not pred_id:
        return None
    if pred_id == task.id:
        return "A task cannot be its own predecessor."
    if find_task(pred_id, all_tasks) is None:
        return f"Predecessor task does not exist: {pred_id}"
    return None
