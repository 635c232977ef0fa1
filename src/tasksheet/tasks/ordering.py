# src/tasksheet/tasks/ordering.py

"""
Per-column manual ordering (board drag-and-drop).

`order` is only meaningful inside one status column. Reconciling a column
renumbers it to a dense 0..n-1 sequence in visual order. Only the destination
column of a move is renumbered; the source column keeps its (now gapped)
values until it is itself the destination of a move.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace

from ..core.errors import TaskNotFoundError
from .task_models import Task, TaskStatus


def _column_key(task: Task) -> tuple[int, float]:
    # order ascending, then newest first
    return (task.order, -task.created_at.timestamp())


def sort_column(tasks: Iterable[Task]) -> list[Task]:
    """Sort tasks of one column the way the board reads them."""
    return sorted(tasks, key=_column_key)


def next_order(tasks: Iterable[Task], status: TaskStatus) -> int:
    """Order value that places a new task at the end of `status`'s column."""
    orders = [t.order for t in tasks if t.status == status]
    return max(orders) + 1 if orders else 0


def column_index(tasks: Iterable[Task], task_id: str) -> int:
    """Visual index of `task_id` within its own column."""
    tasks = list(tasks)
    target = next((t for t in tasks if t.id == task_id), None)
    if target is None:
        raise TaskNotFoundError(task_id)
    column = sort_column(t for t in tasks if t.status == target.status)
    return next(i for i, t in enumerate(column) if t.id == task_id)


def renumber(column: Sequence[Task]) -> list[Task]:
    """Give `column` dense order values in list order (unchanged tasks are reused)."""
    return [t if t.order == i else replace(t, order=i) for i, t in enumerate(column)]


def reorder(
    tasks: Sequence[Task],
    task_id: str,
    destination_status: TaskStatus,
    destination_index: int,
) -> list[Task]:
    """
    Move `task_id` to `destination_index` of `destination_status`'s column.

    Pure and deterministic: the same inputs always give the same output, and
    re-running it on its own output with the same index is a fixed point.
    The returned list contains every input task exactly once: the untouched
    tasks first (in input order), then the renumbered destination column.

    Raises TaskNotFoundError when `task_id` is not in `tasks`.
    """
    moved = next((t for t in tasks if t.id == task_id), None)
    if moved is None:
        raise TaskNotFoundError(task_id)

    others = [t for t in tasks if t.id != task_id]
    column = sort_column(t for t in others if t.status == destination_status)

    index = max(0, min(int(destination_index), len(column)))
    column.insert(index, replace(moved, status=destination_status))

    untouched = [t for t in others if t.status != destination_status]
    return untouched + renumber(column)


def changed_tasks(before: Iterable[Task], after: Iterable[Task]) -> list[Task]:
    """Tasks in `after` that differ from their counterpart in `before`."""
    old = {t.id: t for t in before}
    return [t for t in after if old.get(t.id) != t]
