# src/tasksheet/tasks/scheduling.py

"""
Timeline projection.

- topological_order: dependency-aware row order for the timeline view
- date_window: visible day range
- reschedule: whole-day effect of a bar drag (move / resize-left / resize-right)
- bar_geometry / dependency_links: pixel layout helpers for renderers

Every function is a fresh projection of the tasks it is given; nothing here is
cached between calls.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date, timedelta
from enum import StrEnum

from .task_models import Task

DEFAULT_DAY_WIDTH_PX = 40
WINDOW_DAYS_BEFORE = 7
WINDOW_DAYS_AFTER = 14


class DragKind(StrEnum):
    MOVE = "move"
    RESIZE_LEFT = "left"
    RESIZE_RIGHT = "right"


@dataclass(slots=True, frozen=True)
class DateWindow:
    start: date
    end: date

    @property
    def days(self) -> list[date]:
        return [self.start + timedelta(days=i) for i in range((self.end - self.start).days + 1)]

    def __len__(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(slots=True, frozen=True)
class RescheduleResult:
    """
    Outcome of a bar drag.

    `task` is the rescheduled task when `changed`, otherwise the original
    task untouched. `reason` explains a refused drag.
    """

    task: Task
    changed: bool
    day_delta: int = 0
    reason: str | None = None


@dataclass(slots=True, frozen=True)
class BarGeometry:
    x: int
    width: int


def _start_key(task: Task) -> date:
    # only called on timeline-eligible tasks
    return task.start_date or date.min


def topological_order(tasks: Iterable[Task]) -> list[Task]:
    """
    Flatten the predecessor graph into a single row order.

    Only tasks with both dates take part. Roots (no predecessor, or a
    predecessor that exists but is not on the timeline) are visited by start
    date; each root is followed depth-first by its dependents, also by start
    date. A visited set stops cycles from re-entering.

    Whatever the traversal cannot reach is appended at the end in encounter
    order, so every eligible task appears exactly once. That tail holds cycle
    members and tasks whose predecessor id matches no task at all: a dangling
    reference is not a root, so it never sorts in among the intact chains.
    """
    tasks = list(tasks)
    known_ids = {t.id for t in tasks}
    eligible = [t for t in tasks if t.has_schedule]
    by_id = {t.id: t for t in eligible}

    dependents: dict[str, list[Task]] = {}
    roots: list[Task] = []
    for task in eligible:
        pred_id = task.predecessor_task_id
        if pred_id and pred_id in by_id:
            dependents.setdefault(pred_id, []).append(task)
        elif not pred_id or pred_id in known_ids:
            roots.append(task)
        # else: dangling reference, left for the orphan pass

    result: list[Task] = []
    visited: set[str] = set()

    def visit(task: Task) -> None:
        if task.id in visited:
            return
        visited.add(task.id)
        result.append(task)
        for child in sorted(dependents.get(task.id, []), key=_start_key):
            visit(child)

    for root in sorted(roots, key=_start_key):
        visit(root)

    for task in eligible:
        if task.id not in visited:
            visited.add(task.id)
            result.append(task)

    return result


def date_window(
    tasks: Iterable[Task],
    today: date,
    *,
    days_before: int = WINDOW_DAYS_BEFORE,
    days_after: int = WINDOW_DAYS_AFTER,
) -> DateWindow:
    """[min(start) - days_before, max(due) + days_after]; just `today` when nothing is scheduled."""
    scheduled = [t for t in tasks if t.has_schedule]
    if not scheduled:
        return DateWindow(start=today, end=today)

    first = min(t.start_date for t in scheduled if t.start_date is not None)
    last = max(t.due_date for t in scheduled if t.due_date is not None)
    return DateWindow(
        start=first - timedelta(days=days_before),
        end=last + timedelta(days=days_after),
    )


def pixels_to_days(pixel_offset: float, day_width: int = DEFAULT_DAY_WIDTH_PX) -> int:
    """Round a horizontal drag distance to whole days (halves round up)."""
    if day_width <= 0:
        raise ValueError("day_width must be positive")
    return math.floor(pixel_offset / day_width + 0.5)


def reschedule(
    task: Task,
    kind: DragKind,
    pixel_offset: float,
    day_width: int = DEFAULT_DAY_WIDTH_PX,
) -> RescheduleResult:
    """
    Apply a bar drag to `task`'s dates.

    The new dates are only accepted when start <= due afterwards; otherwise
    the task is returned unchanged together with a reason.
    """
    if task.start_date is None or task.due_date is None:
        return RescheduleResult(task=task, changed=False, reason="Task has no start/due date to drag.")

    delta = pixels_to_days(pixel_offset, day_width)
    if delta == 0:
        return RescheduleResult(task=task, changed=False)

    shift = timedelta(days=delta)
    start, due = task.start_date, task.due_date
    if kind == DragKind.MOVE:
        start, due = start + shift, due + shift
    elif kind == DragKind.RESIZE_LEFT:
        start = start + shift
    elif kind == DragKind.RESIZE_RIGHT:
        due = due + shift
    else:
        raise ValueError(f"unknown drag kind: {kind!r}")

    if start > due:
        return RescheduleResult(
            task=task,
            changed=False,
            day_delta=delta,
            reason=f"Start date {start.isoformat()} would be after due date {due.isoformat()}.",
        )

    return RescheduleResult(
        task=replace(task, start_date=start, due_date=due),
        changed=True,
        day_delta=delta,
    )


def bar_geometry(task: Task, window: DateWindow, day_width: int = DEFAULT_DAY_WIDTH_PX) -> BarGeometry | None:
    """Horizontal placement of a task bar; at least one day wide."""
    if task.start_date is None or task.due_date is None:
        return None
    offset_days = (task.start_date - window.start).days
    duration_days = (task.due_date - task.start_date).days + 1
    return BarGeometry(x=offset_days * day_width, width=max(1, duration_days) * day_width)


def dependency_links(ordered: Sequence[Task]) -> list[tuple[int, int]]:
    """(predecessor_row, dependent_row) pairs for tasks whose predecessor is on the timeline."""
    rows = {t.id: i for i, t in enumerate(ordered)}
    links: list[tuple[int, int]] = []
    for i, task in enumerate(ordered):
        pred_row = rows.get(task.predecessor_task_id or "")
        if pred_row is not None:
            links.append((pred_row, i))
    return links
