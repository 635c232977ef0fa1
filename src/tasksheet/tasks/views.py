# src/tasksheet/tasks/views.py

"""Display-time projections: visibility, list filters and team workload."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date

from .task_models import Task, TaskStatus, User, Visibility


def is_visible_to(task: Task, viewer_email: str | None) -> bool:
    """PRIVATE tasks are shown to their assignee only."""
    if task.visibility != Visibility.PRIVATE:
        return True
    return bool(viewer_email) and task.assignee_email == viewer_email


@dataclass(slots=True, frozen=True)
class TaskFilter:
    search: str = ""
    assignee_email: str | None = None
    status: TaskStatus | None = None
    tag: str | None = None
    department: str | None = None

    def matches(self, task: Task, users_by_email: dict[str, User]) -> bool:
        if self.search:
            needle = self.search.lower()
            if needle not in task.title.lower() and needle not in task.detail.lower():
                return False
        if self.assignee_email and task.assignee_email != self.assignee_email:
            return False
        if self.status is not None and task.status != self.status:
            return False
        if self.tag and task.tag != self.tag:
            return False
        if self.department:
            assignee = users_by_email.get(task.assignee_email)
            if assignee is None or assignee.department != self.department:
                return False
        return True


def filter_tasks(
    tasks: Iterable[Task],
    *,
    viewer_email: str | None,
    users: Sequence[User] = (),
    task_filter: TaskFilter | None = None,
) -> list[Task]:
    users_by_email = {u.email: u for u in users}
    flt = task_filter or TaskFilter()
    return [t for t in tasks if is_visible_to(t, viewer_email) and flt.matches(t, users_by_email)]


@dataclass(slots=True, frozen=True)
class WorkloadStats:
    user: User
    due_today: int
    active: int
    completed: int
    total: int


def workload_stats(tasks: Iterable[Task], users: Iterable[User], today: date) -> list[WorkloadStats]:
    """
    Per-member load: open tasks due today, open tasks, completed tasks.

    Busiest member (most open tasks) first.
    """
    tasks = list(tasks)
    stats: list[WorkloadStats] = []
    for user in users:
        own = [t for t in tasks if t.assignee_email == user.email]
        open_tasks = [t for t in own if t.status != TaskStatus.COMPLETED]
        stats.append(
            WorkloadStats(
                user=user,
                due_today=sum(1 for t in open_tasks if t.due_date == today),
                active=len(open_tasks),
                completed=len(own) - len(open_tasks),
                total=len(own),
            )
        )
    stats.sort(key=lambda s: s.active, reverse=True)
    return stats
