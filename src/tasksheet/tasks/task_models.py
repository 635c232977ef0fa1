# src/tasksheet/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum


class TaskStatus(StrEnum):
    """
    Board column / filter lane.

    The three values are also the three columns of the board; `order` is only
    meaningful between tasks that share one of them.
    """

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class Priority(StrEnum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Visibility(StrEnum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


class UserRole(StrEnum):
    ADMIN = "admin"
    USER = "user"


# Statuses a task may only enter once its predecessor is COMPLETED.
GATED_STATUSES = frozenset({TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED})


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    title: str
    detail: str
    assignee_email: str
    tag: str

    start_date: date | None
    due_date: date | None

    priority: Priority
    status: TaskStatus

    created_at: datetime
    updated_at: datetime

    calendar_event_id: str | None = None
    visibility: Visibility = Visibility.PUBLIC
    predecessor_task_id: str | None = None
    order: int = 0

    @property
    def has_schedule(self) -> bool:
        """True when both start and due dates are set (timeline-eligible)."""
        return self.start_date is not None and self.due_date is not None


@dataclass(slots=True, frozen=True)
class TaskDraft:
    """
    Create-time partial handed to the remote adapter.

    `id` and `order` are normally filled in by the engine (client-side id,
    end-of-column order); an adapter assigns them itself when they are None.
    """

    title: str
    assignee_email: str
    detail: str = ""
    tag: str = ""
    start_date: date | None = None
    due_date: date | None = None
    priority: Priority = Priority.MEDIUM
    status: TaskStatus = TaskStatus.NOT_STARTED
    visibility: Visibility = Visibility.PUBLIC
    predecessor_task_id: str | None = None
    calendar_event_id: str | None = None
    id: str | None = None
    order: int | None = None

    def to_task(self, *, task_id: str, order: int, now: datetime) -> Task:
        return Task(
            id=task_id,
            title=self.title,
            detail=self.detail,
            assignee_email=self.assignee_email,
            tag=self.tag,
            start_date=self.start_date,
            due_date=self.due_date,
            priority=self.priority,
            status=self.status,
            created_at=now,
            updated_at=now,
            calendar_event_id=self.calendar_event_id,
            visibility=self.visibility,
            predecessor_task_id=self.predecessor_task_id,
            order=order,
        )


@dataclass(slots=True, frozen=True)
class User:
    email: str
    name: str
    role: UserRole = UserRole.USER
    department: str | None = None


@dataclass(slots=True, frozen=True)
class Tag:
    id: str
    name: str
    color: str
