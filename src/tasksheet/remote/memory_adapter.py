# src/tasksheet/remote/memory_adapter.py

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from datetime import UTC, date, datetime, timedelta

from ..core.errors import CalendarError, TaskNotFoundError
from ..tasks.ordering import next_order
from ..tasks.task_models import Priority, Tag, Task, TaskDraft, TaskStatus, User, UserRole
from .rows import pick_tag_color

logger = logging.getLogger(__name__)


class MemoryRemote:
    """
    In-process TaskRemote used when no spreadsheet is configured.

    Behaves like the sheet: rows keep insertion order, writes look rows up by
    id and raise TaskNotFoundError when the id is gone, every write bumps
    updated_at. Nothing is persisted.
    """

    def __init__(
        self,
        *,
        tasks: Iterable[Task] = (),
        users: Iterable[User] = (),
        tags: Iterable[Tag] = (),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.rows: list[Task] = list(tasks)
        self.users: list[User] = list(users)
        self.tags: list[Tag] = list(tags)
        self.events: dict[str, Task] = {}
        self._clock = clock or (lambda: datetime.now(UTC))

    def _index(self, task_id: str) -> int:
        for i, task in enumerate(self.rows):
            if task.id == task_id:
                return i
        raise TaskNotFoundError(task_id)

    async def list_tasks(self) -> list[Task]:
        return list(self.rows)

    async def create_task(self, draft: TaskDraft) -> Task:
        task_id = draft.id or f"task_{uuid.uuid4().hex[:9]}"
        order = draft.order if draft.order is not None else next_order(self.rows, draft.status)
        task = draft.to_task(task_id=task_id, order=order, now=self._clock())
        self.rows.append(task)
        return task

    async def update_task(self, task: Task) -> Task:
        i = self._index(task.id)
        updated = replace(task, updated_at=self._clock())
        self.rows[i] = updated
        return updated

    async def update_task_status(self, task_id: str, status: TaskStatus) -> None:
        i = self._index(task_id)
        self.rows[i] = replace(self.rows[i], status=status, updated_at=self._clock())

    async def update_task_orders(self, tasks: Sequence[Task]) -> None:
        positions = [(self._index(t.id), t.order) for t in tasks]
        now = self._clock()
        for i, order in positions:
            self.rows[i] = replace(self.rows[i], order=order, updated_at=now)

    async def delete_task(self, task_id: str, hint: str | None = None) -> None:
        matches = [i for i, t in enumerate(self.rows) if t.id == task_id]
        if not matches:
            raise TaskNotFoundError(task_id)
        index = next((i for i in matches if self.rows[i].title == hint), matches[0])
        del self.rows[index]

    async def list_users(self) -> list[User]:
        return list(self.users)

    async def create_user(self, user: User) -> User:
        self.users.append(user)
        return user

    async def list_tags(self) -> list[Tag]:
        return list(self.tags)

    async def create_tag(self, name: str) -> Tag:
        for tag in self.tags:
            if tag.name.lower() == name.strip().lower():
                return tag
        tag = Tag(id=f"tag_{uuid.uuid4().hex[:8]}", name=name.strip(), color=pick_tag_color(self.tags))
        self.tags.append(tag)
        return tag

    async def add_calendar_event(self, task: Task) -> str:
        if task.start_date is None or task.due_date is None:
            raise CalendarError("start and due dates are required for a calendar event", task_id=task.id)
        event_id = f"evt_{uuid.uuid4().hex[:12]}"
        self.events[event_id] = task
        return event_id

    async def remove_calendar_event(self, event_id: str) -> None:
        if self.events.pop(event_id, None) is None:
            logger.info("Calendar event %s already gone", event_id)


def demo_remote(user_email: str, today: date) -> MemoryRemote:
    """Small seeded board for offline runs."""
    now = datetime.now(UTC)
    me = User(email=user_email, name=user_email.split("@")[0], role=UserRole.ADMIN, department="Ops")
    teammate = User(email="teammate@example.com", name="teammate", department="Ops")
    tags = [Tag(id="tag_dev", name="dev", color="#3B82F6"), Tag(id="tag_docs", name="docs", color="#EC4899")]

    def task(tid: str, title: str, status: TaskStatus, order: int, start: int, length: int, **kw) -> Task:
        return Task(
            id=tid,
            title=title,
            detail="",
            assignee_email=kw.pop("assignee", user_email),
            tag=kw.pop("tag", "dev"),
            start_date=today + timedelta(days=start),
            due_date=today + timedelta(days=start + length),
            priority=kw.pop("priority", Priority.MEDIUM),
            status=status,
            created_at=now - timedelta(minutes=10 - order),
            updated_at=now,
            order=order,
            **kw,
        )

    tasks = [
        task("t1", "Write requirements", TaskStatus.COMPLETED, 0, -6, 3, priority=Priority.HIGH, tag="docs"),
        task("t2", "Design screens", TaskStatus.IN_PROGRESS, 0, -2, 5, predecessor_task_id="t1"),
        task("t3", "Implement board", TaskStatus.NOT_STARTED, 0, 3, 6, predecessor_task_id="t2"),
        task("t4", "Write user guide", TaskStatus.NOT_STARTED, 1, 5, 2, assignee="teammate@example.com", tag="docs"),
    ]
    return MemoryRemote(tasks=tasks, users=[me, teammate], tags=tags)
