# src/tasksheet/tasks/task_store.py

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType

from ..core.errors import DuplicateTaskError, TaskNotFoundError
from .ordering import sort_column
from .task_models import Task, TaskStatus

logger = logging.getLogger(__name__)


class MutationKind(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(slots=True, frozen=True)
class TaskMutation:
    """
    One all-or-nothing change to the store.

    - CREATE: `upserts` holds exactly the new tasks (ids must be unknown)
    - UPDATE: `upserts` replaces existing tasks wholesale (ids must be known)
    - DELETE: `deletes` names existing ids to remove
    """

    kind: MutationKind
    upserts: tuple[Task, ...] = ()
    deletes: tuple[str, ...] = ()

    @classmethod
    def create(cls, task: Task) -> TaskMutation:
        return cls(MutationKind.CREATE, upserts=(task,))

    @classmethod
    def update(cls, *tasks: Task) -> TaskMutation:
        return cls(MutationKind.UPDATE, upserts=tuple(tasks))

    @classmethod
    def delete(cls, task_id: str) -> TaskMutation:
        return cls(MutationKind.DELETE, deletes=(task_id,))

    @property
    def task_ids(self) -> tuple[str, ...]:
        return tuple(t.id for t in self.upserts) + self.deletes


@dataclass(slots=True, frozen=True)
class StoreSnapshot:
    """Immutable copy of the store contents, used for rollback."""

    tasks: Mapping[str, Task] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.tasks)


class TaskStore:
    """
    In-memory authoritative task collection for one session.

    Single owner of truth between polling cycles. All access happens on the
    event loop thread, so there is no locking. Tasks are frozen dataclasses,
    which makes snapshots a cheap dict copy.

    Every derived view (`column`, `all`) is recomputed on each call; callers
    must not cache them across mutations.
    """

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self._tasks: dict[str, Task] = {}
        for task in tasks:
            if task.id in self._tasks:
                raise DuplicateTaskError(task.id)
            self._tasks[task.id] = task
        self._dirty = False

    # ---- read access ----

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __iter__(self) -> Iterator[Task]:
        return iter(list(self._tasks.values()))

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def all(self) -> list[Task]:
        """All tasks in insertion (encounter) order."""
        return list(self._tasks.values())

    def column(self, status: TaskStatus) -> list[Task]:
        """Tasks of one status column in visual order."""
        return sort_column(t for t in self._tasks.values() if t.status == status)

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def mark_clean(self) -> None:
        self._dirty = False

    # ---- snapshots ----

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(tasks=MappingProxyType(dict(self._tasks)))

    def revert(self, snapshot: StoreSnapshot, task_ids: Iterable[str]) -> None:
        """Put only `task_ids` back to their value in `snapshot`; ids it lacks are removed."""
        task_ids = list(task_ids)
        for task_id in task_ids:
            task = snapshot.tasks.get(task_id)
            if task is None:
                self._tasks.pop(task_id, None)
            else:
                self._tasks[task_id] = task
        logger.debug("TaskStore reverted %s", ", ".join(task_ids))

    def replace_all(self, tasks: Iterable[Task]) -> None:
        """
        Wholesale replacement with a remote snapshot (last-fetch-wins).

        Duplicate ids from the remote keep the first row; the sheet can be
        edited by hand, so this is logged rather than raised.
        """
        fresh: dict[str, Task] = {}
        for task in tasks:
            if task.id in fresh:
                logger.warning("Duplicate task id in remote snapshot, keeping first: %s", task.id)
                continue
            fresh[task.id] = task
        self._tasks = fresh
        self._dirty = False

    # ---- mutation ----

    def apply(self, mutation: TaskMutation) -> StoreSnapshot:
        """
        Apply `mutation` synchronously and return the previous snapshot.

        The whole mutation is validated before the first write, so a rejected
        mutation leaves the store untouched.
        """
        self._validate(mutation)

        previous = self.snapshot()
        for task_id in mutation.deletes:
            del self._tasks[task_id]
        for task in mutation.upserts:
            self._tasks[task.id] = task

        self._dirty = True
        logger.debug(
            "TaskStore applied %s upserts=%d deletes=%d",
            mutation.kind.value,
            len(mutation.upserts),
            len(mutation.deletes),
        )
        return previous

    def _validate(self, mutation: TaskMutation) -> None:
        if mutation.kind == MutationKind.CREATE:
            seen: set[str] = set()
            for task in mutation.upserts:
                if task.id in self._tasks or task.id in seen:
                    raise DuplicateTaskError(task.id)
                seen.add(task.id)
        elif mutation.kind == MutationKind.UPDATE:
            for task in mutation.upserts:
                if task.id not in self._tasks:
                    raise TaskNotFoundError(task.id)
        elif mutation.kind == MutationKind.DELETE:
            for task_id in mutation.deletes:
                if task_id not in self._tasks:
                    raise TaskNotFoundError(task_id)

        if mutation.kind != MutationKind.DELETE and mutation.deletes:
            raise ValueError(f"{mutation.kind.value} mutation cannot delete tasks")
        if mutation.kind == MutationKind.DELETE and mutation.upserts:
            raise ValueError("delete mutation cannot upsert tasks")
