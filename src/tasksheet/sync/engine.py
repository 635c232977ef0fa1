# src/tasksheet/sync/engine.py

from __future__ import annotations

"""
Sync engine.

Orchestrates every user mutation as:

    validate -> optimistic TaskStore.apply -> remote write(s) -> COMMITTED
                                                     | error
                                                     v
                          revert the touched tasks -> full refresh -> ROLLED_BACK

and keeps the store fresh with a silent refresh every `poll_interval_seconds`
(last-fetch-wins: the remote snapshot replaces the store wholesale).

Concurrency model: one asyncio loop. Suspension points are the remote calls
only. Remote writes are serialised per task id. A write still queued when an
earlier write to one of its tasks rolls back is dropped, since its optimistic
base is gone. A silent refresh can still land between an optimistic apply and
its confirmation, which is accepted because the refresh is the authoritative
remote state.
"""

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, fields, replace
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

from ..core.errors import SessionStateError, TaskNotFoundError, ValidationRejected
from ..core.ports import LoggingNotifier, Notifier, TaskRemote
from ..tasks.dependency import TransitionCheck, can_transition, validate_predecessor
from ..tasks.ordering import changed_tasks, next_order, reorder
from ..tasks.scheduling import (
    DEFAULT_DAY_WIDTH_PX,
    DateWindow,
    DragKind,
    date_window,
    reschedule,
    topological_order,
)
from ..tasks.task_models import Tag, Task, TaskDraft, TaskStatus, User, Visibility
from ..tasks.task_store import StoreSnapshot, TaskMutation, TaskStore
from ..tasks.views import TaskFilter, WorkloadStats, filter_tasks, workload_stats

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 30.0

# Fields a form edit may change; identity and timestamps are engine-owned.
EDITABLE_FIELDS = frozenset(f.name for f in fields(Task)) - {"id", "created_at", "updated_at"}


class SessionState(StrEnum):
    INIT = "init"
    ACTIVE = "active"
    DISPOSED = "disposed"


class MutationState(StrEnum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"


@dataclass(slots=True)
class MutationOutcome:
    """What happened to one user mutation; returned to the initiating action."""

    kind: str
    task_id: str | None
    state: MutationState = MutationState.PENDING
    reason: str | None = None
    error: BaseException | None = None
    task: Task | None = None

    @property
    def ok(self) -> bool:
        return self.state == MutationState.COMMITTED


@dataclass(slots=True, frozen=True)
class _Applied:
    """An optimistic store change waiting for its remote writes."""

    mutation: TaskMutation
    previous: StoreSnapshot
    rollback_seq: int


def new_task_id() -> str:
    return f"task_{uuid.uuid4().hex[:9]}"


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SyncEngine:
    """
    Session-scoped engine instance (no module-level state).

    Lifecycle: INIT --start()--> ACTIVE --dispose()--> DISPOSED.
    Mutations are only accepted while ACTIVE.
    """

    def __init__(
        self,
        remote: TaskRemote,
        *,
        store: TaskStore | None = None,
        notifier: Notifier | None = None,
        current_user_email: str | None = None,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        day_width: int = DEFAULT_DAY_WIDTH_PX,
        window_days_before: int = 7,
        window_days_after: int = 14,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.remote = remote
        self.store = store if store is not None else TaskStore()
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.current_user_email = current_user_email
        self.poll_interval_seconds = float(poll_interval_seconds)
        self.day_width = int(day_width)
        self.window_days_before = int(window_days_before)
        self.window_days_after = int(window_days_after)
        self._clock = clock or _utc_now

        self.users: list[User] = []
        self.tags: list[Tag] = []

        self._state = SessionState.INIT
        self._write_locks: dict[str, asyncio.Lock] = {}
        self._rollback_seq = 0
        self._reverted_at: dict[str, int] = {}
        self._poller: asyncio.Task[None] | None = None

    # ---- lifecycle ----

    @property
    def state(self) -> SessionState:
        return self._state

    async def start(self) -> None:
        """Initial (non-silent) load; raises if the remote cannot be read."""
        if self._state != SessionState.INIT:
            raise SessionStateError(f"cannot start engine in state {self._state.value}")
        await self._load()
        await self._register_current_user()
        self._state = SessionState.ACTIVE
        logger.info(
            "SyncEngine active tasks=%d users=%d tags=%d user=%s",
            len(self.store),
            len(self.users),
            len(self.tags),
            self.current_user_email,
        )

    async def dispose(self) -> None:
        if self._state == SessionState.DISPOSED:
            return
        self._state = SessionState.DISPOSED
        poller, self._poller = self._poller, None
        if poller is not None:
            poller.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await poller
        logger.info("SyncEngine disposed")

    def _require_active(self) -> None:
        if self._state != SessionState.ACTIVE:
            raise SessionStateError(f"engine is {self._state.value}, expected active")

    # ---- refresh / polling ----

    async def _load(self) -> None:
        users, tags, tasks = await asyncio.gather(
            self.remote.list_users(),
            self.remote.list_tags(),
            self.remote.list_tasks(),
        )
        self.users = list(users)
        self.tags = list(tags)
        self.store.replace_all(tasks)
        self._prune_locks()

    async def refresh(self, *, silent: bool = True) -> bool:
        """
        Replace the store with the remote snapshot.

        Returns False when the fetch failed; the store is then left as it was.
        A silent refresh only logs the failure, a loud one also notifies.
        """
        try:
            await self._load()
        except Exception as exc:
            if silent:
                logger.warning("Silent refresh failed: %s", exc, exc_info=True)
            else:
                logger.exception("Refresh failed")
                self._notify(logging.ERROR, f"Failed to load data: {exc}")
            return False
        logger.debug("Refreshed store tasks=%d silent=%s", len(self.store), silent)
        return True

    async def run_polling(self) -> None:
        """
        Silent refresh every poll_interval_seconds while the engine is active.

        To stop polling, cancel the coroutine/task or dispose the engine.
        """
        sleep_s = max(0.01, self.poll_interval_seconds)
        while self._state == SessionState.ACTIVE:
            await asyncio.sleep(sleep_s)
            if self._state != SessionState.ACTIVE:
                break
            await self.refresh(silent=True)

    def start_polling(self) -> asyncio.Task[None]:
        self._require_active()
        if self._poller is None or self._poller.done():
            self._poller = asyncio.create_task(self.run_polling(), name="tasksheet-poller")
        return self._poller

    # ---- read-side projections (recomputed on every call) ----

    @property
    def current_user(self) -> User | None:
        if not self.current_user_email:
            return None
        email = self.current_user_email.lower()
        return next((u for u in self.users if u.email.lower() == email), None)

    def today(self) -> date:
        return self._clock().astimezone().date()

    def visible_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        return filter_tasks(
            self.store.all(),
            viewer_email=self.current_user_email,
            users=self.users,
            task_filter=task_filter,
        )

    def board(self, task_filter: TaskFilter | None = None) -> dict[TaskStatus, list[Task]]:
        visible = {t.id for t in self.visible_tasks(task_filter)}
        return {
            status: [t for t in self.store.column(status) if t.id in visible]
            for status in TaskStatus
        }

    def timeline(self, task_filter: TaskFilter | None = None) -> list[Task]:
        return topological_order(self.visible_tasks(task_filter))

    def window(self, task_filter: TaskFilter | None = None) -> DateWindow:
        return date_window(
            self.visible_tasks(task_filter),
            self.today(),
            days_before=self.window_days_before,
            days_after=self.window_days_after,
        )

    def workload(self) -> list[WorkloadStats]:
        return workload_stats(self.store.all(), self.users, self.today())

    # ---- mutations ----

    async def create_task(self, draft: TaskDraft, *, add_to_calendar: bool = False) -> MutationOutcome:
        self._require_active()
        outcome = MutationOutcome(kind="create", task_id=draft.id)

        assignee = (draft.assignee_email or "").strip()
        if draft.visibility == Visibility.PRIVATE:
            if not self.current_user_email:
                return self._reject(outcome, "Private tasks need a signed-in user.")
            if assignee and assignee != self.current_user_email:
                return self._reject(outcome, "Private tasks can only be assigned to yourself.")
            assignee = self.current_user_email
        if not assignee:
            return self._reject(outcome, "An assignee is required.")

        task_id = draft.id or new_task_id()
        outcome.task_id = task_id
        if task_id in self.store:
            return self._reject(outcome, f"Task already exists: {task_id}")

        everything = self.store.all()
        order = next_order(everything, draft.status)
        draft = replace(draft, id=task_id, order=order, assignee_email=assignee)
        task = draft.to_task(task_id=task_id, order=order, now=self._clock())

        reason = validate_predecessor(task, everything)
        if reason:
            return self._reject(outcome, reason)
        check = can_transition(task, task.status, everything)
        if not check.allowed:
            return self._reject_transition(outcome, check)

        applied = self._apply(TaskMutation.create(task))
        outcome.task = task

        async def writes() -> None:
            await self._ensure_tag(task.tag)
            await self.remote.create_task(draft)

        await self._commit(outcome, applied, writes)
        if outcome.ok and add_to_calendar:
            outcome.task = await self._link_calendar(task) or task
        return outcome

    async def edit_task(
        self,
        task_id: str,
        *,
        add_to_calendar: bool = False,
        **changes: Any,
    ) -> MutationOutcome:
        """Form edit: replace any editable fields of one task."""
        self._require_active()
        outcome = MutationOutcome(kind="edit", task_id=task_id)

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"not editable: {', '.join(sorted(unknown))}")

        current = self.store.get(task_id)
        if current is None:
            return self._reject(outcome, f"Task not found: {task_id}")

        updated = replace(current, **changes, updated_at=self._clock())
        everything = self.store.all()

        if updated.predecessor_task_id != current.predecessor_task_id:
            reason = validate_predecessor(updated, everything)
            if reason:
                return self._reject(outcome, reason)
        if (
            updated.status != current.status
            or updated.predecessor_task_id != current.predecessor_task_id
        ):
            check = can_transition(updated, updated.status, everything)
            if not check.allowed:
                return self._reject_transition(outcome, check)

        applied = self._apply(TaskMutation.update(updated))
        outcome.task = updated

        async def writes() -> None:
            if updated.tag != current.tag:
                await self._ensure_tag(updated.tag)
            await self.remote.update_task(updated)

        await self._commit(outcome, applied, writes)
        if outcome.ok and add_to_calendar and not updated.calendar_event_id:
            outcome.task = await self._link_calendar(updated) or updated
        return outcome

    async def change_status(self, task_id: str, status: TaskStatus) -> MutationOutcome:
        self._require_active()
        outcome = MutationOutcome(kind="status", task_id=task_id)

        current = self.store.get(task_id)
        if current is None:
            return self._reject(outcome, f"Task not found: {task_id}")

        check = can_transition(current, status, self.store.all())
        if not check.allowed:
            return self._reject_transition(outcome, check)

        updated = replace(current, status=status, updated_at=self._clock())
        applied = self._apply(TaskMutation.update(updated))
        outcome.task = updated

        async def writes() -> None:
            await self.remote.update_task_status(task_id, status)

        return await self._commit(outcome, applied, writes)

    async def reorder(self, task_id: str, status: TaskStatus, index: int) -> MutationOutcome:
        """Board drag: move `task_id` to position `index` of `status`'s column."""
        self._require_active()
        outcome = MutationOutcome(kind="reorder", task_id=task_id)

        current = self.store.get(task_id)
        if current is None:
            return self._reject(outcome, f"Task not found: {task_id}")

        before = self.store.all()
        status_changed = current.status != status
        if status_changed:
            check = can_transition(current, status, before)
            if not check.allowed:
                return self._reject_transition(outcome, check)

        after = reorder(before, task_id, status, index)
        now = self._clock()
        touched = {t.id for t in changed_tasks(before, after)} | {task_id}
        after = [replace(t, updated_at=now) if t.id in touched else t for t in after]

        applied = self._apply(TaskMutation.update(*(t for t in after if t.id in touched)))
        destination = [t for t in after if t.status == status]
        outcome.task = self.store.get(task_id)

        async def writes() -> None:
            if status_changed:
                await self.remote.update_task_status(task_id, status)
            await self.remote.update_task_orders(destination)

        return await self._commit(outcome, applied, writes)

    async def reschedule(self, task_id: str, kind: DragKind, pixel_offset: float) -> MutationOutcome:
        """Timeline drag. Refused drags leave the task untouched and carry a reason."""
        self._require_active()
        outcome = MutationOutcome(kind="reschedule", task_id=task_id)

        current = self.store.get(task_id)
        if current is None:
            return self._reject(outcome, f"Task not found: {task_id}")

        result = reschedule(current, kind, pixel_offset, self.day_width)
        if result.reason:
            return self._reject(outcome, result.reason, notify=False)
        if not result.changed:
            outcome.state = MutationState.COMMITTED
            outcome.task = current
            return outcome

        updated = replace(result.task, updated_at=self._clock())
        applied = self._apply(TaskMutation.update(updated))
        outcome.task = updated

        async def writes() -> None:
            await self.remote.update_task(updated)

        return await self._commit(outcome, applied, writes)

    async def delete_task(self, task_id: str) -> MutationOutcome:
        self._require_active()
        outcome = MutationOutcome(kind="delete", task_id=task_id)

        current = self.store.get(task_id)
        if current is None:
            return self._reject(outcome, f"Task not found: {task_id}")

        applied = self._apply(TaskMutation.delete(task_id))
        outcome.task = current

        async def writes() -> None:
            await self.remote.delete_task(task_id, hint=current.title)

        await self._commit(outcome, applied, writes)
        if outcome.ok and current.calendar_event_id:
            await self._unlink_calendar(current)
        return outcome

    async def add_to_calendar(self, task_id: str) -> MutationOutcome:
        self._require_active()
        outcome = MutationOutcome(kind="calendar", task_id=task_id)

        current = self.store.get(task_id)
        if current is None:
            return self._reject(outcome, f"Task not found: {task_id}")
        if current.calendar_event_id:
            return self._reject(outcome, "Task is already linked to a calendar event.")
        if not current.has_schedule:
            return self._reject(outcome, "Start and due dates are required for a calendar event.")

        linked = await self._link_calendar(current)
        if linked is None:
            outcome.state = MutationState.ROLLED_BACK
            outcome.reason = "Calendar event could not be created."
            return outcome
        outcome.state = MutationState.COMMITTED
        outcome.task = linked
        return outcome

    # ---- write cycle ----

    def _lock_for(self, task_id: str) -> asyncio.Lock:
        lock = self._write_locks.get(task_id)
        if lock is None:
            lock = self._write_locks[task_id] = asyncio.Lock()
        return lock

    def _prune_locks(self) -> None:
        for task_id in list(self._write_locks):
            if task_id not in self.store and not self._write_locks[task_id].locked():
                del self._write_locks[task_id]

    def _apply(self, mutation: TaskMutation) -> _Applied:
        previous = self.store.apply(mutation)
        return _Applied(mutation=mutation, previous=previous, rollback_seq=self._rollback_seq)

    def _stale_ids(self, applied: _Applied) -> set[str]:
        """Ids of `applied` that a later rollback already put back."""
        return {
            task_id
            for task_id in applied.mutation.task_ids
            if self._reverted_at.get(task_id, 0) > applied.rollback_seq
        }

    async def _commit(
        self,
        outcome: MutationOutcome,
        applied: _Applied,
        writes: Callable[[], Awaitable[None]],
    ) -> MutationOutcome:
        """Run the remote writes for an already-applied optimistic change."""
        async with self._lock_for(outcome.task_id or ""):
            stale = self._stale_ids(applied)
            if stale:
                return await self._discard(outcome, applied, stale)
            try:
                await writes()
            except Exception as exc:
                return await self._roll_back(outcome, applied, exc)

        self.store.mark_clean()
        outcome.state = MutationState.COMMITTED
        logger.info("Mutation committed kind=%s task_id=%s", outcome.kind, outcome.task_id)
        return outcome

    async def _roll_back(
        self,
        outcome: MutationOutcome,
        applied: _Applied,
        exc: Exception,
    ) -> MutationOutcome:
        if isinstance(exc, TaskNotFoundError):
            logger.warning(
                "Remote task missing kind=%s task_id=%s; rolling back",
                outcome.kind,
                outcome.task_id,
            )
            message = "The task no longer exists (it may have been deleted by someone else)."
        else:
            logger.exception("Remote write failed kind=%s task_id=%s; rolling back", outcome.kind, outcome.task_id)
            message = f"Saving failed: {exc}"

        task_ids = applied.mutation.task_ids
        self.store.revert(applied.previous, task_ids)
        self.store.mark_clean()
        self._rollback_seq += 1
        for task_id in task_ids:
            self._reverted_at[task_id] = self._rollback_seq

        outcome.state = MutationState.ROLLED_BACK
        outcome.error = exc
        outcome.reason = message

        await self.refresh(silent=True)
        self._notify(logging.ERROR, message)
        return outcome

    async def _discard(self, outcome: MutationOutcome, applied: _Applied, stale: set[str]) -> MutationOutcome:
        """Drop a queued change whose base was rolled back; nothing is sent."""
        # Stale ids already hold their pre-failure value; only the rest need undoing.
        rest = [i for i in applied.mutation.task_ids if i not in stale]
        if rest:
            self.store.revert(applied.previous, rest)
            await self.refresh(silent=True)
        self.store.mark_clean()

        message = "Not saved: an earlier change to this task failed."
        outcome.state = MutationState.ROLLED_BACK
        outcome.reason = message
        logger.warning(
            "Queued mutation dropped kind=%s task_id=%s stale=%s",
            outcome.kind,
            outcome.task_id,
            ",".join(sorted(stale)),
        )
        self._notify(logging.WARNING, message)
        return outcome

    def _reject(
        self,
        outcome: MutationOutcome,
        reason: str,
        *,
        notify: bool = True,
        blocking_task_id: str | None = None,
    ) -> MutationOutcome:
        outcome.state = MutationState.REJECTED
        outcome.reason = reason
        outcome.error = ValidationRejected(reason, blocking_task_id=blocking_task_id)
        logger.info("Mutation rejected kind=%s task_id=%s: %s", outcome.kind, outcome.task_id, reason)
        if notify:
            self._notify(logging.WARNING, reason)
        return outcome

    def _reject_transition(self, outcome: MutationOutcome, check: TransitionCheck) -> MutationOutcome:
        return self._reject(
            outcome,
            check.reason or "Transition not allowed.",
            blocking_task_id=check.blocking_task_id,
        )

    def _notify(self, level: int, message: str) -> None:
        try:
            self.notifier.notify(level, message)
        except Exception:
            logger.debug("Notifier failed.", exc_info=True)

    # ---- secondary effects (never roll back the primary mutation) ----

    async def _register_current_user(self) -> None:
        """Add a signed-in user who is missing from the Users sheet as a plain user."""
        email = (self.current_user_email or "").strip()
        if not email or self.current_user is not None:
            return
        try:
            user = await self.remote.create_user(User(email=email, name=email.split("@")[0]))
        except Exception:
            logger.warning("Failed to register user %s", email, exc_info=True)
            return
        self.users.append(user)
        logger.info("Registered current user email=%s", email)

    async def _ensure_tag(self, name: str) -> None:
        name = (name or "").strip()
        if not name:
            return
        if any(t.name.lower() == name.lower() for t in self.tags):
            return
        try:
            tag = await self.remote.create_tag(name)
        except Exception:
            logger.warning("Failed to create tag %r", name, exc_info=True)
            return
        self.tags.append(tag)
        logger.info("Tag created name=%s color=%s", tag.name, tag.color)

    async def _link_calendar(self, task: Task) -> Task | None:
        try:
            event_id = await self.remote.add_calendar_event(task)
            linked = replace(task, calendar_event_id=event_id, updated_at=self._clock())
            await self.remote.update_task(linked)
        except Exception as exc:
            logger.warning("Calendar link failed task_id=%s: %s", task.id, exc, exc_info=True)
            self._notify(logging.WARNING, f"Task saved, but adding it to the calendar failed: {exc}")
            return None

        if linked.id in self.store:
            self.store.apply(TaskMutation.update(linked))
            self.store.mark_clean()
        logger.info("Calendar event linked task_id=%s event_id=%s", task.id, event_id)
        return linked

    async def _unlink_calendar(self, task: Task) -> None:
        event_id = task.calendar_event_id
        if not event_id:
            return
        try:
            await self.remote.remove_calendar_event(event_id)
        except Exception as exc:
            logger.warning(
                "Calendar event removal failed task_id=%s event_id=%s: %s",
                task.id,
                event_id,
                exc,
                exc_info=True,
            )
            self._notify(logging.WARNING, "Task deleted, but its calendar event could not be removed.")
