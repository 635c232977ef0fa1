# src/tasksheet/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The sync engine depends on Protocols instead of concrete implementations.
This keeps the spreadsheet adapter, the auth flow and the UI notifications
swappable and makes testing with fakes easy.
"""

import logging
from collections.abc import Sequence
from typing import Protocol

from ..tasks.task_models import Tag, Task, TaskDraft, TaskStatus, User


class TaskRemote(Protocol):
    """
    Row-oriented remote store (the spreadsheet) plus calendar side effects.

    No atomicity across calls: a status write and an order batch are two
    independent requests and either may fail on its own.
    """

    async def list_tasks(self) -> list[Task]: ...

    # Assigns id/order when the draft leaves them empty; stamps timestamps.
    async def create_task(self, draft: TaskDraft) -> Task: ...

    # Full-row overwrite; returns the row with a bumped updated_at.
    async def update_task(self, task: Task) -> Task: ...

    async def update_task_status(self, task_id: str, status: TaskStatus) -> None: ...
    async def update_task_orders(self, tasks: Sequence[Task]) -> None: ...
    async def delete_task(self, task_id: str, hint: str | None = None) -> None: ...

    async def list_users(self) -> list[User]: ...
    async def create_user(self, user: User) -> User: ...
    async def list_tags(self) -> list[Tag]: ...
    async def create_tag(self, name: str) -> Tag: ...

    # All-day event; the adapter encodes the exclusive end date (due + 1 day).
    async def add_calendar_event(self, task: Task) -> str: ...
    async def remove_calendar_event(self, event_id: str) -> None: ...


class AccessTokenProvider(Protocol):
    """
    "Authenticated session" capability.

    How the token was obtained (OAuth popup, service account, env var) is not
    the engine's business.
    """

    async def access_token(self) -> str: ...


class Notifier(Protocol):
    """User-facing notifications (alerts in a UI, printed lines in the console)."""

    def notify(self, level: int, message: str) -> None: ...


class LoggingNotifier:
    """Default Notifier: routes user notices into the log."""

    def __init__(self, logger_name: str = "tasksheet.notify") -> None:
        self._logger = logging.getLogger(logger_name)

    def notify(self, level: int, message: str) -> None:
        self._logger.log(level, "%s", message)


class StaticTokenProvider:
    """Token provider for a pre-issued bearer token (env / .env)."""

    def __init__(self, token: str) -> None:
        if not token or not token.strip():
            raise ValueError("access token is required")
        self._token = token.strip()

    async def access_token(self) -> str:
        return self._token

