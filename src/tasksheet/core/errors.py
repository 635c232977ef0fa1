# src/tasksheet/core/errors.py

"""
Exception hierarchy.

    TaskSheetError
    ├── TaskNotFoundError     task id absent (locally or in the remote sheet)
    ├── DuplicateTaskError    create with an id that already exists
    ├── ValidationRejected    predecessor gating / save-time validation
    ├── RemoteError           transient remote failure (network, auth, rate limit)
    │   └── RemoteSchemaError remote payload does not match the row schema
    ├── CalendarError         calendar side effect failed
    └── SessionStateError     engine used outside its ACTIVE lifecycle
"""

from __future__ import annotations

from typing import Any


class TaskSheetError(Exception):
    """Base error; `context` keeps structured details for logging."""

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context: dict[str, Any] = context
        super().__init__(message)


class TaskNotFoundError(TaskSheetError):
    def __init__(self, task_id: str, message: str | None = None) -> None:
        self.task_id = task_id
        super().__init__(message or f"Task not found: {task_id}", task_id=task_id)


class DuplicateTaskError(TaskSheetError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task already exists: {task_id}", task_id=task_id)


class ValidationRejected(TaskSheetError):
    """
    A mutation refused before any optimistic change or remote call.

    `blocking_task_id` is set when the refusal comes from predecessor gating.
    """

    def __init__(self, message: str, *, blocking_task_id: str | None = None) -> None:
        self.blocking_task_id = blocking_task_id
        super().__init__(message, blocking_task_id=blocking_task_id)


class RemoteError(TaskSheetError):
    def __init__(self, message: str, *, status_code: int | None = None, **context: Any) -> None:
        self.status_code = status_code
        super().__init__(message, status_code=status_code, **context)


class RemoteSchemaError(RemoteError):
    """Raised by row decoders; never swallowed into partially-filled entities."""


class CalendarError(TaskSheetError):
    pass


class SessionStateError(TaskSheetError):
    pass
