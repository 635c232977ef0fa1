# src/tasksheet/remote/rows.py

"""
Spreadsheet row schema.

Rows come back from the Sheets values API as ragged lists of strings
(trailing empty cells are dropped). Each row is padded, mapped onto a pydantic
model and validated; any mismatch raises RemoteSchemaError naming the sheet row
instead of leaking half-filled entities into the store.

Tasks sheet  A..O: ID Title Detail Assignee Tag StartDate DueDate Priority
                   Status CreatedAt UpdatedAt CalendarEventId Visibility
                   PredecessorTaskId Order
Users sheet  A..E: ID Email Role Department Name
Tags sheet   A..C: ID Name Color
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..core.errors import RemoteSchemaError
from ..tasks.task_models import Priority, Tag, Task, TaskStatus, User, UserRole, Visibility

TASK_HEADERS = [
    "ID",
    "Title",
    "Detail",
    "Assignee",
    "Tag",
    "StartDate",
    "DueDate",
    "Priority",
    "Status",
    "CreatedAt",
    "UpdatedAt",
    "CalendarEventId",
    "Visibility",
    "PredecessorTaskId",
    "Order",
]
USER_HEADERS = ["ID", "Email", "Role", "Department", "Name"]
TAG_HEADERS = ["ID", "Name", "Color"]

# Column letters used by targeted writes.
STATUS_COLUMN = "I"
UPDATED_AT_COLUMN = "K"
ORDER_COLUMN = "O"
LAST_TASK_COLUMN = "O"

TAG_PALETTE = [
    "#3B82F6",
    "#EC4899",
    "#F59E0B",
    "#10B981",
    "#8B5CF6",
    "#EF4444",
    "#14B8A6",
    "#F97316",
    "#6366F1",
    "#84CC16",
]


# Japanese cell labels found in sheets written by the web client.
LEGACY_LABELS: dict[str, str] = {
    "未着手": TaskStatus.NOT_STARTED,
    "進行中": TaskStatus.IN_PROGRESS,
    "完了": TaskStatus.COMPLETED,
    "高": Priority.HIGH,
    "中": Priority.MEDIUM,
    "低": Priority.LOW,
}
ADMIN_ROLE_LABELS = frozenset({"admin", "管理者"})


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class _Row(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)


class TaskRow(_Row):
    id: str
    title: str = ""
    detail: str = ""
    assignee_email: str = ""
    tag: str = ""
    start_date: date | None = None
    due_date: date | None = None
    priority: Priority
    status: TaskStatus
    created_at: datetime
    updated_at: datetime
    calendar_event_id: str | None = None
    visibility: Visibility = Visibility.PUBLIC
    predecessor_task_id: str | None = None
    order: int = 0

    @field_validator("id")
    @classmethod
    def _id_required(cls, value: str) -> str:
        if not value:
            raise ValueError("task id is empty")
        return value

    @field_validator(
        "start_date",
        "due_date",
        "calendar_event_id",
        "predecessor_task_id",
        mode="before",
    )
    @classmethod
    def _optional_cells(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("visibility", mode="before")
    @classmethod
    def _visibility(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return Visibility.PUBLIC if value is None else str(value).upper()

    @field_validator("priority", "status", mode="before")
    @classmethod
    def _upper_enum(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        value = value.strip()
        return LEGACY_LABELS.get(value, value.upper())

    @field_validator("order", mode="before")
    @classmethod
    def _order(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return 0 if value is None else value

    @field_validator("created_at", "updated_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)

    def to_task(self) -> Task:
        return Task(**self.model_dump())


class UserRow(_Row):
    id: str = ""
    email: str
    role: UserRole = UserRole.USER
    department: str | None = None
    name: str = ""

    @field_validator("email")
    @classmethod
    def _email_required(cls, value: str) -> str:
        if "@" not in value:
            raise ValueError(f"not an email address: {value!r}")
        return value

    @field_validator("role", mode="before")
    @classmethod
    def _role(cls, value: Any) -> Any:
        # Anything but an admin label is a plain user.
        value = _blank_to_none(value)
        if value is None:
            return UserRole.USER
        return UserRole.ADMIN if str(value).strip().lower() in ADMIN_ROLE_LABELS else UserRole.USER

    @field_validator("department", mode="before")
    @classmethod
    def _department(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def to_user(self) -> User:
        return User(email=self.email, name=self.name or self.email, role=self.role, department=self.department)


class TagRow(_Row):
    id: str
    name: str
    color: str = TAG_PALETTE[0]

    @field_validator("color", mode="before")
    @classmethod
    def _color(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return TAG_PALETTE[0] if value is None else value

    def to_tag(self) -> Tag:
        return Tag(id=self.id, name=self.name, color=self.color)


def _pad(values: Sequence[Any], width: int) -> list[Any]:
    row = list(values)[:width]
    return row + [""] * (width - len(row))


def _decode(model: type[_Row], headers: list[str], fields: list[str], values: Sequence[Any], row_number: int) -> Any:
    padded = _pad(values, len(headers))
    try:
        return model.model_validate(dict(zip(fields, padded, strict=True)))
    except ValidationError as exc:
        raise RemoteSchemaError(
            f"row {row_number} does not match the {model.__name__} schema: {exc}",
            row_number=row_number,
            values=list(values),
        ) from exc


def decode_task_row(values: Sequence[Any], row_number: int) -> Task:
    return _decode(TaskRow, TASK_HEADERS, list(TaskRow.model_fields), values, row_number).to_task()


def decode_user_row(values: Sequence[Any], row_number: int) -> User:
    return _decode(UserRow, USER_HEADERS, list(UserRow.model_fields), values, row_number).to_user()


def decode_tag_row(values: Sequence[Any], row_number: int) -> Tag:
    return _decode(TagRow, TAG_HEADERS, list(TagRow.model_fields), values, row_number).to_tag()


def _iso_dt(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def encode_task_row(task: Task) -> list[str]:
    return [
        task.id,
        task.title,
        task.detail,
        task.assignee_email,
        task.tag,
        task.start_date.isoformat() if task.start_date else "",
        task.due_date.isoformat() if task.due_date else "",
        task.priority.value,
        task.status.value,
        _iso_dt(task.created_at),
        _iso_dt(task.updated_at),
        task.calendar_event_id or "",
        task.visibility.value,
        task.predecessor_task_id or "",
        str(task.order),
    ]


def encode_timestamp(value: datetime) -> str:
    return _iso_dt(value)


def encode_user_row(user_id: str, user: User) -> list[str]:
    return [user_id, user.email, user.role.value, user.department or "", user.name]


def encode_tag_row(tag: Tag) -> list[str]:
    return [tag.id, tag.name, tag.color]


def pick_tag_color(existing: Sequence[Tag]) -> str:
    """First palette colour not used yet; cycles once the palette is exhausted."""
    used = {t.color.upper() for t in existing}
    for color in TAG_PALETTE:
        if color.upper() not in used:
            return color
    return TAG_PALETTE[len(existing) % len(TAG_PALETTE)]
