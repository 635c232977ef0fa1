# src/tasksheet/remote/sheets_adapter.py

from __future__ import annotations

"""
Google Sheets / Google Calendar implementation of the TaskRemote port.

Uses the REST APIs directly through one pooled httpx.AsyncClient:
- Sheets v4 values API for row reads/appends/overwrites,
- Sheets v4 batchUpdate for row deletion and sheet creation,
- Calendar v3 events API for all-day events.

The spreadsheet has no transactions or row locks: every write first looks the
row up by id (column A), so a concurrent insert/delete by another client can
only make us miss (TaskNotFoundError), never overwrite the wrong task id.
"""

import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import quote

import httpx

from ..core.errors import CalendarError, RemoteError, TaskNotFoundError
from ..core.ports import AccessTokenProvider
from ..tasks.ordering import next_order
from ..tasks.task_models import Tag, Task, TaskDraft, TaskStatus, User
from .rows import (
    LAST_TASK_COLUMN,
    ORDER_COLUMN,
    STATUS_COLUMN,
    TAG_HEADERS,
    TASK_HEADERS,
    UPDATED_AT_COLUMN,
    USER_HEADERS,
    decode_tag_row,
    decode_task_row,
    decode_user_row,
    encode_tag_row,
    encode_task_row,
    encode_timestamp,
    encode_user_row,
    pick_tag_color,
)

logger = logging.getLogger(__name__)

SHEETS_BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"
CALENDAR_BASE_URL = "https://www.googleapis.com/calendar/v3"

# First data row (row 1 holds the headers).
FIRST_DATA_ROW = 2


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return str(body)[:200]


def _is_blank(row: Sequence[Any]) -> bool:
    return all(not str(cell).strip() for cell in row)


class SheetsRemote:
    def __init__(
        self,
        *,
        spreadsheet_id: str,
        tokens: AccessTokenProvider,
        tasks_sheet: str = "Tasks",
        users_sheet: str = "Users",
        tags_sheet: str = "Tags",
        calendar_id: str = "primary",
        timeout_seconds: float = 20.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not spreadsheet_id:
            raise ValueError("spreadsheet_id is required")
        self.spreadsheet_id = spreadsheet_id
        self.tasks_sheet = tasks_sheet
        self.users_sheet = users_sheet
        self.tags_sheet = tags_sheet
        self.calendar_id = calendar_id
        self._tokens = tokens
        self._clock = clock or (lambda: datetime.now(UTC))
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ---- HTTP plumbing ----

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        token = await self._tokens.access_token()
        try:
            resp = await self._client.request(
                method,
                url,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            raise RemoteError(f"{method} {url} failed: {exc}") from exc

        if resp.status_code >= 400:
            raise RemoteError(
                f"{method} {url} -> HTTP {resp.status_code}: {_error_message(resp)}",
                status_code=resp.status_code,
            )
        if not resp.content:
            return None
        return resp.json()

    def _sheet_url(self, suffix: str = "") -> str:
        return f"{SHEETS_BASE_URL}/{self.spreadsheet_id}{suffix}"

    def _values_url(self, a1_range: str, suffix: str = "") -> str:
        return self._sheet_url(f"/values/{quote(a1_range, safe='')}{suffix}")

    @staticmethod
    def _range(sheet: str, cells: str) -> str:
        return f"'{sheet}'!{cells}"

    async def _get_values(self, a1_range: str) -> list[list[Any]]:
        data = await self._request("GET", self._values_url(a1_range))
        values = (data or {}).get("values") or []
        if not isinstance(values, list):
            raise RemoteError(f"unexpected values payload for {a1_range}")
        return values

    async def _append_row(self, sheet: str, row: list[str]) -> None:
        await self._request(
            "POST",
            self._values_url(self._range(sheet, "A2"), ":append"),
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [row]},
        )

    async def _batch_values(self, data: list[dict[str, Any]]) -> None:
        await self._request(
            "POST",
            self._sheet_url("/values:batchUpdate"),
            json={"valueInputOption": "RAW", "data": data},
        )

    async def _sheet_properties(self) -> list[dict[str, Any]]:
        data = await self._request("GET", self._sheet_url(), params={"fields": "sheets.properties"})
        return [s.get("properties", {}) for s in (data or {}).get("sheets", [])]

    # ---- setup ----

    async def initialize(self) -> None:
        """Create missing sheets and header rows (idempotent)."""
        headers = {
            self.tasks_sheet: TASK_HEADERS,
            self.users_sheet: USER_HEADERS,
            self.tags_sheet: TAG_HEADERS,
        }
        existing = {p.get("title") for p in await self._sheet_properties()}
        missing = [name for name in headers if name not in existing]
        if missing:
            await self._request(
                "POST",
                self._sheet_url(":batchUpdate"),
                json={"requests": [{"addSheet": {"properties": {"title": name}}} for name in missing]},
            )
            logger.info("Created sheets: %s", ", ".join(missing))

        for name, header_row in headers.items():
            if await self._get_values(self._range(name, "A1:Z1")):
                continue
            await self._request(
                "PUT",
                self._values_url(self._range(name, "A1")),
                params={"valueInputOption": "RAW"},
                json={"values": [header_row]},
            )
            logger.info("Wrote header row for sheet %s", name)

    # ---- row lookup ----

    async def _task_rows(self) -> list[tuple[int, str, str]]:
        """(sheet_row, id, title) for every non-blank task row."""
        rows = await self._get_values(self._range(self.tasks_sheet, "A2:B"))
        out: list[tuple[int, str, str]] = []
        for i, row in enumerate(rows):
            if not row or _is_blank(row):
                continue
            title = str(row[1]) if len(row) > 1 else ""
            out.append((i + FIRST_DATA_ROW, str(row[0]).strip(), title))
        return out

    async def _find_row(self, task_id: str, hint: str | None = None) -> int:
        matches = [(row, title) for row, rid, title in await self._task_rows() if rid == task_id]
        if not matches:
            raise TaskNotFoundError(task_id)
        if len(matches) > 1:
            logger.warning("Task id %s appears on %d rows", task_id, len(matches))
            if hint is not None:
                for row, title in matches:
                    if title == hint:
                        return row
        return matches[0][0]

    # ---- TaskRemote ----

    async def list_tasks(self) -> list[Task]:
        rows = await self._get_values(self._range(self.tasks_sheet, f"A2:{LAST_TASK_COLUMN}"))
        return [
            decode_task_row(row, i + FIRST_DATA_ROW)
            for i, row in enumerate(rows)
            if row and not _is_blank(row)
        ]

    async def create_task(self, draft: TaskDraft) -> Task:
        task_id = draft.id or f"task_{uuid.uuid4().hex[:9]}"
        order = draft.order
        if order is None:
            order = next_order(await self.list_tasks(), draft.status)
        task = draft.to_task(task_id=task_id, order=order, now=self._clock())
        await self._append_row(self.tasks_sheet, encode_task_row(task))
        logger.debug("Appended task row id=%s", task.id)
        return task

    async def update_task(self, task: Task) -> Task:
        row = await self._find_row(task.id)
        updated = replace(task, updated_at=self._clock())
        await self._request(
            "PUT",
            self._values_url(self._range(self.tasks_sheet, f"A{row}:{LAST_TASK_COLUMN}{row}")),
            params={"valueInputOption": "RAW"},
            json={"values": [encode_task_row(updated)]},
        )
        return updated

    async def update_task_status(self, task_id: str, status: TaskStatus) -> None:
        row = await self._find_row(task_id)
        now = encode_timestamp(self._clock())
        await self._batch_values(
            [
                {"range": self._range(self.tasks_sheet, f"{STATUS_COLUMN}{row}"), "values": [[status.value]]},
                {"range": self._range(self.tasks_sheet, f"{UPDATED_AT_COLUMN}{row}"), "values": [[now]]},
            ]
        )

    async def update_task_orders(self, tasks: Sequence[Task]) -> None:
        if not tasks:
            return
        rows_by_id: dict[str, int] = {}
        for row, rid, _title in await self._task_rows():
            rows_by_id.setdefault(rid, row)

        now = encode_timestamp(self._clock())
        data: list[dict[str, Any]] = []
        for task in tasks:
            row = rows_by_id.get(task.id)
            if row is None:
                raise TaskNotFoundError(task.id)
            data.append({"range": self._range(self.tasks_sheet, f"{ORDER_COLUMN}{row}"), "values": [[str(task.order)]]})
            data.append({"range": self._range(self.tasks_sheet, f"{UPDATED_AT_COLUMN}{row}"), "values": [[now]]})
        await self._batch_values(data)

    async def delete_task(self, task_id: str, hint: str | None = None) -> None:
        row = await self._find_row(task_id, hint)
        sheet_id = next(
            (p.get("sheetId", 0) for p in await self._sheet_properties() if p.get("title") == self.tasks_sheet),
            0,
        )
        await self._request(
            "POST",
            self._sheet_url(":batchUpdate"),
            json={
                "requests": [
                    {
                        "deleteDimension": {
                            "range": {
                                "sheetId": sheet_id,
                                "dimension": "ROWS",
                                "startIndex": row - 1,
                                "endIndex": row,
                            }
                        }
                    }
                ]
            },
        )
        logger.debug("Deleted task row id=%s row=%d", task_id, row)

    async def list_users(self) -> list[User]:
        rows = await self._get_values(self._range(self.users_sheet, "A2:E"))
        return [decode_user_row(row, i + FIRST_DATA_ROW) for i, row in enumerate(rows) if row and not _is_blank(row)]

    async def create_user(self, user: User) -> User:
        user_id = f"user_{uuid.uuid4().hex[:9]}"
        await self._append_row(self.users_sheet, encode_user_row(user_id, user))
        logger.info("Registered user row id=%s email=%s", user_id, user.email)
        return user

    async def list_tags(self) -> list[Tag]:
        rows = await self._get_values(self._range(self.tags_sheet, "A2:C"))
        return [decode_tag_row(row, i + FIRST_DATA_ROW) for i, row in enumerate(rows) if row and not _is_blank(row)]

    async def create_tag(self, name: str) -> Tag:
        name = name.strip()
        if not name:
            raise ValueError("tag name is required")
        existing = await self.list_tags()
        for tag in existing:
            if tag.name.lower() == name.lower():
                return tag
        tag = Tag(id=f"tag_{uuid.uuid4().hex[:8]}", name=name, color=pick_tag_color(existing))
        await self._append_row(self.tags_sheet, encode_tag_row(tag))
        return tag

    # ---- calendar ----

    async def add_calendar_event(self, task: Task) -> str:
        if task.start_date is None or task.due_date is None:
            raise CalendarError("start and due dates are required for a calendar event", task_id=task.id)

        # All-day events use an exclusive end date.
        end = task.due_date + timedelta(days=1)
        event = {
            "summary": task.title,
            "description": f"{task.detail}\n\nPriority: {task.priority.value}\nStatus: {task.status.value}",
            "start": {"date": task.start_date.isoformat()},
            "end": {"date": end.isoformat()},
            "transparency": "transparent",
        }
        url = f"{CALENDAR_BASE_URL}/calendars/{quote(self.calendar_id, safe='')}/events"
        try:
            data = await self._request("POST", url, json=event)
        except RemoteError as exc:
            raise CalendarError(f"calendar insert failed: {exc.message}", task_id=task.id) from exc

        event_id = (data or {}).get("id")
        if not event_id:
            raise CalendarError("calendar insert returned no event id", task_id=task.id)
        return str(event_id)

    async def remove_calendar_event(self, event_id: str) -> None:
        url = (
            f"{CALENDAR_BASE_URL}/calendars/{quote(self.calendar_id, safe='')}"
            f"/events/{quote(event_id, safe='')}"
        )
        try:
            await self._request("DELETE", url)
        except RemoteError as exc:
            if exc.status_code in (404, 410):
                logger.info("Calendar event %s already gone", event_id)
                return
            raise CalendarError(f"calendar delete failed: {exc.message}", event_id=event_id) from exc
