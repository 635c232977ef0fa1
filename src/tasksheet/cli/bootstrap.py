# src/tasksheet/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures the local (gitignored) data directory exists,
- picks the remote (Google Sheets, or the in-memory demo board when no
  spreadsheet / token is configured),
- wires remote + store + notifier into a SyncEngine held by AppState.
"""

from __future__ import annotations

import inspect
import logging
from datetime import datetime

from ..config import get_settings
from ..core.ports import Notifier, StaticTokenProvider, TaskRemote
from ..core.state import AppState
from ..remote.memory_adapter import demo_remote
from ..remote.sheets_adapter import SheetsRemote
from ..sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def _build_remote(settings) -> tuple[TaskRemote, bool]:
    if not (settings.spreadsheet_id and settings.access_token):
        logger.info("No spreadsheet configured; using the in-memory demo board.")
        today = datetime.now().astimezone().date()
        return demo_remote(settings.current_user_email, today), True

    remote = SheetsRemote(
        spreadsheet_id=settings.spreadsheet_id,
        tokens=StaticTokenProvider(settings.access_token),
        tasks_sheet=settings.tasks_sheet,
        users_sheet=settings.users_sheet,
        tags_sheet=settings.tags_sheet,
        calendar_id=settings.calendar_id,
        timeout_seconds=settings.request_timeout_seconds,
    )
    return remote, False


def create_initial_state(*, settings=None, notifier: Notifier | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    settings.data_dir.mkdir(parents=True, exist_ok=True)

    remote, offline = _build_remote(settings)
    engine = SyncEngine(
        remote,
        notifier=notifier,
        current_user_email=settings.current_user_email,
        poll_interval_seconds=settings.poll_interval_seconds,
        day_width=settings.day_width_px,
        window_days_before=settings.window_days_before,
        window_days_after=settings.window_days_after,
    )
    return AppState(settings=settings, remote=remote, engine=engine, offline=offline)


async def start_state(state: AppState) -> None:
    """Prepare the sheet (online only), do the initial load and start polling."""
    initialize = getattr(state.remote, "initialize", None)
    if initialize is not None:
        await initialize()
    await state.engine.start()
    state.engine.start_polling()


async def shutdown_state(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.engine.dispose()
    except Exception:
        logger.exception("Engine dispose failed.")

    aclose = getattr(state.remote, "aclose", None)
    if aclose is None:
        return
    try:
        result = aclose()
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.debug("Remote close failed.", exc_info=True)
