# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from tasksheet.core.state import AppState
from tasksheet.sync.engine import SyncEngine

from .fakes import FIXED_NOW, ME, FakeRemote, RecordingNotifier


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the bootstrap and the engine.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="tasksheet-test",
        log_level="DEBUG",
        data_dir=tmp_path / "data",
        # No spreadsheet: bootstrap picks the in-memory board.
        spreadsheet_id="",
        access_token="",
        tasks_sheet="Tasks",
        users_sheet="Users",
        tags_sheet="Tags",
        calendar_id="primary",
        current_user_email=ME,
        poll_interval_seconds=30.0,
        day_width_px=40,
        window_days_before=7,
        window_days_after=14,
        request_timeout_seconds=5.0,
        console_enabled=False,
    )


@pytest.fixture()
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def engine(remote: FakeRemote, notifier: RecordingNotifier) -> SyncEngine:
    """Engine in INIT state; tests seed `remote.rows` and then `await engine.start()`."""
    return SyncEngine(
        remote,
        notifier=notifier,
        current_user_email=ME,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture()
def state(settings: SimpleNamespace, remote: FakeRemote, engine: SyncEngine) -> AppState:
    return AppState(settings=settings, remote=remote, engine=engine, offline=True)
