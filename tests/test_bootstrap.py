# tests/test_bootstrap.py

from __future__ import annotations

import pytest

from tasksheet.cli.bootstrap import create_initial_state, shutdown_state, start_state
from tasksheet.config import Settings
from tasksheet.remote.memory_adapter import MemoryRemote
from tasksheet.remote.sheets_adapter import SheetsRemote
from tasksheet.sync.engine import SessionState


@pytest.mark.asyncio
async def test_offline_state_runs_demo_board(settings) -> None:
    state = create_initial_state(settings=settings)

    assert state.offline
    assert isinstance(state.remote, MemoryRemote)
    assert settings.data_dir.exists()

    await start_state(state)
    assert state.engine.state == SessionState.ACTIVE
    assert len(state.engine.store) > 0
    assert state.engine.current_user is not None

    await shutdown_state(state)
    assert state.engine.state == SessionState.DISPOSED


@pytest.mark.asyncio
async def test_configured_spreadsheet_uses_sheets_remote(settings) -> None:
    settings.spreadsheet_id = "sid"
    settings.access_token = "tok"

    state = create_initial_state(settings=settings)

    assert not state.offline
    assert isinstance(state.remote, SheetsRemote)
    await shutdown_state(state)


@pytest.mark.parametrize(("spreadsheet_id", "token"), [("sid", ""), ("", "tok")])
def test_half_configured_spreadsheet_stays_offline(settings, spreadsheet_id: str, token: str) -> None:
    settings.spreadsheet_id = spreadsheet_id
    settings.access_token = token

    state = create_initial_state(settings=settings)

    assert state.offline
    assert isinstance(state.remote, MemoryRemote)


def test_settings_from_env(monkeypatch) -> None:
    monkeypatch.setenv("TASKSHEET_SPREADSHEET_ID", " abc ")
    monkeypatch.setenv("TASKSHEET_POLL_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("TASKSHEET_DAY_WIDTH_PX", "not-a-number")
    monkeypatch.setenv("TASKSHEET_CONSOLE_ENABLED", "off")
    monkeypatch.delenv("TASKSHEET_ACCESS_TOKEN", raising=False)

    s = Settings.from_env()

    assert s.spreadsheet_id == "abc"
    assert s.poll_interval_seconds == 5.0
    assert s.day_width_px == 40
    assert s.console_enabled is False
    assert s.access_token == ""
