# src/tasksheet/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

- One Settings object for the whole app, built once by get_settings().
- No secrets required at import time: without a spreadsheet id / token the
  app runs against the in-memory demo board.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKSHEET"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Spreadsheet ----
    spreadsheet_id: str
    tasks_sheet: str
    users_sheet: str
    tags_sheet: str

    # ---- Calendar / auth ----
    calendar_id: str
    access_token: str
    current_user_email: str

    # ---- Sync / timeline tuning ----
    poll_interval_seconds: float
    day_width_px: int
    window_days_before: int
    window_days_after: int
    request_timeout_seconds: float

    # ---- Connector flags ----
    console_enabled: bool

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            app_name=_env(_k("APP_NAME"), "tasksheet"),
            log_level=_env(_k("LOG_LEVEL"), "INFO"),
            data_dir=_env_path(_k("DATA_DIR"), Path(".local/tasksheet")),
            spreadsheet_id=_env(_k("SPREADSHEET_ID")).strip(),
            tasks_sheet=_env(_k("TASKS_SHEET"), "Tasks"),
            users_sheet=_env(_k("USERS_SHEET"), "Users"),
            tags_sheet=_env(_k("TAGS_SHEET"), "Tags"),
            calendar_id=_env(_k("CALENDAR_ID"), "primary"),
            access_token=_env(_k("ACCESS_TOKEN")).strip(),
            current_user_email=_env(_k("USER_EMAIL"), "me@example.com").strip(),
            poll_interval_seconds=_env_float(_k("POLL_INTERVAL_SECONDS"), 30.0),
            day_width_px=_env_int(_k("DAY_WIDTH_PX"), 40),
            window_days_before=_env_int(_k("WINDOW_DAYS_BEFORE"), 7),
            window_days_after=_env_int(_k("WINDOW_DAYS_AFTER"), 14),
            request_timeout_seconds=_env_float(_k("REQUEST_TIMEOUT_SECONDS"), 20.0),
            console_enabled=_env_bool(_k("CONSOLE_ENABLED"), True),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_dotenv(override=False)
    return Settings.from_env()
