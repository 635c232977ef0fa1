# src/tasksheet/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..sync.engine import SyncEngine
from .ports import TaskRemote


@dataclass
class AppState:
    # Settings object (real Settings or a SimpleNamespace in tests).
    settings: object

    remote: TaskRemote
    engine: SyncEngine

    # True when running against the in-memory demo board.
    offline: bool = False
