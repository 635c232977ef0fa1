# src/tasksheet/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleNotifier:
    """Notifier that prints user-facing notices (the web UI's alerts) to the terminal."""

    def notify(self, level: int, message: str) -> None:
        tag = "!" if level >= logging.ERROR else "*"
        _print_ts(f"[{tag}] {message}")


async def run_console_loop(state: AppState) -> None:
    """
    Read commands until EOF or /exit.

    input() runs in a worker thread so the poller keeps refreshing the store
    between commands.
    """
    logger.info("Console connector started (offline=%s).", state.offline)
    _print_ts("[CONSOLE] Type /help for commands. Use /exit to quit.")

    while True:
        try:
            line = (await asyncio.to_thread(input, "tasksheet> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            reply = await command_registry.handle(state, line)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is None:
            reply = "Commands start with '/'. Use /help to list them."
        print(reply, flush=True)

    logger.info("Console connector finished.")
