# src/tasksheet/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, loads the board, then either runs the
console REPL or just keeps the poller alive until a signal arrives.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import create_initial_state, shutdown_state, start_state
from ..config import get_settings
from ..connectors.console_connector import ConsoleNotifier, run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _run(settings) -> int:
    state = create_initial_state(settings=settings, notifier=ConsoleNotifier())
    try:
        try:
            await start_state(state)
        except Exception:
            logger.exception("Initial load failed.")
            return 1

        if settings.console_enabled:
            await run_console_loop(state)
            return 0

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            # Not supported on every platform (e.g. Windows).
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(signum, stop.set)

        logger.info("Console disabled. Polling only. Press Ctrl+C to stop.")
        await stop.wait()
        return 0
    finally:
        await shutdown_state(state)
        logger.info("Bye.")


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)
    try:
        code = asyncio.run(_run(settings))
    except KeyboardInterrupt:
        code = 0
    raise SystemExit(code)


if __name__ == "__main__":
    main()
