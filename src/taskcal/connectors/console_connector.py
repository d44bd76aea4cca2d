# src/taskcal/connectors/console_connector.py

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
    print(f"[{_ts_local()}] {text}")


def run_console_loop(state: AppState) -> None:
    """
    Blocking REPL. Each command runs to completion before the next line is
    read, so at most one action touches the resolution session at a time.
    """
    logger.info("Console connector started (user=%s).", state.user_id)
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = input(">>> ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            reply = asyncio.run(command_registry.handle(state, user_input, emit=emit))
        except Exception:
            logger.exception("Command failed: %s", user_input)
            _print_ts("[ERROR] Command failed, see log for details.")
            continue

        if reply is None:
            _print_ts("Commands start with '/'. Use /help.")
            continue

        print(reply)
