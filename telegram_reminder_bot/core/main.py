"""Command line entry point for the reminder bot."""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from contextlib import suppress
from typing import Sequence

from dotenv import load_dotenv

from ..config import ConfigError, load_config
from ..storage.factory import create_store
from .startup import create_application

_LOGGER = logging.getLogger("telegram_reminder_bot.core.main")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Telegram reminder bot")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Start the bot (default)")
    run_parser.set_defaults(command="run")

    migrate_parser = subparsers.add_parser("migrate", help="Apply database migrations and exit")
    migrate_parser.set_defaults(command="migrate")

    parser.set_defaults(command="run")
    return parser


async def _run_migrations() -> None:
    load_dotenv()
    config = load_config()
    store = create_store(config.bot)
    try:
        _LOGGER.info("Database ready at %s", config.bot.database_path)
    finally:
        await store.close()


async def _async_run() -> None:
    app = await create_application()
    task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    if task is not None:
        with suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGTERM, task.cancel)
    try:
        await app.run()
    except asyncio.CancelledError:
        _LOGGER.info("Terminated, shutting down")


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = _build_parser().parse_args(argv)
    try:
        if args.command == "migrate":
            asyncio.run(_run_migrations())
        else:
            asyncio.run(_async_run())
    except ConfigError as exc:
        _LOGGER.error("Invalid configuration: %s", exc)
        return 2
    except KeyboardInterrupt:
        _LOGGER.info("Interrupted, shutting down")
    return 0


def run() -> None:
    """Entry point for launching the bot."""
    raise SystemExit(main())


__all__ = ["main", "run"]
