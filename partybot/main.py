"""
Party bot process entry point.

Loads configuration and logging, restores persisted parties, then serves
interactions until SIGINT or SIGTERM. Shutdown always writes a final
snapshot. The exit status is 0 after a signalled shutdown and 1 when the bot
could not start.
"""

from __future__ import annotations

import asyncio
import signal
import sys

import discord
from dotenv import load_dotenv
from pydantic import ValidationError

from .config import get_config
from .config.models import AppConfig
from .container import ApplicationContainer
from .exceptions import ConfigurationError, PersistenceError
from .structured_logging.enhanced_logging_config import (
    configure_enhanced_structlog,
    get_logger,
    log_exception_once,
    setup_enhanced_logging,
)

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))


async def run_bot(config: AppConfig) -> int:
    """
    Serve until a shutdown signal arrives or the gateway connection fails.

    Returns:
        Process exit status
    """
    container = ApplicationContainer(config)
    stop = asyncio.Event()
    _install_signal_handlers(stop)

    client_task = asyncio.create_task(container.client.start(config.discord.token), name="discord-client")
    stop_task = asyncio.create_task(stop.wait(), name="shutdown-signal")
    exit_code = EXIT_OK
    try:
        done, _ = await asyncio.wait({client_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if client_task in done and not client_task.cancelled() and client_task.exception() is not None:
            error = client_task.exception()
            log_exception_once(logger, "error", "Discord client stopped", exc=error)
            exit_code = EXIT_FAILURE
        elif stop_task in done:
            logger.info("Shutdown signal received")
    finally:
        stop_task.cancel()
        try:
            await container.shutdown()
        except PersistenceError:
            exit_code = EXIT_FAILURE
        if not client_task.done():
            client_task.cancel()
        await asyncio.gather(client_task, stop_task, return_exceptions=True)
    return exit_code


def load_startup_config() -> AppConfig:
    """
    Load configuration and set up logging from it.

    Raises:
        ConfigurationError: If a setting is invalid or the bot token is missing
    """
    try:
        config = get_config()
    except ValidationError as e:
        configure_enhanced_structlog()
        raise ConfigurationError(
            "Invalid configuration", details={"errors": e.errors(include_url=False, include_context=False)}
        ) from e

    setup_enhanced_logging(config.to_legacy_dict())
    if not config.discord.token:
        raise ConfigurationError("Bot token missing; set DISCORD_TOKEN")
    return config


def main() -> int:
    """Start the party bot and block until it exits."""
    load_dotenv()
    try:
        config = load_startup_config()
    except ConfigurationError:
        return EXIT_FAILURE

    logger.info("Starting Guild Wars Party Bot", version=config.version)
    try:
        return asyncio.run(run_bot(config))
    except discord.LoginFailure as e:
        log_exception_once(logger, "error", "Failed to start bot", exc=e)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
