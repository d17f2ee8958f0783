"""
File and console handler setup for the stdlib logging backend.

structlog renders each event to a single string; these handlers decide where
that string ends up.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any

from partybot.structured_logging.logging_utilities import ensure_log_directory, resolve_log_base

_HANDLER_MARKER = "_partybot_handler"


def _convert_max_size_to_bytes(max_size: str | int) -> int:
    """Convert a size like '10MB' or '512KB' to bytes."""
    if isinstance(max_size, int):
        return max_size
    value = max_size.strip().upper()
    for suffix, factor in (("GB", 1024**3), ("MB", 1024**2), ("KB", 1024)):
        if value.endswith(suffix):
            return int(float(value[: -len(suffix)]) * factor)
    return int(value)


def _remove_existing_handlers(root_logger: logging.Logger) -> None:
    for handler in list(root_logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root_logger.removeHandler(handler)
            handler.close()


def setup_enhanced_file_logging(environment: str, log_config: dict[str, Any], log_level: str) -> None:
    """
    Attach console and rotating file handlers to the root logger.

    Log files live under ``<log_base>/<environment>/``: ``partybot.log`` gets
    everything at ``log_level`` and above, ``errors.log`` only ERROR and above.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    _remove_existing_handlers(root_logger)

    formatter = logging.Formatter("%(message)s")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    setattr(console_handler, _HANDLER_MARKER, True)
    root_logger.addHandler(console_handler)

    env_log_dir = resolve_log_base(log_config.get("log_base", "logs")) / environment
    max_bytes = _convert_max_size_to_bytes(log_config.get("max_size", "10MB"))
    backup_count = int(log_config.get("backup_count", 5))

    for file_name, level in (("partybot.log", None), ("errors.log", logging.ERROR)):
        log_path = env_log_dir / file_name
        ensure_log_directory(log_path)
        try:
            handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        except OSError as e:
            root_logger.warning("Could not open log file %s: %s", log_path, e)
            continue
        handler.setFormatter(formatter)
        if level is not None:
            handler.setLevel(level)
        setattr(handler, _HANDLER_MARKER, True)
        root_logger.addHandler(handler)

    # discord.py is chatty at DEBUG; keep its gateway noise out of our files
    logging.getLogger("discord").setLevel(max(logging.INFO, root_logger.level))
