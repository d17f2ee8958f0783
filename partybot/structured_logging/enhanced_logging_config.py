"""
Enhanced structlog-based logging configuration for the party bot.

This is the main entry point for the logging system: call
``setup_enhanced_logging`` once at startup, then obtain loggers anywhere with
``get_logger(__name__)``.
"""

# pylint: disable=too-few-public-methods  # Reason: Logging state container with focused responsibility

import json
import re
from typing import Any, cast

import structlog
from structlog.contextvars import merge_contextvars
from structlog.stdlib import BoundLogger, LoggerFactory

from partybot.structured_logging.logging_context import (
    bind_interaction_context,
    clear_interaction_context,
    get_current_context,
)
from partybot.structured_logging.logging_file_setup import setup_enhanced_file_logging
from partybot.structured_logging.logging_processors import add_correlation_id, sanitize_sensitive_data
from partybot.structured_logging.logging_utilities import detect_environment

__all__ = [
    "bind_interaction_context",
    "clear_interaction_context",
    "configure_enhanced_structlog",
    "get_current_context",
    "get_logger",
    "log_exception_once",
    "setup_enhanced_logging",
]

logger = structlog.get_logger(__name__)

_ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


class _LoggingState:
    """State container for logging initialization to avoid global statements."""

    initialized: bool = False
    signature: str | None = None


_logging_state = _LoggingState()


def _strip_ansi_renderer(bound_logger: Any, name: str, event_dict: dict[str, Any]) -> str:
    """Render key/value pairs with ANSI escape sequences removed."""
    try:
        formatted = structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "event"])(
            bound_logger, name, event_dict
        )
        return _ANSI_ESCAPE.sub("", formatted)
    except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: A renderer failure must not take the bot down with it
        return f"Logging renderer error: {type(e).__name__}: {str(e)}"


def configure_enhanced_structlog(
    environment: str | None = None,
    log_level: str = "INFO",
    log_config: dict[str, Any] | None = None,
) -> None:
    """
    Configure structlog over the stdlib logging backend.

    Args:
        environment: Environment name (auto-detected if None)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_config: Logging configuration dictionary
    """
    if environment is None:
        environment = detect_environment()

    base_processors = [
        # Security first - sanitize sensitive data
        sanitize_sensitive_data,
        # Interaction context, then a correlation id for anything unbound
        merge_contextvars,
        add_correlation_id,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_config and not log_config.get("disable_logging", False):
        setup_enhanced_file_logging(environment, log_config, log_level)

    structlog.configure(
        processors=base_processors + [_strip_ansi_renderer],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=False,
    )


def setup_enhanced_logging(config: dict[str, Any], *, force_reconfigure: bool = False) -> None:
    """
    Set up logging from the application configuration dictionary.

    Args:
        config: Configuration dictionary (see ``AppConfig.to_legacy_dict``)
        force_reconfigure: When True, reconfigure even if already initialized
    """
    config_signature = json.dumps(config, sort_keys=True, default=str)

    if _logging_state.initialized and not force_reconfigure:
        get_logger("partybot.structured_logging.setup").debug(
            "setup_enhanced_logging skipped; logging system already initialized",
            config_signature=_logging_state.signature,
        )
        return

    logging_config = config.get("logging", {})
    environment = logging_config.get("environment") or detect_environment()
    log_level = logging_config.get("level", "INFO")

    if logging_config.get("disable_logging", False):
        configure_enhanced_structlog(environment, log_level, {"disable_logging": True})
    else:
        configure_enhanced_structlog(environment, log_level, logging_config)
        get_logger("partybot.structured_logging.enhanced").info(
            "Logging system initialized",
            environment=environment,
            log_level=log_level,
            log_base=logging_config.get("log_base", "logs"),
        )

    _logging_state.initialized = True
    _logging_state.signature = config_signature


def get_logger(name: str) -> Any:
    """Return the structlog logger for ``name``; modules call this with ``__name__``."""
    return structlog.get_logger(name)


def log_exception_once(
    bound_logger: BoundLogger,
    level: str,
    message: str,
    *,
    exc: Exception | None = None,
    mark_logged: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log ``exc`` at ``level`` unless an earlier handler already reported it.

    ``PartyBotError`` instances track this through ``mark_logged``; any other
    exception gets an ``already_logged`` attribute instead, so a failure that
    bubbles from the service through the router is written once.
    """
    if exc is not None:
        if getattr(exc, "already_logged", False):
            return
        kwargs.setdefault("error_type", type(exc).__name__)
        kwargs.setdefault("error", str(exc))

    getattr(bound_logger, level.lower(), bound_logger.error)(message, **kwargs)

    if exc is None or not mark_logged:
        return
    marker = getattr(exc, "mark_logged", None)
    if callable(marker):
        marker()  # pylint: disable=not-callable  # Reason: callable() checked above
    else:
        cast(Any, exc).already_logged = True
