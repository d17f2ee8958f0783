"""
Bot configuration.

Settings come from the environment (and ``.env``) through pydantic-settings:
``DISCORD_*`` for the gateway, ``PARTY_*`` for party behaviour and
``LOGGING_*`` for log output. Import ``get_config`` rather than building
``AppConfig`` directly.
"""

import os
import sys
import threading
from functools import lru_cache

from .models import AppConfig, DiscordConfig, LoggingConfig, PartyConfig

__all__ = ["get_config", "reset_config", "AppConfig", "DiscordConfig", "LoggingConfig", "PartyConfig"]

_config_lock = threading.Lock()


def _running_under_pytest() -> bool:
    return "pytest" in sys.modules or bool(os.getenv("PYTEST_CURRENT_TEST"))


@lru_cache(maxsize=1)
def _load_once() -> AppConfig:
    with _config_lock:
        return AppConfig()


def get_config() -> AppConfig:
    """
    Return the process configuration.

    The first load is cached for the life of the bot; tests get a fresh
    ``AppConfig`` on every call so ``patch.dict(os.environ)`` takes effect.

    Raises:
        ValidationError: If a setting is missing its required shape
    """
    if _running_under_pytest():
        return AppConfig()
    return _load_once()


def reset_config() -> None:
    with _config_lock:
        _load_once.cache_clear()
