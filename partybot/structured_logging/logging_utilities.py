"""
Helpers for log file locations and environment detection.
"""

import os
import sys
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

VALID_ENVIRONMENTS = ("unit_test", "local", "production")


def ensure_log_directory(log_path: Path) -> None:
    """Create the directory a log file lives in; a failure is logged and startup continues."""
    if not log_path or not log_path.parent:
        return
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(
            "Could not create log directory",
            directory=str(log_path.parent),
            error=str(e),
            error_type=type(e).__name__,
        )


def resolve_log_base(log_base: str) -> Path:
    """
    Turn ``LOGGING_LOG_BASE`` into an absolute directory.

    Relative values are anchored at the nearest directory holding
    ``pyproject.toml`` so that logs land in the checkout no matter where the bot
    was launched from; without one they fall back to the working directory.
    """
    log_path = Path(log_base)
    if log_path.is_absolute():
        return log_path

    cwd = Path.cwd()
    project_root = next((d for d in (cwd, *cwd.parents) if (d / "pyproject.toml").exists()), cwd)
    return project_root / log_path


def detect_environment() -> str:
    """Pick the log environment: ``unit_test`` under pytest, else PARTYBOT_ENV, LOGGING_ENVIRONMENT or ``local``."""
    if "pytest" in sys.modules or "pytest" in sys.argv[0]:
        return "unit_test"

    for variable in ("PARTYBOT_ENV", "LOGGING_ENVIRONMENT"):
        value = os.getenv(variable, "")
        if value in VALID_ENVIRONMENTS:
            return value
    return "local"
