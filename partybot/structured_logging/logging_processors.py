"""
structlog processors shared by every log line the bot writes.

Credentials (the bot token above all) are redacted, and entries emitted
outside an interaction still get a correlation id.
"""

import re
import uuid
from typing import Any

_SENSITIVE_KEY = re.compile(r"\bpassword\b|\btoken\b|\bsecret\b|_key\b|^key$|\bcredential\b|\bauth(orization)?\b")

# Identifiers that look sensitive by name only
_SAFE_FIELDS = frozenset({"party_key", "template_key"})

REDACTED = "[REDACTED]"


def _redact(values: dict[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in values.items():
        lowered = key.lower()
        if isinstance(value, dict):
            cleaned[key] = _redact(value)
        elif lowered not in _SAFE_FIELDS and _SENSITIVE_KEY.search(lowered):
            cleaned[key] = REDACTED
        else:
            cleaned[key] = value
    return cleaned


def sanitize_sensitive_data(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Replace values whose key names a credential, recursing into nested dicts."""
    return _redact(event_dict)


def add_correlation_id(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    # Timer and startup lines have no bound interaction
    event_dict.setdefault("correlation_id", str(uuid.uuid4()))
    return event_dict
