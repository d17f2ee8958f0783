"""
Per-interaction logging context.

The router binds the acting member, the party and the routed action when an
interaction arrives; every line logged while handling it then carries them.
"""

import uuid
from typing import Any

from structlog.contextvars import bind_contextvars, clear_contextvars, get_contextvars


def bind_interaction_context(
    correlation_id: str | None = None,
    user_id: str | None = None,
    party_id: str | None = None,
    action: str | None = None,
    **extra: Any,
) -> None:
    """Bind interaction fields, skipping any left as None; a correlation id is generated if missing."""
    fields = {
        "correlation_id": correlation_id or str(uuid.uuid4()),
        "user_id": user_id,
        "party_id": party_id,
        "action": action,
        **extra,
    }
    bind_contextvars(**{key: value for key, value in fields.items() if value is not None})


def clear_interaction_context() -> None:
    clear_contextvars()


def get_current_context() -> dict[str, Any]:
    return get_contextvars()
