"""
Event types for the party bot.

Events carry a snapshot of the state they describe; subscribers must never
reach back into the party service for a live object.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from ..game.roster import Party


def _default_timestamp() -> datetime:
    return datetime.now(UTC)


@dataclass
class BaseEvent:
    """
    Base class for all events.

    ``timestamp`` and ``event_type`` are filled in automatically.
    """

    timestamp: datetime = field(default_factory=_default_timestamp, init=False)
    event_type: str = field(default="", init=False)

    def __post_init__(self) -> None:
        self.event_type = type(self).__name__


class PartyChange(str, Enum):
    """What happened to a party."""

    CREATED = "created"
    UPDATED = "updated"
    DISBANDED = "disbanded"
    LOCKED = "locked"


@dataclass
class PartyUpdated(BaseEvent):
    """
    Render request emitted after every successful party mutation.

    ``party`` is a detached snapshot. For DISBANDED and LOCKED it is the last
    state the party had before it left the active set.
    """

    party_id: str
    party: Party
    change: PartyChange = PartyChange.UPDATED
