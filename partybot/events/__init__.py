"""
Event system for the party bot.

The party service publishes ``PartyUpdated`` events after every successful
change; presentation subscribes to re-render the party message.
"""

from .event_bus import EventBus
from .event_types import BaseEvent, PartyChange, PartyUpdated

__all__ = ["BaseEvent", "EventBus", "PartyChange", "PartyUpdated"]
