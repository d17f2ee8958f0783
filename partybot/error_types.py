"""
Centralized error types for the party bot.

Every failure a party operation can report has one entry here so that log
lines, exception details and user-facing messages all name it the same way.
"""

from enum import Enum


class ErrorType(Enum):
    """Standardized error types for consistent categorization."""

    # Lookup
    NOT_FOUND = "not_found"
    UNKNOWN_TEMPLATE = "unknown_template"

    # Authorization
    NOT_LEADER = "not_leader"

    # Roster preconditions
    ALREADY_ASSIGNED = "already_assigned"
    NO_CURRENT_ROLE = "no_current_role"
    SLOT_TAKEN = "slot_taken"
    EMPTY_SLOT = "empty_slot"
    PARTY_FULL = "party_full"
    INVALID_TARGET = "invalid_target"
    INVALID_SLOT = "invalid_slot"
    INVALID_NAME = "invalid_name"
    NOTHING_TO_PING = "nothing_to_ping"

    # Infrastructure
    PERSISTENCE_ERROR = "persistence_error"
    CONFIGURATION_ERROR = "configuration_error"
    INTERNAL_ERROR = "internal_error"


class ErrorMessages:
    """User-facing messages, shown privately to the member who acted."""

    NOT_FOUND = "This party is locked or no longer exists."
    UNKNOWN_TEMPLATE = "Unknown run type."
    NOT_LEADER = "Only the party leader can do that."
    ALREADY_ASSIGNED = "You already have a role."
    NO_CURRENT_ROLE = "You don't have a role to switch from."
    SLOT_TAKEN = "That slot was just taken."
    EMPTY_SLOT = "That slot is already empty."
    PARTY_FULL = "Party is full!"
    INVALID_TARGET = "You cannot promote an external (non-Discord) player."
    INVALID_SLOT = "That slot does not exist."
    INVALID_NAME = "IGN cannot be empty."
    NOTHING_TO_PING = "No Discord users to ping."
    INTERNAL_ERROR = "An error occurred while processing your request."
