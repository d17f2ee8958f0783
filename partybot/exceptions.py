"""
Exception hierarchy for the party bot.

Party operations report every failed precondition by raising a
``PartyOperationError`` subclass before anything is mutated. The interaction
router turns those into private replies; anything else that escapes is an
internal error.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .error_types import ErrorMessages, ErrorType
from .structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ErrorContext:
    """Contextual information for error reporting."""

    user_id: str | None = None
    party_id: str | None = None
    operation: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for logging."""
        return {
            "user_id": self.user_id,
            "party_id": self.party_id,
            "operation": self.operation,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class PartyBotError(Exception):
    """
    Base exception for all party bot errors.

    Carries a technical message, a user-friendly message, structured context
    and an ``ErrorType``. The error logs itself once on construction.
    """

    error_type: ErrorType = ErrorType.INTERNAL_ERROR
    log_level: str = "error"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
        user_friendly: str | None = None,
    ):
        """
        Initialize the error.

        Args:
            message: Technical error message
            context: Error context information
            details: Additional error details
            user_friendly: User-friendly error message
        """
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.details = details or {}
        self.user_friendly = user_friendly or message
        self.timestamp = datetime.now(UTC)
        self.already_logged = False

        self._log_error()

    def _log_error(self) -> None:
        """Log the error with structured context."""
        log_method = getattr(logger, self.log_level, logger.error)
        log_method(
            "Party bot error occurred",
            error_type=self.error_type.value,
            message=self.message,
            context=self.context.to_dict(),
            details=self.details,
        )
        self.already_logged = True

    def mark_logged(self) -> None:
        """Mark this error as logged so log_exception_once skips it."""
        self.already_logged = True

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "error_type": self.error_type.value,
            "message": self.message,
            "user_friendly": self.user_friendly,
            "context": self.context.to_dict(),
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class ConfigurationError(PartyBotError):
    """Configuration is missing or invalid."""

    error_type = ErrorType.CONFIGURATION_ERROR


class PersistenceError(PartyBotError):
    """The party store could not be read or written."""

    error_type = ErrorType.PERSISTENCE_ERROR

    def __init__(self, message: str, context: ErrorContext | None = None, path: str | None = None, **kwargs: Any):
        super().__init__(message, context, **kwargs)
        self.path = path
        if path:
            self.details["path"] = path


class PartyOperationError(PartyBotError):
    """
    A party operation was refused because a precondition did not hold.

    These are expected outcomes of user actions, so they log at debug level.
    """

    log_level = "debug"
    default_message: str = ErrorMessages.INTERNAL_ERROR

    def __init__(
        self,
        message: str | None = None,
        context: ErrorContext | None = None,
        user_friendly: str | None = None,
        **kwargs: Any,
    ):
        text = message or self.default_message
        super().__init__(text, context, user_friendly=user_friendly or self.default_message, **kwargs)


class PartyNotFoundError(PartyOperationError):
    """The party id is unknown or the party was terminated."""

    error_type = ErrorType.NOT_FOUND
    default_message = ErrorMessages.NOT_FOUND


class UnknownTemplateError(PartyOperationError):
    error_type = ErrorType.UNKNOWN_TEMPLATE
    default_message = ErrorMessages.UNKNOWN_TEMPLATE


class NotLeaderError(PartyOperationError):
    """A leader-only operation was requested by someone else."""

    error_type = ErrorType.NOT_LEADER
    default_message = ErrorMessages.NOT_LEADER


class AlreadyAssignedError(PartyOperationError):
    error_type = ErrorType.ALREADY_ASSIGNED
    default_message = ErrorMessages.ALREADY_ASSIGNED


class NoCurrentRoleError(PartyOperationError):
    error_type = ErrorType.NO_CURRENT_ROLE
    default_message = ErrorMessages.NO_CURRENT_ROLE


class SlotTakenError(PartyOperationError):
    error_type = ErrorType.SLOT_TAKEN
    default_message = ErrorMessages.SLOT_TAKEN


class EmptySlotError(PartyOperationError):
    error_type = ErrorType.EMPTY_SLOT
    default_message = ErrorMessages.EMPTY_SLOT


class PartyFullError(PartyOperationError):
    error_type = ErrorType.PARTY_FULL
    default_message = ErrorMessages.PARTY_FULL


class InvalidTargetError(PartyOperationError):
    """Promotion target is not a platform member seated in the party."""

    error_type = ErrorType.INVALID_TARGET
    default_message = ErrorMessages.INVALID_TARGET


class InvalidSlotError(PartyOperationError):
    error_type = ErrorType.INVALID_SLOT
    default_message = ErrorMessages.INVALID_SLOT


class InvalidNameError(PartyOperationError):
    error_type = ErrorType.INVALID_NAME
    default_message = ErrorMessages.INVALID_NAME


class NothingToPingError(PartyOperationError):
    error_type = ErrorType.NOTHING_TO_PING
    default_message = ErrorMessages.NOTHING_TO_PING
