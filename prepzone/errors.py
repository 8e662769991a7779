"""
Exception hierarchy and user-facing error messages for the practice engine.
"""
from typing import Tuple


STATUS_OFFLINE = "offline"
STATUS_RATE_LIMITED = "rate_limited"
STATUS_GENERIC = "generic"

RATE_LIMITED_MESSAGE = "The AI service is currently busy. Please wait a few moments and try again."
SCORE_NOT_SAVED_MESSAGE = "Could not save your quiz score. Your results are shown but may not be saved."


class PrepZoneError(Exception):
    """Base exception for practice engine errors."""
    pass


class NetworkUnavailableError(PrepZoneError):
    """Raised when no connectivity is available before a call is attempted."""
    pass


class GenerationError(PrepZoneError):
    """Raised when the question generator fails."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class RateLimitedError(GenerationError):
    """Raised when the generator reports upstream throttling."""
    pass


class GenerationFormatError(GenerationError):
    """Raised when generator output cannot be parsed into questions."""
    pass


class PersistenceError(PrepZoneError):
    """Raised when the score store cannot read or write."""
    pass


class DuplicateScoreError(PersistenceError):
    """Raised when a daily score already exists for the user and day."""
    pass


class SessionError(PrepZoneError):
    """Base exception for session state machine errors."""
    pass


class InvalidSessionStateError(SessionError):
    """Raised when an operation is not allowed in the current state."""
    pass


class EmptyAnswerError(SessionError):
    """Raised when an empty answer is submitted."""
    pass


class CategoryAlreadyCompletedError(SessionError):
    """Raised when a category was already completed today."""
    pass


class InvalidConfigError(SessionError):
    """Raised when a standard session configuration is incomplete."""
    pass


def is_rate_limit_signature(status: int = None, message: str = "") -> bool:
    """Check whether a failure looks like upstream rate limiting."""
    if status == 429:
        return True
    text = message or ""
    return "429" in text or "RESOURCE_EXHAUSTED" in text.upper()


def describe_error(error: Exception, operation: str) -> Tuple[str, str]:
    """
    Convert an error into a status kind and a user-facing message.

    Args:
        error: The exception that occurred
        operation: Short description of what was attempted, e.g. "start the daily quiz"

    Returns:
        Tuple of (status kind, user message)
    """
    if isinstance(error, NetworkUnavailableError):
        return STATUS_OFFLINE, f"You must be online to {operation}."

    if isinstance(error, RateLimitedError) or (
        isinstance(error, GenerationError) and is_rate_limit_signature(error.status, str(error))
    ):
        return STATUS_RATE_LIMITED, RATE_LIMITED_MESSAGE

    if isinstance(error, GenerationFormatError):
        return STATUS_GENERIC, str(error)

    if isinstance(error, SessionError):
        return STATUS_GENERIC, str(error)

    return STATUS_GENERIC, f"Failed to {operation}: {error}. Please try again later."
