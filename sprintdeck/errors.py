"""
Exception taxonomy shared by the client core and the API server.

Reads fail with FetchFailed, writes with MutationFailed. An optimistic
rollback is not an error of its own: the MutationFailed that caused it
is still raised to the caller.
"""
from typing import Optional


class SprintDeckError(Exception):
    """Base class for all SprintDeck errors."""
    pass


class FetchFailed(SprintDeckError):
    """A read against the API did not succeed."""

    def __init__(self, message: str = "Failed to fetch"):
        super().__init__(message)
        self.message = message


class MutationFailed(SprintDeckError):
    """A write against the API did not succeed.

    ``message`` is the server-supplied explanation when there was one
    (the invite flow relies on this for its "user not found" text),
    otherwise a generic fallback.
    """

    def __init__(self, message: str = "Request failed", status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class ValidationError(SprintDeckError):
    """Raised when entity fields fail validation."""
    pass


class ConfigError(SprintDeckError):
    """Raised when configuration is invalid or incomplete."""
    pass


class DragError(SprintDeckError):
    """Raised when a drag gesture is driven out of order."""
    pass
