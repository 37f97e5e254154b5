"""Domain errors raised by the Trackit services.

Each error also derives from the closest built-in exception so callers that
already handle ``ValueError``/``PermissionError`` keep working.
"""
from __future__ import annotations


class TrackitError(Exception):
    """Base class for all domain errors."""


class InvalidInputError(TrackitError, ValueError):
    """Raised for blank or malformed arguments before any I/O happens."""


class AlreadyExistsError(TrackitError, ValueError):
    """Raised when a unique key (the normalized username) is already taken."""


class NotFoundError(TrackitError, LookupError):
    """Raised when a work order id does not exist."""


class NotOwnerError(TrackitError, PermissionError):
    """Raised when the acting user does not own the work order."""

    def __init__(self, message: str = "Not permitted to modify this work order") -> None:
        super().__init__(message)


class InvalidTransitionError(TrackitError):
    """Raised when a lifecycle transition is not allowed."""


class AlreadyClosedError(InvalidTransitionError):
    """Raised when closing a work order that is already closed."""


class NotConfiguredError(TrackitError, RuntimeError):
    """Raised when an optional collaborator needed by the operation is missing."""


class NotificationDeliveryError(TrackitError, RuntimeError):
    """Raised by notification gateways when a message could not be delivered."""


__all__ = [
    "TrackitError",
    "InvalidInputError",
    "AlreadyExistsError",
    "NotFoundError",
    "NotOwnerError",
    "InvalidTransitionError",
    "AlreadyClosedError",
    "NotConfiguredError",
    "NotificationDeliveryError",
]
