"""
Draft engine errors.

Validation failures go back to the caller that caused them and never change
state. Persistence failures are recoverable: the live state is kept and the
caller may retry the write. Internal errors mean the engine API was used out
of contract.
"""


class DraftError(Exception):
    """Base exception for all draft errors."""


class RoomNotFoundError(DraftError):
    """Raised when a room id is not registered."""


class ValidationError(DraftError):
    """Raised when a request is invalid for the current state."""

    def __init__(self, message: str, reason: str = 'invalid'):
        super().__init__(message)
        self.reason = reason


class AuthorizationError(ValidationError):
    """Raised when a participant's role does not permit the action."""

    def __init__(self, message: str):
        super().__init__(message, reason='unauthorized')


class InvalidPhaseError(ValidationError):
    """Raised when an action is requested in the wrong phase."""

    def __init__(self, message: str):
        super().__init__(message, reason='wrong_phase')


class BidRejectedError(ValidationError):
    """Raised when a bid fails validation against the current price."""


class PersistenceError(DraftError):
    """Raised when a write to the persistence collaborator fails."""


class InternalStateError(DraftError):
    """Raised when the engine reaches a state legitimate calls cannot produce."""
