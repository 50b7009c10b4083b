"""
Domain-specific exception hierarchy for the booking engine.

Expected business outcomes (closed day, no slots, conflicting slot) are
returned as values. These exceptions cover malformed input and failures of the
collaborators around the engine.
"""


class SlotkeeperError(Exception):
    """Base class for all application-level errors."""


class InvalidRequestError(SlotkeeperError):
    """Raised when a caller passes malformed or missing input."""


class ProviderNotFoundError(SlotkeeperError):
    """Raised when a provider (or its shop) cannot be resolved."""


class PersistenceError(SlotkeeperError):
    """Raised when the storage layer cannot read or commit data."""


class StorageAPIError(PersistenceError):
    """Raised when the hosted database API returns an unusable response."""


class BookingConflictError(PersistenceError):
    """
    Raised by a store when an insert loses the race for an interval.

    Callers treat it like a ``slot_conflict`` rejection: refresh the available
    slots and let the user pick again.
    """
