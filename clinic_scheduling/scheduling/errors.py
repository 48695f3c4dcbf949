"""Exceptions raised by the scheduling engine."""


class SchedulingError(Exception):
    """Base exception for scheduling errors."""

    pass


class InvalidRequestError(SchedulingError, ValueError):
    """Request rejected before any data was fetched."""

    pass


class SlotUnavailableError(SchedulingError):
    """Slot was taken between the availability check and the commit.

    Raised by the persistence layer when its exclusion constraint or
    serializable transaction rejects a booking. Retryable: the caller should
    search again against fresh data.
    """

    pass
