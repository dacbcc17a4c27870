class BookingError(Exception):
    """Base exception for booking failures surfaced to the caller."""


class SlotNoLongerAvailable(BookingError):
    """The slot was free when rendered but is taken or blocked at insert time."""

    def __init__(self, message: str = 'This time is no longer available.', conflict=None):
        super().__init__(message)
        self.conflict = conflict


class BookingValidationError(BookingError):
    """The booking request can never succeed as submitted."""


class NotFoundError(BookingError):
    """A referenced provider, service or record does not exist."""


class InvalidStatusTransition(BookingError):
    """The appointment is no longer in a state that allows the change."""
