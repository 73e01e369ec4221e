"""Error taxonomy for booking, availability and lifecycle operations.

Messages on ValidationError and AvailabilityError are shown to residents
as-is. AuthorizationError never carries detail about the target record.
"""

from enum import Enum


class BookingError(Exception):
    """Base exception for booking core failures."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ValidationError(BookingError):
    """Malformed input: bad time format, amount out of range, missing waste type."""


class InvalidTransitionError(ValidationError):
    """Raised when a lifecycle trigger is not valid from the current status."""


class AvailabilityCode(str, Enum):
    """Machine-readable reason attached to every availability rejection."""

    TOO_SOON = "too_soon"
    HOLIDAY = "holiday"
    DATE_UNAVAILABLE = "date_unavailable"
    NOT_CONFIGURED = "not_configured"
    SLOT_NOT_FOUND = "slot_not_found"
    FULLY_BOOKED = "fully_booked"
    CONFLICT = "conflict"
    BUSY = "busy"


class AvailabilityError(BookingError):
    """The requested date or slot cannot take another booking."""

    def __init__(
        self,
        message: str,
        code: AvailabilityCode,
        *,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause=cause)
        self.code = code


class QuotaExceededError(BookingError):
    """Resident already holds the maximum number of active appointments."""


class AuthorizationError(BookingError):
    """Actor does not own the target appointment."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFoundError(BookingError):
    """Unknown appointment or zone."""
