"""
Booking coordinator.

Validates a booking request end to end and creates the appointment:

    1. appointment date is at least the lead time away
    2. the slot is open (specific reason on rejection)
    3. the resident is under the active-appointment cap
    4. under the resident and slot locks, quota and occupancy are
       re-checked and the pending record is inserted
    5. a confirmation is sent, best effort

Nothing is persisted unless all of 1-4 pass.
"""

from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from pickup_booking.appointments.lifecycle import LifecycleManager
from pickup_booking.appointments.repository import AppointmentRepository
from pickup_booking.config import settings
from pickup_booking.errors import NotFoundError, QuotaExceededError, ValidationError
from pickup_booking.logging_context import get_request_logger, new_request_id, request_scope
from pickup_booking.notifications import LoggingNotifier, Notifier, notify_safely
from pickup_booking.scheduling.availability import AvailabilityEngine
from pickup_booking.schemas.appointment_schema import AppointmentRecord, BookingRequest
from pickup_booking.zones import ZoneDirectory

logger = get_request_logger(__name__)


def _quota_message() -> str:
    return f"Maximum {settings.booking.max_active_appointments} active appointments allowed"


def parse_booking_request(data: Union[BookingRequest, dict[str, Any]]) -> BookingRequest:
    """Validate raw request data, surfacing the first problem verbatim."""
    if isinstance(data, BookingRequest):
        return data
    try:
        return BookingRequest.model_validate(data)
    except PydanticValidationError as exc:
        error = exc.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        message = error["msg"].removeprefix("Value error, ")
        raise ValidationError(
            f"{location}: {message}" if location else message, cause=exc
        ) from None


class BookingCoordinator:
    """Entry point for residents reserving a pickup slot."""

    def __init__(
        self,
        repository: AppointmentRepository,
        availability: AvailabilityEngine,
        lifecycle: LifecycleManager,
        zones: ZoneDirectory,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._repository = repository
        self._availability = availability
        self._lifecycle = lifecycle
        self._zones = zones
        self._notifier = notifier or LoggingNotifier()

    def book(
        self, resident: str, data: Union[BookingRequest, dict[str, Any]]
    ) -> AppointmentRecord:
        """
        Reserve a slot for ``resident``.

        Raises:
            ValidationError: Malformed request.
            NotFoundError: Unknown zone.
            AvailabilityError: Too soon, closed date, unknown slot, full, or
                lost a race for the last seat.
            QuotaExceededError: Resident already holds the maximum number of
                pending/confirmed appointments.
        """
        with request_scope(actor=resident, request_id=new_request_id()):
            return self._book(resident, data)

    def _book(
        self, resident: str, data: Union[BookingRequest, dict[str, Any]]
    ) -> AppointmentRecord:
        request = parse_booking_request(data)
        if not self._zones.exists(request.zone):
            raise NotFoundError("Zone not found")

        logger.info(
            "Booking request from %s for zone %s on %s %s",
            resident, request.zone, request.appointment_date.date(), request.time_slot.label(),
        )

        # (1) lead time, checked while building the record
        record = self._lifecycle.create(resident, request)

        # (2) slot open
        self._availability.require_slot(request.zone, request.appointment_date, request.time_slot)

        # (3) admission cap
        self._check_quota(resident)

        # (4) re-validate and insert atomically for this resident and slot
        with self._repository.locked(("resident", resident)):
            self._check_quota(resident)
            with self._availability.hold_slot(
                request.zone, request.appointment_date, request.time_slot
            ) as seats_left:
                stored = self._repository.insert(record)

        logger.info(
            "Appointment %s booked for %s (%d seat(s) were left)",
            stored.id, resident, seats_left,
        )

        # (5) best effort
        notify_safely(self._notifier, "confirmation", stored)
        return stored

    def _check_quota(self, resident: str) -> None:
        active = self._repository.count_active_by_resident(resident)
        if active >= settings.booking.max_active_appointments:
            logger.info("Resident %s rejected at quota (%d active)", resident, active)
            raise QuotaExceededError(_quota_message())
