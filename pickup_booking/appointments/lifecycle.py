"""
Appointment lifecycle: explicit transition table and the operations on it.

Every status change goes through ``TRANSITIONS``. A trigger with no row
for the current status is rejected with the list of triggers that are
allowed, so terminal appointments (completed, cancelled, no-show) can
never move again.

    pending ──CONFIRM──> confirmed ──START_COLLECTION──> in-progress ──COMPLETE──> completed
       │                   │  │  └──────────COMPLETE─────────────────────────────────┘
       │                   │  └──MARK_NO_SHOW──> no-show
       └───CANCEL──────────┴──────CANCEL (also from in-progress)──> cancelled
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from pickup_booking.appointments.repository import AppointmentRepository
from pickup_booking.clock import Clock
from pickup_booking.config import settings
from pickup_booking.errors import (
    AuthorizationError,
    AvailabilityCode,
    AvailabilityError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from pickup_booking.logging_context import get_request_logger, request_scope
from pickup_booking.notifications import LoggingNotifier, Notifier, notify_safely
from pickup_booking.scheduling.availability import AvailabilityEngine
from pickup_booking.schemas.appointment_schema import (
    ACTIVE_STATUSES,
    AppointmentRecord,
    AppointmentStatus,
    BookingRequest,
    Cancellation,
    StatusChange,
    StatusStats,
)
from pickup_booking.schemas.slot_schema import TimeSlot
from pickup_booking.utils import describe_minutes, ensure_aware

logger = get_request_logger(__name__)

DEFAULT_CANCEL_REASON = "No reason provided"


def lead_time_message() -> str:
    lead = describe_minutes(settings.booking.lead_time_minutes)
    return f"Appointment must be at least {lead} in the future"


class LifecycleTrigger(str, Enum):
    """Events that cause status transitions."""
    CONFIRM = "confirm"
    START_COLLECTION = "start_collection"
    COMPLETE = "complete"
    CANCEL = "cancel"
    MARK_NO_SHOW = "mark_no_show"


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""
    from_status: AppointmentStatus
    to_status: AppointmentStatus
    trigger: LifecycleTrigger


TRANSITIONS: list[Transition] = [
    # --- Assignment ---
    Transition(AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED,
               LifecycleTrigger.CONFIRM),

    # --- Collection ---
    Transition(AppointmentStatus.CONFIRMED, AppointmentStatus.IN_PROGRESS,
               LifecycleTrigger.START_COLLECTION),
    Transition(AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED,
               LifecycleTrigger.COMPLETE),
    Transition(AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED,
               LifecycleTrigger.COMPLETE),

    # --- Cancellation ---
    Transition(AppointmentStatus.PENDING, AppointmentStatus.CANCELLED,
               LifecycleTrigger.CANCEL),
    Transition(AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED,
               LifecycleTrigger.CANCEL),
    Transition(AppointmentStatus.IN_PROGRESS, AppointmentStatus.CANCELLED,
               LifecycleTrigger.CANCEL),

    # --- Missed pickup ---
    Transition(AppointmentStatus.CONFIRMED, AppointmentStatus.NO_SHOW,
               LifecycleTrigger.MARK_NO_SHOW),
]


def valid_triggers(status: AppointmentStatus) -> list[LifecycleTrigger]:
    """Return all triggers valid from ``status``."""
    return [t.trigger for t in TRANSITIONS if t.from_status == status]


def next_status(status: AppointmentStatus, trigger: LifecycleTrigger) -> AppointmentStatus:
    """
    Resolve a transition.

    Raises:
        InvalidTransitionError: If no transition exists for this pair.
    """
    for t in TRANSITIONS:
        if t.from_status == status and t.trigger == trigger:
            return t.to_status

    valid = [t.value for t in valid_triggers(status)]
    raise InvalidTransitionError(
        f"Cannot {trigger.value.replace('_', ' ')} an appointment that is "
        f"'{status.value}'. Valid actions: {valid}"
    )


def _assign(record: AppointmentRecord, **fields: Any) -> None:
    """Set fields with model validation, surfacing failures as ValidationError."""
    try:
        for name, value in fields.items():
            setattr(record, name, value)
    except PydanticValidationError as exc:
        raise ValidationError(exc.errors()[0]["msg"], cause=exc) from None


class LifecycleManager:
    """
    Applies lifecycle operations to stored appointments.

    Each operation loads the record under its appointment lock, applies one
    transition, persists, and only then sends a best-effort notification.
    """

    def __init__(
        self,
        repository: AppointmentRepository,
        availability: AvailabilityEngine,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._repository = repository
        self._availability = availability
        self._notifier = notifier or LoggingNotifier()

    @property
    def clock(self) -> Clock:
        return self._availability.clock

    # --- creation ---

    def create(self, resident: str, data: BookingRequest) -> AppointmentRecord:
        """Build a new pending record. Persisting it is the caller's job."""
        now = self.clock.now()
        if data.appointment_date < self._availability.lead_time_cutoff():
            raise AvailabilityError(lead_time_message(), AvailabilityCode.TOO_SOON)

        return AppointmentRecord(
            id=self._repository.next_id(),
            resident=resident,
            zone=data.zone,
            appointment_date=data.appointment_date,
            time_slot=data.time_slot,
            waste_types=data.waste_types,
            estimated_amount=data.estimated_amount,
            special_instructions=data.special_instructions,
            booking_source=data.booking_source,
            status=AppointmentStatus.PENDING,
            status_history=[StatusChange(status=AppointmentStatus.PENDING, at=now)],
            created_at=now,
            updated_at=now,
        )

    # --- helpers ---

    def _load(self, appointment_id: str) -> AppointmentRecord:
        record = self._repository.get(appointment_id)
        if record is None:
            raise NotFoundError("Appointment not found")
        return record

    @staticmethod
    def _check_owner(record: AppointmentRecord, resident: Optional[str]) -> None:
        if resident is not None and record.resident != resident:
            logger.warning("Resident %s denied access to %s", resident, record.id)
            raise AuthorizationError()

    def _apply(self, record: AppointmentRecord, trigger: LifecycleTrigger) -> None:
        old_status = record.status
        now = self.clock.now()
        record.status = next_status(old_status, trigger)
        record.status_history.append(
            StatusChange(status=record.status, at=now, trigger=trigger.value)
        )
        record.updated_at = now
        logger.debug(
            "Status transition %s: %s -> %s (trigger: %s)",
            record.id, old_status.value, record.status.value, trigger.value,
        )

    def _transition(
        self,
        appointment_id: str,
        trigger: LifecycleTrigger,
        resident: Optional[str] = None,
        **fields: Any,
    ) -> AppointmentRecord:
        with request_scope(actor=resident), self._repository.locked(
            ("appointment", appointment_id)
        ):
            record = self._load(appointment_id)
            self._check_owner(record, resident)
            self._apply(record, trigger)
            if fields:
                _assign(record, **fields)
            updated = self._repository.update(record)
        logger.info("Appointment %s is now %s", updated.id, updated.status.value)
        return updated

    # --- lifecycle operations ---

    def confirm(
        self,
        appointment_id: str,
        vehicle: Optional[str] = None,
        driver: Optional[str] = None,
    ) -> AppointmentRecord:
        fields = {}
        if vehicle:
            fields["assigned_vehicle"] = vehicle
        if driver:
            fields["assigned_driver"] = driver
        updated = self._transition(appointment_id, LifecycleTrigger.CONFIRM, **fields)
        notify_safely(self._notifier, "confirmed", updated)
        return updated

    def start_collection(self, appointment_id: str) -> AppointmentRecord:
        return self._transition(appointment_id, LifecycleTrigger.START_COLLECTION)

    def complete(
        self, appointment_id: str, actual_amount: float, notes: Optional[str] = None
    ) -> AppointmentRecord:
        if actual_amount is None or actual_amount < 0:
            raise ValidationError("Actual amount cannot be negative")
        updated = self._transition(
            appointment_id,
            LifecycleTrigger.COMPLETE,
            actual_amount=actual_amount,
            completion_notes=notes,
        )
        notify_safely(self._notifier, "completed", updated)
        return updated

    def cancel(
        self,
        appointment_id: str,
        cancelled_by: str,
        reason: Optional[str] = None,
        *,
        resident: Optional[str] = None,
    ) -> AppointmentRecord:
        """Cancel a pending, confirmed or in-progress appointment.

        When ``resident`` is given the appointment must belong to them.
        """
        try:
            cancellation = Cancellation(
                reason=(reason or "").strip() or DEFAULT_CANCEL_REASON,
                cancelled_by=cancelled_by,
                cancelled_at=self.clock.now(),
            )
        except PydanticValidationError as exc:
            raise ValidationError(exc.errors()[0]["msg"], cause=exc) from None

        with request_scope(actor=cancelled_by):
            updated = self._transition(
                appointment_id, LifecycleTrigger.CANCEL, resident, cancellation=cancellation
            )
        notify_safely(self._notifier, "cancellation", updated)
        return updated

    def mark_no_show(self, appointment_id: str) -> AppointmentRecord:
        return self._transition(appointment_id, LifecycleTrigger.MARK_NO_SHOW)

    def reschedule(
        self,
        appointment_id: str,
        resident: Optional[str],
        new_date: Optional[datetime] = None,
        new_time_slot: Optional[Union[TimeSlot, dict[str, str]]] = None,
    ) -> AppointmentRecord:
        """
        Move a pending or confirmed appointment to another date and/or slot.

        Runs the same checks as a fresh booking and commits under the target
        slot's lock. The appointment's own seat is not counted against it.
        """
        if new_date is None and new_time_slot is None:
            raise ValidationError("A new date or time slot is required to reschedule")
        if isinstance(new_time_slot, dict):
            try:
                new_time_slot = TimeSlot.model_validate(new_time_slot)
            except PydanticValidationError as exc:
                raise ValidationError(exc.errors()[0]["msg"], cause=exc) from None

        with request_scope(actor=resident), self._repository.locked(
            ("appointment", appointment_id)
        ):
            record = self._load(appointment_id)
            self._check_owner(record, resident)
            if not record.is_active:
                raise ValidationError("This appointment cannot be rescheduled")

            target_date = ensure_aware(new_date) if new_date is not None else record.appointment_date
            target_slot = new_time_slot or record.time_slot

            if target_date < self._availability.lead_time_cutoff():
                raise AvailabilityError(lead_time_message(), AvailabilityCode.TOO_SOON)
            self._availability.require_slot(
                record.zone, target_date, target_slot, exclude_appointment_id=record.id
            )

            with self._availability.hold_slot(
                record.zone, target_date, target_slot, exclude_appointment_id=record.id
            ):
                _assign(
                    record,
                    appointment_date=target_date,
                    time_slot=target_slot,
                    reminder_sent=False,
                    updated_at=self.clock.now(),
                )
                updated = self._repository.update(record)

        logger.info(
            "Appointment %s rescheduled to %s %s",
            updated.id, updated.appointment_date.date(), updated.time_slot.label(),
        )
        notify_safely(self._notifier, "update", updated)
        return updated

    def get_details(self, appointment_id: str, resident: str) -> AppointmentRecord:
        record = self._load(appointment_id)
        self._check_owner(record, resident)
        return record

    # --- queries ---

    def upcoming_for_resident(self, resident: str, limit: int = 10) -> list[AppointmentRecord]:
        """Pending or confirmed appointments from now on, soonest first."""
        now = self.clock.now()
        upcoming = [
            record
            for record in self._repository.find_by_resident(resident, ACTIVE_STATUSES)
            if record.appointment_date >= now
        ]
        upcoming.sort(key=lambda record: record.appointment_date)
        return upcoming[:limit]

    def past_for_resident(self, resident: str, limit: int = 10) -> list[AppointmentRecord]:
        """Appointments already dated in the past or finished, most recent first."""
        now = self.clock.now()
        past = [
            record
            for record in self._repository.find_by_resident(resident)
            if record.appointment_date < now or record.is_terminal
        ]
        past.sort(key=lambda record: record.appointment_date, reverse=True)
        return past[:limit]

    def by_zone(
        self,
        zone: str,
        start_date: date,
        end_date: date,
        statuses: Optional[list[AppointmentStatus]] = None,
    ) -> list[AppointmentRecord]:
        return self._repository.find_by_zone(zone, start_date, end_date, statuses)

    def by_status(
        self,
        status: AppointmentStatus,
        zone: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[AppointmentRecord]:
        records = sorted(
            self._repository.find_by_status(status, zone),
            key=lambda record: record.appointment_date,
        )
        return records[:limit] if limit is not None else records

    def needs_reminder(self, hours_ahead: Optional[int] = None) -> list[AppointmentRecord]:
        """Confirmed, unreminded appointments in ``[now+H, now+H+1h)``."""
        hours = settings.reminders.hours_ahead if hours_ahead is None else hours_ahead
        window_start = self.clock.now() + timedelta(hours=hours)
        return self._repository.find_needing_reminders(
            window_start, window_start + timedelta(hours=1)
        )

    def resident_statistics(self, resident: str) -> dict[str, StatusStats]:
        """Per-status count and estimated/actual totals for one resident."""
        stats: dict[str, StatusStats] = {}
        for record in self._repository.find_by_resident(resident):
            entry = stats.setdefault(record.status.value, StatusStats())
            entry.count += 1
            entry.total_estimated += record.estimated_amount
            entry.total_actual += record.actual_amount or 0.0
        return stats
