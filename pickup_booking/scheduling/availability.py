"""
Availability engine.

Merges a zone's weekly template with holiday and special-date overrides and
the live count of booked appointments. Nothing here is cached: occupancy
changes between calls, and writers re-validate under the slot lock.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Iterator, Optional, Union

from pickup_booking.appointments.repository import AppointmentRepository, slot_lock_key
from pickup_booking.clock import Clock, SystemClock
from pickup_booking.config import settings
from pickup_booking.errors import AvailabilityCode, AvailabilityError
from pickup_booking.scheduling.templates import (
    INACTIVE_TEMPLATE_REASON,
    SlotTemplateStore,
    find_slot,
    get_slots_for_date,
    resolve_day,
)
from pickup_booking.schemas.slot_schema import (
    AvailabilitySummary,
    DateAvailability,
    DateStatus,
    NextSlot,
    SlotAvailability,
    SlotCheck,
    TimeSlot,
)
from pickup_booking.utils import calendar_date, day_of_week, describe_minutes, ensure_aware

logger = logging.getLogger(__name__)

SLOT_NOT_FOUND_REASON = "This time slot is not available"
FULLY_BOOKED_REASON = "This time slot is fully booked"
CONFLICT_REASON = "This time slot was just taken. Please re-check availability and try again"


def too_soon_reason() -> str:
    lead = describe_minutes(settings.booking.lead_time_minutes)
    return f"Cannot book appointments in the past or within {lead}"


class AvailabilityEngine:
    """Single source of truth for remaining slot capacity."""

    def __init__(
        self,
        templates: SlotTemplateStore,
        appointments: AppointmentRepository,
        clock: Optional[Clock] = None,
    ) -> None:
        self._templates = templates
        self._appointments = appointments
        self._clock = clock or SystemClock()

    @property
    def clock(self) -> Clock:
        return self._clock

    def lead_time_cutoff(self) -> datetime:
        """Earliest bookable instant."""
        return self._clock.now() + timedelta(minutes=settings.booking.lead_time_minutes)

    def get_available_slots(self, zone: str, day: Union[date, datetime]) -> list[SlotAvailability]:
        """Every configured slot for the date with its live occupancy."""
        day = calendar_date(day)
        template = self._templates.get_template(zone, day_of_week(day))
        if template is None:
            return []

        results = []
        for slot in get_slots_for_date(template, day):
            booked = self._appointments.count_by_slot(zone, day, slot.start, slot.end)
            results.append(SlotAvailability(
                start=slot.start,
                end=slot.end,
                capacity=slot.capacity,
                booked=booked,
                available=max(slot.capacity - booked, 0),
                is_available=booked < slot.capacity,
            ))
        return results

    def effective_capacity(self, zone: str, day: date, time_slot: TimeSlot) -> Optional[int]:
        """Capacity of the slot on this date, or None when it cannot be booked at all."""
        template = self._templates.get_template(zone, day_of_week(day))
        if template is None:
            return None
        resolution = resolve_day(template, day)
        if not resolution.is_available:
            return None
        slot = find_slot(template, time_slot.start, time_slot.end)
        if slot is None:
            return None
        if resolution.capacity_override is not None:
            return resolution.capacity_override
        return slot.capacity

    def check_slot_availability(
        self,
        zone: str,
        appointment_date: datetime,
        time_slot: TimeSlot,
        *,
        exclude_appointment_id: Optional[str] = None,
    ) -> SlotCheck:
        """
        Check one requested slot, returning the specific rejection reason.

        Order: lead time, template, holiday or special-date closure, slot
        exists and is active, capacity. ``exclude_appointment_id`` leaves an
        appointment's own seat out of the count when it is being moved.
        """
        appointment_date = ensure_aware(appointment_date)
        if appointment_date < self.lead_time_cutoff():
            return SlotCheck(
                is_available=False, code=AvailabilityCode.TOO_SOON, reason=too_soon_reason()
            )

        day = calendar_date(appointment_date)
        template = self._templates.get_template(zone, day_of_week(day))
        if template is None:
            return SlotCheck(
                is_available=False,
                code=AvailabilityCode.NOT_CONFIGURED,
                reason=INACTIVE_TEMPLATE_REASON,
            )

        resolution = resolve_day(template, day)
        if not resolution.is_available:
            return SlotCheck(is_available=False, code=resolution.code, reason=resolution.reason)

        slot = find_slot(template, time_slot.start, time_slot.end)
        if slot is None:
            return SlotCheck(
                is_available=False,
                code=AvailabilityCode.SLOT_NOT_FOUND,
                reason=SLOT_NOT_FOUND_REASON,
            )

        capacity = (
            resolution.capacity_override
            if resolution.capacity_override is not None
            else slot.capacity
        )
        booked = self._appointments.count_by_slot(
            zone, day, slot.start, slot.end, exclude_id=exclude_appointment_id
        )
        if booked >= capacity:
            return SlotCheck(
                is_available=False,
                code=AvailabilityCode.FULLY_BOOKED,
                reason=FULLY_BOOKED_REASON,
                capacity=capacity,
                booked=booked,
                available=0,
            )

        return SlotCheck(
            is_available=True,
            capacity=capacity,
            booked=booked,
            available=capacity - booked,
        )

    def require_slot(
        self,
        zone: str,
        appointment_date: datetime,
        time_slot: TimeSlot,
        *,
        exclude_appointment_id: Optional[str] = None,
    ) -> SlotCheck:
        """``check_slot_availability`` that raises with the rejection reason."""
        check = self.check_slot_availability(
            zone, appointment_date, time_slot, exclude_appointment_id=exclude_appointment_id
        )
        if not check.is_available:
            raise AvailabilityError(check.reason or SLOT_NOT_FOUND_REASON, check.code)
        return check

    @contextmanager
    def hold_slot(
        self,
        zone: str,
        appointment_date: datetime,
        time_slot: TimeSlot,
        *,
        exclude_appointment_id: Optional[str] = None,
    ) -> Iterator[int]:
        """
        Lock the slot and re-count its occupancy before the caller writes.

        Yields the seats still free. The caller's insert or update must happen
        inside the block; the lock is released when the block exits.

        Raises:
            AvailabilityError: CONFLICT when the seat was taken since the
                caller's check, BUSY when the lock could not be acquired.
        """
        day = calendar_date(ensure_aware(appointment_date))
        key = slot_lock_key(zone, day, time_slot.start, time_slot.end)
        with self._appointments.locked(key):
            capacity = self.effective_capacity(zone, day, time_slot)
            booked = self._appointments.count_by_slot(
                zone, day, time_slot.start, time_slot.end, exclude_id=exclude_appointment_id
            )
            if capacity is None or booked >= capacity:
                logger.warning(
                    "Slot %s %s %s taken at commit (booked %d, capacity %s)",
                    zone, day, time_slot.label(), booked, capacity,
                )
                raise AvailabilityError(CONFLICT_REASON, AvailabilityCode.CONFLICT)
            yield capacity - booked

    def get_available_dates(
        self, zone: str, horizon_days: Optional[int] = None
    ) -> list[DateAvailability]:
        """Dates from tomorrow through the horizon with at least one open slot."""
        horizon = (
            settings.calendar.available_dates_horizon_days
            if horizon_days is None
            else horizon_days
        )
        today = self._clock.now().date()

        results = []
        for offset in range(1, horizon + 1):
            day = today + timedelta(days=offset)
            open_slots = [slot for slot in self.get_available_slots(zone, day) if slot.is_available]
            if open_slots:
                results.append(DateAvailability(
                    date=day,
                    day_of_week=day_of_week(day),
                    available_slots=len(open_slots),
                ))
        return results

    def find_next_available_slot(
        self, zone: str, after_date: Optional[Union[date, datetime]] = None
    ) -> Optional[NextSlot]:
        """First open slot on the days following ``after_date`` (default: today)."""
        start = calendar_date(after_date) if after_date is not None else self._clock.now().date()

        for offset in range(1, settings.calendar.next_slot_search_days + 1):
            day = start + timedelta(days=offset)
            for slot in self.get_available_slots(zone, day):
                if slot.is_available:
                    return NextSlot(
                        date=day,
                        slot=TimeSlot(start=slot.start, end=slot.end),
                        available=slot.available,
                    )

        logger.debug(
            "No open slot in zone %s within %d days of %s",
            zone, settings.calendar.next_slot_search_days, start,
        )
        return None

    def get_availability_summary(
        self, zone: str, start_date: date, end_date: date
    ) -> AvailabilitySummary:
        """Open / full / closed breakdown for every date in the range."""
        summary = AvailabilitySummary()
        day = calendar_date(start_date)
        end = calendar_date(end_date)

        while day <= end:
            summary.total_days += 1
            template = self._templates.get_template(zone, day_of_week(day))
            if template is None or not resolve_day(template, day).is_available:
                summary.closed_days += 1
            else:
                open_slots = sum(
                    1 for slot in self.get_available_slots(zone, day) if slot.is_available
                )
                if open_slots:
                    summary.available_days += 1
                else:
                    summary.fully_booked_days += 1
                summary.dates.append(DateStatus(
                    date=day,
                    status="available" if open_slots else "full",
                    available_slots=open_slots,
                ))
            day += timedelta(days=1)

        return summary
