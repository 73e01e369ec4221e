"""Wiring for the booking core.

Builds one shared set of stores and services so every caller (request
handlers, the reminder process, tests) sees the same slot occupancy.
"""

from dataclasses import dataclass
from typing import Optional

from pickup_booking.appointments.booking import BookingCoordinator
from pickup_booking.appointments.lifecycle import LifecycleManager
from pickup_booking.appointments.reminders import ReminderScheduler
from pickup_booking.appointments.repository import AppointmentRepository
from pickup_booking.clock import Clock, SystemClock
from pickup_booking.notifications import LoggingNotifier, Notifier
from pickup_booking.scheduling.availability import AvailabilityEngine
from pickup_booking.scheduling.templates import SlotTemplateStore
from pickup_booking.zones import InMemoryZoneDirectory, ZoneDirectory


@dataclass
class BookingCore:
    templates: SlotTemplateStore
    repository: AppointmentRepository
    availability: AvailabilityEngine
    lifecycle: LifecycleManager
    booking: BookingCoordinator
    reminders: ReminderScheduler
    zones: ZoneDirectory
    notifier: Notifier
    clock: Clock


def build_core(
    clock: Optional[Clock] = None,
    notifier: Optional[Notifier] = None,
    zones: Optional[ZoneDirectory] = None,
    lock_timeout: Optional[float] = None,
) -> BookingCore:
    clock = clock or SystemClock()
    notifier = notifier or LoggingNotifier()
    zones = zones if zones is not None else InMemoryZoneDirectory()

    templates = SlotTemplateStore()
    repository = AppointmentRepository(lock_timeout=lock_timeout)
    availability = AvailabilityEngine(templates, repository, clock)
    lifecycle = LifecycleManager(repository, availability, notifier)
    booking = BookingCoordinator(repository, availability, lifecycle, zones, notifier)
    reminders = ReminderScheduler(lifecycle, repository, notifier)

    return BookingCore(
        templates=templates,
        repository=repository,
        availability=availability,
        lifecycle=lifecycle,
        booking=booking,
        reminders=reminders,
        zones=zones,
        notifier=notifier,
        clock=clock,
    )
