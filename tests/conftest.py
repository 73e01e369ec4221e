"""Shared test fixtures and helpers."""

from datetime import date, datetime, timezone
from typing import Any

import pytest

from pickup_booking.clock import FrozenClock
from pickup_booking.container import build_core
from pickup_booking.schemas.slot_schema import Slot, SlotTemplate
from pickup_booking.zones import InMemoryZoneDirectory

# Monday morning
NOW = datetime(2025, 10, 20, 8, 0, tzinfo=timezone.utc)
ZONE = "zone-north"

TOMORROW = date(2025, 10, 21)  # Tuesday
NEXT_MONDAY = date(2025, 10, 27)
NEXT_SUNDAY = date(2025, 10, 26)


class RecordingNotifier:
    """Notifier that remembers every send as (kind, appointment id)."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.sent]

    def send_confirmation(self, appointment):
        self.sent.append(("confirmation", appointment.id))

    def send_update(self, appointment):
        self.sent.append(("update", appointment.id))

    def send_cancellation(self, appointment):
        self.sent.append(("cancellation", appointment.id))

    def send_reminder(self, appointment):
        self.sent.append(("reminder", appointment.id))

    def send_confirmed(self, appointment):
        self.sent.append(("confirmed", appointment.id))

    def send_completed(self, appointment):
        self.sent.append(("completed", appointment.id))


class FailingNotifier:
    """Notifier whose gateway is always down."""

    def __init__(self):
        self.attempts = 0

    def _fail(self, appointment):
        self.attempts += 1
        raise RuntimeError("notification gateway unavailable")

    send_confirmation = _fail
    send_update = _fail
    send_cancellation = _fail
    send_reminder = _fail
    send_confirmed = _fail
    send_completed = _fail


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def core(clock, notifier):
    return build_core(
        clock=clock,
        notifier=notifier,
        zones=InMemoryZoneDirectory([ZONE]),
        lock_timeout=2.0,
    )


@pytest.fixture
def seeded_core(core):
    """Core with the default weekly slots for ZONE."""
    core.templates.initialize_default_slots(ZONE)
    return core


def at(day: date, hhmm: str = "09:00") -> datetime:
    """Aware UTC datetime on ``day`` at ``hhmm``."""
    hour, minute = (int(part) for part in hhmm.split(":"))
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def make_request(
    day: date,
    start: str = "09:00",
    end: str = "10:00",
    zone: str = ZONE,
    **overrides: Any,
) -> dict[str, Any]:
    """Raw booking request data with sensible defaults."""
    data = {
        "zone": zone,
        "appointment_date": at(day, start),
        "time_slot": {"start": start, "end": end},
        "waste_types": ["recyclable"],
        "estimated_amount": 12.5,
    }
    data.update(overrides)
    return data


def single_slot_template(
    day_of_week: int,
    start: str = "09:00",
    end: str = "10:00",
    capacity: int = 2,
    zone: str = ZONE,
) -> SlotTemplate:
    return SlotTemplate(
        zone=zone,
        day_of_week=day_of_week,
        slots=[Slot(start=start, end=end, capacity=capacity)],
    )
