"""Slot template and availability data models."""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from pickup_booking.config import settings
from pickup_booking.errors import AvailabilityCode
from pickup_booking.utils import hhmm_to_minutes, is_valid_hhmm

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


class TimeSlot(BaseModel):
    """A start/end time-of-day window in 24-hour ``HH:MM``."""
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def _check_format(cls, value: str) -> str:
        value = value.strip()
        if not is_valid_hhmm(value):
            raise ValueError(f"Invalid time format {value!r} (use HH:MM)")
        return value

    @model_validator(mode="after")
    def _check_order(self) -> "TimeSlot":
        if hhmm_to_minutes(self.end) <= hhmm_to_minutes(self.start):
            raise ValueError(
                f"Invalid slot: {self.start}-{self.end}. End time must be after start time."
            )
        return self

    @property
    def duration_minutes(self) -> int:
        return hhmm_to_minutes(self.end) - hhmm_to_minutes(self.start)

    def overlaps(self, other: "TimeSlot") -> bool:
        return self.start < other.end and self.end > other.start

    def label(self) -> str:
        return f"{self.start}-{self.end}"


class Slot(TimeSlot):
    """One bookable window in a weekly template."""
    capacity: int = Field(
        default=settings.calendar.default_slot_capacity,
        ge=1,
        le=settings.calendar.max_slot_capacity,
    )
    active: bool = True


class SpecialDate(BaseModel):
    """Per-date override of availability or capacity, distinct from a holiday."""
    date: date
    capacity_override: Optional[int] = Field(
        default=None, ge=0, le=settings.calendar.max_slot_capacity
    )
    is_available: bool = True
    reason: Optional[str] = Field(default=None, max_length=200)


class SlotTemplate(BaseModel):
    """Recurring weekly slot definition for one zone and day of week.

    ``day_of_week`` runs 0 = Sunday through 6 = Saturday.
    """
    zone: str = Field(min_length=1)
    day_of_week: int = Field(ge=0, le=6)
    slots: list[Slot] = Field(default_factory=list)
    holidays: set[date] = Field(default_factory=set)
    special_dates: list[SpecialDate] = Field(default_factory=list)
    is_active: bool = True

    @property
    def day_name(self) -> str:
        return DAY_NAMES[self.day_of_week]

    @property
    def active_slot_count(self) -> int:
        return sum(1 for slot in self.slots if slot.active)

    @property
    def total_capacity(self) -> int:
        return sum(slot.capacity for slot in self.slots if slot.active)

    def special_date_for(self, day: date) -> Optional[SpecialDate]:
        for special in self.special_dates:
            if special.date == day:
                return special
        return None


class SlotAvailability(BaseModel):
    """Live occupancy of one slot on one date."""
    start: str
    end: str
    capacity: int
    booked: int
    available: int
    is_available: bool


class SlotCheck(BaseModel):
    """Outcome of checking one requested slot."""
    is_available: bool
    code: Optional[AvailabilityCode] = None
    reason: Optional[str] = None
    capacity: Optional[int] = None
    booked: Optional[int] = None
    available: Optional[int] = None


class DateAvailability(BaseModel):
    """A date with at least one open slot."""
    date: date
    day_of_week: int
    available_slots: int


class NextSlot(BaseModel):
    """First open slot found by a forward scan."""
    date: date
    slot: TimeSlot
    available: int


class DateStatus(BaseModel):
    date: date
    status: str
    available_slots: int


class AvailabilitySummary(BaseModel):
    """Per-day open/full/closed breakdown over a date range."""
    total_days: int = 0
    available_days: int = 0
    fully_booked_days: int = 0
    closed_days: int = 0
    dates: list[DateStatus] = Field(default_factory=list)
