"""Appointment data models and lifecycle enums."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pickup_booking.schemas.slot_schema import TimeSlot
from pickup_booking.utils import ensure_aware


class AppointmentStatus(str, Enum):
    """All possible states in an appointment lifecycle."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)

# Statuses that hold a seat in a slot and count against a resident's quota.
ACTIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})


class WasteType(str, Enum):
    RECYCLABLE = "recyclable"
    ORGANIC = "organic"
    NON_RECYCLABLE = "non-recyclable"
    HAZARDOUS = "hazardous"
    BULKY = "bulky"


class BookingSource(str, Enum):
    WEB = "web"
    MOBILE = "mobile"
    ADMIN = "admin"


class Cancellation(BaseModel):
    reason: str = Field(max_length=300)
    cancelled_by: str
    cancelled_at: datetime


class StatusChange(BaseModel):
    """Recorded history entry for a status change."""
    status: AppointmentStatus
    at: datetime
    trigger: Optional[str] = None


class BookingRequest(BaseModel):
    """Validated booking request data."""
    zone: str = Field(min_length=1)
    appointment_date: datetime
    time_slot: TimeSlot
    waste_types: list[WasteType] = Field(min_length=1)
    estimated_amount: float = Field(ge=0.1, le=1000)
    special_instructions: Optional[str] = Field(default=None, max_length=500)
    booking_source: BookingSource = BookingSource.WEB

    @field_validator("appointment_date")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @field_validator("special_instructions")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else None


class AppointmentRecord(BaseModel):
    """A booked pickup and its lifecycle state."""
    model_config = ConfigDict(validate_assignment=True)

    id: str
    resident: str
    zone: Optional[str] = None
    appointment_date: datetime
    time_slot: TimeSlot
    waste_types: list[WasteType] = Field(min_length=1)
    estimated_amount: float = Field(ge=0.1, le=1000)
    actual_amount: Optional[float] = Field(default=None, ge=0)
    special_instructions: Optional[str] = Field(default=None, max_length=500)
    completion_notes: Optional[str] = Field(default=None, max_length=500)
    status: AppointmentStatus = AppointmentStatus.PENDING
    assigned_vehicle: Optional[str] = None
    assigned_driver: Optional[str] = None
    cancellation: Optional[Cancellation] = None
    reminder_sent: bool = False
    booking_source: BookingSource = BookingSource.WEB
    status_history: list[StatusChange] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @field_validator("appointment_date", "created_at", "updated_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def formatted_time_slot(self) -> str:
        """Human-readable window, e.g. ``9:00 AM - 10:00 AM``."""

        def _fmt(value: str) -> str:
            hour, minute = (int(part) for part in value.split(":"))
            period = "PM" if hour >= 12 else "AM"
            return f"{hour % 12 or 12}:{minute:02d} {period}"

        return f"{_fmt(self.time_slot.start)} - {_fmt(self.time_slot.end)}"


class StatusStats(BaseModel):
    count: int = 0
    total_estimated: float = 0.0
    total_actual: float = 0.0


class ReminderSweepResult(BaseModel):
    """Counts from one reminder sweep."""
    total: int = 0
    sent: int = 0
    failed: int = 0
    skipped: bool = False
