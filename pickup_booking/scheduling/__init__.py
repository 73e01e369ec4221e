from pickup_booking.scheduling.availability import AvailabilityEngine
from pickup_booking.scheduling.templates import (
    SlotTemplateStore,
    get_slots_for_date,
    is_date_available,
    resolve_day,
)

__all__ = [
    "AvailabilityEngine",
    "SlotTemplateStore",
    "get_slots_for_date",
    "is_date_available",
    "resolve_day",
]
