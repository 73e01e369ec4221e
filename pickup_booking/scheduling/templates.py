"""
Slot template store and per-date resolution.

A template is the weekly slot definition for one (zone, day_of_week).
Holidays and special dates layer on top of it. ``resolve_day`` is the one
place those layers are combined; everything else asks it.

Usage:
    store = SlotTemplateStore()
    store.initialize_default_slots("zone-north")
    template = store.get_template_for_date("zone-north", date(2025, 11, 3))
    slots = get_slots_for_date(template, date(2025, 11, 3))
"""

import logging
import threading
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from pickup_booking.errors import AvailabilityCode, NotFoundError, ValidationError
from pickup_booking.schemas.slot_schema import Slot, SlotTemplate, SpecialDate
from pickup_booking.utils import day_of_week

logger = logging.getLogger(__name__)

HOLIDAY_REASON = "This date is a holiday - no appointments available"
DATE_UNAVAILABLE_REASON = "This date is not available for appointments"
INACTIVE_TEMPLATE_REASON = "No appointment slots configured for this day"

WEEKDAY_DEFAULT_SLOTS = [
    ("09:00", "10:00"),
    ("10:00", "11:00"),
    ("11:00", "12:00"),
    ("14:00", "15:00"),
    ("15:00", "16:00"),
    ("16:00", "17:00"),
]
SATURDAY_DEFAULT_SLOTS = [("09:00", "10:00"), ("10:00", "11:00"), ("11:00", "12:00")]
SATURDAY_DEFAULT_CAPACITY = 5


@dataclass(frozen=True)
class DayResolution:
    """Effective availability of one calendar date under a template."""
    is_available: bool
    capacity_override: Optional[int] = None
    code: Optional[AvailabilityCode] = None
    reason: Optional[str] = None


def resolve_day(template: SlotTemplate, day: date) -> DayResolution:
    """Apply template -> holiday -> special date, in that order."""
    if day in template.holidays:
        return DayResolution(False, code=AvailabilityCode.HOLIDAY, reason=HOLIDAY_REASON)

    special = template.special_date_for(day)
    if special is not None and not special.is_available:
        return DayResolution(
            False,
            code=AvailabilityCode.DATE_UNAVAILABLE,
            reason=special.reason or DATE_UNAVAILABLE_REASON,
        )

    if not template.is_active:
        return DayResolution(
            False, code=AvailabilityCode.NOT_CONFIGURED, reason=INACTIVE_TEMPLATE_REASON
        )

    return DayResolution(
        True, capacity_override=special.capacity_override if special else None
    )


def is_date_available(template: SlotTemplate, day: date) -> bool:
    return resolve_day(template, day).is_available


def get_slots_for_date(template: SlotTemplate, day: date) -> list[Slot]:
    """Active slots for ``day`` with any special-date capacity applied."""
    resolution = resolve_day(template, day)
    if not resolution.is_available:
        return []

    slots = []
    for slot in template.slots:
        if not slot.active:
            continue
        capacity = (
            resolution.capacity_override
            if resolution.capacity_override is not None
            else slot.capacity
        )
        # model_construct: an override of 0 closes the slot without failing ge=1
        slots.append(
            Slot.model_construct(start=slot.start, end=slot.end, capacity=capacity, active=True)
        )
    return slots


def find_slot(template: SlotTemplate, start: str, end: str) -> Optional[Slot]:
    """Active slot with exactly these bounds, if configured."""
    for slot in template.slots:
        if slot.active and slot.start == start and slot.end == end:
            return slot
    return None


def _check_overlaps(slots: list[Slot]) -> None:
    active = [slot for slot in slots if slot.active]
    for i, first in enumerate(active):
        for second in active[i + 1:]:
            if first.overlaps(second):
                raise ValidationError(
                    f"Slot {first.label()} overlaps with {second.label()}"
                )


class SlotTemplateStore:
    """
    In-memory template store, unique on (zone, day_of_week).

    Templates are returned as copies; edits go through the store so
    validation runs on every write.
    """

    def __init__(self) -> None:
        self._templates: dict[tuple[str, int], SlotTemplate] = {}
        self._lock = threading.RLock()

    def get_template(self, zone: str, day_of_week: int) -> Optional[SlotTemplate]:
        """Active template for the zone and weekday, or None."""
        with self._lock:
            template = self._templates.get((zone, day_of_week))
            if template is None or not template.is_active:
                return None
            return template.model_copy(deep=True)

    def get_template_for_date(self, zone: str, day: date) -> Optional[SlotTemplate]:
        return self.get_template(zone, day_of_week(day))

    def get_zone_templates(self, zone: str) -> list[SlotTemplate]:
        with self._lock:
            templates = [
                template.model_copy(deep=True)
                for (template_zone, _), template in self._templates.items()
                if template_zone == zone and template.is_active
            ]
        return sorted(templates, key=lambda template: template.day_of_week)

    def save_template(self, template: Union[SlotTemplate, dict[str, Any]]) -> SlotTemplate:
        """Insert or replace the template for its (zone, day_of_week)."""
        if isinstance(template, dict):
            try:
                template = SlotTemplate.model_validate(template)
            except PydanticValidationError as exc:
                raise ValidationError(
                    f"Invalid slot template: {exc.errors()[0]['msg']}", cause=exc
                ) from None

        _check_overlaps(template.slots)
        stored = template.model_copy(deep=True)
        stored.slots.sort(key=lambda slot: slot.start)

        with self._lock:
            self._templates[(stored.zone, stored.day_of_week)] = stored
        logger.info(
            "Slot template saved - zone: %s, day: %s, active slots: %d",
            stored.zone, stored.day_name, stored.active_slot_count,
        )
        return stored.model_copy(deep=True)

    def _require(self, zone: str, day_of_week: int) -> SlotTemplate:
        template = self._templates.get((zone, day_of_week))
        if template is None:
            raise NotFoundError("Slot template not found")
        return template.model_copy(deep=True)

    def add_slot(
        self, zone: str, day_of_week: int, start: str, end: str, capacity: Optional[int] = None
    ) -> SlotTemplate:
        with self._lock:
            template = self._require(zone, day_of_week)
            fields: dict[str, Any] = {"start": start, "end": end}
            if capacity is not None:
                fields["capacity"] = capacity
            try:
                template.slots.append(Slot(**fields))
            except PydanticValidationError as exc:
                raise ValidationError(
                    f"Invalid slot: {exc.errors()[0]['msg']}", cause=exc
                ) from None
            return self.save_template(template)

    def remove_slot(self, zone: str, day_of_week: int, start: str, end: str) -> SlotTemplate:
        with self._lock:
            template = self._require(zone, day_of_week)
            template.slots = [
                slot for slot in template.slots if not (slot.start == start and slot.end == end)
            ]
            return self.save_template(template)

    def update_slot_capacity(
        self, zone: str, day_of_week: int, start: str, end: str, capacity: int
    ) -> SlotTemplate:
        with self._lock:
            template = self._require(zone, day_of_week)
            for slot in template.slots:
                if slot.start == start and slot.end == end:
                    try:
                        slot.capacity = Slot(start=start, end=end, capacity=capacity).capacity
                    except PydanticValidationError as exc:
                        raise ValidationError(
                            f"Invalid capacity: {exc.errors()[0]['msg']}", cause=exc
                        ) from None
                    return self.save_template(template)
        raise NotFoundError("Slot not found")

    def add_holiday(self, zone: str, day_of_week: int, day: date) -> SlotTemplate:
        with self._lock:
            template = self._require(zone, day_of_week)
            template.holidays.add(day)
            return self.save_template(template)

    def remove_holiday(self, zone: str, day_of_week: int, day: date) -> SlotTemplate:
        with self._lock:
            template = self._require(zone, day_of_week)
            template.holidays.discard(day)
            return self.save_template(template)

    def set_special_date(
        self,
        zone: str,
        day_of_week: int,
        day: date,
        capacity_override: Optional[int] = None,
        is_available: bool = True,
        reason: Optional[str] = None,
    ) -> SlotTemplate:
        """Add or replace the special-date entry for ``day``."""
        try:
            special = SpecialDate(
                date=day,
                capacity_override=capacity_override,
                is_available=is_available,
                reason=reason,
            )
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid special date: {exc.errors()[0]['msg']}", cause=exc
            ) from None

        with self._lock:
            template = self._require(zone, day_of_week)
            template.special_dates = [s for s in template.special_dates if s.date != day]
            template.special_dates.append(special)
            return self.save_template(template)

    def initialize_default_slots(self, zone: str) -> list[SlotTemplate]:
        """Monday-Friday six one-hour slots; Saturday three smaller morning slots."""
        created = []
        for weekday in range(1, 6):
            created.append(self.save_template(SlotTemplate(
                zone=zone,
                day_of_week=weekday,
                slots=[Slot(start=start, end=end) for start, end in WEEKDAY_DEFAULT_SLOTS],
            )))
        created.append(self.save_template(SlotTemplate(
            zone=zone,
            day_of_week=6,
            slots=[
                Slot(start=start, end=end, capacity=SATURDAY_DEFAULT_CAPACITY)
                for start, end in SATURDAY_DEFAULT_SLOTS
            ],
        )))
        return created
