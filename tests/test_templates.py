"""Tests for slot templates, overrides and per-date resolution."""

from datetime import date

import pytest

from pickup_booking.errors import AvailabilityCode, NotFoundError, ValidationError
from pickup_booking.scheduling.templates import (
    DATE_UNAVAILABLE_REASON,
    HOLIDAY_REASON,
    SlotTemplateStore,
    get_slots_for_date,
    is_date_available,
    resolve_day,
)
from pickup_booking.schemas.slot_schema import Slot, SlotTemplate, SpecialDate, TimeSlot
from tests.conftest import ZONE, single_slot_template

CHRISTMAS = date(2025, 12, 25)  # Thursday
THURSDAY = 4


@pytest.fixture
def store():
    return SlotTemplateStore()


class TestSlotModels:
    def test_valid_slot(self):
        slot = Slot(start="09:00", end="10:30", capacity=4)
        assert slot.duration_minutes == 90
        assert slot.label() == "09:00-10:30"

    def test_default_capacity_is_ten(self):
        assert Slot(start="09:00", end="10:00").capacity == 10

    def test_rejects_unpadded_time(self):
        with pytest.raises(ValueError, match="Invalid time format"):
            TimeSlot(start="9:00", end="10:00")

    def test_rejects_end_before_start(self):
        with pytest.raises(ValueError, match="End time must be after start time"):
            TimeSlot(start="10:00", end="09:00")

    def test_rejects_zero_length_slot(self):
        with pytest.raises(ValueError):
            TimeSlot(start="10:00", end="10:00")

    def test_capacity_bounds(self):
        with pytest.raises(ValueError):
            Slot(start="09:00", end="10:00", capacity=0)
        with pytest.raises(ValueError):
            Slot(start="09:00", end="10:00", capacity=51)

    def test_overlap_detection(self):
        first = TimeSlot(start="09:00", end="10:00")
        assert first.overlaps(TimeSlot(start="09:30", end="10:30"))
        assert not first.overlaps(TimeSlot(start="10:00", end="11:00"))

    def test_special_date_reason_length(self):
        with pytest.raises(ValueError):
            SpecialDate(date=CHRISTMAS, reason="x" * 201)

    def test_template_day_name_and_totals(self):
        template = SlotTemplate(
            zone=ZONE,
            day_of_week=1,
            slots=[
                Slot(start="09:00", end="10:00", capacity=3),
                Slot(start="10:00", end="11:00", capacity=4, active=False),
            ],
        )
        assert template.day_name == "Monday"
        assert template.active_slot_count == 1
        assert template.total_capacity == 3


class TestResolveDay:
    def test_plain_day_is_available(self):
        template = single_slot_template(THURSDAY)
        resolution = resolve_day(template, date(2025, 12, 18))
        assert resolution.is_available
        assert resolution.capacity_override is None

    def test_holiday_closes_day(self):
        template = single_slot_template(THURSDAY)
        template.holidays.add(CHRISTMAS)
        resolution = resolve_day(template, CHRISTMAS)
        assert not resolution.is_available
        assert resolution.code == AvailabilityCode.HOLIDAY
        assert resolution.reason == HOLIDAY_REASON

    def test_holiday_wins_over_available_special_date(self):
        template = single_slot_template(THURSDAY)
        template.holidays.add(CHRISTMAS)
        template.special_dates.append(
            SpecialDate(date=CHRISTMAS, capacity_override=20, is_available=True)
        )
        assert not is_date_available(template, CHRISTMAS)
        assert get_slots_for_date(template, CHRISTMAS) == []

    def test_unavailable_special_date_uses_its_reason(self):
        template = single_slot_template(THURSDAY)
        template.special_dates.append(
            SpecialDate(date=CHRISTMAS, is_available=False, reason="Depot maintenance")
        )
        resolution = resolve_day(template, CHRISTMAS)
        assert resolution.code == AvailabilityCode.DATE_UNAVAILABLE
        assert resolution.reason == "Depot maintenance"

    def test_unavailable_special_date_default_reason(self):
        template = single_slot_template(THURSDAY)
        template.special_dates.append(SpecialDate(date=CHRISTMAS, is_available=False))
        assert resolve_day(template, CHRISTMAS).reason == DATE_UNAVAILABLE_REASON

    def test_inactive_template_not_available(self):
        template = single_slot_template(THURSDAY)
        template.is_active = False
        resolution = resolve_day(template, CHRISTMAS)
        assert resolution.code == AvailabilityCode.NOT_CONFIGURED

    def test_capacity_override_applies_to_every_slot(self):
        template = SlotTemplate(
            zone=ZONE,
            day_of_week=THURSDAY,
            slots=[
                Slot(start="09:00", end="10:00", capacity=10),
                Slot(start="10:00", end="11:00", capacity=8),
            ],
            special_dates=[SpecialDate(date=CHRISTMAS, capacity_override=1)],
        )
        slots = get_slots_for_date(template, CHRISTMAS)
        assert [slot.capacity for slot in slots] == [1, 1]

    def test_inactive_slots_are_skipped(self):
        template = SlotTemplate(
            zone=ZONE,
            day_of_week=THURSDAY,
            slots=[
                Slot(start="09:00", end="10:00"),
                Slot(start="10:00", end="11:00", active=False),
            ],
        )
        assert [slot.start for slot in get_slots_for_date(template, CHRISTMAS)] == ["09:00"]


class TestSlotTemplateStore:
    def test_save_and_get(self, store):
        store.save_template(single_slot_template(1))
        template = store.get_template(ZONE, 1)
        assert template is not None
        assert template.slots[0].capacity == 2

    def test_missing_template_returns_none(self, store):
        assert store.get_template(ZONE, 0) is None

    def test_inactive_template_hidden(self, store):
        template = single_slot_template(1)
        template.is_active = False
        store.save_template(template)
        assert store.get_template(ZONE, 1) is None

    def test_save_replaces_same_zone_and_day(self, store):
        store.save_template(single_slot_template(1, capacity=2))
        store.save_template(single_slot_template(1, capacity=7))
        assert store.get_template(ZONE, 1).slots[0].capacity == 7
        assert len(store.get_zone_templates(ZONE)) == 1

    def test_returned_template_is_a_copy(self, store):
        store.save_template(single_slot_template(1))
        template = store.get_template(ZONE, 1)
        template.slots.clear()
        assert len(store.get_template(ZONE, 1).slots) == 1

    def test_overlapping_slots_rejected(self, store):
        template = SlotTemplate(
            zone=ZONE,
            day_of_week=1,
            slots=[Slot(start="09:00", end="10:00"), Slot(start="09:30", end="10:30")],
        )
        with pytest.raises(ValidationError, match="overlaps"):
            store.save_template(template)

    def test_save_from_dict_wraps_model_errors(self, store):
        with pytest.raises(ValidationError, match="Invalid slot template"):
            store.save_template({"zone": ZONE, "day_of_week": 9, "slots": []})

    def test_slots_sorted_on_save(self, store):
        store.save_template(SlotTemplate(
            zone=ZONE,
            day_of_week=2,
            slots=[Slot(start="14:00", end="15:00"), Slot(start="09:00", end="10:00")],
        ))
        assert [slot.start for slot in store.get_template(ZONE, 2).slots] == ["09:00", "14:00"]

    def test_add_and_remove_slot(self, store):
        store.save_template(single_slot_template(1))
        store.add_slot(ZONE, 1, "10:00", "11:00", capacity=4)
        assert store.get_template(ZONE, 1).active_slot_count == 2

        store.remove_slot(ZONE, 1, "09:00", "10:00")
        slots = store.get_template(ZONE, 1).slots
        assert [(slot.start, slot.capacity) for slot in slots] == [("10:00", 4)]

    def test_add_overlapping_slot_rejected(self, store):
        store.save_template(single_slot_template(1))
        with pytest.raises(ValidationError, match="overlaps"):
            store.add_slot(ZONE, 1, "09:30", "10:30")

    def test_add_slot_invalid_time(self, store):
        store.save_template(single_slot_template(1))
        with pytest.raises(ValidationError, match="Invalid slot"):
            store.add_slot(ZONE, 1, "25:00", "26:00")

    def test_update_slot_capacity(self, store):
        store.save_template(single_slot_template(1))
        store.update_slot_capacity(ZONE, 1, "09:00", "10:00", 6)
        assert store.get_template(ZONE, 1).slots[0].capacity == 6

    def test_update_capacity_over_maximum(self, store):
        store.save_template(single_slot_template(1))
        with pytest.raises(ValidationError, match="Invalid capacity"):
            store.update_slot_capacity(ZONE, 1, "09:00", "10:00", 51)

    def test_update_unknown_slot(self, store):
        store.save_template(single_slot_template(1))
        with pytest.raises(NotFoundError, match="Slot not found"):
            store.update_slot_capacity(ZONE, 1, "15:00", "16:00", 3)

    def test_edit_unknown_template(self, store):
        with pytest.raises(NotFoundError, match="Slot template not found"):
            store.add_holiday(ZONE, 4, CHRISTMAS)

    def test_add_and_remove_holiday(self, store):
        store.save_template(single_slot_template(THURSDAY))
        store.add_holiday(ZONE, THURSDAY, CHRISTMAS)
        assert not is_date_available(store.get_template_for_date(ZONE, CHRISTMAS), CHRISTMAS)

        store.remove_holiday(ZONE, THURSDAY, CHRISTMAS)
        assert is_date_available(store.get_template_for_date(ZONE, CHRISTMAS), CHRISTMAS)

    def test_set_special_date_replaces_existing_entry(self, store):
        store.save_template(single_slot_template(THURSDAY))
        store.set_special_date(ZONE, THURSDAY, CHRISTMAS, capacity_override=3)
        store.set_special_date(ZONE, THURSDAY, CHRISTMAS, is_available=False, reason="Closed")

        template = store.get_template(ZONE, THURSDAY)
        assert len(template.special_dates) == 1
        assert template.special_date_for(CHRISTMAS).reason == "Closed"

    def test_special_date_override_above_maximum(self, store):
        store.save_template(single_slot_template(THURSDAY))
        with pytest.raises(ValidationError, match="Invalid special date"):
            store.set_special_date(ZONE, THURSDAY, CHRISTMAS, capacity_override=60)


class TestDefaultSlots:
    def test_weekdays_and_saturday_created(self, store):
        created = store.initialize_default_slots(ZONE)
        assert [template.day_of_week for template in created] == [1, 2, 3, 4, 5, 6]
        assert store.get_template(ZONE, 0) is None

    def test_weekday_shape(self, store):
        store.initialize_default_slots(ZONE)
        monday = store.get_template(ZONE, 1)
        assert monday.active_slot_count == 6
        assert monday.total_capacity == 60

    def test_saturday_shape(self, store):
        store.initialize_default_slots(ZONE)
        saturday = store.get_template(ZONE, 6)
        assert [slot.label() for slot in saturday.slots] == [
            "09:00-10:00", "10:00-11:00", "11:00-12:00",
        ]
        assert all(slot.capacity == 5 for slot in saturday.slots)
