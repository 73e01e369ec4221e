"""Tests for time helpers, the clock and request logging context."""

import logging
import re
from datetime import date, datetime, timedelta, timezone

import pytest

from pickup_booking.clock import FrozenClock, SystemClock
from pickup_booking.logging_context import (
    NO_CONTEXT,
    RequestContextFilter,
    get_actor,
    get_request_id,
    get_request_logger,
    install_on_handlers,
    new_request_id,
    request_scope,
)
from pickup_booking.utils import (
    calendar_date,
    day_of_week,
    describe_minutes,
    ensure_aware,
    hhmm_to_minutes,
    is_valid_hhmm,
)


class TestHHMM:
    @pytest.mark.parametrize("value", ["00:00", "09:30", "23:59"])
    def test_valid(self, value):
        assert is_valid_hhmm(value)

    @pytest.mark.parametrize("value", ["9:30", "24:00", "12:60", "noon", "12:3", ""])
    def test_invalid(self, value):
        assert not is_valid_hhmm(value)

    def test_to_minutes(self):
        assert hhmm_to_minutes("00:00") == 0
        assert hhmm_to_minutes("14:45") == 885


class TestDates:
    def test_sunday_is_zero(self):
        assert day_of_week(date(2025, 10, 19)) == 0

    def test_saturday_is_six(self):
        assert day_of_week(date(2025, 10, 25)) == 6

    def test_monday_is_one(self):
        assert day_of_week(date(2025, 10, 20)) == 1

    def test_naive_treated_as_utc(self):
        aware = ensure_aware(datetime(2025, 10, 20, 9, 0))
        assert aware.tzinfo == timezone.utc

    def test_aware_left_alone(self):
        offset = timezone(timedelta(hours=2))
        value = datetime(2025, 10, 20, 9, 0, tzinfo=offset)
        assert ensure_aware(value) is value

    def test_calendar_date(self):
        assert calendar_date(datetime(2025, 10, 20, 23, 59)) == date(2025, 10, 20)
        assert calendar_date(date(2025, 10, 20)) == date(2025, 10, 20)


class TestClock:
    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo == timezone.utc

    def test_frozen_clock_advance_and_set(self):
        clock = FrozenClock(datetime(2025, 10, 20, 8, 0))
        assert clock.now() == datetime(2025, 10, 20, 8, 0, tzinfo=timezone.utc)

        assert clock.advance(minutes=90) == datetime(2025, 10, 20, 9, 30, tzinfo=timezone.utc)

        clock.set(datetime(2026, 1, 1, tzinfo=timezone.utc))
        assert clock.now().year == 2026


class TestDescribeMinutes:
    @pytest.mark.parametrize("minutes, expected", [
        (60, "1 hour"),
        (120, "2 hours"),
        (90, "90 minutes"),
        (1, "1 minute"),
        (0, "0 minutes"),
    ])
    def test_describe(self, minutes, expected):
        assert describe_minutes(minutes) == expected


class TestRequestScope:
    def test_outside_any_scope(self):
        assert get_request_id() == NO_CONTEXT
        assert get_actor() == NO_CONTEXT

    def test_new_request_id_format(self):
        request_id = new_request_id()
        assert re.fullmatch(r"REQ-[0-9a-f]{8}", request_id)
        assert get_request_id() == NO_CONTEXT

    def test_scope_sets_and_restores(self):
        with request_scope(actor="res-1", request_id="REQ-test") as request_id:
            assert request_id == "REQ-test"
            assert get_request_id() == "REQ-test"
            assert get_actor() == "res-1"
        assert get_request_id() == NO_CONTEXT
        assert get_actor() == NO_CONTEXT

    def test_scope_generates_id(self):
        with request_scope(actor="res-1") as request_id:
            assert request_id.startswith("REQ-")

    def test_nested_scope_keeps_outer_id(self):
        with request_scope(actor="dispatcher", request_id="REQ-outer"):
            with request_scope(actor="res-7") as inner_id:
                assert inner_id == "REQ-outer"
                assert get_actor() == "res-7"
            assert get_actor() == "dispatcher"

    def test_scope_without_actor_keeps_outer_actor(self):
        with request_scope(actor="res-1"):
            with request_scope():
                assert get_actor() == "res-1"

    def test_scope_restored_after_error(self):
        with pytest.raises(RuntimeError):
            with request_scope(actor="res-1", request_id="REQ-boom"):
                raise RuntimeError("boom")
        assert get_request_id() == NO_CONTEXT

    def test_filter_injects_context(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        with request_scope(actor="res-3", request_id="REQ-filter"):
            assert RequestContextFilter().filter(record) is True
        assert record.request_id == "REQ-filter"
        assert record.actor == "res-3"

    def test_request_logger_filter_attached_once(self):
        logger = get_request_logger("pickup_booking.tests.request")
        get_request_logger("pickup_booking.tests.request")
        assert sum(isinstance(f, RequestContextFilter) for f in logger.filters) == 1

    def test_install_on_handlers_once(self):
        logger = logging.getLogger("pickup_booking.tests.handlers")
        handler = logging.NullHandler()
        logger.addHandler(handler)
        try:
            install_on_handlers(logger)
            install_on_handlers(logger)
            assert sum(isinstance(f, RequestContextFilter) for f in handler.filters) == 1
        finally:
            logger.removeHandler(handler)

    def test_booking_logs_carry_resident(self, seeded_core, caplog):
        from tests.conftest import NEXT_MONDAY, make_request

        with caplog.at_level(logging.INFO, logger="pickup_booking.appointments.booking"):
            seeded_core.booking.book("res-9", make_request(NEXT_MONDAY))

        booking_records = [
            record for record in caplog.records
            if record.name == "pickup_booking.appointments.booking"
        ]
        assert booking_records
        assert {record.actor for record in booking_records} == {"res-9"}
        assert len({record.request_id for record in booking_records}) == 1
        assert get_request_id() == NO_CONTEXT
