"""
Centralized configuration with environment variable overrides.

Booking rules, lock timeouts, scan horizons and reminder cadence are all
configurable here. Nothing is hardcoded in scheduling or appointment logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from pickup_booking.logging_context import install_on_handlers

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class BookingConfig:
    """Admission rules applied to every booking and reschedule."""

    lead_time_minutes: int = _safe_int("BOOKING_LEAD_TIME_MINUTES", "60")
    max_active_appointments: int = _safe_int("MAX_ACTIVE_APPOINTMENTS", "3")
    lock_timeout_seconds: float = _safe_float("LOCK_TIMEOUT_SECONDS", "5.0")


@dataclass(frozen=True)
class CalendarConfig:
    """Slot template defaults and availability scan horizons."""

    default_slot_capacity: int = _safe_int("DEFAULT_SLOT_CAPACITY", "10")
    max_slot_capacity: int = _safe_int("MAX_SLOT_CAPACITY", "50")
    available_dates_horizon_days: int = _safe_int("AVAILABLE_DATES_HORIZON_DAYS", "30")
    next_slot_search_days: int = _safe_int("NEXT_SLOT_SEARCH_DAYS", "30")


@dataclass(frozen=True)
class ReminderConfig:
    """Reminder sweep cadence and window."""

    hours_ahead: int = _safe_int("REMINDER_HOURS_AHEAD", "24")
    interval_minutes: int = _safe_int("REMINDER_INTERVAL_MINUTES", "15")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    booking: BookingConfig = field(default_factory=BookingConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    reminders: ReminderConfig = field(default_factory=ReminderConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "pickup-booking")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.booking.lead_time_minutes < 0:
        raise ValueError(
            f"BOOKING_LEAD_TIME_MINUTES must be >= 0, got {config.booking.lead_time_minutes}"
        )
    if config.booking.max_active_appointments < 1:
        raise ValueError(
            "MAX_ACTIVE_APPOINTMENTS must be >= 1, "
            f"got {config.booking.max_active_appointments}"
        )
    if config.booking.lock_timeout_seconds <= 0:
        raise ValueError(
            f"LOCK_TIMEOUT_SECONDS must be > 0, got {config.booking.lock_timeout_seconds}"
        )
    if config.calendar.max_slot_capacity < 1:
        raise ValueError(
            f"MAX_SLOT_CAPACITY must be >= 1, got {config.calendar.max_slot_capacity}"
        )
    if not 1 <= config.calendar.default_slot_capacity <= config.calendar.max_slot_capacity:
        raise ValueError(
            "DEFAULT_SLOT_CAPACITY must be between 1 and MAX_SLOT_CAPACITY, "
            f"got {config.calendar.default_slot_capacity}"
        )

    for horizon_name, horizon_value in [
        ("AVAILABLE_DATES_HORIZON_DAYS", config.calendar.available_dates_horizon_days),
        ("NEXT_SLOT_SEARCH_DAYS", config.calendar.next_slot_search_days),
    ]:
        if not 1 <= horizon_value <= 366:
            raise ValueError(f"{horizon_name} must be between 1 and 366, got {horizon_value}")

    if config.reminders.hours_ahead < 0:
        raise ValueError(
            f"REMINDER_HOURS_AHEAD must be >= 0, got {config.reminders.hours_ahead}"
        )
    if config.reminders.interval_minutes < 1:
        raise ValueError(
            f"REMINDER_INTERVAL_MINUTES must be >= 1, got {config.reminders.interval_minutes}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s [%(request_id)s %(actor)s]: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    install_on_handlers(logging.getLogger())
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
