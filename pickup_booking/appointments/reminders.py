"""
Reminder sweep for confirmed appointments.

A sweep finds confirmed appointments starting in a one-hour window
``hours_ahead`` from now and hands each to the notifier. Sweeps run on a
fixed interval from APScheduler, independent of request traffic.

Overlap safety:
    - only one sweep runs at a time per scheduler (non-blocking lease);
    - each send happens under the appointment's lock after re-reading
      ``reminder_sent``, and the flag is set right after a successful send.
A failed send, or an appointment whose lock stays busy past the lock
timeout, leaves the flag unset, is counted as failed and is not retried in
the same sweep. The rest of the sweep carries on.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from pickup_booking.appointments.lifecycle import LifecycleManager
from pickup_booking.appointments.repository import AppointmentRepository
from pickup_booking.config import settings
from pickup_booking.errors import AvailabilityError, NotFoundError
from pickup_booking.logging_context import get_request_logger, new_request_id, request_scope
from pickup_booking.notifications import LoggingNotifier, Notifier, notify_safely
from pickup_booking.schemas.appointment_schema import (
    AppointmentRecord,
    AppointmentStatus,
    ReminderSweepResult,
)

JOB_ID = "appointment_reminder_sweep"

logger = get_request_logger(__name__)


class ReminderScheduler:
    def __init__(
        self,
        lifecycle: LifecycleManager,
        repository: AppointmentRepository,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._lifecycle = lifecycle
        self._repository = repository
        self._notifier = notifier or LoggingNotifier()
        self._sweep_lease = threading.Lock()

    def due_for_reminder(self, hours_ahead: Optional[int] = None) -> list[AppointmentRecord]:
        return self._lifecycle.needs_reminder(hours_ahead)

    def mark_reminded(self, appointment_id: str) -> bool:
        """Set ``reminder_sent``. Repeated calls are no-ops and return False."""
        flipped = self._repository.set_reminder_sent(appointment_id)
        if flipped:
            logger.debug("Reminder flag set for %s", appointment_id)
        return flipped

    def run_sweep(self, hours_ahead: Optional[int] = None) -> ReminderSweepResult:
        """Send every due reminder once. Returns a skipped result if a sweep is running."""
        with request_scope(actor="reminder-sweep", request_id=new_request_id()):
            return self._sweep(hours_ahead)

    def _sweep(self, hours_ahead: Optional[int]) -> ReminderSweepResult:
        if not self._sweep_lease.acquire(blocking=False):
            logger.info("Reminder sweep already running; skipping")
            return ReminderSweepResult(skipped=True)

        try:
            due = self.due_for_reminder(hours_ahead)
            result = ReminderSweepResult(total=len(due))
            for appointment in due:
                try:
                    outcome = self._remind(appointment.id)
                except AvailabilityError as exc:
                    logger.warning(
                        "Reminder for %s not sent: %s (%s)",
                        appointment.id, exc.message, exc.code.value,
                    )
                    outcome = False
                if outcome is True:
                    result.sent += 1
                elif outcome is False:
                    result.failed += 1
        finally:
            self._sweep_lease.release()

        logger.info(
            "Reminder sweep finished: %d due, %d sent, %d failed",
            result.total, result.sent, result.failed,
        )
        return result

    def _remind(self, appointment_id: str) -> Optional[bool]:
        """True if sent, False if the send failed, None if another sweep got there first."""
        with self._repository.locked(("appointment", appointment_id)):
            current = self._repository.get(appointment_id)
            if current is None:
                raise NotFoundError("Appointment not found")
            if current.reminder_sent or current.status != AppointmentStatus.CONFIRMED:
                return None
            if not notify_safely(self._notifier, "reminder", current):
                return False
            self.mark_reminded(appointment_id)
            return True


def _log_job_state(scheduler: BackgroundScheduler, event: JobExecutionEvent) -> None:
    """Log last and next run metadata for observability."""
    job = scheduler.get_job(event.job_id)
    job_next_run = getattr(job, "next_run_time", None) if job else None
    next_run = job_next_run.isoformat() if job_next_run else "none"
    last_run_at = (
        event.scheduled_run_time.isoformat()
        if event.scheduled_run_time
        else datetime.now(tz=timezone.utc).isoformat()
    )

    if event.exception:
        logger.error(
            "Job %s failed at %s; next run at %s",
            event.job_id,
            last_run_at,
            next_run,
            exc_info=event.exception,
        )
        return

    logger.info("Job %s completed at %s; next run at %s", event.job_id, last_run_at, next_run)


def build_scheduler(
    reminders: ReminderScheduler, interval_minutes: Optional[int] = None
) -> BackgroundScheduler:
    """Build a background scheduler that runs the reminder sweep on a fixed interval."""
    minutes = (
        settings.reminders.interval_minutes if interval_minutes is None else interval_minutes
    )
    if minutes < 1:
        raise ValueError(f"interval_minutes must be >= 1, got {minutes}")
    scheduler = BackgroundScheduler(timezone=timezone.utc)

    scheduler.add_job(
        reminders.run_sweep,
        trigger=IntervalTrigger(minutes=minutes, timezone=timezone.utc),
        id=JOB_ID,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=minutes * 60,
    )
    scheduler.add_listener(
        lambda event: _log_job_state(scheduler, event),
        EVENT_JOB_EXECUTED | EVENT_JOB_ERROR,
    )

    logger.info("Registered %s every %d minute(s)", JOB_ID, minutes)
    return scheduler
