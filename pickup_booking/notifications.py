"""
Notifier collaborator and best-effort dispatch.

Delivery (push, SMS, email) lives outside the booking core. The core calls
the notifier after a change has been committed and never lets a delivery
failure undo or fail that change.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pickup_booking.schemas.appointment_schema import AppointmentRecord

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send_confirmation(self, appointment: AppointmentRecord) -> None: ...

    def send_update(self, appointment: AppointmentRecord) -> None: ...

    def send_cancellation(self, appointment: AppointmentRecord) -> None: ...

    def send_reminder(self, appointment: AppointmentRecord) -> None: ...

    def send_confirmed(self, appointment: AppointmentRecord) -> None: ...

    def send_completed(self, appointment: AppointmentRecord) -> None: ...


class LoggingNotifier:
    """Notifier that only records what would have been sent."""

    def _log(self, kind: str, appointment: AppointmentRecord) -> None:
        logger.info(
            "Notification %s for %s (resident %s, %s %s-%s)",
            kind,
            appointment.id,
            appointment.resident,
            appointment.appointment_date.date().isoformat(),
            appointment.time_slot.start,
            appointment.time_slot.end,
        )

    def send_confirmation(self, appointment: AppointmentRecord) -> None:
        self._log("booking_received", appointment)

    def send_update(self, appointment: AppointmentRecord) -> None:
        self._log("updated", appointment)

    def send_cancellation(self, appointment: AppointmentRecord) -> None:
        self._log("cancelled", appointment)

    def send_reminder(self, appointment: AppointmentRecord) -> None:
        self._log("reminder", appointment)

    def send_confirmed(self, appointment: AppointmentRecord) -> None:
        self._log("confirmed", appointment)

    def send_completed(self, appointment: AppointmentRecord) -> None:
        self._log("completed", appointment)


def notify_safely(notifier: Notifier, kind: str, appointment: AppointmentRecord) -> bool:
    """Call ``notifier.send_<kind>`` and swallow any failure.

    Returns True when the notifier returned normally.
    """
    send = getattr(notifier, f"send_{kind}")
    try:
        send(appointment)
    except Exception:
        logger.exception("Failed to send %s notification for %s", kind, appointment.id)
        return False
    return True
