"""Injectable source of "now" for lead-time and reminder-window checks."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Protocol

from pickup_booking.utils import ensure_aware


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """Clock pinned to a fixed instant, moved explicitly.

    Used by tests and by replay tooling where "now" must be deterministic.
    """

    def __init__(self, instant: datetime) -> None:
        self._instant = ensure_aware(instant)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._instant

    def set(self, instant: datetime) -> None:
        with self._lock:
            self._instant = ensure_aware(instant)

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by a ``timedelta(**kwargs)`` and return the new instant."""
        with self._lock:
            self._instant = self._instant + timedelta(**kwargs)
            return self._instant
