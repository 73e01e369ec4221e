"""
In-memory appointment repository with key-scoped locks.

Occupancy is never stored. It is counted on demand from the records, and
writers that depend on a count (booking, reschedule) hold the lock for
that slot while they re-count and insert, so the check and the write are
one step.

Lock keys:
    ("slot", zone, date, start, end)
    ("resident", resident_id)
    ("appointment", appointment_id)

Callers acquiring more than one lock take them in the order resident or
appointment first, then slot.
"""

import itertools
import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime
from typing import Hashable, Iterable, Iterator, Optional

from pickup_booking.config import settings
from pickup_booking.errors import AvailabilityCode, AvailabilityError, NotFoundError
from pickup_booking.schemas.appointment_schema import (
    ACTIVE_STATUSES,
    AppointmentRecord,
    AppointmentStatus,
)
from pickup_booking.utils import calendar_date

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "This time slot is busy right now. Please re-check availability and try again"


def slot_lock_key(zone: Optional[str], day: date, start: str, end: str) -> tuple:
    return ("slot", zone, day, start, end)


class AppointmentRepository:
    """Thread-safe appointment storage indexed by resident and by (zone, date)."""

    def __init__(self, lock_timeout: Optional[float] = None) -> None:
        self._records: dict[str, AppointmentRecord] = {}
        self._by_resident: defaultdict[str, set[str]] = defaultdict(set)
        self._by_zone_date: defaultdict[tuple[Optional[str], date], set[str]] = defaultdict(set)
        self._counter = itertools.count(1)
        self._data_lock = threading.RLock()
        # key -> [lock, number of threads holding or waiting on it]
        self._key_locks: dict[Hashable, list] = {}
        self._key_locks_guard = threading.Lock()
        self._lock_timeout = (
            lock_timeout if lock_timeout is not None else settings.booking.lock_timeout_seconds
        )

    # --- locking ---

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._key_locks_guard:
            entry = self._key_locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._key_locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _release_key(self, key: Hashable) -> None:
        """Drop the lock for ``key`` once no thread holds or waits on it."""
        with self._key_locks_guard:
            entry = self._key_locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._key_locks[key]

    def lock_entry_count(self) -> int:
        """Keys with a live lock entry. Zero when the repository is idle."""
        with self._key_locks_guard:
            return len(self._key_locks)

    @contextmanager
    def locked(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key``; give up after the configured timeout."""
        lock = self._lock_for(key)
        try:
            if not lock.acquire(timeout=self._lock_timeout):
                logger.warning("Timed out waiting for lock %s", key)
                raise AvailabilityError(BUSY_MESSAGE, AvailabilityCode.BUSY)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._release_key(key)

    # --- writes ---

    def next_id(self) -> str:
        return f"APT-{next(self._counter):06d}"

    def insert(self, record: AppointmentRecord) -> AppointmentRecord:
        with self._data_lock:
            stored = record.model_copy(deep=True)
            self._records[stored.id] = stored
            self._index(stored)
        logger.debug("Appointment stored: %s", stored.id)
        return stored.model_copy(deep=True)

    def update(self, record: AppointmentRecord) -> AppointmentRecord:
        with self._data_lock:
            previous = self._records.get(record.id)
            if previous is None:
                raise NotFoundError("Appointment not found")
            self._unindex(previous)
            stored = record.model_copy(deep=True)
            self._records[stored.id] = stored
            self._index(stored)
        return stored.model_copy(deep=True)

    def set_reminder_sent(self, appointment_id: str) -> bool:
        """Flip ``reminder_sent`` to True. Returns False if it was already set."""
        with self._data_lock:
            record = self._records.get(appointment_id)
            if record is None:
                raise NotFoundError("Appointment not found")
            if record.reminder_sent:
                return False
            record.reminder_sent = True
            return True

    def _index(self, record: AppointmentRecord) -> None:
        self._by_resident[record.resident].add(record.id)
        self._by_zone_date[(record.zone, calendar_date(record.appointment_date))].add(record.id)

    def _unindex(self, record: AppointmentRecord) -> None:
        self._by_resident[record.resident].discard(record.id)
        self._by_zone_date[(record.zone, calendar_date(record.appointment_date))].discard(record.id)

    # --- reads ---

    def get(self, appointment_id: str) -> Optional[AppointmentRecord]:
        with self._data_lock:
            record = self._records.get(appointment_id)
            return record.model_copy(deep=True) if record else None

    def count_by_slot(
        self,
        zone: Optional[str],
        day: date,
        start: str,
        end: str,
        exclude_id: Optional[str] = None,
    ) -> int:
        """Pending and confirmed appointments holding a seat in this slot."""
        with self._data_lock:
            return sum(
                1
                for appointment_id in self._by_zone_date.get((zone, day), ())
                if appointment_id != exclude_id
                and self._records[appointment_id].status in ACTIVE_STATUSES
                and self._records[appointment_id].time_slot.start == start
                and self._records[appointment_id].time_slot.end == end
            )

    def count_active_by_resident(self, resident: str) -> int:
        with self._data_lock:
            return sum(
                1
                for appointment_id in self._by_resident.get(resident, ())
                if self._records[appointment_id].status in ACTIVE_STATUSES
            )

    def find_by_resident(
        self, resident: str, statuses: Optional[Iterable[AppointmentStatus]] = None
    ) -> list[AppointmentRecord]:
        wanted = set(statuses) if statuses is not None else None
        with self._data_lock:
            return [
                self._records[appointment_id].model_copy(deep=True)
                for appointment_id in self._by_resident.get(resident, ())
                if wanted is None or self._records[appointment_id].status in wanted
            ]

    def find_by_zone(
        self,
        zone: str,
        start: date,
        end: date,
        statuses: Optional[Iterable[AppointmentStatus]] = None,
    ) -> list[AppointmentRecord]:
        wanted = set(statuses) if statuses is not None else None
        with self._data_lock:
            matches = [
                record.model_copy(deep=True)
                for (record_zone, day), ids in self._by_zone_date.items()
                if record_zone == zone and start <= day <= end
                for record in (self._records[appointment_id] for appointment_id in ids)
                if wanted is None or record.status in wanted
            ]
        return sorted(matches, key=lambda record: (record.appointment_date, record.time_slot.start))

    def find_by_status(
        self, status: AppointmentStatus, zone: Optional[str] = None
    ) -> list[AppointmentRecord]:
        with self._data_lock:
            return [
                record.model_copy(deep=True)
                for record in self._records.values()
                if record.status == status and (zone is None or record.zone == zone)
            ]

    def find_needing_reminders(
        self, window_start: datetime, window_end: datetime
    ) -> list[AppointmentRecord]:
        """Confirmed, not yet reminded, dated in ``[window_start, window_end)``."""
        with self._data_lock:
            matches = [
                record.model_copy(deep=True)
                for record in self._records.values()
                if record.status == AppointmentStatus.CONFIRMED
                and not record.reminder_sent
                and window_start <= record.appointment_date < window_end
            ]
        return sorted(matches, key=lambda record: record.appointment_date)
