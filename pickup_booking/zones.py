"""
Zone directory collaborator.

Zones are managed elsewhere; the booking core only needs to know that a
zone id refers to a real zone.
"""

import logging
import threading
from typing import Iterable, Optional, Protocol

logger = logging.getLogger(__name__)


class ZoneDirectory(Protocol):
    def exists(self, zone_id: str) -> bool: ...


class InMemoryZoneDirectory:
    """Set-backed zone directory."""

    def __init__(self, zone_ids: Optional[Iterable[str]] = None) -> None:
        self._zones: set[str] = set(zone_ids or [])
        self._lock = threading.Lock()

    def exists(self, zone_id: str) -> bool:
        with self._lock:
            return zone_id in self._zones

    def register(self, zone_id: str) -> None:
        with self._lock:
            self._zones.add(zone_id)
        logger.debug("Zone registered: %s", zone_id)
