"""
Purpose: The shared store behind every station queue.
What it does:

- Owns the per-station ordered entries (a max-heap by rank with lazy deletion,
  rebuilt once stale items outnumber live ones)
- Owns the driver records the engine reads (status, rating, trips, location)
- Owns the "which station is this driver queued at" index, which enforces
  the one-entry-per-driver invariant across all stations
- Remembers the last entry each driver was dequeued with, so a released
  driver can be requeued with the same history

Every read-check-write runs inside transaction(): one re-entrant lock
guards all keys, the same guarantee a single-threaded datastore gives a
server-side script. Nested transactions on the same thread are allowed so a
caller can group several queue operations into one atomic step.

Rule: Store owns state and atomicity; station_queue owns the queue rules.
"""

from __future__ import annotations

import heapq
import itertools
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Optional, Tuple

from drivers.models import Driver, DriverStatus

from .errors import AlreadyQueued, StoreUnavailable
from .models import QueueEntry


@dataclass(frozen=True)
class StoredEntry:
    entry: QueueEntry
    rank: float
    version: int  # unique per insert; a stale read can never remove a newer entry


class QueueStore:
    """
    In-process queue store. One instance is created by the bootstrap and
    injected into every StationFairQueue, the matcher and the dispatcher.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._available = True
        self._versions = itertools.count(1)

        self._drivers: Dict[str, Driver] = {}

        # station_id -> driver_id -> live entry
        self._entries: Dict[str, Dict[str, StoredEntry]] = {}
        # station_id -> heap of (-rank, version, driver_id); may hold stale items
        self._heaps: Dict[str, List[Tuple[float, int, str]]] = {}
        # driver_id -> station_id for every queued driver
        self._driver_station: Dict[str, str] = {}
        # driver_id -> entry the driver was last dequeued with
        self._last_entries: Dict[str, QueueEntry] = {}

    # --- Transactions ---

    @contextmanager
    def transaction(self) -> Iterator[QueueStore]:
        """
        Run the enclosed block atomically with respect to every other caller.
        Raises StoreUnavailable (before any mutation) when the store is down.
        """
        with self._lock:
            if not self._available:
                raise StoreUnavailable("queue store is unavailable")
            yield self

    def set_available(self, available: bool) -> None:
        """Outage switch, used by health checks and tests."""
        with self._lock:
            self._available = available

    @property
    def available(self) -> bool:
        return self._available

    # --- Driver records (written by the external driver service) ---

    def put_driver(self, driver: Driver) -> None:
        with self._lock:
            self._drivers[driver.id] = driver

    def get_driver(self, driver_id: str) -> Optional[Driver]:
        with self._lock:
            return self._drivers.get(driver_id)

    def update_driver(self, driver_id: str, **changes) -> Driver:
        with self._lock:
            driver = self._drivers.get(driver_id)
            if driver is None:
                raise KeyError(f"Unknown driver {driver_id}")
            driver = replace(driver, **changes)
            self._drivers[driver_id] = driver
            return driver

    def drivers(self) -> List[Driver]:
        with self._lock:
            return list(self._drivers.values())

    def drivers_with_status(self, status: DriverStatus) -> List[Driver]:
        with self._lock:
            return [driver for driver in self._drivers.values() if driver.status == status]

    # --- Queue entries ---

    def station_of(self, driver_id: str) -> Optional[str]:
        with self._lock:
            return self._driver_station.get(driver_id)

    def get_entry(self, driver_id: str) -> Optional[StoredEntry]:
        with self._lock:
            station_id = self._driver_station.get(driver_id)
            if station_id is None:
                return None
            return self._entries[station_id].get(driver_id)

    def last_entry(self, driver_id: str) -> Optional[QueueEntry]:
        with self._lock:
            return self._last_entries.get(driver_id)

    def insert_entry(self, entry: QueueEntry, rank: float) -> StoredEntry:
        if entry.station_id is None:
            raise ValueError("Cannot store an entry without a station")

        with self._lock:
            current = self._driver_station.get(entry.driver_id)
            if current is not None:
                raise AlreadyQueued(entry.driver_id, current)

            stored = StoredEntry(entry=entry, rank=rank, version=next(self._versions))
            self._entries.setdefault(entry.station_id, {})[entry.driver_id] = stored
            heapq.heappush(
                self._heaps.setdefault(entry.station_id, []),
                (-rank, stored.version, entry.driver_id),
            )
            self._driver_station[entry.driver_id] = entry.station_id
            return stored

    def remove_entry(
        self,
        station_id: str,
        driver_id: str,
        *,
        version: Optional[int] = None,
    ) -> Optional[QueueEntry]:
        """
        Remove a driver's entry. When `version` is given the removal only
        succeeds if that exact entry is still live (compare-and-delete).
        Returns the removed entry, or None if nothing was removed.
        """
        with self._lock:
            entries = self._entries.get(station_id, {})
            stored = entries.get(driver_id)
            if stored is None:
                return None
            if version is not None and stored.version != version:
                return None

            del entries[driver_id]
            self._driver_station.pop(driver_id, None)
            self._last_entries[driver_id] = stored.entry

            heap = self._heaps.get(station_id, [])
            if len(heap) > 2 * max(1, len(entries)):
                self._compact(station_id)
            return stored.entry

    def _compact(self, station_id: str) -> None:
        """Rebuild a station heap from its live entries, dropping stale items."""
        heap = [
            (-stored.rank, stored.version, driver_id)
            for driver_id, stored in self._entries[station_id].items()
        ]
        heapq.heapify(heap)
        self._heaps[station_id] = heap

    def heap_size(self, station_id: str) -> int:
        """Items in the station heap, stale ones included."""
        with self._lock:
            return len(self._heaps.get(station_id, []))

    def peek_top(self, station_id: str) -> Optional[StoredEntry]:
        """Highest-ranked live entry of a station, or None when empty."""
        with self._lock:
            heap = self._heaps.get(station_id)
            entries = self._entries.get(station_id, {})
            while heap:
                _, version, driver_id = heap[0]
                stored = entries.get(driver_id)
                if stored is not None and stored.version == version:
                    return stored
                # entry removed or replaced since it was pushed
                heapq.heappop(heap)
            return None

    def ranked(self, station_id: str) -> List[StoredEntry]:
        """All live entries of a station, best first (ties: earliest insert)."""
        with self._lock:
            live = list(self._entries.get(station_id, {}).values())
        return sorted(live, key=lambda stored: (-stored.rank, stored.version))

    def count(self, station_id: str) -> int:
        with self._lock:
            return len(self._entries.get(station_id, {}))

    def queued_driver_ids(self) -> List[str]:
        with self._lock:
            return list(self._driver_station.keys())
