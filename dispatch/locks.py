"""
Purpose: Short-lived exclusive locks keyed by trip id.
What it does:
Guarantees that a driver's "accept" and the system's offer timeout cannot
both win for the same trip. Whoever acquires the trip lock first owns the
outcome; the loser gets TripLockConflict ("offer expired / taken").
Locks expire on their own after a few seconds so a crashed holder never
blocks a trip forever.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional

from queues.errors import FairDispatchError

SYSTEM_OWNER = "system"


class TripLockConflict(FairDispatchError):
    """Raised when the trip lock is already held by someone else."""

    def __init__(self, trip_id: str, holder: Optional[str] = None):
        super().__init__(f"Trip {trip_id} expired or taken (held by {holder})")
        self.trip_id = trip_id
        self.holder = holder


@dataclass(frozen=True)
class TripLock:
    trip_id: str
    owner: str
    expires_at: float


class TripLockManager:
    def __init__(self, ttl_seconds: float = 30, clock: Callable[[], float] = time.time):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._locks: Dict[str, TripLock] = {}
        self._mutex = threading.Lock()

    def acquire(
        self,
        trip_id: str,
        owner: str,
        *,
        now: Optional[float] = None,
        ttl_seconds: Optional[float] = None,
    ) -> TripLock:
        """
        Set-if-absent with expiry. Raises TripLockConflict when a live lock
        exists, even if `owner` is the current holder (no re-entry).
        """
        now = self.clock() if now is None else now
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds

        with self._mutex:
            existing = self._locks.get(trip_id)
            if existing is not None and existing.expires_at > now:
                raise TripLockConflict(trip_id, existing.owner)

            lock = TripLock(trip_id=trip_id, owner=owner, expires_at=now + ttl)
            self._locks[trip_id] = lock
            return lock

    def release(self, trip_id: str, owner: str) -> bool:
        """Only the holder can release; returns whether a lock was released."""
        with self._mutex:
            existing = self._locks.get(trip_id)
            if existing is None or existing.owner != owner:
                return False
            del self._locks[trip_id]
            return True

    def holder(self, trip_id: str, now: Optional[float] = None) -> Optional[str]:
        now = self.clock() if now is None else now
        with self._mutex:
            existing = self._locks.get(trip_id)
            if existing is None or existing.expires_at <= now:
                return None
            return existing.owner

    def purge_expired(self, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        with self._mutex:
            expired = [trip_id for trip_id, lock in self._locks.items() if lock.expires_at <= now]
            for trip_id in expired:
                del self._locks[trip_id]
            return len(expired)

    def __len__(self) -> int:
        with self._mutex:
            return len(self._locks)

    @contextmanager
    def lock(self, trip_id: str, owner: str, *, now: Optional[float] = None) -> Iterator[TripLock]:
        """
        Hold the trip lock for the duration of the block, then release it.
        """
        acquired = self.acquire(trip_id, owner, now=now)
        try:
            yield acquired
        finally:
            self.release(trip_id, owner)
