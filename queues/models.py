"""
Purpose: Domain models for the station queues.
What it does:
- Defines QueueEntry: the snapshot of a driver's fairness attributes taken when
  they join a station queue (join time, last trip time, trips today, rating).
- Defines QueuePosition: a read model of one entry with its live score,
  used by the driver app ("you are #3") and the admin queue board.

Rule: No scoring math, no locking. Models only.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from drivers.models import Driver


@dataclass(frozen=True)
class QueueEntry:
    """
    A driver's place in a station queue.

    Created on join, destroyed on pop/claim, replaced (never mutated) on a
    timeout requeue. station_id is None only for the synthetic entries the
    matcher builds for roaming drivers.
    """

    driver_id: str
    station_id: Optional[str]
    join_timestamp: float

    # snapshot of the driver's record at join time
    last_trip_timestamp: float
    total_trips_today: int
    rating: float

    @staticmethod
    def from_driver(driver: Driver, station_id: Optional[str], now: float) -> QueueEntry:
        # a driver without a completed trip counts recency from the moment they joined
        last_trip = driver.last_trip_at if driver.last_trip_at is not None else now
        return QueueEntry(
            driver_id=driver.id,
            station_id=station_id,
            join_timestamp=now,
            last_trip_timestamp=min(last_trip, now),
            total_trips_today=driver.trips_today,
            rating=driver.rating,
        )

    def requeued(self, now: float, station_id: Optional[str] = None) -> QueueEntry:
        """Same history, fresh join time: only the idle credit is lost."""
        return replace(
            self,
            join_timestamp=now,
            station_id=station_id if station_id is not None else self.station_id,
        )


@dataclass(frozen=True)
class QueuePosition:
    driver_id: str
    station_id: str
    position: int  # 1-based
    score: float
    join_timestamp: float
