"""
Purpose: Core data models for the drivers domain.
What it does:
Defines the structure of a Driver and their live status as the engine sees it.
The authoritative record (identity, earnings, documents) lives in an external
service; this is the snapshot the queue and the matcher read.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from stations.models import LatLng


class DriverStatus(str, Enum):
    """
    Standardizes the state a driver can be in.
    Only IDLE drivers may join a station queue or be matched.
    """
    IDLE = "IDLE"
    MATCHED = "MATCHED"
    BUSY = "BUSY"
    OFFLINE = "OFFLINE"


@dataclass(frozen=True)
class Driver:
    """
    A stateless representation of a Driver at a specific point in time.
    """
    id: str
    location: LatLng
    status: DriverStatus = DriverStatus.OFFLINE

    # Fairness attributes
    rating: float = 5.0
    trips_today: int = 0
    last_trip_at: Optional[float] = None  # epoch seconds, None until the first trip
    idle_since: Optional[float] = None    # epoch seconds, reset whenever status becomes IDLE

    @classmethod
    def new(
        cls,
        driver_id: str,
        lat: float,
        lng: float,
        status: str | DriverStatus = DriverStatus.OFFLINE,
        rating: float = 5.0,
        trips_today: int = 0,
        last_trip_at: Optional[float] = None,
        idle_since: Optional[float] = None,
    ) -> Driver:
        if isinstance(status, str):
            status = DriverStatus(status)

        if not 0.0 <= rating <= 5.0:
            raise ValueError(f"Driver {driver_id}: rating must be within 0..5, got {rating}")

        if trips_today < 0:
            raise ValueError(f"Driver {driver_id}: trips_today must be >= 0")

        return cls(
            id=driver_id,
            location=(float(lat), float(lng)),
            status=status,
            rating=float(rating),
            trips_today=int(trips_today),
            last_trip_at=last_trip_at,
            idle_since=idle_since,
        )

    @property
    def is_available(self) -> bool:
        return self.status == DriverStatus.IDLE
