"""
Purpose: Station master data.
What it does:
Defines the Station record (a fixed queueing point where idle drivers gather)
and the coordinate type shared by the geofence and the dispatch layers.

Rule: No distance math here. Models only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

# internal coordinate type: (lat, lng)
LatLng = Tuple[float, float]

DEFAULT_ACCEPTANCE_RADIUS_M = 100.0


@dataclass(frozen=True)
class Station:
    """
    A station ("win") drivers queue at.
    Immutable at runtime; station CRUD lives outside the engine.
    """

    id: str
    centroid: LatLng
    acceptance_radius_m: float = DEFAULT_ACCEPTANCE_RADIUS_M
    name: str = ""

    @classmethod
    def new(
        cls,
        station_id: str,
        lat: float,
        lng: float,
        acceptance_radius_m: float = DEFAULT_ACCEPTANCE_RADIUS_M,
        name: str = "",
    ) -> Station:
        if acceptance_radius_m <= 0:
            raise ValueError(f"Station {station_id}: acceptance_radius_m must be > 0")
        return cls(
            id=station_id,
            centroid=(float(lat), float(lng)),
            acceptance_radius_m=float(acceptance_radius_m),
            name=name,
        )
