#Purpose: Station geofencing logic.
#Decides which station (if any) a point belongs to.
#Typical responsibilities:
#great-circle (haversine) distance between two points
#scan stations in a stable order and return the first whose acceptance radius contains the point
#report "roaming" (None) when no station matches
#Output: a station id, or None for roaming actors (radius matching only, never a station queue).

from __future__ import annotations

import math
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from .models import DEFAULT_ACCEPTANCE_RADIUS_M, LatLng, Station

EARTH_RADIUS_M = 6371e3


def haversine_m(a: LatLng, b: LatLng) -> float:
    """Great-circle distance in meters between two (lat, lng) points."""
    lat1, lng1 = a
    lat2, lng2 = b
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    x = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(x), math.sqrt(1 - x))


def haversine_km(a: LatLng, b: LatLng) -> float:
    return haversine_m(a, b) / 1000.0


class StationRegistry:
    """
    Station master data, owned by whoever bootstraps the engine.

    Iteration follows registration order so resolve() is deterministic
    when acceptance circles overlap.
    """

    def __init__(self, stations: Optional[Iterable[Station]] = None):
        self._stations: Dict[str, Station] = {}
        for station in stations or []:
            self.add(station)

    def add(self, station: Station) -> None:
        if station.id in self._stations:
            raise ValueError(f"Station {station.id} already registered")
        self._stations[station.id] = station

    def get(self, station_id: str) -> Optional[Station]:
        return self._stations.get(station_id)

    def __contains__(self, station_id: object) -> bool:
        return station_id in self._stations

    def __iter__(self) -> Iterator[Station]:
        return iter(list(self._stations.values()))

    def __len__(self) -> int:
        return len(self._stations)

    def ids(self) -> List[str]:
        return list(self._stations.keys())

    def resolve(self, point: LatLng) -> Optional[str]:
        """
        Return the first station whose acceptance radius contains `point`,
        or None when the point is roaming.
        """
        for station in self._stations.values():
            if haversine_m(point, station.centroid) <= station.acceptance_radius_m:
                return station.id
        return None

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping],
        *,
        default_radius_m: float = DEFAULT_ACCEPTANCE_RADIUS_M,
    ) -> StationRegistry:
        """
        Build a registry from plain dict rows (CSV / JSON master data).
        Expected keys: id, lat, lng and optionally radius, name.
        """
        registry = cls()
        for row in records:
            registry.add(
                Station.new(
                    station_id=str(row["id"]),
                    lat=float(row["lat"]),
                    lng=float(row["lng"]),
                    acceptance_radius_m=float(row.get("radius") or default_radius_m),
                    name=str(row.get("name") or ""),
                )
            )
        return registry


def resolve_station(registry: StationRegistry, point: LatLng) -> Optional[str]:
    """Functional alias of StationRegistry.resolve for callers holding a registry."""
    return registry.resolve(point)
