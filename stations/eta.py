#Purpose: Trip estimate heuristic.
#Converts a straight-line distance into the numbers shown before a ride is booked:
#estimated road distance (great-circle * road factor for winding streets)
#estimated duration (city motorcycle pace, ~3 minutes per km)
#No routing engine is involved.

from __future__ import annotations

import math
from dataclasses import dataclass

from .geofence import haversine_km
from .models import LatLng

ROAD_FACTOR = 1.4
MINUTES_PER_KM = 3


@dataclass(frozen=True)
class TripEstimate:
    distance_km: float
    duration_mins: int


def estimate_trip(
    origin: LatLng,
    destination: LatLng,
    *,
    road_factor: float = ROAD_FACTOR,
    minutes_per_km: float = MINUTES_PER_KM,
) -> TripEstimate:
    if road_factor < 1.0:
        raise ValueError("road_factor must be >= 1.0")

    distance_km = haversine_km(origin, destination) * road_factor
    return TripEstimate(
        distance_km=distance_km,
        duration_mins=int(math.ceil(distance_km * minutes_per_km)),
    )
