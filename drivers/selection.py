"""
Purpose: Business rules and distance math for finding drivers near a pickup.
What it does:
Accepts a pickup point and a pool of drivers, filters out ineligible drivers,
and returns the remaining ones within the matching radius, closest first.
"""

from typing import Iterable, List, Optional, Set, Tuple

from stations.geofence import haversine_km
from stations.models import LatLng

from .models import Driver, DriverStatus
from .policy import DispatchPolicy, default_dispatch_policy


def filter_available_drivers(
    drivers: Iterable[Driver],
    exclude_ids: Optional[Set[str]] = None,
) -> List[Driver]:
    """
    Returns only drivers who are IDLE and not excluded
    (e.g. already claimed earlier in the same dispatch cycle).
    """
    exclude_ids = exclude_ids or set()
    available = []

    for driver in drivers:
        if driver.status != DriverStatus.IDLE:
            continue

        if driver.id in exclude_ids:
            continue

        available.append(driver)

    return available


def drivers_within_radius(
    pickup_location: LatLng,
    drivers: Iterable[Driver],
    policy: Optional[DispatchPolicy] = None,
    exclude_ids: Optional[Set[str]] = None,
) -> List[Tuple[Driver, float]]:
    """
    Given a pickup location, keep available drivers whose great-circle distance
    is within policy.matching_radius_km.

    Returns (driver, distance_km) pairs sorted closest first (ties: driver id).
    """
    policy = policy or default_dispatch_policy()

    nearby: List[Tuple[Driver, float]] = []
    for driver in filter_available_drivers(drivers, exclude_ids):
        distance_km = haversine_km(driver.location, pickup_location)
        if distance_km <= policy.matching_radius_km:
            nearby.append((driver, distance_km))

    nearby.sort(key=lambda pair: (pair[1], pair[0].id))
    return nearby
