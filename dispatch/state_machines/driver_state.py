from dataclasses import replace
from typing import Optional

from drivers.models import Driver, DriverStatus
from stations.models import LatLng


class DriverStateException(Exception):
    """Raised when an invalid driver transition is attempted."""
    pass


def _require(driver: Driver, *allowed: DriverStatus) -> None:
    if driver.status not in allowed:
        expected = ", ".join(status.value for status in allowed)
        raise DriverStateException(
            f"Driver {driver.id} is {driver.status.value}; expected one of: {expected}"
        )


def handle_go_online(driver: Driver, location: LatLng, now: float) -> Driver:
    """
    Driver opens the app and becomes available at `location`.
    Going online again while already idle only refreshes the location.
    """
    _require(driver, DriverStatus.OFFLINE, DriverStatus.IDLE)
    idle_since = driver.idle_since if driver.status == DriverStatus.IDLE else now
    return replace(driver, status=DriverStatus.IDLE, location=location, idle_since=idle_since)


def handle_driver_acceptance(driver: Driver) -> Driver:
    """
    Called when a driver officially accepts a matched trip.
    """
    _require(driver, DriverStatus.MATCHED)
    return replace(driver, status=DriverStatus.BUSY)


def handle_release(driver: Driver, now: float) -> Driver:
    """
    The bound trip fell through (offer expired, rejected, rider cancelled).
    The driver is available again; idle time restarts from `now`.
    """
    _require(driver, DriverStatus.MATCHED, DriverStatus.BUSY)
    return replace(driver, status=DriverStatus.IDLE, idle_since=now)


def handle_trip_completion(driver: Driver, now: float, dropoff: Optional[LatLng] = None) -> Driver:
    """
    Trip finished: one more trip today, recency clock restarts, driver is idle
    at the dropoff point.
    """
    _require(driver, DriverStatus.BUSY)
    return replace(
        driver,
        status=DriverStatus.IDLE,
        trips_today=driver.trips_today + 1,
        last_trip_at=now,
        idle_since=now,
        location=dropoff if dropoff is not None else driver.location,
    )


def handle_go_offline(driver: Driver) -> Driver:
    """
    Drivers mid-trip cannot go offline; they must finish or be released first.
    """
    _require(driver, DriverStatus.IDLE, DriverStatus.OFFLINE)
    return replace(driver, status=DriverStatus.OFFLINE, idle_since=None)
