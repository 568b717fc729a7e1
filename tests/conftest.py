import math

import pytest

from drivers.models import Driver, DriverStatus
from queues.store import QueueStore
from stations.geofence import EARTH_RADIUS_M, StationRegistry
from stations.models import Station

# Station centroids around Harare, ~2km apart
ST1 = (-17.824858, 31.053028)
ST2 = (-17.806000, 31.045000)

METERS_PER_DEGREE_LAT = EARTH_RADIUS_M * math.pi / 180


def north_of(point, meters):
    """Point `meters` due north of `point` (exact along a meridian)."""
    lat, lng = point
    return (lat + meters / METERS_PER_DEGREE_LAT, lng)


class FakeClock:
    def __init__(self, start=1_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    return StationRegistry([
        Station.new("ST-1", *ST1, name="Copacabana"),
        Station.new("ST-2", *ST2, name="Fourth Street"),
    ])


@pytest.fixture
def store():
    return QueueStore()


def idle_driver(store, driver_id, location=ST1, **fields):
    """Register an IDLE driver in the store and return it."""
    fields.setdefault("idle_since", 0.0)
    driver = Driver(id=driver_id, location=location, status=DriverStatus.IDLE, **fields)
    store.put_driver(driver)
    return driver
