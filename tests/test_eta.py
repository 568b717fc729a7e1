import math

import pytest

from stations.eta import estimate_trip
from stations.geofence import haversine_km

from conftest import ST1, ST2, north_of


def test_estimate_applies_road_factor_and_pace():
    estimate = estimate_trip(ST1, north_of(ST1, 1_000))

    assert estimate.distance_km == pytest.approx(1.4)
    # 4.2 minutes rounded up
    assert estimate.duration_mins == 5


def test_estimate_between_stations():
    estimate = estimate_trip(ST1, ST2)
    expected_km = haversine_km(ST1, ST2) * 1.4

    assert estimate.distance_km == pytest.approx(expected_km)
    assert estimate.duration_mins == math.ceil(expected_km * 3)


def test_same_point_is_zero():
    estimate = estimate_trip(ST1, ST1)
    assert estimate.distance_km == 0
    assert estimate.duration_mins == 0


def test_road_factor_below_one_is_rejected():
    with pytest.raises(ValueError):
        estimate_trip(ST1, ST2, road_factor=0.9)
