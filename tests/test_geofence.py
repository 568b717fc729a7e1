import pytest

from stations.geofence import StationRegistry, haversine_km, haversine_m, resolve_station
from stations.models import Station

from conftest import ST1, ST2, north_of


def test_driver_inside_acceptance_radius_is_assigned(registry):
    """
    A driver 80m from a 100m-radius station belongs to that station.
    """
    assert registry.resolve(north_of(ST1, 80)) == "ST-1"
    assert resolve_station(registry, north_of(ST2, 80)) == "ST-2"


def test_driver_outside_every_radius_is_roaming(registry):
    assert registry.resolve(north_of(ST1, 150)) is None


def test_radius_boundary_is_inclusive():
    registry = StationRegistry([Station.new("S", 0.0, 0.0, acceptance_radius_m=100)])
    assert registry.resolve(north_of((0.0, 0.0), 99.9)) == "S"
    assert registry.resolve(north_of((0.0, 0.0), 100.1)) is None


def test_overlapping_stations_resolve_to_first_registered():
    """
    Circles overlap: scan order is registration order, never distance.
    """
    registry = StationRegistry([
        Station.new("FIRST", *north_of(ST1, 60), acceptance_radius_m=100),
        Station.new("SECOND", *ST1, acceptance_radius_m=100),
    ])
    # closer to SECOND but inside both circles
    assert registry.resolve(north_of(ST1, 10)) == "FIRST"


def test_duplicate_station_is_rejected(registry):
    with pytest.raises(ValueError):
        registry.add(Station.new("ST-1", 0.0, 0.0))


def test_station_radius_must_be_positive():
    with pytest.raises(ValueError):
        Station.new("S", 0.0, 0.0, acceptance_radius_m=0)


def test_from_records_uses_default_radius():
    registry = StationRegistry.from_records(
        [
            {"id": "A", "lat": ST1[0], "lng": ST1[1]},
            {"id": "B", "lat": ST2[0], "lng": ST2[1], "radius": 250, "name": "Big"},
        ],
        default_radius_m=50,
    )

    assert registry.ids() == ["A", "B"]
    assert registry.get("A").acceptance_radius_m == 50
    assert registry.get("B").acceptance_radius_m == 250
    assert registry.get("B").name == "Big"
    assert "A" in registry and "Z" not in registry
    assert len(registry) == 2


def test_haversine_distances():
    assert haversine_m(ST1, ST1) == 0
    # one degree of latitude on a 6371km sphere
    assert haversine_km((0.0, 0.0), (1.0, 0.0)) == pytest.approx(111.195, rel=1e-4)
    assert haversine_m(ST1, north_of(ST1, 80)) == pytest.approx(80, abs=1e-6)
    assert haversine_m(ST1, ST2) == pytest.approx(haversine_m(ST2, ST1))
