#Marks stations as a package.
#Re-exports the public station API (Station, StationRegistry, haversine helpers,
#estimate_trip) so other modules import from stations without knowing internal file names.
#No business logic.

from .models import Station, LatLng, DEFAULT_ACCEPTANCE_RADIUS_M
from .geofence import StationRegistry, haversine_m, haversine_km, resolve_station
from .eta import TripEstimate, estimate_trip

__all__ = [
    "Station",
    "LatLng",
    "DEFAULT_ACCEPTANCE_RADIUS_M",
    "StationRegistry",
    "haversine_m",
    "haversine_km",
    "resolve_station",
    "TripEstimate",
    "estimate_trip",
]
