import os

import numpy as np
import pandas as pd

# Center around Harare, Zimbabwe
CENTER_LAT = -17.824858
CENTER_LNG = 31.053028

# ~111 km per degree of latitude
METERS_PER_DEGREE = 111_000


def generate_mock_drivers(
    num_stations=8,
    num_drivers=60,
    num_requests=120,
    station_share=0.7,
    horizon_seconds=600,
    output_dir="sampledata",
    seed=None,
):
    """
    Generates stations, drivers and ride requests for the dispatch simulation.

    Most drivers are dropped inside a station's acceptance radius so the
    station queues fill up; the rest roam the city. Requests arrive spread
    over `horizon_seconds`, some of them targeted at a station.
    """
    rng = np.random.default_rng(seed)
    os.makedirs(output_dir, exist_ok=True)

    # 1. Stations scattered within ~4km of the center
    stations = []
    for station_index in range(num_stations):
        stations.append({
            "id": f"ST-{str(station_index + 1).zfill(2)}",
            "name": f"Station {station_index + 1}",
            "lat": np.round(CENTER_LAT + rng.uniform(-0.035, 0.035), 6),
            "lng": np.round(CENTER_LNG + rng.uniform(-0.035, 0.035), 6),
            "radius": 100.0,
        })

    # 2. Drivers: either parked at a station (within ~60m) or roaming (+/- 5km)
    drivers = []
    for driver_index in range(num_drivers):
        if rng.random() < station_share:
            station = stations[rng.integers(0, num_stations)]
            offset = 60 / METERS_PER_DEGREE
            lat = station["lat"] + rng.uniform(-offset, offset) / 1.5
            lng = station["lng"] + rng.uniform(-offset, offset) / 1.5
        else:
            lat = CENTER_LAT + rng.uniform(-0.045, 0.045)
            lng = CENTER_LNG + rng.uniform(-0.045, 0.045)

        drivers.append({
            "driver_id": f"DRV-{str(driver_index + 1).zfill(3)}",
            "lat": np.round(lat, 6),
            "lng": np.round(lng, 6),
            "rating": np.round(rng.uniform(3.5, 5.0), 2),
            "trips_today": int(rng.poisson(4)),
            # seconds before the simulation starts since the last trip
            "last_trip_ago_s": int(rng.integers(0, 3600)),
            "online_at_s": int(rng.integers(0, 120)),
        })

    # 3. Ride requests
    requests = []
    for request_index in range(num_requests):
        pickup_lat = CENTER_LAT + rng.uniform(-0.04, 0.04)
        pickup_lng = CENTER_LNG + rng.uniform(-0.04, 0.04)
        target = ""
        if rng.random() < 0.3:
            station = stations[rng.integers(0, num_stations)]
            target = station["id"]
            pickup_lat, pickup_lng = station["lat"], station["lng"]

        requests.append({
            "rider_id": f"R-{str(request_index + 1).zfill(4)}",
            "requested_at_s": int(rng.integers(0, horizon_seconds)),
            "pickup_lat": np.round(pickup_lat, 6),
            "pickup_lng": np.round(pickup_lng, 6),
            "dropoff_lat": np.round(pickup_lat + rng.uniform(-0.05, 0.05), 6),
            "dropoff_lng": np.round(pickup_lng + rng.uniform(-0.05, 0.05), 6),
            "target_station_id": target,
        })

    # 4. Save to CSV
    pd.DataFrame(stations).to_csv(os.path.join(output_dir, "stations.csv"), index=False)
    pd.DataFrame(drivers).to_csv(os.path.join(output_dir, "drivers.csv"), index=False)
    requests_df = pd.DataFrame(requests).sort_values("requested_at_s")
    requests_df.to_csv(os.path.join(output_dir, "ride_requests.csv"), index=False)

    print(f"Generated {num_stations} stations, {num_drivers} drivers and {num_requests} requests in '{output_dir}'")
    print(f"  targeted requests: {(requests_df['target_station_id'] != '').sum()}")


if __name__ == "__main__":
    generate_mock_drivers(seed=7)
