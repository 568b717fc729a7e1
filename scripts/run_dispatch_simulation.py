import logging
import os
import random
from typing import List

import pandas as pd

from dispatch.dispatcher import Dispatcher
from dispatch.locks import TripLockConflict
from dispatch.models import RideRequest
from drivers.models import Driver
from drivers.policy import default_dispatch_policy
from queues.errors import FairDispatchError
from stations.eta import estimate_trip
from stations.geofence import StationRegistry

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class SimulatedClock:
    """Manually advanced clock so a ten-minute simulation runs instantly."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def load_registry(filepath="sampledata/stations.csv") -> StationRegistry:
    df = pd.read_csv(os.path.join(BASE_DIR, filepath))
    return StationRegistry.from_records(df.to_dict("records"))


def load_drivers(filepath="sampledata/drivers.csv", start: float = 0.0) -> pd.DataFrame:
    df = pd.read_csv(os.path.join(BASE_DIR, filepath))
    df["last_trip_at"] = start - df["last_trip_ago_s"]
    return df.sort_values("online_at_s")


def load_requests(filepath="sampledata/ride_requests.csv", start: float = 0.0) -> List[RideRequest]:
    df = pd.read_csv(os.path.join(BASE_DIR, filepath))
    df["target_station_id"] = df["target_station_id"].fillna("")

    requests = []
    for row in df.itertuples(index=False):
        requests.append(
            RideRequest(
                rider_id=row.rider_id,
                pickup=(row.pickup_lat, row.pickup_lng),
                request_timestamp=start + row.requested_at_s,
                target_station_id=row.target_station_id or None,
                destination=(row.dropoff_lat, row.dropoff_lng),
            )
        )
    return requests


def run_simulation(duration_s=900, accept_probability=0.8, seed=7):
    print("=== STARTING FAIR DISPATCH SIMULATION ===")
    random.seed(seed)
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    # 1. Load Data
    clock = SimulatedClock(start=1_700_000_000.0)
    start = clock.now
    registry = load_registry()
    drivers_df = load_drivers(start=start)
    requests = load_requests(start=start)
    print(f"Loaded {len(registry)} Stations, {len(drivers_df)} Drivers and {len(requests)} Requests.\n")

    # 2. Configure System
    policy = default_dispatch_policy()
    dispatcher = Dispatcher(registry, policy=policy, clock=clock)

    for row in drivers_df.itertuples(index=False):
        dispatcher.register_driver(
            Driver.new(
                row.driver_id,
                row.lat,
                row.lng,
                rating=row.rating,
                trips_today=row.trips_today,
                last_trip_at=row.last_trip_at,
            )
        )

    pending_online = list(drivers_df.itertuples(index=False))
    pending_requests = list(requests)
    trips_in_progress = {}  # trip_id -> completion time
    rejected = 0

    # 3. Run one tick per second
    while clock.now - start < duration_s:
        now = clock.now

        while pending_online and start + pending_online[0].online_at_s <= now:
            row = pending_online.pop(0)
            dispatcher.go_online(row.driver_id, (row.lat, row.lng))

        while pending_requests and pending_requests[0].request_timestamp <= now:
            dispatcher.submit_request(pending_requests.pop(0))

        for trip_id, finish_at in list(trips_in_progress.items()):
            if finish_at <= now:
                dispatcher.complete_trip(trip_id)
                del trips_in_progress[trip_id]

        result = dispatcher.tick()

        # Simulation: each driver decides right away; silence means the offer times out
        for record in result.matches:
            roll = random.random()
            if roll < accept_probability:
                try:
                    dispatcher.accept_offer(record.id, record.driver_id)
                except TripLockConflict:
                    continue
                ride = dispatcher.ride(record.rider_id)
                estimate = estimate_trip(ride.request.pickup, ride.request.destination)
                trips_in_progress[record.id] = now + estimate.duration_mins * 60
            elif roll < accept_probability + (1 - accept_probability) / 2:
                dispatcher.reject_offer(record.id, record.driver_id)
                rejected += 1

        clock.advance(policy.tick_seconds)

    # 4. Report
    output_path = os.path.join(BASE_DIR, "dispatch_results.csv")
    dispatcher.match_log.to_frame().to_csv(output_path, index=False)

    summary = dispatcher.match_log.summary()
    print("\n=== SIMULATION COMPLETE ===")
    for key, value in summary.items():
        print(f"{key:>22}: {value:.2f}" if isinstance(value, float) else f"{key:>22}: {value}")
    print(f"{'rejected offers':>22}: {rejected}")

    print("\nMost matched drivers:")
    print(dispatcher.match_log.trips_per_driver().head(5).to_string())

    for station in registry:
        board = dispatcher.queue_board(station.id)
        print(f"  {station.id}: {len(board)} drivers waiting")

    print(f"Results written to '{output_path}'.")


if __name__ == "__main__":
    try:
        run_simulation()
    except FairDispatchError as exc:
        print(f"[FAILED] {exc}")
