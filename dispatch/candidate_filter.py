#Purpose: Hard eligibility filtering (rule gates) for one ride request.
#Builds the candidate set before ranking.
#Typical responsibilities:
#available (IDLE) drivers only
#not already claimed earlier in the same cycle
#station affinity: a request with a target station only sees that station's queue
#radius fallback: otherwise drivers within the matching radius of the pickup
#Output: "rule-qualified drivers" with distance and fairness score (still not ranked).

from __future__ import annotations

from typing import Iterable, List, Optional, Set

from drivers.models import Driver
from drivers.policy import DispatchPolicy, default_dispatch_policy
from drivers.selection import drivers_within_radius, filter_available_drivers
from queues.models import QueueEntry
from queues.policy import FairnessWeights, default_weights
from queues.scoring import score
from queues.store import QueueStore
from stations.geofence import haversine_km

from .models import Candidate, RideRequest


def build_candidates(
    request: RideRequest,
    drivers: Iterable[Driver],
    store: QueueStore,
    now: float,
    *,
    policy: Optional[DispatchPolicy] = None,
    weights: Optional[FairnessWeights] = None,
    claimed_ids: Optional[Set[str]] = None,
) -> List[Candidate]:
    """
    Candidates for `request` among `drivers`.

    Queued drivers are scored from their stored queue entry. Roaming drivers
    get an entry built from their record, with join time = when they became idle.
    """
    policy = policy or default_dispatch_policy()
    weights = weights or default_weights()

    pool = filter_available_drivers(drivers, claimed_ids)
    candidates: List[Candidate] = []

    if request.target_station_id:
        for driver in pool:
            stored = store.get_entry(driver.id)
            if stored is None or stored.entry.station_id != request.target_station_id:
                continue
            candidates.append(
                Candidate(
                    driver=driver,
                    entry=stored.entry,
                    distance_km=haversine_km(driver.location, request.pickup),
                    score=score(stored.entry, now, weights),
                    version=stored.version,
                )
            )
        return candidates

    for driver, distance_km in drivers_within_radius(request.pickup, pool, policy):
        stored = store.get_entry(driver.id)
        if stored is not None:
            entry = stored.entry
            version = stored.version
        else:
            joined = driver.idle_since if driver.idle_since is not None else now
            entry = QueueEntry.from_driver(driver, None, joined)
            version = None

        candidates.append(
            Candidate(
                driver=driver,
                entry=entry,
                distance_km=distance_km,
                score=score(entry, now, weights),
                version=version,
            )
        )

    return candidates
