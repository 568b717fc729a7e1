"""
Purpose: The batch ride-to-driver matcher (one call per dispatch cycle).
What it does:

1. Orders pending requests longest-waiting first (rider-side starvation guard).
2. Builds each request's candidates: the target station's queue, or drivers
   within the matching radius of the pickup (candidate_filter.py).
3. Skips drivers already claimed earlier in the cycle.
4. Leaves requests without candidates pending for the next cycle.
5. Ranks candidates by fairness score, nearest pickup as tie-break (scoring.py).
6. Emits a MatchRecord per match, including how many rivals the winner beat.
7. Commits every dequeue + bind of the cycle in one store transaction.

The whole cycle (snapshot, planning, commit) runs inside one store
transaction, so no queue write can interleave with it. A binding whose
driver no longer matches the snapshot the caller passed in is dropped and
its request stays pending. If the store is down, StoreUnavailable is raised
before anything is applied.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from drivers.models import Driver, DriverStatus
from drivers.policy import DispatchPolicy, default_dispatch_policy
from queues.policy import FairnessWeights, default_weights
from queues.station_queue import StationFairQueue
from queues.store import QueueStore

from .audit import MatchLog
from .candidate_filter import build_candidates
from .models import Candidate, CycleResult, MatchRecord, RideRequest
from .scoring import rank_candidates

logger = logging.getLogger(__name__)

# (request, winner, competing candidate count)
PlannedMatch = Tuple[RideRequest, Candidate, int]


class DispatchMatcher:
    """
    Pairs pending ride requests with available drivers, one cycle at a time.
    Not re-entrant: callers must not overlap cycles (Dispatcher.tick guarantees it).
    """

    def __init__(
        self,
        store: QueueStore,
        *,
        policy: Optional[DispatchPolicy] = None,
        weights: Optional[FairnessWeights] = None,
        match_log: Optional[MatchLog] = None,
    ):
        self.store = store
        self.policy = policy or default_dispatch_policy()
        self.weights = weights or default_weights()
        self.match_log = match_log if match_log is not None else MatchLog()
        self._queues: Dict[str, StationFairQueue] = {}

    def run_cycle(
        self,
        requests: Iterable[RideRequest],
        drivers: Iterable[Driver],
        now: float,
    ) -> CycleResult:
        ordered = sorted(
            requests,
            key=lambda request: (-request.wait_seconds(now), request.rider_id),
        )
        drivers = list(drivers)

        with self.store.transaction():
            planned, unmatched = self._plan(ordered, drivers, now)
            committed, dropped = self._commit(planned, now)

        matches = [self._to_record(request, winner, rivals, now) for request, winner, rivals in committed]
        self.match_log.extend(matches)

        for record in matches:
            logger.info(
                f"Matched rider {record.rider_id} -> driver {record.driver_id} "
                f"({record.reason}, {record.distance_km:.2f} km)"
            )

        # keep the longest-waiting-first order for the caller
        still_pending = {request.rider_id for request in unmatched + dropped}
        unmatched = [request for request in ordered if request.rider_id in still_pending]

        if unmatched:
            logger.info(f"{len(unmatched)} request(s) left pending for the next cycle")

        return CycleResult(matches=matches, unmatched=unmatched)

    # --- Planning ---

    def _plan(
        self,
        ordered: Sequence[RideRequest],
        drivers: List[Driver],
        now: float,
    ) -> Tuple[List[PlannedMatch], List[RideRequest]]:
        claimed: Set[str] = set()
        planned: List[PlannedMatch] = []
        unmatched: List[RideRequest] = []

        for request in ordered:
            candidates = build_candidates(
                request,
                drivers,
                self.store,
                now,
                policy=self.policy,
                weights=self.weights,
                claimed_ids=claimed,
            )
            if not candidates:
                unmatched.append(request)
                continue

            winner = rank_candidates(candidates)[0]
            claimed.add(winner.driver_id)
            planned.append((request, winner, len(candidates) - 1))

        return planned, unmatched

    # --- Commit ---

    def _commit(
        self,
        planned: List[PlannedMatch],
        now: float,
    ) -> Tuple[List[PlannedMatch], List[RideRequest]]:
        """
        Validate every binding first, then apply them all.
        Runs inside the caller's transaction.
        """
        valid: List[PlannedMatch] = []
        dropped: List[RideRequest] = []

        for planned_match in planned:
            request, winner, _ = planned_match
            if self._still_bindable(winner):
                valid.append(planned_match)
            else:
                logger.warning(
                    f"Driver {winner.driver_id} changed since the snapshot; "
                    f"rider {request.rider_id} stays pending"
                )
                dropped.append(request)

        for _, winner, _ in valid:
            if winner.station_id is not None:
                self._queue(winner.station_id).claim(winner.driver_id, now)
            else:
                current = self.store.get_driver(winner.driver_id) or winner.driver
                self.store.put_driver(replace(current, status=DriverStatus.MATCHED))

        return valid, dropped

    def _still_bindable(self, winner: Candidate) -> bool:
        current = self.store.get_driver(winner.driver_id)
        if current is not None and current.status != DriverStatus.IDLE:
            return False

        stored = self.store.get_entry(winner.driver_id)
        if winner.station_id is None:
            # roaming at snapshot time; must not have joined a queue since
            return stored is None
        return stored is not None and stored.version == winner.version

    def _queue(self, station_id: str) -> StationFairQueue:
        queue = self._queues.get(station_id)
        if queue is None:
            queue = StationFairQueue(station_id, self.store, self.weights)
            self._queues[station_id] = queue
        return queue

    @staticmethod
    def _to_record(request: RideRequest, winner: Candidate, rivals: int, now: float) -> MatchRecord:
        return MatchRecord(
            id=str(uuid.uuid4()),
            rider_id=request.rider_id,
            driver_id=winner.driver_id,
            station_id=winner.station_id,
            distance_km=winner.distance_km,
            rider_wait_seconds=request.wait_seconds(now),
            fairness_score=winner.score,
            competing_candidate_count=rivals,
            driver_idle_seconds=max(0.0, now - winner.entry.join_timestamp),
            timestamp=now,
        )


def run_dispatch_cycle(
    requests: Iterable[RideRequest],
    drivers: Iterable[Driver],
    now: float,
    *,
    store: QueueStore,
    policy: Optional[DispatchPolicy] = None,
    weights: Optional[FairnessWeights] = None,
) -> CycleResult:
    """
    One-shot convenience wrapper around DispatchMatcher.run_cycle.
    """
    matcher = DispatchMatcher(store, policy=policy, weights=weights)
    return matcher.run_cycle(requests, drivers, now)
