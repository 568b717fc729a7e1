"""
Purpose: The per-station fair queue.
What it does:
- Owns the queue rules for one station on top of the shared QueueStore:
   - join(driver_id, now)
   - pop_best(now)
   - timeout_requeue(driver_id, now)
   - claim(driver_id, now) for the matcher's atomic dequeue + bind
- Provides read models for the driver app and the admin board:
   - position(driver_id, now)
   - snapshot(now)

Each entry is stored under a time-invariant rank (see queues.scoring), so
ordering by rank at any instant equals ordering by the live fairness score
and no background rescoring job is needed.

Per driver:
NotQueued -> Queued (join) -> NotQueued (pop_best / claim)
Queued -> Queued (timeout_requeue, idle credit reset)

Rule: Queue owns state transitions, scoring owns the math.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from drivers.models import DriverStatus

from .errors import AlreadyQueued, NotAvailable, NotQueued
from .models import QueueEntry, QueuePosition
from .policy import FairnessWeights, default_weights
from .scoring import rank_value, score_from_rank
from .store import QueueStore

logger = logging.getLogger(__name__)


class StationFairQueue:
    """
    Fair priority queue of idle drivers at one station.
    Safe to share between threads; every operation is a store transaction.
    """

    def __init__(
        self,
        station_id: str,
        store: QueueStore,
        weights: Optional[FairnessWeights] = None,
    ):
        self.station_id = station_id
        self.store = store
        self.weights = weights or default_weights()

    # --- Public API ---

    def join(self, driver_id: str, now: float) -> QueueEntry:
        """
        Add an idle driver to this station's queue.

        Raises AlreadyQueued if the driver holds an entry at any station and
        NotAvailable if their tracked status is not IDLE. Both checks run in
        the same transaction as the insert.
        """
        with self.store.transaction() as tx:
            current = tx.station_of(driver_id)
            if current is not None:
                raise AlreadyQueued(driver_id, current)

            driver = tx.get_driver(driver_id)
            if driver is None or driver.status != DriverStatus.IDLE:
                raise NotAvailable(driver_id, driver.status if driver else None)

            entry = QueueEntry.from_driver(driver, self.station_id, now)
            tx.insert_entry(entry, rank_value(entry, self.weights))

        logger.info(f"Driver {driver_id} joined station {self.station_id}")
        return entry

    def pop_best(self, now: float) -> Optional[str]:
        """
        Remove and return the highest-scoring driver, or None when empty.

        The top is read and removed in two separate transactions. If another
        caller removed that same entry in between, re-read the new top and try
        again. Every lost race means a competitor consumed one entry, so each
        retry makes progress and the loop ends at the latest when the queue
        runs empty.
        """
        while True:
            with self.store.transaction() as tx:
                top = tx.peek_top(self.station_id)
            if top is None:
                return None

            driver_id = top.entry.driver_id
            with self.store.transaction() as tx:
                removed = tx.remove_entry(self.station_id, driver_id, version=top.version)
                if removed is not None:
                    self._mark_matched(tx, driver_id)

            if removed is not None:
                logger.info(
                    f"Dispatching driver {driver_id} from station {self.station_id} "
                    f"(score {score_from_rank(top.rank, now, self.weights):.2f})"
                )
                return driver_id

            logger.warning(
                f"Lost race for driver {driver_id} at station {self.station_id}, retrying"
            )

    def claim(self, driver_id: str, now: float) -> Optional[QueueEntry]:
        """
        Atomically remove a specific driver and mark them MATCHED.
        Returns the removed entry, or None if the driver is no longer queued here.
        """
        with self.store.transaction() as tx:
            removed = tx.remove_entry(self.station_id, driver_id)
            if removed is not None:
                self._mark_matched(tx, driver_id)
        return removed

    def timeout_requeue(self, driver_id: str, now: float) -> QueueEntry:
        """
        Put a driver back with join time reset to `now`.

        Used when a driver lets an offer expire, rejects it, or is released
        after a rider cancels. Last trip time, trips today and rating come
        from the prior entry, so only the idle credit is lost. A MATCHED
        driver is released to IDLE in the same transaction.
        """
        with self.store.transaction() as tx:
            current_station = tx.station_of(driver_id)
            if current_station is not None:
                prior = tx.remove_entry(current_station, driver_id)
            else:
                prior = tx.last_entry(driver_id)
                if prior is None:
                    raise NotQueued(driver_id)

                driver = tx.get_driver(driver_id)
                if driver is None or driver.status not in (DriverStatus.IDLE, DriverStatus.MATCHED):
                    raise NotAvailable(driver_id, driver.status if driver else None)
                if driver.status == DriverStatus.MATCHED:
                    tx.update_driver(driver_id, status=DriverStatus.IDLE, idle_since=now)

            entry = prior.requeued(now, station_id=self.station_id)
            tx.insert_entry(entry, rank_value(entry, self.weights))

        logger.warning(f"Driver {driver_id} timed out. Re-queued at {self.station_id} with penalty.")
        return entry

    def remove(self, driver_id: str) -> bool:
        """
        Drop a driver from the queue without touching their status
        (going offline, admin override).
        """
        with self.store.transaction() as tx:
            removed = tx.remove_entry(self.station_id, driver_id)
        if removed is not None:
            logger.info(f"Driver {driver_id} removed from station {self.station_id}")
        return removed is not None

    # --- Read models ---

    def score_of(self, driver_id: str, now: float) -> Optional[float]:
        stored = self.store.get_entry(driver_id)
        if stored is None or stored.entry.station_id != self.station_id:
            return None
        return score_from_rank(stored.rank, now, self.weights)

    def position(self, driver_id: str, now: float) -> Optional[QueuePosition]:
        for queued in self.snapshot(now):
            if queued.driver_id == driver_id:
                return queued
        return None

    def snapshot(self, now: float) -> List[QueuePosition]:
        """
        Entries best first with their live score at `now`.
        """
        return [
            QueuePosition(
                driver_id=stored.entry.driver_id,
                station_id=self.station_id,
                position=index,
                score=score_from_rank(stored.rank, now, self.weights),
                join_timestamp=stored.entry.join_timestamp,
            )
            for index, stored in enumerate(self.store.ranked(self.station_id), start=1)
        ]

    def __len__(self) -> int:
        return self.store.count(self.station_id)

    # --- Helpers ---

    @staticmethod
    def _mark_matched(tx: QueueStore, driver_id: str) -> None:
        if tx.get_driver(driver_id) is not None:
            tx.update_driver(driver_id, status=DriverStatus.MATCHED)
