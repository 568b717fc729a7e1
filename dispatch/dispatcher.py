"""
Purpose: Orchestrator / decision pipeline (the "glue").
What it does:
Owns the dispatch loop. Drivers come online and are placed in a station queue
(or left roaming), riders submit requests, and every tick:

1. drains the inbox of driver/rider events (accept, reject, cancel, complete)
2. expires offers nobody answered and searches nobody could serve
3. runs one matcher cycle over pending requests and idle drivers
4. turns each match into an offer the driver has to accept in time

Driver and rider events are messages on a thread-safe queue, applied in
arrival order by whichever thread runs tick(). Ticks never overlap.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

from drivers.models import Driver, DriverStatus
from drivers.policy import DispatchPolicy, default_dispatch_policy, dispatch_policy_from_env
from queues.errors import FairDispatchError, StoreUnavailable
from queues.models import QueuePosition
from queues.policy import FairnessWeights, default_weights, weights_from_env
from queues.station_queue import StationFairQueue
from queues.store import QueueStore
from stations.geofence import StationRegistry
from stations.models import LatLng

from .audit import MatchLog
from .locks import SYSTEM_OWNER, TripLockConflict, TripLockManager
from .matcher import DispatchMatcher
from .models import (
    CycleResult,
    DispatchMessage,
    MatchRecord,
    Offer,
    OfferAccepted,
    OfferRejected,
    Ride,
    RideCancelled,
    RideRequest,
    RideStatus,
    TripCompleted,
)
from .state_machines.driver_state import (
    DriverStateException,
    handle_driver_acceptance,
    handle_go_offline,
    handle_go_online,
    handle_release,
    handle_trip_completion,
)
from .state_machines.ride_state import (
    RideStateException,
    cancel_ride,
    expire_ride,
    return_ride_to_search,
    transition_ride_to_accepted,
    transition_ride_to_completed,
    transition_ride_to_matched,
)

logger = logging.getLogger(__name__)

ACTIVE_RIDE_STATUSES = (RideStatus.SEARCHING, RideStatus.MATCHED, RideStatus.ACCEPTED)

# a message failing with one of these is logged and dropped
HANDLER_ERRORS = (FairDispatchError, DriverStateException, RideStateException)


def _rider_owner(rider_id: str) -> str:
    return f"rider:{rider_id}"


class Dispatcher:
    """
    Coordinates station queues, the matcher and trip locks across cycles.
    """

    def __init__(
        self,
        registry: StationRegistry,
        store: Optional[QueueStore] = None,
        *,
        policy: Optional[DispatchPolicy] = None,
        weights: Optional[FairnessWeights] = None,
        match_log: Optional[MatchLog] = None,
        lock_manager: Optional[TripLockManager] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.store = store if store is not None else QueueStore()
        self.policy = policy or default_dispatch_policy()
        self.weights = weights or default_weights()
        self.clock = clock
        self.match_log = match_log if match_log is not None else MatchLog()
        self.lock_manager = lock_manager or TripLockManager(self.policy.trip_lock_ttl_seconds, clock)

        self.matcher = DispatchMatcher(
            self.store,
            policy=self.policy,
            weights=self.weights,
            match_log=self.match_log,
        )
        self.queues: Dict[str, StationFairQueue] = {
            station.id: StationFairQueue(station.id, self.store, self.weights)
            for station in registry
        }

        self.inbox: "queue.Queue[DispatchMessage]" = queue.Queue()
        self._backlog: Deque[DispatchMessage] = deque()

        self._rides: Dict[str, Ride] = {}    # rider_id -> latest ride
        self._offers: Dict[str, Offer] = {}  # trip_id -> offer awaiting an answer
        self._trips: Dict[str, Offer] = {}   # trip_id -> accepted offer

        self._state_lock = threading.RLock()
        self._cycle_lock = threading.Lock()

    @classmethod
    def from_env(cls, registry: StationRegistry, **kwargs) -> Dispatcher:
        return cls(
            registry,
            policy=dispatch_policy_from_env(),
            weights=weights_from_env(),
            **kwargs,
        )

    # --- Drivers ---

    def register_driver(self, driver: Driver) -> None:
        """Seed or refresh the driver record the engine reads (rating, trips, status)."""
        self.store.put_driver(driver)

    def go_online(self, driver_id: str, location: LatLng, now: Optional[float] = None) -> Optional[str]:
        """
        Mark a driver idle at `location` and queue them at the station they
        are standing in. Returns the station id, or None when roaming.
        """
        now = self._now(now)
        with self.store.transaction() as tx:
            driver = tx.get_driver(driver_id) or Driver(id=driver_id, location=location)
            tx.put_driver(handle_go_online(driver, location, now))
            return self._enter_station(driver_id, location, now)

    def update_location(self, driver_id: str, location: LatLng, now: Optional[float] = None) -> Optional[str]:
        """
        Location ping. An idle roaming driver who walks into a station joins its queue.
        """
        now = self._now(now)
        with self.store.transaction() as tx:
            driver = tx.update_driver(driver_id, location=location)
            station_id = tx.station_of(driver_id)
            if station_id is not None or driver.status != DriverStatus.IDLE:
                return station_id
            return self._enter_station(driver_id, location, now)

    def go_offline(self, driver_id: str) -> None:
        with self.store.transaction() as tx:
            station_id = tx.station_of(driver_id)
            if station_id is not None:
                self.queues[station_id].remove(driver_id)
            driver = tx.get_driver(driver_id)
            if driver is not None:
                tx.put_driver(handle_go_offline(driver))
        logger.info(f"Driver {driver_id} went offline")

    def queue_status(self, driver_id: str, now: Optional[float] = None) -> Optional[QueuePosition]:
        """Position and live score of a queued driver, None when roaming."""
        station_id = self.store.station_of(driver_id)
        if station_id is None:
            return None
        return self.queues[station_id].position(driver_id, self._now(now))

    def queue_board(self, station_id: str, now: Optional[float] = None) -> List[QueuePosition]:
        return self.queues[station_id].snapshot(self._now(now))

    # --- Riders and driver answers ---

    def submit_request(self, request: RideRequest) -> Ride:
        if request.target_station_id and request.target_station_id not in self.registry:
            raise ValueError(f"Unknown station {request.target_station_id}")

        with self._state_lock:
            existing = self._rides.get(request.rider_id)
            if existing is not None and existing.status in ACTIVE_RIDE_STATUSES:
                raise ValueError(f"Rider {request.rider_id} already has an active ride")
            ride = Ride(request=request)
            self._rides[request.rider_id] = ride

        logger.info(f"Rider {request.rider_id} is searching")
        return ride

    def accept_offer(self, trip_id: str, driver_id: str, now: Optional[float] = None) -> Offer:
        """
        Driver taps "accept". Takes the trip lock right away so a concurrent
        timeout cannot also win; the state change is applied on the next tick.
        Raises TripLockConflict when the offer already expired or was taken.
        """
        now = self._now(now)
        with self._state_lock:
            offer = self._offers.get(trip_id)
            if offer is None or offer.driver_id != driver_id:
                raise TripLockConflict(trip_id)
            self.lock_manager.acquire(trip_id, driver_id, now=now)
            self.post(OfferAccepted(trip_id=trip_id, driver_id=driver_id, at=now))
        return offer

    def reject_offer(self, trip_id: str, driver_id: str, now: Optional[float] = None) -> None:
        self.post(OfferRejected(trip_id=trip_id, driver_id=driver_id, at=self._now(now)))

    def cancel_request(self, rider_id: str, now: Optional[float] = None) -> None:
        """
        Rider cancels. An open offer is locked for the rider right away so a
        later accept fails with TripLockConflict. If the driver already holds
        the lock, their accept is queued ahead and the cancel then releases
        the accepted trip instead.
        """
        now = self._now(now)
        with self._state_lock:
            ride = self._rides.get(rider_id)
            if ride is not None and ride.status == RideStatus.MATCHED and ride.trip_id in self._offers:
                try:
                    self.lock_manager.acquire(ride.trip_id, _rider_owner(rider_id), now=now)
                except TripLockConflict:
                    logger.info(f"Rider {rider_id} cancelled after trip {ride.trip_id} was accepted")
            self.post(RideCancelled(rider_id=rider_id, at=now))

    def complete_trip(self, trip_id: str, now: Optional[float] = None) -> None:
        self.post(TripCompleted(trip_id=trip_id, at=self._now(now)))

    def post(self, message: DispatchMessage) -> None:
        self.inbox.put(message)

    def ride(self, rider_id: str) -> Optional[Ride]:
        with self._state_lock:
            return self._rides.get(rider_id)

    def open_offers(self) -> List[Offer]:
        with self._state_lock:
            return list(self._offers.values())

    def pending_requests(self) -> List[RideRequest]:
        with self._state_lock:
            return [ride.request for ride in self._rides.values() if ride.status == RideStatus.SEARCHING]

    # --- Loop ---

    def tick(self, now: Optional[float] = None) -> CycleResult:
        """
        One dispatch cycle. A store outage fails the cycle closed: nothing is
        applied, the error is logged and the next tick tries again.
        """
        now = self._now(now)
        with self._cycle_lock, self._state_lock:
            self.lock_manager.purge_expired(now)
            try:
                self._drain_inbox(now)
                self._expire_offers(now)
                self._expire_searches(now)

                result = self.matcher.run_cycle(
                    self.pending_requests(),
                    self.store.drivers_with_status(DriverStatus.IDLE),
                    now,
                )
            except StoreUnavailable as exc:
                logger.error(f"Dispatch cycle failed closed: {exc}")
                return CycleResult(matches=[], unmatched=self.pending_requests())

            self._open_offers(result.matches, now)
            return result

    def serve(self, stop_event: Optional[threading.Event] = None) -> None:
        """
        Run ticks every policy.tick_seconds until `stop_event` is set.
        Intended for a dedicated thread or process.
        """
        stop_event = stop_event or threading.Event()
        logger.info(f"Dispatch loop started ({self.policy.tick_seconds}s ticks)")
        while not stop_event.is_set():
            self.tick()
            stop_event.wait(self.policy.tick_seconds)
        logger.info("Dispatch loop stopped")

    # --- Inbox handling ---

    def _drain_inbox(self, now: float) -> None:
        while True:
            try:
                self._backlog.append(self.inbox.get_nowait())
            except queue.Empty:
                break

        # a message leaves the backlog once applied or rejected by its handler;
        # a store outage keeps it for the next tick
        while self._backlog:
            message = self._backlog[0]
            try:
                self._handle(message, message.at if message.at is not None else now)
            except StoreUnavailable:
                raise
            except HANDLER_ERRORS as exc:
                logger.error(f"Dropping dispatch message {message!r}: {exc}")
            self._backlog.popleft()

    def _handle(self, message: DispatchMessage, now: float) -> None:
        if isinstance(message, OfferAccepted):
            self._on_accepted(message, now)
        elif isinstance(message, OfferRejected):
            self._on_rejected(message, now)
        elif isinstance(message, RideCancelled):
            self._on_cancelled(message, now)
        elif isinstance(message, TripCompleted):
            self._on_completed(message, now)
        else:
            raise TypeError(f"Unknown dispatch message {message!r}")

    def _on_accepted(self, message: OfferAccepted, now: float) -> None:
        offer = self._offers.get(message.trip_id)
        if offer is None or offer.driver_id != message.driver_id:
            logger.warning(f"Late accept for trip {message.trip_id} by {message.driver_id} ignored")
            self.lock_manager.release(message.trip_id, message.driver_id)
            return

        with self.store.transaction() as tx:
            tx.put_driver(handle_driver_acceptance(tx.get_driver(offer.driver_id)))

        del self._offers[offer.trip_id]
        self._trips[offer.trip_id] = offer
        self.lock_manager.release(offer.trip_id, offer.driver_id)
        ride = self._rides.get(offer.rider_id)
        if ride is not None:
            transition_ride_to_accepted(ride)
        logger.info(f"Driver {offer.driver_id} accepted trip {offer.trip_id}")

    def _on_rejected(self, message: OfferRejected, now: float) -> None:
        offer = self._offers.get(message.trip_id)
        if offer is None or offer.driver_id != message.driver_id:
            return

        try:
            self.lock_manager.acquire(offer.trip_id, message.driver_id, now=now)
        except TripLockConflict:
            logger.warning(f"Reject for trip {offer.trip_id} lost the trip lock; ignored")
            return

        self._release_offer(offer, message.driver_id, now)
        logger.info(f"Driver {offer.driver_id} rejected trip {offer.trip_id}")

    def _on_cancelled(self, message: RideCancelled, now: float) -> None:
        ride = self._rides.get(message.rider_id)
        if ride is None or ride.status not in ACTIVE_RIDE_STATUSES:
            return

        bound = self._offers if ride.status == RideStatus.MATCHED else self._trips
        offer = bound.get(ride.trip_id) if ride.trip_id else None
        if offer is not None:
            self._release_driver(offer.driver_id, offer.station_id, now)
            del bound[offer.trip_id]

        cancel_ride(ride)
        if ride.trip_id:
            self.lock_manager.release(ride.trip_id, _rider_owner(ride.rider_id))
        logger.info(f"Rider {ride.rider_id} cancelled")

    def _on_completed(self, message: TripCompleted, now: float) -> None:
        trip = self._trips.get(message.trip_id)
        if trip is None:
            logger.warning(f"Completion for unknown trip {message.trip_id} ignored")
            return

        ride = self._rides.get(trip.rider_id)
        dropoff = ride.request.destination if ride is not None else None

        with self.store.transaction() as tx:
            driver = handle_trip_completion(tx.get_driver(trip.driver_id), now, dropoff)
            tx.put_driver(driver)
            self._enter_station(driver.id, driver.location, now)

        del self._trips[trip.trip_id]
        if ride is not None:
            transition_ride_to_completed(ride)
        logger.info(f"Trip {trip.trip_id} completed by driver {trip.driver_id}")

    # --- Timeouts ---

    def _expire_offers(self, now: float) -> None:
        for offer in list(self._offers.values()):
            if now - offer.offered_at < self.policy.offer_timeout_seconds:
                continue
            try:
                self.lock_manager.acquire(offer.trip_id, SYSTEM_OWNER, now=now)
            except TripLockConflict:
                # the driver accepted in time; their message is in the inbox
                continue
            self._release_offer(offer, SYSTEM_OWNER, now)
            logger.warning(f"Offer {offer.trip_id} to driver {offer.driver_id} timed out")

    def _expire_searches(self, now: float) -> None:
        for ride in list(self._rides.values()):
            if ride.status != RideStatus.SEARCHING:
                continue
            if ride.request.wait_seconds(now) >= self.policy.search_timeout_seconds:
                expire_ride(ride)
                logger.warning(f"Rider {ride.rider_id} timed out with no driver")

    # --- Helpers ---

    def _open_offers(self, matches: List[MatchRecord], now: float) -> None:
        for record in matches:
            ride = self._rides[record.rider_id]
            transition_ride_to_matched(ride, record.id, record.driver_id)
            self._offers[record.id] = Offer(
                trip_id=record.id,
                rider_id=record.rider_id,
                driver_id=record.driver_id,
                station_id=record.station_id,
                offered_at=now,
            )

    def _release_offer(self, offer: Offer, lock_owner: str, now: float) -> None:
        """
        Called with the trip lock held by `lock_owner`; the lock is given back
        once done. If the store is down the offer stays open so the next tick
        can retry the release.
        """
        try:
            self._release_driver(offer.driver_id, offer.station_id, now)
        except StoreUnavailable:
            self.lock_manager.release(offer.trip_id, lock_owner)
            raise
        except HANDLER_ERRORS as exc:
            logger.error(f"Could not requeue driver {offer.driver_id} after trip {offer.trip_id}: {exc}")

        del self._offers[offer.trip_id]
        self.lock_manager.release(offer.trip_id, lock_owner)
        ride = self._rides.get(offer.rider_id)
        if ride is not None and ride.status == RideStatus.MATCHED:
            return_ride_to_search(ride)

    def _release_driver(self, driver_id: str, station_id: Optional[str], now: float) -> None:
        """
        Put a bound driver back into rotation: their station queue with the
        idle-time penalty, or plain IDLE when they were matched while roaming.
        """
        with self.store.transaction() as tx:
            driver = tx.get_driver(driver_id)
            if driver is None:
                return
            if driver.status == DriverStatus.BUSY:
                driver = handle_release(driver, now)
                tx.put_driver(driver)

            if station_id is not None:
                self.queues[station_id].timeout_requeue(driver_id, now)
            elif driver.status == DriverStatus.MATCHED:
                tx.put_driver(handle_release(driver, now))

    def _enter_station(self, driver_id: str, location: LatLng, now: float) -> Optional[str]:
        station_id = self.registry.resolve(location)
        if station_id is None:
            logger.info(f"Driver {driver_id} is roaming")
            return None
        self.queues[station_id].join(driver_id, now)
        return station_id

    def _now(self, now: Optional[float]) -> float:
        return self.clock() if now is None else now
