"""
Purpose: Domain models for the dispatch pipeline.
What it does:
- RideRequest: an ephemeral pickup request, input of one matching attempt
- Candidate: a driver that passed the hard filters, with distance and score
- MatchRecord: the append-only audit record of one successful match
- CycleResult: output of one dispatch cycle (matches + still-pending requests)
- Ride / Offer: the dispatcher's bookkeeping between a match and its outcome
- Messages: typed driver/rider events delivered to the dispatcher's inbox

Rule: No matching logic. Models only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from drivers.models import Driver
from queues.models import QueueEntry
from stations.models import LatLng


@dataclass(frozen=True)
class RideRequest:
    rider_id: str
    pickup: LatLng
    request_timestamp: float
    target_station_id: Optional[str] = None
    destination: Optional[LatLng] = None

    def wait_seconds(self, now: float) -> float:
        return max(0.0, now - self.request_timestamp)


@dataclass(frozen=True)
class Candidate:
    """
    A driver eligible for one request. `version` is the stored queue entry
    version for queued drivers and None for roaming drivers.
    """
    driver: Driver
    entry: QueueEntry
    distance_km: float
    score: float
    version: Optional[int] = None

    @property
    def driver_id(self) -> str:
        return self.driver.id

    @property
    def station_id(self) -> Optional[str]:
        return self.entry.station_id


@dataclass(frozen=True)
class MatchRecord:
    """
    Output of a successful match. Never mutated; used for audit and metrics.
    """
    id: str  # trip id
    rider_id: str
    driver_id: str
    station_id: Optional[str]
    distance_km: float
    rider_wait_seconds: float
    fairness_score: float
    competing_candidate_count: int
    driver_idle_seconds: float
    timestamp: float

    @property
    def is_contested(self) -> bool:
        return self.competing_candidate_count > 0

    @property
    def reason(self) -> str:
        station_label = f"[{self.station_id}] " if self.station_id else ""
        if self.is_contested:
            competition = f"won against {self.competing_candidate_count} rivals"
        else:
            competition = "sole candidate"
        return f"{station_label}{competition} idle:{self.driver_idle_seconds:.0f}s"


@dataclass(frozen=True)
class CycleResult:
    matches: List[MatchRecord] = field(default_factory=list)
    unmatched: List[RideRequest] = field(default_factory=list)


class RideStatus(Enum):
    SEARCHING = "SEARCHING"
    MATCHED = "MATCHED"
    ACCEPTED = "ACCEPTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    TIMEOUT_NO_DRIVER = "TIMEOUT_NO_DRIVER"


@dataclass
class Ride:
    """
    A rider's request as tracked by the dispatcher across cycles.
    """
    request: RideRequest
    status: RideStatus = RideStatus.SEARCHING
    trip_id: Optional[str] = None
    driver_id: Optional[str] = None

    @property
    def rider_id(self) -> str:
        return self.request.rider_id


@dataclass(frozen=True)
class Offer:
    trip_id: str
    rider_id: str
    driver_id: str
    station_id: Optional[str]
    offered_at: float


# --- Inbox messages ---

@dataclass(frozen=True)
class OfferAccepted:
    trip_id: str
    driver_id: str
    at: Optional[float] = None


@dataclass(frozen=True)
class OfferRejected:
    trip_id: str
    driver_id: str
    at: Optional[float] = None


@dataclass(frozen=True)
class RideCancelled:
    rider_id: str
    at: Optional[float] = None


@dataclass(frozen=True)
class TripCompleted:
    trip_id: str
    at: Optional[float] = None


DispatchMessage = Union[OfferAccepted, OfferRejected, RideCancelled, TripCompleted]
