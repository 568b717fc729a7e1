#Expose the high-level pipeline pieces:
#Candidate filtering (hard rules)
#Scoring / ranking
#Matcher (one batch cycle) and the Dispatcher service that runs it every tick
#Trip locks and the match audit log

from .models import (
    RideRequest,
    Candidate,
    MatchRecord,
    CycleResult,
    Ride,
    RideStatus,
    Offer,
    OfferAccepted,
    OfferRejected,
    RideCancelled,
    TripCompleted,
)
from .candidate_filter import build_candidates
from .scoring import rank_candidates, select_winner
from .audit import MatchLog
from .locks import SYSTEM_OWNER, TripLock, TripLockConflict, TripLockManager
from .matcher import DispatchMatcher, run_dispatch_cycle
from .dispatcher import Dispatcher  #the service to run: go_online / submit_request / tick

__all__ = [
    "RideRequest",
    "Candidate",
    "MatchRecord",
    "CycleResult",
    "Ride",
    "RideStatus",
    "Offer",
    "OfferAccepted",
    "OfferRejected",
    "RideCancelled",
    "TripCompleted",
    "build_candidates",
    "rank_candidates",
    "select_winner",
    "MatchLog",
    "SYSTEM_OWNER",
    "TripLock",
    "TripLockConflict",
    "TripLockManager",
    "DispatchMatcher",
    "run_dispatch_cycle",
    "Dispatcher",
]
