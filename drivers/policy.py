"""
Purpose: Central configuration for driver selection and the dispatch loop.
What it does:

Stores all tunable thresholds/caps for finding drivers and handling offers:

MATCHING_RADIUS_KM = 3.0
OFFER_TIMEOUT_SECONDS = 30

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from stations.models import DEFAULT_ACCEPTANCE_RADIUS_M


@dataclass(frozen=True)
class DispatchPolicy:
    """
    Central configuration for driver matching and dispatch thresholds.
    """

    # --- Radius matching ---
    # Requests without a target station only consider drivers whose great-circle
    # distance to the pickup is within this radius.
    matching_radius_km: float = 3.0

    # --- Station geofence ---
    # Default acceptance radius for stations loaded without an explicit one.
    station_radius_m: float = DEFAULT_ACCEPTANCE_RADIUS_M

    # --- Offer handling ---
    # How long a matched driver has to accept before the offer expires and
    # they are requeued with the idle-time penalty.
    offer_timeout_seconds: int = 30

    # Expiry of the exclusive per-trip lock that serialises accept vs timeout.
    trip_lock_ttl_seconds: int = 30

    # --- Rider side ---
    # A ride still unmatched after this long is given up (TIMEOUT_NO_DRIVER).
    search_timeout_seconds: int = 60

    # --- Loop ---
    # Seconds between dispatch cycles.
    tick_seconds: float = 1.0

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.matching_radius_km <= 0:
            raise ValueError("matching_radius_km must be > 0")

        if self.station_radius_m <= 0:
            raise ValueError("station_radius_m must be > 0")

        if self.offer_timeout_seconds <= 0:
            raise ValueError("offer_timeout_seconds must be > 0")

        if self.trip_lock_ttl_seconds <= 0:
            raise ValueError("trip_lock_ttl_seconds must be > 0")

        if self.search_timeout_seconds <= 0:
            raise ValueError("search_timeout_seconds must be > 0")

        if self.tick_seconds <= 0:
            raise ValueError("tick_seconds must be > 0")


def default_dispatch_policy() -> DispatchPolicy:
    """
    Convenience factory for the default policy.
    """
    p = DispatchPolicy()
    p.validate()
    return p


def dispatch_policy_from_env() -> DispatchPolicy:
    """
    Default policy overridden by DISPATCH_* / STATION_* environment variables (or .env).
    """
    load_dotenv()
    defaults = DispatchPolicy()
    p = DispatchPolicy(
        matching_radius_km=float(os.getenv("DISPATCH_MATCHING_RADIUS_KM", defaults.matching_radius_km)),
        station_radius_m=float(os.getenv("STATION_RADIUS_METERS", defaults.station_radius_m)),
        offer_timeout_seconds=int(os.getenv("DISPATCH_OFFER_TIMEOUT_SECONDS", defaults.offer_timeout_seconds)),
        trip_lock_ttl_seconds=int(os.getenv("DISPATCH_TRIP_LOCK_TTL_SECONDS", defaults.trip_lock_ttl_seconds)),
        search_timeout_seconds=int(os.getenv("DISPATCH_SEARCH_TIMEOUT_SECONDS", defaults.search_timeout_seconds)),
        tick_seconds=float(os.getenv("DISPATCH_TICK_SECONDS", defaults.tick_seconds)),
    )
    p.validate()
    return p
