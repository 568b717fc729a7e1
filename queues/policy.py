"""
Purpose: Central configuration for fairness scoring (single source of truth).
What it does:

Stores the four weights of the fairness formula:

IDLE = 0.5          priority on waiting time (first-come-first-serve base)

RECENCY = 0.3       priority on drivers without a recent job (anti-starvation)

TRIP_EQUITY = 0.15  help drivers with fewer trips today

RATING = 0.05       small incentive for a high rating

Weights are read once at startup and never change while the process runs.

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

WEIGHT_SUM_TOLERANCE = 0.01


@dataclass(frozen=True)
class FairnessWeights:
    """
    Weights of the fairness score.

    Notes:
    - the idle and recency terms are per-second, so they dominate quickly;
      trip equity and rating act as tie-breakers between similar waits.
    - the weights should sum to roughly 1.0.
    """

    idle: float = 0.5
    recency: float = 0.3
    trip_equity: float = 0.15
    rating: float = 0.05

    @property
    def total(self) -> float:
        return self.idle + self.recency + self.trip_equity + self.rating

    def validate(self) -> None:
        """
        Basic sanity checks. Call once at startup.
        """
        # idle and recency must be strictly positive, otherwise the score
        # stops growing with waiting time and drivers can starve
        if self.idle <= 0:
            raise ValueError("idle weight must be > 0")

        if self.recency <= 0:
            raise ValueError("recency weight must be > 0")

        if self.trip_equity < 0:
            raise ValueError("trip_equity weight must be >= 0")

        if self.rating < 0:
            raise ValueError("rating weight must be >= 0")

        if abs(self.total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"fairness weights must sum to ~1.0, got {self.total:.4f}")


def default_weights() -> FairnessWeights:
    """
    Convenience factory for the default weights.
    """
    w = FairnessWeights()
    w.validate()
    return w


def weights_from_env() -> FairnessWeights:
    """
    Default weights overridden by FAIRNESS_W_* environment variables (or .env).
    """
    load_dotenv()
    defaults = FairnessWeights()
    w = FairnessWeights(
        idle=float(os.getenv("FAIRNESS_W_IDLE", defaults.idle)),
        recency=float(os.getenv("FAIRNESS_W_RECENCY", defaults.recency)),
        trip_equity=float(os.getenv("FAIRNESS_W_TRIP_EQUITY", defaults.trip_equity)),
        rating=float(os.getenv("FAIRNESS_W_RATING", defaults.rating)),
    )
    w.validate()
    return w
