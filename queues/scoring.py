"""
Purpose: The fairness score (the "who has waited longest, all things considered" layer).
What it does:

Computes for each queued driver:

idle_seconds    = now - join_timestamp

recency_seconds = now - last_trip_timestamp

trip_factor     = 1 / max(1, total_trips_today)

score = w_idle*idle + w_recency*recency + w_trip_equity*trip_factor + w_rating*rating

Also provides the time-invariant rank a queue stores per entry. Idle and
recency both grow by one second per second for every live entry, so

score(entry, t) == rank_value(entry) + t * (w_idle + w_recency)

for any t after the entry joined. The offset is the same for every entry,
which means stored ranks never need rewriting as time passes.

Rule: Pure functions only; no queues, no state.
"""

from __future__ import annotations

from typing import Optional

from .models import QueueEntry
from .policy import FairnessWeights, default_weights


def trip_factor(total_trips_today: int) -> float:
    return 1.0 / max(1, total_trips_today)


def score(entry: QueueEntry, now: float, weights: Optional[FairnessWeights] = None) -> float:
    """
    Fairness score of an entry at time `now`. Higher is better.
    Only relative order within a candidate set matters; there is no fixed range.
    """
    weights = weights or default_weights()

    idle_seconds = max(0.0, now - entry.join_timestamp)
    recency_seconds = max(0.0, now - entry.last_trip_timestamp)

    return (
        weights.idle * idle_seconds
        + weights.recency * recency_seconds
        + weights.trip_equity * trip_factor(entry.total_trips_today)
        + weights.rating * entry.rating
    )


def fixed_score(entry: QueueEntry, now: float, weights: Optional[FairnessWeights] = None) -> float:
    """
    Everything except the idle term, evaluated at `now`.
    """
    weights = weights or default_weights()
    return score(entry, now, weights) - weights.idle * max(0.0, now - entry.join_timestamp)


def rank_value(entry: QueueEntry, weights: Optional[FairnessWeights] = None) -> float:
    """
    Time-invariant sort key stored by the queue store.

    Equals fixed_score(entry, join) - join * w_idle, minus the recency growth
    that every entry shares (join * w_recency).
    """
    weights = weights or default_weights()
    return (
        weights.trip_equity * trip_factor(entry.total_trips_today)
        + weights.rating * entry.rating
        - weights.idle * entry.join_timestamp
        - weights.recency * entry.last_trip_timestamp
    )


def score_from_rank(rank: float, now: float, weights: Optional[FairnessWeights] = None) -> float:
    """
    Turn a stored rank back into the live score at `now`.
    """
    weights = weights or default_weights()
    return rank + now * (weights.idle + weights.recency)
