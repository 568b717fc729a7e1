"""
Purpose: Append-only stream of MatchRecords for audit and metrics dashboards.
What it does:
- Collects every match the matcher commits (never edits or deletes one)
- Exposes the records as a pandas DataFrame for reporting
- Computes the headline dispatch metrics (rider wait, pickup distance,
  how often the winner had competition)
"""

from __future__ import annotations

import threading
from dataclasses import asdict
from typing import Dict, Iterable, Iterator, List

import pandas as pd

from .models import MatchRecord

COLUMNS = [
    "id",
    "timestamp",
    "rider_id",
    "driver_id",
    "station_id",
    "distance_km",
    "rider_wait_seconds",
    "fairness_score",
    "competing_candidate_count",
    "driver_idle_seconds",
]


class MatchLog:
    def __init__(self):
        self._records: List[MatchRecord] = []
        self._lock = threading.Lock()

    def append(self, record: MatchRecord) -> None:
        with self._lock:
            self._records.append(record)

    def extend(self, records: Iterable[MatchRecord]) -> None:
        with self._lock:
            self._records.extend(records)

    def records(self) -> List[MatchRecord]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[MatchRecord]:
        return iter(self.records())

    def to_frame(self) -> pd.DataFrame:
        rows = [asdict(record) for record in self.records()]
        return pd.DataFrame(rows, columns=COLUMNS)

    def summary(self) -> Dict[str, float]:
        """
        Headline metrics over every recorded match. Zeros when the log is empty.
        """
        df = self.to_frame()
        if df.empty:
            return {
                "matches": 0,
                "avg_wait_seconds": 0.0,
                "median_wait_seconds": 0.0,
                "avg_distance_km": 0.0,
                "contested_share": 0.0,
                "avg_competitors": 0.0,
                "distinct_drivers": 0,
            }

        return {
            "matches": int(len(df)),
            "avg_wait_seconds": float(df["rider_wait_seconds"].mean()),
            "median_wait_seconds": float(df["rider_wait_seconds"].median()),
            "avg_distance_km": float(df["distance_km"].mean()),
            "contested_share": float((df["competing_candidate_count"] > 0).mean()),
            "avg_competitors": float(df["competing_candidate_count"].mean()),
            "distinct_drivers": int(df["driver_id"].nunique()),
        }

    def trips_per_driver(self) -> pd.Series:
        """Match count per driver, most matched first. Spread here is the fairness signal."""
        df = self.to_frame()
        return df.groupby("driver_id").size().sort_values(ascending=False)
