import pandas as pd
import pytest

from dispatch.audit import COLUMNS, MatchLog
from dispatch.models import MatchRecord


def make_record(index, driver_id="d1", wait=10.0, distance=1.0, rivals=0, station_id="ST-1"):
    return MatchRecord(
        id=f"trip-{index}",
        rider_id=f"r{index}",
        driver_id=driver_id,
        station_id=station_id,
        distance_km=distance,
        rider_wait_seconds=wait,
        fairness_score=100.0,
        competing_candidate_count=rivals,
        driver_idle_seconds=60.0,
        timestamp=1_000.0 + index,
    )


@pytest.fixture
def match_log():
    log = MatchLog()
    log.extend([
        make_record(1, "d1", wait=10.0, distance=0.5, rivals=2),
        make_record(2, "d2", wait=20.0, distance=1.5, rivals=0, station_id=None),
        make_record(3, "d1", wait=60.0, distance=1.0, rivals=1),
    ])
    return log


def test_empty_log_summary_is_zero():
    summary = MatchLog().summary()
    assert summary["matches"] == 0
    assert summary["avg_wait_seconds"] == 0.0
    assert summary["contested_share"] == 0.0


def test_summary_metrics(match_log):
    summary = match_log.summary()

    assert summary["matches"] == 3
    assert summary["avg_wait_seconds"] == pytest.approx(30.0)
    assert summary["median_wait_seconds"] == pytest.approx(20.0)
    assert summary["avg_distance_km"] == pytest.approx(1.0)
    assert summary["contested_share"] == pytest.approx(2 / 3)
    assert summary["avg_competitors"] == pytest.approx(1.0)
    assert summary["distinct_drivers"] == 2


def test_frame_has_one_row_per_match(match_log):
    df = match_log.to_frame()

    assert list(df.columns) == COLUMNS
    assert len(df) == 3
    assert pd.isna(df.loc[1, "station_id"])


def test_trips_per_driver(match_log):
    counts = match_log.trips_per_driver()
    assert counts.to_dict() == {"d1": 2, "d2": 1}
    assert counts.index[0] == "d1"


def test_log_is_append_only(match_log):
    records = match_log.records()
    records.clear()

    assert len(match_log) == 3
    match_log.append(make_record(4))
    assert [r.id for r in match_log][-1] == "trip-4"
