import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from drivers.models import Driver, DriverStatus
from queues.errors import AlreadyQueued, NotAvailable, NotQueued, StoreUnavailable
from queues.scoring import score
from queues.station_queue import StationFairQueue

from conftest import ST2, idle_driver


@pytest.fixture
def station(store):
    return StationFairQueue("ST-1", store)


@pytest.fixture
def other_station(store):
    return StationFairQueue("ST-2", store)


def test_join_then_pop_returns_driver(store, station):
    idle_driver(store, "d1")
    station.join("d1", now=100.0)

    assert len(station) == 1
    assert station.pop_best(now=110.0) == "d1"
    assert len(station) == 0
    assert store.get_driver("d1").status == DriverStatus.MATCHED


def test_pop_on_empty_queue_returns_none(station):
    assert station.pop_best(now=0.0) is None


def test_join_snapshots_driver_record(store, station):
    idle_driver(store, "d1", rating=4.2, trips_today=3, last_trip_at=40.0)
    entry = station.join("d1", now=100.0)

    assert entry.station_id == "ST-1"
    assert entry.join_timestamp == 100.0
    assert entry.last_trip_timestamp == 40.0
    assert entry.total_trips_today == 3
    assert entry.rating == 4.2


def test_driver_without_trips_counts_recency_from_join(store, station):
    idle_driver(store, "d1")
    entry = station.join("d1", now=100.0)
    assert entry.last_trip_timestamp == 100.0


def test_join_twice_raises_already_queued(store, station, other_station):
    idle_driver(store, "d1")
    station.join("d1", now=100.0)

    with pytest.raises(AlreadyQueued):
        station.join("d1", now=101.0)

    # one entry per driver across every station
    with pytest.raises(AlreadyQueued) as exc_info:
        other_station.join("d1", now=102.0)
    assert exc_info.value.station_id == "ST-1"
    assert len(station) == 1
    assert len(other_station) == 0


@pytest.mark.parametrize("status", [DriverStatus.OFFLINE, DriverStatus.BUSY, DriverStatus.MATCHED])
def test_join_requires_idle_status(store, station, status):
    store.put_driver(Driver(id="d1", location=(0.0, 0.0), status=status))
    with pytest.raises(NotAvailable):
        station.join("d1", now=100.0)
    assert len(station) == 0


def test_join_unknown_driver_is_not_available(station):
    with pytest.raises(NotAvailable):
        station.join("ghost", now=100.0)


def test_longest_idle_driver_is_popped_first(store, station):
    for driver_id in ("d1", "d2", "d3"):
        idle_driver(store, driver_id)
    station.join("d2", now=100.0)
    station.join("d1", now=105.0)
    station.join("d3", now=110.0)

    assert [station.pop_best(now=200.0) for _ in range(3)] == ["d2", "d1", "d3"]


def test_recent_trip_lowers_priority(store, station):
    """
    Same join time; the driver whose last trip was longer ago goes first.
    """
    idle_driver(store, "fresh", last_trip_at=95.0)
    idle_driver(store, "starved", last_trip_at=10.0)
    station.join("fresh", now=100.0)
    station.join("starved", now=100.0)

    assert station.pop_best(now=120.0) == "starved"


def test_concurrent_pops_yield_distinct_drivers(store, station):
    """
    N drivers, N concurrent pops: every driver is dispatched exactly once.
    """
    n = 40
    for i in range(n):
        idle_driver(store, f"d{i:02d}")
        station.join(f"d{i:02d}", now=float(i))

    barrier = threading.Barrier(8)

    def pop(_):
        try:
            barrier.wait(timeout=1)
        except threading.BrokenBarrierError:
            pass
        return station.pop_best(now=1_000.0)

    with ThreadPoolExecutor(max_workers=8) as pool:
        popped = list(pool.map(pop, range(n)))

    assert None not in popped
    assert len(set(popped)) == n
    assert station.pop_best(now=1_000.0) is None


def test_concurrent_joins_admit_driver_once(store, station, other_station):
    idle_driver(store, "d1")
    queues = [station, other_station] * 4

    def join(queue):
        try:
            queue.join("d1", now=100.0)
            return True
        except AlreadyQueued:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(join, queues))

    assert results.count(True) == 1
    assert len(station) + len(other_station) == 1


def test_timeout_requeue_demotes_and_preserves_stats(store, station):
    idle_driver(store, "d1", rating=4.7, trips_today=5, last_trip_at=50.0)
    idle_driver(store, "d2", rating=4.7, trips_today=5, last_trip_at=50.0)
    original = station.join("d1", now=100.0)
    station.join("d2", now=110.0)
    assert station.position("d1", now=120.0).position == 1

    requeued = station.timeout_requeue("d1", now=130.0)

    assert requeued.join_timestamp == 130.0
    assert requeued.last_trip_timestamp == original.last_trip_timestamp
    assert requeued.total_trips_today == original.total_trips_today
    assert requeued.rating == original.rating
    assert [p.driver_id for p in station.snapshot(now=130.0)] == ["d2", "d1"]
    assert len(station) == 2


def test_timeout_requeue_after_pop_releases_matched_driver(store, station):
    idle_driver(store, "d1", trips_today=2)
    station.join("d1", now=100.0)
    assert station.pop_best(now=110.0) == "d1"

    entry = station.timeout_requeue("d1", now=140.0)

    assert entry.join_timestamp == 140.0
    assert entry.total_trips_today == 2
    assert store.station_of("d1") == "ST-1"
    driver = store.get_driver("d1")
    assert driver.status == DriverStatus.IDLE
    assert driver.idle_since == 140.0


def test_timeout_requeue_without_entry_raises(store, station):
    idle_driver(store, "d1")
    with pytest.raises(NotQueued):
        station.timeout_requeue("d1", now=100.0)


def test_timeout_requeue_refuses_busy_driver(store, station):
    idle_driver(store, "d1")
    station.join("d1", now=100.0)
    station.pop_best(now=110.0)
    store.update_driver("d1", status=DriverStatus.BUSY)

    with pytest.raises(NotAvailable):
        station.timeout_requeue("d1", now=120.0)
    assert len(station) == 0


def test_claim_removes_specific_driver(store, station):
    idle_driver(store, "d1")
    idle_driver(store, "d2")
    station.join("d1", now=100.0)
    station.join("d2", now=101.0)

    claimed = station.claim("d2", now=110.0)

    assert claimed.driver_id == "d2"
    assert store.get_driver("d2").status == DriverStatus.MATCHED
    assert station.claim("d2", now=111.0) is None
    assert [p.driver_id for p in station.snapshot(now=111.0)] == ["d1"]


def test_remove_keeps_status(store, station):
    idle_driver(store, "d1")
    station.join("d1", now=100.0)

    assert station.remove("d1") is True
    assert station.remove("d1") is False
    assert store.get_driver("d1").status == DriverStatus.IDLE
    assert len(station) == 0


def test_position_and_snapshot_report_live_scores(store, station):
    idle_driver(store, "d1", location=ST2)
    idle_driver(store, "d2", location=ST2)
    first = station.join("d1", now=100.0)
    station.join("d2", now=150.0)

    board = station.snapshot(now=200.0)

    assert [(p.driver_id, p.position) for p in board] == [("d1", 1), ("d2", 2)]
    assert board[0].score == pytest.approx(score(first, 200.0))
    assert board[0].score > board[1].score
    assert station.position("d2", now=200.0).position == 2
    assert station.position("missing", now=200.0) is None
    assert station.score_of("d1", now=200.0) == pytest.approx(board[0].score)


def test_store_outage_fails_closed(store, station):
    idle_driver(store, "d1")
    store.set_available(False)

    with pytest.raises(StoreUnavailable):
        station.join("d1", now=100.0)
    with pytest.raises(StoreUnavailable):
        station.pop_best(now=100.0)

    store.set_available(True)
    assert len(station) == 0


def test_pop_retries_when_top_is_taken_between_reads(store, station, monkeypatch, caplog):
    idle_driver(store, "d1")
    idle_driver(store, "d2")
    station.join("d1", now=100.0)
    station.join("d2", now=110.0)

    original_peek = store.peek_top
    calls = []

    def peek_then_lose_top(station_id):
        top = original_peek(station_id)
        if not calls:
            # another dispatcher takes d1 right after this read
            station.claim(top.entry.driver_id, now=120.0)
        calls.append(top.entry.driver_id if top else None)
        return top

    monkeypatch.setattr(store, "peek_top", peek_then_lose_top)

    with caplog.at_level(logging.WARNING):
        assert station.pop_best(now=120.0) == "d2"

    assert calls == ["d1", "d2"]
    assert "Lost race for driver d1" in caplog.text
    assert store.get_driver("d1").status == DriverStatus.MATCHED
    assert len(station) == 0


def test_repeated_requeues_keep_heap_bounded(store, station):
    idle_driver(store, "d1")
    idle_driver(store, "d2")
    station.join("d1", now=100.0)
    station.join("d2", now=100.0)

    now = 100.0
    for _ in range(50):
        now += 10
        station.claim("d1", now=now)
        station.timeout_requeue("d1", now=now)

    assert len(station) == 2
    assert store.heap_size("ST-1") <= 2 * len(station) + 1
    assert station.pop_best(now=now + 1) == "d2"
