from concurrent.futures import ThreadPoolExecutor

import pytest

from dispatch.locks import SYSTEM_OWNER, TripLockConflict, TripLockManager


@pytest.fixture
def locks(clock):
    return TripLockManager(ttl_seconds=30, clock=clock)


def test_first_owner_wins(locks):
    lock = locks.acquire("trip-1", "d1")

    assert lock.owner == "d1"
    assert lock.expires_at == 1_030.0
    with pytest.raises(TripLockConflict) as exc_info:
        locks.acquire("trip-1", SYSTEM_OWNER)
    assert exc_info.value.holder == "d1"
    assert locks.holder("trip-1") == "d1"


def test_lock_is_not_reentrant(locks):
    locks.acquire("trip-1", "d1")
    with pytest.raises(TripLockConflict):
        locks.acquire("trip-1", "d1")


def test_lock_expires_after_ttl(locks, clock):
    locks.acquire("trip-1", "d1")
    clock.advance(30)

    assert locks.holder("trip-1") is None
    assert locks.acquire("trip-1", SYSTEM_OWNER).owner == SYSTEM_OWNER


def test_only_holder_can_release(locks):
    locks.acquire("trip-1", "d1")

    assert locks.release("trip-1", "d2") is False
    assert locks.release("trip-1", "d1") is True
    assert locks.release("trip-1", "d1") is False
    assert locks.acquire("trip-1", "d2").owner == "d2"


def test_context_manager_releases(locks):
    with locks.lock("trip-1", "d1") as held:
        assert held.owner == "d1"
        assert locks.holder("trip-1") == "d1"
    assert locks.holder("trip-1") is None


def test_purge_expired(locks, clock):
    locks.acquire("old", "d1", ttl_seconds=5)
    locks.acquire("new", "d2")
    clock.advance(10)

    assert len(locks) == 2
    assert locks.purge_expired() == 1
    assert locks.holder("new") == "d2"
    assert len(locks) == 1


def test_accept_and_timeout_race_has_one_winner(locks):
    owners = ["d1", SYSTEM_OWNER] * 8

    def try_acquire(owner):
        try:
            locks.acquire("trip-1", owner)
            return owner
        except TripLockConflict:
            return None

    with ThreadPoolExecutor(max_workers=8) as pool:
        winners = [owner for owner in pool.map(try_acquire, owners) if owner]

    assert len(winners) == 1


def test_ttl_must_be_positive():
    with pytest.raises(ValueError):
        TripLockManager(ttl_seconds=0)
