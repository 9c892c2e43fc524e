"""Concurrent reserve() calls against a shared store."""

import random
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from hostelly.domain.booking_engine import BookingEngine
from hostelly.domain.occupancy import nightly_occupancy
from hostelly.domain.rooms import CATALOG, ROOM_MIXTO_7, ROOM_MIXTO_12A
from hostelly.infra.settings import EngineSettings

from helpers import day, make_booking


@pytest.fixture
def racing_engine(bookings, hold_store, lock_manager, clock):
    """Engine that really sleeps between lock attempts."""
    return BookingEngine(
        lambda check_in, check_out: list(bookings),
        hold_store,
        lock_manager,
        EngineSettings(lock_max_attempts=20, lock_retry_base_seconds=0.001),
        clock=clock,
    )


def test_last_beds_go_to_exactly_one_request(racing_engine, bookings, hold_store):
    bookings.append(make_booking(ROOM_MIXTO_12A, day(5), day(7), 9))
    barrier = threading.Barrier(2)

    def reserve(email):
        barrier.wait()
        return racing_engine.reserve(day(5), day(7), {ROOM_MIXTO_12A: 3}, email)

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(reserve, ["a@example.com", "b@example.com"]))

    assert sorted(r["ok"] for r in results) == [False, True]
    loser = next(r for r in results if not r["ok"])
    assert loser["error"] == "capacity_conflict"
    assert len(hold_store.list_active()) == 1


def test_random_concurrent_reserves_never_overbook(
    racing_engine, bookings, hold_store, lock_manager
):
    bookings.append(make_booking(ROOM_MIXTO_7, day(4), day(6), 3))
    rng = random.Random(7)
    requests = []
    for i in range(30):
        start = rng.randint(3, 8)
        requests.append(
            (
                day(start),
                day(start + rng.randint(1, 3)),
                {rng.choice([ROOM_MIXTO_7, ROOM_MIXTO_12A]): rng.randint(1, 6)},
                f"guest{i}@example.com",
            )
        )

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda args: racing_engine.reserve(*args), requests))

    assert any(r["ok"] for r in results)
    assert {r["error"] for r in results if not r["ok"]} <= {"capacity_conflict"}

    claims = bookings + hold_store.claims()
    for room in CATALOG:
        nights = nightly_occupancy(claims, room.id, day(3), day(12))
        assert max(nights.values()) <= room.capacity
    assert lock_manager.active_locks() == []
