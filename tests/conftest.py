"""Shared pytest fixtures for Hostelly tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from hostelly.domain.booking_engine import BookingEngine  # noqa: E402
from hostelly.infra.hold_store import HoldStore  # noqa: E402
from hostelly.infra.kv_store import InMemoryStore  # noqa: E402
from hostelly.infra.lock_manager import LockManager  # noqa: E402
from hostelly.infra.settings import EngineSettings  # noqa: E402

from helpers import FakeClock  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryStore(clock=clock)


@pytest.fixture
def settings():
    return EngineSettings(lock_retry_base_seconds=0)


@pytest.fixture
def hold_store(store, settings, clock):
    return HoldStore(store, settings, clock=clock)


@pytest.fixture
def lock_manager(store, settings, clock):
    return LockManager(store, settings.lock_ttl_seconds, clock=clock)


@pytest.fixture
def bookings():
    """Mutable list backing the engine's booking source."""
    return []


@pytest.fixture
def engine(bookings, hold_store, lock_manager, settings, clock):
    return BookingEngine(
        lambda check_in, check_out: list(bookings),
        hold_store,
        lock_manager,
        settings,
        clock=clock,
        sleep=lambda seconds: None,
    )
