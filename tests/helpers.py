"""Test helpers: a controllable clock and booking builders."""

import threading
from datetime import date, datetime, timedelta, timezone

from hostelly.domain.models import Booking, BookingStatus, RoomType

# Monday, 2 March 2026, 10:00 UTC
NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW) -> None:
        self._now = now
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, **kwargs) -> None:
        with self._lock:
            self._now += timedelta(**kwargs)

    def set(self, now: datetime) -> None:
        with self._lock:
            self._now = now


def day(offset: int) -> date:
    """TODAY shifted by `offset` days."""
    return TODAY + timedelta(days=offset)


def make_booking(
    room_id: str,
    check_in: date,
    check_out: date,
    beds: int,
    *,
    booking_id: str = "b1",
    email: str = "guest@example.com",
    status: BookingStatus = BookingStatus.CONFIRMED,
    guest_type: RoomType = RoomType.MIXED,
) -> Booking:
    return Booking(
        id=booking_id,
        room_id=room_id,
        check_in=check_in,
        check_out=check_out,
        beds_count=beds,
        guest_email=email,
        status=status,
        created_at=NOW - timedelta(days=1),
        guest_type=guest_type,
    )
