"""Occupancy calculation over bookings and holds.

Overlap formula:  (s1 < e2) AND (e1 > s2)
Stays are half-open [check_in, check_out): a check-out day may be another
guest's check-in day. Datetimes are reduced to dates before comparison.

Only PENDING and CONFIRMED claims consume beds; holds are projected as
PENDING claims by the caller (see Hold.as_bookings).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable

from hostelly.domain.errors import ValidationError
from hostelly.domain.models import Booking, Room
from hostelly.domain.rooms import CATALOG
from hostelly.infra.time import as_day, iter_nights
from hostelly.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RoomOccupancy:
    room_id: str
    capacity: int
    occupied: int
    available: int

    def to_dict(self) -> dict:
        return {
            "room_id": self.room_id,
            "capacity": self.capacity,
            "occupied": self.occupied,
            "available": self.available,
        }


def overlaps(
    start_a: date | datetime,
    end_a: date | datetime,
    start_b: date | datetime,
    end_b: date | datetime,
) -> bool:
    """True if [start_a, end_a) and [start_b, end_b) share at least one day."""
    return as_day(start_a) < as_day(end_b) and as_day(end_a) > as_day(start_b)


def validate_range(check_in: date | datetime, check_out: date | datetime) -> None:
    """Reject zero-length and inverted stays.

    Raises:
        ValidationError: If check_out <= check_in (at day granularity).
    """
    if as_day(check_out) <= as_day(check_in):
        raise ValidationError("check_out must be after check_in")


def active_claims(
    claims: Iterable[Booking],
    check_in: date,
    check_out: date,
    *,
    exclude_id: str | None = None,
    room_id: str | None = None,
) -> list[Booking]:
    """Filter claims to those that consume beds inside the window."""
    return [
        c
        for c in claims
        if c.is_active
        and (exclude_id is None or c.id != exclude_id)
        and (room_id is None or c.room_id == room_id)
        and overlaps(c.check_in, c.check_out, check_in, check_out)
    ]


def calculate_occupancy(
    claims: Iterable[Booking],
    check_in: date | datetime,
    check_out: date | datetime,
    *,
    rooms: Iterable[Room] = CATALOG,
    exclude_id: str | None = None,
) -> dict[str, RoomOccupancy]:
    """Sum beds in use per room for a stay window.

    Every claim that overlaps the window counts in full, whatever night it
    overlaps on; use nightly_occupancy for a per-night peak.

    Args:
        claims: Bookings and projected holds.
        check_in: Window start (inclusive).
        check_out: Window end (exclusive).
        rooms: Room catalog.
        exclude_id: Booking/hold id to ignore (edits of an existing stay).

    Returns:
        Mapping room_id -> RoomOccupancy, in catalog order.

    Raises:
        ValidationError: If the window is empty or inverted.
    """
    validate_range(check_in, check_out)
    start, end = as_day(check_in), as_day(check_out)

    rooms = list(rooms)
    occupied = {room.id: 0 for room in rooms}
    for claim in active_claims(claims, start, end, exclude_id=exclude_id):
        if claim.room_id in occupied:
            occupied[claim.room_id] += claim.beds_count

    result: dict[str, RoomOccupancy] = {}
    for room in rooms:
        used = occupied[room.id]
        if used > room.capacity:
            logger.warning(
                "overbooking detected",
                extra={
                    "extra_fields": {
                        "room_id": room.id,
                        "check_in": start.isoformat(),
                        "check_out": end.isoformat(),
                        "capacity": room.capacity,
                        "occupied": used,
                    }
                },
            )
        result[room.id] = RoomOccupancy(
            room_id=room.id,
            capacity=room.capacity,
            occupied=used,
            available=max(0, room.capacity - used),
        )
    return result


def nightly_occupancy(
    claims: Iterable[Booking],
    room_id: str,
    check_in: date | datetime,
    check_out: date | datetime,
    *,
    exclude_id: str | None = None,
) -> dict[date, int]:
    """Beds in use in one room for each night of [check_in, check_out)."""
    validate_range(check_in, check_out)
    start, end = as_day(check_in), as_day(check_out)

    relevant = active_claims(
        claims, start, end, exclude_id=exclude_id, room_id=room_id
    )
    nights: dict[date, int] = {}
    for night in iter_nights(start, end):
        nights[night] = sum(
            c.beds_count
            for c in relevant
            if as_day(c.check_in) <= night < as_day(c.check_out)
        )
    return nights


def available_by_room(occupancy: dict[str, RoomOccupancy]) -> dict[str, int]:
    return {room_id: occ.available for room_id, occ in occupancy.items()}
