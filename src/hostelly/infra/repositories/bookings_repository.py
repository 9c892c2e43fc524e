"""Bookings repository - read access to the booking datastore.

Uses raw SQL with psycopg2 (no ORM). The engine never writes bookings.
"""

from datetime import date

from psycopg2.extensions import cursor as PgCursor

from hostelly.domain.models import Booking, BookingStatus, RoomType
from hostelly.infra.db import fetchall, txn

_COLUMNS = (
    "id, room_id, check_in, check_out, beds_count, guest_email, "
    "status, created_at, guest_type"
)


def _row_to_booking(row: tuple) -> Booking:
    (
        booking_id,
        room_id,
        check_in,
        check_out,
        beds_count,
        guest_email,
        status,
        created_at,
        guest_type,
    ) = row
    return Booking(
        id=str(booking_id),
        room_id=room_id,
        check_in=check_in,
        check_out=check_out,
        beds_count=int(beds_count),
        guest_email=guest_email or "",
        status=BookingStatus(status),
        created_at=created_at,
        guest_type=RoomType(guest_type or RoomType.MIXED.value),
    )


def list_active_bookings(
    cur: PgCursor,
    *,
    check_in: date,
    check_out: date,
) -> list[Booking]:
    """PENDING/CONFIRMED bookings overlapping [check_in, check_out).

    Args:
        cur: Database cursor.
        check_in: Window start (inclusive).
        check_out: Window end (exclusive).

    Returns:
        Bookings ordered by check_in, then id.
    """
    rows = fetchall(
        cur,
        f"""
        SELECT {_COLUMNS}
        FROM bookings
        WHERE status IN ('PENDING', 'CONFIRMED')
          AND check_in < %s
          AND check_out > %s
        ORDER BY check_in, id
        """,
        (check_out, check_in),
    )
    return [_row_to_booking(row) for row in rows]


def load_bookings(check_in: date, check_out: date) -> list[Booking]:
    """BookingSource backed by PostgreSQL (one short transaction per call)."""
    with txn() as cur:
        return list_active_bookings(cur, check_in=check_in, check_out=check_out)
