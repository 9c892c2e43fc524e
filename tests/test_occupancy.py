"""Tests for occupancy calculation."""

from datetime import date, datetime, timezone

import pytest

from hostelly.domain.errors import ValidationError
from hostelly.domain.models import BookingStatus
from hostelly.domain.occupancy import (
    available_by_room,
    calculate_occupancy,
    nightly_occupancy,
    overlaps,
)
from hostelly.domain.rooms import (
    ROOM_FLEXIBLE_7,
    ROOM_MIXTO_7,
    ROOM_MIXTO_12A,
    ROOM_MIXTO_12B,
)

from helpers import day, make_booking


class TestOverlaps:
    def test_overlapping_ranges(self):
        assert overlaps(date(2025, 1, 15), date(2025, 1, 20), date(2025, 1, 18), date(2025, 1, 25))

    def test_check_out_day_is_free(self):
        assert not overlaps(
            date(2025, 1, 15), date(2025, 1, 20), date(2025, 1, 20), date(2025, 1, 25)
        )

    def test_contained_range(self):
        assert overlaps(date(2025, 1, 10), date(2025, 1, 30), date(2025, 1, 15), date(2025, 1, 16))

    def test_time_of_day_is_ignored(self):
        late_checkout = datetime(2025, 1, 20, 23, 0, tzinfo=timezone.utc)
        early_checkin = datetime(2025, 1, 20, 1, 0, tzinfo=timezone.utc)
        assert not overlaps(date(2025, 1, 15), late_checkout, early_checkin, date(2025, 1, 25))


class TestCalculateOccupancy:
    def test_empty_hostel(self):
        result = calculate_occupancy([], day(5), day(7))

        assert set(result) == {ROOM_MIXTO_12A, ROOM_MIXTO_12B, ROOM_MIXTO_7, ROOM_FLEXIBLE_7}
        assert result[ROOM_MIXTO_12A].available == 12
        assert result[ROOM_FLEXIBLE_7].occupied == 0

    def test_sums_overlapping_claims(self):
        claims = [
            make_booking(ROOM_MIXTO_12A, day(5), day(8), 4, booking_id="a"),
            make_booking(ROOM_MIXTO_12A, day(6), day(9), 3, booking_id="b"),
            make_booking(ROOM_MIXTO_7, day(5), day(6), 2, booking_id="c"),
        ]

        result = calculate_occupancy(claims, day(5), day(7))

        assert result[ROOM_MIXTO_12A].occupied == 7
        assert result[ROOM_MIXTO_12A].available == 5
        assert result[ROOM_MIXTO_7].occupied == 2

    def test_adjacent_stays_do_not_count(self):
        claims = [make_booking(ROOM_MIXTO_12A, day(2), day(5), 6)]

        result = calculate_occupancy(claims, day(5), day(7))

        assert result[ROOM_MIXTO_12A].occupied == 0

    def test_cancelled_and_expired_are_skipped(self):
        claims = [
            make_booking(ROOM_MIXTO_12A, day(5), day(7), 4, booking_id="x", status=BookingStatus.CANCELLED),
            make_booking(ROOM_MIXTO_12A, day(5), day(7), 4, booking_id="y", status=BookingStatus.EXPIRED),
            make_booking(ROOM_MIXTO_12A, day(5), day(7), 1, booking_id="z", status=BookingStatus.PENDING),
        ]

        result = calculate_occupancy(claims, day(5), day(7))

        assert result[ROOM_MIXTO_12A].occupied == 1

    def test_exclude_id(self):
        claims = [
            make_booking(ROOM_MIXTO_12A, day(5), day(7), 4, booking_id="edit-me"),
            make_booking(ROOM_MIXTO_12A, day(5), day(7), 2, booking_id="other"),
        ]

        result = calculate_occupancy(claims, day(5), day(7), exclude_id="edit-me")

        assert result[ROOM_MIXTO_12A].occupied == 2

    def test_available_floors_at_zero(self):
        claims = [make_booking(ROOM_MIXTO_7, day(5), day(7), 7, booking_id=str(i)) for i in range(2)]

        result = calculate_occupancy(claims, day(5), day(7))

        assert result[ROOM_MIXTO_7].occupied == 14
        assert result[ROOM_MIXTO_7].available == 0

    @pytest.mark.parametrize("check_out_offset", [5, 4])
    def test_empty_or_inverted_range_is_an_error(self, check_out_offset):
        with pytest.raises(ValidationError):
            calculate_occupancy([], day(5), day(check_out_offset))

    def test_available_by_room(self):
        claims = [make_booking(ROOM_MIXTO_12B, day(5), day(7), 5)]
        occupancy = calculate_occupancy(claims, day(5), day(7))

        assert available_by_room(occupancy) == {
            ROOM_MIXTO_12A: 12,
            ROOM_MIXTO_12B: 7,
            ROOM_MIXTO_7: 7,
            ROOM_FLEXIBLE_7: 7,
        }


class TestNightlyOccupancy:
    def test_per_night_counts(self):
        claims = [
            make_booking(ROOM_MIXTO_12A, day(5), day(7), 4, booking_id="a"),
            make_booking(ROOM_MIXTO_12A, day(6), day(8), 3, booking_id="b"),
        ]

        nights = nightly_occupancy(claims, ROOM_MIXTO_12A, day(5), day(8))

        assert nights == {day(5): 4, day(6): 7, day(7): 3}

    def test_other_rooms_ignored(self):
        claims = [make_booking(ROOM_MIXTO_12B, day(5), day(7), 4)]

        nights = nightly_occupancy(claims, ROOM_MIXTO_12A, day(5), day(7))

        assert nights == {day(5): 0, day(6): 0}
