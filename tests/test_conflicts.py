"""Tests for the conflict detector."""

import pytest

from hostelly.domain.conflicts import (
    AlternativeKind,
    ConflictDetector,
    ConflictType,
    Severity,
    capacity_limit,
)
from hostelly.domain.models import BookingRequest, RoomType
from hostelly.domain.rooms import (
    ROOM_FLEXIBLE_7,
    ROOM_MIXTO_7,
    ROOM_MIXTO_12A,
    ROOM_MIXTO_12B,
)

from helpers import TODAY, day, make_booking


def _request(room_id=ROOM_MIXTO_12A, beds=3, check_in=None, check_out=None, **kwargs):
    return BookingRequest(
        room_id=room_id,
        check_in=check_in or day(5),
        check_out=check_out or day(7),
        beds_count=beds,
        guest_email=kwargs.pop("guest_email", "new@example.com"),
        **kwargs,
    )


def _types(result):
    return [c.type for c in result.conflicts]


@pytest.fixture
def detector():
    return ConflictDetector()


class TestFieldChecks:
    def test_past_check_in(self, detector):
        result = detector.validate(_request(check_in=day(-1), check_out=day(2)), [], TODAY)

        assert _types(result) == [ConflictType.PAST_CHECK_IN]
        assert not result.is_valid
        assert not result.can_proceed
        assert result.suggested_alternatives == []

    def test_inverted_dates(self, detector):
        result = detector.validate(_request(check_in=day(5), check_out=day(5)), [], TODAY)

        assert ConflictType.INVALID_DATES in _types(result)

    @pytest.mark.parametrize("email", ["", "not-an-email", "a@b"])
    def test_invalid_email(self, detector, email):
        result = detector.validate(_request(guest_email=email), [], TODAY)

        assert _types(result) == [ConflictType.INVALID_EMAIL]

    def test_invalid_beds(self, detector):
        result = detector.validate(_request(beds=0), [], TODAY)

        assert _types(result) == [ConflictType.INVALID_BEDS]


class TestRoomChecks:
    def test_unknown_room(self, detector):
        result = detector.validate(_request(room_id="room_attic"), [], TODAY)

        assert ConflictType.ROOM_NOT_FOUND in _types(result)
        assert not result.can_proceed

    def test_exceeds_capacity(self, detector):
        result = detector.validate(_request(room_id=ROOM_MIXTO_7, beds=8), [], TODAY)

        assert ConflictType.EXCEEDS_CAPACITY in _types(result)
        assert not result.can_proceed


class TestOverbooking:
    def test_one_conflict_per_full_night(self, detector):
        claims = [make_booking(ROOM_MIXTO_12A, day(5), day(7), 10)]

        result = detector.validate(_request(beds=3), claims, TODAY)

        overbooked = [c for c in result.conflicts if c.type == ConflictType.OVERBOOKING]
        assert [c.night for c in overbooked] == [day(5), day(6)]
        assert all(c.severity == Severity.HIGH for c in overbooked)
        assert result.lock_required
        assert not result.can_proceed

    def test_only_offending_nights_are_reported(self, detector):
        claims = [make_booking(ROOM_MIXTO_12A, day(6), day(7), 11)]

        result = detector.validate(_request(beds=2, check_in=day(5), check_out=day(8)), claims, TODAY)

        overbooked = [c for c in result.conflicts if c.type == ConflictType.OVERBOOKING]
        assert [c.night for c in overbooked] == [day(6)]

    def test_near_capacity_is_low_and_does_not_block(self, detector):
        claims = [make_booking(ROOM_MIXTO_12A, day(5), day(7), 8)]

        result = detector.validate(_request(beds=3), claims, TODAY)

        assert _types(result) == [ConflictType.NEAR_CAPACITY]
        assert result.is_valid
        assert result.can_proceed
        assert result.warnings

    def test_free_room_is_not_contended(self, detector):
        result = detector.validate(_request(beds=3), [], TODAY)

        assert result.conflicts == []
        assert not result.lock_required


class TestOverbookingTolerance:
    def test_capacity_limit_rounding(self):
        assert capacity_limit(12, 0) == 12
        assert capacity_limit(100, 0.15) == 115
        assert capacity_limit(7, 0.1) == 7
        assert capacity_limit(12, 0.1) == 13

    def test_within_tolerance_is_low(self):
        detector = ConflictDetector(allowed_overbooking_pct=0.1)
        claims = [make_booking(ROOM_MIXTO_12A, day(5), day(7), 10)]

        result = detector.validate(_request(beds=3), claims, TODAY)

        assert _types(result) == [ConflictType.OVERBOOKING_TOLERANCE]
        assert result.can_proceed

    def test_beyond_tolerance_is_high(self):
        detector = ConflictDetector(allowed_overbooking_pct=0.1)
        claims = [make_booking(ROOM_MIXTO_12A, day(5), day(7), 10)]

        result = detector.validate(_request(beds=4), claims, TODAY)

        assert ConflictType.OVERBOOKING in _types(result)
        assert not result.can_proceed

    def test_negative_tolerance_rejected(self):
        with pytest.raises(ValueError):
            ConflictDetector(allowed_overbooking_pct=-0.1)


class TestDuplicateGuest:
    def test_same_email_is_medium_and_advisory(self, detector):
        claims = [
            make_booking(ROOM_MIXTO_12B, day(4), day(6), 1, email="New@Example.com"),
        ]

        result = detector.validate(_request(), claims, TODAY)

        assert _types(result) == [ConflictType.DUPLICATE_GUEST]
        assert result.conflicts[0].severity == Severity.MEDIUM
        assert result.can_proceed
        assert not result.is_valid

    def test_more_than_two_duplicates_block(self, detector):
        claims = [
            make_booking(ROOM_MIXTO_12B, day(5), day(6), 1, booking_id=f"d{i}", email="new@example.com")
            for i in range(3)
        ]

        result = detector.validate(_request(), claims, TODAY)

        assert _types(result).count(ConflictType.DUPLICATE_GUEST) == 3
        assert not result.can_proceed

    def test_hold_split_across_rooms_counts_once(self, detector):
        claims = [
            make_booking(ROOM_MIXTO_12B, day(5), day(6), 1, booking_id="h1", email="new@example.com"),
            make_booking(ROOM_MIXTO_7, day(5), day(6), 1, booking_id="h1", email="new@example.com"),
        ]

        result = detector.validate(_request(), claims, TODAY)

        assert _types(result).count(ConflictType.DUPLICATE_GUEST) == 1


class TestAlternatives:
    def test_other_rooms_and_date_shifts(self, detector):
        claims = [make_booking(ROOM_MIXTO_12A, day(5), day(7), 10)]

        result = detector.validate(_request(beds=3), claims, TODAY)

        kinds = [(a.kind, a.score) for a in result.suggested_alternatives]
        assert kinds == [
            (AlternativeKind.OTHER_ROOM, 90),
            (AlternativeKind.OTHER_ROOM, 90),
            (AlternativeKind.OTHER_ROOM, 90),
            (AlternativeKind.DATE_SHIFT, 74),
            (AlternativeKind.DATE_SHIFT, 74),
            (AlternativeKind.DATE_SHIFT, 66),
        ]
        other_rooms = [a.allocations[0].room_id for a in result.suggested_alternatives[:3]]
        assert other_rooms == [ROOM_MIXTO_12B, ROOM_MIXTO_7, ROOM_FLEXIBLE_7]
        # -7 days would start in the past
        assert all(a.check_in >= TODAY for a in result.suggested_alternatives)

    def test_large_group_gets_multi_room_split(self, detector):
        result = detector.validate(_request(beds=20), [], TODAY)

        split = [a for a in result.suggested_alternatives if a.kind == AlternativeKind.MULTI_ROOM]
        assert len(split) == 1
        assert split[0].score == 65
        assert sum(a.beds_allocated for a in split[0].allocations) == 20

    def test_female_request_only_offered_female_rooms(self, detector):
        claims = [make_booking(ROOM_FLEXIBLE_7, day(5), day(7), 6, guest_type=RoomType.FEMALE)]

        result = detector.validate(
            _request(room_id=ROOM_FLEXIBLE_7, beds=3, guest_type=RoomType.FEMALE), claims, TODAY
        )

        assert not result.can_proceed
        assert all(
            a.kind != AlternativeKind.OTHER_ROOM for a in result.suggested_alternatives
        )

    def test_alternatives_not_generated_when_allowed(self, detector):
        claims = [make_booking(ROOM_MIXTO_12A, day(5), day(7), 10)]

        result = detector.validate(_request(beds=3), claims, TODAY, with_alternatives=False)

        assert result.suggested_alternatives == []

    def test_to_dict(self, detector):
        claims = [make_booking(ROOM_MIXTO_12A, day(5), day(7), 10)]

        data = detector.validate(_request(beds=3), claims, TODAY).to_dict()

        assert data["conflicts"][0]["type"] == "OVERBOOKING"
        assert data["conflicts"][0]["night"] == day(5).isoformat()
        assert data["suggested_alternatives"][0]["kind"] == "OTHER_ROOM"


FEMALE_FLEXIBLE = {
    ROOM_MIXTO_12A: RoomType.MIXED,
    ROOM_MIXTO_12B: RoomType.MIXED,
    ROOM_MIXTO_7: RoomType.MIXED,
    ROOM_FLEXIBLE_7: RoomType.FEMALE,
}


class TestRoomTypes:
    def test_mixed_guest_in_female_room_is_blocked(self, detector):
        claims = [
            make_booking(
                ROOM_FLEXIBLE_7, day(5), day(7), 2, booking_id="f1", guest_type=RoomType.FEMALE
            )
        ]

        result = detector.validate(
            _request(room_id=ROOM_FLEXIBLE_7, beds=3), claims, TODAY, room_types=FEMALE_FLEXIBLE
        )

        mismatch = [c for c in result.conflicts if c.type == ConflictType.ROOM_TYPE_MISMATCH]
        assert len(mismatch) == 1
        assert mismatch[0].severity == Severity.HIGH
        assert mismatch[0].booking_ids == ["f1"]
        assert not result.can_proceed
        other_rooms = [
            a.allocations[0].room_id
            for a in result.suggested_alternatives
            if a.kind == AlternativeKind.OTHER_ROOM
        ]
        assert other_rooms
        assert ROOM_FLEXIBLE_7 not in other_rooms

    def test_matching_label_passes(self, detector):
        claims = [make_booking(ROOM_FLEXIBLE_7, day(5), day(7), 2, guest_type=RoomType.FEMALE)]

        result = detector.validate(
            _request(room_id=ROOM_FLEXIBLE_7, beds=3, guest_type=RoomType.FEMALE),
            claims,
            TODAY,
            room_types=FEMALE_FLEXIBLE,
        )

        assert ConflictType.ROOM_TYPE_MISMATCH not in _types(result)
        assert result.can_proceed

    def test_labels_not_checked_without_room_types(self, detector):
        claims = [make_booking(ROOM_FLEXIBLE_7, day(5), day(7), 2, guest_type=RoomType.FEMALE)]

        result = detector.validate(_request(room_id=ROOM_FLEXIBLE_7, beds=3), claims, TODAY)

        assert ConflictType.ROOM_TYPE_MISMATCH not in _types(result)
