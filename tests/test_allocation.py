"""Tests for the room allocator."""

import random

import pytest

from hostelly.domain.allocation import (
    INSUFFICIENT_CAPACITY,
    AllocationStrategy,
    allocate,
    group_allocations_by_type,
    suggest_room_configuration,
)
from hostelly.domain.errors import ValidationError
from hostelly.domain.models import GuestPreferences, RoomType
from hostelly.domain.rooms import (
    ROOM_FLEXIBLE_7,
    ROOM_MIXTO_7,
    ROOM_MIXTO_12A,
    ROOM_MIXTO_12B,
)

FULL = {ROOM_MIXTO_12A: 12, ROOM_MIXTO_12B: 12, ROOM_MIXTO_7: 7, ROOM_FLEXIBLE_7: 7}


def _pairs(result):
    return [(a.room_id, a.beds_allocated) for a in result.allocations]


class TestGroupFriendly:
    def test_small_group_takes_tightest_single_room(self):
        result = allocate(4, FULL)

        assert result.success
        assert result.strategy == "group-friendly"
        assert _pairs(result) == [(ROOM_MIXTO_7, 4)]
        assert result.warnings == []

    def test_large_group_fills_twelve_bed_rooms_first(self):
        result = allocate(10, FULL)

        assert _pairs(result) == [(ROOM_MIXTO_12A, 10)]

    def test_large_group_spills_into_second_large_room(self):
        result = allocate(20, FULL)

        assert _pairs(result) == [(ROOM_MIXTO_12A, 12), (ROOM_MIXTO_12B, 8)]

    def test_small_group_without_single_fit_is_split_with_warning(self):
        available = {ROOM_MIXTO_12A: 3, ROOM_MIXTO_12B: 2, ROOM_MIXTO_7: 1, ROOM_FLEXIBLE_7: 0}

        result = allocate(5, available)

        assert _pairs(result) == [(ROOM_MIXTO_12A, 3), (ROOM_MIXTO_12B, 2)]
        assert "Group of 5 split across 2 rooms" in result.warnings

    def test_scores(self):
        result = allocate(10, FULL)

        assert result.utilization_score == 83.3
        assert result.fragmentation_score == 25.0


class TestOtherStrategies:
    AVAILABLE = {ROOM_MIXTO_12A: 3, ROOM_MIXTO_12B: 12, ROOM_MIXTO_7: 5, ROOM_FLEXIBLE_7: 0}

    def test_maximize_utilization_fills_fullest_rooms_first(self):
        result = allocate(6, self.AVAILABLE, AllocationStrategy.MAXIMIZE_UTILIZATION)

        assert _pairs(result) == [(ROOM_MIXTO_12A, 3), (ROOM_MIXTO_7, 3)]

    def test_minimize_fragmentation_prefers_emptiest_room(self):
        result = allocate(6, self.AVAILABLE, "minimize-fragmentation")

        assert _pairs(result) == [(ROOM_MIXTO_12B, 6)]

    def test_prefer_larger(self):
        assert _pairs(allocate(6, FULL, "prefer-larger")) == [(ROOM_MIXTO_12A, 6)]

    def test_prefer_smaller(self):
        assert _pairs(allocate(6, FULL, "prefer-smaller")) == [(ROOM_MIXTO_7, 6)]

    def test_fewest_rooms_beats_greedy_split(self):
        available = {ROOM_MIXTO_12A: 4, ROOM_MIXTO_12B: 4, ROOM_MIXTO_7: 7, ROOM_FLEXIBLE_7: 0}

        greedy = allocate(7, available)
        exhaustive = allocate(7, available, AllocationStrategy.FEWEST_ROOMS)

        assert len(greedy.allocations) == 2
        assert _pairs(exhaustive) == [(ROOM_MIXTO_7, 7)]


class TestFiltering:
    def test_insufficient_capacity(self):
        result = allocate(5, {ROOM_MIXTO_12A: 2})

        assert not result.success
        assert result.error == INSUFFICIENT_CAPACITY
        assert result.total_available == 2
        assert result.allocations == []

    def test_female_preference_uses_female_rooms_only(self):
        result = allocate(3, FULL, preferences=GuestPreferences(room_type=RoomType.FEMALE))

        assert _pairs(result) == [(ROOM_FLEXIBLE_7, 3)]
        assert any("flexible room" in w for w in result.warnings)

    def test_flexible_room_labeled_mixed_satisfies_mixed_preference(self):
        available = {ROOM_MIXTO_12A: 0, ROOM_MIXTO_12B: 0, ROOM_MIXTO_7: 0, ROOM_FLEXIBLE_7: 7}
        preferences = GuestPreferences(room_type=RoomType.MIXED)

        default_labels = allocate(3, available, preferences=preferences)
        relabeled = allocate(
            3,
            available,
            preferences=preferences,
            room_types={ROOM_FLEXIBLE_7: RoomType.MIXED},
        )

        assert not default_labels.success
        assert _pairs(relabeled) == [(ROOM_FLEXIBLE_7, 3)]

    def test_avoid_flexible_rooms(self):
        available = {ROOM_MIXTO_7: 2, ROOM_FLEXIBLE_7: 7}

        result = allocate(3, available, preferences=GuestPreferences(avoid_flexible_rooms=True))

        assert not result.success

    def test_separate_rooms_warning(self):
        result = allocate(3, FULL, preferences=GuestPreferences(prefer_separate_rooms=True))

        assert len(result.allocations) == 1
        assert any("Separate rooms" in w for w in result.warnings)


class TestValidation:
    @pytest.mark.parametrize("beds", [0, -2, True, 2.5])
    def test_rejects_bad_bed_counts(self, beds):
        with pytest.raises(ValidationError):
            allocate(beds, FULL)

    def test_rejects_unknown_strategy(self):
        with pytest.raises(ValidationError):
            allocate(2, FULL, "random")


def test_allocation_sums_match_request():
    rng = random.Random(7)
    strategies = list(AllocationStrategy)
    for _ in range(300):
        available = {
            ROOM_MIXTO_12A: rng.randint(0, 12),
            ROOM_MIXTO_12B: rng.randint(0, 12),
            ROOM_MIXTO_7: rng.randint(0, 7),
            ROOM_FLEXIBLE_7: rng.randint(0, 7),
        }
        requested = rng.randint(1, 40)
        result = allocate(requested, available, rng.choice(strategies))

        if result.success:
            assert result.total_allocated == requested
            for piece in result.allocations:
                assert 0 < piece.beds_allocated <= available[piece.room_id]
        else:
            assert sum(available.values()) < requested


class TestSuggestions:
    def test_two_large_rooms_for_twenty(self):
        advice = suggest_room_configuration(20, FULL)

        assert advice["suggestion"].startswith("Book 2 large rooms")
        assert advice["allocation"].success

    def test_whole_hostel(self):
        advice = suggest_room_configuration(45, FULL)

        assert "entire hostel" in advice["suggestion"]

    def test_group_by_type(self):
        result = allocate(20, FULL, "prefer-smaller")
        labels = {
            ROOM_MIXTO_12A: RoomType.MIXED,
            ROOM_MIXTO_12B: RoomType.MIXED,
            ROOM_MIXTO_7: RoomType.MIXED,
            ROOM_FLEXIBLE_7: RoomType.FEMALE,
        }

        grouped = group_allocations_by_type(result, labels)

        assert grouped["female"] == {"rooms": 1, "beds": 7}
        assert grouped["mixed"]["beds"] == 13
