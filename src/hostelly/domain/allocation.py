"""Room allocation: choose which rooms serve a multi-bed request.

All built-in strategies except FEWEST_ROOMS are greedy: sort the eligible
rooms, take min(remaining, available) from each in order, stop when the
request is covered. They never backtrack, so a pathological input can yield
a more fragmented allocation than necessary; callers rely on the greedy
ordering being predictable. FEWEST_ROOMS is an opt-in exhaustive search over
room combinations for the least fragmented result.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from itertools import combinations
from typing import Iterable, Mapping

from hostelly.domain.errors import ValidationError
from hostelly.domain.models import (
    AllocationResult,
    GuestPreferences,
    Room,
    RoomAllocation,
    RoomType,
)
from hostelly.domain.rooms import CATALOG, LARGE_ROOM_CAPACITY, total_capacity

# Requests of at least this many beds are treated as large groups.
LARGE_GROUP_BEDS = 7

INSUFFICIENT_CAPACITY = "insufficient_capacity"


class AllocationStrategy(str, Enum):
    MAXIMIZE_UTILIZATION = "maximize-utilization"
    MINIMIZE_FRAGMENTATION = "minimize-fragmentation"
    PREFER_LARGER = "prefer-larger"
    PREFER_SMALLER = "prefer-smaller"
    GROUP_FRIENDLY = "group-friendly"
    FEWEST_ROOMS = "fewest-rooms"


DEFAULT_STRATEGY = AllocationStrategy.GROUP_FRIENDLY


@dataclass(frozen=True)
class _Candidate:
    room: Room
    available: int
    index: int

    @property
    def capacity(self) -> int:
        return self.room.capacity


def _eligible(
    available_by_room: Mapping[str, int],
    rooms: list[Room],
    preferences: GuestPreferences,
    room_types: Mapping[str, RoomType],
) -> list[_Candidate]:
    candidates = []
    for index, room in enumerate(rooms):
        available = max(0, int(available_by_room.get(room.id, 0)))
        if available == 0:
            continue
        if preferences.avoid_flexible_rooms and room.is_flexible:
            continue
        if (
            preferences.room_type is not None
            and room_types.get(room.id, room.type) != preferences.room_type
        ):
            continue
        candidates.append(_Candidate(room=room, available=available, index=index))
    return candidates


def _order(
    candidates: list[_Candidate], requested: int, strategy: AllocationStrategy
) -> list[_Candidate]:
    if strategy == AllocationStrategy.MAXIMIZE_UTILIZATION:
        return sorted(candidates, key=lambda c: (c.available, c.index))
    if strategy == AllocationStrategy.MINIMIZE_FRAGMENTATION:
        return sorted(candidates, key=lambda c: (-c.available, c.index))
    if strategy == AllocationStrategy.PREFER_LARGER:
        return sorted(candidates, key=lambda c: (-c.capacity, -c.available, c.index))
    if strategy == AllocationStrategy.PREFER_SMALLER:
        return sorted(candidates, key=lambda c: (c.capacity, -c.available, c.index))

    # GROUP_FRIENDLY
    if requested >= LARGE_GROUP_BEDS:
        large = [c for c in candidates if c.capacity >= LARGE_ROOM_CAPACITY]
        small = [c for c in candidates if c.capacity < LARGE_ROOM_CAPACITY]
        return sorted(large, key=lambda c: (-c.available, c.index)) + sorted(
            small, key=lambda c: (-c.available, c.index)
        )
    fits = [c for c in candidates if c.available >= requested]
    rest = [c for c in candidates if c.available < requested]
    return sorted(fits, key=lambda c: (c.available, c.index)) + sorted(
        rest, key=lambda c: (-c.available, c.index)
    )


def _greedy(ordered: list[_Candidate], requested: int) -> list[tuple[_Candidate, int]]:
    picks = []
    remaining = requested
    for candidate in ordered:
        if remaining == 0:
            break
        take = min(remaining, candidate.available)
        if take > 0:
            picks.append((candidate, take))
            remaining -= take
    return picks


def _fewest_rooms(candidates: list[_Candidate], requested: int) -> list[_Candidate]:
    """Smallest set of rooms covering the request, least spare beds first."""
    for size in range(1, len(candidates) + 1):
        feasible = [
            combo
            for combo in combinations(candidates, size)
            if sum(c.available for c in combo) >= requested
        ]
        if feasible:
            best = min(
                feasible,
                key=lambda combo: (
                    sum(c.available for c in combo) - requested,
                    [c.index for c in combo],
                ),
            )
            return sorted(best, key=lambda c: (-c.available, c.index))
    return []


def _warnings(
    picks: list[tuple[_Candidate, int]],
    requested: int,
    preferences: GuestPreferences,
) -> list[str]:
    warnings = []
    if requested <= LARGE_GROUP_BEDS and len(picks) > 1:
        warnings.append(
            f"Group of {requested} split across {len(picks)} rooms"
        )
    for candidate, _ in picks:
        if candidate.room.is_flexible:
            warnings.append(
                f"Allocation includes flexible room {candidate.room.name}"
            )
    if preferences.prefer_separate_rooms and len(picks) == 1:
        warnings.append("Separate rooms requested but the group fits in a single room")
    return warnings


def allocate(
    requested_beds: int,
    available_by_room: Mapping[str, int],
    strategy: AllocationStrategy | str = DEFAULT_STRATEGY,
    preferences: GuestPreferences | None = None,
    *,
    rooms: Iterable[Room] = CATALOG,
    room_types: Mapping[str, RoomType] | None = None,
) -> AllocationResult:
    """Select rooms and bed counts for a request.

    Args:
        requested_beds: Beds wanted (> 0).
        available_by_room: Free beds per room id for the stay window.
        strategy: Ordering policy (see AllocationStrategy).
        preferences: Optional guest filters.
        rooms: Room catalog.
        room_types: Effective room labels (flexible room relabeled by the
            flexible-room policy). Defaults to catalog types.

    Returns:
        AllocationResult. On failure `success` is False and `error` is
        "insufficient_capacity".

    Raises:
        ValidationError: If requested_beds is not a positive integer or the
            strategy is unknown.
    """
    if isinstance(requested_beds, bool) or not isinstance(requested_beds, int):
        raise ValidationError("requested_beds must be an integer")
    if requested_beds <= 0:
        raise ValidationError("requested_beds must be positive")
    try:
        strategy = AllocationStrategy(strategy)
    except ValueError:
        raise ValidationError(f"Unknown allocation strategy: {strategy}") from None

    preferences = preferences or GuestPreferences()
    rooms = list(rooms)
    room_types = dict(room_types or {})

    candidates = _eligible(available_by_room, rooms, preferences, room_types)
    total_available = sum(c.available for c in candidates)

    if total_available < requested_beds:
        return AllocationResult(
            success=False,
            requested_beds=requested_beds,
            strategy=strategy.value,
            error=INSUFFICIENT_CAPACITY,
            total_available=total_available,
        )

    if strategy == AllocationStrategy.FEWEST_ROOMS:
        ordered = _fewest_rooms(candidates, requested_beds)
    else:
        ordered = _order(candidates, requested_beds, strategy)
    picks = _greedy(ordered, requested_beds)

    touched = len(picks)
    utilization = sum(
        (c.capacity - c.available + beds) / c.capacity * 100 for c, beds in picks
    ) / touched
    fragmentation = touched / len(rooms) * 100 if rooms else 0.0

    return AllocationResult(
        success=True,
        requested_beds=requested_beds,
        strategy=strategy.value,
        allocations=[
            RoomAllocation(room_id=c.room.id, beds_allocated=beds) for c, beds in picks
        ],
        utilization_score=round(utilization, 1),
        fragmentation_score=round(fragmentation, 1),
        warnings=_warnings(picks, requested_beds, preferences),
        total_available=total_available,
    )


def suggest_room_configuration(
    group_size: int,
    available_by_room: Mapping[str, int],
    *,
    rooms: Iterable[Room] = CATALOG,
) -> dict:
    """Human-facing advice on which rooms suit a group size."""
    rooms = list(rooms)
    hostel_beds = total_capacity(rooms)
    allocation = allocate(group_size, available_by_room, rooms=rooms)

    if group_size >= hostel_beds:
        return {
            "suggestion": f"Book the entire hostel (all {len(rooms)} rooms, {hostel_beds} beds)",
            "allocation": allocation,
            "alternatives": [],
        }
    if group_size >= 26:
        return {
            "suggestion": "Book 3 rooms (2x Mixto 12 + 1x Mixto 7 = 31 beds)",
            "allocation": allocation,
            "alternatives": [
                "Add Flexible 7 for a total of 38 beds",
                "Book the entire hostel for exclusive use",
            ],
        }
    if group_size >= 16:
        return {
            "suggestion": "Book 2 large rooms (2x Mixto 12 = 24 beds)",
            "allocation": allocation,
            "alternatives": ["Add Mixto 7 for a total of 31 beds"],
        }
    if group_size >= 12:
        return {
            "suggestion": "Book 1 Mixto 12 room",
            "allocation": allocation,
            "alternatives": ["Add Mixto 7 for a total of 19 beds"],
        }
    if group_size >= LARGE_GROUP_BEDS:
        return {
            "suggestion": "Book 1 Mixto 7 or Flexible 7 room",
            "allocation": allocation,
            "alternatives": ["Book a Mixto 12 for more space"],
        }
    return {
        "suggestion": "Book beds in any available room",
        "allocation": allocation,
        "alternatives": [],
    }


def group_allocations_by_type(
    result: AllocationResult,
    room_types: Mapping[str, RoomType],
) -> dict[str, dict[str, int]]:
    """Rooms and beds of an allocation per room designation."""
    grouped = {t.value: {"rooms": 0, "beds": 0} for t in RoomType}
    for alloc in result.allocations:
        label = room_types.get(alloc.room_id, RoomType.MIXED).value
        grouped[label]["rooms"] += 1
        grouped[label]["beds"] += alloc.beds_allocated
    return grouped
