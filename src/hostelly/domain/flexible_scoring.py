"""Advisory demand scoring for the flexible room.

These heuristics support a manual/admin decision to convert the flexible
room ahead of the deterministic policy. Nothing in the anti-overbooking path
reads them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable

from hostelly.domain.models import Booking, BookingStatus, RoomType

BASE_NIGHTLY_PRICE = 60  # BRL, reference only
FLEXIBLE_CAPACITY = 7
HIGH_DEMAND_THRESHOLD = 70


@dataclass(frozen=True)
class RevenueImpact:
    potential_gain: float
    potential_loss: float

    @property
    def net_impact(self) -> float:
        return self.potential_gain - self.potential_loss

    def to_dict(self) -> dict:
        return {
            "potential_gain": self.potential_gain,
            "potential_loss": self.potential_loss,
            "net_impact": self.net_impact,
        }


def is_high_season(day: date) -> bool:
    """December through March (Brazilian summer)."""
    return day.month >= 12 or day.month <= 3


def mixed_demand_score(
    upcoming: Iterable[Booking],
    now: datetime,
    *,
    mixed_room_occupancy: float | None = None,
) -> int:
    """Score 0-100 of how much the hostel would gain from a mixed flexible room.

    Args:
        upcoming: Upcoming bookings across the hostel.
        now: Evaluation instant; weekday and season feed the score.
        mixed_room_occupancy: Occupancy ratio (0-1) of the mixed rooms. When
            omitted a weekday-based estimate is used.
    """
    score = 0

    pending_mixed = sum(
        1
        for b in upcoming
        if b.guest_type == RoomType.MIXED and b.status == BookingStatus.PENDING
    )
    score += min(pending_mixed * 10, 40)

    weekday = now.weekday()  # Monday == 0
    if mixed_room_occupancy is None:
        if weekday >= 4:
            mixed_room_occupancy = 0.85
        elif weekday >= 2:
            mixed_room_occupancy = 0.65
        else:
            mixed_room_occupancy = 0.45

    if mixed_room_occupancy > 0.8:
        score += 30
    elif mixed_room_occupancy > 0.6:
        score += 20
    elif mixed_room_occupancy > 0.4:
        score += 10

    # Friday to Sunday
    if weekday >= 4:
        score += 20
    elif weekday >= 2:
        score += 10

    if is_high_season(now.date()):
        score += 10

    return min(score, 100)


def revenue_impact(target_type: RoomType) -> RevenueImpact:
    """Rough nightly revenue effect of relabeling the flexible room."""
    room_night = BASE_NIGHTLY_PRICE * FLEXIBLE_CAPACITY
    if target_type == RoomType.MIXED:
        return RevenueImpact(potential_gain=room_night * 0.3, potential_loss=0.0)
    return RevenueImpact(potential_gain=room_night * 0.1, potential_loss=room_night * 0.2)


def recommend_conversion(score: int) -> bool:
    return score > HIGH_DEMAND_THRESHOLD
