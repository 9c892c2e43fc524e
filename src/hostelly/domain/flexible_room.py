"""Flexible-room policy: effective designation of the convertible dorm.

The policy is deterministic and advisory: it decides how the flexible room
is labeled (female-only or mixed) for allocation purposes. It never moves or
cancels a booking. Demand-based scoring lives in flexible_scoring and is not
consulted here.

Rules, first match wins:
1. A confirmed female booking overlaps the window -> female, no conversion.
2. Overlapping female bookings are all pending and the earliest check-in is
   more than 24h away -> schedule the decision for (check-in - 24h).
   An admin lock (lock_until in the future) keeps the current type.
3. Nothing occupies the window and no confirmed female booking starts within
   auto_convert_hours -> mixed.
4. Otherwise the current type is kept.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable

from hostelly.domain.errors import ConversionConflict
from hostelly.domain.models import (
    Booking,
    BookingStatus,
    FlexibleRoomState,
    Room,
    RoomType,
)
from hostelly.domain.occupancy import active_claims, validate_range
from hostelly.infra.time import as_day, day_start, hours_between
from hostelly.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_AUTO_CONVERT_HOURS = 48
PENDING_DECISION_HOURS = 24


class ConversionAction(str, Enum):
    KEEP_CURRENT = "KEEP_CURRENT"
    SCHEDULE_CONVERSION = "SCHEDULE_CONVERSION"
    CONVERT_NOW = "CONVERT_NOW"


@dataclass(frozen=True)
class FlexibleRoomDecision:
    room_id: str
    effective_type: RoomType
    action: ConversionAction
    reason: str
    will_convert: bool = False
    eligible_at: datetime | None = None
    impacted_booking_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "room_id": self.room_id,
            "effective_type": self.effective_type.value,
            "action": self.action.value,
            "reason": self.reason,
            "will_convert": self.will_convert,
            "eligible_at": self.eligible_at.isoformat() if self.eligible_at else None,
            "impacted_booking_ids": list(self.impacted_booking_ids),
        }


def _room_claims(claims: Iterable[Booking], room: Room, today: date) -> list[Booking]:
    """Active claims on the flexible room that have not ended yet."""
    return [
        c
        for c in claims
        if c.room_id == room.id and c.is_active and as_day(c.check_out) > today
    ]


def derive_state(
    room: Room,
    claims: Iterable[Booking],
    now: datetime,
    *,
    lock_until: datetime | None = None,
) -> FlexibleRoomState:
    """Compute the current designation from the bookings touching the room.

    Any current or upcoming female booking pins the room to female; otherwise
    mixed bookings mean it has been converted; with neither, the catalog
    default applies.
    """
    current = _room_claims(claims, room, as_day(now))

    if any(c.guest_type == RoomType.FEMALE for c in current):
        current_type = RoomType.FEMALE
    elif current:
        current_type = RoomType.MIXED
    else:
        current_type = room.type

    converted_at = None
    if current_type != room.type:
        stamps = [c.created_at for c in current if c.created_at is not None]
        converted_at = min(stamps) if stamps else None

    return FlexibleRoomState(
        current_type=current_type,
        is_converted=current_type != room.type,
        converted_at=converted_at,
        lock_until=lock_until,
    )


def evaluate(
    room: Room,
    state: FlexibleRoomState,
    claims: Iterable[Booking],
    check_in: date,
    check_out: date,
    now: datetime,
    *,
    auto_convert_hours: int = DEFAULT_AUTO_CONVERT_HOURS,
) -> FlexibleRoomDecision:
    """Resolve the effective type of the flexible room for a stay window.

    Args:
        room: The flexible room from the catalog.
        state: Current derived state (see derive_state).
        claims: Bookings and projected holds (any room; filtered here).
        check_in: Window start (inclusive).
        check_out: Window end (exclusive).
        now: Evaluation instant.
        auto_convert_hours: Horizon beyond which a confirmed female booking
            does not prevent conversion to mixed.

    Returns:
        FlexibleRoomDecision describing the label to use.
    """
    validate_range(check_in, check_out)
    claims = list(claims)
    window = active_claims(claims, as_day(check_in), as_day(check_out), room_id=room.id)
    female_window = [c for c in window if c.guest_type == RoomType.FEMALE]
    current = state.current_type

    # Rule 1
    confirmed_female = [c for c in female_window if c.status == BookingStatus.CONFIRMED]
    if confirmed_female:
        return FlexibleRoomDecision(
            room_id=room.id,
            effective_type=RoomType.FEMALE,
            action=ConversionAction.KEEP_CURRENT,
            reason=f"{len(confirmed_female)} confirmed female booking(s) in window",
            impacted_booking_ids=sorted({c.id for c in confirmed_female}),
        )

    if state.lock_until is not None and state.lock_until > now:
        return FlexibleRoomDecision(
            room_id=room.id,
            effective_type=current,
            action=ConversionAction.KEEP_CURRENT,
            reason="conversion locked by manual override",
        )

    # Rule 2
    if female_window:
        earliest = min(female_window, key=lambda c: as_day(c.check_in))
        earliest_start = day_start(earliest.check_in)
        hours_until = hours_between(now, earliest_start)
        if hours_until > PENDING_DECISION_HOURS:
            return FlexibleRoomDecision(
                room_id=room.id,
                effective_type=current,
                action=ConversionAction.SCHEDULE_CONVERSION,
                reason=f"pending female booking(s); decide in {round(hours_until - PENDING_DECISION_HOURS)}h",
                eligible_at=earliest_start - timedelta(hours=PENDING_DECISION_HOURS),
                impacted_booking_ids=sorted({c.id for c in female_window}),
            )

    # Rule 3
    if not window:
        upcoming_female = sorted(
            (
                c
                for c in _room_claims(claims, room, as_day(now))
                if c.guest_type == RoomType.FEMALE
                and c.status == BookingStatus.CONFIRMED
                and day_start(c.check_in) >= now
            ),
            key=lambda c: as_day(c.check_in),
        )
        next_female = upcoming_female[0] if upcoming_female else None
        if (
            next_female is None
            or hours_between(now, day_start(next_female.check_in)) > auto_convert_hours
        ):
            reason = (
                "no female bookings scheduled"
                if next_female is None
                else f"next female booking more than {auto_convert_hours}h away"
            )
            return FlexibleRoomDecision(
                room_id=room.id,
                effective_type=RoomType.MIXED,
                action=ConversionAction.CONVERT_NOW,
                reason=reason,
                will_convert=current != RoomType.MIXED,
            )

    # Rule 4
    return FlexibleRoomDecision(
        room_id=room.id,
        effective_type=current,
        action=ConversionAction.KEEP_CURRENT,
        reason="current conditions do not justify conversion",
    )


def convert(
    room: Room,
    state: FlexibleRoomState,
    target_type: RoomType,
    claims: Iterable[Booking],
    now: datetime,
) -> FlexibleRoomState:
    """Explicitly relabel the flexible room (admin action).

    Raises:
        ConversionConflict: If a current or upcoming confirmed booking needs
            the opposite designation. Nothing is changed in that case.
    """
    if state.current_type == target_type:
        return state

    opposite = RoomType.MIXED if target_type == RoomType.FEMALE else RoomType.FEMALE
    conflicting = sorted(
        {
            c.id
            for c in _room_claims(claims, room, as_day(now))
            if c.status == BookingStatus.CONFIRMED and c.guest_type == opposite
        }
    )
    if conflicting:
        logger.warning(
            "flexible room conversion rejected",
            extra={
                "extra_fields": {
                    "room_id": room.id,
                    "target_type": target_type.value,
                    "conflicting_booking_ids": conflicting,
                }
            },
        )
        raise ConversionConflict(target_type.value, conflicting)

    logger.info(
        "flexible room converted",
        extra={
            "extra_fields": {
                "room_id": room.id,
                "from_type": state.current_type.value,
                "to_type": target_type.value,
            }
        },
    )
    return replace(
        state,
        current_type=target_type,
        is_converted=target_type != room.type,
        converted_at=now,
        lock_until=None,
    )


def lock_conversion(
    state: FlexibleRoomState, hours: float, now: datetime
) -> FlexibleRoomState:
    """Freeze the current designation for `hours` (manual override)."""
    return replace(state, lock_until=now + timedelta(hours=hours))


def effective_room_types(
    rooms: Iterable[Room], decision: FlexibleRoomDecision | None
) -> dict[str, RoomType]:
    """Room labels to allocate with, after applying the policy decision."""
    types = {room.id: room.type for room in rooms}
    if decision is not None and decision.room_id in types:
        types[decision.room_id] = decision.effective_type
    return types


def room_types_for_guest(
    room_types: dict[str, RoomType],
    decision: FlexibleRoomDecision | None,
    guest_type: RoomType,
) -> dict[str, RoomType]:
    """Room labels as seen by a guest of `guest_type`.

    A flexible room that is mixed only because nothing occupies the window
    (CONVERT_NOW) can still take a female booking, which pins it back to
    female. Any other label is binding.
    """
    types = dict(room_types)
    if (
        decision is not None
        and guest_type == RoomType.FEMALE
        and decision.action == ConversionAction.CONVERT_NOW
    ):
        types[decision.room_id] = RoomType.FEMALE
    return types
