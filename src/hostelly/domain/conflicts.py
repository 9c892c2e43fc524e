"""Conflict detection: the anti-overbooking gate.

No allocation may be committed without passing ConflictDetector.validate,
evaluated against the same claims snapshot the allocation was computed from
(the booking engine reads that snapshot while holding the room/date locks).

Validation order:
1. Field checks (dates, bed count, e-mail)      HIGH, short-circuits
2. Room checks (unknown room, over capacity,     HIGH
   room designation vs guest type)
3. Per-night overbooking scan                   HIGH per offending night
4. Duplicate guest (same e-mail, overlapping)   MEDIUM, advisory
5. Near capacity / tolerance in use             LOW, advisory

can_proceed = no HIGH conflicts and at most two MEDIUM ones.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Iterable, Mapping

from hostelly.domain.allocation import LARGE_GROUP_BEDS, AllocationStrategy, allocate
from hostelly.domain.models import (
    Booking,
    BookingRequest,
    GuestPreferences,
    Room,
    RoomAllocation,
    RoomType,
)
from hostelly.domain.occupancy import (
    active_claims,
    available_by_room,
    calculate_occupancy,
    nightly_occupancy,
)
from hostelly.domain.rooms import CATALOG, rooms_by_id
from hostelly.observability.logging import get_logger
from hostelly.observability.redaction import safe_log_context

logger = get_logger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

DATE_SHIFTS = (-3, 3, -7, 7)
MAX_MEDIUM_CONFLICTS = 2
NEAR_CAPACITY_RATIO = 0.9


class Severity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ConflictType(str, Enum):
    INVALID_DATES = "INVALID_DATES"
    PAST_CHECK_IN = "PAST_CHECK_IN"
    INVALID_BEDS = "INVALID_BEDS"
    INVALID_EMAIL = "INVALID_EMAIL"
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    EXCEEDS_CAPACITY = "EXCEEDS_CAPACITY"
    OVERBOOKING = "OVERBOOKING"
    DUPLICATE_GUEST = "DUPLICATE_GUEST"
    NEAR_CAPACITY = "NEAR_CAPACITY"
    OVERBOOKING_TOLERANCE = "OVERBOOKING_TOLERANCE"
    ROOM_TYPE_MISMATCH = "ROOM_TYPE_MISMATCH"


class AlternativeKind(str, Enum):
    OTHER_ROOM = "OTHER_ROOM"
    DATE_SHIFT = "DATE_SHIFT"
    MULTI_ROOM = "MULTI_ROOM"


@dataclass(frozen=True)
class Conflict:
    type: ConflictType
    severity: Severity
    message: str
    room_id: str | None = None
    night: date | None = None
    booking_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "room_id": self.room_id,
            "night": self.night.isoformat() if self.night else None,
            "booking_ids": list(self.booking_ids),
        }


@dataclass(frozen=True)
class Alternative:
    kind: AlternativeKind
    score: int
    check_in: date
    check_out: date
    allocations: list[RoomAllocation]
    description: str

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "score": self.score,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "allocations": [a.to_dict() for a in self.allocations],
            "description": self.description,
        }


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    can_proceed: bool
    conflicts: list[Conflict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggested_alternatives: list[Alternative] = field(default_factory=list)
    lock_required: bool = False

    def has_severity(self, severity: Severity) -> bool:
        return any(c.severity == severity for c in self.conflicts)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "can_proceed": self.can_proceed,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "warnings": list(self.warnings),
            "suggested_alternatives": [a.to_dict() for a in self.suggested_alternatives],
            "lock_required": self.lock_required,
        }


def capacity_limit(capacity: int, allowed_overbooking_pct: float) -> int:
    """Highest bed count tolerated in a room for one night.

    Computed exactly (Decimal) so 100 beds at 15% gives 115, not 114 from
    binary float rounding; fractional beds are floored.
    """
    extra = (Decimal(capacity) * Decimal(str(allowed_overbooking_pct))).to_integral_value(
        rounding=ROUND_FLOOR
    )
    return capacity + int(extra)


def _field_conflicts(candidate: BookingRequest, today: date) -> list[Conflict]:
    conflicts = []
    if candidate.check_out <= candidate.check_in:
        conflicts.append(
            Conflict(
                type=ConflictType.INVALID_DATES,
                severity=Severity.HIGH,
                message="check_out must be after check_in",
            )
        )
    if candidate.check_in < today:
        conflicts.append(
            Conflict(
                type=ConflictType.PAST_CHECK_IN,
                severity=Severity.HIGH,
                message="check_in cannot be in the past",
            )
        )
    beds = candidate.beds_count
    if isinstance(beds, bool) or not isinstance(beds, int) or beds <= 0:
        conflicts.append(
            Conflict(
                type=ConflictType.INVALID_BEDS,
                severity=Severity.HIGH,
                message="beds_count must be a positive integer",
            )
        )
    if not candidate.guest_email or not _EMAIL_RE.match(candidate.guest_email):
        conflicts.append(
            Conflict(
                type=ConflictType.INVALID_EMAIL,
                severity=Severity.HIGH,
                message="guest_email is not a valid address",
            )
        )
    return conflicts


class ConflictDetector:
    """Validates prospective bookings against a claims snapshot."""

    def __init__(
        self,
        rooms: Iterable[Room] = CATALOG,
        *,
        allowed_overbooking_pct: float = 0.0,
        max_medium_conflicts: int = MAX_MEDIUM_CONFLICTS,
    ) -> None:
        if allowed_overbooking_pct < 0:
            raise ValueError("allowed_overbooking_pct cannot be negative")
        self.rooms = list(rooms)
        self.allowed_overbooking_pct = allowed_overbooking_pct
        self.max_medium_conflicts = max_medium_conflicts
        self._rooms_by_id = rooms_by_id(self.rooms)

    def validate(
        self,
        candidate: BookingRequest,
        claims: Iterable[Booking],
        today: date,
        *,
        with_alternatives: bool = True,
        room_types: Mapping[str, RoomType] | None = None,
    ) -> ValidationResult:
        """Check a single-room booking request.

        Args:
            candidate: The prospective booking.
            claims: Active bookings and projected holds (the snapshot).
            today: Current date; earlier check-ins are rejected.
            with_alternatives: Generate alternatives when blocked.
            room_types: Effective room labels as seen by this guest. When
                given, a room whose label differs from candidate.guest_type
                is a HIGH ROOM_TYPE_MISMATCH and alternatives stay in rooms
                with a matching label. When omitted, catalog types are used
                only to keep female-only requests in female rooms.

        Returns:
            ValidationResult.
        """
        claims = list(claims)

        conflicts = _field_conflicts(candidate, today)
        if conflicts:
            return self._result(conflicts, lock_required=False, alternatives=[])

        room = self._rooms_by_id.get(candidate.room_id)
        if room is None:
            conflicts.append(
                Conflict(
                    type=ConflictType.ROOM_NOT_FOUND,
                    severity=Severity.HIGH,
                    message=f"Unknown room {candidate.room_id}",
                    room_id=candidate.room_id,
                )
            )
            return self._finish(candidate, claims, today, conflicts, False, with_alternatives, room_types)

        if candidate.beds_count > room.capacity:
            conflicts.append(
                Conflict(
                    type=ConflictType.EXCEEDS_CAPACITY,
                    severity=Severity.HIGH,
                    message=f"Room {room.name} has a capacity of {room.capacity} beds",
                    room_id=room.id,
                )
            )

        conflicts.extend(self._room_type_conflicts(candidate, room, claims, room_types))
        lock_required = self._scan_nights(candidate, room, claims, conflicts)
        conflicts.extend(self._duplicate_guest(candidate, claims))

        return self._finish(
            candidate, claims, today, conflicts, lock_required, with_alternatives, room_types
        )

    def _scan_nights(
        self,
        candidate: BookingRequest,
        room: Room,
        claims: list[Booking],
        conflicts: list[Conflict],
    ) -> bool:
        """Append overbooking conflicts; return True if the room is contended."""
        limit = capacity_limit(room.capacity, self.allowed_overbooking_pct)
        nights = nightly_occupancy(
            claims,
            room.id,
            candidate.check_in,
            candidate.check_out,
            exclude_id=candidate.id,
        )
        contended = any(used > 0 for used in nights.values())
        peak = 0
        tolerance_nights = []

        for night, used in nights.items():
            total = used + candidate.beds_count
            peak = max(peak, total)
            if total > limit:
                logger.warning(
                    "overbooking prevented",
                    extra={
                        "extra_fields": safe_log_context(
                            room_id=room.id,
                            night=night,
                            occupied=used,
                            requested=candidate.beds_count,
                            limit=limit,
                        )
                    },
                )
                conflicts.append(
                    Conflict(
                        type=ConflictType.OVERBOOKING,
                        severity=Severity.HIGH,
                        message=(
                            f"Room {room.name} would hold {total} beds on "
                            f"{night.isoformat()} (limit {limit})"
                        ),
                        room_id=room.id,
                        night=night,
                    )
                )
            elif total > room.capacity:
                tolerance_nights.append(night)

        if tolerance_nights:
            conflicts.append(
                Conflict(
                    type=ConflictType.OVERBOOKING_TOLERANCE,
                    severity=Severity.LOW,
                    message=(
                        f"Room {room.name} exceeds physical capacity on "
                        f"{len(tolerance_nights)} night(s) within the overbooking tolerance"
                    ),
                    room_id=room.id,
                    night=tolerance_nights[0],
                )
            )
        elif limit >= peak >= room.capacity * NEAR_CAPACITY_RATIO:
            conflicts.append(
                Conflict(
                    type=ConflictType.NEAR_CAPACITY,
                    severity=Severity.LOW,
                    message=f"Room {room.name} would be at {peak}/{room.capacity} beds",
                    room_id=room.id,
                )
            )
        return contended

    def _room_type_conflicts(
        self,
        candidate: BookingRequest,
        room: Room,
        claims: list[Booking],
        room_types: Mapping[str, RoomType] | None,
    ) -> list[Conflict]:
        """A booking may not silently relabel the room it lands in."""
        if room_types is None:
            return []
        label = room_types.get(room.id, room.type)
        if label == candidate.guest_type:
            return []
        holders = sorted(
            {
                c.id
                for c in active_claims(
                    claims,
                    candidate.check_in,
                    candidate.check_out,
                    exclude_id=candidate.id,
                    room_id=room.id,
                )
                if c.guest_type == label
            }
        )
        logger.warning(
            "room type mismatch prevented",
            extra={
                "extra_fields": safe_log_context(
                    room_id=room.id,
                    room_type=label.value,
                    guest_type=candidate.guest_type.value,
                    booking_ids=holders,
                )
            },
        )
        return [
            Conflict(
                type=ConflictType.ROOM_TYPE_MISMATCH,
                severity=Severity.HIGH,
                message=(
                    f"Room {room.name} is {label.value} for these dates and cannot "
                    f"take a {candidate.guest_type.value} booking"
                ),
                room_id=room.id,
                booking_ids=holders,
            )
        ]

    def _duplicate_guest(
        self, candidate: BookingRequest, claims: list[Booking]
    ) -> list[Conflict]:
        email = candidate.guest_email.strip().lower()
        seen: set[str] = set()
        conflicts = []
        for claim in active_claims(claims, candidate.check_in, candidate.check_out):
            if claim.id in seen or claim.id == candidate.id:
                continue
            if claim.guest_email.strip().lower() != email:
                continue
            seen.add(claim.id)
            conflicts.append(
                Conflict(
                    type=ConflictType.DUPLICATE_GUEST,
                    severity=Severity.MEDIUM,
                    message=(
                        f"Guest already has an overlapping stay "
                        f"({claim.check_in.isoformat()} to {claim.check_out.isoformat()})"
                    ),
                    room_id=claim.room_id,
                    booking_ids=[claim.id],
                )
            )
        return conflicts

    def _can_proceed(self, conflicts: list[Conflict]) -> bool:
        high = sum(1 for c in conflicts if c.severity == Severity.HIGH)
        medium = sum(1 for c in conflicts if c.severity == Severity.MEDIUM)
        return high == 0 and medium <= self.max_medium_conflicts

    def _result(
        self,
        conflicts: list[Conflict],
        *,
        lock_required: bool,
        alternatives: list[Alternative],
    ) -> ValidationResult:
        return ValidationResult(
            is_valid=not any(c.severity != Severity.LOW for c in conflicts),
            can_proceed=self._can_proceed(conflicts),
            conflicts=conflicts,
            warnings=[c.message for c in conflicts if c.severity != Severity.HIGH],
            suggested_alternatives=alternatives,
            lock_required=lock_required,
        )

    def _finish(
        self,
        candidate: BookingRequest,
        claims: list[Booking],
        today: date,
        conflicts: list[Conflict],
        lock_required: bool,
        with_alternatives: bool,
        room_types: Mapping[str, RoomType] | None,
    ) -> ValidationResult:
        alternatives: list[Alternative] = []
        if with_alternatives and not self._can_proceed(conflicts):
            alternatives = self.suggest_alternatives(candidate, claims, today, room_types=room_types)
        return self._result(conflicts, lock_required=lock_required, alternatives=alternatives)

    def suggest_alternatives(
        self,
        candidate: BookingRequest,
        claims: Iterable[Booking],
        today: date,
        *,
        room_types: Mapping[str, RoomType] | None = None,
    ) -> list[Alternative]:
        """Feasible variations of a blocked request, best first.

        Tries every other room, date windows shifted by 3 and 7 days, and for
        groups larger than LARGE_GROUP_BEDS a multi-room split. Every option
        is re-validated; none is applied.
        """
        claims = list(claims)
        enforced = dict(room_types) if room_types is not None else None
        labels = enforced or {room.id: room.type for room in self.rooms}
        alternatives: list[Alternative] = []

        for room in self.rooms:
            if room.id == candidate.room_id:
                continue
            label = labels.get(room.id, room.type)
            if enforced is not None and label != candidate.guest_type:
                continue
            if candidate.guest_type == RoomType.FEMALE and label != RoomType.FEMALE:
                continue
            option = candidate.with_room(room.id)
            result = self.validate(
                option, claims, today, with_alternatives=False, room_types=enforced
            )
            if result.can_proceed:
                low = sum(1 for c in result.conflicts if c.severity == Severity.LOW)
                alternatives.append(
                    Alternative(
                        kind=AlternativeKind.OTHER_ROOM,
                        score=90 - 5 * low,
                        check_in=candidate.check_in,
                        check_out=candidate.check_out,
                        allocations=[RoomAllocation(room.id, candidate.beds_count)],
                        description=f"Same dates in {room.name}",
                    )
                )

        if candidate.room_id in self._rooms_by_id:
            for delta in DATE_SHIFTS:
                shift = timedelta(days=delta)
                new_in = candidate.check_in + shift
                if new_in < today:
                    continue
                option = candidate.shifted(new_in, candidate.check_out + shift)
                result = self.validate(
                    option, claims, today, with_alternatives=False, room_types=enforced
                )
                if result.can_proceed:
                    alternatives.append(
                        Alternative(
                            kind=AlternativeKind.DATE_SHIFT,
                            score=80 - 2 * abs(delta),
                            check_in=option.check_in,
                            check_out=option.check_out,
                            allocations=[RoomAllocation(candidate.room_id, candidate.beds_count)],
                            description=f"Shift stay by {delta:+d} days",
                        )
                    )

        if candidate.beds_count > LARGE_GROUP_BEDS:
            split = self._multi_room_split(candidate, claims, today, labels, enforced)
            if split is not None:
                alternatives.append(split)

        alternatives.sort(key=lambda a: -a.score)
        return alternatives

    def _multi_room_split(
        self,
        candidate: BookingRequest,
        claims: list[Booking],
        today: date,
        labels: Mapping[str, RoomType],
        enforced: Mapping[str, RoomType] | None,
    ) -> Alternative | None:
        occupancy = calculate_occupancy(
            claims,
            candidate.check_in,
            candidate.check_out,
            rooms=self.rooms,
            exclude_id=candidate.id,
        )
        result = allocate(
            candidate.beds_count,
            available_by_room(occupancy),
            AllocationStrategy.GROUP_FRIENDLY,
            GuestPreferences(room_type=candidate.guest_type) if enforced is not None else None,
            rooms=self.rooms,
            room_types=labels,
        )
        if not result.success or len(result.allocations) < 2:
            return None

        for piece in result.allocations:
            check = self.validate(
                BookingRequest(
                    room_id=piece.room_id,
                    check_in=candidate.check_in,
                    check_out=candidate.check_out,
                    beds_count=piece.beds_allocated,
                    guest_email=candidate.guest_email,
                    id=candidate.id,
                    guest_type=candidate.guest_type,
                ),
                claims,
                today,
                with_alternatives=False,
                room_types=enforced,
            )
            if not check.can_proceed:
                return None

        return Alternative(
            kind=AlternativeKind.MULTI_ROOM,
            score=70 - 5 * (len(result.allocations) - 1),
            check_in=candidate.check_in,
            check_out=candidate.check_out,
            allocations=list(result.allocations),
            description=f"Split group across {len(result.allocations)} rooms",
        )
