"""Core records shared by the allocation engine."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any

from hostelly.domain.errors import ValidationError
from hostelly.infra.time import utc_now


class RoomType(str, Enum):
    MIXED = "mixed"
    FEMALE = "female"


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


# Statuses that consume beds.
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class HoldStatus(str, Enum):
    HOLD = "hold"
    PAID = "paid"
    CONFIRMED = "confirmed"
    RELEASED = "released"

    @property
    def order(self) -> int:
        """Position in the hold lifecycle; released sorts after everything."""
        return _HOLD_STATUS_ORDER[self]


_HOLD_STATUS_ORDER = {
    HoldStatus.HOLD: 1,
    HoldStatus.PAID: 2,
    HoldStatus.CONFIRMED: 3,
    HoldStatus.RELEASED: 4,
}


@dataclass(frozen=True)
class Room:
    """Catalog entry for a physical dormitory."""

    id: str
    name: str
    capacity: int
    type: RoomType
    is_flexible: bool = False


@dataclass(frozen=True)
class Booking:
    """A stay that claims beds in one room.

    Confirmed and pending bookings come from the booking datastore; active
    holds are projected into the same shape (status PENDING) so occupancy
    and conflict checks treat both uniformly.
    """

    id: str
    room_id: str
    check_in: date
    check_out: date
    beds_count: int
    guest_email: str = ""
    status: BookingStatus = BookingStatus.CONFIRMED
    created_at: datetime | None = None
    guest_type: RoomType = RoomType.MIXED

    def __post_init__(self) -> None:
        if self.check_out <= self.check_in:
            raise ValidationError(
                f"Booking {self.id}: check_out must be after check_in"
            )
        if self.beds_count <= 0:
            raise ValidationError(f"Booking {self.id}: beds_count must be positive")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES


@dataclass(frozen=True)
class BookingRequest:
    """A prospective booking of one room, as submitted for validation.

    Unlike Booking, fields are not validated on construction; the conflict
    detector reports bad values as conflicts.
    """

    room_id: str
    check_in: date
    check_out: date
    beds_count: int
    guest_email: str
    id: str | None = None
    guest_type: RoomType = RoomType.MIXED

    def with_room(self, room_id: str) -> "BookingRequest":
        return replace(self, room_id=room_id)

    def shifted(self, check_in: date, check_out: date) -> "BookingRequest":
        return replace(self, check_in=check_in, check_out=check_out)


@dataclass
class Hold:
    """Provisional claim on beds while the guest completes payment."""

    hold_id: str
    beds_per_room: dict[str, int]
    check_in: date
    check_out: date
    created_at: datetime
    expires_at: datetime
    status: HoldStatus = HoldStatus.HOLD
    guest_email: str = ""
    guest_type: RoomType = RoomType.MIXED
    updated_at: datetime | None = None

    @property
    def total_beds(self) -> int:
        return sum(self.beds_per_room.values())

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utc_now()) >= self.expires_at

    def is_active(self, now: datetime | None = None) -> bool:
        return self.status != HoldStatus.RELEASED and not self.is_expired(now)

    def as_bookings(self) -> list[Booking]:
        """Project the hold into one pending booking per room."""
        return [
            Booking(
                id=self.hold_id,
                room_id=room_id,
                check_in=self.check_in,
                check_out=self.check_out,
                beds_count=beds,
                guest_email=self.guest_email,
                status=BookingStatus.PENDING,
                created_at=self.created_at,
                guest_type=self.guest_type,
            )
            for room_id, beds in sorted(self.beds_per_room.items())
            if beds > 0
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "hold_id": self.hold_id,
            "beds_per_room": dict(self.beds_per_room),
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "status": self.status.value,
            "guest_email": self.guest_email,
            "guest_type": self.guest_type.value,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Hold":
        updated_at = data.get("updated_at")
        return cls(
            hold_id=data["hold_id"],
            beds_per_room={k: int(v) for k, v in data["beds_per_room"].items()},
            check_in=date.fromisoformat(data["check_in"]),
            check_out=date.fromisoformat(data["check_out"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            status=HoldStatus(data["status"]),
            guest_email=data.get("guest_email", ""),
            guest_type=RoomType(data.get("guest_type", RoomType.MIXED.value)),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )


@dataclass(frozen=True)
class Lock:
    """Ephemeral mutual-exclusion token over a (room, date range) key."""

    room_id: str
    check_in: date
    check_out: date
    lock_id: str
    acquired_at: datetime
    expires_at: datetime

    @property
    def key(self) -> tuple[str, date, date]:
        return (self.room_id, self.check_in, self.check_out)

    def to_dict(self) -> dict[str, Any]:
        return {
            "room_id": self.room_id,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "lock_id": self.lock_id,
            "acquired_at": self.acquired_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Lock":
        return cls(
            room_id=data["room_id"],
            check_in=date.fromisoformat(data["check_in"]),
            check_out=date.fromisoformat(data["check_out"]),
            lock_id=data["lock_id"],
            acquired_at=datetime.fromisoformat(data["acquired_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )


@dataclass(frozen=True)
class FlexibleRoomState:
    """Derived view of the convertible room; recomputed on every query."""

    current_type: RoomType = RoomType.FEMALE
    is_converted: bool = False
    converted_at: datetime | None = None
    lock_until: datetime | None = None


@dataclass(frozen=True)
class GuestPreferences:
    room_type: RoomType | None = None
    avoid_flexible_rooms: bool = False
    prefer_separate_rooms: bool = False


@dataclass(frozen=True)
class RoomAllocation:
    room_id: str
    beds_allocated: int

    def to_dict(self) -> dict[str, Any]:
        return {"room_id": self.room_id, "beds_allocated": self.beds_allocated}


@dataclass(frozen=True)
class AllocationResult:
    """Outcome of a Room Allocator run."""

    success: bool
    requested_beds: int
    strategy: str
    allocations: list[RoomAllocation] = field(default_factory=list)
    utilization_score: float = 0.0
    fragmentation_score: float = 0.0
    warnings: list[str] = field(default_factory=list)
    error: str | None = None
    total_available: int = 0

    @property
    def total_allocated(self) -> int:
        return sum(a.beds_allocated for a in self.allocations)

    @property
    def room_ids(self) -> list[str]:
        return [a.room_id for a in self.allocations]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "requested_beds": self.requested_beds,
            "strategy": self.strategy,
            "allocations": [a.to_dict() for a in self.allocations],
            "utilization_score": self.utilization_score,
            "fragmentation_score": self.fragmentation_score,
            "warnings": list(self.warnings),
            "error": self.error,
            "total_available": self.total_available,
        }
