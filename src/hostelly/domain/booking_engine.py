"""Booking workflow facade: availability, reserve, hold transitions.

The pure components (occupancy, flexible-room policy, allocator, conflict
detector) run over a claims snapshot: bookings from the booking datastore
plus active holds projected as pending bookings. reserve() reads that
snapshot only after it holds a lock on every (room, night) it touches, so
no other writer can slip in between validation and the hold write.

Business outcomes are returned as dicts with an `ok` flag; only
StoreUnavailable (and programming errors) propagate.
"""

from __future__ import annotations

import math
import os
import threading
import time
from dataclasses import replace
from datetime import date, timedelta
from typing import Callable, Iterable, Mapping

from hostelly.domain.allocation import (
    DEFAULT_STRATEGY,
    AllocationStrategy,
    allocate,
    suggest_room_configuration,
)
from hostelly.domain.conflicts import (
    DATE_SHIFTS,
    Alternative,
    AlternativeKind,
    ConflictDetector,
    ConflictType,
    Severity,
)
from hostelly.domain.errors import (
    ConversionConflict,
    HoldNotFound,
    StatusRegression,
    ValidationError,
)
from hostelly.domain.flexible_room import (
    FlexibleRoomDecision,
    convert,
    derive_state,
    effective_room_types,
    evaluate,
    lock_conversion,
    room_types_for_guest,
)
from hostelly.domain.flexible_scoring import (
    mixed_demand_score,
    recommend_conversion,
    revenue_impact,
)
from hostelly.domain.models import (
    Booking,
    BookingRequest,
    FlexibleRoomState,
    GuestPreferences,
    HoldStatus,
    RoomAllocation,
    RoomType,
)
from hostelly.domain.occupancy import available_by_room, calculate_occupancy, validate_range
from hostelly.domain.rooms import CATALOG, flexible_room, total_capacity
from hostelly.infra.hold_store import HoldRequest, HoldStore
from hostelly.infra.kv_store import create_store
from hostelly.infra.lock_manager import LockKey, LockManager
from hostelly.infra.settings import EngineSettings, load_settings
from hostelly.infra.time import Clock, as_day, iter_nights, utc_now
from hostelly.observability.logging import get_logger
from hostelly.observability.redaction import safe_log_context

logger = get_logger(__name__)

# Reads confirmed/pending bookings overlapping [check_in, check_out).
BookingSource = Callable[[date, date], Iterable[Booking]]

_FIELD_CONFLICTS = {
    ConflictType.INVALID_DATES,
    ConflictType.PAST_CHECK_IN,
    ConflictType.INVALID_BEDS,
    ConflictType.INVALID_EMAIL,
}


def no_bookings(check_in: date, check_out: date) -> list[Booking]:
    return []


def _failure(error: str, message: str, **extra) -> dict:
    result = {"ok": False, "error": error, "message": message}
    result.update(extra)
    return result


def _room_type(value: RoomType | str) -> RoomType:
    try:
        return RoomType(value)
    except ValueError:
        raise ValidationError(f"Unknown guest type: {value}") from None


def _normalize_allocation(
    allocation: Mapping[str, int] | Iterable[RoomAllocation | Mapping],
) -> dict[str, int]:
    if isinstance(allocation, Mapping):
        pieces = list(allocation.items())
    else:
        pieces = []
        for item in allocation:
            if isinstance(item, RoomAllocation):
                pieces.append((item.room_id, item.beds_allocated))
            else:
                pieces.append((item["room_id"], item["beds_allocated"]))

    beds: dict[str, int] = {}
    for room_id, count in pieces:
        if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
            raise ValidationError(f"beds for room {room_id} must be a positive integer")
        beds[room_id] = beds.get(room_id, 0) + count
    if not beds:
        raise ValidationError("allocation must include at least one room")
    return beds


class BookingEngine:
    """Entry point used by the HTTP layer and by tests."""

    def __init__(
        self,
        booking_source: BookingSource,
        hold_store: HoldStore,
        lock_manager: LockManager,
        settings: EngineSettings | None = None,
        *,
        rooms=CATALOG,
        clock: Clock = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.rooms = list(rooms)
        self.hold_store = hold_store
        self.lock_manager = lock_manager
        self.detector = ConflictDetector(
            self.rooms, allowed_overbooking_pct=self.settings.allowed_overbooking_pct
        )
        self.max_requested_beds = total_capacity(self.rooms)
        self._booking_source = booking_source
        self._clock = clock
        self._sleep = sleep
        self._flexible_room = flexible_room(self.rooms)
        self._flexible_lock_until = None
        self._flexible_override: FlexibleRoomState | None = None
        self._flexible_guard = threading.Lock()

    # -- snapshot ---------------------------------------------------------

    def _snapshot(self, check_in: date, check_out: date) -> list[Booking]:
        """Bookings and active holds, widened to cover the flexible horizon."""
        today = as_day(self._clock())
        horizon_days = math.ceil(self.settings.flexible_auto_convert_hours / 24) + 1
        start = min(check_in, today)
        end = max(check_out, today + timedelta(days=horizon_days))
        claims = list(self._booking_source(start, end))
        claims.extend(self.hold_store.claims(start, end))
        return claims

    def _flexible_state(self, claims: list[Booking]) -> FlexibleRoomState | None:
        room = self._flexible_room
        if room is None:
            return None
        with self._flexible_guard:
            lock_until = self._flexible_lock_until
            override = self._flexible_override
        state = derive_state(room, claims, self._clock(), lock_until=lock_until)
        if override is not None:
            state = FlexibleRoomState(
                current_type=override.current_type,
                is_converted=override.is_converted,
                converted_at=override.converted_at,
                lock_until=lock_until,
            )
        return state

    def _flexible_decision(
        self, claims: list[Booking], check_in: date, check_out: date
    ) -> FlexibleRoomDecision | None:
        state = self._flexible_state(claims)
        if state is None:
            return None
        return evaluate(
            self._flexible_room,
            state,
            claims,
            check_in,
            check_out,
            self._clock(),
            auto_convert_hours=self.settings.flexible_auto_convert_hours,
        )

    def _guest_room_types(
        self, decision: FlexibleRoomDecision | None, guest_type: RoomType
    ) -> dict[str, RoomType]:
        room_types = effective_room_types(self.rooms, decision)
        with self._flexible_guard:
            override = self._flexible_override
        # An explicit conversion to mixed is not undone by a female booking.
        if override is not None and override.current_type == RoomType.MIXED:
            return room_types
        return room_types_for_guest(room_types, decision, guest_type)

    def _check_beds(self, beds_count: int) -> None:
        if isinstance(beds_count, bool) or not isinstance(beds_count, int) or beds_count <= 0:
            raise ValidationError("beds_count must be a positive integer")
        if beds_count > self.max_requested_beds:
            raise ValidationError(
                f"beds_count cannot exceed {self.max_requested_beds} beds"
            )

    # -- availability -----------------------------------------------------

    def check_availability(
        self,
        check_in: date,
        check_out: date,
        beds_count: int,
        exclude_booking_id: str | None = None,
        strategy: AllocationStrategy | str | None = None,
        preferences: GuestPreferences | None = None,
        guest_type: RoomType | str = RoomType.MIXED,
    ) -> dict:
        """Read-only availability for a stay window.

        Only rooms whose label matches the guest (preferences.room_type, else
        guest_type) are allocated; `can_accommodate` on each room says
        whether that room alone could take the whole request.

        Raises:
            ValidationError: On an invalid window, bed count, strategy or
                guest type.
        """
        validate_range(check_in, check_out)
        self._check_beds(beds_count)
        preferences = preferences or GuestPreferences()
        wanted = preferences.room_type or _room_type(guest_type)
        preferences = replace(preferences, room_type=wanted)

        claims = self._snapshot(check_in, check_out)
        decision = self._flexible_decision(claims, check_in, check_out)
        room_types = effective_room_types(self.rooms, decision)
        guest_types = self._guest_room_types(decision, wanted)
        occupancy = calculate_occupancy(
            claims, check_in, check_out, rooms=self.rooms, exclude_id=exclude_booking_id
        )
        allocation = allocate(
            beds_count,
            available_by_room(occupancy),
            strategy or DEFAULT_STRATEGY,
            preferences,
            rooms=self.rooms,
            room_types=guest_types,
        )

        per_room = []
        for room in self.rooms:
            entry = occupancy[room.id].to_dict()
            entry["name"] = room.name
            entry["type"] = room_types[room.id].value
            entry["is_flexible"] = room.is_flexible
            entry["can_accommodate"] = (
                guest_types[room.id] == wanted and occupancy[room.id].available >= beds_count
            )
            per_room.append(entry)

        return {
            "available": allocation.success,
            "check_in": check_in.isoformat(),
            "check_out": check_out.isoformat(),
            "requested_beds": beds_count,
            "per_room": per_room,
            "total_available": sum(o.available for o in occupancy.values()),
            "recommended_allocation": allocation.to_dict() if allocation.success else None,
            "allocation_error": allocation.error,
            "flexible_room": decision.to_dict() if decision else None,
        }

    def check_multiple_dates(
        self,
        check_in: date,
        check_out: date,
        beds_count: int,
        days: int = 7,
    ) -> list[dict]:
        """Availability for the window shifted forward one day at a time."""
        validate_range(check_in, check_out)
        if days <= 0:
            raise ValidationError("days must be positive")
        results = []
        for offset in range(days):
            shift = timedelta(days=offset)
            result = self.check_availability(check_in + shift, check_out + shift, beds_count)
            results.append(
                {
                    "check_in": result["check_in"],
                    "check_out": result["check_out"],
                    "available": result["available"],
                    "total_available": result["total_available"],
                }
            )
        return results

    def suggest_configuration(
        self, check_in: date, check_out: date, group_size: int
    ) -> dict:
        """Room configuration advice for a group, given current availability."""
        validate_range(check_in, check_out)
        self._check_beds(group_size)
        claims = self._snapshot(check_in, check_out)
        occupancy = calculate_occupancy(claims, check_in, check_out, rooms=self.rooms)
        advice = suggest_room_configuration(
            group_size, available_by_room(occupancy), rooms=self.rooms
        )
        advice["allocation"] = advice["allocation"].to_dict()
        return advice

    # -- reserve ----------------------------------------------------------

    def _lock_keys(self, beds: Mapping[str, int], check_in: date, check_out: date) -> list[LockKey]:
        return [
            (room_id, night, night + timedelta(days=1))
            for room_id in beds
            for night in iter_nights(check_in, check_out)
        ]

    def _acquire_with_backoff(self, keys: list[LockKey]) -> list[str] | None:
        attempts = self.settings.lock_max_attempts
        for attempt in range(attempts):
            lock_ids = self.lock_manager.acquire_all(keys)
            if lock_ids is not None:
                return lock_ids
            if attempt < attempts - 1:
                self._sleep(self.settings.lock_retry_base_seconds * (2**attempt))
        return None

    def reserve(
        self,
        check_in: date,
        check_out: date,
        allocation: Mapping[str, int] | Iterable[RoomAllocation | Mapping],
        guest_email: str,
        guest_type: RoomType | str = RoomType.MIXED,
    ) -> dict:
        """Validate an allocation under locks and write a hold for it.

        Returns:
            {"ok": True, "hold_id", "expires_at", "warnings"} on success;
            {"ok": False, "error", "message", "conflicts", "alternatives"}
            otherwise, with error one of validation_error, capacity_conflict,
            conversion_conflict (adds "booking_ids") or lock_contention.
        """
        try:
            validate_range(check_in, check_out)
            beds = _normalize_allocation(allocation)
            self._check_beds(sum(beds.values()))
            guest_type = _room_type(guest_type)
        except ValidationError as exc:
            return _failure(exc.code, exc.message, conflicts=[], alternatives=[])

        keys = self._lock_keys(beds, check_in, check_out)
        lock_ids = self._acquire_with_backoff(keys)
        if lock_ids is None:
            logger.warning(
                "reserve gave up on lock contention",
                extra={
                    "extra_fields": safe_log_context(
                        rooms=sorted(beds),
                        check_in=check_in,
                        check_out=check_out,
                        attempts=self.settings.lock_max_attempts,
                    )
                },
            )
            return _failure(
                "lock_contention",
                "System busy, please try again",
                conflicts=[],
                alternatives=[],
            )

        try:
            return self._reserve_locked(check_in, check_out, beds, guest_email, guest_type)
        finally:
            self.lock_manager.release_all(lock_ids)

    def _reserve_locked(
        self,
        check_in: date,
        check_out: date,
        beds: dict[str, int],
        guest_email: str,
        guest_type: RoomType,
    ) -> dict:
        claims = self._snapshot(check_in, check_out)
        today = as_day(self._clock())
        decision = self._flexible_decision(claims, check_in, check_out)
        room_types = self._guest_room_types(decision, guest_type)

        conflicts = []
        warnings = []
        alternatives = []
        blocked = False
        for room_id, count in sorted(beds.items()):
            result = self.detector.validate(
                BookingRequest(
                    room_id=room_id,
                    check_in=check_in,
                    check_out=check_out,
                    beds_count=count,
                    guest_email=guest_email,
                    guest_type=guest_type,
                ),
                claims,
                today,
                room_types=room_types,
            )
            conflicts.extend(result.conflicts)
            warnings.extend(result.warnings)
            if not result.can_proceed:
                blocked = True
                if not alternatives:
                    alternatives = result.suggested_alternatives

        if blocked:
            high = [c for c in conflicts if c.severity == Severity.HIGH]
            extra = {}
            if high and all(c.type in _FIELD_CONFLICTS for c in high):
                error, message = "validation_error", high[0].message
            elif high and all(c.type == ConflictType.ROOM_TYPE_MISMATCH for c in high):
                error, message = "conversion_conflict", high[0].message
                extra["booking_ids"] = sorted({i for c in high for i in c.booking_ids})
            else:
                error, message = "capacity_conflict", "Requested beds are not available"
            logger.info(
                "reserve rejected",
                extra={
                    "extra_fields": {
                        "error": error,
                        "conflict_types": sorted({c.type.value for c in conflicts}),
                        "alternatives": len(alternatives),
                    }
                },
            )
            return _failure(
                error,
                message,
                conflicts=[c.to_dict() for c in conflicts],
                alternatives=[a.to_dict() for a in alternatives],
                **extra,
            )

        ticket = self.hold_store.start(
            HoldRequest(
                beds_per_room=beds,
                check_in=check_in,
                check_out=check_out,
                guest_email=guest_email,
                guest_type=guest_type,
            )
        )
        return {
            "ok": True,
            "hold_id": ticket.hold_id,
            "expires_at": ticket.expires_at.isoformat(),
            "warnings": warnings,
        }

    def reserve_beds(
        self,
        check_in: date,
        check_out: date,
        beds_count: int,
        guest_email: str,
        guest_type: RoomType | str = RoomType.MIXED,
        strategy: AllocationStrategy | str | None = None,
    ) -> dict:
        """Allocate `beds_count` automatically, then reserve() the result.

        Same result shape as reserve(). When nothing fits, alternatives
        list shifted windows that do.
        """
        try:
            availability = self.check_availability(
                check_in, check_out, beds_count, strategy=strategy, guest_type=guest_type
            )
        except ValidationError as exc:
            return _failure(exc.code, exc.message, conflicts=[], alternatives=[])

        recommended = availability["recommended_allocation"]
        if recommended is not None:
            return self.reserve(
                check_in, check_out, recommended["allocations"], guest_email, guest_type
            )

        alternatives = self._shifted_allocations(
            check_in, check_out, beds_count, guest_type, strategy
        )
        logger.info(
            "reserve rejected",
            extra={
                "extra_fields": {
                    "error": "capacity_conflict",
                    "requested_beds": beds_count,
                    "alternatives": len(alternatives),
                }
            },
        )
        return _failure(
            "capacity_conflict",
            "Requested beds are not available",
            conflicts=[],
            alternatives=[a.to_dict() for a in alternatives],
        )

    def _shifted_allocations(
        self,
        check_in: date,
        check_out: date,
        beds_count: int,
        guest_type: RoomType | str,
        strategy: AllocationStrategy | str | None,
    ) -> list[Alternative]:
        today = as_day(self._clock())
        options = []
        for delta in DATE_SHIFTS:
            shift = timedelta(days=delta)
            new_in, new_out = check_in + shift, check_out + shift
            if new_in < today:
                continue
            result = self.check_availability(
                new_in, new_out, beds_count, strategy=strategy, guest_type=guest_type
            )
            recommended = result["recommended_allocation"]
            if recommended is None:
                continue
            options.append(
                Alternative(
                    kind=AlternativeKind.DATE_SHIFT,
                    score=80 - 2 * abs(delta),
                    check_in=new_in,
                    check_out=new_out,
                    allocations=[
                        RoomAllocation(a["room_id"], a["beds_allocated"])
                        for a in recommended["allocations"]
                    ],
                    description=f"Shift stay by {delta:+d} days",
                )
            )
        options.sort(key=lambda a: -a.score)
        return options

    # -- holds ------------------------------------------------------------

    def get_hold(self, hold_id: str) -> dict | None:
        hold = self.hold_store.get(hold_id)
        if hold is None:
            return None
        data = hold.to_dict()
        data["active"] = hold.is_active(self._clock())
        return data

    def confirm_hold(self, hold_id: str, status: HoldStatus | str) -> dict:
        try:
            hold = self.hold_store.confirm(hold_id, status)
        except (HoldNotFound, StatusRegression, ValidationError) as exc:
            return _failure(exc.code, exc.message)
        return {
            "ok": True,
            "hold_id": hold.hold_id,
            "status": hold.status.value,
            "expires_at": hold.expires_at.isoformat(),
        }

    def release_hold(self, hold_id: str) -> dict:
        try:
            hold = self.hold_store.release(hold_id)
        except HoldNotFound as exc:
            return _failure(exc.code, exc.message)
        return {"ok": True, "hold_id": hold.hold_id, "status": hold.status.value}

    def list_holds(self) -> list[dict]:
        return [h.to_dict() for h in self.hold_store.list_active()]

    def hold_stats(self) -> dict[str, int]:
        return self.hold_store.stats()

    # -- flexible room ----------------------------------------------------

    def flexible_room_status(self, check_in: date, check_out: date) -> dict:
        """Policy decision for a window plus the advisory demand score."""
        validate_range(check_in, check_out)
        if self._flexible_room is None:
            return {"room_id": None}
        claims = self._snapshot(check_in, check_out)
        state = self._flexible_state(claims)
        decision = self._flexible_decision(claims, check_in, check_out)
        now = self._clock()
        score = mixed_demand_score(
            [c for c in claims if as_day(c.check_out) > as_day(now)], now
        )
        return {
            "room_id": self._flexible_room.id,
            "state": {
                "current_type": state.current_type.value,
                "is_converted": state.is_converted,
                "converted_at": state.converted_at.isoformat() if state.converted_at else None,
                "lock_until": state.lock_until.isoformat() if state.lock_until else None,
            },
            "decision": decision.to_dict(),
            "advisory": {
                "mixed_demand_score": score,
                "recommend_mixed": recommend_conversion(score),
                "revenue_impact": revenue_impact(RoomType.MIXED).to_dict(),
            },
        }

    def lock_flexible_room(self, hours: float) -> dict:
        """Freeze the flexible room's designation for `hours`."""
        if hours <= 0:
            raise ValidationError("hours must be positive")
        now = self._clock()
        with self._flexible_guard:
            locked = lock_conversion(FlexibleRoomState(), hours, now)
            self._flexible_lock_until = locked.lock_until
        logger.info(
            "flexible room conversion locked",
            extra={"extra_fields": {"lock_until": locked.lock_until.isoformat()}},
        )
        return {"ok": True, "lock_until": locked.lock_until.isoformat()}

    def convert_flexible_room(self, target_type: RoomType | str) -> dict:
        """Explicitly relabel the flexible room unless bookings prevent it."""
        try:
            target = RoomType(target_type)
        except ValueError:
            return _failure("validation_error", f"Unknown room type: {target_type}")
        if self._flexible_room is None:
            return _failure("validation_error", "No flexible room in catalog")

        now = self._clock()
        today = as_day(now)
        claims = self._snapshot(today, today + timedelta(days=1))
        state = self._flexible_state(claims)
        try:
            new_state = convert(self._flexible_room, state, target, claims, now)
        except ConversionConflict as exc:
            return _failure(exc.code, exc.message, booking_ids=exc.booking_ids)
        with self._flexible_guard:
            self._flexible_override = new_state
        return {"ok": True, "current_type": new_state.current_type.value}

    # -- maintenance ------------------------------------------------------

    def sweep_holds(self) -> int:
        return self.hold_store.sweep()

    def sweep_locks(self) -> int:
        return self.lock_manager.sweep()


def build_engine(settings: EngineSettings | None = None) -> BookingEngine:
    """Wire an engine from environment settings.

    Bookings come from PostgreSQL when BOOKINGS_DATABASE_URL is set;
    otherwise only holds are considered (local development).
    """
    settings = settings or load_settings()
    store = create_store(settings)

    if os.environ.get("BOOKINGS_DATABASE_URL"):
        from hostelly.infra.repositories.bookings_repository import load_bookings

        source: BookingSource = load_bookings
    else:
        logger.warning("BOOKINGS_DATABASE_URL not set; reading holds only")
        source = no_bookings

    return BookingEngine(
        source,
        HoldStore(store, settings),
        LockManager(store, settings.lock_ttl_seconds),
        settings,
    )
