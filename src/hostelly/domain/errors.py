"""Error taxonomy of the allocation engine.

Each error carries a stable `code` that is safe to return to API clients.
Business outcomes (full rooms, expired holds) are reported as typed results
by the booking engine; these exceptions are raised inside the core and
converted at that boundary. Only StoreUnavailable is meant to escape.
"""

from __future__ import annotations

from typing import Sequence


class EngineError(Exception):
    """Base class for errors raised by the allocation engine."""

    code = "engine_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(EngineError):
    """Bad input shape or dates. Never retried."""

    code = "validation_error"


class CapacityConflict(EngineError):
    """Overbooking or unavailable room. Surfaced with alternatives."""

    code = "capacity_conflict"

    def __init__(self, message: str | None = None, conflicts: Sequence = ()) -> None:
        super().__init__(message)
        self.conflicts = list(conflicts)


class DuplicateWarning(EngineError):
    """Same guest already holds an overlapping stay. Advisory only."""

    code = "duplicate_guest"


class LockContention(EngineError):
    """A room/date lock is held by another request."""

    code = "lock_contention"

    def __init__(self, message: str | None = None, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class HoldNotFound(EngineError):
    """Hold does not exist or was released."""

    code = "hold_not_found"

    def __init__(self, hold_id: str) -> None:
        super().__init__(f"Hold {hold_id} not found")
        self.hold_id = hold_id


class HoldExpired(HoldNotFound):
    """Hold reached its expires_at before the transition."""

    code = "hold_expired"

    def __init__(self, hold_id: str) -> None:
        super().__init__(hold_id)
        self.message = f"Hold {hold_id} has expired"
        self.args = (self.message,)


class StatusRegression(EngineError):
    """Attempted to move a hold back to an earlier status."""

    code = "status_regression"

    def __init__(self, hold_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Hold {hold_id} cannot move from {current} back to {requested}"
        )
        self.hold_id = hold_id
        self.current = current
        self.requested = requested


class ConversionConflict(EngineError):
    """Flexible-room conversion would clash with confirmed bookings."""

    code = "conversion_conflict"

    def __init__(self, target_type: str, booking_ids: Sequence[str]) -> None:
        super().__init__(
            f"Cannot convert flexible room to {target_type}: "
            f"confirmed bookings {', '.join(booking_ids)}"
        )
        self.target_type = target_type
        self.booking_ids = list(booking_ids)


class StoreUnavailable(EngineError):
    """The backing key-value store could not be reached."""

    code = "store_unavailable"
