"""TTL-backed store of provisional bed claims (holds).

Holds are JSON records under `hold:{hold_id}` in a KeyValueStore. Logical
expiry is always `now >= expires_at`; the physical TTL on the key is the
logical TTL plus a short retention window so expired and released holds can
still be inspected before the store drops them.

Status transitions go through compare_and_set: two writers racing on the
same hold cannot both win, so a status can never move backwards.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from hostelly.domain.errors import (
    HoldExpired,
    HoldNotFound,
    StatusRegression,
    StoreUnavailable,
    ValidationError,
)
from hostelly.domain.models import Booking, Hold, HoldStatus, RoomType
from hostelly.domain.occupancy import overlaps, validate_range
from hostelly.infra.kv_store import KeyValueStore
from hostelly.infra.settings import EngineSettings
from hostelly.infra.time import Clock, utc_now
from hostelly.observability.logging import get_logger
from hostelly.observability.redaction import safe_log_context

logger = get_logger(__name__)

HOLD_PREFIX = "hold:"

# Optimistic retries for compare_and_set before reporting the store busy.
MAX_CAS_ATTEMPTS = 5


@dataclass(frozen=True)
class HoldRequest:
    beds_per_room: dict[str, int]
    check_in: date
    check_out: date
    guest_email: str = ""
    guest_type: RoomType = RoomType.MIXED


@dataclass(frozen=True)
class HoldTicket:
    hold_id: str
    expires_at: datetime

    def to_dict(self) -> dict:
        return {"hold_id": self.hold_id, "expires_at": self.expires_at.isoformat()}


def _key(hold_id: str) -> str:
    return HOLD_PREFIX + hold_id


def _dump(hold: Hold) -> str:
    return json.dumps(hold.to_dict(), sort_keys=True)


class HoldStore:
    """Create, transition and query holds."""

    def __init__(
        self,
        store: KeyValueStore,
        settings: EngineSettings | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._settings = settings or EngineSettings()
        self._clock = clock

    def _physical_ttl(self, logical_seconds: float) -> float:
        return logical_seconds + self._settings.released_retention_seconds

    def _load(self, hold_id: str) -> tuple[str, Hold] | None:
        raw = self._store.get(_key(hold_id))
        if raw is None:
            return None
        return raw, Hold.from_dict(json.loads(raw))

    def start(self, request: HoldRequest, *, hold_id: str | None = None) -> HoldTicket:
        """Create a hold in status `hold` with the bare-hold TTL.

        Raises:
            ValidationError: If the range is invalid or no beds are claimed.
        """
        validate_range(request.check_in, request.check_out)
        beds = {room_id: int(n) for room_id, n in request.beds_per_room.items() if n}
        if not beds or any(n < 0 for n in beds.values()):
            raise ValidationError("a hold must claim a positive number of beds")

        now = self._clock()
        ttl = self._settings.hold_ttl_seconds
        hold = Hold(
            hold_id=hold_id or uuid.uuid4().hex,
            beds_per_room=beds,
            check_in=request.check_in,
            check_out=request.check_out,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
            guest_email=request.guest_email,
            guest_type=request.guest_type,
            updated_at=now,
        )
        if not self._store.set(
            _key(hold.hold_id), _dump(hold), ttl_seconds=self._physical_ttl(ttl), nx=True
        ):
            raise ValidationError(f"Hold {hold.hold_id} already exists")

        logger.info(
            "hold started",
            extra={
                "extra_fields": safe_log_context(
                    hold_id=hold.hold_id,
                    beds=hold.total_beds,
                    rooms=sorted(beds),
                    check_in=hold.check_in,
                    check_out=hold.check_out,
                    guest_email=hold.guest_email,
                )
            },
        )
        return HoldTicket(hold_id=hold.hold_id, expires_at=hold.expires_at)

    def get(self, hold_id: str) -> Hold | None:
        """The stored hold, including released or expired ones still retained."""
        loaded = self._load(hold_id)
        return loaded[1] if loaded else None

    def confirm(self, hold_id: str, status: HoldStatus | str) -> Hold:
        """Advance a hold to `status` and re-arm its TTL.

        Re-confirming the current status only extends the TTL.

        Raises:
            ValidationError: If status is unknown or `released`.
            HoldNotFound: If the hold does not exist or was released.
            HoldExpired: If the hold reached expires_at.
            StatusRegression: If status is earlier than the current one.
            StoreUnavailable: If concurrent writers kept winning the race.
        """
        try:
            target = HoldStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown hold status: {status}") from None
        if target == HoldStatus.RELEASED:
            raise ValidationError("use release() to release a hold")

        for _ in range(MAX_CAS_ATTEMPTS):
            loaded = self._load(hold_id)
            if loaded is None:
                raise HoldNotFound(hold_id)
            raw, hold = loaded
            now = self._clock()
            if hold.status == HoldStatus.RELEASED:
                raise HoldNotFound(hold_id)
            if hold.is_expired(now):
                raise HoldExpired(hold_id)
            if target.order < hold.status.order:
                raise StatusRegression(hold_id, hold.status.value, target.value)

            ttl = self._settings.ttl_for_status(target.value)
            previous = hold.status
            hold.status = target
            hold.expires_at = now + timedelta(seconds=ttl)
            hold.updated_at = now
            if self._store.compare_and_set(
                _key(hold_id), raw, _dump(hold), ttl_seconds=self._physical_ttl(ttl)
            ):
                logger.info(
                    "hold status updated",
                    extra={
                        "extra_fields": {
                            "hold_id": hold_id,
                            "from_status": previous.value,
                            "to_status": target.value,
                            "ttl_seconds": ttl,
                        }
                    },
                )
                return hold

        raise StoreUnavailable(f"Hold {hold_id} kept changing during update")

    def release(self, hold_id: str) -> Hold:
        """Mark a hold released; it stays readable for the retention window.

        Releasing an already released hold is a no-op.

        Raises:
            HoldNotFound: If the hold does not exist.
        """
        retention = self._settings.released_retention_seconds
        for _ in range(MAX_CAS_ATTEMPTS):
            loaded = self._load(hold_id)
            if loaded is None:
                raise HoldNotFound(hold_id)
            raw, hold = loaded
            if hold.status == HoldStatus.RELEASED:
                return hold

            now = self._clock()
            previous = hold.status
            hold.status = HoldStatus.RELEASED
            hold.updated_at = now
            hold.expires_at = min(hold.expires_at, now)
            if self._store.compare_and_set(
                _key(hold_id), raw, _dump(hold), ttl_seconds=retention
            ):
                logger.info(
                    "hold released",
                    extra={
                        "extra_fields": {"hold_id": hold_id, "from_status": previous.value}
                    },
                )
                return hold

        raise StoreUnavailable(f"Hold {hold_id} kept changing during release")

    def _all(self) -> list[Hold]:
        holds = []
        for key in self._store.keys(HOLD_PREFIX):
            raw = self._store.get(key)
            if raw is not None:
                holds.append(Hold.from_dict(json.loads(raw)))
        return holds

    def list_active(self) -> list[Hold]:
        """Unreleased, unexpired holds, newest first."""
        now = self._clock()
        active = [h for h in self._all() if h.is_active(now)]
        return sorted(active, key=lambda h: h.created_at, reverse=True)

    def claims(
        self, check_in: date | None = None, check_out: date | None = None
    ) -> list[Booking]:
        """Active holds projected as pending bookings, optionally windowed."""
        claims = []
        for hold in self.list_active():
            if check_in is not None and check_out is not None and not overlaps(
                hold.check_in, hold.check_out, check_in, check_out
            ):
                continue
            claims.extend(hold.as_bookings())
        return claims

    def occupancy_view(self, check_in: date, check_out: date) -> dict[str, int]:
        """Beds held per room by active holds overlapping the window."""
        validate_range(check_in, check_out)
        view: dict[str, int] = {}
        for claim in self.claims(check_in, check_out):
            view[claim.room_id] = view.get(claim.room_id, 0) + claim.beds_count
        return view

    def stats(self) -> dict[str, int]:
        now = self._clock()
        holds = self._all()
        active = [h for h in holds if h.is_active(now)]
        return {
            "total": len(holds),
            "active": len(active),
            "hold": sum(1 for h in active if h.status == HoldStatus.HOLD),
            "paid": sum(1 for h in active if h.status == HoldStatus.PAID),
            "confirmed": sum(1 for h in active if h.status == HoldStatus.CONFIRMED),
            "released": sum(1 for h in holds if h.status == HoldStatus.RELEASED),
            "expired": sum(
                1 for h in holds if h.status != HoldStatus.RELEASED and h.is_expired(now)
            ),
        }

    def sweep(self) -> int:
        """Drop holds whose retention window has passed. Returns the count.

        Reads never depend on this; expired holds are already excluded.
        """
        now = self._clock()
        retention = timedelta(seconds=self._settings.released_retention_seconds)
        removed = 0
        for key in self._store.keys(HOLD_PREFIX):
            raw = self._store.get(key)
            if raw is None:
                self._store.delete(key)
                removed += 1
                continue
            hold = Hold.from_dict(json.loads(raw))
            if now >= hold.expires_at + retention:
                if self._store.compare_and_delete(key, raw):
                    removed += 1
        if removed:
            logger.info("holds swept", extra={"extra_fields": {"count": removed}})
        return removed
