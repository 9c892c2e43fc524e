"""Engine settings loaded from the environment.

Every tunable of the allocation engine lives here so call sites receive a
single immutable object instead of reading os.environ themselves.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal, Mapping

StoreBackend = Literal["memory", "redis"]


@dataclass(frozen=True)
class EngineSettings:
    """Tunables for holds, locks, overbooking tolerance and the flexible room.

    Attributes:
        hold_ttl_seconds: Lifetime of a bare hold.
        paid_hold_ttl_seconds: Lifetime once payment has been reported.
        confirmed_hold_ttl_seconds: Lifetime once the booking is confirmed.
        released_retention_seconds: How long a released hold is kept for audit.
        lock_ttl_seconds: Auto-expiry of a room/date lock.
        lock_max_attempts: Acquisition attempts before giving up.
        lock_retry_base_seconds: First backoff delay, doubled on each retry.
        allowed_overbooking_pct: Tolerated overbooking (0 disables it).
        flexible_auto_convert_hours: Horizon used by the flexible-room policy.
        store_backend: "memory" for a process-local store, "redis" for shared.
        redis_url: Redis connection URL (redis backend only).
        redis_namespace: Prefix for every key written to Redis.
    """

    hold_ttl_seconds: int = 3 * 60
    paid_hold_ttl_seconds: int = 10 * 60
    confirmed_hold_ttl_seconds: int = 15 * 60
    released_retention_seconds: int = 60
    lock_ttl_seconds: int = 5 * 60
    lock_max_attempts: int = 3
    lock_retry_base_seconds: float = 0.05
    allowed_overbooking_pct: float = 0.0
    flexible_auto_convert_hours: int = 48
    store_backend: StoreBackend = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_namespace: str = "hostelly"

    def __post_init__(self) -> None:
        if self.hold_ttl_seconds <= 0:
            raise ValueError("hold TTL must be positive")
        if self.confirmed_hold_ttl_seconds < self.hold_ttl_seconds:
            raise ValueError("confirmed hold TTL must not be shorter than hold TTL")
        if self.lock_ttl_seconds <= 0:
            raise ValueError("lock TTL must be positive")
        if self.lock_max_attempts < 1:
            raise ValueError("lock_max_attempts must be at least 1")
        if self.allowed_overbooking_pct < 0:
            raise ValueError("allowed_overbooking_pct cannot be negative")
        if self.store_backend not in ("memory", "redis"):
            raise ValueError(f"Unknown STORE_BACKEND: {self.store_backend}")

    def ttl_for_status(self, status: str) -> int:
        """TTL (seconds) to re-arm a hold with when it reaches `status`."""
        if status == "confirmed":
            return self.confirmed_hold_ttl_seconds
        if status == "paid":
            return self.paid_hold_ttl_seconds
        return self.hold_ttl_seconds


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_settings(env: Mapping[str, str] | None = None) -> EngineSettings:
    """Build EngineSettings from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ).

    Returns:
        Validated EngineSettings.

    Raises:
        ValueError: If a variable is malformed or out of range.
    """
    if env is None:
        env = os.environ

    return EngineSettings(
        hold_ttl_seconds=_int(env, "HOLD_TTL_MINUTES", 3) * 60,
        paid_hold_ttl_seconds=_int(env, "PAID_HOLD_TTL_MINUTES", 10) * 60,
        confirmed_hold_ttl_seconds=_int(env, "CONFIRMED_HOLD_TTL_MINUTES", 15) * 60,
        released_retention_seconds=_int(env, "RELEASED_HOLD_RETENTION_SECONDS", 60),
        lock_ttl_seconds=_int(env, "LOCK_TTL_SECONDS", 300),
        lock_max_attempts=_int(env, "LOCK_MAX_ATTEMPTS", 3),
        lock_retry_base_seconds=_float(env, "LOCK_RETRY_BASE_SECONDS", 0.05),
        allowed_overbooking_pct=_float(env, "ALLOWED_OVERBOOKING_PCT", 0.0),
        flexible_auto_convert_hours=_int(env, "FLEXIBLE_AUTO_CONVERT_HOURS", 48),
        store_backend=env.get("STORE_BACKEND", "memory"),  # type: ignore[arg-type]
        redis_url=env.get("REDIS_URL", "redis://localhost:6379/0"),
        redis_namespace=env.get("REDIS_NAMESPACE", "hostelly"),
    )
