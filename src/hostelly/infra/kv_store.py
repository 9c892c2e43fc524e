"""Key-value store abstraction backing the Lock Manager and Hold Store.

Provides:
- KeyValueStore: the protocol both stores depend on
- InMemoryStore: process-local, thread-safe, clock-injectable (dev/tests)
- RedisStore: shared store for multi-process deployments
- create_store(): backend selection from EngineSettings

Every mutating operation is atomic on its own; compare_and_set and
compare_and_delete give callers optimistic read-modify-write without a
separate lock.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Protocol

import redis

from hostelly.domain.errors import StoreUnavailable
from hostelly.infra.settings import EngineSettings
from hostelly.infra.time import Clock, utc_now
from hostelly.observability.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Minimal TTL-capable string store."""

    def get(self, key: str) -> str | None:
        ...

    def set(
        self,
        key: str,
        value: str,
        *,
        ttl_seconds: float | None = None,
        nx: bool = False,
    ) -> bool:
        """Write value; with nx=True only if the key is absent. Returns success."""
        ...

    def delete(self, key: str) -> bool:
        ...

    def ttl(self, key: str) -> float | None:
        """Seconds left before expiry, or None if missing or persistent."""
        ...

    def keys(self, prefix: str) -> list[str]:
        """Keys under prefix. Entries may expire before they are read."""
        ...

    def compare_and_set(
        self,
        key: str,
        expected: str,
        value: str,
        *,
        ttl_seconds: float | None = None,
    ) -> bool:
        """Replace value only if the current value equals expected."""
        ...

    def compare_and_delete(self, key: str, expected: str) -> bool:
        """Delete only if the current value equals expected."""
        ...


class InMemoryStore:
    """Dict-backed store with lazy expiry.

    Expired entries are invisible to reads and dropped the next time they
    are touched; keys() may still list them until then.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, datetime | None]] = {}
        self._lock = threading.Lock()

    def _expiry(self, ttl_seconds: float | None) -> datetime | None:
        if ttl_seconds is None:
            return None
        return self._clock() + timedelta(seconds=ttl_seconds)

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._live(key)

    def set(
        self,
        key: str,
        value: str,
        *,
        ttl_seconds: float | None = None,
        nx: bool = False,
    ) -> bool:
        with self._lock:
            if nx and self._live(key) is not None:
                return False
            self._data[key] = (value, self._expiry(ttl_seconds))
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            existed = self._live(key) is not None
            self._data.pop(key, None)
            return existed

    def ttl(self, key: str) -> float | None:
        with self._lock:
            if self._live(key) is None:
                return None
            expires_at = self._data[key][1]
            if expires_at is None:
                return None
            return (expires_at - self._clock()).total_seconds()

    def keys(self, prefix: str) -> list[str]:
        """Physically present keys; may include expired, unpurged entries."""
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))

    def compare_and_set(
        self,
        key: str,
        expected: str,
        value: str,
        *,
        ttl_seconds: float | None = None,
    ) -> bool:
        with self._lock:
            if self._live(key) != expected:
                return False
            self._data[key] = (value, self._expiry(ttl_seconds))
            return True

    def compare_and_delete(self, key: str, expected: str) -> bool:
        with self._lock:
            if self._live(key) != expected:
                return False
            del self._data[key]
            return True


# KEYS[1] = key, ARGV[1] = expected, ARGV[2] = new value, ARGV[3] = ttl ms (0 = none)
_CAS_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
  if tonumber(ARGV[3]) > 0 then
    redis.call('SET', KEYS[1], ARGV[2], 'PX', ARGV[3])
  else
    redis.call('SET', KEYS[1], ARGV[2])
  end
  return 1
end
return 0
"""

# KEYS[1] = key, ARGV[1] = expected
_CAD_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
  return redis.call('DEL', KEYS[1])
end
return 0
"""


class RedisStore:
    """Store backed by Redis; all keys live under `namespace:`.

    The client must be created with decode_responses=True.
    """

    def __init__(self, client: redis.Redis, namespace: str = "hostelly") -> None:
        self._client = client
        self._prefix = f"{namespace}:"

    @classmethod
    def from_url(cls, url: str, namespace: str = "hostelly") -> "RedisStore":
        client = redis.Redis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, namespace)

    def _k(self, key: str) -> str:
        return self._prefix + key

    @staticmethod
    def _ms(ttl_seconds: float | None) -> int | None:
        if ttl_seconds is None:
            return None
        return max(1, int(ttl_seconds * 1000))

    def _call(self, op: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except redis.RedisError as exc:
            logger.error(
                "redis operation failed",
                extra={"extra_fields": {"op": op, "error_type": type(exc).__name__}},
            )
            raise StoreUnavailable(f"redis {op} failed: {exc}") from exc

    def get(self, key: str) -> str | None:
        return self._call("get", self._client.get, self._k(key))

    def set(
        self,
        key: str,
        value: str,
        *,
        ttl_seconds: float | None = None,
        nx: bool = False,
    ) -> bool:
        result = self._call(
            "set",
            self._client.set,
            self._k(key),
            value,
            px=self._ms(ttl_seconds),
            nx=nx,
        )
        return bool(result)

    def delete(self, key: str) -> bool:
        return bool(self._call("delete", self._client.delete, self._k(key)))

    def ttl(self, key: str) -> float | None:
        remaining = self._call("pttl", self._client.pttl, self._k(key))
        if remaining is None or remaining < 0:
            return None
        return remaining / 1000

    def keys(self, prefix: str) -> list[str]:
        found = self._call(
            "scan",
            lambda: list(self._client.scan_iter(match=self._k(prefix) + "*")),
        )
        return sorted(k[len(self._prefix):] for k in found)

    def compare_and_set(
        self,
        key: str,
        expected: str,
        value: str,
        *,
        ttl_seconds: float | None = None,
    ) -> bool:
        result = self._call(
            "compare_and_set",
            self._client.eval,
            _CAS_LUA,
            1,
            self._k(key),
            expected,
            value,
            self._ms(ttl_seconds) or 0,
        )
        return bool(result)

    def compare_and_delete(self, key: str, expected: str) -> bool:
        result = self._call(
            "compare_and_delete",
            self._client.eval,
            _CAD_LUA,
            1,
            self._k(key),
            expected,
        )
        return bool(result)


def create_store(settings: EngineSettings, clock: Clock = utc_now) -> KeyValueStore:
    """Build the store selected by STORE_BACKEND.

    Raises:
        ValueError: If the backend is unknown.
    """
    if settings.store_backend == "memory":
        return InMemoryStore(clock=clock)
    if settings.store_backend == "redis":
        return RedisStore.from_url(settings.redis_url, settings.redis_namespace)
    raise ValueError(f"Unknown STORE_BACKEND: {settings.store_backend}")
