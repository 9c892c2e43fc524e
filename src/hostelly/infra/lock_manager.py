"""Room/date-range locks that serialize validate-then-commit sequences.

Locks are keyed by (room_id, check_in, check_out) and acquired without
blocking: a held, unexpired lock makes acquire() return None immediately.
Callers retry with backoff or give up; nothing here waits. Every lock
carries a TTL so a crashed holder cannot block a room forever.
"""

from __future__ import annotations

import json
import uuid
from contextlib import contextmanager
from datetime import date, timedelta
from typing import Iterable, Iterator

from hostelly.domain.errors import LockContention
from hostelly.domain.models import Lock
from hostelly.infra.kv_store import KeyValueStore
from hostelly.infra.time import Clock, utc_now
from hostelly.observability.logging import get_logger

logger = get_logger(__name__)

LOCK_PREFIX = "lock:room:"
LOCK_ID_PREFIX = "lock:id:"
DEFAULT_LOCK_TTL_SECONDS = 5 * 60

LockKey = tuple[str, date, date]


def lock_key(room_id: str, check_in: date, check_out: date) -> str:
    return f"{LOCK_PREFIX}{room_id}:{check_in.isoformat()}:{check_out.isoformat()}"


class LockManager:
    """Non-blocking keyed mutual exclusion over a KeyValueStore."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._clock = clock

    def acquire(self, room_id: str, check_in: date, check_out: date) -> str | None:
        """Take the lock for a room and date range.

        Returns:
            The new lock_id, or None if another unexpired lock holds the key.
        """
        key = lock_key(room_id, check_in, check_out)
        now = self._clock()
        lock = Lock(
            room_id=room_id,
            check_in=check_in,
            check_out=check_out,
            lock_id=uuid.uuid4().hex,
            acquired_at=now,
            expires_at=now + timedelta(seconds=self._ttl),
        )
        payload = json.dumps(lock.to_dict())

        acquired = self._store.set(key, payload, ttl_seconds=self._ttl, nx=True)
        if not acquired:
            # The store may still hold a lock whose logical TTL has passed.
            raw = self._store.get(key)
            if raw is not None and Lock.from_dict(json.loads(raw)).expires_at <= now:
                if self._store.compare_and_delete(key, raw):
                    acquired = self._store.set(
                        key, payload, ttl_seconds=self._ttl, nx=True
                    )

        if not acquired:
            logger.info(
                "lock contention",
                extra={"extra_fields": {"lock_key": key}},
            )
            return None

        self._store.set(LOCK_ID_PREFIX + lock.lock_id, key, ttl_seconds=self._ttl)
        return lock.lock_id

    def release(self, lock_id: str) -> bool:
        """Release a lock by id. Only removes the lock if it is still ours.

        Returns:
            True if the lock was held by lock_id and is now removed.
        """
        index_key = LOCK_ID_PREFIX + lock_id
        key = self._store.get(index_key)
        if key is None:
            return False
        self._store.delete(index_key)

        raw = self._store.get(key)
        if raw is None or json.loads(raw).get("lock_id") != lock_id:
            return False
        return self._store.compare_and_delete(key, raw)

    def get(self, room_id: str, check_in: date, check_out: date) -> Lock | None:
        """Current unexpired lock for a key, if any."""
        raw = self._store.get(lock_key(room_id, check_in, check_out))
        if raw is None:
            return None
        lock = Lock.from_dict(json.loads(raw))
        if lock.expires_at <= self._clock():
            return None
        return lock

    def active_locks(self) -> list[Lock]:
        locks = []
        now = self._clock()
        for key in self._store.keys(LOCK_PREFIX):
            raw = self._store.get(key)
            if raw is None:
                continue
            lock = Lock.from_dict(json.loads(raw))
            if lock.expires_at > now:
                locks.append(lock)
        return locks

    def sweep(self) -> int:
        """Remove expired locks. Returns how many were cleaned up.

        Expiry is decided by expires_at; the sweep only reclaims storage.
        """
        now = self._clock()
        cleaned = 0
        for key in self._store.keys(LOCK_PREFIX):
            raw = self._store.get(key)
            if raw is None:
                cleaned += 1
                continue
            if Lock.from_dict(json.loads(raw)).expires_at <= now:
                if self._store.compare_and_delete(key, raw):
                    cleaned += 1
        for key in self._store.keys(LOCK_ID_PREFIX):
            target = self._store.get(key)
            if target is None or self._store.get(target) is None:
                self._store.delete(key)
        if cleaned:
            logger.info("expired locks swept", extra={"extra_fields": {"count": cleaned}})
        return cleaned

    def acquire_all(self, keys: Iterable[LockKey]) -> list[str] | None:
        """Acquire every key or none of them.

        Keys are taken in sorted order so two callers never hold each
        other's next key. On the first failure all locks taken so far are
        released.

        Returns:
            Lock ids in acquisition order, or None on contention.
        """
        acquired: list[str] = []
        for room_id, check_in, check_out in sorted(set(keys)):
            lock_id = self.acquire(room_id, check_in, check_out)
            if lock_id is None:
                self.release_all(acquired)
                return None
            acquired.append(lock_id)
        return acquired

    def release_all(self, lock_ids: Iterable[str]) -> None:
        for lock_id in reversed(list(lock_ids)):
            self.release(lock_id)

    @contextmanager
    def locked(self, keys: Iterable[LockKey]) -> Iterator[list[str]]:
        """Hold all keys for the duration of the block.

        Raises:
            LockContention: If any key is currently held by someone else.
        """
        keys = list(keys)
        lock_ids = self.acquire_all(keys)
        if lock_ids is None:
            raise LockContention("room/date range is locked by another request")
        try:
            yield lock_ids
        finally:
            self.release_all(lock_ids)
