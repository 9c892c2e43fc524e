"""Tests for the key-value store implementations."""

from unittest.mock import MagicMock

import pytest
import redis

from hostelly.domain.errors import StoreUnavailable
from hostelly.infra.kv_store import InMemoryStore, RedisStore, create_store
from hostelly.infra.settings import EngineSettings


class TestInMemoryStore:
    def test_set_and_get(self, store):
        assert store.set("k", "v")
        assert store.get("k") == "v"
        assert store.get("missing") is None

    def test_nx_only_sets_absent_keys(self, store):
        assert store.set("k", "first", nx=True)
        assert not store.set("k", "second", nx=True)
        assert store.get("k") == "first"

    def test_entries_expire_at_ttl(self, store, clock):
        store.set("k", "v", ttl_seconds=10)

        clock.advance(seconds=9)
        assert store.get("k") == "v"
        assert store.ttl("k") == pytest.approx(1)

        clock.advance(seconds=1)
        assert store.get("k") is None
        assert store.ttl("k") is None

    def test_nx_succeeds_after_expiry(self, store, clock):
        store.set("k", "old", ttl_seconds=5)
        clock.advance(seconds=5)

        assert store.set("k", "new", nx=True)

    def test_delete(self, store):
        store.set("k", "v")

        assert store.delete("k")
        assert not store.delete("k")

    def test_keys_by_prefix(self, store):
        store.set("hold:1", "a")
        store.set("hold:2", "b")
        store.set("lock:room:x", "c")

        assert store.keys("hold:") == ["hold:1", "hold:2"]

    def test_compare_and_set(self, store):
        store.set("k", "v1")

        assert not store.compare_and_set("k", "other", "v2")
        assert store.compare_and_set("k", "v1", "v2", ttl_seconds=30)
        assert store.get("k") == "v2"
        assert store.ttl("k") == pytest.approx(30)

    def test_compare_and_delete(self, store):
        store.set("k", "v1")

        assert not store.compare_and_delete("k", "v2")
        assert store.compare_and_delete("k", "v1")
        assert store.get("k") is None


class TestRedisStore:
    def _store(self):
        client = MagicMock()
        return RedisStore(client, namespace="test"), client

    def test_keys_are_namespaced(self):
        store, client = self._store()
        client.get.return_value = "v"

        assert store.get("hold:1") == "v"
        client.get.assert_called_once_with("test:hold:1")

    def test_set_uses_px_and_nx(self):
        store, client = self._store()
        client.set.return_value = None

        assert store.set("k", "v", ttl_seconds=1.5, nx=True) is False
        client.set.assert_called_once_with("test:k", "v", px=1500, nx=True)

    def test_ttl_from_pttl(self):
        store, client = self._store()
        client.pttl.return_value = 2500
        assert store.ttl("k") == 2.5

        client.pttl.return_value = -2
        assert store.ttl("k") is None

    def test_keys_strip_namespace(self):
        store, client = self._store()
        client.scan_iter.return_value = iter(["test:hold:b", "test:hold:a"])

        assert store.keys("hold:") == ["hold:a", "hold:b"]
        client.scan_iter.assert_called_once_with(match="test:hold:*")

    def test_compare_and_set_runs_script(self):
        store, client = self._store()
        client.eval.return_value = 1

        assert store.compare_and_set("k", "old", "new", ttl_seconds=60)
        args = client.eval.call_args.args
        assert args[1:] == (1, "test:k", "old", "new", 60000)

    def test_compare_and_delete_runs_script(self):
        store, client = self._store()
        client.eval.return_value = 0

        assert not store.compare_and_delete("k", "old")
        assert client.eval.call_args.args[1:] == (1, "test:k", "old")

    def test_redis_errors_become_store_unavailable(self):
        store, client = self._store()
        client.get.side_effect = redis.ConnectionError("down")

        with pytest.raises(StoreUnavailable):
            store.get("k")


class TestCreateStore:
    def test_memory_backend(self):
        assert isinstance(create_store(EngineSettings()), InMemoryStore)

    def test_redis_backend(self, monkeypatch):
        client = MagicMock()
        from_url = MagicMock(return_value=client)
        monkeypatch.setattr(redis.Redis, "from_url", from_url)

        store = create_store(EngineSettings(store_backend="redis", redis_url="redis://cache:6379/1"))

        assert isinstance(store, RedisStore)
        from_url.assert_called_once_with(
            "redis://cache:6379/1", encoding="utf-8", decode_responses=True
        )
