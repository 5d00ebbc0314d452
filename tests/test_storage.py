"""
Tests for storage adapters

Coverage includes:
- MemoryStorage basic operations
- SyncStorageAdapter wrapping a blocking backend, errors surfacing on await
- RedisStorage key prefixing, JSON encoding, scans and close
- create_redis_storage client construction
"""

import fnmatch
import json
from typing import Any, Dict, Optional

import pytest
from unittest.mock import MagicMock, patch

from fetch_orchestrator.storage import (
    MemoryStorage,
    RedisStorage,
    SyncStorageAdapter,
    create_memory_storage,
    create_redis_storage,
    create_sync_storage,
)


class DictBackend:
    """Synchronous key/value backend."""

    def __init__(self):
        self.data: Dict[str, Any] = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def delete(self, key):
        self.data.pop(key, None)

    def clear(self):
        self.data.clear()

    def keys(self):
        return iter(self.data.keys())


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis."""

    def __init__(self):
        self.data: Dict[str, Any] = {}
        self.closed = False

    async def get(self, name: str) -> Optional[Any]:
        return self.data.get(name)

    async def set(self, name: str, value: Any) -> bool:
        self.data[name] = value
        return True

    async def delete(self, *names: str) -> int:
        removed = 0
        for name in names:
            if self.data.pop(name, None) is not None:
                removed += 1
        return removed

    async def scan_iter(self, match: Optional[str] = None):
        for key in list(self.data):
            if match is None or fnmatch.fnmatch(key, match):
                yield key

    async def aclose(self) -> None:
        self.closed = True


class TestMemoryStorage:
    """Tests for MemoryStorage."""

    @pytest.mark.asyncio
    async def test_set_get_delete(self):
        storage = create_memory_storage()
        await storage.set("a", {"x": 1})

        assert await storage.get("a") == {"x": 1}
        assert storage.size == 1

        await storage.delete("a")
        await storage.delete("a")
        assert await storage.get("a") is None

    @pytest.mark.asyncio
    async def test_keys_and_clear(self):
        storage = MemoryStorage()
        await storage.set("a", 1)
        await storage.set("b", 2)

        assert sorted(await storage.keys()) == ["a", "b"]

        await storage.clear()
        assert await storage.keys() == []


class TestSyncStorageAdapter:
    """Tests for SyncStorageAdapter."""

    @pytest.mark.asyncio
    async def test_delegates_to_backend(self):
        backend = DictBackend()
        storage = create_sync_storage(backend)

        await storage.set("a", 1)
        assert backend.data == {"a": 1}
        assert await storage.get("a") == 1
        assert await storage.keys() == ["a"]

        await storage.delete("a")
        assert backend.data == {}

    @pytest.mark.asyncio
    async def test_backend_errors_surface_on_await(self):
        backend = MagicMock()
        backend.set.side_effect = IOError("disk full")
        storage = SyncStorageAdapter(backend)

        with pytest.raises(IOError, match="disk full"):
            await storage.set("a", 1)

    @pytest.mark.asyncio
    async def test_clear_and_close(self):
        backend = DictBackend()
        storage = SyncStorageAdapter(backend)
        await storage.set("a", 1)

        await storage.clear()
        await storage.close()

        assert backend.data == {}


class TestRedisStorage:
    """Tests for RedisStorage."""

    @pytest.mark.asyncio
    async def test_values_are_json_under_prefix(self):
        client = FakeRedis()
        storage = RedisStorage(client, key_prefix="test:")

        await storage.set("GET_/users", {"data": [1, 2], "details": {"status": 200}})

        assert json.loads(client.data["test:GET_/users"]) == {
            "data": [1, 2],
            "details": {"status": 200},
        }
        assert await storage.get("GET_/users") == {"data": [1, 2], "details": {"status": 200}}

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self):
        storage = RedisStorage(FakeRedis())
        assert await storage.get("nope") is None

    @pytest.mark.asyncio
    async def test_non_json_values_are_stringified(self):
        client = FakeRedis()
        storage = RedisStorage(client)

        await storage.set("k", {"error": ValueError("bad")})

        assert await storage.get("k") == {"error": "bad"}

    @pytest.mark.asyncio
    async def test_keys_strip_prefix_and_ignore_foreign_keys(self):
        client = FakeRedis()
        client.data["other:x"] = "1"
        storage = RedisStorage(client, key_prefix="test:")
        await storage.set("a", 1)
        await storage.set("b", 2)

        assert sorted(await storage.keys()) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_delete_and_clear(self):
        client = FakeRedis()
        client.data["other:x"] = "1"
        storage = RedisStorage(client, key_prefix="test:")
        await storage.set("a", 1)
        await storage.set("b", 2)

        await storage.delete("a")
        assert await storage.get("a") is None

        await storage.clear()
        assert await storage.keys() == []
        assert client.data == {"other:x": "1"}

    @pytest.mark.asyncio
    async def test_clear_on_empty_prefix(self):
        storage = RedisStorage(FakeRedis())
        await storage.clear()
        assert await storage.keys() == []

    @pytest.mark.asyncio
    async def test_close_closes_client(self):
        client = FakeRedis()
        storage = RedisStorage(client)

        await storage.close()

        assert client.closed is True

    def test_create_redis_storage_uses_from_url(self):
        client = FakeRedis()
        with patch(
            "fetch_orchestrator.storage.redis.aioredis.from_url", return_value=client
        ) as from_url:
            storage = create_redis_storage("redis://cache:6379/1", key_prefix="app:")

        from_url.assert_called_once_with("redis://cache:6379/1", decode_responses=True)
        assert isinstance(storage, RedisStorage)
