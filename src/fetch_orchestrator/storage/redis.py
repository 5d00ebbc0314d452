"""
Redis storage adapter implementation
Suitable for state that must survive a process restart
"""
import json
import logging
from typing import Any, AsyncIterator, List, Optional, Protocol

import redis.asyncio as aioredis

from .base import StorageAdapter

logger = logging.getLogger("fetch_orchestrator.storage.redis")


class RedisClientProtocol(Protocol):
    """Protocol for Redis client (compatible with redis-py async)"""

    async def get(self, name: str) -> Any:
        ...

    async def set(self, name: str, value: Any) -> Any:
        ...

    async def delete(self, *names: str) -> int:
        ...

    def scan_iter(self, match: Optional[str] = None) -> AsyncIterator[Any]:
        ...

    async def aclose(self) -> None:
        ...


class RedisStorage(StorageAdapter):
    """
    Redis implementation of StorageAdapter.
    Values are stored as JSON documents under a key prefix.
    """

    def __init__(
        self, client: RedisClientProtocol, key_prefix: str = "fetch_orchestrator:"
    ) -> None:
        """
        Create a new RedisStorage.

        Args:
            client: Redis client (async redis-py instance)
            key_prefix: Prefix for all keys. Default: 'fetch_orchestrator:'
        """
        self._client = client
        self._key_prefix = key_prefix

    def _get_key(self, key: str) -> str:
        """Get the full key with prefix"""
        return f"{self._key_prefix}{key}"

    def _strip_prefix(self, full_key: Any) -> str:
        if isinstance(full_key, bytes):
            full_key = full_key.decode()
        return full_key[len(self._key_prefix):]

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._client.get(self._get_key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        # Errors carried in failure responses are not JSON types
        await self._client.set(self._get_key(key), json.dumps(value, default=str))

    async def delete(self, key: str) -> None:
        await self._client.delete(self._get_key(key))

    async def clear(self) -> None:
        full_keys = [key async for key in self._client.scan_iter(match=f"{self._key_prefix}*")]
        if full_keys:
            await self._client.delete(*full_keys)
        logger.debug(f"RedisStorage.clear: removed {len(full_keys)} keys")

    async def keys(self) -> List[str]:
        return [
            self._strip_prefix(key)
            async for key in self._client.scan_iter(match=f"{self._key_prefix}*")
        ]

    async def close(self) -> None:
        await self._client.aclose()


def create_redis_storage(
    url: str = "redis://localhost:6379/0",
    key_prefix: str = "fetch_orchestrator:",
) -> RedisStorage:
    """
    Create a new RedisStorage instance.

    Args:
        url: Redis connection URL
        key_prefix: Prefix for all keys

    Returns:
        RedisStorage instance
    """
    client = aioredis.from_url(url, decode_responses=True)
    return RedisStorage(client, key_prefix)
