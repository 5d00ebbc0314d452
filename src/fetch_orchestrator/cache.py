"""
Response cache with merge policy, change events and garbage collection.
"""
import asyncio
import logging
import math
import time
from typing import Dict, List, Optional, Set

from .config import CacheConfig, get_cache_data, merge_cache_config
from .events import EventChannel
from .storage.base import StorageAdapter
from .storage.memory import MemoryStorage
from .types import CacheEntry, ClientResponse, EventType, ResponseDetails

logger = logging.getLogger("fetch_orchestrator.cache")


class Cache:
    """
    Last known good response per cache key.

    Implements:
    - Merge policy: a failed response keeps the data of an earlier success
      and only updates error/details
    - Ephemeral mode (use_cache=False): broadcast only, never stored
    - Data and revalidate events on the shared channel, keyed by cache key
    - TTL based garbage collection of stored entries

    Example:
        cache = Cache(channel)

        channel.on(EventType.DATA_UPDATED, "GET_/users", render)
        await cache.set(
            "GET_/users",
            ClientResponse(data=[1, 2], status=200, success=True),
            ResponseDetails(status=200, success=True),
            use_cache=True,
        )
        entry = await cache.get("GET_/users")
    """

    def __init__(
        self,
        channel: EventChannel,
        storage: Optional[StorageAdapter] = None,
        config: Optional[CacheConfig] = None,
    ) -> None:
        self._channel = channel
        self._storage = storage or MemoryStorage()
        self._config = merge_cache_config(config)
        self._gc_handles: Dict[str, asyncio.TimerHandle] = {}
        self._gc_tasks: Set[asyncio.Task] = set()

    async def hydrate(self) -> List[str]:
        """Write configured initial data for keys that are still absent"""
        written: List[str] = []
        for cache_key, entry in (self._config.initial_data or {}).items():
            if await self._storage.get(cache_key) is None:
                await self._storage.set(cache_key, entry.to_dict())
                self.schedule_garbage_collection(cache_key, entry)
                written.append(cache_key)
        logger.debug(f"Cache.hydrate: wrote {len(written)} initial entries")
        return written

    async def get(self, cache_key: str) -> Optional[CacheEntry]:
        """Get the stored entry for a cache key"""
        stored = await self._storage.get(cache_key)
        if stored is None:
            return None
        return CacheEntry.from_dict(stored)

    async def set(
        self,
        cache_key: str,
        response: ClientResponse,
        details: ResponseDetails,
        use_cache: bool = True,
        garbage_collection: Optional[float] = None,
    ) -> CacheEntry:
        """
        Merge a response into the entry for cache_key and broadcast it.

        Args:
            cache_key: Cache key of the request
            response: Response to commit
            details: Details of the attempt that produced the response
            use_cache: Persist the entry (False only emits the event)
            garbage_collection: TTL in seconds, default from config

        Returns:
            The entry that was broadcast
        """
        previous = await self.get(cache_key)

        entry = CacheEntry(
            data=get_cache_data(previous, response),
            error=response.error,
            details=details,
            garbage_collection=garbage_collection
            if garbage_collection is not None
            else self._config.garbage_collection_seconds,
        )

        if not use_cache:
            logger.debug(f"Cache.set: cache off for {cache_key}, only emitting data")
            self._emit_data(cache_key, entry)
            return entry

        self._emit_data(cache_key, entry)

        # A failure is only written on top of an existing entry, whose data it keeps
        if details.is_failed and previous is None:
            logger.debug(f"Cache.set: not storing first response of {cache_key}, it failed")
            return entry

        logger.debug(f"Cache.set: storing {cache_key} (failed={details.is_failed})")
        await self._storage.set(cache_key, entry.to_dict())
        self.schedule_garbage_collection(cache_key, entry)

        return entry

    async def delete(self, cache_key: str) -> None:
        """Emit a revalidate event, then remove the entry"""
        logger.debug(f"Cache.delete: removing {cache_key}, emitting revalidate")
        self._cancel_garbage_collection(cache_key)
        self._channel.emit(EventType.REVALIDATE, cache_key)
        await self._storage.delete(cache_key)

    async def clear(self) -> None:
        """Wipe every entry without per-key events"""
        for cache_key in list(self._gc_handles):
            self._cancel_garbage_collection(cache_key)
        await self._storage.clear()

    async def keys(self) -> List[str]:
        return await self._storage.keys()

    def schedule_garbage_collection(self, cache_key: str, entry: CacheEntry) -> None:
        """
        (Re)arm the eviction timer of an entry.

        The entry is deleted once garbage_collection seconds have passed
        since its details timestamp. An infinite TTL disarms the timer.
        """
        self._cancel_garbage_collection(cache_key)

        if math.isinf(entry.garbage_collection):
            return

        delay = max(0.0, entry.details.timestamp + entry.garbage_collection - time.time())
        loop = asyncio.get_running_loop()
        self._gc_handles[cache_key] = loop.call_later(
            delay, self._collect, cache_key, entry.details.timestamp
        )

    def _collect(self, cache_key: str, timestamp: float) -> None:
        self._gc_handles.pop(cache_key, None)
        task = asyncio.ensure_future(self._collect_entry(cache_key, timestamp))
        self._gc_tasks.add(task)
        task.add_done_callback(self._gc_tasks.discard)

    async def _collect_entry(self, cache_key: str, timestamp: float) -> None:
        current = await self.get(cache_key)
        # A newer set() rearms its own timer
        if current is None or current.details.timestamp != timestamp:
            return
        logger.debug(f"Cache: garbage collecting {cache_key}")
        await self.delete(cache_key)

    def _cancel_garbage_collection(self, cache_key: str) -> None:
        handle = self._gc_handles.pop(cache_key, None)
        if handle is not None:
            handle.cancel()

    def _emit_data(self, cache_key: str, entry: CacheEntry) -> None:
        self._channel.emit(EventType.DATA_UPDATED, cache_key, {"value": entry})

    async def close(self) -> None:
        """Cancel timers and close the storage"""
        for cache_key in list(self._gc_handles):
            self._cancel_garbage_collection(cache_key)
        await self._storage.close()


def create_cache(
    channel: EventChannel,
    storage: Optional[StorageAdapter] = None,
    config: Optional[CacheConfig] = None,
) -> Cache:
    """Create a cache instance."""
    return Cache(channel, storage, config)
