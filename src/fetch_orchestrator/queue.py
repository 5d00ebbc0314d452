"""
Per queue key FIFO of pending requests with persistence and retry bookkeeping.
"""
import copy
import logging
import time
from typing import Any, Dict, List, Optional

from .config import QueueConfig, generate_request_id
from .events import EventChannel
from .storage.base import StorageAdapter
from .storage.memory import MemoryStorage
from .types import EventType, QueueData, QueuedRequest

logger = logging.getLogger("fetch_orchestrator.queue")


class Queue:
    """
    Ordered pending requests, grouped by queue key.

    The in-memory view is updated first and every mutation is then written
    through the storage adapter. When the write fails the error reaches the
    caller while the in-memory view keeps the mutation: the process stays
    consistent with itself at the cost of durability for that step.

    Requests stay in their queue while they run; they leave it once the
    dispatcher reports a terminal outcome. A restarted process can therefore
    rebuild every unfinished request with restore().
    """

    def __init__(
        self,
        channel: EventChannel,
        storage: Optional[StorageAdapter] = None,
        config: Optional[QueueConfig] = None,
    ) -> None:
        self._channel = channel
        self._storage = storage or MemoryStorage()
        self._config = config or QueueConfig()
        self._queues: Dict[str, QueueData] = {}

    async def restore(self) -> List[str]:
        """
        Load every queue key from storage into memory.

        Returns:
            Restored queue keys
        """
        restored: List[str] = []
        for queue_key in await self._storage.keys():
            stored = await self._storage.get(queue_key)
            if stored is None:
                continue
            self._queues[queue_key] = QueueData.from_dict(stored)
            restored.append(queue_key)
        logger.debug(f"Queue.restore: restored {len(restored)} queue keys")
        return restored

    async def add(
        self,
        queue_key: str,
        descriptor: Dict[str, Any],
        request_id: Optional[str] = None,
    ) -> str:
        """
        Append a request to a queue key.

        Args:
            queue_key: Queue key
            descriptor: Serialized request descriptor
            request_id: Id to use instead of a generated one

        Returns:
            Request id
        """
        queue = self._queues.setdefault(queue_key, QueueData())
        request = QueuedRequest(
            request_id=request_id or generate_request_id(),
            descriptor=dict(descriptor),
            retries=0,
            timestamp=time.time(),
        )
        queue.requests.append(request)

        logger.debug(
            f"Queue.add: {request.request_id} -> {queue_key} (size={len(queue.requests)})"
        )
        await self._persist(queue_key)
        return request.request_id

    async def get(self, queue_key: str) -> Optional[QueueData]:
        """Snapshot of a queue key"""
        queue = self._queues.get(queue_key)
        return copy.deepcopy(queue) if queue is not None else None

    async def get_request(self, queue_key: str, request_id: str) -> Optional[QueuedRequest]:
        queue = self._queues.get(queue_key)
        if queue is None:
            return None
        for request in queue.requests:
            if request.request_id == request_id:
                return copy.deepcopy(request)
        return None

    def find_queue_key(self, request_id: str) -> Optional[str]:
        """Queue key holding a request id"""
        for queue_key, queue in self._queues.items():
            if any(request.request_id == request_id for request in queue.requests):
                return queue_key
        return None

    async def keys(self) -> List[str]:
        return list(self._queues.keys())

    async def remove(self, queue_key: str, request_id: str) -> bool:
        """
        Remove one request.

        An emptied queue key is dropped entirely and a cleared event fires,
        unless it is stopped: the empty entry then keeps its stopped flag.

        Returns:
            Whether the request was found
        """
        queue = self._queues.get(queue_key)
        if queue is None:
            return False

        remaining = [r for r in queue.requests if r.request_id != request_id]
        if len(remaining) == len(queue.requests):
            return False
        queue.requests = remaining

        if queue.requests or queue.stopped:
            logger.debug(f"Queue.remove: {request_id} from {queue_key}")
            await self._persist(queue_key)
            return True

        logger.debug(f"Queue.remove: {request_id} emptied {queue_key}, dropping key")
        del self._queues[queue_key]
        self._channel.emit(EventType.QUEUE_CLEARED, queue_key)
        await self._storage.delete(queue_key)
        if self._config.on_delete_from_storage:
            self._config.on_delete_from_storage(queue_key, queue)
        return True

    async def increment_retries(self, queue_key: str, request_id: str) -> Optional[int]:
        """
        Record a failed attempt on a queued request.

        Returns:
            New retry count, or None when the request is not queued
        """
        queue = self._queues.get(queue_key)
        if queue is None:
            return None
        for request in queue.requests:
            if request.request_id == request_id:
                request.retries += 1
                logger.debug(f"Queue.increment_retries: {request_id} retries={request.retries}")
                await self._persist(queue_key)
                return request.retries
        return None

    def is_stopped(self, queue_key: str) -> bool:
        queue = self._queues.get(queue_key)
        return queue.stopped if queue is not None else False

    async def stop(self, queue_key: str) -> None:
        """Block dispatch of new requests for a queue key"""
        queue = self._queues.setdefault(queue_key, QueueData())
        queue.stopped = True
        logger.debug(f"Queue.stop: {queue_key}")
        await self._persist(queue_key)

    async def start(self, queue_key: str) -> None:
        """Allow dispatch for a queue key again"""
        queue = self._queues.get(queue_key)
        if queue is None or not queue.stopped:
            return
        queue.stopped = False
        logger.debug(f"Queue.start: {queue_key}")
        await self._persist(queue_key)

    async def clear(self) -> None:
        """Drop every queue key"""
        queue_keys = list(self._queues.keys())
        self._queues.clear()
        for queue_key in queue_keys:
            self._channel.emit(EventType.QUEUE_CLEARED, queue_key)
        await self._storage.clear()
        if self._config.on_clear_storage:
            self._config.on_clear_storage()

    async def close(self) -> None:
        await self._storage.close()

    async def _persist(self, queue_key: str) -> None:
        queue = self._queues[queue_key]
        self._channel.emit(
            EventType.QUEUE_CHANGED,
            queue_key,
            {"stopped": queue.stopped, "size": len(queue.requests)},
        )
        await self._storage.set(queue_key, queue.to_dict())
        if self._config.on_update_storage:
            self._config.on_update_storage(queue_key, queue)


def create_queue(
    channel: EventChannel,
    storage: Optional[StorageAdapter] = None,
    config: Optional[QueueConfig] = None,
) -> Queue:
    """Create a queue instance."""
    return Queue(channel, storage, config)
