"""
Client facade wiring the event channel, cache, queue, interceptors and dispatcher.
"""
import logging
from typing import Iterable, Optional

from .adapters.httpx_adapter import HttpxAdapter
from .cache import Cache
from .config import ClientConfig
from .dispatcher import Dispatcher
from .events import EventChannel
from .interceptors import InterceptorCallback, InterceptorChain
from .queue import Queue
from .request import RequestDescriptor
from .types import CacheEntry, ChannelEventListener, ClientResponse, EventType

logger = logging.getLogger("fetch_orchestrator.client")


class Client:
    """
    Request orchestration client.

    Owns one EventChannel shared by its Cache, Queue and Dispatcher, so
    several clients in one process never see each other's events.

    Example:
        client = Client(ClientConfig(base_url="https://api.example.com"))
        client.on_success(unwrap_envelope)

        users = RequestDescriptor(endpoint="/users").set_retry(2)
        client.on_data(users.cache_key, lambda event: render(event.data["value"]))
        response = await client.send(users)
    """

    def __init__(self, config: Optional[ClientConfig] = None):
        self._config = config or ClientConfig()
        self._owns_adapter = self._config.adapter is None
        self._adapter = self._config.adapter or HttpxAdapter(self._config.base_url)

        self.channel = EventChannel()
        self.cache = Cache(self.channel, self._config.cache_storage, self._config.cache)
        self.queue = Queue(self.channel, self._config.queue_storage, self._config.queue)
        self.interceptors = InterceptorChain()
        self.dispatcher = Dispatcher(
            self.channel,
            self.queue,
            self.cache,
            self.interceptors,
            self._adapter,
            self._config.dispatcher,
        )

    # Requests

    async def send(self, descriptor: RequestDescriptor) -> ClientResponse:
        """Queue a request and wait for its final response"""
        logger.debug(f"Client.send: {descriptor.method} {descriptor.url}")
        return await self.dispatcher.send(descriptor)

    async def add(self, descriptor: RequestDescriptor) -> str:
        """Queue a request without waiting; returns its request id"""
        return await self.dispatcher.add(descriptor)

    async def cancel(self, request_id: str) -> bool:
        return await self.dispatcher.cancel(request_id)

    async def get_cache(self, descriptor: RequestDescriptor) -> Optional[CacheEntry]:
        return await self.cache.get(descriptor.cache_key)

    async def revalidate(self, descriptor: RequestDescriptor) -> None:
        """Drop the cached entry of a request, notifying revalidate listeners"""
        await self.cache.delete(descriptor.cache_key)

    # Interceptors

    def on_success(self, callback: InterceptorCallback) -> "Client":
        self.interceptors.on_success(callback)
        return self

    def on_error(self, callback: InterceptorCallback) -> "Client":
        self.interceptors.on_error(callback)
        return self

    def on_response(self, callback: InterceptorCallback) -> "Client":
        self.interceptors.on_response(callback)
        return self

    def remove_on_success(self, callbacks: Iterable[InterceptorCallback]) -> "Client":
        self.interceptors.remove_on_success(callbacks)
        return self

    def remove_on_error(self, callbacks: Iterable[InterceptorCallback]) -> "Client":
        self.interceptors.remove_on_error(callbacks)
        return self

    def remove_on_response(self, callbacks: Iterable[InterceptorCallback]) -> "Client":
        self.interceptors.remove_on_response(callbacks)
        return self

    # Events

    def on_data(self, cache_key: str, listener: ChannelEventListener):
        """Subscribe to cache data of a key; returns an unsubscribe function"""
        return self.channel.on(EventType.DATA_UPDATED, cache_key, listener)

    def on_revalidate(self, cache_key: str, listener: ChannelEventListener):
        return self.channel.on(EventType.REVALIDATE, cache_key, listener)

    def on_loading(self, queue_key: str, listener: ChannelEventListener):
        return self.channel.on(EventType.LOADING, queue_key, listener)

    # Lifecycle

    async def resume(self) -> None:
        """Hydrate the cache, restore persisted queues and flush them"""
        hydrated = await self.cache.hydrate()
        restored = await self.dispatcher.resume()
        logger.debug(
            f"Client.resume: hydrated {len(hydrated)} cache keys, restored {len(restored)} queue keys"
        )

    async def set_online(self, online: bool) -> None:
        await self.dispatcher.set_online(online)

    async def close(self) -> None:
        """Stop running work and release storages and the owned adapter"""
        await self.dispatcher.close()
        await self.cache.close()
        await self.queue.close()
        if self._owns_adapter:
            await self._adapter.aclose()
        self.channel.clear()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def create_client(config: Optional[ClientConfig] = None) -> Client:
    """Create a client instance."""
    return Client(config)
