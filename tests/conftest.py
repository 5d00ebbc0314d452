"""Pytest configuration and fixtures for fetch_orchestrator tests."""
import asyncio
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

import pytest

from fetch_orchestrator import (
    Cache,
    ClientResponse,
    Dispatcher,
    DispatcherConfig,
    EventChannel,
    EventType,
    InterceptorChain,
    MemoryStorage,
    Queue,
    RetryConfig,
)


def ok(data: Any = None, status: int = 200) -> ClientResponse:
    """Build a successful response."""
    return ClientResponse(data=data, error=None, status=status, success=True)


def fail(error: Any = None, status: Optional[int] = 500) -> ClientResponse:
    """Build a failed response."""
    return ClientResponse(data=None, error=error, status=status, success=False)


class FakeAdapter:
    """
    Scripted transport adapter.

    Pops one scripted result per call (ClientResponse, exception or callable
    taking the descriptor). Falls back to a 200 response once the script is
    exhausted. An optional gate holds every call until it is set.
    """

    def __init__(self, script: Optional[List[Any]] = None, delay: float = 0.0):
        self.script = list(script or [])
        self.delay = delay
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[Any] = []
        self.log: List[str] = []

    async def __call__(self, descriptor):
        self.calls.append(descriptor)
        self.log.append(f"start:{descriptor.url}")
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        self.log.append(f"end:{descriptor.url}")

        result = self.script.pop(0) if self.script else ok({"ok": True})
        if callable(result) and not isinstance(result, ClientResponse):
            result = result(descriptor)
            if asyncio.iscoroutine(result):
                result = await result
        if isinstance(result, Exception):
            raise result
        return result


class EventRecorder:
    """Collects channel events in delivery order."""

    def __init__(self):
        self.events: List[Any] = []

    def __call__(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> List[Any]:
        return [event for event in self.events if event.type == event_type]

    def data(self, event_type) -> List[Dict[str, Any]]:
        return [event.data for event in self.of_type(event_type)]


@pytest.fixture
def channel() -> EventChannel:
    """Create an event channel for testing."""
    return EventChannel()


@pytest.fixture
def cache_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def queue_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
async def cache(channel: EventChannel, cache_storage: MemoryStorage) -> AsyncGenerator[Cache, None]:
    """Create a cache for testing."""
    cache = Cache(channel, cache_storage)
    yield cache
    await cache.close()


@pytest.fixture
async def queue(channel: EventChannel, queue_storage: MemoryStorage) -> AsyncGenerator[Queue, None]:
    """Create a queue for testing."""
    queue = Queue(channel, queue_storage)
    yield queue
    await queue.close()


@pytest.fixture
def interceptors() -> InterceptorChain:
    return InterceptorChain()


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def dispatcher_config() -> DispatcherConfig:
    return DispatcherConfig(
        retry=RetryConfig(
            max_retries=0,
            base_delay_seconds=0.001,
            max_delay_seconds=0.01,
            jitter_factor=0,
        )
    )


@pytest.fixture
async def dispatcher(
    channel: EventChannel,
    queue: Queue,
    cache: Cache,
    interceptors: InterceptorChain,
    adapter: FakeAdapter,
    dispatcher_config: DispatcherConfig,
) -> AsyncGenerator[Dispatcher, None]:
    """Create a dispatcher wired to the shared fixtures."""
    dispatcher = Dispatcher(channel, queue, cache, interceptors, adapter, dispatcher_config)
    yield dispatcher
    await dispatcher.close()


@pytest.fixture
def recorder(channel: EventChannel) -> EventRecorder:
    """Record every event of the shared channel."""
    recorder = EventRecorder()
    for event_type in EventType:
        channel.on(event_type, None, recorder)
    return recorder


@pytest.fixture
def wait_until() -> Callable:
    """Poll a predicate until it holds or the timeout expires."""

    async def wait(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.001)

    return wait
