"""
Request orchestration with per-key queues, a merging response cache and interceptors.
"""
from .types import (
    ClientResponse,
    ResponseDetails,
    CacheEntry,
    QueuedRequest,
    QueueData,
    RunningRequest,
    EventType,
    ChannelEvent,
    ChannelEventListener,
)
from .exceptions import (
    FetchOrchestratorError,
    InterceptorContractError,
    RequestCanceledError,
)
from .config import (
    RetryConfig,
    CacheConfig,
    QueueConfig,
    DispatcherConfig,
    ClientConfig,
    Adapter,
    DEFAULT_RETRY_CONFIG,
    DEFAULT_CACHE_CONFIG,
    merge_retry_config,
    merge_cache_config,
    merge_dispatcher_config,
    calculate_backoff_delay,
    should_retry,
    get_cache_data,
    is_empty_resource,
    generate_request_id,
)
from .events import EventChannel
from .storage import (
    StorageAdapter,
    MemoryStorage,
    create_memory_storage,
    SyncStorageAdapter,
    SyncStorageBackend,
    create_sync_storage,
    RedisStorage,
    create_redis_storage,
)
from .request import CancelToken, RequestDescriptor
from .cache import Cache, create_cache
from .queue import Queue, create_queue
from .interceptors import InterceptorCallback, InterceptorChain
from .dispatcher import Dispatcher, FinishOutcome, create_dispatcher
from .adapters import HttpxAdapter, create_httpx_adapter
from .client import Client, create_client


__all__ = [
    # Types
    "ClientResponse",
    "ResponseDetails",
    "CacheEntry",
    "QueuedRequest",
    "QueueData",
    "RunningRequest",
    "EventType",
    "ChannelEvent",
    "ChannelEventListener",
    # Exceptions
    "FetchOrchestratorError",
    "InterceptorContractError",
    "RequestCanceledError",
    # Config
    "RetryConfig",
    "CacheConfig",
    "QueueConfig",
    "DispatcherConfig",
    "ClientConfig",
    "Adapter",
    "DEFAULT_RETRY_CONFIG",
    "DEFAULT_CACHE_CONFIG",
    "merge_retry_config",
    "merge_cache_config",
    "merge_dispatcher_config",
    "calculate_backoff_delay",
    "should_retry",
    "get_cache_data",
    "is_empty_resource",
    "generate_request_id",
    # Events
    "EventChannel",
    # Storage
    "StorageAdapter",
    "MemoryStorage",
    "create_memory_storage",
    "SyncStorageAdapter",
    "SyncStorageBackend",
    "create_sync_storage",
    "RedisStorage",
    "create_redis_storage",
    # Requests
    "CancelToken",
    "RequestDescriptor",
    # Cache / Queue
    "Cache",
    "create_cache",
    "Queue",
    "create_queue",
    # Interceptors
    "InterceptorCallback",
    "InterceptorChain",
    # Dispatcher
    "Dispatcher",
    "FinishOutcome",
    "create_dispatcher",
    # Adapters
    "HttpxAdapter",
    "create_httpx_adapter",
    # Client
    "Client",
    "create_client",
]


__version__ = "1.0.0"
