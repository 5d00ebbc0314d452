"""
Configuration utilities for fetch_orchestrator
"""
import math
import random
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .storage.base import StorageAdapter
from .types import CacheEntry, ClientResponse, QueueData


@dataclass
class RetryConfig:
    """Retry configuration"""

    max_retries: int = 0
    """Retries allowed after the first failed attempt. Default: 0"""

    base_delay_seconds: float = 0.5
    """Base delay for exponential backoff (seconds). Default: 0.5"""

    max_delay_seconds: float = 30.0
    """Maximum delay between retries (seconds). Default: 30.0"""

    jitter_factor: float = 0.0
    """Jitter factor (0-1). Default: 0"""

    retry_on_status: List[int] = field(default_factory=list)
    """Statuses that trigger a retry. Empty means every failure does."""


@dataclass
class CacheConfig:
    """Cache configuration"""

    garbage_collection_seconds: Optional[float] = None
    """Default entry TTL. Default: infinite (no collection)"""

    initial_data: Optional[Dict[str, CacheEntry]] = None
    """Entries written on hydrate() for keys that are still absent"""


QueueStorageHook = Callable[[str, QueueData], None]


@dataclass
class QueueConfig:
    """Queue configuration"""

    on_update_storage: Optional[QueueStorageHook] = None
    """Called after a queue key is persisted"""

    on_delete_from_storage: Optional[QueueStorageHook] = None
    """Called after a queue key is removed from storage"""

    on_clear_storage: Optional[Callable[[], None]] = None
    """Called after the queue storage is wiped"""


@dataclass
class DispatcherConfig:
    """Dispatcher configuration"""

    retry: Optional[RetryConfig] = None
    """Default retry policy; request descriptors may override max retries and delay"""

    online: Optional[bool] = None
    """Initial connectivity state. Default: True"""


Adapter = Callable[[Any], Awaitable[ClientResponse]]
"""Transport collaborator: (RequestDescriptor) -> ClientResponse"""


@dataclass
class ClientConfig:
    """Client configuration"""

    base_url: str = ""
    """Base URL handed to the default httpx adapter"""

    adapter: Optional[Adapter] = None
    """Transport adapter. Default: HttpxAdapter(base_url)"""

    cache: Optional[CacheConfig] = None
    queue: Optional[QueueConfig] = None
    dispatcher: Optional[DispatcherConfig] = None

    cache_storage: Optional[StorageAdapter] = None
    """Backend owned by the cache. Default: MemoryStorage"""

    queue_storage: Optional[StorageAdapter] = None
    """Backend owned by the queue. Default: MemoryStorage"""


# Default retry configuration
DEFAULT_RETRY_CONFIG = RetryConfig(
    max_retries=0,
    base_delay_seconds=0.5,
    max_delay_seconds=30.0,
    jitter_factor=0.0,
    retry_on_status=[],
)

DEFAULT_CACHE_CONFIG = CacheConfig(
    garbage_collection_seconds=math.inf,
    initial_data=None,
)


def merge_retry_config(config: Optional[RetryConfig] = None) -> RetryConfig:
    """Merge user retry config with defaults."""
    if config is None:
        return RetryConfig(
            max_retries=DEFAULT_RETRY_CONFIG.max_retries,
            base_delay_seconds=DEFAULT_RETRY_CONFIG.base_delay_seconds,
            max_delay_seconds=DEFAULT_RETRY_CONFIG.max_delay_seconds,
            jitter_factor=DEFAULT_RETRY_CONFIG.jitter_factor,
            retry_on_status=list(DEFAULT_RETRY_CONFIG.retry_on_status),
        )

    return RetryConfig(
        max_retries=config.max_retries
        if config.max_retries is not None
        else DEFAULT_RETRY_CONFIG.max_retries,
        base_delay_seconds=config.base_delay_seconds
        if config.base_delay_seconds is not None
        else DEFAULT_RETRY_CONFIG.base_delay_seconds,
        max_delay_seconds=config.max_delay_seconds
        if config.max_delay_seconds is not None
        else DEFAULT_RETRY_CONFIG.max_delay_seconds,
        jitter_factor=config.jitter_factor
        if config.jitter_factor is not None
        else DEFAULT_RETRY_CONFIG.jitter_factor,
        retry_on_status=list(config.retry_on_status or DEFAULT_RETRY_CONFIG.retry_on_status),
    )


def merge_cache_config(config: Optional[CacheConfig] = None) -> CacheConfig:
    """Merge user cache config with defaults."""
    if config is None:
        return CacheConfig(
            garbage_collection_seconds=DEFAULT_CACHE_CONFIG.garbage_collection_seconds,
            initial_data=None,
        )

    return CacheConfig(
        garbage_collection_seconds=config.garbage_collection_seconds
        if config.garbage_collection_seconds is not None
        else DEFAULT_CACHE_CONFIG.garbage_collection_seconds,
        initial_data=dict(config.initial_data) if config.initial_data else None,
    )


def merge_dispatcher_config(config: Optional[DispatcherConfig] = None) -> DispatcherConfig:
    """Merge user dispatcher config with defaults."""
    if config is None:
        return DispatcherConfig(retry=merge_retry_config(), online=True)

    return DispatcherConfig(
        retry=merge_retry_config(config.retry),
        online=config.online if config.online is not None else True,
    )


def calculate_backoff_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: The retry number (1 for the first retry)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    base = config.base_delay_seconds
    max_delay = config.max_delay_seconds
    jitter = config.jitter_factor

    exponential_delay = min(max_delay, base * (2 ** max(0, attempt - 1)))

    jitter_amount = random.random() * jitter * exponential_delay
    delay = exponential_delay * (1 - jitter / 2) + jitter_amount

    return min(delay, max_delay)


def should_retry(
    response: ClientResponse,
    retries: int,
    max_retries: int,
    config: RetryConfig,
) -> bool:
    """
    Check whether a failed attempt goes back to the queue.

    Args:
        response: Response of the failed attempt
        retries: Failed attempts recorded before this one
        max_retries: Retry budget for the request
        config: Retry configuration

    Returns:
        Whether the attempt should be retried
    """
    if response.success or retries >= max_retries:
        return False

    if not config.retry_on_status or response.status is None:
        return True

    return response.status in config.retry_on_status


def get_cache_data(previous: Optional[CacheEntry], response: ClientResponse) -> Any:
    """
    Pick the payload to store for a new response.

    A failed response never blanks out data from an earlier success.
    """
    if previous is None or response.success:
        return response.data

    if previous.data is not None:
        return previous.data

    return response.data


def is_empty_resource(value: Any) -> bool:
    """True only for None or an empty list."""
    return value is None or (isinstance(value, list) and len(value) == 0)


def generate_request_id() -> str:
    """Generate a unique request ID"""
    return f"req_{int(time.time() * 1000)}_{secrets.token_hex(4)}"
