"""
Immutable request descriptors built with clone-on-write setters.
"""
import math
import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from urllib.parse import urlencode

QueryParams = Union[str, Mapping[str, Any], None]


class CancelToken:
    """
    Cancellation handle carried by a request descriptor.

    Callbacks registered with on_cancel run once, on the first cancel().
    """

    def __init__(self) -> None:
        self._canceled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def is_canceled(self) -> bool:
        return self._canceled

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback; returns a function removing it"""
        if self._canceled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def cancel(self) -> None:
        if self._canceled:
            return
        self._canceled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()


def _encode_query(query_params: QueryParams) -> str:
    if not query_params:
        return ""
    if isinstance(query_params, str):
        return query_params.lstrip("?")
    return urlencode({k: str(v) for k, v in sorted(query_params.items())})


@dataclass(frozen=True)
class RequestDescriptor:
    """
    Immutable description of a network operation.

    Every set_* call returns a new descriptor (with its own cancel token);
    the receiver is never modified.

    Example:
        get_user = RequestDescriptor(endpoint="/users/:id")
        request = get_user.set_params({"id": 1}).set_retry(2)

        request.cache_key   # "GET_/users/1"
        request.queue_key   # "GET_/users/1"
    """

    endpoint: str
    method: str = "GET"
    data: Any = None
    params: Optional[Dict[str, Any]] = None
    query_params: QueryParams = None
    headers: Optional[Dict[str, str]] = None

    custom_cache_key: Optional[str] = None
    custom_queue_key: Optional[str] = None

    cache: bool = True
    """Persist committed responses in the cache storage"""

    cache_time: float = math.inf
    """Garbage collection TTL of the cache entry in seconds"""

    retry: Optional[int] = None
    """Retry budget. None uses the dispatcher default"""

    retry_time: Optional[float] = None
    """Base backoff delay in seconds. None uses the dispatcher default"""

    concurrency: Optional[int] = 1
    """Requests allowed to run at once on the queue key. None is unbounded"""

    deduplicate: bool = False
    """Merge with a pending request that has the same cache key"""

    cancelable: bool = False
    """Cancel pending requests on the queue key before being queued"""

    offline: bool = True
    """Keep the request queued while the dispatcher is offline"""

    cancel_token: CancelToken = field(
        default_factory=CancelToken, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())

    @property
    def url(self) -> str:
        """Endpoint with :name placeholders replaced by params"""
        endpoint = self.endpoint
        if self.params:
            for key, value in self.params.items():
                replacement = str(value)
                endpoint = re.sub(
                    f":{re.escape(str(key))}\\b", lambda _: replacement, endpoint
                )
        return endpoint

    @property
    def query_string(self) -> str:
        return _encode_query(self.query_params)

    @property
    def cache_key(self) -> str:
        if self.custom_cache_key:
            return self.custom_cache_key
        query = self.query_string
        return f"{self.method}_{self.url}" + (f"?{query}" if query else "")

    @property
    def queue_key(self) -> str:
        if self.custom_queue_key:
            return self.custom_queue_key
        return f"{self.method}_{self.url}"

    def set_data(self, data: Any) -> "RequestDescriptor":
        return replace(self, data=data)

    def set_params(self, params: Dict[str, Any]) -> "RequestDescriptor":
        return replace(self, params=dict(params))

    def set_query_params(self, query_params: QueryParams) -> "RequestDescriptor":
        return replace(self, query_params=query_params)

    def set_headers(self, headers: Dict[str, str]) -> "RequestDescriptor":
        return replace(self, headers=dict(headers))

    def set_cache_key(self, cache_key: str) -> "RequestDescriptor":
        return replace(self, custom_cache_key=cache_key)

    def set_queue_key(self, queue_key: str) -> "RequestDescriptor":
        return replace(self, custom_queue_key=queue_key)

    def set_cache(self, cache: bool) -> "RequestDescriptor":
        return replace(self, cache=cache)

    def set_cache_time(self, cache_time: float) -> "RequestDescriptor":
        return replace(self, cache_time=cache_time)

    def set_retry(self, retry: int) -> "RequestDescriptor":
        return replace(self, retry=retry)

    def set_retry_time(self, retry_time: float) -> "RequestDescriptor":
        return replace(self, retry_time=retry_time)

    def set_concurrency(self, concurrency: Optional[int]) -> "RequestDescriptor":
        if concurrency is not None and concurrency < 1:
            raise ValueError("concurrency must be at least 1 (or None for unbounded)")
        return replace(self, concurrency=concurrency)

    def set_deduplicate(self, deduplicate: bool) -> "RequestDescriptor":
        return replace(self, deduplicate=deduplicate)

    def set_cancelable(self, cancelable: bool) -> "RequestDescriptor":
        return replace(self, cancelable=cancelable)

    def set_offline(self, offline: bool) -> "RequestDescriptor":
        return replace(self, offline=offline)

    def dump(self) -> Dict[str, Any]:
        """Serializable form stored with queued requests"""
        query_params = self.query_params
        if query_params is not None and not isinstance(query_params, str):
            query_params = dict(query_params)
        return {
            "endpoint": self.endpoint,
            "method": self.method,
            "data": self.data,
            "params": self.params,
            "query_params": query_params,
            "headers": self.headers,
            "cache_key": self.custom_cache_key,
            "queue_key": self.custom_queue_key,
            "cache": self.cache,
            "cache_time": self.cache_time,
            "retry": self.retry,
            "retry_time": self.retry_time,
            "concurrency": self.concurrency,
            "deduplicate": self.deduplicate,
            "cancelable": self.cancelable,
            "offline": self.offline,
        }

    @classmethod
    def from_dump(cls, dump: Dict[str, Any]) -> "RequestDescriptor":
        """Rebuild a descriptor from dump(), e.g. after a restart"""
        return cls(
            endpoint=dump["endpoint"],
            method=dump.get("method", "GET"),
            data=dump.get("data"),
            params=dump.get("params"),
            query_params=dump.get("query_params"),
            headers=dump.get("headers"),
            custom_cache_key=dump.get("cache_key"),
            custom_queue_key=dump.get("queue_key"),
            cache=dump.get("cache", True),
            cache_time=dump.get("cache_time", math.inf),
            retry=dump.get("retry"),
            retry_time=dump.get("retry_time"),
            concurrency=dump.get("concurrency", 1),
            deduplicate=dump.get("deduplicate", False),
            cancelable=dump.get("cancelable", False),
            offline=dump.get("offline", True),
        )
