"""
Types for fetch_orchestrator package.
"""
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


@dataclass
class ClientResponse:
    """Already-decoded response handed over by a transport adapter."""

    data: Any = None
    """Response payload for successful calls."""

    error: Any = None
    """Error payload for failed calls."""

    status: Optional[int] = None
    """Status code (None when the transport never got a response)."""

    success: bool = False
    """Whether the transport considers the call successful."""

    extra: Dict[str, Any] = field(default_factory=dict)
    """Adapter specific extras (headers, resource status...)."""


@dataclass
class ResponseDetails:
    """Bookkeeping attached to every committed response."""

    status: Optional[int] = None
    success: bool = False
    is_failed: bool = False
    is_canceled: bool = False
    is_offline: bool = False
    retries: int = 0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "success": self.success,
            "is_failed": self.is_failed,
            "is_canceled": self.is_canceled,
            "is_offline": self.is_offline,
            "retries": self.retries,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, value: Dict[str, Any]) -> "ResponseDetails":
        return cls(
            status=value.get("status"),
            success=value.get("success", False),
            is_failed=value.get("is_failed", False),
            is_canceled=value.get("is_canceled", False),
            is_offline=value.get("is_offline", False),
            retries=value.get("retries", 0),
            timestamp=value.get("timestamp", 0.0),
        )


@dataclass
class CacheEntry:
    """Last known good response for a cache key."""

    data: Any
    """Payload of the last successful response (retained across failures)."""

    error: Any
    """Error of the most recent response."""

    details: ResponseDetails
    """Details of the most recent response."""

    garbage_collection: float = math.inf
    """Seconds after details.timestamp when the entry may be evicted."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "error": self.error,
            "details": self.details.to_dict(),
            "garbage_collection": self.garbage_collection,
        }

    @classmethod
    def from_dict(cls, value: Dict[str, Any]) -> "CacheEntry":
        return cls(
            data=value.get("data"),
            error=value.get("error"),
            details=ResponseDetails.from_dict(value.get("details") or {}),
            garbage_collection=value.get("garbage_collection", math.inf),
        )


@dataclass
class QueuedRequest:
    """One pending request in a queue key."""

    request_id: str
    """Unique id, stable across retries of the same attempt."""

    descriptor: Dict[str, Any]
    """Serialized request descriptor (RequestDescriptor.dump())."""

    retries: int = 0
    """Failed attempts so far."""

    timestamp: float = field(default_factory=time.time)
    """Enqueue time (Unix timestamp)."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "descriptor": dict(self.descriptor),
            "retries": self.retries,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, value: Dict[str, Any]) -> "QueuedRequest":
        return cls(
            request_id=value["request_id"],
            descriptor=dict(value.get("descriptor") or {}),
            retries=value.get("retries", 0),
            timestamp=value.get("timestamp", 0.0),
        )


@dataclass
class QueueData:
    """State of a single queue key."""

    stopped: bool = False
    requests: List[QueuedRequest] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stopped": self.stopped,
            "requests": [request.to_dict() for request in self.requests],
        }

    @classmethod
    def from_dict(cls, value: Dict[str, Any]) -> "QueueData":
        return cls(
            stopped=value.get("stopped", False),
            requests=[QueuedRequest.from_dict(item) for item in value.get("requests", [])],
        )


@dataclass
class RunningRequest:
    """In-memory record of an executing request. Never persisted."""

    request_id: str
    queue_key: str
    descriptor: Any
    started_at: float = field(default_factory=time.time)


class EventType(str, Enum):
    """Event types published on the event channel."""

    DATA_UPDATED = "cache:data"
    REVALIDATE = "cache:revalidate"
    LOADING = "dispatcher:loading"
    QUEUE_CHANGED = "queue:changed"
    QUEUE_CLEARED = "queue:cleared"
    REQUEST_RESPONSE = "request:response"
    REQUEST_CANCELED = "request:canceled"


@dataclass
class ChannelEvent:
    """Event delivered to channel listeners."""

    type: EventType
    key: str
    timestamp: float
    data: Dict[str, Any] = field(default_factory=dict)


ChannelEventListener = Callable[[ChannelEvent], None]
"""Event listener type."""
