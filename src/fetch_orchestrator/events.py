"""
Event channel shared by one Cache, Queue and Dispatcher.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from .types import ChannelEvent, ChannelEventListener, EventType

logger = logging.getLogger("fetch_orchestrator.events")

_ANY_KEY = None


class EventChannel:
    """
    Publish/subscribe hub keyed by event type and cache/queue key.

    Listeners are called synchronously, in subscription order, from the
    emitting operation. Subscribing with key=None receives the event for
    every key.

    Example:
        channel = EventChannel()
        unsubscribe = channel.on(EventType.DATA_UPDATED, "GET_/users", print)
        ...
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: Dict[Tuple[EventType, Optional[str]], Dict[int, ChannelEventListener]] = {}
        self._next_id = 0

    def on(
        self,
        event_type: EventType,
        key: Optional[str],
        listener: ChannelEventListener,
    ) -> Callable[[], None]:
        """
        Add an event listener.

        Args:
            event_type: Event type to listen for
            key: Cache key, queue key or request id (None for every key)
            listener: Listener function

        Returns:
            Function to remove the listener
        """
        slot = self._listeners.setdefault((event_type, key), {})
        listener_id = self._next_id
        self._next_id += 1
        slot[listener_id] = listener

        def unsubscribe() -> None:
            slot.pop(listener_id, None)
            if not slot and self._listeners.get((event_type, key)) is slot:
                del self._listeners[(event_type, key)]

        return unsubscribe

    def off(
        self,
        event_type: EventType,
        key: Optional[str],
        listener: ChannelEventListener,
    ) -> None:
        """Remove every registration of a listener"""
        slot = self._listeners.get((event_type, key))
        if not slot:
            return
        for listener_id in [i for i, fn in slot.items() if fn == listener]:
            del slot[listener_id]
        if not slot:
            self._listeners.pop((event_type, key), None)

    def emit(self, event_type: EventType, key: str, data: Optional[Dict[str, Any]] = None) -> ChannelEvent:
        """Build an event and deliver it to keyed then wildcard listeners"""
        event = ChannelEvent(
            type=event_type,
            key=key,
            timestamp=time.time(),
            data=data or {},
        )

        targets = list(self._listeners.get((event_type, key), {}).values())
        targets += list(self._listeners.get((event_type, _ANY_KEY), {}).values())

        for listener in targets:
            try:
                listener(event)
            except Exception:
                logger.warning(
                    f"EventChannel.emit: listener failed for {event_type.value} key={key}",
                    exc_info=True,
                )

        return event

    def listener_count(self, event_type: Optional[EventType] = None) -> int:
        """Number of registered listeners, optionally for one event type"""
        return sum(
            len(slot)
            for (slot_type, _), slot in self._listeners.items()
            if event_type is None or slot_type == event_type
        )

    def clear(self) -> None:
        """Remove all listeners"""
        self._listeners.clear()
