"""
Request manager: admission, execution, retries and cancellation per queue key.
"""
import asyncio
import logging
import time
from dataclasses import replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple

from .cache import Cache
from .config import (
    Adapter,
    DispatcherConfig,
    RetryConfig,
    calculate_backoff_delay,
    generate_request_id,
    merge_dispatcher_config,
    should_retry,
)
from .events import EventChannel
from .exceptions import RequestCanceledError
from .interceptors import InterceptorChain
from .queue import Queue
from .request import RequestDescriptor
from .types import (
    ClientResponse,
    EventType,
    QueuedRequest,
    ResponseDetails,
    RunningRequest,
)

logger = logging.getLogger("fetch_orchestrator.dispatcher")


class FinishOutcome(str, Enum):
    """What happens to a queued request after an attempt"""

    DONE = "done"
    RETRY = "retry"
    OFFLINE = "offline"


class Dispatcher:
    """
    Request Manager

    Moves requests from the Queue to the transport adapter with:
    - Admission per queue key (default one request at a time, FIFO)
    - Interceptors, cache commit and loading events for every attempt
    - Retry with exponential backoff, holding the admission slot
    - Deduplication with a pending request of the same cache key
    - Idempotent cancellation through the descriptor's cancel token
    - Offline mode that parks requests until connectivity returns

    Example:
        dispatcher = Dispatcher(channel, queue, cache, interceptors, adapter)
        response = await dispatcher.send(RequestDescriptor(endpoint="/users"))
    """

    def __init__(
        self,
        channel: EventChannel,
        queue: Queue,
        cache: Cache,
        interceptors: InterceptorChain,
        adapter: Adapter,
        config: Optional[DispatcherConfig] = None,
    ) -> None:
        self._channel = channel
        self._queue = queue
        self._cache = cache
        self._interceptors = interceptors
        self._adapter = adapter
        self._config = merge_dispatcher_config(config)
        self._online = bool(self._config.online)

        self._running: Dict[str, Dict[str, RunningRequest]] = {}
        self._backing_off: Dict[str, Set[str]] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._futures: Dict[str, asyncio.Future] = {}
        self._descriptors: Dict[str, RequestDescriptor] = {}
        self._token_hooks: Dict[str, Callable[[], None]] = {}
        self._canceling: Set[str] = set()
        self._leaving: Set[str] = set()
        self._background: Set[asyncio.Future] = set()

    # === Running table ===

    @property
    def is_online(self) -> bool:
        return self._online

    def has_running_requests(self, queue_key: str) -> bool:
        return bool(self._running.get(queue_key))

    def get_running_requests(self, queue_key: str) -> List[RunningRequest]:
        return list(self._running.get(queue_key, {}).values())

    def admit(
        self,
        queue_key: str,
        request_id: str,
        concurrency_limit: Optional[int] = 1,
    ) -> bool:
        """
        Check whether a request may start now.

        Requests waiting out a retry backoff keep their slot.

        Args:
            queue_key: Queue key of the request
            request_id: Candidate request id
            concurrency_limit: Slots for the queue key (None is unbounded)
        """
        if concurrency_limit is None:
            return True
        occupied = set(self._running.get(queue_key, {})) | self._backing_off.get(queue_key, set())
        occupied.discard(request_id)
        return len(occupied) < concurrency_limit

    def start(
        self,
        queue_key: str,
        request_id: str,
        descriptor: RequestDescriptor,
        is_retry: bool = False,
    ) -> RunningRequest:
        """Register a running request and emit a loading-start event"""
        running = RunningRequest(
            request_id=request_id,
            queue_key=queue_key,
            descriptor=descriptor,
        )
        self._running.setdefault(queue_key, {})[request_id] = running
        logger.debug(f"Dispatcher.start: {request_id} on {queue_key} (retry={is_retry})")
        self._emit_loading(queue_key, request_id, True, is_retry)
        return running

    async def finish(
        self,
        queue_key: str,
        request_id: str,
        response: ClientResponse,
        details: ResponseDetails,
    ) -> FinishOutcome:
        """
        Unregister a running request, emit loading-stop and settle its queue entry.

        Returns:
            DONE when the entry left the queue, RETRY when a retry was
            recorded, OFFLINE when it stays parked until the dispatcher is
            back online
        """
        running = self._unregister(queue_key, request_id)
        descriptor = running.descriptor if running else self._descriptors.get(request_id)
        self._emit_loading(queue_key, request_id, False, details.retries > 0)

        if details.is_failed and descriptor is not None:
            if not self._online and descriptor.offline:
                logger.debug(f"Dispatcher.finish: {request_id} failed offline, keeping it queued")
                return FinishOutcome.OFFLINE

            max_retries, retry_config = self._retry_policy(descriptor)
            if should_retry(response, details.retries, max_retries, retry_config):
                self._backing_off.setdefault(queue_key, set()).add(request_id)
                await self._queue.increment_retries(queue_key, request_id)
                logger.debug(
                    f"Dispatcher.finish: {request_id} failed, retry {details.retries + 1}/{max_retries}"
                )
                return FinishOutcome.RETRY

        await self._leave(queue_key, request_id)
        return FinishOutcome.DONE

    # === Submission ===

    async def add(self, descriptor: RequestDescriptor) -> str:
        """
        Queue a request and flush its queue key.

        Returns:
            Request id (the pending one when the request was deduplicated)
        """
        request_id, _ = await self._add(descriptor)
        return request_id

    async def send(self, descriptor: RequestDescriptor) -> ClientResponse:
        """
        Queue a request and wait for its final response.

        Raises:
            InterceptorContractError: an interceptor broke its contract
            Exception: storage adapter errors from the cache or queue
        """
        _, future = await self._add(descriptor)
        return await asyncio.shield(future)

    async def _add(self, descriptor: RequestDescriptor) -> Tuple[str, asyncio.Future]:
        queue_key = descriptor.queue_key

        if descriptor.deduplicate:
            duplicate = self._find_duplicate(descriptor)
            if duplicate is not None:
                logger.debug(f"Dispatcher.add: {descriptor.cache_key} merged with {duplicate}")
                return duplicate, self._futures[duplicate]

        if descriptor.cancelable:
            await self.cancel_queue(queue_key)

        request_id = generate_request_id()
        future = self._track(request_id, descriptor)
        try:
            await self._queue.add(queue_key, descriptor.dump(), request_id=request_id)
        except Exception as error:
            self._settle(request_id, error=error)
            raise

        await self.flush(queue_key)
        return request_id, future

    def _track(self, request_id: str, descriptor: RequestDescriptor) -> asyncio.Future:
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        # Results may only be observed through events
        future.add_done_callback(_mark_retrieved)
        self._futures[request_id] = future
        self._descriptors[request_id] = descriptor
        self._token_hooks[request_id] = descriptor.cancel_token.on_cancel(
            lambda: self._spawn(self.cancel(request_id))
        )
        return future

    def _find_duplicate(self, descriptor: RequestDescriptor) -> Optional[str]:
        queue_key = descriptor.queue_key
        for request_id, pending in self._descriptors.items():
            if (
                request_id in self._futures
                and pending.deduplicate
                and pending.queue_key == queue_key
                and pending.cache_key == descriptor.cache_key
                and self._queue.find_queue_key(request_id) == queue_key
            ):
                return request_id
        return None

    async def flush(self, queue_key: str) -> None:
        """Start queued requests of a queue key while admission allows, in order"""
        if not self._online or self._queue.is_stopped(queue_key):
            return

        queue = await self._queue.get(queue_key)
        if queue is None or queue.stopped:
            return

        for queued in queue.requests:
            if self._is_active(queue_key, queued.request_id):
                continue
            descriptor = self._get_descriptor(queued)
            if not self.admit(queue_key, queued.request_id, descriptor.concurrency):
                break
            self._launch(queue_key, queued, descriptor)

    def _launch(self, queue_key: str, queued: QueuedRequest, descriptor: RequestDescriptor) -> None:
        request_id = queued.request_id
        self.start(queue_key, request_id, descriptor, is_retry=queued.retries > 0)
        task = asyncio.create_task(
            self._perform(queue_key, request_id, descriptor, queued.retries)
        )
        self._tasks[request_id] = task

        def forget(done: asyncio.Task) -> None:
            if self._tasks.get(request_id) is done:
                del self._tasks[request_id]

        task.add_done_callback(forget)

    async def _perform(
        self,
        queue_key: str,
        request_id: str,
        descriptor: RequestDescriptor,
        retries: int,
    ) -> None:
        try:
            while True:
                response = await self._execute(descriptor)
                response, _ = await self._interceptors.process(response, descriptor)

                details = ResponseDetails(
                    status=response.status,
                    success=response.success,
                    is_failed=not response.success,
                    is_offline=not self._online,
                    retries=retries,
                    timestamp=time.time(),
                )
                await self._cache.set(
                    descriptor.cache_key,
                    response,
                    details,
                    use_cache=descriptor.cache,
                    garbage_collection=descriptor.cache_time,
                )

                outcome = await self.finish(queue_key, request_id, response, details)

                if outcome is FinishOutcome.OFFLINE:
                    return

                if outcome is FinishOutcome.DONE:
                    self._channel.emit(
                        EventType.REQUEST_RESPONSE,
                        request_id,
                        {"queue_key": queue_key, "response": response, "details": details},
                    )
                    self._settle(request_id, response=response)
                    await self.flush(queue_key)
                    return

                retries += 1
                _, retry_config = self._retry_policy(descriptor)
                await asyncio.sleep(calculate_backoff_delay(retries, retry_config))
                self._backing_off.get(queue_key, set()).discard(request_id)
                self.start(queue_key, request_id, descriptor, is_retry=True)

        except Exception as error:
            logger.warning(f"Dispatcher: {request_id} on {queue_key} aborted: {error!r}")
            if self._unregister(queue_key, request_id) is not None:
                self._emit_loading(queue_key, request_id, False, retries > 0)
            self._backing_off.get(queue_key, set()).discard(request_id)
            self._settle(request_id, error=error)
            try:
                await self._leave(queue_key, request_id)
            except Exception as leave_error:
                logger.warning(
                    f"Dispatcher: could not remove {request_id} from {queue_key}: {leave_error!r}"
                )
            await self.flush(queue_key)

    async def _execute(self, descriptor: RequestDescriptor) -> ClientResponse:
        try:
            return await self._adapter(descriptor)
        except Exception as error:
            logger.warning(f"Dispatcher: transport error for {descriptor.cache_key}: {error!r}")
            return ClientResponse(data=None, error=error, status=None, success=False)

    # === Cancellation ===

    async def cancel(self, request_id: str) -> bool:
        """
        Cancel a queued or running request.

        No interceptors run, nothing is cached and no retry is scheduled.
        Calling it again for the same id is a no-op.

        Returns:
            Whether something was canceled
        """
        queue_key = self._queue.find_queue_key(request_id)
        if queue_key is None or request_id in self._canceling:
            return False

        self._canceling.add(request_id)
        try:
            # The descriptor's token is shared by every send of that descriptor
            remove_hook = self._token_hooks.pop(request_id, None)
            if remove_hook is not None:
                remove_hook()

            task = self._tasks.pop(request_id, None)
            if task is not None and task is not asyncio.current_task():
                task.cancel()

            self._backing_off.get(queue_key, set()).discard(request_id)
            if self._unregister(queue_key, request_id) is not None:
                self._emit_loading(queue_key, request_id, False, False)

            logger.debug(f"Dispatcher.cancel: {request_id} on {queue_key}")
            self._channel.emit(EventType.REQUEST_CANCELED, request_id, {"queue_key": queue_key})
            self._settle(
                request_id,
                response=ClientResponse(
                    data=None,
                    error=RequestCanceledError(request_id),
                    status=None,
                    success=False,
                    extra={"details": ResponseDetails(is_canceled=True, is_offline=not self._online)},
                ),
            )

            await self._queue.remove(queue_key, request_id)
        finally:
            self._canceling.discard(request_id)

        await self.flush(queue_key)
        return True

    async def cancel_queue(self, queue_key: str) -> int:
        """Cancel every request of a queue key"""
        queue = await self._queue.get(queue_key)
        if queue is None:
            return 0
        canceled = 0
        for queued in queue.requests:
            if await self.cancel(queued.request_id):
                canceled += 1
        return canceled

    # === Queue control and connectivity ===

    async def stop_queue(self, queue_key: str) -> None:
        await self._queue.stop(queue_key)

    async def start_queue(self, queue_key: str) -> None:
        await self._queue.start(queue_key)
        await self.flush(queue_key)

    async def set_online(self, online: bool) -> None:
        """Switch connectivity; going online flushes every queue key"""
        if online == self._online:
            return
        self._online = online
        logger.debug(f"Dispatcher.set_online: {online}")
        if online:
            for queue_key in await self._queue.keys():
                await self.flush(queue_key)

    async def resume(self) -> List[str]:
        """Restore persisted queues and flush them"""
        queue_keys = await self._queue.restore()
        for queue_key in queue_keys:
            await self.flush(queue_key)
        return queue_keys

    async def close(self) -> None:
        """Cancel running work and pending results"""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for future in self._futures.values():
            if not future.done():
                future.cancel()
        self._futures.clear()
        self._descriptors.clear()
        self._token_hooks.clear()
        self._running.clear()
        self._backing_off.clear()

    # === Helpers ===

    def _is_active(self, queue_key: str, request_id: str) -> bool:
        return (
            request_id in self._leaving
            or request_id in self._canceling
            or request_id in self._running.get(queue_key, {})
            or request_id in self._backing_off.get(queue_key, set())
        )

    async def _leave(self, queue_key: str, request_id: str) -> None:
        self._leaving.add(request_id)
        try:
            await self._queue.remove(queue_key, request_id)
        finally:
            self._leaving.discard(request_id)

    def _unregister(self, queue_key: str, request_id: str) -> Optional[RunningRequest]:
        running = self._running.get(queue_key)
        if not running:
            return None
        entry = running.pop(request_id, None)
        if not running:
            del self._running[queue_key]
        return entry

    def _get_descriptor(self, queued: QueuedRequest) -> RequestDescriptor:
        descriptor = self._descriptors.get(queued.request_id)
        if descriptor is None:
            # Restored from storage, nobody awaits it in this process yet
            descriptor = RequestDescriptor.from_dump(queued.descriptor)
            self._track(queued.request_id, descriptor)
        return descriptor

    def _retry_policy(self, descriptor: RequestDescriptor) -> Tuple[int, RetryConfig]:
        retry_config: RetryConfig = self._config.retry
        if descriptor.retry_time is not None:
            retry_config = replace(retry_config, base_delay_seconds=descriptor.retry_time)
        max_retries = descriptor.retry if descriptor.retry is not None else retry_config.max_retries
        return max_retries, retry_config

    def _settle(
        self,
        request_id: str,
        response: Optional[ClientResponse] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        future = self._futures.pop(request_id, None)
        self._descriptors.pop(request_id, None)
        remove_hook = self._token_hooks.pop(request_id, None)
        if remove_hook is not None:
            remove_hook()
        if future is None or future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(response)

    def _emit_loading(self, queue_key: str, request_id: str, loading: bool, is_retry: bool) -> None:
        self._channel.emit(
            EventType.LOADING,
            queue_key,
            {
                "queue_key": queue_key,
                "request_id": request_id,
                "loading": loading,
                "is_retry": is_retry,
                "is_offline": not self._online,
            },
        )

    def _spawn(self, coroutine) -> None:
        task = asyncio.ensure_future(coroutine)
        self._background.add(task)
        task.add_done_callback(self._background.discard)


def _mark_retrieved(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


def create_dispatcher(
    channel: EventChannel,
    queue: Queue,
    cache: Cache,
    interceptors: InterceptorChain,
    adapter: Adapter,
    config: Optional[DispatcherConfig] = None,
) -> Dispatcher:
    """Create a dispatcher instance."""
    return Dispatcher(channel, queue, cache, interceptors, adapter, config)
