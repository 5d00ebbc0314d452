"""
Response interceptor chains.
"""
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Tuple, Union

from .exceptions import InterceptorContractError
from .types import ClientResponse

logger = logging.getLogger("fetch_orchestrator.interceptors")

InterceptorResult = Tuple[ClientResponse, Any]
InterceptorCallback = Callable[
    [ClientResponse, Any],
    Union[InterceptorResult, Awaitable[InterceptorResult]],
]


class InterceptorChain:
    """
    Ordered transform callbacks applied to responses before caching.

    Each callback receives (response, request) and must return a
    (response, request) pair, directly or from a coroutine. Callbacks run
    one after another in registration order; an async callback is awaited
    before the next one starts.

    Example:
        chain = InterceptorChain()
        chain.on_success(unwrap_envelope).on_error(attach_message)

        response, request = await chain.modify_success_response(response, request)
    """

    def __init__(self) -> None:
        self._on_error: List[InterceptorCallback] = []
        self._on_success: List[InterceptorCallback] = []
        self._on_response: List[InterceptorCallback] = []

    def on_error(self, callback: InterceptorCallback) -> "InterceptorChain":
        self._on_error.append(callback)
        return self

    def on_success(self, callback: InterceptorCallback) -> "InterceptorChain":
        self._on_success.append(callback)
        return self

    def on_response(self, callback: InterceptorCallback) -> "InterceptorChain":
        self._on_response.append(callback)
        return self

    def remove_on_error(self, callbacks: Iterable[InterceptorCallback]) -> "InterceptorChain":
        self._on_error = _without(self._on_error, callbacks)
        return self

    def remove_on_success(self, callbacks: Iterable[InterceptorCallback]) -> "InterceptorChain":
        self._on_success = _without(self._on_success, callbacks)
        return self

    def remove_on_response(self, callbacks: Iterable[InterceptorCallback]) -> "InterceptorChain":
        self._on_response = _without(self._on_response, callbacks)
        return self

    @property
    def error_callbacks(self) -> List[InterceptorCallback]:
        return list(self._on_error)

    @property
    def success_callbacks(self) -> List[InterceptorCallback]:
        return list(self._on_success)

    @property
    def response_callbacks(self) -> List[InterceptorCallback]:
        return list(self._on_response)

    async def modify_error_response(self, response: ClientResponse, request: Any) -> InterceptorResult:
        return await _fold("error", list(self._on_error), response, request)

    async def modify_success_response(self, response: ClientResponse, request: Any) -> InterceptorResult:
        return await _fold("success", list(self._on_success), response, request)

    async def modify_response(self, response: ClientResponse, request: Any) -> InterceptorResult:
        return await _fold("response", list(self._on_response), response, request)

    async def process(self, response: ClientResponse, request: Any) -> InterceptorResult:
        """Run the success or error chain, then the response chain"""
        if response.success:
            response, request = await self.modify_success_response(response, request)
        else:
            response, request = await self.modify_error_response(response, request)
        return await self.modify_response(response, request)


def _without(
    callbacks: List[InterceptorCallback], removed: Iterable[InterceptorCallback]
) -> List[InterceptorCallback]:
    removed = list(removed)
    return [callback for callback in callbacks if not any(callback is r for r in removed)]


async def _fold(
    chain: str,
    callbacks: List[InterceptorCallback],
    response: ClientResponse,
    request: Any,
) -> InterceptorResult:
    # callbacks is a snapshot; removals during the fold affect later calls only
    for index, callback in enumerate(callbacks):
        result = callback(response, request)
        if inspect.isawaitable(result):
            result = await result

        if not isinstance(result, tuple) or len(result) != 2 or result[0] is None or result[1] is None:
            logger.warning(f"InterceptorChain: {chain} callback #{index} broke the contract")
            raise InterceptorContractError(chain, index)

        response, request = result

    return response, request
