"""
Errors raised by fetch_orchestrator.
"""
from typing import Optional


class FetchOrchestratorError(Exception):
    """Base class for fetch_orchestrator errors."""


class InterceptorContractError(FetchOrchestratorError):
    """An interceptor callback did not hand back a (response, request) pair."""

    def __init__(self, chain: str, index: int, message: Optional[str] = None) -> None:
        self.chain = chain
        self.index = index
        super().__init__(
            message
            or f"{chain} interceptor #{index} must return a (response, request) pair"
        )


class RequestCanceledError(FetchOrchestratorError):
    """Placed in the error slot of a response resolved for a canceled request."""

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Request {request_id} was canceled")
