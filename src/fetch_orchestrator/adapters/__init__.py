"""
Transport adapters for fetch_orchestrator.
"""
from .httpx_adapter import HttpxAdapter, build_url, create_httpx_adapter

__all__ = [
    "HttpxAdapter",
    "build_url",
    "create_httpx_adapter",
]
