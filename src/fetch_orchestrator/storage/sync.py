"""
Adapter for synchronous key/value backends.
"""
from typing import Any, Iterable, List, Optional, Protocol

from .base import StorageAdapter


class SyncStorageBackend(Protocol):
    """Protocol for a blocking key/value backend"""

    def get(self, key: str) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...

    def keys(self) -> Iterable[str]:
        ...


class SyncStorageAdapter(StorageAdapter):
    """
    Wraps a synchronous backend so it exposes the awaitable StorageAdapter
    surface. Results are returned as already-resolved coroutines and
    backend errors surface from the awaited call.
    """

    def __init__(self, backend: SyncStorageBackend) -> None:
        self._backend = backend

    async def get(self, key: str) -> Optional[Any]:
        return self._backend.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._backend.set(key, value)

    async def delete(self, key: str) -> None:
        self._backend.delete(key)

    async def clear(self) -> None:
        self._backend.clear()

    async def keys(self) -> List[str]:
        return list(self._backend.keys())

    async def close(self) -> None:
        pass


def create_sync_storage(backend: SyncStorageBackend) -> SyncStorageAdapter:
    """Wrap a synchronous backend"""
    return SyncStorageAdapter(backend)
