"""
In-memory storage adapter.
Suitable for single-process applications
"""
from typing import Any, Dict, List, Optional

from .base import StorageAdapter


class MemoryStorage(StorageAdapter):
    """
    Dict backed implementation of StorageAdapter.
    """

    def __init__(self) -> None:
        self._store: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        return self._store.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._store[key] = value

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def clear(self) -> None:
        self._store.clear()

    async def keys(self) -> List[str]:
        return list(self._store.keys())

    async def close(self) -> None:
        self._store.clear()

    @property
    def size(self) -> int:
        """Get the current size of the store (for debugging)"""
        return len(self._store)


def create_memory_storage() -> MemoryStorage:
    """Create a new MemoryStorage instance"""
    return MemoryStorage()
