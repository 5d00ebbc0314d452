"""
Storage adapter interface shared by Cache and Queue.
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional


class StorageAdapter(ABC):
    """
    Key/value backend owned by a single Cache or Queue.

    Every method is awaitable, whatever the backend does underneath.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get a value by key."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store a value."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a value."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every value."""
        pass

    @abstractmethod
    async def keys(self) -> List[str]:
        """List stored keys."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the adapter and release resources."""
        pass
