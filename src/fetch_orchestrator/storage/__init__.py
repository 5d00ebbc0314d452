"""
Storage adapters
"""
from .base import StorageAdapter
from .memory import MemoryStorage, create_memory_storage
from .sync import SyncStorageAdapter, SyncStorageBackend, create_sync_storage
from .redis import RedisStorage, create_redis_storage

__all__ = [
    "StorageAdapter",
    "MemoryStorage",
    "create_memory_storage",
    "SyncStorageAdapter",
    "SyncStorageBackend",
    "create_sync_storage",
    "RedisStorage",
    "create_redis_storage",
]
