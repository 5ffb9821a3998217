"""
Storage backends for ClipScape cloud clipboard.

Provides the store contracts and their in-memory, Redis, MySQL and filesystem
implementations.
"""

from clipcloud.database.base import (
    BlobInfo,
    BlobNotFoundError,
    ClipboardMetadataStore,
    ClipboardOwnerStateStore,
    ClipboardPayloadStore,
    StoreError,
)
from clipcloud.database.memory import InMemoryMetadataStore, InMemoryOwnerStateStore, InMemoryPayloadStore
from clipcloud.database.mysql import MySQLMetadataStore
from clipcloud.database.redis_manager import RedisManager, RedisMetadataStore, RedisOwnerStateStore

__all__ = [
    'BlobInfo',
    'BlobNotFoundError',
    'ClipboardMetadataStore',
    'ClipboardOwnerStateStore',
    'ClipboardPayloadStore',
    'StoreError',
    'InMemoryMetadataStore',
    'InMemoryOwnerStateStore',
    'InMemoryPayloadStore',
    'MySQLMetadataStore',
    'RedisManager',
    'RedisMetadataStore',
    'RedisOwnerStateStore',
]
