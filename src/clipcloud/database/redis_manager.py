"""
Redis Management for ClipScape cloud clipboard.

Handles Redis storage for clipboard item metadata and owner pause state.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

import redis
import redis.asyncio as aioredis

from clipcloud.database.base import ClipboardMetadataStore, ClipboardOwnerStateStore, StoreError
from clipcloud.schema import ClipboardItemMetadata, ClipboardOwnerState, utc_now


@contextmanager
def _redis_errors(action: str):
    try:
        yield
    except redis.RedisError as e:
        raise StoreError(f"Redis {action} failed: {e}") from e


def _item_key(owner_id: str, item_id: str) -> str:
    return f"clipboard:{owner_id}:{item_id}"


def _index_key(owner_id: str) -> str:
    return f"owner:{owner_id}:clipboards"


def _state_key(owner_id: str) -> str:
    return f"owner:{owner_id}:state"


def _hash_mapping(record: Dict[str, Any]) -> Dict[str, Any]:
    # redis-py rejects bools; "1"/"0" parse back through pydantic
    return {key: ("1" if value else "0") if isinstance(value, bool) else value
            for key, value in record.items()}


class RedisManager:
    """
    Owns the Redis client shared by the Redis-backed stores.

    Data Structure:
    - clipboard:<ownerId>:<itemId> -> Clipboard item metadata (hash)
    - owner:<ownerId>:clipboards -> Item ids scored by createdAt (sorted set)
    - owner:<ownerId>:state -> Owner pause state (hash)
    """

    def __init__(self, host: str = 'localhost', port: int = 6379, db: int = 0,
                 password: Optional[str] = None, ssl: bool = False,
                 client: Optional[aioredis.Redis] = None):
        """
        Initialize the Redis client.

        Args:
            host: Redis host
            port: Redis port
            db: Redis database number
            password: Redis password (if required)
            ssl: Use TLS (rediss://)
            client: Pre-built client, used instead of opening a new one
        """
        self.client = client or aioredis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            ssl=ssl,
            decode_responses=True
        )

    async def test_connection(self) -> None:
        with _redis_errors("ping"):
            await self.client.ping()

    def metadata_store(self) -> "RedisMetadataStore":
        return RedisMetadataStore(self.client)

    def owner_state_store(self, clock: Callable[[], datetime] = utc_now) -> "RedisOwnerStateStore":
        return RedisOwnerStateStore(self.client, clock=clock)

    async def close(self) -> None:
        await self.client.aclose()


class RedisMetadataStore(ClipboardMetadataStore):

    def __init__(self, client: aioredis.Redis):
        self.client = client

    async def add(self, metadata: ClipboardItemMetadata) -> ClipboardItemMetadata:
        with _redis_errors("metadata add"):
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(_item_key(metadata.owner_id, metadata.item_id),
                          mapping=_hash_mapping(metadata.to_record()))
                pipe.zadd(_index_key(metadata.owner_id),
                          {metadata.item_id: metadata.created_at.timestamp()})
                await pipe.execute()
        return metadata

    async def get(self, owner_id: str, item_id: str) -> Optional[ClipboardItemMetadata]:
        with _redis_errors("metadata get"):
            data = await self.client.hgetall(_item_key(owner_id, item_id))
        if not data:
            return None
        return ClipboardItemMetadata.model_validate(data)

    async def list_recent(self, owner_id: str, take: int) -> List[ClipboardItemMetadata]:
        if take <= 0:
            return []
        with _redis_errors("metadata list"):
            # equal scores come back in descending member order, i.e. by item id
            item_ids = await self.client.zrevrange(_index_key(owner_id), 0, take - 1)
            return await self._load_many(owner_id, item_ids)

    async def list_all(self, owner_id: str) -> List[ClipboardItemMetadata]:
        with _redis_errors("metadata list"):
            item_ids = await self.client.zrevrange(_index_key(owner_id), 0, -1)
            return await self._load_many(owner_id, item_ids)

    async def remove(self, owner_id: str, item_id: str) -> None:
        with _redis_errors("metadata remove"):
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.delete(_item_key(owner_id, item_id))
                pipe.zrem(_index_key(owner_id), item_id)
                await pipe.execute()

    async def _load_many(self, owner_id: str, item_ids: Iterable[str]) -> List[ClipboardItemMetadata]:
        item_ids = list(item_ids)
        if not item_ids:
            return []

        async with self.client.pipeline(transaction=False) as pipe:
            for item_id in item_ids:
                pipe.hgetall(_item_key(owner_id, item_id))
            rows: List[Dict[str, str]] = await pipe.execute()

        # an index entry without a hash is a concurrent removal in progress
        return [ClipboardItemMetadata.model_validate(row) for row in rows if row]


class RedisOwnerStateStore(ClipboardOwnerStateStore):

    def __init__(self, client: aioredis.Redis, clock: Callable[[], datetime] = utc_now):
        self.client = client
        self._clock = clock

    async def get(self, owner_id: str) -> ClipboardOwnerState:
        key = _state_key(owner_id)
        with _redis_errors("owner state get"):
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hsetnx(key, "ownerId", owner_id)
                pipe.hsetnx(key, "isPaused", "0")
                pipe.hgetall(key)
                *_, data = await pipe.execute()
        return ClipboardOwnerState.model_validate(data)

    async def set(self, owner_id: str, is_paused: bool) -> ClipboardOwnerState:
        state = ClipboardOwnerState(
            owner_id=owner_id, is_paused=is_paused, updated_at=self._clock())
        with _redis_errors("owner state set"):
            await self.client.hset(_state_key(owner_id), mapping={
                "ownerId": owner_id,
                "isPaused": "1" if is_paused else "0",
                "updatedAt": state.updated_at.isoformat(),
            })
        return state
