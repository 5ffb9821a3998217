"""
In-memory store implementations.

Non-durable; used by the test-suite and for offline development.
"""

import io
from typing import BinaryIO, Callable, Dict, List, Optional, Tuple
from datetime import datetime

from clipcloud.database.base import (
    BlobInfo,
    BlobNotFoundError,
    ClipboardMetadataStore,
    ClipboardOwnerStateStore,
    ClipboardPayloadStore,
)
from clipcloud.schema import ClipboardItemMetadata, ClipboardOwnerState, order_by_recency, utc_now


class InMemoryMetadataStore(ClipboardMetadataStore):

    def __init__(self):
        self._items: Dict[Tuple[str, str], ClipboardItemMetadata] = {}

    async def add(self, metadata: ClipboardItemMetadata) -> ClipboardItemMetadata:
        self._items[(metadata.owner_id, metadata.item_id)] = metadata
        return metadata

    async def get(self, owner_id: str, item_id: str) -> Optional[ClipboardItemMetadata]:
        return self._items.get((owner_id, item_id))

    async def list_recent(self, owner_id: str, take: int) -> List[ClipboardItemMetadata]:
        return (await self.list_all(owner_id))[:take]

    async def list_all(self, owner_id: str) -> List[ClipboardItemMetadata]:
        return order_by_recency(
            item for (owner, _), item in self._items.items() if owner == owner_id)

    async def remove(self, owner_id: str, item_id: str) -> None:
        self._items.pop((owner_id, item_id), None)


class InMemoryPayloadStore(ClipboardPayloadStore):

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._payloads: Dict[str, Tuple[bytes, str, datetime]] = {}

    async def upload(self, blob_name: str, stream: BinaryIO, content_type: str) -> None:
        self._payloads[blob_name] = (stream.read(), content_type, self._clock())

    async def open_read(self, blob_name: str) -> BinaryIO:
        try:
            data, _, _ = self._payloads[blob_name]
        except KeyError:
            raise BlobNotFoundError(blob_name) from None
        return io.BytesIO(data)

    async def delete(self, blob_name: str) -> None:
        self._payloads.pop(blob_name, None)

    async def list_blobs(self, prefix: str) -> List[BlobInfo]:
        return [
            BlobInfo(name=name, modified_at=modified_at)
            for name, (_, _, modified_at) in sorted(self._payloads.items())
            if name.startswith(prefix)
        ]

    def __contains__(self, blob_name: str) -> bool:
        return blob_name in self._payloads

    def __len__(self) -> int:
        return len(self._payloads)


class InMemoryOwnerStateStore(ClipboardOwnerStateStore):

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._states: Dict[str, ClipboardOwnerState] = {}

    async def get(self, owner_id: str) -> ClipboardOwnerState:
        return self._states.setdefault(owner_id, ClipboardOwnerState(owner_id=owner_id))

    async def set(self, owner_id: str, is_paused: bool) -> ClipboardOwnerState:
        state = ClipboardOwnerState(
            owner_id=owner_id, is_paused=is_paused, updated_at=self._clock())
        self._states[owner_id] = state
        return state
