import asyncio
import io
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, BinaryIO, Callable, List, Optional, TypeVar, Union

from clipcloud.config import ClipboardSettings
from clipcloud.database.base import (
    BlobNotFoundError,
    ClipboardMetadataStore,
    ClipboardOwnerStateStore,
    ClipboardPayloadStore,
    StoreError,
)
from clipcloud.errors import (
    ClipboardError,
    InvalidArgumentError,
    ItemNotFoundError,
    OwnerPausedError,
    PayloadMissingError,
    StoreUnavailableError,
)
from clipcloud.schema import (
    ClipboardItemMetadata,
    ClipboardOwnerState,
    ClipboardPayloadType,
    build_blob_name,
    new_item_id,
    order_by_recency,
    owner_blob_prefix,
    utc_now,
)
from clipcloud.services.retention import RetentionPolicy

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9._@-]{0,127}")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
MAX_CONTENT_TYPE_LENGTH = 255
DEFAULT_GC_MIN_AGE = timedelta(hours=1)

PayloadSource = Union[bytes, bytearray, memoryview, BinaryIO]
T = TypeVar("T")


def _validate_id(name: str, value: Any) -> str:
    if not isinstance(value, str) or not _ID_PATTERN.fullmatch(value):
        raise InvalidArgumentError(f"{name} is malformed: {value!r}")
    return value


def _validate_content_type(content_type: Any) -> str:
    if (not isinstance(content_type, str) or not content_type.strip()
            or len(content_type) > MAX_CONTENT_TYPE_LENGTH
            or _CONTROL_CHARS.search(content_type)):
        raise InvalidArgumentError(f"content_type is malformed: {content_type!r}")
    return content_type.strip()


def _validate_payload_type(payload_type: Any) -> ClipboardPayloadType:
    try:
        return ClipboardPayloadType(payload_type)
    except ValueError:
        raise InvalidArgumentError(f"payload_type is unknown: {payload_type!r}") from None


def _read_stream(payload: BinaryIO) -> bytes:
    try:
        data = payload.read()
    except (OSError, ValueError) as e:
        raise InvalidArgumentError(f"payload stream is not readable: {e}") from e
    if not isinstance(data, (bytes, bytearray)):
        raise InvalidArgumentError("payload stream must yield bytes")
    return bytes(data)


@dataclass(frozen=True)
class ClipboardItemContent:
    metadata: ClipboardItemMetadata
    stream: BinaryIO

    def read_all(self) -> bytes:
        with self.stream:
            return self.stream.read()


class ClipboardCoordinator:
    """
    Keeps clipboard metadata, payload blobs and owner pause state consistent.

    No transaction spans the stores. Creation uploads the payload before it
    writes metadata, deletion removes metadata before the payload, so an
    interrupted operation leaves at worst an orphan blob and never a metadata
    record pointing at a missing blob. Orphans are reclaimed by
    collect_garbage().

    The pause check is advisory: an add or remove already past the check when
    the owner is paused still completes.
    """

    def __init__(
        self,
        metadata_store: ClipboardMetadataStore,
        payload_store: ClipboardPayloadStore,
        owner_state_store: ClipboardOwnerStateStore,
        settings: Optional[ClipboardSettings] = None,
        retention: Optional[RetentionPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.metadata_store = metadata_store
        self.payload_store = payload_store
        self.owner_state_store = owner_state_store
        self.settings = settings or ClipboardSettings()
        self.retention = retention or RetentionPolicy(self.settings.max_items_per_owner)
        self._clock = clock

    async def add_item(
        self,
        owner_id: str,
        content_type: str,
        payload: PayloadSource,
        *,
        device_name: Optional[str] = None,
        file_name: Optional[str] = None,
        payload_type: ClipboardPayloadType = ClipboardPayloadType.TEXT,
        expires_at: Optional[datetime] = None,
        is_encrypted: bool = False,
    ) -> ClipboardItemMetadata:
        _validate_id("owner_id", owner_id)
        content_type = _validate_content_type(content_type)
        payload_type = _validate_payload_type(payload_type)
        if expires_at is not None and not isinstance(expires_at, datetime):
            raise InvalidArgumentError(f"expires_at must be a datetime: {expires_at!r}", owner_id=owner_id)
        if not isinstance(is_encrypted, bool):
            raise InvalidArgumentError(f"is_encrypted must be a bool: {is_encrypted!r}", owner_id=owner_id)
        data = await self._read_payload(payload)

        await self._ensure_not_paused(owner_id)

        created_at = self._clock()
        item_id = new_item_id(created_at)
        blob_name = build_blob_name(owner_id, item_id, created_at)

        await self._call(
            "payload upload",
            self.payload_store.upload(blob_name, io.BytesIO(data), content_type),
            owner_id=owner_id, item_id=item_id)

        metadata = ClipboardItemMetadata(
            owner_id=owner_id,
            item_id=item_id,
            content_type=content_type,
            size_bytes=len(data),
            created_at=created_at,
            blob_name=blob_name,
            payload_type=payload_type,
            device_name=device_name,
            file_name=file_name,
            expires_at=expires_at,
            is_encrypted=is_encrypted,
        )
        try:
            metadata = await self.metadata_store.add(metadata)
        except StoreError as e:
            await self._compensate_upload(metadata)
            raise StoreUnavailableError(
                f"metadata write failed: {e}", owner_id=owner_id, item_id=item_id) from e
        except asyncio.CancelledError:
            logger.warning(
                f"Add of {owner_id}/{item_id} cancelled after upload; blob {blob_name} left for garbage collection")
            raise

        logger.info(
            f"Added clipboard item {owner_id}/{item_id} ({content_type}, {len(data)} bytes)")
        await self._trim_after_add(owner_id)
        return metadata

    async def get_item(self, owner_id: str, item_id: str) -> ClipboardItemContent:
        _validate_id("owner_id", owner_id)
        _validate_id("item_id", item_id)

        metadata = await self._get_metadata(owner_id, item_id)
        try:
            stream = await self.payload_store.open_read(metadata.blob_name)
        except BlobNotFoundError as e:
            raise await self._missing_payload_error(metadata) from e
        except StoreError as e:
            raise StoreUnavailableError(
                f"payload read failed: {e}", owner_id=owner_id, item_id=item_id) from e
        return ClipboardItemContent(metadata=metadata, stream=stream)

    async def list_recent(self, owner_id: str, take: int = 0) -> List[ClipboardItemMetadata]:
        _validate_id("owner_id", owner_id)
        if isinstance(take, bool) or not isinstance(take, int):
            raise InvalidArgumentError(f"take must be an integer: {take!r}", owner_id=owner_id)
        if take <= 0:
            take = self.settings.default_page_size
        take = min(take, self.settings.max_page_size)

        items = await self._call(
            "metadata list", self.metadata_store.list_recent(owner_id, take), owner_id=owner_id)
        return order_by_recency(items)[:take]

    async def list_all(self, owner_id: str) -> List[ClipboardItemMetadata]:
        _validate_id("owner_id", owner_id)
        items = await self._call(
            "metadata list", self.metadata_store.list_all(owner_id), owner_id=owner_id)
        return order_by_recency(items)

    async def remove_item(self, owner_id: str, item_id: str) -> None:
        _validate_id("owner_id", owner_id)
        _validate_id("item_id", item_id)

        await self._ensure_not_paused(owner_id)
        metadata = await self._get_metadata(owner_id, item_id)
        await self._delete_item(metadata)
        logger.info(f"Removed clipboard item {owner_id}/{item_id}")

    async def set_paused(self, owner_id: str, is_paused: bool) -> ClipboardOwnerState:
        _validate_id("owner_id", owner_id)
        if not isinstance(is_paused, bool):
            raise InvalidArgumentError(f"is_paused must be a bool: {is_paused!r}", owner_id=owner_id)

        state = await self._call(
            "owner state update", self.owner_state_store.set(owner_id, is_paused), owner_id=owner_id)
        logger.info(f"Clipboard for owner {owner_id} {'paused' if is_paused else 'resumed'}")
        return state

    async def get_owner_state(self, owner_id: str) -> ClipboardOwnerState:
        _validate_id("owner_id", owner_id)
        return await self._call(
            "owner state lookup", self.owner_state_store.get(owner_id), owner_id=owner_id)

    async def clear_owner(self, owner_id: str) -> int:
        """Remove every item of an owner; returns how many were removed."""
        _validate_id("owner_id", owner_id)
        await self._ensure_not_paused(owner_id)

        items = await self.list_all(owner_id)
        for item in reversed(items):
            await self._delete_item(item)
        logger.info(f"Cleared {len(items)} clipboard items for owner {owner_id}")
        return len(items)

    async def apply_retention(self, owner_id: str) -> int:
        """Trim the owner's history down to the retention cap, oldest first."""
        _validate_id("owner_id", owner_id)
        cap = self.retention.max_items_per_owner

        newest = await self._call(
            "metadata list", self.metadata_store.list_recent(owner_id, cap + 1), owner_id=owner_id)
        if not self.retention.exceeds(len(newest)):
            return 0

        excess = self.retention.select_excess(await self.list_all(owner_id))
        for item in excess:
            await self._delete_item(item)
        logger.info(f"Retention trimmed {len(excess)} items for owner {owner_id} (cap {cap})")
        return len(excess)

    async def collect_garbage(self, owner_id: str, min_age: timedelta = DEFAULT_GC_MIN_AGE) -> int:
        """
        Delete the owner's orphan blobs, i.e. blobs no metadata record refers to.

        Blobs younger than min_age are skipped: they may belong to an add that
        has uploaded its payload but not yet written its metadata.
        """
        _validate_id("owner_id", owner_id)
        try:
            blobs = await self._call(
                "blob listing", self.payload_store.list_blobs(owner_blob_prefix(owner_id)),
                owner_id=owner_id)
        except NotImplementedError as e:
            raise StoreUnavailableError(str(e), owner_id=owner_id) from e

        # metadata is read after the blob listing so no committed item is missed
        referenced = {item.blob_name for item in await self.list_all(owner_id)}
        cutoff = self._clock() - min_age
        orphans = [
            blob for blob in blobs
            if blob.name not in referenced and blob.modified_at <= cutoff
        ]
        for blob in orphans:
            await self._call("blob delete", self.payload_store.delete(blob.name), owner_id=owner_id)

        if orphans:
            logger.info(f"Garbage collected {len(orphans)} orphan blobs for owner {owner_id}")
        return len(orphans)

    async def close(self) -> None:
        for store in (self.metadata_store, self.payload_store, self.owner_state_store):
            await store.close()

    async def __aenter__(self) -> "ClipboardCoordinator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _call(self, action: str, awaitable: Awaitable[T], *,
                    owner_id: Optional[str] = None, item_id: Optional[str] = None) -> T:
        try:
            return await awaitable
        except StoreError as e:
            raise StoreUnavailableError(
                f"{action} failed: {e}", owner_id=owner_id, item_id=item_id) from e

    async def _read_payload(self, payload: PayloadSource) -> bytes:
        if isinstance(payload, (bytes, bytearray, memoryview)):
            return bytes(payload)
        if not callable(getattr(payload, "read", None)):
            raise InvalidArgumentError("payload must be bytes or a readable binary stream")
        return await asyncio.to_thread(_read_stream, payload)

    async def _ensure_not_paused(self, owner_id: str) -> None:
        state = await self._call(
            "owner state lookup", self.owner_state_store.get(owner_id), owner_id=owner_id)
        if state.is_paused:
            raise OwnerPausedError(f"Clipboard for owner {owner_id} is paused", owner_id=owner_id)

    async def _get_metadata(self, owner_id: str, item_id: str) -> ClipboardItemMetadata:
        metadata = await self._call(
            "metadata lookup", self.metadata_store.get(owner_id, item_id),
            owner_id=owner_id, item_id=item_id)
        if metadata is None:
            raise ItemNotFoundError(
                f"Clipboard item {owner_id}/{item_id} not found", owner_id=owner_id, item_id=item_id)
        return metadata

    async def _missing_payload_error(self, metadata: ClipboardItemMetadata) -> ClipboardError:
        owner_id, item_id = metadata.owner_id, metadata.item_id
        try:
            still_listed = await self.metadata_store.get(owner_id, item_id)
        except StoreError:
            still_listed = metadata

        if still_listed is None:
            # lost a race with a concurrent remove
            return ItemNotFoundError(
                f"Clipboard item {owner_id}/{item_id} not found", owner_id=owner_id, item_id=item_id)

        logger.error(f"Payload blob {metadata.blob_name} missing for clipboard item {owner_id}/{item_id}")
        return PayloadMissingError(
            f"Payload for clipboard item {owner_id}/{item_id} is missing",
            owner_id=owner_id, item_id=item_id)

    async def _compensate_upload(self, metadata: ClipboardItemMetadata) -> None:
        blob_name = metadata.blob_name
        try:
            landed = await self.metadata_store.get(metadata.owner_id, metadata.item_id)
        except StoreError as e:
            logger.warning(f"Could not verify metadata for blob {blob_name}; keeping it: {e}")
            return

        if landed is not None:
            # the write committed despite the error; deleting now would dangle
            logger.warning(f"Metadata for blob {blob_name} exists after a failed write; keeping blob")
            return

        try:
            await self.payload_store.delete(blob_name)
            logger.info(f"Deleted blob {blob_name} after failed metadata write")
        except StoreError as e:
            logger.warning(f"Compensating delete of blob {blob_name} failed; left for garbage collection: {e}")

    async def _delete_item(self, metadata: ClipboardItemMetadata) -> None:
        await self._call(
            "metadata remove", self.metadata_store.remove(metadata.owner_id, metadata.item_id),
            owner_id=metadata.owner_id, item_id=metadata.item_id)
        try:
            await self.payload_store.delete(metadata.blob_name)
        except StoreError as e:
            logger.warning(
                f"Blob {metadata.blob_name} of removed item {metadata.owner_id}/{metadata.item_id} "
                f"not deleted; left for garbage collection: {e}")

    async def _trim_after_add(self, owner_id: str) -> None:
        try:
            await self.apply_retention(owner_id)
        except ClipboardError as e:
            logger.warning(f"Retention trim for owner {owner_id} failed; retried on the next add: {e}")
