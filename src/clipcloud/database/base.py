from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, List, Optional

from clipcloud.schema import ClipboardItemMetadata, ClipboardOwnerState


class StoreError(Exception):
    """Backend failure raised by any store implementation."""


class BlobNotFoundError(StoreError):
    def __init__(self, blob_name: str):
        super().__init__(f"Blob '{blob_name}' was not found")
        self.blob_name = blob_name


@dataclass(frozen=True)
class BlobInfo:
    name: str
    modified_at: datetime


class ClipboardMetadataStore(ABC):

    @abstractmethod
    async def add(self, metadata: ClipboardItemMetadata) -> ClipboardItemMetadata:
        pass

    @abstractmethod
    async def get(self, owner_id: str, item_id: str) -> Optional[ClipboardItemMetadata]:
        pass

    @abstractmethod
    async def list_recent(self, owner_id: str, take: int) -> List[ClipboardItemMetadata]:
        pass

    @abstractmethod
    async def list_all(self, owner_id: str) -> List[ClipboardItemMetadata]:
        pass

    @abstractmethod
    async def remove(self, owner_id: str, item_id: str) -> None:
        """Removing an unknown item is a no-op."""

    async def close(self) -> None:
        pass


class ClipboardPayloadStore(ABC):

    @abstractmethod
    async def upload(self, blob_name: str, stream: BinaryIO, content_type: str) -> None:
        pass

    @abstractmethod
    async def open_read(self, blob_name: str) -> BinaryIO:
        """Raises BlobNotFoundError when the blob does not exist."""

    @abstractmethod
    async def delete(self, blob_name: str) -> None:
        """Deleting an unknown blob is a no-op."""

    async def list_blobs(self, prefix: str) -> List[BlobInfo]:
        raise NotImplementedError(
            f"{type(self).__name__} cannot enumerate blobs")

    async def close(self) -> None:
        pass


class ClipboardOwnerStateStore(ABC):

    @abstractmethod
    async def get(self, owner_id: str) -> ClipboardOwnerState:
        """Returns the stored state, creating the default (not paused) one if absent."""

    @abstractmethod
    async def set(self, owner_id: str, is_paused: bool) -> ClipboardOwnerState:
        pass

    async def close(self) -> None:
        pass
