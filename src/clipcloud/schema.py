from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from ulid import ULID


class ClipboardPayloadType(str, Enum):
    TEXT = "Text"
    FILE_SET = "FileSet"
    IMAGE = "Image"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_item_id(created_at: datetime) -> str:
    # ULID timestamp prefix keeps item ids sortable by creation time
    return f"i_{ULID.from_datetime(created_at)}"


def build_blob_name(owner_id: str, item_id: str, created_at: datetime) -> str:
    return f"{owner_id}/{created_at:%Y/%m/%d}/{item_id}.bin"


def owner_blob_prefix(owner_id: str) -> str:
    return f"{owner_id}/"


class _Record(BaseModel):
    # camelCase on the storage side, snake_case attributes in code
    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ClipboardItemMetadata(_Record):
    """One clipboard entry, independent of its payload bytes."""
    owner_id: str
    item_id: str
    content_type: str
    size_bytes: int = Field(ge=0)
    created_at: datetime
    blob_name: str
    payload_type: ClipboardPayloadType = ClipboardPayloadType.TEXT
    device_name: Optional[str] = None
    file_name: Optional[str] = None
    expires_at: Optional[datetime] = None  # recorded for clients, not enforced here
    is_encrypted: bool = False

    @field_validator("created_at", "expires_at")
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value) if value is not None else None

    def to_public_dict(self) -> Dict[str, Any]:
        """Caller-facing view; the blob name stays a storage detail."""
        return self.model_dump(mode="json", by_alias=True, exclude={"blob_name"})


class ClipboardOwnerState(_Record):
    owner_id: str
    is_paused: bool = False
    updated_at: Optional[datetime] = None  # None until first pause/resume


def recency_key(item: ClipboardItemMetadata) -> Tuple[datetime, str]:
    return (item.created_at, item.item_id)


def order_by_recency(items: Iterable[ClipboardItemMetadata]) -> List[ClipboardItemMetadata]:
    """Newest first, ties broken by descending item id."""
    return sorted(items, key=recency_key, reverse=True)
