from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from clipcloud.config import ClipboardSettings
from clipcloud.database.memory import InMemoryMetadataStore, InMemoryOwnerStateStore, InMemoryPayloadStore
from clipcloud.schema import ClipboardItemMetadata, build_blob_name
from clipcloud.services import ClipboardCoordinator

START = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class SteppingClock:
    """Returns START, START + step, START + 2*step, ..."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


def make_metadata(owner_id: str = "dev-42", item_id: str = "i_01", *,
                  created_at: Optional[datetime] = None, size_bytes: int = 10,
                  content_type: str = "text/plain") -> ClipboardItemMetadata:
    created_at = created_at or START
    return ClipboardItemMetadata(
        owner_id=owner_id,
        item_id=item_id,
        content_type=content_type,
        size_bytes=size_bytes,
        created_at=created_at,
        blob_name=build_blob_name(owner_id, item_id, created_at),
    )


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def metadata_store():
    return InMemoryMetadataStore()


@pytest.fixture
def payload_store(clock):
    return InMemoryPayloadStore(clock=clock)


@pytest.fixture
def owner_state_store():
    return InMemoryOwnerStateStore(clock=SteppingClock(start=START + timedelta(days=1)))


@pytest.fixture
def settings():
    return ClipboardSettings(default_page_size=5, max_page_size=20, max_items_per_owner=10)


@pytest.fixture
def coordinator(metadata_store, payload_store, owner_state_store, settings, clock):
    return ClipboardCoordinator(
        metadata_store, payload_store, owner_state_store, settings=settings, clock=clock)
