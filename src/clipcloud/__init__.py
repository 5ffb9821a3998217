"""
ClipScape cloud clipboard backend.

Coordinates clipboard item metadata, payload blobs and per-owner pause state.
"""

from clipcloud.errors import (
    ClipboardError,
    InvalidArgumentError,
    ItemNotFoundError,
    OwnerPausedError,
    PayloadMissingError,
    StoreUnavailableError,
)
from clipcloud.schema import ClipboardItemMetadata, ClipboardOwnerState, ClipboardPayloadType
from clipcloud.services import ClipboardCoordinator, ClipboardItemContent, RetentionPolicy

__all__ = [
    'ClipboardCoordinator',
    'ClipboardItemContent',
    'RetentionPolicy',
    'ClipboardItemMetadata',
    'ClipboardOwnerState',
    'ClipboardPayloadType',
    'ClipboardError',
    'InvalidArgumentError',
    'ItemNotFoundError',
    'OwnerPausedError',
    'PayloadMissingError',
    'StoreUnavailableError',
]
