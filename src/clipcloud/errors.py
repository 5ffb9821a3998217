"""
Error kinds surfaced by the clipboard coordinator.

Every coordinator operation either returns its result or raises one of the
ClipboardError subclasses below (asyncio.CancelledError aside).
"""

from typing import Optional


class ClipboardError(Exception):
    kind = "ClipboardError"

    def __init__(self, message: str, *, owner_id: Optional[str] = None,
                 item_id: Optional[str] = None):
        super().__init__(message)
        self.owner_id = owner_id
        self.item_id = item_id


class InvalidArgumentError(ClipboardError):
    """Malformed owner/item id, content type or payload."""
    kind = "InvalidArgument"


class OwnerPausedError(ClipboardError):
    """Mutating call for an owner whose clipboard is paused."""
    kind = "OwnerPaused"


class ItemNotFoundError(ClipboardError):
    kind = "NotFound"


class PayloadMissingError(ClipboardError):
    """Metadata exists but its blob does not."""
    kind = "PayloadMissing"


class StoreUnavailableError(ClipboardError):
    """A collaborating store failed; not retried here."""
    kind = "StoreUnavailable"
