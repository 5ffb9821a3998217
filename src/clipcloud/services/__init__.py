"""Service layer for ClipScape cloud clipboard."""

from .clipboard_coordinator import ClipboardCoordinator, ClipboardItemContent
from .retention import RetentionPolicy

__all__ = ["ClipboardCoordinator", "ClipboardItemContent", "RetentionPolicy"]
