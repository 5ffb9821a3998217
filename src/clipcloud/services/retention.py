from dataclasses import dataclass
from typing import List, Sequence

from clipcloud.schema import ClipboardItemMetadata, order_by_recency

DEFAULT_MAX_ITEMS_PER_OWNER = 200


@dataclass(frozen=True)
class RetentionPolicy:
    max_items_per_owner: int = DEFAULT_MAX_ITEMS_PER_OWNER

    def __post_init__(self) -> None:
        if self.max_items_per_owner <= 0:
            raise ValueError("max_items_per_owner must be positive")

    def exceeds(self, item_count: int) -> bool:
        return item_count > self.max_items_per_owner

    def select_excess(self, items: Sequence[ClipboardItemMetadata]) -> List[ClipboardItemMetadata]:
        """Items beyond the cap, oldest first."""
        if not self.exceeds(len(items)):
            return []
        newest_first = order_by_recency(items)
        return list(reversed(newest_first[self.max_items_per_owner:]))
