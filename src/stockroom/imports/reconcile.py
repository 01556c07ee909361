"""FIFO mapping from item descriptions to freshly created item ids."""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, Iterable, Optional

from stockroom.models.assets import CreatedItem


class ReconciliationError(LookupError):
    """Raised when an asset payload has no created item left to claim."""


def normalize_description(description: Optional[str]) -> str:
    return (description or "").strip().lower()


class ReconciliationBucket:
    """Description-keyed queues of created item ids, consumed destructively.

    Items created and uploads requested share no stable id, only a description. Identically
    described duplicates are claimed in creation order, one id per claim, so each duplicate
    receives its own upload.
    """

    def __init__(self) -> None:
        self._buckets: Dict[str, Deque[str]] = {}

    @classmethod
    def from_items(cls, items: Iterable[CreatedItem]) -> "ReconciliationBucket":
        bucket = cls()
        for item in items:
            bucket.add(item.description, item.item_id)
        return bucket

    def add(self, description: Optional[str], item_id: str) -> None:
        self._buckets.setdefault(normalize_description(description), deque()).append(item_id)

    def claim(self, description: Optional[str]) -> str:
        """Pop the oldest unclaimed item id for ``description``."""

        queue = self._buckets.get(normalize_description(description))
        if not queue:
            raise ReconciliationError(f'No created item found for description "{description}"')
        return queue.popleft()

    def remaining(self, description: Optional[str]) -> int:
        return len(self._buckets.get(normalize_description(description), ()))

    def __len__(self) -> int:
        return sum(len(queue) for queue in self._buckets.values())


__all__ = ["ReconciliationBucket", "ReconciliationError", "normalize_description"]
