"""Bounded FIFO of translation requests deferred during provider outages."""

import logging
from collections import deque
from typing import Deque, Iterable, List

from app.metrics.translation_metrics import (
    offline_queue_dropped_total,
    offline_queue_size,
)
from app.models.translation import TranslationRequest

logger = logging.getLogger(__name__)


class OfflineQueue:
    """FIFO with a hard capacity; overflow drops the oldest request.

    Delivery is at-least-once: drained requests that fail again are expected
    to be re-enqueued by the caller.
    """

    def __init__(self, capacity: int = 1000):
        if capacity < 1:
            raise ValueError("Offline queue capacity must be at least 1")
        self.capacity = capacity
        self._items: Deque[TranslationRequest] = deque()
        self.dropped = 0
        offline_queue_size.set(0)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def size(self) -> int:
        return len(self._items)

    def enqueue(self, request: TranslationRequest) -> None:
        if len(self._items) >= self.capacity:
            dropped = self._items.popleft()
            self.dropped += 1
            offline_queue_dropped_total.inc()
            logger.warning(
                f"Offline queue full ({self.capacity}); dropped oldest request "
                f"{dropped.source_lang or 'auto'}->{dropped.target_lang}"
            )
        self._items.append(request)
        offline_queue_size.set(len(self._items))

    def extend(self, requests: Iterable[TranslationRequest]) -> None:
        for request in requests:
            self.enqueue(request)

    def drain(self) -> List[TranslationRequest]:
        """Remove and return every queued request in FIFO order."""
        items = list(self._items)
        self._items.clear()
        offline_queue_size.set(0)
        return items

    def snapshot(self) -> List[TranslationRequest]:
        return list(self._items)
