"""
Bounded channel merging every modality stream into one consumption point.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackpressurePolicy(Enum):
    """What a producer does when the channel is full."""

    BLOCK = "block"
    DROP_OLDEST = "drop_oldest"


class ReadingChannel(Generic[T]):
    """
    FIFO channel with a fixed capacity.

    With ``BLOCK`` a producer waits for space; with ``DROP_OLDEST`` the
    oldest queued item is discarded to make room and counted as dropped.
    """

    def __init__(
        self,
        capacity: int = 256,
        policy: BackpressurePolicy = BackpressurePolicy.BLOCK,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"Channel capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self.policy = policy
        self._queue: "asyncio.Queue[T]" = asyncio.Queue(maxsize=capacity)
        self.total_items = 0
        self.dropped_items = 0

    async def put(self, item: T) -> None:
        self.total_items += 1
        if self.policy is BackpressurePolicy.BLOCK:
            await self._queue.put(item)
            return

        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()
                self._queue.task_done()
                self.dropped_items += 1

    async def get(self) -> T:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued item has been processed."""
        await self._queue.join()

    def clear(self) -> None:
        """Discard queued items without processing them."""
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._queue.task_done()

    def qsize(self) -> int:
        return self._queue.qsize()

    def get_stats(self) -> Dict[str, Any]:
        """Get channel statistics."""
        return {
            "queued": self._queue.qsize(),
            "capacity": self.capacity,
            "policy": self.policy.value,
            "total_items": self.total_items,
            "dropped_items": self.dropped_items,
            "drop_rate": self.dropped_items / max(self.total_items, 1),
        }
