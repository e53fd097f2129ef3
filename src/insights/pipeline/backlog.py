"""Bounded backlog of batches awaiting delivery."""
from __future__ import annotations

from collections import deque
from typing import Awaitable, Callable, Deque, Iterator

from .base import BacklogSaturationError, Batch


class Backlog:
    """Ordered, bounded collection of undelivered batches.

    Insertion order is retry order. A batch that fails delivery keeps its
    position, so older batches are always attempted before newer ones.

    Not thread-safe, and not meant to be shared between tasks: the dispatcher
    loop is its only owner.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._items: Deque[Batch] = deque()

    def push_back(self, batch: Batch) -> None:
        if len(self._items) >= self.capacity:
            raise BacklogSaturationError(f"backlog is full ({self.capacity} batches)")
        self._items.append(batch)

    async def deliver(self, send: Callable[[Batch], Awaitable[bool]]) -> int:
        """Attempt every batch once, in order, removing those ``send`` reports as delivered."""

        delivered = 0
        for batch in list(self._items):
            if await send(batch):
                self._items.remove(batch)
                delivered += 1
        return delivered

    @property
    def full(self) -> bool:
        return len(self._items) >= self.capacity

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Batch]:
        return iter(list(self._items))
