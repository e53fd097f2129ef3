"""Aggregation of serialized events into deliverable batches."""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from .base import Batch, PipelineStats, Record, batch_size

logger = logging.getLogger("insights.batcher")


class Batcher:
    """Accumulates records and emits a batch on a count, size or timer trigger.

    The pending batch is owned by the task running :meth:`run`; nothing else
    touches it. Formed batches are handed to the dispatcher through ``batches``
    without ever waiting: when that queue is full the batch is dropped.
    """

    def __init__(
        self,
        records: asyncio.Queue[Optional[Record]],
        batches: asyncio.Queue[Optional[Batch]],
        *,
        max_events: int,
        max_bytes: int,
        interval: float,
        threshold: float = 0.9,
        stats: Optional[PipelineStats] = None,
    ) -> None:
        self._records = records
        self._batches = batches
        self.max_events = max_events
        self.max_bytes = max_bytes
        self.interval = interval
        self.threshold = threshold
        self.stats = stats or PipelineStats()
        self._pending: List[Record] = []
        self._pending_bytes = 0

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def pending_bytes(self) -> int:
        return self._pending_bytes

    def ingest(self, record: Record) -> None:
        # Never let a record push the pending batch over a hard limit.
        if self._pending and (
            len(self._pending) + 1 > self.max_events
            or batch_size(len(self._pending) + 1, self._pending_bytes + len(record)) > self.max_bytes
        ):
            self.flush()

        self._pending.append(record)
        self._pending_bytes += len(record)

        if (
            len(self._pending) > self.max_events * self.threshold
            or self._pending_bytes > self.max_bytes * self.threshold
        ):
            self.flush()

    def flush(self) -> Optional[Batch]:
        if not self._pending:
            return None

        batch = Batch.from_records(self._pending)
        self._pending = []
        self._pending_bytes = 0
        self.stats.batches_formed += 1

        try:
            self._batches.put_nowait(batch)
        except asyncio.QueueFull:
            self.stats.batches_dropped += 1
            logger.warning("Batch queue is full; dropping batch of %s events", batch.count)
        else:
            logger.debug("Formed batch of %s events (%s bytes)", batch.count, batch.size)
        return batch

    async def run(self) -> None:
        """Consume records until the close sentinel arrives, then flush what remains."""

        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval
        while True:
            remaining = next_tick - loop.time()
            if remaining <= 0:
                self.flush()
                next_tick += self.interval
                if next_tick <= loop.time():
                    # Missed ticks are skipped, not replayed.
                    next_tick = loop.time() + self.interval
                continue

            try:
                record = await asyncio.wait_for(self._records.get(), timeout=remaining)
            except asyncio.TimeoutError:
                continue

            if record is None:
                break
            self.ingest(record)

        self.flush()
        logger.debug("Batcher stopped")
