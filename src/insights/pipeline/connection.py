"""Connection lifecycle: start the pipeline loops, accept events, drain on shutdown."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional, Union

from ..core.config import Settings
from ..telemetry.events import Event, EventFactory
from .backlog import Backlog
from .base import Batch, PipelineStats, Record
from .batcher import Batcher
from .dispatcher import Dispatcher
from .serializer import serialize

logger = logging.getLogger("insights.connection")


def _log_task_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Pipeline task %s failed: %s", task.get_name(), exc, exc_info=exc)


class Connection:
    """Process-wide handle on the event pipeline.

    Example::

        connection = Connection(Settings(account_id=42, insert_key="..."))
        await connection.start()
        event = connection.new_event()
        event.set("route", "/checkout")
        await connection.register_event(event)
        await connection.stop_and_flush()
    """

    def __init__(self, settings: Settings, *, host: Optional[str] = None) -> None:
        self.settings = settings
        self.stats = PipelineStats()
        self._factory = EventFactory(
            account_id=settings.account_id,
            app_id=settings.app_id,
            event_type=settings.event_type,
            host=host,
        )
        self._max_record_bytes = settings.max_size_per_call - 2
        self._events: Optional[asyncio.Queue[Optional[Record]]] = None
        self._batches: Optional[asyncio.Queue[Optional[Batch]]] = None
        self.backlog: Optional[Backlog] = None
        self._batcher_task: Optional[asyncio.Task[None]] = None
        self._dispatcher_task: Optional[asyncio.Task[None]] = None
        self._closing = False

    @property
    def running(self) -> bool:
        return self._batcher_task is not None and not self._closing

    async def start(self) -> None:
        if self._batcher_task is not None:
            raise RuntimeError("connection has already been started")

        settings = self.settings
        # A small event buffer amortizes the cost of batching under load.
        self._events = asyncio.Queue(maxsize=settings.event_buffer_size)
        self._batches = asyncio.Queue(maxsize=settings.send_queue_size)
        self.backlog = Backlog(settings.send_queue_size)

        batcher = Batcher(
            self._events,
            self._batches,
            max_events=settings.max_events_per_call,
            max_bytes=settings.max_size_per_call,
            interval=settings.send_interval_seconds,
            threshold=settings.flush_threshold,
            stats=self.stats,
        )
        dispatcher = Dispatcher(self._batches, self.backlog, settings, stats=self.stats)

        self._batcher_task = asyncio.create_task(batcher.run(), name="insights-batcher")
        self._dispatcher_task = asyncio.create_task(dispatcher.run(), name="insights-dispatcher")
        self._batcher_task.add_done_callback(_log_task_failure)
        self._dispatcher_task.add_done_callback(_log_task_failure)
        logger.info(
            "Insights pipeline started for account %s (interval %ss, backlog %s)",
            settings.account_id,
            settings.send_interval_seconds,
            settings.send_queue_size,
        )

    def new_event(self) -> Event:
        return self._factory.new_event()

    async def register_event(self, event: Union[Event, Mapping[str, Any]]) -> None:
        """Serialize ``event`` and queue it for batching.

        Raises :class:`SerializationError` if the event cannot be encoded; the
        event is then dropped. Waits only while the small event buffer is full.
        """

        if not self.running or self._events is None:
            raise RuntimeError("connection is not running")
        record = serialize(event, max_bytes=self._max_record_bytes)
        await self._events.put(record)
        self.stats.events_registered += 1

    async def stop_and_flush(self) -> None:
        """Flush pending events, make a last delivery pass and stop both loops."""

        if self._batcher_task is None or self._dispatcher_task is None:
            return
        assert self._events is not None and self._batches is not None

        if not self._closing:
            self._closing = True
            if not self._batcher_task.done():
                await self._events.put(None)
            await asyncio.wait({self._batcher_task})
            if not self._dispatcher_task.done():
                await self._batches.put(None)
        await asyncio.wait({self._dispatcher_task})
        logger.info(
            "Insights pipeline stopped: %s delivered, %s dropped, %s pending",
            self.stats.batches_delivered,
            self.stats.batches_dropped,
            len(self.backlog) if self.backlog is not None else 0,
        )

    async def __aenter__(self) -> "Connection":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop_and_flush()
