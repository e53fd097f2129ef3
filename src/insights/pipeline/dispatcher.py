"""Delivery of batches to the collector endpoint."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from ..core.config import Settings
from ..core.http import delivery_headers, get_async_client
from .backlog import Backlog
from .base import BacklogSaturationError, Batch, DeliveryError, PipelineStats

logger = logging.getLogger("insights.dispatcher")


class Dispatcher:
    """Moves batches from the hand-off queue into the backlog and posts them.

    Every new batch triggers one delivery pass over the whole backlog. Batches
    that fail stay where they are and are retried on the next pass; the close
    sentinel triggers a last pass with the shorter shutdown timeout.
    """

    def __init__(
        self,
        batches: asyncio.Queue[Optional[Batch]],
        backlog: Backlog,
        settings: Settings,
        *,
        stats: Optional[PipelineStats] = None,
    ) -> None:
        self._batches = batches
        self.backlog = backlog
        self._settings = settings
        self.stats = stats or PipelineStats()
        self.url = settings.events_url
        self.headers = delivery_headers(settings)
        self.http_timeout = settings.http_timeout_seconds
        self._client: Optional[httpx.AsyncClient] = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator["Dispatcher"]:
        async with get_async_client(self._settings) as client:
            self._client = client
            try:
                yield self
            finally:
                self._client = None

    async def run(self) -> None:
        async with self.session():
            while True:
                batch = await self._batches.get()
                if batch is None:
                    break
                self.accept(batch)
                await self.send_unsent()

            self.http_timeout = self._settings.shutdown_http_timeout_seconds
            await self.send_unsent()

        if self.backlog:
            logger.warning("%s batches were still undelivered at shutdown", len(self.backlog))
        logger.debug("Dispatcher stopped")

    def accept(self, batch: Batch) -> bool:
        try:
            self.backlog.push_back(batch)
        except BacklogSaturationError as exc:
            self.stats.batches_dropped += 1
            logger.warning("Dropping batch of %s events: %s", batch.count, exc)
            return False
        return True

    async def send_unsent(self) -> int:
        delivered = await self.backlog.deliver(self.send_batch)
        if delivered:
            logger.debug("Delivered %s batches, %s pending", delivered, len(self.backlog))
        return delivered

    async def send_batch(self, batch: Batch) -> bool:
        try:
            await self._post(batch)
        except DeliveryError as exc:
            self.stats.delivery_failures += 1
            logger.warning("Batch delivery failed: %s; queueing for resend", exc)
            return False
        self.stats.batches_delivered += 1
        return True

    async def _post(self, batch: Batch) -> None:
        if self._client is None:
            raise DeliveryError("dispatcher has no open HTTP session")
        try:
            response = await self._client.post(
                self.url, content=batch.body, headers=self.headers, timeout=self.http_timeout
            )
        except httpx.TimeoutException as exc:
            raise DeliveryError(f"request timed out after {self.http_timeout}s") from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"request failed: {exc!r}") from exc
        except httpx.InvalidURL as exc:
            raise DeliveryError(f"could not build request: {exc}") from exc
        except ValueError as exc:
            # Raised by httpx for header values it cannot encode.
            raise DeliveryError(f"could not build request: {exc}") from exc

        if response.status_code != 200:
            raise DeliveryError(
                f"non-200 result: {response.status_code} [{response.text[:500]}]",
                status_code=response.status_code,
            )
