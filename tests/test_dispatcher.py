"""Tests for insights.pipeline.dispatcher."""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx
import pytest
import respx

from insights.core.config import Settings
from insights.pipeline.backlog import Backlog
from insights.pipeline.base import Batch
from insights.pipeline.dispatcher import Dispatcher


def _dispatcher(settings: Settings, capacity: int = 20) -> tuple[Dispatcher, asyncio.Queue[Optional[Batch]]]:
    batches: asyncio.Queue[Optional[Batch]] = asyncio.Queue(maxsize=capacity)
    return Dispatcher(batches, Backlog(capacity), settings), batches


def _batch(n: int) -> Batch:
    return Batch.from_records([b'{"n":%d}' % n])


class TestSendBatch:
    @pytest.mark.asyncio
    async def test_posts_batch_with_insert_key(self, settings: Settings, collector: respx.MockRouter) -> None:
        route = collector.post("https://collector.test/v1/accounts/42/events").mock(return_value=httpx.Response(200))
        dispatcher, _ = _dispatcher(settings)

        async with dispatcher.session():
            assert await dispatcher.send_batch(_batch(1)) is True

        request = route.calls.last.request
        assert request.content == b'[{"n":1}]'
        assert request.headers["X-Insert-Key"] == "test-insert-key"
        assert request.headers["Content-Type"] == "application/json"
        assert dispatcher.stats.batches_delivered == 1

    @pytest.mark.asyncio
    async def test_non_200_is_a_failure(self, settings: Settings, collector: respx.MockRouter) -> None:
        collector.post(settings.events_url).mock(return_value=httpx.Response(202, text="accepted later"))
        dispatcher, _ = _dispatcher(settings)

        async with dispatcher.session():
            assert await dispatcher.send_batch(_batch(1)) is False
        assert dispatcher.stats.delivery_failures == 1
        assert dispatcher.stats.batches_delivered == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("timed out"),
            httpx.ReadError("connection reset"),
        ],
    )
    async def test_transport_errors_are_failures(
        self, settings: Settings, collector: respx.MockRouter, error: Exception
    ) -> None:
        collector.post(settings.events_url).mock(side_effect=error)
        dispatcher, _ = _dispatcher(settings)

        async with dispatcher.session():
            assert await dispatcher.send_batch(_batch(1)) is False
        assert dispatcher.stats.delivery_failures == 1

    @pytest.mark.asyncio
    async def test_send_without_session_fails(self, settings: Settings) -> None:
        dispatcher, _ = _dispatcher(settings)
        assert await dispatcher.send_batch(_batch(1)) is False


class TestRun:
    @pytest.mark.asyncio
    async def test_failed_batch_is_retried_on_final_pass(
        self, make_settings, collector: respx.MockRouter
    ) -> None:
        settings = make_settings(http_timeout_seconds=10, shutdown_http_timeout_seconds=2)
        route = collector.post(settings.events_url).mock(
            side_effect=[httpx.Response(500, text="busy"), httpx.Response(200)]
        )
        dispatcher, batches = _dispatcher(settings)

        await batches.put(_batch(1))
        await batches.put(None)
        await asyncio.wait_for(dispatcher.run(), timeout=5)

        assert route.call_count == 2
        assert route.calls[0].request.content == route.calls[1].request.content
        assert route.calls[0].request.extensions["timeout"]["read"] == 10
        assert route.calls[1].request.extensions["timeout"]["read"] == 2
        assert len(dispatcher.backlog) == 0
        assert dispatcher.stats.batches_delivered == 1
        assert dispatcher.stats.delivery_failures == 1

    @pytest.mark.asyncio
    async def test_new_batch_triggers_retry_of_older_ones_first(
        self, settings: Settings, collector: respx.MockRouter
    ) -> None:
        responses = iter([httpx.Response(503), httpx.Response(200), httpx.Response(200)])
        route = collector.post(settings.events_url).mock(side_effect=lambda request: next(responses))
        dispatcher, batches = _dispatcher(settings)

        task = asyncio.create_task(dispatcher.run())
        await batches.put(_batch(1))
        await asyncio.sleep(0.05)
        assert len(dispatcher.backlog) == 1

        await batches.put(_batch(2))
        await batches.put(None)
        await asyncio.wait_for(task, timeout=5)

        sent = [call.request.content for call in route.calls]
        assert sent == [b'[{"n":1}]', b'[{"n":1}]', b'[{"n":2}]']
        assert len(dispatcher.backlog) == 0

    @pytest.mark.asyncio
    async def test_saturated_backlog_drops_new_batches(
        self, settings: Settings, collector: respx.MockRouter
    ) -> None:
        route = collector.post(settings.events_url).mock(return_value=httpx.Response(500))
        dispatcher, batches = _dispatcher(settings, capacity=1)

        task = asyncio.create_task(dispatcher.run())
        for n in range(3):
            await batches.put(_batch(n))
            await asyncio.sleep(0.02)
        await batches.put(None)
        await asyncio.wait_for(task, timeout=5)

        assert len(dispatcher.backlog) == 1
        assert dispatcher.stats.batches_dropped == 2
        assert {call.request.content for call in route.calls} == {b'[{"n":0}]'}

    @pytest.mark.asyncio
    async def test_unencodable_insert_key_fails_delivery_without_stopping_loop(
        self, make_settings, collector: respx.MockRouter
    ) -> None:
        settings = make_settings(insert_key="clé-secrète")
        route = collector.post(settings.events_url).mock(return_value=httpx.Response(200))
        dispatcher, batches = _dispatcher(settings)

        await batches.put(_batch(1))
        await batches.put(None)
        await asyncio.wait_for(dispatcher.run(), timeout=5)

        assert route.call_count == 0
        assert len(dispatcher.backlog) == 1
        assert dispatcher.stats.delivery_failures == 2
        assert dispatcher.stats.batches_delivered == 0
