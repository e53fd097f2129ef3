"""Request instrumentation that records one event per handled request."""
from __future__ import annotations

import json
import logging
import time
from typing import Callable, Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import ClientDisconnect, Request
from starlette.responses import Response
from starlette.types import ASGIApp

from ..pipeline.base import InsightsError
from ..pipeline.connection import Connection
from ..telemetry.events import Event
from .flatten import FlattenStyle, flatten

logger = logging.getLogger("insights.middleware")

Mutator = Callable[[Request, Event], None]


class InsightsMiddleware(BaseHTTPMiddleware):
    """Times each request and registers an event with its url, method, parameters and status.

    Query parameters are recorded as ``p:<name>`` (first value only). POST bodies
    are recorded whole under ``body`` or, with ``flatten_posts``, one ``p:``
    field per key of the JSON object.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        connection: Connection,
        mutator: Optional[Mutator] = None,
        query_params_to_skip: Optional[Iterable[str]] = None,
        flatten_posts: Optional[bool] = None,
        flatten_style: Optional[FlattenStyle] = None,
    ) -> None:
        super().__init__(app)
        settings = connection.settings
        self.connection = connection
        self.mutator = mutator
        skip = settings.query_params_to_skip if query_params_to_skip is None else query_params_to_skip
        self.skip_params = {name.lower() for name in skip}
        self.flatten_posts = settings.flatten_posts if flatten_posts is None else flatten_posts
        self.flatten_style: FlattenStyle = flatten_style or settings.flatten_style

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            event = await self.event_from_request(request)
        except ClientDisconnect as exc:
            logger.warning("Failed to make event from request: %r", exc)
            return await call_next(request)

        if self.mutator is not None:
            self.mutator(request, event)

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            event.set("duration", time.perf_counter() - start)
            event.set("status-code", status_code)
            await self._register(event)
        return response

    async def event_from_request(self, request: Request) -> Event:
        event = self.connection.new_event()
        event.set("url", request.url.path)
        event.set("method", request.method)

        params = request.query_params
        for key in params.keys():
            if key.lower() in self.skip_params:
                continue
            event.set(f"p:{key}", params.getlist(key)[0])

        if request.method == "POST":
            body = await request.body()
            if self.flatten_posts:
                self._set_flattened_body(event, body)
            else:
                event.set("body", body.decode("utf-8", errors="replace"))
        return event

    def _set_flattened_body(self, event: Event, body: bytes) -> None:
        try:
            nested = json.loads(body)
        except ValueError as exc:
            logger.info("Failed to parse request JSON: %s; storing body as one string", exc)
            event.set("body", body.decode("utf-8", errors="replace"))
            return
        if not isinstance(nested, dict):
            logger.info("Request JSON is not an object; storing body as one string")
            event.set("body", body.decode("utf-8", errors="replace"))
            return
        event.update(flatten(nested, "p:", self.flatten_style))

    async def _register(self, event: Event) -> None:
        if not self.connection.running:
            logger.debug("Insights connection is not running; request event discarded")
            return
        try:
            await self.connection.register_event(event)
        except InsightsError as exc:
            logger.warning("Failed to register request event: %s", exc)
