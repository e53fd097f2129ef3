"""FastAPI application instrumented with the insights pipeline."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from ..core.config import Settings, get_settings
from ..core.logging import setup_logging
from ..instrumentation.middleware import InsightsMiddleware, Mutator
from ..pipeline.connection import Connection

logger = logging.getLogger("insights.api")


def create_app(settings: Optional[Settings] = None, *, mutator: Optional[Mutator] = None) -> FastAPI:
    """Build an app that records every request and flushes its events on shutdown."""

    settings = settings or get_settings()
    connection = Connection(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting insights pipeline")
        await connection.start()
        try:
            yield
        finally:
            logger.info("Flushing insights pipeline")
            await connection.stop_and_flush()

    app = FastAPI(title="Insights Relay", version="1.0.0", lifespan=lifespan)
    app.state.insights = connection
    app.add_middleware(InsightsMiddleware, connection=connection, mutator=mutator)

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok" if connection.running else "stopped",
            "pending_batches": len(connection.backlog) if connection.backlog is not None else 0,
            "dropped_batches": connection.stats.batches_dropped,
        }

    return app


def main() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)
    return create_app(settings)
