"""HTTP utilities for delivering event batches."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

import httpx

from .config import Settings


def delivery_headers(settings: Settings) -> Dict[str, str]:
    return {
        "X-Insert-Key": settings.insert_key,
        "Content-Type": "application/json",
    }


@asynccontextmanager
async def get_async_client(settings: Settings) -> AsyncIterator[httpx.AsyncClient]:
    # One connection is enough: batches are posted strictly one at a time.
    # Headers are attached per request so a bad key fails a delivery, not the client.
    limits = httpx.Limits(max_connections=1, max_keepalive_connections=1)
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds, limits=limits) as client:
        yield client
