"""Request instrumentation for ASGI applications."""
from __future__ import annotations

from .flatten import flatten
from .middleware import InsightsMiddleware

__all__ = ["InsightsMiddleware", "flatten"]
