"""Batched, retrying delivery of telemetry events to an HTTP collector."""
from __future__ import annotations

from .core.config import Settings, get_settings
from .pipeline.base import BacklogSaturationError, DeliveryError, InsightsError, SerializationError
from .pipeline.connection import Connection
from .telemetry.events import Event

__all__ = [
    "BacklogSaturationError",
    "Connection",
    "DeliveryError",
    "Event",
    "InsightsError",
    "SerializationError",
    "Settings",
    "get_settings",
]
