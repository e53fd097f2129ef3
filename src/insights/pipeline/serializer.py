"""Event serialization."""
from __future__ import annotations

import json
from typing import Any, Mapping, Optional, Union

from ..telemetry.events import Event
from .base import Record, SerializationError


def serialize(event: Union[Event, Mapping[str, Any]], *, max_bytes: Optional[int] = None) -> Record:
    """Encode one event as a compact UTF-8 JSON object.

    Raises :class:`SerializationError` when a value cannot be encoded, or when the
    record alone is larger than ``max_bytes`` and so could never be delivered.
    """

    values = event.values if isinstance(event, Event) else event
    if not isinstance(values, Mapping):
        raise SerializationError(f"event must be a mapping, got {type(values).__name__}")
    for key in values:
        if not isinstance(key, str):
            raise SerializationError(f"event field names must be text, got {key!r}")
    try:
        record = json.dumps(values, separators=(",", ":"), allow_nan=False, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"could not encode event: {exc}") from exc
    if max_bytes is not None and len(record) > max_bytes:
        raise SerializationError(f"encoded event is {len(record)} bytes, limit is {max_bytes}")
    return record
