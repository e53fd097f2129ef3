"""Shared types and errors for the batching pipeline."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

Record = bytes


@dataclass(slots=True, frozen=True, eq=False)
class Batch:
    """Records joined into one JSON array, ready to post in a single call."""

    body: bytes
    count: int

    @classmethod
    def from_records(cls, records: Sequence[Record]) -> "Batch":
        return cls(body=b"[" + b",".join(records) + b"]", count=len(records))

    @property
    def size(self) -> int:
        return len(self.body)


@dataclass(slots=True)
class PipelineStats:
    """Counters updated by the pipeline loops; all mutation happens on one event loop."""

    events_registered: int = 0
    batches_formed: int = 0
    batches_delivered: int = 0
    delivery_failures: int = 0
    batches_dropped: int = 0


def batch_size(record_count: int, record_bytes: int) -> int:
    """Byte length of a batch body holding ``record_count`` records of ``record_bytes`` total."""

    return record_bytes + max(record_count - 1, 0) + 2


class InsightsError(RuntimeError):
    """Base class for pipeline errors."""


class SerializationError(InsightsError):
    """Raised when an event cannot be turned into a record."""


class DeliveryError(InsightsError):
    """Raised when a batch could not be delivered to the collector."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BacklogSaturationError(InsightsError):
    """Raised when the backlog has no room for another batch."""
