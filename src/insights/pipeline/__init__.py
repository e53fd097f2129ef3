"""Event batching and delivery pipeline."""
from __future__ import annotations

from .backlog import Backlog
from .base import Batch, PipelineStats
from .batcher import Batcher
from .connection import Connection
from .dispatcher import Dispatcher
from .serializer import serialize

__all__ = ["Backlog", "Batch", "Batcher", "Connection", "Dispatcher", "PipelineStats", "serialize"]
