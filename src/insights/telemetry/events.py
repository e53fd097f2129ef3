"""Telemetry events recorded by the host application."""
from __future__ import annotations

import socket
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping


@dataclass(slots=True)
class Event:
    """A flat set of named values describing one occurrence."""

    values: Dict[str, Any] = field(default_factory=dict)

    def set(self, name: str, value: Any) -> None:
        self.values[name] = value

    def update(self, values: Mapping[str, Any]) -> None:
        self.values.update(values)

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self.values[name]

    def __contains__(self, name: object) -> bool:
        return name in self.values

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)


def local_hostname() -> str:
    try:
        return socket.gethostname() or "<unknown>"
    except OSError:
        return "<unknown>"


class EventFactory:
    """Creates events carrying the fields the collector requires."""

    def __init__(self, *, account_id: int, app_id: int = 0, event_type: str = "Transaction", host: str | None = None):
        self.account_id = account_id
        self.app_id = app_id
        self.event_type = event_type
        self.host = host if host is not None else local_hostname()

    def new_event(self) -> Event:
        event = Event()
        event.set("accountId", self.account_id)
        if self.app_id:
            event.set("appId", self.app_id)
        event.set("eventType", self.event_type)
        event.set("timestamp", int(time.time()))
        event.set("host", self.host)
        return event
