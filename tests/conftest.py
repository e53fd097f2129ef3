"""Shared fixtures for the insights test suite."""

from __future__ import annotations

from typing import Any, Callable, Iterator, List

import pytest
import respx

from insights.core.config import Settings
from insights.telemetry.events import Event, EventFactory


def build_settings(**overrides: Any) -> Settings:
    """Settings that ignore the environment and any .env file."""
    values: dict[str, Any] = {
        "account_id": 42,
        "insert_key": "test-insert-key",
        "collector_host": "collector.test",
        "send_interval_seconds": 60.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    return build_settings


@pytest.fixture
def settings() -> Settings:
    return build_settings()


@pytest.fixture
def collector() -> Iterator[respx.MockRouter]:
    """Mocked collector endpoint; every outbound request must match a route."""
    with respx.mock(assert_all_called=False) as mock:
        yield mock


class RecordingConnection:
    """Stands in for a Connection in middleware tests and keeps registered events."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.running = True
        self.events: List[Event] = []
        self._factory = EventFactory(account_id=settings.account_id, host="test-host")

    def new_event(self) -> Event:
        return self._factory.new_event()

    async def register_event(self, event: Event) -> None:
        self.events.append(event)
