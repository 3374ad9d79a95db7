"""
Shared fixtures for the StromLink tests.
"""
import asyncio
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest

from stromlink.core.rabbitmq_bus import RabbitMQEventBus
from stromlink.plugins.devices.mystrom.discovery import DiscoverySource
from stromlink.plugins.devices.mystrom.events import DiscoveryListener
from stromlink.plugins.devices.mystrom.models import DiscoverySighting, TrackedDevice


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingListener(DiscoveryListener):
    """Records every discovery event as (event, payload)."""

    def __init__(self):
        self.events: List[Tuple[str, Any]] = []

    def of(self, event: str) -> List[Any]:
        return [payload for name, payload in self.events if name == event]

    def on_sighting(self, sighting):
        self.events.append(("sighting", sighting))

    def on_started(self):
        self.events.append(("started", None))

    def on_stopped(self):
        self.events.append(("stopped", None))

    def on_error(self, error):
        self.events.append(("error", error))

    def on_discovered(self, device):
        self.events.append(("discovered", device))

    def on_filtered(self, sighting):
        self.events.append(("filtered", sighting))

    def on_reachable(self, device):
        self.events.append(("reachable", device))

    def on_unreachable(self, device):
        self.events.append(("unreachable", device))


class FakeSource(DiscoverySource):
    """Discovery source driven by the test."""

    def __init__(self):
        super().__init__()
        self._running = False
        self.start_calls = 0
        self.stop_calls = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self.start_calls += 1
        self._running = True
        self._notify("on_started")

    async def stop(self) -> None:
        self.stop_calls += 1
        self._running = False
        self._notify("on_stopped")

    def emit(self, sighting: DiscoverySighting) -> None:
        self._notify("on_sighting", sighting)

    def fail(self, error: Exception) -> None:
        self._notify("on_error", error)


class FakeSwitchClient:
    """Stand-in for MyStromSwitchClient counting network calls."""

    def __init__(self, device_id: str, report: Optional[Dict[str, Any]] = None, name: str = "Switch"):
        self.device_id = device_id
        self.name = name
        self.report = report if report is not None else {"relay": True, "power": 52.34}
        self.fetches = 0
        self.writes: List[Any] = []
        self.delay = 0.0
        self.fetch_error: Optional[Exception] = None
        self.write_error: Optional[Exception] = None

    async def get_report(self) -> Dict[str, Any]:
        self.fetches += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fetch_error:
            raise self.fetch_error
        return dict(self.report)

    async def set_power_state(self, on: bool) -> None:
        if self.write_error:
            raise self.write_error
        self.writes.append(on)
        self.report["relay"] = on

    async def toggle(self) -> None:
        if self.write_error:
            raise self.write_error
        self.writes.append("toggle")
        self.report["relay"] = not self.report["relay"]


def make_sighting(
    device_id: str = "30aea4001122",
    device_type: Optional[str] = "WS2",
    timestamp: float = 1000.0,
    ip: str = "192.168.1.10",
    name: Optional[str] = None,
) -> DiscoverySighting:
    return DiscoverySighting(id=device_id, ip=ip, type=device_type, timestamp=timestamp, name=name)


def make_tracked(
    device_id: str = "30aea4001122",
    ip: str = "192.168.1.10",
    last_activity: float = 1000.0,
    device_type: str = "WS2",
) -> TrackedDevice:
    return TrackedDevice(id=device_id, ip=ip, type=device_type, last_activity=last_activity)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def event_bus():
    """Event bus mock recording publishes."""
    return AsyncMock(spec=RabbitMQEventBus)
