"""myStrom discovery controller: device type filter and reachability tracking."""

import asyncio
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional

from .discovery import DiscoverySource
from .events import DiscoveryListener, ListenerRegistry
from .models import DEVICE_TYPES, DiscoverySighting, TrackedDevice


logger = logging.getLogger(__name__)

# Period of the reachability sweep in seconds
SWEEP_INTERVAL = 1.0


class ReachabilityTracker(DiscoveryListener, ListenerRegistry):
    """
    Turns a stream of sightings into device lifecycle events.

    - Sightings of device types outside ``device_types`` are reported with
      ``on_filtered`` and otherwise ignored.
    - The first sighting of a device id reports ``on_discovered``. Further
      sightings only refresh the record while the device is reachable.
    - A device without a sighting for more than ``reachable_timeout``
      seconds is reported ``on_unreachable`` by the sweep. Its next sighting
      reports ``on_reachable``.

    Source errors, start and stop events are passed through.
    """

    def __init__(
        self,
        discovery: DiscoverySource,
        reachable_timeout: float = 30,
        device_types: Optional[Iterable[str]] = None,
        clock: Callable[[], float] = time.time,
    ):
        ListenerRegistry.__init__(self)
        self.discovery = discovery
        self.reachable_timeout = reachable_timeout
        self.device_types = set(device_types if device_types is not None else DEVICE_TYPES)
        self._clock = clock
        self._devices: Dict[str, TrackedDevice] = {}
        self._sweep_task: Optional[asyncio.Task] = None

        discovery.add_listener(self)

    async def start_discovery(self) -> None:
        """Start the discovery source and the reachability sweep."""
        self.start_sweep()
        await self.discovery.start()

    async def stop_discovery(self) -> None:
        """Stop the discovery source. The reachability sweep keeps running."""
        await self.discovery.stop()

    def start_sweep(self) -> None:
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def close(self) -> None:
        """Stop discovery and the reachability sweep."""
        await self.stop_discovery()

        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

    # Source events

    def on_sighting(self, sighting: DiscoverySighting) -> None:
        if sighting.type not in self.device_types:
            self._notify("on_filtered", sighting)
            return

        self.handle_sighting(sighting)

    def on_error(self, error: Exception) -> None:
        logger.error(f"Discovery error: {error}")
        self._notify("on_error", error)

    def on_started(self) -> None:
        self._notify("on_started")

    def on_stopped(self) -> None:
        self._notify("on_stopped")

    # Tracking

    def handle_sighting(self, sighting: DiscoverySighting) -> None:
        """Record a sighting that passed the device type filter."""
        device = self._devices.get(sighting.id)

        if device is None:
            device = TrackedDevice.from_sighting(sighting)
            self._devices[sighting.id] = device
            self._notify("on_discovered", device.model_copy())
            return

        was_reachable = device.reachable
        device.refresh(sighting)

        if not was_reachable:
            device.reachable = True
            self._notify("on_reachable", device.model_copy())

    def sweep(self) -> List[TrackedDevice]:
        """
        Mark devices without recent sightings as unreachable.

        Each record is checked against its current ``last_activity``, so a
        sighting handled right before the check keeps the device reachable.

        Returns:
            Devices which became unreachable
        """
        now = self._clock()
        expired = []

        for device in list(self._devices.values()):
            if device.reachable and now - device.last_activity > self.reachable_timeout:
                device.reachable = False
                expired.append(device.model_copy())

        for device in expired:
            self._notify("on_unreachable", device)

        return expired

    async def _sweep_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(SWEEP_INTERVAL)
                self.sweep()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in reachability sweep: {e}", exc_info=True)

    def clear(self) -> None:
        """Forget all tracked devices, forcing a new discovery cycle."""
        self._devices.clear()

    def get(self, device_id: str) -> Optional[TrackedDevice]:
        device = self._devices.get(device_id)
        return device.model_copy() if device else None

    def get_all(self) -> List[TrackedDevice]:
        return [device.model_copy() for device in self._devices.values()]
