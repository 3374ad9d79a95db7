"""Cached, rate-limited access to the state of discovered myStrom switches."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .cache import CacheEntry
from .client import MyStromSwitchClient
from .events import DiscoveryListener
from .exceptions import InvalidResponseError, MyStromError, NotReachableError
from .models import DiscoverySighting, SwitchReport, TrackedDevice


logger = logging.getLogger(__name__)

# Notification attributes sent for polled devices
POWER_STATE = "power_state"
POWER_CONSUMPTION = "power_consumption"

ClientFactory = Callable[[TrackedDevice], MyStromSwitchClient]
Notifier = Callable[[str, str, Any], Awaitable[None]]


def state_notifications(device_id: str, report: SwitchReport) -> List[Tuple[str, str, Any]]:
    """
    Build the (device id, attribute, value) notifications for a report.

    The on/off state is always sent. The consumption is left out when the
    firmware doesn't report it.
    """
    notifications = [(device_id, POWER_STATE, report.relay)]
    if report.power_consumption is not None:
        notifications.append((device_id, POWER_CONSUMPTION, report.power_consumption))
    return notifications


class ServiceDevice:
    """A discovered switch with its client, read cache and usage timestamp."""

    def __init__(self, device: TrackedDevice, client: MyStromSwitchClient, cache: CacheEntry):
        self.id = device.id
        self.device = device
        self.client = client
        self.cache = cache
        self.reachable = device.reachable
        # Time of the last read or write requested from outside, polls excluded
        self.last_use_date: Optional[float] = None


class MyStromService(DiscoveryListener):
    """
    Owns all discovered switches and serves their state.

    Devices are added when the reachability tracker discovers them and are
    only removed explicitly. Reads go through a per-device ``CacheEntry``;
    writes invalidate it. ``poll_sweep`` refreshes devices which were used
    within the last ``active_duration`` seconds.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        cache_ttl: float = 2.0,
        active_duration: float = 60.0,
        max_concurrent_polls: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        self.client_factory = client_factory
        self.cache_ttl = cache_ttl
        self.active_duration = active_duration
        self.max_concurrent_polls = max_concurrent_polls
        self._clock = clock
        self._devices: Dict[str, ServiceDevice] = {}

    # Discovery events

    def on_discovered(self, device: TrackedDevice) -> None:
        logger.info(f"Discovered myStrom device {device.type}: MAC={device.id}, IP={device.ip}")

        existing = self._devices.get(device.id)
        if existing is None:
            self._devices[device.id] = self._create_device(device)
            return

        # Rediscovered after the tracker was cleared
        if existing.device.ip != device.ip:
            existing.client = self.client_factory(device)
            existing.cache.invalidate()
        existing.device = device
        existing.reachable = True

    def on_filtered(self, sighting: DiscoverySighting) -> None:
        logger.info(f"Ignoring filtered myStrom device {sighting.type}: MAC={sighting.id}, IP={sighting.ip}")

    def on_reachable(self, device: TrackedDevice) -> None:
        service_device = self._devices.get(device.id)
        if service_device:
            service_device.reachable = True
            logger.info(f"Device {device.id} reachable again")

    def on_unreachable(self, device: TrackedDevice) -> None:
        service_device = self._devices.get(device.id)
        if service_device:
            service_device.reachable = False
            logger.info(f"Device {device.id} no longer reachable")

    def _create_device(self, device: TrackedDevice) -> ServiceDevice:
        return ServiceDevice(
            device,
            self.client_factory(device),
            CacheEntry(self.cache_ttl, self._clock),
        )

    # Device map

    def get_device(self, device_id: str) -> Optional[ServiceDevice]:
        return self._devices.get(device_id)

    def get_all_devices(self) -> List[ServiceDevice]:
        return list(self._devices.values())

    def remove_device(self, device_id: str) -> bool:
        """Remove a device. Returns False if it was not known."""
        return self._devices.pop(device_id, None) is not None

    def remove_all(self) -> None:
        self._devices.clear()

    def _get_reachable(self, device_id: str) -> ServiceDevice:
        device = self._devices.get(device_id)
        if device is None or not device.reachable:
            raise NotReachableError(device_id)
        return device

    # Reads

    async def get_state(self, device_id: str, touch_usage: bool = True) -> SwitchReport:
        """
        Get the state report of a device.

        Args:
            device_id: Device identifier
            touch_usage: Record the read as device usage (False for polling)

        Raises:
            NotReachableError: Device unknown or unreachable
            InvalidResponseError: Report without relay state
            TransportError: Device could not be reached over HTTP
        """
        device = self._get_reachable(device_id)

        report = await device.cache.get_value(lambda: self._fetch_report(device))

        if touch_usage:
            device.last_use_date = self._clock()

        return report

    async def _fetch_report(self, device: ServiceDevice) -> SwitchReport:
        raw = await device.client.get_report()

        try:
            return SwitchReport.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Invalid state report from {device.id}: {raw}")
            raise InvalidResponseError(device.id, f"missing or invalid relay state ({e.error_count()} errors)")

    async def get_power_state(self, device_id: str) -> bool:
        report = await self.get_state(device_id)
        return report.relay

    async def get_power_consumption(self, device_id: str) -> Optional[str]:
        """Current consumption in watts with one decimal, None if not reported."""
        report = await self.get_state(device_id)
        return report.power_consumption

    # Writes

    async def set_power_state(self, device_id: str, on: bool) -> None:
        device = self._get_reachable(device_id)
        await device.client.set_power_state(on)
        self._after_write(device)

    async def toggle(self, device_id: str) -> None:
        device = self._get_reachable(device_id)
        await device.client.toggle()
        self._after_write(device)

    def _after_write(self, device: ServiceDevice) -> None:
        device.last_use_date = self._clock()
        device.cache.invalidate()

    # Polling

    def get_active_devices(self) -> List[ServiceDevice]:
        """Reachable devices used within the last ``active_duration`` seconds."""
        now = self._clock()
        return [
            device
            for device in self._devices.values()
            if device.reachable
            and device.last_use_date is not None
            and now - device.last_use_date <= self.active_duration
        ]

    async def poll_sweep(self, notifier: Optional[Notifier] = None) -> Dict[str, SwitchReport]:
        """
        Refresh the state of all active devices.

        Poll reads do not extend the usage window. Failures are logged per
        device and don't affect the other devices.

        Returns:
            Reports of the successfully polled devices
        """
        semaphore = asyncio.Semaphore(self.max_concurrent_polls)

        async def poll(device: ServiceDevice) -> Optional[SwitchReport]:
            async with semaphore:
                try:
                    report = await self.get_state(device.id, touch_usage=False)
                except MyStromError as e:
                    logger.warning(f"Polling failed: {e}")
                    return None
                except Exception as e:
                    logger.error(f"Unexpected error polling {device.id}: {e}", exc_info=True)
                    return None

            if notifier:
                for device_id, attribute, value in state_notifications(device.id, report):
                    try:
                        await notifier(device_id, attribute, value)
                    except Exception as e:
                        logger.error(f"Notification failed for {device_id}: {e}", exc_info=True)

            return report

        devices = self.get_active_devices()
        logger.debug(f"Polling {len(devices)} myStrom devices...")

        reports = await asyncio.gather(*(poll(device) for device in devices))

        return {
            device.id: report
            for device, report in zip(devices, reports)
            if report is not None
        }
