"""myStrom WiFi switch plugin."""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from stromlink.core.plugin import PluginMetadata, PluginType
from stromlink.core.rabbitmq_bus import RabbitMQEventBus
from stromlink.plugins.devices.base import BaseDevicePlugin, Device

from .aggregator import DiscoveryAggregator
from .client import MyStromSwitchClient
from .controller import ReachabilityTracker
from .device_config import DeviceConfiguration, DeviceNameMapper
from .devices import MyStromSwitch
from .discovery import StaticDiscovery, UdpDiscovery
from .events import DiscoveryListener
from .models import DiscoverySighting, TrackedDevice
from .service import MyStromService
from .settings import MyStromSettings


class MyStromPlugin(BaseDevicePlugin, DiscoveryListener):
    """
    myStrom WiFi switch plugin.

    Supports:
    - Auto discovery by UDP broadcast on the local subnet
    - Statically configured devices (e.g. on other subnets)
    - Power on / off / toggle and power consumption
    - Polling of recently used devices
    """

    def __init__(
        self,
        plugin_id: str,
        config: Dict,
        event_bus: RabbitMQEventBus,
        clock: Callable[[], float] = time.time,
    ):
        metadata = PluginMetadata(
            name="myStrom",
            version="0.1.0",
            plugin_type=PluginType.DEVICE,
            description="myStrom WiFi switch integration",
            capabilities=["discovery", "switches", "power_monitoring"],
        )

        super().__init__(plugin_id, metadata, config, event_bus)

        self._clock = clock
        self.settings: Optional[MyStromSettings] = None
        self.device_config: Optional[DeviceConfiguration] = None
        self.name_mapper: Optional[DeviceNameMapper] = None
        self.tracker: Optional[ReachabilityTracker] = None
        self.service: Optional[MyStromService] = None

        self._session: Optional[aiohttp.ClientSession] = None
        self._poll_task: Optional[asyncio.Task] = None

    async def initialize(self) -> None:
        """Validate the configuration and build the discovery pipeline."""
        self.settings = MyStromSettings.model_validate(self.config)
        settings = self.settings

        self.device_config = DeviceConfiguration(settings.devices, settings.devices_file)
        self.name_mapper = DeviceNameMapper(self.device_config)

        discovery = DiscoveryAggregator()
        if settings.discovery_modes.local:
            discovery.add_source(
                UdpDiscovery(settings.listen_address, settings.discovery_port, clock=self._clock)
            )
        if settings.discovery_modes.static:
            discovery.add_source(
                StaticDiscovery(self.device_config, settings.static_interval, clock=self._clock)
            )

        self.tracker = ReachabilityTracker(
            discovery,
            reachable_timeout=settings.reachable_timeout,
            device_types=settings.device_types,
            clock=self._clock,
        )
        self.service = MyStromService(
            self._create_client,
            cache_ttl=settings.cache_ttl,
            active_duration=settings.poll_duration,
            max_concurrent_polls=settings.max_concurrent_polls,
            clock=self._clock,
        )

        # The service must know a device before the hub device is created
        self.tracker.add_listener(self.service)
        self.tracker.add_listener(self)

        self._logger.info(
            f"myStrom plugin initialized (local discovery: {settings.discovery_modes.local}, "
            f"static devices: {settings.discovery_modes.static})"
        )

    def _create_client(self, device: TrackedDevice) -> MyStromSwitchClient:
        if self._session is None:
            raise RuntimeError("HTTP session not started")

        return MyStromSwitchClient(
            device.id,
            device.ip,
            self.name_mapper.get_name(device.id, device.type, device.name),
            self._session,
            timeout=self.settings.request_timeout,
        )

    async def discover_devices(self) -> List[Device]:
        """Hub devices for all switches the service knows but the hub doesn't."""
        return [
            self._create_device(service_device.device)
            for service_device in self.service.get_all_devices()
            if service_device.id not in self.devices
        ]

    def _create_device(self, tracked: TrackedDevice) -> MyStromSwitch:
        return MyStromSwitch(
            tracked,
            self.name_mapper.get_name(tracked.id, tracked.type, tracked.name),
            self.service,
            self.plugin_id,
            self.event_bus,
        )

    async def start(self) -> None:
        """Start discovery and polling."""
        self._session = aiohttp.ClientSession()

        await super().start()
        await self.tracker.start_discovery()

        if self.settings.poll_interval > 0:
            self._poll_task = asyncio.create_task(self._poll_loop())
            self._logger.info(f"Started polling every {self.settings.poll_interval}s")

    async def stop(self) -> None:
        """Stop discovery, polling and the HTTP session."""
        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        if self.tracker:
            await self.tracker.close()

        await self._cancel_background_tasks()

        try:
            await super().stop()
        finally:
            if self._session:
                await self._session.close()
                self._session = None

    async def remove_device(self, device_id: str) -> None:
        """Remove a switch from the hub and the state service."""
        await super().remove_device(device_id)
        self.service.remove_device(device_id)

    def rediscover(self) -> None:
        """Forget all tracked devices so the next sightings count as discoveries."""
        self._logger.info("Clearing discovered myStrom devices")
        self.tracker.clear()

    async def health_check(self) -> Dict[str, Any]:
        health = await super().health_check()

        if self.tracker:
            tracked = self.tracker.get_all()
            health.update({
                "discovery_running": self.tracker.discovery.running,
                "tracked_devices": len(tracked),
                "reachable_devices": sum(1 for device in tracked if device.reachable),
            })

        return health

    # Discovery events

    def on_discovered(self, device: TrackedDevice) -> None:
        existing = self.devices.get(device.id)
        if existing:
            if existing.info.address != device.ip:
                self._logger.info(f"Device {device.id} moved to {device.ip}")
                existing.info.address = device.ip
                self._spawn(
                    self.event_bus.publish_device_discovery(device.id, existing.info.model_dump(), self.plugin_id)
                )
            self._spawn(existing.set_available(True))
            return

        switch = self._create_device(device)
        self.devices[device.id] = switch
        self._spawn(self.add_device(switch))

    def on_reachable(self, device: TrackedDevice) -> None:
        switch = self.devices.get(device.id)
        if switch:
            self._logger.info(f"Device {device.id} reachable again")
            self._spawn(switch.set_available(True))

    def on_unreachable(self, device: TrackedDevice) -> None:
        switch = self.devices.get(device.id)
        if switch:
            self._logger.info(f"Device {device.id} no longer reachable")
            self._spawn(switch.set_available(False))

    def on_filtered(self, sighting: DiscoverySighting) -> None:
        self._spawn(
            self.event_bus.publish_discovery_event(
                self.plugin_id,
                "filtered",
                {"id": sighting.id, "type": sighting.type, "ip": sighting.ip},
            )
        )

    def on_started(self) -> None:
        self._logger.info("Discovery service started")
        self._spawn(self.event_bus.publish_discovery_event(self.plugin_id, "started"))

    def on_stopped(self) -> None:
        self._logger.info("Discovery service stopped")
        self._spawn(self.event_bus.publish_discovery_event(self.plugin_id, "stopped"))

    def on_error(self, error: Exception) -> None:
        self._logger.error(f"Discovery error: {error}")
        self._spawn(
            self.event_bus.publish_discovery_event(self.plugin_id, "error", {"error": str(error)})
        )

    # Polling

    async def _notify_state(self, device_id: str, attribute: str, value: Any) -> None:
        switch = self.devices.get(device_id)
        if isinstance(switch, MyStromSwitch):
            await switch.apply_notification(attribute, value)

    async def _poll_loop(self) -> None:
        """Poll recently used devices every ``poll_interval`` seconds."""
        while True:
            try:
                await asyncio.sleep(self.settings.poll_interval)
                await self.service.poll_sweep(self._notify_state)

            except asyncio.CancelledError:
                self._logger.debug("Poll loop cancelled")
                break
            except Exception as e:
                self._logger.error(f"Unexpected error in poll loop: {e}", exc_info=True)
