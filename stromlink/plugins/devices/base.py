"""Base device plugin implementation."""

import asyncio
import logging
from abc import abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from stromlink.core.plugin import PluginBase, PluginMetadata
from stromlink.core.rabbitmq_bus import RabbitMQEventBus
from stromlink.types.devices import DeviceCommand, DeviceInfo, DeviceState


class Device:
    """
    Base device class.

    Each device wraps a physical device and provides:
    - State management with change publishing
    - Command execution
    - Availability reporting
    """

    def __init__(
        self,
        device_info: DeviceInfo,
        event_bus: RabbitMQEventBus,
    ):
        self.info = device_info
        self.event_bus = event_bus
        self.state = DeviceState()

        self._logger = logging.getLogger(f"device.{device_info.id}")

    @abstractmethod
    async def execute_command(self, command: str, params: Optional[Dict] = None) -> Optional[Dict]:
        """
        Execute a command on the device.

        Args:
            command: Command name (e.g., 'turn_on', 'toggle')
            params: Command parameters

        Returns:
            Optional dict with command-specific data

        Raises:
            ValueError: Unknown command
        """

    @abstractmethod
    async def refresh_state(self) -> DeviceState:
        """Read the state from the physical device and publish changes."""

    async def update_state(self, new_state: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a partial state update and publish the attributes that changed.

        Returns:
            The changed attributes (empty if nothing changed)
        """
        changed = {
            key: value
            for key, value in new_state.items()
            if hasattr(self.state, key) and getattr(self.state, key) != value
        }

        for key, value in changed.items():
            setattr(self.state, key, value)

        if changed:
            await self.event_bus.publish_device_state(self.info.id, changed)

        return changed

    async def set_available(self, available: bool) -> None:
        """Update and publish device availability."""
        self.state.online = available
        await self.event_bus.publish_device_available(self.info.id, available)


class BaseDevicePlugin(PluginBase):
    """
    Base class for device plugins.

    Device plugins are responsible for:
    - Discovering devices
    - Managing device lifecycle
    - Handling device commands from the event bus
    - Publishing device state updates
    """

    def __init__(
        self,
        plugin_id: str,
        metadata: PluginMetadata,
        config: Dict,
        event_bus: RabbitMQEventBus,
    ):
        super().__init__(plugin_id, metadata, config, event_bus)

        self.devices: Dict[str, Device] = {}

    @abstractmethod
    async def discover_devices(self) -> List[Device]:
        """Return devices which are known to the plugin but not added yet."""

    async def add_device(self, device: Device) -> None:
        """Register a device, announce it and listen for its commands."""
        self.devices[device.info.id] = device

        await self.event_bus.publish_device_discovery(
            device.info.id,
            device.info.model_dump(),
            self.plugin_id,
        )
        await device.set_available(True)

        device_id = device.info.id

        async def on_command(topic: str, payload: Dict) -> None:
            await self._handle_device_command(device_id, payload)

        await self.event_bus.subscribe_device_commands(device_id, on_command)

        self._logger.info(f"Added device: {device.info.name} ({device_id})")

    async def remove_device(self, device_id: str) -> None:
        """Unregister a device."""
        device = self.devices.pop(device_id, None)
        if not device:
            return

        await device.set_available(False)
        await self.event_bus.unsubscribe_device_commands(device_id)
        await self.event_bus.publish_device_removed(device_id, self.plugin_id)

        self._logger.info(f"Removed device: {device_id}")

    def get_device(self, device_id: str) -> Optional[Device]:
        return self.devices.get(device_id)

    async def _handle_device_command(self, device_id: str, payload: Dict) -> None:
        """Execute a command received from the event bus."""
        device = self.devices.get(device_id)
        if not device:
            self._logger.warning(f"Command for unknown device: {device_id}")
            return

        try:
            command = DeviceCommand.model_validate(payload)
        except ValidationError:
            self._logger.warning(f"Invalid command payload: {payload}")
            return

        self._logger.info(f"Executing command '{command.command}' on device {device_id}")

        try:
            await device.execute_command(command.command, command.params)

        except Exception as e:
            self._logger.error(f"Error executing command on device {device_id}: {e}")
            await self.event_bus.publish_device_error(device_id, str(e), command.command)

    async def start(self) -> None:
        """Add the devices known at start time."""
        discovered_devices = await self.discover_devices()

        for device in discovered_devices:
            await self.add_device(device)

        self._logger.info(f"Added {len(discovered_devices)} devices on start")

    async def stop(self) -> None:
        """Mark all devices unavailable and forget them."""
        results = await asyncio.gather(
            *(device.set_available(False) for device in self.devices.values()),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                self._logger.warning(f"Could not publish availability: {result}")

        self.devices.clear()
