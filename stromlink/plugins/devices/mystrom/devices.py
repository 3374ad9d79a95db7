"""myStrom device implementations."""

from typing import Any, Dict, Optional

from stromlink.core.rabbitmq_bus import RabbitMQEventBus
from stromlink.plugins.devices.base import Device
from stromlink.types.devices import (
    DeviceCapability,
    DeviceInfo,
    DeviceState,
    DeviceType,
)

from .models import TrackedDevice
from .service import POWER_CONSUMPTION, POWER_STATE, MyStromService


class MyStromSwitch(Device):
    """myStrom WiFi switch, backed by the cached state service."""

    def __init__(
        self,
        tracked: TrackedDevice,
        name: str,
        service: MyStromService,
        plugin_id: str,
        event_bus: RabbitMQEventBus,
    ):
        device_info = DeviceInfo(
            id=tracked.id,
            name=name,
            type=DeviceType.SWITCH,
            capabilities=[
                DeviceCapability.ON_OFF,
                DeviceCapability.TOGGLE,
                DeviceCapability.POWER_MONITORING,
            ],
            manufacturer="myStrom",
            model=tracked.type,
            address=tracked.ip,
            plugin_id=plugin_id,
        )

        super().__init__(device_info, event_bus)

        self.service = service

    async def execute_command(self, command: str, params: Optional[Dict] = None) -> None:
        """Execute a command on the switch."""
        if command == "turn_on":
            await self.service.set_power_state(self.info.id, True)

        elif command == "turn_off":
            await self.service.set_power_state(self.info.id, False)

        elif command == "toggle":
            await self.service.toggle(self.info.id)

        elif command == "refresh":
            pass

        else:
            raise ValueError(f"Unknown command: {command}")

        # The write invalidated the cache, so this reads the new state
        await self.refresh_state()

    async def refresh_state(self) -> DeviceState:
        report = await self.service.get_state(self.info.id)

        await self.update_state({
            "on": report.relay,
            "power": report.power,
            "power_consumption": report.power_consumption,
        })

        return self.state

    async def apply_notification(self, attribute: str, value: Any) -> None:
        """Apply one polled attribute."""
        if attribute == POWER_STATE:
            await self.update_state({"on": value})
        elif attribute == POWER_CONSUMPTION:
            await self.update_state({"power_consumption": value})
