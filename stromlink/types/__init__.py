"""Type definitions for StromLink."""

from .devices import DeviceType, DeviceCapability, DeviceState, DeviceInfo, DeviceCommand

__all__ = ["DeviceType", "DeviceCapability", "DeviceState", "DeviceInfo", "DeviceCommand"]
