"""Validated configuration of the myStrom plugin."""

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .device_config import DeviceEntry
from .models import DEVICE_TYPES, DISCOVERY_PORT


class DiscoveryModes(BaseModel):
    """Enabled discovery sources."""

    local: bool = Field(default=True, description="Listen for UDP broadcasts on the local subnet")
    static: bool = Field(default=False, description="Announce devices from the device configuration")


class MyStromSettings(BaseModel):
    """Settings of the myStrom plugin (``config`` block in plugins.yaml)."""

    discovery_modes: DiscoveryModes = Field(default_factory=DiscoveryModes)
    listen_address: str = Field(default="0.0.0.0", description="Address to bind the discovery socket to")
    discovery_port: int = Field(default=DISCOVERY_PORT, ge=0, le=65535)

    reachable_timeout: float = Field(default=30, gt=0, description="Seconds without sighting until a device is unreachable")
    device_types: List[str] = Field(default_factory=lambda: list(DEVICE_TYPES), description="Device types to integrate")
    static_interval: float = Field(default=5, gt=0, description="Announce interval of static devices in seconds")

    cache_ttl: float = Field(default=2.0, ge=0, description="Lifetime of a cached state report in seconds")
    poll_interval: float = Field(default=4, ge=0, description="Polling interval in seconds, 0 disables polling")
    poll_duration: float = Field(default=60, ge=0, description="Seconds to keep polling a device after it was used")
    request_timeout: float = Field(default=5, gt=0, description="HTTP request timeout in seconds")
    max_concurrent_polls: int = Field(default=10, ge=1)

    devices: List[DeviceEntry] = Field(default_factory=list)
    devices_file: Optional[Path] = None

    @field_validator("device_types")
    @classmethod
    def _known_device_types(cls, value: List[str]) -> List[str]:
        unknown = [device_type for device_type in value if device_type not in DEVICE_TYPES]
        if unknown:
            raise ValueError(f"Unknown myStrom device types: {', '.join(unknown)}")
        return value

    @model_validator(mode="after")
    def _any_discovery_enabled(self) -> "MyStromSettings":
        if not (self.discovery_modes.local or self.discovery_modes.static):
            raise ValueError("At least one of discovery_modes.local or discovery_modes.static must be enabled")
        return self
