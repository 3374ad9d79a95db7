"""Device types and enumerations."""

from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class DeviceType(str, Enum):
    """Device type enumeration."""

    SWITCH = "switch"


class DeviceCapability(str, Enum):
    """Device capability enumeration."""

    # Power
    ON_OFF = "on_off"
    TOGGLE = "toggle"

    # Energy
    POWER_MONITORING = "power_monitoring"


class DeviceState(BaseModel):
    """Device state model."""

    online: bool = True
    last_seen: Optional[float] = None

    # Power
    on: Optional[bool] = None

    # Energy
    power: Optional[float] = None  # Watts
    power_consumption: Optional[str] = None  # Display value, one decimal

    # Custom attributes
    custom: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "allow"}

    def model_dump(self, **kwargs):
        """Override model_dump to exclude None values by default."""
        kwargs.setdefault("exclude_none", True)
        return super().model_dump(**kwargs)


class DeviceInfo(BaseModel):
    """Device information model."""

    id: str
    name: str
    type: DeviceType
    capabilities: list[DeviceCapability]
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    address: Optional[str] = None
    plugin_id: str
    room: Optional[str] = None

    model_config = {"use_enum_values": True}


class DeviceCommand(BaseModel):
    """Device command model."""

    command: str
    params: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "allow"}
