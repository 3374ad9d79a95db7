"""myStrom data models and wire constants."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


# UDP port the devices broadcast their discovery datagrams on
DISCOVERY_PORT = 7979

# Discovery datagram: 6 bytes MAC, 1 byte device type code, 1 reserved byte
DISCOVERY_MESSAGE_SIZE = 8

# Device type code (byte 6 of the discovery datagram) -> device type tag
DEVICE_TYPE_CODES = {
    101: "WSW",
    102: "WRB",
    103: "WBP",
    104: "WBS",
    105: "WRS",
    106: "WS2",
    107: "WSE",
}

DEVICE_TYPES = list(DEVICE_TYPE_CODES.values())

# Type reported for statically configured devices without an explicit type
DEFAULT_STATIC_TYPE = "WS2"


class DiscoverySighting(BaseModel):
    """A single sighting of a device, emitted by a discovery source."""

    id: str
    ip: str
    type: Optional[str] = None
    timestamp: float
    name: Optional[str] = None

    model_config = {"frozen": True}


class TrackedDevice(BaseModel):
    """Liveness record kept by the reachability tracker for one device id."""

    id: str
    ip: str
    type: Optional[str] = None
    name: Optional[str] = None
    last_activity: float
    reachable: bool = True

    @classmethod
    def from_sighting(cls, sighting: DiscoverySighting) -> "TrackedDevice":
        return cls(
            id=sighting.id,
            ip=sighting.ip,
            type=sighting.type,
            name=sighting.name,
            last_activity=sighting.timestamp,
        )

    def refresh(self, sighting: DiscoverySighting) -> None:
        """Apply a newer sighting of the same device."""
        self.ip = sighting.ip
        self.type = sighting.type
        if sighting.name:
            self.name = sighting.name
        self.last_activity = sighting.timestamp


class SwitchReport(BaseModel):
    """
    State report of a switch, as returned by ``GET /report``.

    Only ``relay`` is required. Firmware variants without power metering
    leave out ``power``, and a value that is not a number is treated the
    same way. Additional fields are kept as-is.
    """

    relay: bool
    power: Optional[float] = Field(None, description="Current consumption in watts")

    model_config = {"extra": "allow"}

    @field_validator("power", mode="before")
    @classmethod
    def _unreadable_power_is_missing(cls, value):
        if isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @property
    def power_consumption(self) -> Optional[str]:
        return format_power(self.power)


def format_power(power: Optional[float]) -> Optional[str]:
    """Render a wattage with one decimal place, zero as ``"0"``."""
    if power is None:
        return None
    if power == 0:
        return "0"
    return f"{power:.1f}"
