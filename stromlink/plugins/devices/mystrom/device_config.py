"""Static myStrom device configuration and display-name mapping."""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml
from pydantic import BaseModel, field_validator

from .models import DEFAULT_STATIC_TYPE


logger = logging.getLogger(__name__)


class DeviceEntry(BaseModel):
    """A manually configured device."""

    id: str
    name: Optional[str] = None
    type: str = DEFAULT_STATIC_TYPE
    host: Optional[str] = None

    @field_validator("type")
    @classmethod
    def _legacy_switch_type(cls, value: str) -> str:
        # Older configuration files use the generic "switch" type
        return DEFAULT_STATIC_TYPE if value == "switch" else value


class DeviceConfiguration:
    """
    Configured myStrom devices, keyed by device id.

    Entries with a ``host`` are announced by the static discovery source.
    Entries without one only provide display names for devices found by
    UDP discovery.

    Example file::

        devices:
          - id: 30aea4001122
            name: Office
            host: 192.168.1.180
          - id: 30aea4001144
            name: TV
    """

    def __init__(
        self,
        entries: Iterable[Union[DeviceEntry, Dict[str, Any]]] = (),
        file_path: Optional[Union[str, Path]] = None,
    ):
        self.file_path = Path(file_path) if file_path else None
        self._inline = [self._to_entry(entry) for entry in entries]
        self._file_entries: List[DeviceEntry] = []
        self._file_mtime: Optional[float] = None
        self._devices: Dict[str, DeviceEntry] = {}

        if self.file_path:
            self._load_file()
        self._rebuild()

    @staticmethod
    def _to_entry(entry: Union[DeviceEntry, Dict[str, Any]]) -> DeviceEntry:
        if isinstance(entry, DeviceEntry):
            return entry
        return DeviceEntry.model_validate(entry)

    def _load_file(self) -> None:
        """Read device entries from ``file_path`` (YAML or JSON)."""
        with open(self.file_path) as f:
            raw = yaml.safe_load(f) or {}

        self._file_mtime = self.file_path.stat().st_mtime

        devices = raw.get("devices")
        if devices is None:
            devices = (raw.get("mystrom") or {}).get("devices", [])

        if not isinstance(devices, list):
            raise ValueError(f"Device list in {self.file_path} must be a list")

        self._file_entries = [self._to_entry(entry) for entry in devices]
        logger.info(f"Loaded {len(self._file_entries)} myStrom devices from {self.file_path}")

    def _rebuild(self) -> None:
        # Inline entries take precedence over file entries with the same id
        devices = {entry.id: entry for entry in self._file_entries}
        devices.update({entry.id: entry for entry in self._inline})
        self._devices = devices

    def reload_if_changed(self) -> bool:
        """
        Reload the device file if it was modified since the last read.

        Returns:
            True if the configuration was reloaded
        """
        if not self.file_path:
            return False

        try:
            mtime = self.file_path.stat().st_mtime
        except OSError as e:
            logger.warning(f"Cannot access device configuration {self.file_path}: {e}")
            return False

        if mtime == self._file_mtime:
            return False

        logger.info("Reloading device configuration")
        try:
            self._load_file()
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error(f"Failed to reload device configuration: {e}")
            self._file_mtime = mtime
            return False

        self._rebuild()
        return True

    def get(self, device_id: str) -> Optional[DeviceEntry]:
        return self._devices.get(device_id)

    def get_all(self) -> List[DeviceEntry]:
        return list(self._devices.values())

    def get_static_devices(self) -> List[DeviceEntry]:
        """All entries with a network address."""
        return [entry for entry in self._devices.values() if entry.host]


class DeviceNameMapper:
    """Maps a device id to a descriptive name using the device configuration."""

    def __init__(self, configuration: DeviceConfiguration):
        self.configuration = configuration

    def get_name(self, device_id: str, device_type: Optional[str] = None, name: Optional[str] = None) -> str:
        """
        Resolve the display name of a device.

        A name reported by discovery wins, then the configured name, then
        ``"<type> <id>"``.
        """
        if name:
            return name

        entry = self.configuration.get(device_id)
        if entry and entry.name:
            return entry.name

        return f"{device_type or 'myStrom'} {device_id}"
