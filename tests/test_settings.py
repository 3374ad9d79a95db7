"""Tests for the myStrom plugin settings."""

import pytest
from pydantic import ValidationError

from stromlink.plugins.devices.mystrom.models import DEVICE_TYPES
from stromlink.plugins.devices.mystrom.settings import MyStromSettings


def test_defaults():
    settings = MyStromSettings()

    assert settings.discovery_modes.local
    assert not settings.discovery_modes.static
    assert settings.listen_address == "0.0.0.0"
    assert settings.discovery_port == 7979
    assert settings.reachable_timeout == 30
    assert settings.device_types == DEVICE_TYPES
    assert settings.cache_ttl == 2.0
    assert settings.poll_duration == 60
    assert settings.devices == []
    assert settings.devices_file is None


def test_from_plugin_config():
    settings = MyStromSettings.model_validate({
        "discovery_modes": {"local": False, "static": True},
        "device_types": ["WS2", "WSE"],
        "poll_interval": 0,
        "devices": [{"id": "30aea4001122", "host": "10.0.0.7"}],
        "devices_file": "config/mystrom_devices.yaml",
    })

    assert settings.discovery_modes.static
    assert settings.device_types == ["WS2", "WSE"]
    assert settings.devices[0].host == "10.0.0.7"
    assert settings.devices_file.name == "mystrom_devices.yaml"


def test_at_least_one_discovery_mode():
    with pytest.raises(ValidationError):
        MyStromSettings.model_validate({"discovery_modes": {"local": False, "static": False}})


def test_unknown_device_type():
    with pytest.raises(ValidationError):
        MyStromSettings.model_validate({"device_types": ["WS2", "TOASTER"]})


@pytest.mark.parametrize(
    "field,value",
    [("reachable_timeout", 0), ("discovery_port", 70000), ("max_concurrent_polls", 0), ("cache_ttl", -1)],
)
def test_out_of_range_values(field, value):
    with pytest.raises(ValidationError):
        MyStromSettings.model_validate({field: value})
