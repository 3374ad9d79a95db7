"""Tests for the REST API."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from stromlink.api.app import create_app
from stromlink.api.routers import devices as devices_router
from stromlink.core.manager import PluginManager
from stromlink.core.plugin import PluginType
from stromlink.plugins.devices.mystrom.exceptions import InvalidResponseError, TransportError
from stromlink.plugins.devices.mystrom.plugin import MyStromPlugin

from conftest import FakeSwitchClient, make_sighting, make_tracked


DEVICE_ID = "30aea4001122"
OTHER_ID = "30aea4001144"


def api_client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.fixture
async def plugin(event_bus, clock):
    plugin = MyStromPlugin("mystrom", {"discovery_modes": {"local": False, "static": True}}, event_bus, clock=clock)
    await plugin.initialize()

    clients = {}

    def create_client(device):
        clients[device.id] = FakeSwitchClient(device.id, name=f"Switch {device.id}")
        return clients[device.id]

    plugin.service.client_factory = create_client
    plugin.service.on_discovered(make_tracked(DEVICE_ID))
    plugin.service.on_discovered(make_tracked(OTHER_ID, ip="192.168.1.11"))
    plugin.service.on_unreachable(make_tracked(OTHER_ID))
    plugin.clients = clients

    return plugin


@pytest.fixture
async def client(plugin):
    manager = MagicMock(spec=PluginManager)
    manager.get_plugins_by_type.side_effect = (
        lambda plugin_type: [plugin] if plugin_type == PluginType.DEVICE else []
    )
    manager.health_check = AsyncMock(return_value={"mystrom": {"healthy": True, "state": "running"}})

    async with api_client(create_app(manager)) as test_client:
        yield test_client

    devices_router.set_plugin_manager(None)


async def test_health(client):
    response = await client.get("/api/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["plugins"]["mystrom"]["healthy"]


async def test_list_devices(client):
    response = await client.get("/api/v1/devices")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    devices = {device["id"]: device for device in body["devices"]}
    assert devices[DEVICE_ID]["reachable"]
    assert devices[DEVICE_ID]["name"] == f"Switch {DEVICE_ID}"
    assert devices[DEVICE_ID]["plugin_id"] == "mystrom"
    assert not devices[OTHER_ID]["reachable"]
    assert devices[OTHER_ID]["ip"] == "192.168.1.11"


async def test_list_reachable_devices(client):
    response = await client.get("/api/v1/devices", params={"reachable": "true"})

    assert [device["id"] for device in response.json()["devices"]] == [DEVICE_ID]


async def test_get_state(client):
    response = await client.get(f"/api/v1/devices/{DEVICE_ID}/state")

    assert response.status_code == 200
    assert response.json() == {
        "id": DEVICE_ID,
        "relay": True,
        "power": 52.34,
        "power_consumption": "52.3",
    }


async def test_state_of_unreachable_device(client, plugin):
    response = await client.get(f"/api/v1/devices/{OTHER_ID}/state")

    assert response.status_code == 503
    assert plugin.clients[OTHER_ID].fetches == 0


async def test_state_of_unknown_device(client):
    response = await client.get("/api/v1/devices/ffffffffffff/state")

    assert response.status_code == 503


@pytest.mark.parametrize(
    "error",
    [TransportError(DEVICE_ID, "timed out"), InvalidResponseError(DEVICE_ID, "missing relay")],
)
async def test_device_errors_are_bad_gateway(client, plugin, error):
    plugin.clients[DEVICE_ID].fetch_error = error

    response = await client.get(f"/api/v1/devices/{DEVICE_ID}/state")

    assert response.status_code == 502


async def test_set_power(client, plugin):
    response = await client.put(f"/api/v1/devices/{DEVICE_ID}/power", json={"on": False})

    assert response.status_code == 200
    assert response.json()["success"]
    assert plugin.clients[DEVICE_ID].writes == [False]

    state = await client.get(f"/api/v1/devices/{DEVICE_ID}/state")
    assert state.json()["relay"] is False


async def test_set_power_requires_body(client):
    response = await client.put(f"/api/v1/devices/{DEVICE_ID}/power", json={})

    assert response.status_code == 422


async def test_toggle(client, plugin):
    response = await client.post(f"/api/v1/devices/{DEVICE_ID}/toggle")

    assert response.status_code == 200
    assert plugin.clients[DEVICE_ID].writes == ["toggle"]


async def test_toggle_unreachable(client):
    response = await client.post(f"/api/v1/devices/{OTHER_ID}/toggle")

    assert response.status_code == 503


async def test_remove_device(client, plugin):
    response = await client.delete(f"/api/v1/devices/{DEVICE_ID}")

    assert response.status_code == 200
    assert plugin.service.get_device(DEVICE_ID) is None

    response = await client.delete(f"/api/v1/devices/{DEVICE_ID}")
    assert response.status_code == 404


async def test_refresh_discovery(client, plugin):
    plugin.tracker.handle_sighting(make_sighting())

    response = await client.post("/api/v1/discovery/refresh")

    assert response.status_code == 200
    assert response.json()["cleared_plugins"] == 1
    assert plugin.tracker.get_all() == []


async def test_without_plugin_manager():
    devices_router.set_plugin_manager(None)

    async with api_client(create_app()) as test_client:
        devices = await test_client.get("/api/v1/devices")
        health = await test_client.get("/api/v1/health")

    assert devices.status_code == 503
    assert health.json()["status"] == "degraded"
