"""Switch API endpoints."""

import logging
from typing import List, Optional
from fastapi import APIRouter, HTTPException, Path, Query

from stromlink.api.models import (
    CommandResult,
    PowerRequest,
    SwitchListResponse,
    SwitchStateResponse,
    SwitchSummary,
)
from stromlink.core.manager import PluginManager
from stromlink.core.plugin import PluginType
from stromlink.plugins.devices.mystrom.exceptions import (
    InvalidResponseError,
    MyStromError,
    NotReachableError,
    TransportError,
)
from stromlink.plugins.devices.mystrom.plugin import MyStromPlugin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/devices", tags=["devices"])

# Global reference to plugin manager (set by app.py)
plugin_manager: Optional[PluginManager] = None


def set_plugin_manager(manager: PluginManager):
    """Set the plugin manager reference."""
    global plugin_manager
    plugin_manager = manager


def get_mystrom_plugins() -> List[MyStromPlugin]:
    """All initialized myStrom plugins."""
    if not plugin_manager:
        raise HTTPException(status_code=503, detail="Plugin manager not initialized")

    return [
        plugin
        for plugin in plugin_manager.get_plugins_by_type(PluginType.DEVICE)
        if isinstance(plugin, MyStromPlugin) and plugin.service is not None
    ]


def _find_plugin(device_id: str) -> MyStromPlugin:
    plugins = get_mystrom_plugins()

    for plugin in plugins:
        if plugin.service.get_device(device_id):
            return plugin

    raise HTTPException(status_code=503, detail=f"Device not reachable: {device_id}")


def _error_response(error: MyStromError) -> HTTPException:
    if isinstance(error, NotReachableError):
        return HTTPException(status_code=503, detail=str(error))
    if isinstance(error, (InvalidResponseError, TransportError)):
        return HTTPException(status_code=502, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


@router.get("", response_model=SwitchListResponse)
async def list_devices(
    reachable: Optional[bool] = Query(None, description="Filter by reachability"),
):
    """List all discovered switches."""
    devices = []

    for plugin in get_mystrom_plugins():
        for service_device in plugin.service.get_all_devices():
            if reachable is not None and service_device.reachable != reachable:
                continue

            devices.append(
                SwitchSummary(
                    id=service_device.id,
                    name=service_device.client.name,
                    type=service_device.device.type,
                    ip=service_device.device.ip,
                    reachable=service_device.reachable,
                    plugin_id=plugin.plugin_id,
                    last_use_date=service_device.last_use_date,
                )
            )

    return SwitchListResponse(devices=devices, total=len(devices))


@router.get("/{device_id}/state", response_model=SwitchStateResponse)
async def get_device_state(
    device_id: str = Path(..., description="Device ID"),
):
    """Get the (cached) state of a switch."""
    plugin = _find_plugin(device_id)

    try:
        report = await plugin.service.get_state(device_id)
    except MyStromError as e:
        raise _error_response(e)

    return SwitchStateResponse(
        id=device_id,
        relay=report.relay,
        power=report.power,
        power_consumption=report.power_consumption,
    )


@router.put("/{device_id}/power", response_model=CommandResult)
async def set_power_state(
    request: PowerRequest,
    device_id: str = Path(..., description="Device ID"),
):
    """Switch a device on or off."""
    plugin = _find_plugin(device_id)

    try:
        await plugin.service.set_power_state(device_id, request.on)
    except MyStromError as e:
        raise _error_response(e)

    return CommandResult(success=True, message=f"Switched {'on' if request.on else 'off'}")


@router.post("/{device_id}/toggle", response_model=CommandResult)
async def toggle(
    device_id: str = Path(..., description="Device ID"),
):
    """Toggle the relay of a switch."""
    plugin = _find_plugin(device_id)

    try:
        await plugin.service.toggle(device_id)
    except MyStromError as e:
        raise _error_response(e)

    return CommandResult(success=True, message="Toggled")


@router.delete("/{device_id}", response_model=CommandResult)
async def remove_device(
    device_id: str = Path(..., description="Device ID"),
):
    """Remove a switch until it is discovered again after a refresh."""
    for plugin in get_mystrom_plugins():
        if plugin.service.get_device(device_id):
            await plugin.remove_device(device_id)
            return CommandResult(success=True, message=f"Removed {device_id}")

    raise HTTPException(status_code=404, detail=f"Device not found: {device_id}")
