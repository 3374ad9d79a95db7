"""Discovery API endpoints."""

from fastapi import APIRouter

from stromlink.api.models import DiscoveryResult
from stromlink.api.routers.devices import get_mystrom_plugins

router = APIRouter(prefix="/discovery", tags=["discovery"])


@router.post("/refresh", response_model=DiscoveryResult)
async def refresh_discovery():
    """Forget tracked devices so they are reported as new on their next sighting."""
    plugins = get_mystrom_plugins()

    for plugin in plugins:
        plugin.rediscover()

    return DiscoveryResult(
        message="Discovery cleared, devices are re-announced with their next broadcast",
        cleared_plugins=len(plugins),
    )
