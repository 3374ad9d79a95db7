"""FastAPI application for StromLink switch control."""

import logging
from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stromlink.api.models import HealthResponse
from stromlink.api.routers import devices, discovery
from stromlink.core.manager import PluginManager

logger = logging.getLogger(__name__)


def create_app(plugin_manager: Optional[PluginManager] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        plugin_manager: PluginManager instance to use for API operations

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="StromLink API",
        description="REST API for discovered myStrom WiFi switches",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if plugin_manager:
        devices.set_plugin_manager(plugin_manager)

    app.include_router(devices.router, prefix="/api/v1")
    app.include_router(discovery.router, prefix="/api/v1")

    @app.get("/api/v1/health", response_model=HealthResponse, tags=["health"])
    async def health_check():
        """Health check endpoint."""
        plugin_health = None

        if plugin_manager:
            plugin_health = await plugin_manager.health_check()

        return HealthResponse(
            status="healthy" if plugin_manager else "degraded",
            timestamp=datetime.now(timezone.utc).isoformat(),
            plugins=plugin_health,
        )

    return app
