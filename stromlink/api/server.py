"""API server runner for StromLink."""

import asyncio
import logging
from typing import Optional
from uvicorn import Config, Server

from stromlink.api.app import create_app
from stromlink.core.manager import PluginManager

logger = logging.getLogger(__name__)


class APIServer:
    """Runs the FastAPI app with uvicorn inside the hub's event loop."""

    def __init__(
        self,
        plugin_manager: PluginManager,
        host: str = "0.0.0.0",
        port: int = 8000,
    ):
        self.plugin_manager = plugin_manager
        self.host = host
        self.port = port
        self.server: Optional[Server] = None
        self._server_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        logger.info(f"Starting API server on {self.host}:{self.port}")

        config = Config(
            app=create_app(self.plugin_manager),
            host=self.host,
            port=self.port,
            log_level="info",
            loop="asyncio",
        )
        self.server = Server(config)
        self._server_task = asyncio.create_task(self.server.serve())

        logger.info(f"API documentation at http://{self.host}:{self.port}/docs")

    async def stop(self) -> None:
        if not self.server:
            return

        logger.info("Stopping API server...")
        self.server.should_exit = True

        if self._server_task:
            try:
                await asyncio.wait_for(self._server_task, timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("API server shutdown timed out")
                self._server_task.cancel()
                try:
                    await self._server_task
                except asyncio.CancelledError:
                    pass

        logger.info("API server stopped")
