"""StromLink entry point: event bus, myStrom plugins and REST API in one process."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from stromlink.api.server import APIServer
from stromlink.core.config import ConfigManager
from stromlink.core.manager import PluginManager
from stromlink.core.rabbitmq_bus import RabbitMQEventBus


__version__ = "0.1.0"

logger = logging.getLogger("stromlink")


class StromLink:
    """Wires configuration, event bus, plugins and API server together."""

    def __init__(
        self,
        config_dir: str = "config",
        enable_api: bool = True,
        api_port: Optional[int] = None,
        log_level: Optional[str] = None,
    ):
        self.config_dir = config_dir
        self.enable_api = enable_api
        self.api_port = api_port
        self.log_level = log_level

        self.config_manager = ConfigManager(config_dir)
        self.event_bus: Optional[RabbitMQEventBus] = None
        self.plugin_manager: Optional[PluginManager] = None
        self.api_server: Optional[APIServer] = None
        self._shutdown_event = asyncio.Event()

    async def run(self) -> None:
        """Start everything, block until shutdown is requested, then stop."""
        print("🔌 StromLink - myStrom switch integration")

        self.config_manager.load()
        self._setup_logging()

        try:
            await self._connect_event_bus()
            await self._start_plugins()
            await self._start_api()

            print(f"✅ StromLink is running with {len(self.plugin_manager.plugins)} plugins (Ctrl+C to stop)")
            logger.info("StromLink started")

            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Failed to start StromLink: {e}", exc_info=True)
            raise

        finally:
            await self.shutdown()

    async def _connect_event_bus(self) -> None:
        self.event_bus = RabbitMQEventBus(**self.config_manager.get_rabbitmq_config())
        await self.event_bus.connect()
        await self.event_bus.publish_system_event("start")

    async def _start_plugins(self) -> None:
        self.plugin_manager = PluginManager(self.config_manager, self.event_bus)
        await self.plugin_manager.load_plugins()
        await self.plugin_manager.initialize_plugins()
        await self.plugin_manager.start_plugins()

    async def _start_api(self) -> None:
        api_config = self.config_manager.get_api_config()
        if not (self.enable_api and api_config["enabled"]):
            logger.info("API server disabled")
            return

        self.api_server = APIServer(
            self.plugin_manager,
            host=api_config["host"],
            port=self.api_port or api_config["port"],
        )
        await self.api_server.start()

    async def shutdown(self) -> None:
        """Stop API, plugins and event bus, in that order."""
        logger.info("Stopping StromLink...")

        try:
            if self.api_server:
                await self.api_server.stop()
                self.api_server = None

            if self.plugin_manager:
                await self.plugin_manager.stop_plugins()
                await self.plugin_manager.destroy_plugins()

            if self.event_bus and self.event_bus.connected:
                await self.event_bus.publish_system_event("stop")
                await self.event_bus.disconnect()

        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)

        print("✅ StromLink stopped")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    def _setup_logging(self) -> None:
        """Log to the console and to ``<logs>/stromlink.log``."""
        level = (self.log_level or self.config_manager.get_log_level()).upper()

        logs_dir = self.config_manager.get_paths()["logs"]
        logs_dir.mkdir(parents=True, exist_ok=True)

        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            handlers=[
                logging.StreamHandler(),
                logging.FileHandler(logs_dir / "stromlink.log"),
            ],
        )

        # Library chatter
        for name in ("aio_pika", "aiormq", "aiohttp.access", "uvicorn.access"):
            logging.getLogger(name).setLevel(logging.WARNING)


async def async_main(args: argparse.Namespace) -> None:
    app = StromLink(
        args.config,
        enable_api=not args.no_api,
        api_port=args.api_port,
        log_level=args.log_level,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.request_shutdown)

    await app.run()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="StromLink - myStrom switch integration")
    parser.add_argument("--config", default="config", help="Configuration directory (default: config)")
    parser.add_argument("--api-port", type=int, default=None, help="API port (default: api.port of system.yaml)")
    parser.add_argument("--no-api", action="store_true", help="Disable the REST API")
    parser.add_argument("--log-level", default=None, help="Override system.log_level")
    parser.add_argument("--version", action="version", version=f"StromLink {__version__}")
    return parser.parse_args(argv)


def main() -> None:
    args = parse_args()

    try:
        asyncio.run(async_main(args))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        print(f"❌ Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
