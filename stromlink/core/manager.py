"""Plugin manager for loading and managing plugins."""

import importlib
import logging
from typing import Dict, List, Optional

from .config import ConfigManager
from .rabbitmq_bus import RabbitMQEventBus
from .plugin import PluginBase, PluginState, PluginType


class PluginManager:
    """
    Manages plugin lifecycle.

    Responsibilities:
    - Load enabled plugins from configuration
    - Initialize, start and stop plugins
    - Collect plugin health

    A failing plugin is logged and skipped, the others keep running.
    """

    def __init__(self, config_manager: ConfigManager, event_bus: RabbitMQEventBus):
        self.config_manager = config_manager
        self.event_bus = event_bus

        self.plugins: Dict[str, PluginBase] = {}
        self._logger = logging.getLogger("plugin_manager")

    async def load_plugins(self) -> None:
        """Load all enabled plugins from configuration."""
        for plugin_id, plugin_config in self.config_manager.get_enabled_plugins().items():
            try:
                self.plugins[plugin_id] = self._load_plugin(plugin_id, plugin_config)
                self._logger.info(f"Loaded plugin: {plugin_id}")

            except Exception as e:
                self._logger.error(f"Failed to load plugin {plugin_id}: {e}", exc_info=True)
                await self.event_bus.publish_plugin_status(plugin_id, "load_error", {"error": str(e)})

        self._logger.info(f"Loaded {len(self.plugins)} plugins")

    def _load_plugin(self, plugin_id: str, config: Dict) -> PluginBase:
        """
        Import and instantiate a plugin.

        Raises:
            ValueError: Module or class missing in the configuration
            ImportError: Plugin module cannot be imported
            AttributeError: Plugin class not found
        """
        module_path = config.get("module")
        class_name = config.get("class")

        if not module_path or not class_name:
            raise ValueError(f"Plugin {plugin_id} missing module or class in config")

        plugin_class = getattr(importlib.import_module(module_path), class_name)

        return plugin_class(
            plugin_id=plugin_id,
            config=config.get("config") or {},
            event_bus=self.event_bus,
        )

    async def initialize_plugins(self) -> None:
        for plugin_id, plugin in self.plugins.items():
            try:
                self._logger.info(f"Initializing plugin: {plugin_id}")
                await plugin.run_initialize()
            except Exception as e:
                self._logger.error(f"Failed to initialize plugin {plugin_id}: {e}")

    async def start_plugins(self) -> None:
        for plugin_id, plugin in self.plugins.items():
            if plugin.state != PluginState.INITIALIZED:
                self._logger.warning(f"Skipping start for plugin {plugin_id} (state: {plugin.state.value})")
                continue

            try:
                self._logger.info(f"Starting plugin: {plugin_id}")
                await plugin.run_start()
            except Exception as e:
                self._logger.error(f"Failed to start plugin {plugin_id}: {e}")

    async def stop_plugins(self) -> None:
        """Stop running plugins in reverse load order."""
        for plugin_id, plugin in reversed(list(self.plugins.items())):
            if plugin.state not in (PluginState.RUNNING, PluginState.ERROR):
                continue

            try:
                self._logger.info(f"Stopping plugin: {plugin_id}")
                await plugin.run_stop()
            except Exception as e:
                self._logger.error(f"Error stopping plugin {plugin_id}: {e}")

    async def destroy_plugins(self) -> None:
        for plugin_id, plugin in self.plugins.items():
            try:
                await plugin.destroy()
            except Exception as e:
                self._logger.error(f"Error destroying plugin {plugin_id}: {e}", exc_info=True)

        self.plugins.clear()

    def get_plugin(self, plugin_id: str) -> Optional[PluginBase]:
        return self.plugins.get(plugin_id)

    def get_plugins(self) -> List[PluginBase]:
        return list(self.plugins.values())

    def get_plugins_by_type(self, plugin_type: PluginType) -> List[PluginBase]:
        return [
            plugin
            for plugin in self.plugins.values()
            if plugin.metadata.plugin_type == plugin_type
        ]

    async def health_check(self) -> Dict[str, Dict]:
        health = {}

        for plugin_id, plugin in self.plugins.items():
            try:
                health[plugin_id] = await plugin.health_check()
            except Exception as e:
                health[plugin_id] = {"healthy": False, "error": str(e)}

        return health
