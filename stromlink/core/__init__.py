"""Core components for StromLink."""

from .rabbitmq_bus import RabbitMQEventBus
from .plugin import PluginBase, PluginState, PluginType
from .config import ConfigManager

__all__ = ["RabbitMQEventBus", "PluginBase", "PluginState", "PluginType", "ConfigManager"]
