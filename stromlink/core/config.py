"""Configuration management."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv


_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ConfigManager:
    """
    Loads the system and plugin configuration.

    Supports:
    - YAML configuration files (``system.yaml``, ``plugins.yaml``), falling
      back to the ``*.yaml.example`` files
    - Environment variable interpolation (``${VAR_NAME}``)
    - A ``.env`` file in the working directory
    """

    def __init__(self, config_dir: str = "config"):
        self.config_dir = Path(config_dir)
        self.system_config: Dict[str, Any] = {}
        self.plugin_configs: Dict[str, Dict[str, Any]] = {}

        load_dotenv()

    def load(self) -> None:
        """Load all configuration files."""
        self.system_config = self._load_yaml("system.yaml")

        self.plugin_configs = {}
        plugins = self._load_yaml("plugins.yaml").get("plugins") or {}
        for plugin_id, plugin_config in plugins.items():
            self.plugin_configs[plugin_id] = plugin_config or {}

    def _load_yaml(self, file_name: str) -> Dict[str, Any]:
        config_path = self.config_dir / file_name

        if not config_path.exists():
            example_path = self.config_dir / f"{file_name}.example"
            if not example_path.exists():
                raise FileNotFoundError(f"Config not found: {config_path}")
            config_path = example_path

        with open(config_path) as f:
            raw_config = yaml.safe_load(f) or {}

        if not isinstance(raw_config, dict):
            raise ValueError(f"Invalid configuration in {config_path}: expected a mapping")

        return self._interpolate_env_vars(raw_config)

    def _interpolate_env_vars(self, config: Any) -> Any:
        """Recursively replace ``${VAR}`` with environment values."""
        if isinstance(config, dict):
            return {k: self._interpolate_env_vars(v) for k, v in config.items()}
        if isinstance(config, list):
            return [self._interpolate_env_vars(item) for item in config]
        if isinstance(config, str):
            return _ENV_PATTERN.sub(lambda match: os.getenv(match.group(1), match.group(0)), config)
        return config

    def get_plugin_config(self, plugin_id: str) -> Optional[Dict[str, Any]]:
        return self.plugin_configs.get(plugin_id)

    def get_enabled_plugins(self) -> Dict[str, Dict[str, Any]]:
        return {
            plugin_id: config
            for plugin_id, config in self.plugin_configs.items()
            if config.get("enabled", False)
        }

    def get_rabbitmq_config(self) -> Dict[str, Any]:
        """RabbitMQ connection settings, environment variables take precedence."""
        rabbitmq_config = self.system_config.get("rabbitmq") or {}

        return {
            "host": os.getenv("RABBITMQ_HOST", rabbitmq_config.get("host", "localhost")),
            "port": int(os.getenv("RABBITMQ_PORT", rabbitmq_config.get("port", 5672))),
            "username": os.getenv("RABBITMQ_USERNAME", rabbitmq_config.get("username", "guest")),
            "password": os.getenv("RABBITMQ_PASSWORD", rabbitmq_config.get("password", "guest")),
            "vhost": os.getenv("RABBITMQ_VHOST", rabbitmq_config.get("vhost", "/")),
            "exchange_name": rabbitmq_config.get("exchange_name", "stromlink"),
        }

    def get_api_config(self) -> Dict[str, Any]:
        api_config = self.system_config.get("api") or {}

        return {
            "enabled": bool(api_config.get("enabled", True)),
            "host": os.getenv("API_HOST", api_config.get("host", "0.0.0.0")),
            "port": int(os.getenv("API_PORT", api_config.get("port", 8000))),
        }

    def get_log_level(self) -> str:
        return os.getenv(
            "LOG_LEVEL",
            (self.system_config.get("system") or {}).get("log_level", "INFO"),
        ).upper()

    def get_paths(self) -> Dict[str, Path]:
        paths = self.system_config.get("paths") or {}

        return {
            "data": Path(os.getenv("DATA_DIR", paths.get("data", "./data"))),
            "logs": Path(os.getenv("LOGS_DIR", paths.get("logs", "./logs"))),
        }
