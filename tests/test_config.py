"""Tests for the configuration manager."""

import pytest

from stromlink.core.config import ConfigManager


SYSTEM_YAML = """
system:
  log_level: debug
rabbitmq:
  host: ${TEST_BROKER_HOST}
  port: 5673
api:
  enabled: false
  port: 9000
paths:
  logs: /tmp/stromlink-logs
"""

PLUGINS_YAML = """
plugins:
  mystrom:
    enabled: true
    module: stromlink.plugins.devices.mystrom.plugin
    class: MyStromPlugin
    config:
      devices:
        - id: 30aea4001122
          host: ${TEST_SWITCH_HOST}
  disabled:
    enabled: false
    module: somewhere.else
    class: Nothing
"""


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    for name in ("RABBITMQ_HOST", "RABBITMQ_PORT", "API_HOST", "API_PORT", "LOG_LEVEL", "LOGS_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TEST_BROKER_HOST", "broker.local")
    monkeypatch.setenv("TEST_SWITCH_HOST", "10.0.0.7")

    (tmp_path / "system.yaml").write_text(SYSTEM_YAML)
    (tmp_path / "plugins.yaml").write_text(PLUGINS_YAML)
    return tmp_path


@pytest.fixture
def config(config_dir):
    manager = ConfigManager(str(config_dir))
    manager.load()
    return manager


def test_env_interpolation(config):
    assert config.get_rabbitmq_config()["host"] == "broker.local"
    devices = config.get_plugin_config("mystrom")["config"]["devices"]
    assert devices[0]["host"] == "10.0.0.7"


def test_unknown_variable_is_kept(config_dir, monkeypatch):
    monkeypatch.delenv("TEST_BROKER_HOST")
    manager = ConfigManager(str(config_dir))
    manager.load()

    assert manager.get_rabbitmq_config()["host"] == "${TEST_BROKER_HOST}"


def test_enabled_plugins(config):
    assert list(config.get_enabled_plugins()) == ["mystrom"]


def test_rabbitmq_config(config, monkeypatch):
    rabbitmq = config.get_rabbitmq_config()
    assert rabbitmq["port"] == 5673
    assert rabbitmq["vhost"] == "/"
    assert rabbitmq["exchange_name"] == "stromlink"

    monkeypatch.setenv("RABBITMQ_PORT", "5674")
    assert config.get_rabbitmq_config()["port"] == 5674


def test_api_config(config, monkeypatch):
    assert config.get_api_config() == {"enabled": False, "host": "0.0.0.0", "port": 9000}

    monkeypatch.setenv("API_PORT", "8080")
    assert config.get_api_config()["port"] == 8080


def test_log_level_and_paths(config):
    assert config.get_log_level() == "DEBUG"
    assert str(config.get_paths()["logs"]) == "/tmp/stromlink-logs"


def test_example_files_are_used_as_fallback(tmp_path):
    (tmp_path / "system.yaml.example").write_text("system:\n  log_level: info\n")
    (tmp_path / "plugins.yaml.example").write_text("plugins: {}\n")

    manager = ConfigManager(str(tmp_path))
    manager.load()

    assert manager.get_log_level() == "INFO"
    assert manager.get_enabled_plugins() == {}


def test_missing_config_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigManager(str(tmp_path)).load()


def test_non_mapping_config_raises(tmp_path):
    (tmp_path / "system.yaml").write_text("- just\n- a list\n")

    with pytest.raises(ValueError):
        ConfigManager(str(tmp_path)).load()
