"""Tests for environment-driven configuration."""

import pytest

from macrelay.config import RelayConfig
from macrelay.core.exceptions import ConfigError


def test_defaults_from_empty_env():
    config = RelayConfig.from_env({})
    assert config.host == "0.0.0.0"
    assert config.port == 3000
    assert config.drain_interval == 2.5
    assert config.device_tag == "macos"
    assert config.allowed_origins == ["*"]
    assert config.log_level == "info"


def test_env_overrides():
    config = RelayConfig.from_env({
        "RELAY_HOST": "127.0.0.1",
        "RELAY_DRAIN_INTERVAL": "0.5",
        "RELAY_DEVICE_TAG": "agent",
        "RELAY_LOG_LEVEL": "DEBUG",
        "RELAY_ALLOWED_ORIGINS": "http://a.test, http://b.test,",
        "RELAY_ACTIVITY_HISTORY": "10",
    })
    assert config.host == "127.0.0.1"
    assert config.drain_interval == 0.5
    assert config.device_tag == "agent"
    assert config.log_level == "debug"
    assert config.allowed_origins == ["http://a.test", "http://b.test"]
    assert config.activity_history == 10


def test_relay_port_wins_over_port():
    assert RelayConfig.from_env({"PORT": "8080"}).port == 8080
    assert RelayConfig.from_env({"PORT": "8080", "RELAY_PORT": "9090"}).port == 9090


@pytest.mark.parametrize("env", [
    {"PORT": "eighty"},
    {"RELAY_DRAIN_INTERVAL": "soon"},
    {"RELAY_DRAIN_INTERVAL": "-1"},
])
def test_invalid_values_raise(env):
    with pytest.raises(ConfigError):
        RelayConfig.from_env(env)


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    monkeypatch.setenv("RELAY_DEVICE_TAG", "unset")
    monkeypatch.delenv("RELAY_DEVICE_TAG")
    env_file = tmp_path / ".env"
    env_file.write_text("RELAY_DEVICE_TAG=from-dotenv\n")

    config = RelayConfig.from_env(dotenv_path=env_file)

    assert config.device_tag == "from-dotenv"
