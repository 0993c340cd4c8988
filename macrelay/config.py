"""
Relay configuration.

Values come from environment variables, optionally seeded from a ``.env``
file. Environment variables take precedence over the defaults.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from macrelay.core.exceptions import ConfigError


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


@dataclass
class RelayConfig:
    """Typed settings for the relay server."""

    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"
    drain_interval: float = 2.5
    device_tag: str = "macos"
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    activity_history: int = 100

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None,
                 dotenv_path: Optional[Path] = None) -> "RelayConfig":
        """
        Build a config from the environment.

        Args:
            env: Mapping to read instead of ``os.environ`` (no .env loading)
            dotenv_path: Explicit .env file; defaults to one in the working directory

        Raises:
            ConfigError: If a numeric setting cannot be parsed
        """
        if env is None:
            load_dotenv(dotenv_path)
            env = os.environ

        defaults = cls()
        port = _number(env, "PORT", defaults.port, int)
        port = _number(env, "RELAY_PORT", port, int)
        drain_interval = _number(env, "RELAY_DRAIN_INTERVAL", defaults.drain_interval, float)
        if drain_interval < 0:
            raise ConfigError("RELAY_DRAIN_INTERVAL must not be negative")

        origins = env.get("RELAY_ALLOWED_ORIGINS")
        return cls(
            host=env.get("RELAY_HOST", defaults.host),
            port=port,
            log_level=env.get("RELAY_LOG_LEVEL", defaults.log_level).lower(),
            drain_interval=drain_interval,
            device_tag=env.get("RELAY_DEVICE_TAG", defaults.device_tag),
            allowed_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else defaults.allowed_origins,
            activity_history=_number(env, "RELAY_ACTIVITY_HISTORY", defaults.activity_history, int),
        )
