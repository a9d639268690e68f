"""Server configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: QUAKE_<SECTION>_<KEY> (uppercase).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    env: str = "dev"  # "dev" or "prod"


@dataclass
class HubConfig:
    heartbeat_interval_seconds: float = 30.0
    history_size: int = 100
    recent_data_size: int = 100
    alert_history_size: int = 10
    earthquake_threshold: float = 3.0
    dashboard_sentinel: str = "DASHBOARD"


@dataclass
class CacheConfig:
    dir: str = "cache"
    file_name: str = "sensor-data-cache.json"
    max_size: int = 1000
    persist_every: int = 100


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"
    file: str = ""


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    hub: HubConfig = field(default_factory=HubConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = ("server", "hub", "cache", "logging")


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "QUAKE_SERVER_HOST": lambda v: setattr(config.server, "host", v),
        "QUAKE_SERVER_PORT": lambda v: setattr(config.server, "port", int(v)),
        "QUAKE_SERVER_ENV": lambda v: setattr(config.server, "env", v),
        "QUAKE_HUB_HEARTBEAT_INTERVAL": lambda v: setattr(config.hub, "heartbeat_interval_seconds", float(v)),
        "QUAKE_HUB_HISTORY_SIZE": lambda v: setattr(config.hub, "history_size", int(v)),
        "QUAKE_HUB_RECENT_DATA_SIZE": lambda v: setattr(config.hub, "recent_data_size", int(v)),
        "QUAKE_HUB_ALERT_HISTORY_SIZE": lambda v: setattr(config.hub, "alert_history_size", int(v)),
        "QUAKE_HUB_EARTHQUAKE_THRESHOLD": lambda v: setattr(config.hub, "earthquake_threshold", float(v)),
        "QUAKE_HUB_DASHBOARD_SENTINEL": lambda v: setattr(config.hub, "dashboard_sentinel", v),
        "QUAKE_CACHE_DIR": lambda v: setattr(config.cache, "dir", v),
        "QUAKE_CACHE_FILE_NAME": lambda v: setattr(config.cache, "file_name", v),
        "QUAKE_CACHE_MAX_SIZE": lambda v: setattr(config.cache, "max_size", int(v)),
        "QUAKE_CACHE_PERSIST_EVERY": lambda v: setattr(config.cache, "persist_every", int(v)),
        "QUAKE_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "QUAKE_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
        "QUAKE_LOG_FILE": lambda v: setattr(config.logging, "file", v),
    }
    # PORT is what most process managers set.
    if "QUAKE_SERVER_PORT" not in os.environ and os.environ.get("PORT"):
        config.server.port = int(os.environ["PORT"])
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    if config_path is None:
        config_path = Path(os.environ.get("QUAKE_CONFIG", "config.yaml"))
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for section_name in _SECTIONS:
            section = getattr(config, section_name)
            for k, v in (raw.get(section_name) or {}).items():
                if hasattr(section, k):
                    setattr(section, k, v)

    # Environment overrides always win
    _apply_env_overrides(config)
    return config
