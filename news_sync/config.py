"""Configuration for news_sync.

Settings come from an optional YAML file (NEWS_SYNC_CONFIG, or
~/.news_sync/config.yaml) overridden by NEWS_SYNC_* environment variables.
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "NEWS_SYNC_"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
    """Server and sync settings."""

    name: str = "news_sync"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    db_path: Optional[str] = None

    # Remote store; the in-memory store is used when remote_url is unset
    remote_url: Optional[str] = None
    remote_token: Optional[str] = None
    workspace: str = "NewsSyncZone"
    request_timeout: float = 30.0

    # Sync behaviour
    sync_interval: float = 0.0
    complete_display_delay: float = 2.0
    max_concurrent_uploads: int = 4

    def __post_init__(self):
        self.log_level = str(self.log_level).upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level '{self.log_level}', expected one of {', '.join(LOG_LEVELS)}")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.sync_interval < 0:
            raise ValueError("sync_interval must not be negative")
        if self.complete_display_delay < 0:
            raise ValueError("complete_display_delay must not be negative")
        if self.max_concurrent_uploads < 1:
            raise ValueError("max_concurrent_uploads must be at least 1")


def _default_config_path() -> Path:
    env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
    if env_path:
        return Path(env_path)
    return Path.home() / ".news_sync" / "config.yaml"


def _coerce(value: Any, target: Any) -> Any:
    """Convert a raw YAML/env value to the type of a config field."""
    if value is None:
        return None
    if target in (float, Optional[float]):
        return float(value)
    if target in (int, Optional[int]):
        return int(value)
    if target in (str, Optional[str]):
        return str(value)
    return value


def _env_overrides() -> Dict[str, Any]:
    overrides = {}
    for config_field in fields(ServerConfig):
        raw = os.environ.get(f"{ENV_PREFIX}{config_field.name.upper()}")
        if raw is not None:
            overrides[config_field.name] = raw
    return overrides


def load_config(path: Union[str, Path, None] = None) -> ServerConfig:
    """Load configuration from YAML and the environment.

    Args:
        path: Config file path (defaults to NEWS_SYNC_CONFIG or
              ~/.news_sync/config.yaml); a missing file is not an error

    Returns:
        ServerConfig

    Raises:
        ValueError: If the file is not valid YAML or a value is invalid
    """
    config_path = Path(path) if path is not None else _default_config_path()
    data: Dict[str, Any] = {}

    if config_path.exists():
        try:
            data = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid config file {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping")

    data.update(_env_overrides())

    known = {f.name: f.type for f in fields(ServerConfig)}
    values = {}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key: {key}")
            continue
        try:
            values[key] = _coerce(value, known[key])
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid value for {key}: {value!r}") from e

    return ServerConfig(**values)


_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get the process configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config
