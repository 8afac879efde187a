"""
Licensing configuration.

Resolves settings from explicit overrides, environment variables, an
optional YAML file and defaults, in that order of precedence.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

import aios_pro
from aios_pro.core.licensing.cache import CACHE_FILE_NAME
from aios_pro.core.licensing.client import DEFAULT_API_URL, DEFAULT_PROBE_TIMEOUT, DEFAULT_TIMEOUT
from aios_pro.core.licensing.errors import ConfigError
from aios_pro.core.licensing.pending import PENDING_FILE_NAME

ENV_HOME = "AIOS_PRO_HOME"
ENV_API_URL = "AIOS_PRO_API_URL"
ENV_TIMEOUT = "AIOS_PRO_TIMEOUT"
ENV_PROBE_TIMEOUT = "AIOS_PRO_PROBE_TIMEOUT"
ENV_CONFIG = "AIOS_PRO_CONFIG"

CONFIG_FILE_NAME = "config.yaml"

# Keys accepted in the YAML file
_FILE_KEYS = ("api_url", "timeout", "probe_timeout")


def get_state_dir() -> Path:
    """
    Get the directory holding local license state.

    Returns:
        $AIOS_PRO_HOME, else %APPDATA%/aios/pro on Windows, else ~/.aios/pro
    """
    env_path = os.environ.get(ENV_HOME)
    if env_path:
        return Path(env_path).expanduser()

    if os.name == "nt":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "aios" / "pro"

    return Path.home() / ".aios" / "pro"


class Settings(BaseModel):
    """Resolved licensing settings."""

    state_dir: Path = Field(description="Directory for sealed license state")
    api_url: str = Field(default=DEFAULT_API_URL, min_length=1)
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    probe_timeout: float = Field(default=DEFAULT_PROBE_TIMEOUT, gt=0)
    host_version: str = Field(default=aios_pro.__version__)

    model_config = {"frozen": True}

    @property
    def cache_path(self) -> Path:
        return self.state_dir / CACHE_FILE_NAME

    @property
    def pending_path(self) -> Path:
        return self.state_dir / PENDING_FILE_NAME


def load_config_file(path: Path) -> dict[str, Any]:
    """
    Load settings from a YAML file.

    YAML format:
    ```yaml
    api_url: https://license.synkra.ai
    timeout: 10
    probe_timeout: 3
    ```

    Returns:
        Known keys only; empty when the file does not exist
    """
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    return {key: data[key] for key in _FILE_KEYS if data.get(key) is not None}


def _env_float(name: str) -> float | None:
    env_value = os.environ.get(name)
    if not env_value:
        return None
    try:
        return float(env_value)
    except ValueError:
        raise ConfigError(f"{name} must be a number") from None


def load_settings(**overrides: Any) -> Settings:
    """
    Resolve settings.

    Args:
        **overrides: Explicit values (None is ignored)

    Returns:
        Settings

    Raises:
        ConfigError: If a source holds an invalid value
    """
    state_dir = overrides.get("state_dir") or get_state_dir()

    env_config = os.environ.get(ENV_CONFIG)
    config_path = Path(env_config).expanduser() if env_config else Path(state_dir) / CONFIG_FILE_NAME

    values: dict[str, Any] = load_config_file(config_path)

    env_values = {
        "api_url": os.environ.get(ENV_API_URL) or None,
        "timeout": _env_float(ENV_TIMEOUT),
        "probe_timeout": _env_float(ENV_PROBE_TIMEOUT),
    }
    values.update({k: v for k, v in env_values.items() if v is not None})
    values.update({k: v for k, v in overrides.items() if v is not None})
    values["state_dir"] = state_dir

    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid licensing settings: {e}") from e
