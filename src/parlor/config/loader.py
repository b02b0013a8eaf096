"""Config loading: YAML file, .env overlay, per-server defaults."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from parlor.core.errors import ConfigError

DEFAULT_CONFIG_PATH = "config.yaml"


def _deep_update(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_update(result[key], value)
        else:
            result[key] = value
    return result


def apply_server_defaults(data: dict[str, Any]) -> dict[str, Any]:
    """Merge the top-level `defaults` mapping under every `servers` entry."""
    defaults = data.get("defaults")
    servers = data.get("servers")
    if not isinstance(defaults, dict) or not isinstance(servers, list):
        return data
    merged = [_deep_update(defaults, entry) if isinstance(entry, dict) else entry for entry in servers]
    return {**data, "servers": merged}


def load_config(path: str | Path) -> dict[str, Any]:
    """Load config from YAML file with SafeLoader. A missing file yields {}."""
    path = Path(path)
    if not path.exists():
        logger.warning("Config file not found: {}", path)
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        logger.error("Failed to parse config {}: {}", path, exc)
        raise ConfigError(
            f"invalid YAML in {path}",
            code="invalid_yaml",
            details={"path": str(path)},
            original_error=exc,
        ) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"config file {path} must contain a mapping",
            code="invalid_structure",
            details={"path": str(path), "type": type(data).__name__},
        )
    return apply_server_defaults(data)


def load_config_with_env(path: str | Path | None = None) -> dict[str, Any]:
    """Load .env into the environment, then the YAML file (PARLOR_CONFIG or config.yaml)."""
    from dotenv import load_dotenv

    load_dotenv()
    return load_config(path or os.environ.get("PARLOR_CONFIG") or DEFAULT_CONFIG_PATH)
