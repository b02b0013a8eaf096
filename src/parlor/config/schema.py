"""Config schema and accessor."""

from __future__ import annotations

import os
from dataclasses import replace
from typing import Any

from loguru import logger

from parlor.core.constants import DEFAULT_SCRIPT_DELAY, WHOIS_CACHE_TTL_SECONDS
from parlor.core.errors import ConfigError
from parlor.models import ServerConfig

# Env keys that override config (loaded once per reload)
_ENV_OVERRIDE_KEYS = (
    "PARLOR_NICKNAME",
    "PARLOR_NICKSERV_PASSWORD",
    "PARLOR_SASL_PASSWORD",
    "PARLOR_TLS_VERIFY",
    "PARLOR_SCRIPT_DELAY",
)


def _load_env_overrides() -> dict[str, str]:
    return {k: os.environ.get(k, "") for k in _ENV_OVERRIDE_KEYS}


def _parse_bool_env(val: str) -> bool | None:
    """Parse env string to bool; None if not a recognized bool."""
    v = val.lower()
    if v in ("1", "true", "yes"):
        return True
    if v in ("0", "false", "no"):
        return False
    return None


class Config:
    """Config accessor: typed properties over the raw YAML dict plus env overrides."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data = data or {}
        self._env: dict[str, str] = _load_env_overrides()

    def reload(self, data: dict[str, Any], *, validate: bool = True) -> None:
        """Replace config data (e.g. on SIGHUP reload)."""
        self._data = data or {}
        self._env = _load_env_overrides()
        if validate:
            self._validate()
        logger.debug("Config reloaded: {} servers", len(self._data.get("servers") or []))

    def _validate(self) -> None:
        """Check structure and build every server once; raises ConfigError."""
        servers = self._data.get("servers")
        if servers is not None and not isinstance(servers, list):
            raise ConfigError(
                "servers must be a list",
                code="invalid_servers",
                details={"type": type(servers).__name__},
            )
        names: set[str] = set()
        for i, server in enumerate(self.servers):
            if not server.server_name:
                raise ConfigError(f"servers[{i}] has no name", code="missing_server_name", details={"index": i})
            if server.server_name in names:
                raise ConfigError(
                    f"duplicate server name {server.server_name!r}",
                    code="duplicate_server",
                    details={"index": i},
                )
            names.add(server.server_name)

    @property
    def raw(self) -> dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Get value by dot-separated path."""
        obj: Any = self._data
        for part in key.split("."):
            if isinstance(obj, dict) and part in obj:
                obj = obj[part]
            else:
                return default
        return obj

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def _apply_env(self, server: ServerConfig) -> ServerConfig:
        changes: dict[str, Any] = {}
        if self._env.get("PARLOR_NICKNAME"):
            changes["nickname"] = self._env["PARLOR_NICKNAME"]
        if self._env.get("PARLOR_NICKSERV_PASSWORD"):
            changes["nickserv_password"] = self._env["PARLOR_NICKSERV_PASSWORD"]
        if self._env.get("PARLOR_SASL_PASSWORD"):
            changes["sasl_password"] = self._env["PARLOR_SASL_PASSWORD"]
        tls_verify = _parse_bool_env(self._env.get("PARLOR_TLS_VERIFY", ""))
        if tls_verify is not None:
            changes["accept_self_signed_certs"] = not tls_verify
        return replace(server, **changes) if changes else server

    @property
    def servers(self) -> list[ServerConfig]:
        """All configured servers, env overrides applied. Ids default to list position."""
        raw = self._data.get("servers")
        if not isinstance(raw, list):
            return []
        servers = []
        for i, entry in enumerate(raw):
            server = ServerConfig.from_dict(entry)
            if not server.id:
                server = replace(server, id=i + 1)
            servers.append(self._apply_env(server))
        return servers

    def server(self, name: str | None = None) -> ServerConfig:
        """Server by name; with no name, the first auto_connect server, else the first one."""
        servers = self.servers
        if not servers:
            raise ConfigError("no servers configured", code="no_servers")
        if name is None:
            return next((s for s in servers if s.auto_connect), servers[0])
        for server in servers:
            if server.server_name == name or server.hostname == name:
                return server
        raise ConfigError(f"unknown server {name!r}", code="unknown_server", details={"name": name})

    @property
    def log_level(self) -> str:
        return str(self._data.get("log_level", "INFO")).upper()

    @property
    def queue_size(self) -> int:
        return int(self._data.get("queue_size", 256))

    @property
    def bus_buffer_size(self) -> int:
        return int(self._data.get("bus_buffer_size", 1000))

    @property
    def script_delay(self) -> float:
        env_val = self._env.get("PARLOR_SCRIPT_DELAY", "")
        if env_val:
            try:
                return float(env_val)
            except ValueError:
                logger.warning("Ignoring invalid PARLOR_SCRIPT_DELAY={!r}", env_val)
        return float(self._data.get("script_delay", DEFAULT_SCRIPT_DELAY))

    @property
    def whois_cache_ttl_seconds(self) -> int:
        return int(self._data.get("whois_cache_ttl_seconds", WHOIS_CACHE_TTL_SECONDS))

    @property
    def reconnect_max_attempts(self) -> int:
        return int(self._data.get("reconnect_max_attempts", 5))

    @property
    def reconnect_backoff_max(self) -> float:
        return float(self._data.get("reconnect_backoff_max", 60))


cfg: Config = Config({})
