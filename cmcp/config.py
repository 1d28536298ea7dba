"""Proxy configuration: upstream server definitions stored as TOML."""

from __future__ import annotations

import os
import sys
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Union

import tomli_w

APP_DIR_NAME = "code-mode-mcp"
CONFIG_FILE_NAME = "config.toml"
PROJECT_CONFIG_FILE = ".cmcp.toml"


class ConfigError(Exception):
    """Raised when a configuration cannot be located, read, parsed or written."""


class Scope(Enum):
    """Where a configuration file lives."""

    USER = "user"
    PROJECT = "project"
    LOCAL = "local"

    @classmethod
    def from_str(cls, value: str) -> "Scope":
        """Parse a scope name; ``global`` is accepted as an alias of ``user``."""
        if value in ("user", "global"):
            return cls.USER
        if value == "project":
            return cls.PROJECT
        if value == "local":
            return cls.LOCAL
        raise ConfigError(f'unknown scope "{value}". Use: local, user, or project')

    def config_path(self) -> Path:
        """Return the config file path for this scope."""
        if self is Scope.PROJECT:
            return project_config_path()
        return default_config_path()


def _require_str(data: Mapping[str, Any], key: str) -> str:
    if key not in data:
        raise ConfigError(f"missing field `{key}`")
    value = data[key]
    if not isinstance(value, str):
        raise ConfigError(f"field `{key}` must be a string")
    return value


def _optional_str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ConfigError(f"field `{key}` must be a string")
    return value


def _str_map(data: Mapping[str, Any], key: str) -> dict[str, str]:
    value = data.get(key, {})
    if not isinstance(value, Mapping):
        raise ConfigError(f"field `{key}` must be a table")
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in value.items()):
        raise ConfigError(f"field `{key}` must map strings to strings")
    return dict(value)


def _str_list(data: Mapping[str, Any], key: str) -> list[str]:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"field `{key}` must be a list of strings")
    return list(value)


@dataclass
class _UrlServerConfig:
    url: str
    auth: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    transport: ClassVar[str]

    def _url_table(self) -> dict[str, Any]:
        data: dict[str, Any] = {"transport": self.transport, "url": self.url}
        if self.auth is not None:
            data["auth"] = self.auth
        if self.headers:
            data["headers"] = dict(self.headers)
        return data

    @classmethod
    def _from_dict(cls, data: Mapping[str, Any]) -> "_UrlServerConfig":
        return cls(
            url=_require_str(data, "url"),
            auth=_optional_str(data, "auth"),
            headers=_str_map(data, "headers"),
        )


@dataclass
class HttpServerConfig(_UrlServerConfig):
    """Streamable HTTP upstream; ``auth`` is a bearer token without the prefix."""

    transport: ClassVar[str] = "http"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a table, leaving out unset optional fields."""
        return self._url_table()


@dataclass
class SseServerConfig(_UrlServerConfig):
    """SSE upstream; ``auth`` is a bearer token without the prefix."""

    transport: ClassVar[str] = "sse"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a table, leaving out unset optional fields."""
        return self._url_table()


@dataclass
class StdioServerConfig:
    """Upstream started as a child process speaking over stdio."""

    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)

    transport: ClassVar[str] = "stdio"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a table, leaving out empty optional fields."""
        data: dict[str, Any] = {"transport": self.transport, "command": self.command}
        if self.args:
            data["args"] = list(self.args)
        if self.env:
            data["env"] = dict(self.env)
        return data

    @classmethod
    def _from_dict(cls, data: Mapping[str, Any]) -> "StdioServerConfig":
        return cls(
            command=_require_str(data, "command"),
            args=_str_list(data, "args"),
            env=_str_map(data, "env"),
        )


ServerConfig = Union[HttpServerConfig, SseServerConfig, StdioServerConfig]

_TRANSPORTS: dict[str, type] = {
    "http": HttpServerConfig,
    "sse": SseServerConfig,
    "stdio": StdioServerConfig,
}


def server_config_from_dict(data: Mapping[str, Any]) -> ServerConfig:
    """Build a server config from a table tagged by its ``transport`` field."""
    if not isinstance(data, Mapping):
        raise ConfigError("server config must be a table")
    transport = data.get("transport")
    if transport is None:
        raise ConfigError("missing field `transport`")
    kind = _TRANSPORTS.get(transport) if isinstance(transport, str) else None
    if kind is None:
        raise ConfigError(
            f"unknown transport {transport!r}, expected one of: http, sse, stdio"
        )
    return kind._from_dict(data)


@dataclass
class Config:
    """Top-level configuration: named upstream servers."""

    servers: dict[str, ServerConfig] = field(default_factory=dict)

    @classmethod
    def _from_document(cls, data: Mapping[str, Any]) -> "Config":
        servers = data.get("servers", {})
        if not isinstance(servers, Mapping):
            raise ConfigError("field `servers` must be a table")
        return cls(
            servers={name: server_config_from_dict(value) for name, value in servers.items()}
        )

    def to_dict(self) -> dict[str, Any]:
        return {"servers": {name: cfg.to_dict() for name, cfg in self.servers.items()}}

    @classmethod
    def load_from(cls, path: str | os.PathLike[str]) -> "Config":
        """Load from ``path``; a missing file gives an empty config."""
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"failed to read config from {path}: {exc}") from exc
        try:
            return cls._from_document(tomllib.loads(content))
        except (tomllib.TOMLDecodeError, ConfigError) as exc:
            raise ConfigError(f"failed to parse config from {path}: {exc}") from exc

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None = None) -> "Config":
        """Load from ``path`` or the default user config path."""
        return cls.load_from(path if path is not None else default_config_path())

    @classmethod
    def load_merged(cls, explicit_path: str | os.PathLike[str] | None = None) -> "Config":
        """Merge user, then project, then explicit configs; later names win."""
        merged = cls.load_from(default_config_path())

        project_path = project_config_path()
        if project_path.exists():
            merged.servers.update(cls.load_from(project_path).servers)

        if explicit_path is not None:
            merged.servers.update(cls.load_from(explicit_path).servers)

        return merged

    def save_to(self, path: str | os.PathLike[str]) -> None:
        """Write to ``path``, creating parent directories as needed."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"failed to create {path.parent}: {exc}") from exc
        content = tomli_w.dumps(self.to_dict())
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"failed to write config to {path}: {exc}") from exc

    def save(self, path: str | os.PathLike[str] | None = None) -> None:
        """Write to ``path`` or the default user config path."""
        self.save_to(path if path is not None else default_config_path())

    def add_server(self, name: str, config: ServerConfig) -> None:
        self.servers[name] = config

    def remove_server(self, name: str) -> bool:
        """Remove a server; return whether it was present."""
        return self.servers.pop(name, None) is not None


def _config_dir() -> Path | None:
    env = os.environ
    if sys.platform == "darwin":
        return Path(env["HOME"]) / ".config" if "HOME" in env else None
    if sys.platform.startswith("win"):
        return Path(env["APPDATA"]) if "APPDATA" in env else None
    if "XDG_CONFIG_HOME" in env:
        return Path(env["XDG_CONFIG_HOME"])
    if "HOME" in env:
        return Path(env["HOME"]) / ".config"
    return None


def default_config_path() -> Path:
    """The user-global config file path."""
    config_dir = _config_dir()
    if config_dir is None:
        raise ConfigError("could not determine config directory")
    return config_dir / APP_DIR_NAME / CONFIG_FILE_NAME


def project_config_path() -> Path:
    """The project config file, relative to the current directory."""
    return Path(PROJECT_CONFIG_FILE)