"""Discover MCP server definitions in other tools' configuration files."""

from __future__ import annotations

import json
import os
import sys
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from cmcp.config import HttpServerConfig, ServerConfig, SseServerConfig, StdioServerConfig


class ImportConfigError(Exception):
    """Raised when an external config file or server entry cannot be used."""


class ImportSource(Enum):
    """The tool whose configuration a server was found in."""

    CLAUDE_CODE = "claude"
    CODEX = "codex"

    def __str__(self) -> str:
        return self.value


@dataclass
class ImportedServer:
    """A server definition discovered in an external configuration."""

    name: str
    config: ServerConfig
    source: ImportSource


def discover(source_filter: ImportSource | None = None) -> list[ImportedServer]:
    """Scan all known config locations, optionally limited to one source."""
    servers: list[ImportedServer] = []
    if source_filter in (None, ImportSource.CLAUDE_CODE):
        servers.extend(_discover_claude_code())
    if source_filter in (None, ImportSource.CODEX):
        servers.extend(_discover_codex())
    return servers


def _home_dir() -> Path:
    home = os.environ.get("HOME")
    if home is None:
        raise ImportConfigError("HOME not set")
    return Path(home)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ImportConfigError(f"failed to read {path}: {exc}") from exc


def _warn_skip(name: str, error: Exception) -> None:
    print(f"  warning: skipping {name}: {error}", file=sys.stderr)


# Claude


def _discover_claude_code() -> list[ImportedServer]:
    candidates = [_home_dir() / ".claude.json", Path(".mcp.json")]
    servers: list[ImportedServer] = []
    for path in candidates:
        if path.exists():
            servers.extend(parse_claude_code_json(path))
    return servers


def parse_claude_code_json(path: str | os.PathLike[str]) -> list[ImportedServer]:
    """Read the ``mcpServers`` object of a JSON config; bad entries are skipped with a warning."""
    path = Path(path)
    content = _read_text(path)
    try:
        root = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ImportConfigError(f"failed to parse {path}: {exc}") from exc

    mcp_servers = root.get("mcpServers") if isinstance(root, Mapping) else None
    if not isinstance(mcp_servers, Mapping):
        return []

    servers: list[ImportedServer] = []
    for name in sorted(mcp_servers):
        try:
            server = parse_claude_code_server(name, mcp_servers[name])
        except ImportConfigError as exc:
            _warn_skip(name, exc)
            continue
        if server is not None:
            servers.append(server)
    return servers


def parse_claude_code_server(name: str, value: Any) -> ImportedServer | None:
    """Convert one JSON server entry; unsupported transports give ``None``."""
    if not isinstance(value, Mapping):
        raise ImportConfigError("server config is not an object")

    transport = value.get("type")
    if not isinstance(transport, str):
        transport = "stdio"

    config: ServerConfig
    match transport:
        case "stdio":
            command = _required_str(value, "command")
            config = StdioServerConfig(
                command=command,
                args=_string_list(value.get("args")),
                env=_string_map(value.get("env")),
            )
        case "http" | "sse":
            url = _required_str(value, "url")
            auth, headers = extract_auth_header(_string_map(value.get("headers")))
            kind = HttpServerConfig if transport == "http" else SseServerConfig
            config = kind(url=url, auth=auth, headers=headers)
        case _:
            # Internal transports (ws, sse-ide, ws-ide, sdk, ...) are not proxied.
            return None

    return ImportedServer(name=name, config=config, source=ImportSource.CLAUDE_CODE)


# Codex


def _discover_codex() -> list[ImportedServer]:
    candidates = [
        _home_dir() / ".codex" / "config.toml",
        Path(".codex") / "config.toml",
    ]
    servers: list[ImportedServer] = []
    for path in candidates:
        if path.exists():
            servers.extend(parse_codex_toml(path))
    return servers


def parse_codex_toml(path: str | os.PathLike[str]) -> list[ImportedServer]:
    """Read the ``mcp_servers`` table of a TOML config; bad entries are skipped with a warning."""
    path = Path(path)
    content = _read_text(path)
    try:
        root = tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        raise ImportConfigError(f"failed to parse {path}: {exc}") from exc

    mcp_servers = root.get("mcp_servers")
    if not isinstance(mcp_servers, Mapping):
        return []

    servers: list[ImportedServer] = []
    for name in sorted(mcp_servers):
        try:
            server = parse_codex_server(name, mcp_servers[name])
        except ImportConfigError as exc:
            _warn_skip(name, exc)
            continue
        if server is not None:
            servers.append(server)
    return servers


def parse_codex_server(name: str, value: Any) -> ImportedServer | None:
    """Convert one TOML server table; disabled servers give ``None``."""
    if not isinstance(value, Mapping):
        raise ImportConfigError("server config is not a table")

    enabled = value.get("enabled")
    if isinstance(enabled, bool) and not enabled:
        return None

    config: ServerConfig
    if "url" in value:
        url = _required_str(value, "url")

        env_var = value.get("bearer_token_env_var")
        if isinstance(env_var, str):
            auth: str | None = f"env:{env_var}"
        else:
            token = value.get("bearer_token")
            auth = token if isinstance(token, str) else None

        headers = _string_map(value.get("http_headers"))
        env_headers = value.get("env_http_headers")
        if isinstance(env_headers, Mapping):
            headers.update(
                (key, f"env:{var}") for key, var in env_headers.items() if isinstance(var, str)
            )

        config = HttpServerConfig(url=url, auth=auth, headers=headers)
    elif "command" in value:
        command = _required_str(value, "command")
        env = _string_map(value.get("env"))
        env_vars = value.get("env_vars")
        if isinstance(env_vars, list):
            env.update((var, f"env:{var}") for var in env_vars if isinstance(var, str))
        config = StdioServerConfig(
            command=command,
            args=_string_list(value.get("args")),
            env=env,
        )
    else:
        raise ImportConfigError("server has neither 'url' nor 'command'")

    return ImportedServer(name=name, config=config, source=ImportSource.CODEX)


# Helpers


def _required_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ImportConfigError(f"missing {key}")
    return value


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _string_map(value: Any) -> dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {key: item for key, item in value.items() if isinstance(item, str)}


def extract_auth_header(
    headers: Mapping[str, str],
) -> tuple[str | None, dict[str, str]]:
    """Split a bearer ``Authorization`` header into a token and the remaining headers.

    A non-bearer ``Authorization`` value stays among the headers.
    """
    remaining = dict(headers)
    if "Authorization" in remaining:
        value: str | None = remaining.pop("Authorization")
    else:
        value = remaining.pop("authorization", None)

    if value is None:
        return None, remaining
    for prefix in ("Bearer ", "bearer "):
        if value.startswith(prefix):
            return value[len(prefix):], remaining
    remaining["Authorization"] = value
    return None, remaining