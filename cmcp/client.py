"""Connections to upstream MCP servers over stdio and streamable HTTP."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import re
import subprocess
import threading
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from cmcp.catalog import Catalog
from cmcp.config import HttpServerConfig, ServerConfig, SseServerConfig, StdioServerConfig

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-03-26"
CLIENT_INFO = {"name": "cmcp", "version": "0.1.0"}
SESSION_HEADER = "mcp-session-id"

_HEADER_NAME = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


class ClientError(Exception):
    """Raised when an upstream server cannot be reached or a request fails."""


def resolve_env(value: str) -> str:
    """Resolve an ``env:VAR`` reference to the variable's value (empty if unset)."""
    if value.startswith("env:"):
        return os.environ.get(value[len("env:"):], "")
    return value


def _valid_header(name: str, value: str) -> bool:
    if not _HEADER_NAME.fullmatch(name):
        return False
    return all(ch.isascii() and (ch == "\t" or (ch >= " " and ch != "\x7f")) for ch in value)


def build_http_headers(auth: str | None, headers: Mapping[str, str]) -> dict[str, str]:
    """Build request headers from a bearer token and custom headers.

    ``env:`` references are resolved; headers with invalid names or values are dropped.
    """
    result: dict[str, str] = {}
    for name, raw in headers.items():
        value = resolve_env(raw)
        if _valid_header(name, value):
            result[name] = value
    if auth is not None:
        result["Authorization"] = f"Bearer {resolve_env(auth)}"
    return result


def _is_response_to(message: Any, request_id: int) -> bool:
    return (
        isinstance(message, dict)
        and "method" not in message
        and message.get("id") == request_id
    )


def _find_response(payload: Any, request_id: int) -> dict[str, Any] | None:
    candidates = payload if isinstance(payload, list) else [payload]
    return next((m for m in candidates if _is_response_to(m, request_id)), None)


class _Transport(Protocol):
    def request(self, message: dict[str, Any]) -> dict[str, Any]: ...

    def notify(self, message: dict[str, Any]) -> None: ...

    def close(self) -> None: ...


class _StdioTransport:
    """Newline-delimited JSON-RPC over a child process's stdin and stdout."""

    def __init__(self, command: str, args: list[str], env: Mapping[str, str]) -> None:
        child_env = dict(os.environ)
        child_env.update({key: resolve_env(value) for key, value in env.items()})
        try:
            self._process = subprocess.Popen(
                [command, *args],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                env=child_env,
                text=True,
                encoding="utf-8",
                bufsize=1,
            )
        except OSError as exc:
            raise ClientError(f"failed to start {command}: {exc}") from exc

    def _write(self, message: dict[str, Any]) -> None:
        stdin = self._process.stdin
        if stdin is None or stdin.closed:
            raise ClientError("connection closed")
        try:
            stdin.write(json.dumps(message) + "\n")
            stdin.flush()
        except (OSError, ValueError) as exc:
            raise ClientError(f"failed to write to server: {exc}") from exc

    def _answer_server_request(self, message: dict[str, Any]) -> None:
        if message.get("method") == "ping":
            reply: dict[str, Any] = {"jsonrpc": "2.0", "id": message["id"], "result": {}}
        else:
            reply = {
                "jsonrpc": "2.0",
                "id": message["id"],
                "error": {"code": -32601, "message": "method not found"},
            }
        self._write(reply)

    def request(self, message: dict[str, Any]) -> dict[str, Any]:
        self._write(message)
        stdout = self._process.stdout
        if stdout is None:
            raise ClientError("connection closed")
        while True:
            try:
                line = stdout.readline()
            except (OSError, ValueError) as exc:
                raise ClientError(f"failed to read from server: {exc}") from exc
            if not line:
                raise ClientError("server closed the connection")
            line = line.strip()
            if not line:
                continue
            try:
                incoming = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("ignoring non-JSON line from server: %s", line)
                continue
            if isinstance(incoming, dict) and "method" in incoming and "id" in incoming:
                self._answer_server_request(incoming)
                continue
            response = _find_response(incoming, message["id"])
            if response is not None:
                return response

    def notify(self, message: dict[str, Any]) -> None:
        self._write(message)

    def close(self) -> None:
        process = self._process
        if process.stdin is not None:
            with contextlib.suppress(OSError, ValueError):
                process.stdin.close()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        if process.stdout is not None:
            process.stdout.close()


def _sse_data(text: str) -> Iterator[str]:
    data_lines: list[str] = []
    for line in text.splitlines():
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
        elif line.startswith("data:"):
            data_lines.append(line[len("data:"):].removeprefix(" "))
    if data_lines:
        yield "\n".join(data_lines)


class _HttpTransport:
    """JSON-RPC over streamable HTTP, accepting JSON or event-stream replies."""

    def __init__(self, url: str, headers: Mapping[str, str]) -> None:
        self._url = url
        self._session_id: str | None = None
        self._client = httpx.Client(
            headers=dict(headers), timeout=httpx.Timeout(30.0, read=600.0)
        )

    def _post(self, message: dict[str, Any]) -> httpx.Response:
        headers = {
            "Accept": "application/json, text/event-stream",
            "Content-Type": "application/json",
        }
        if self._session_id is not None:
            headers["Mcp-Session-Id"] = self._session_id
        try:
            response = self._client.post(self._url, content=json.dumps(message), headers=headers)
        except httpx.HTTPError as exc:
            raise ClientError(f"HTTP request failed: {exc}") from exc
        if response.status_code >= 400:
            raise ClientError(f"HTTP {response.status_code} from {self._url}")
        session_id = response.headers.get(SESSION_HEADER)
        if session_id:
            self._session_id = session_id
        return response

    def request(self, message: dict[str, Any]) -> dict[str, Any]:
        response = self._post(message)
        content_type = response.headers.get("content-type", "")
        if content_type.startswith("text/event-stream"):
            for data in _sse_data(response.text):
                try:
                    payload = json.loads(data)
                except json.JSONDecodeError:
                    continue
                found = _find_response(payload, message["id"])
                if found is not None:
                    return found
            raise ClientError("event stream ended without a response")
        try:
            payload = response.json()
        except ValueError as exc:
            raise ClientError(f"invalid JSON response: {exc}") from exc
        found = _find_response(payload, message["id"])
        if found is None:
            raise ClientError("no response to request")
        return found

    def notify(self, message: dict[str, Any]) -> None:
        self._post(message)

    def close(self) -> None:
        if self._session_id is not None:
            with contextlib.suppress(httpx.HTTPError):
                self._client.delete(self._url, headers={"Mcp-Session-Id": self._session_id})
        self._client.close()


class McpSession:
    """An initialized MCP client session with one upstream server."""

    def __init__(self, name: str, transport: _Transport) -> None:
        self.name = name
        self._transport = transport
        self._next_id = 0
        self._lock = threading.Lock()

    @classmethod
    def open(cls, name: str, config: ServerConfig) -> "McpSession":
        """Start the transport for ``config`` and perform the MCP handshake."""
        match config:
            case StdioServerConfig():
                label = "stdio"
                try:
                    transport: _Transport = _StdioTransport(config.command, config.args, config.env)
                except ClientError as exc:
                    raise ClientError(f"{label} connection to {name} failed: {exc}") from exc
            case HttpServerConfig() | SseServerConfig():
                # SSE servers are reached through the same streamable HTTP transport.
                label = "HTTP" if isinstance(config, HttpServerConfig) else "SSE"
                transport = _HttpTransport(config.url, build_http_headers(config.auth, config.headers))
            case _:
                raise ClientError(f"unsupported server config for {name}")

        session = cls(name, transport)
        try:
            session._initialize()
        except ClientError as exc:
            session.close()
            raise ClientError(f"{label} connection to {name} failed: {exc}") from exc
        return session

    def _initialize(self) -> None:
        self._request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": CLIENT_INFO,
            },
        )
        with self._lock:
            self._transport.notify({"jsonrpc": "2.0", "method": "notifications/initialized"})

    def _request(self, method: str, params: dict[str, Any]) -> Any:
        with self._lock:
            self._next_id += 1
            message = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params}
            reply = self._transport.request(message)
        error = reply.get("error")
        if error is not None:
            if isinstance(error, Mapping):
                detail = f"{error.get('message', 'unknown error')} (code {error.get('code')})"
            else:
                detail = str(error)
            raise ClientError(f"{method} failed: {detail}")
        return reply.get("result")

    def list_tools(self) -> list[dict[str, Any]]:
        """Return every tool the server offers, following pagination."""
        tools: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            params = {"cursor": cursor} if cursor is not None else {}
            result = self._request("tools/list", params)
            if not isinstance(result, Mapping):
                raise ClientError("tools/list returned no result")
            tools.extend(tool for tool in result.get("tools", []) if isinstance(tool, Mapping))
            cursor = result.get("nextCursor")
            if not cursor:
                return tools

    def call_tool(self, tool_name: str, arguments: Any = None) -> dict[str, Any]:
        """Call a tool; arguments that are not an object are left out."""
        params: dict[str, Any] = {"name": tool_name}
        if isinstance(arguments, Mapping):
            params["arguments"] = dict(arguments)
        result = self._request("tools/call", params)
        if not isinstance(result, dict):
            raise ClientError("tools/call returned no result")
        return result

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> "McpSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@dataclass
class _Upstream:
    session: McpSession
    config: ServerConfig
    lock: threading.Lock = field(default_factory=threading.Lock)


def _connect_one(name: str, config: ServerConfig) -> tuple[McpSession, list[dict[str, Any]]]:
    session = McpSession.open(name, config)
    try:
        tools = session.list_tools()
    except ClientError:
        session.close()
        raise
    return session, tools


class ClientPool:
    """Sessions with all connected upstream servers, keyed by server name."""

    def __init__(self) -> None:
        self._servers: dict[str, _Upstream] = {}

    @classmethod
    def connect(cls, configs: Mapping[str, ServerConfig]) -> tuple["ClientPool", Catalog]:
        """Connect to every server and build the catalog; failures are skipped with a warning."""
        pool = cls()
        catalog = Catalog()
        for name, config in configs.items():
            try:
                session, tools = _connect_one(name, config)
            except ClientError as exc:
                logger.warning("failed to connect to %s, skipping: %s", name, exc)
                continue
            logger.info("connected to %s (%d tools)", name, len(tools))
            catalog.add_server_tools(name, tools)
            pool._servers[name] = _Upstream(session=session, config=config)
        return pool, catalog

    @property
    def server_names(self) -> list[str]:
        return sorted(self._servers)

    def call_tool(self, server_name: str, tool_name: str, arguments: Any = None) -> dict[str, Any]:
        """Call a tool on one server, reconnecting once if the call fails."""
        upstream = self._servers.get(server_name)
        if upstream is None:
            raise ClientError(f"no server named '{server_name}'")

        with upstream.lock:
            try:
                return upstream.session.call_tool(tool_name, arguments)
            except ClientError as first_err:
                logger.warning(
                    "tool call on %s failed, attempting reconnect: %s", server_name, first_err
                )
                try:
                    new_session, _tools = _connect_one(server_name, upstream.config)
                except ClientError as reconnect_err:
                    raise ClientError(
                        f"tool call {server_name}.{tool_name} failed: {first_err}; "
                        f"reconnect also failed: {reconnect_err}"
                    ) from reconnect_err

                old_session, upstream.session = upstream.session, new_session
                with contextlib.suppress(ClientError, OSError):
                    old_session.close()

                try:
                    return upstream.session.call_tool(tool_name, arguments)
                except ClientError as retry_err:
                    raise ClientError(
                        f"tool call {server_name}.{tool_name} failed after reconnect: {retry_err}"
                    ) from retry_err

    def close(self) -> None:
        """Close every session."""
        for upstream in self._servers.values():
            with contextlib.suppress(ClientError, OSError):
                upstream.session.close()
        self._servers.clear()

    def __enter__(self) -> "ClientPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()