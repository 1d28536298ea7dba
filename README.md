# cmcp

`cmcp` holds the building blocks of a code-mode MCP proxy: a proxy that gathers
the tools of many MCP servers into one catalog so an agent can search that
catalog and call tools across servers.

- `cmcp.config`: the server list, stored as TOML, with user, project and
  explicit-file scopes that are merged in that order.
- `cmcp.catalog`: the aggregated tool catalog, a one-line summary, and
  TypeScript type declarations generated from each tool's JSON Schema.
- `cmcp.importer`: discovery of servers already configured for Claude and Codex.
- `cmcp.client`: MCP client sessions with upstream servers over streamable HTTP
  (also used for SSE servers) or a child process on stdio, pooled by server name,
  with one reconnect attempt when a tool call fails.
- `cmcp.results`: truncation of long responses and extraction of image blocks.

## Configuration

Servers live in a TOML file. The user-wide file sits in the platform's config
directory (`$XDG_CONFIG_HOME` or `~/.config` on Linux, `~/.config` on macOS,
`%APPDATA%` on Windows) under `code-mode-mcp/config.toml`; a project may add
`.cmcp.toml` in its working directory.

```toml
[servers.canva]
transport = "http"
url = "https://mcp.example.com/mcp"

[servers.chrome-devtools]
transport = "stdio"
command = "npx"
args = ["chrome-devtools-mcp"]
```

Each server has a `transport` of `http`, `sse` or `stdio`. HTTP and SSE servers
take a `url`, an optional bearer `auth` value and optional `headers`. Stdio
servers take a `command`, optional `args` and an optional `env` table. Any
`auth`, header or `env` value written as `env:NAME` is read from the
environment variable `NAME` when the connection is made (empty if unset).

```python
from pathlib import Path

from cmcp.config import Config, Scope, StdioServerConfig

path = Scope.from_str("project").config_path()
config = Config.load_from(path)          # a missing file gives an empty config
config.add_server("files", StdioServerConfig(command="file-server", args=["--root", "."]))
config.save_to(path)

merged = Config.load_merged(Path("proxy.toml"))
print(sorted(merged.servers))
```

`Scope.from_str` accepts `user` (or `global`), `project` and `local`; `user`
and `local` both resolve to the user-wide file. `Config.load_merged` starts
from the user file, then lets the project file and the explicit file override
servers of the same name. Problems reading, parsing or writing a file raise
`cmcp.config.ConfigError`.

## Connecting to servers

```python
from cmcp.client import ClientPool
from cmcp.config import Config

pool, catalog = ClientPool.connect(Config.load_merged().servers)
with pool:
    print(catalog.summary())             # e.g. "3 total tools (files: 3 tools)"
    print(catalog.type_declarations())   # declare const files: { ... };
    result = pool.call_tool("files", "read_file", {"path": "README.md"})
```

Servers that fail to connect are logged and left out of the pool and catalog.
`ClientPool.call_tool` raises `cmcp.client.ClientError` for an unknown server
name, and when a call fails both before and after one reconnect. A single
session can also be used on its own through `McpSession.open(name, config)`,
`list_tools()` and `call_tool(tool_name, arguments)`.

In the generated declarations, server names have hyphens replaced by
underscores, and tool or property names that are not plain identifiers are
quoted.

## Importing existing servers

```python
from cmcp.importer import ImportSource, discover

for server in discover(ImportSource.CODEX):
    print(server.source, server.name, server.config)
```

Passing `None` scans every known source: `~/.claude.json` and `.mcp.json` for
Claude, `~/.codex/config.toml` and `.codex/config.toml` for Codex. Entries that
cannot be read are skipped with a warning on stderr; disabled servers and
unsupported transports are left out. A bearer `Authorization` header becomes
the server's `auth` value.

## Shaping responses

```python
from cmcp.results import extract_images, truncate_response

result = {"content": [{"type": "image", "data": "...", "mimeType": "image/png"}]}
images = extract_images(result)       # data in `result` becomes "[image #0 extracted]"
text = truncate_response("line\n" * 20_000, 40_000)
```

Truncation cuts at the last line break before the limit and appends a notice of
how many characters were left out. A limit of 0 disables truncation.

## What this package does not do

The package has no sandbox in which agent-written TypeScript is run, so it
offers no `search` or `execute` operation of its own, and it does not serve
anything as an MCP server. There is no command-line program either: the
configuration, catalog, import and client pieces are used from Python.