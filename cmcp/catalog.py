"""Aggregated tool catalog and TypeScript declaration generation."""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

TOOLS_DECLARATION = (
    "declare const tools: Array<{ server: string; name: string; "
    "description: string; input_schema: any }>;\n\n"
)


@dataclass
class CatalogEntry:
    """A tool together with the name of the server that provides it."""

    server: str
    name: str
    description: str
    input_schema: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "server": self.server,
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


@dataclass
class Catalog:
    """Tools gathered from every connected upstream server."""

    entries: list[CatalogEntry] = field(default_factory=list)

    def add_server_tools(self, server_name: str, tools: Iterable[Mapping[str, Any]]) -> None:
        """Register tools as listed by a server (``name``, ``description``, ``inputSchema``)."""
        for tool in tools:
            self.entries.append(
                CatalogEntry(
                    server=server_name,
                    name=str(tool["name"]),
                    description=tool.get("description") or "",
                    input_schema=tool.get("inputSchema", {}),
                )
            )

    def to_json_value(self) -> list[dict[str, Any]]:
        """All entries as JSON-ready dicts."""
        return [entry.to_dict() for entry in self.entries]

    def type_declarations(self) -> str:
        """TypeScript ``declare const`` blocks for the catalog and each server."""
        by_server: dict[str, list[CatalogEntry]] = {}
        for entry in self.entries:
            by_server.setdefault(entry.server, []).append(entry)

        parts = [TOOLS_DECLARATION]
        for server in sorted(by_server):
            js_name = server.replace("-", "_")
            if not is_valid_js_ident(js_name):
                continue
            parts.append(f"declare const {js_name}: {{\n")
            for tool in by_server[server]:
                params_type = schema_to_ts_params(tool.input_schema)
                desc = tool.description.replace("\n", " ").replace("*/", "* /")
                if desc:
                    parts.append(f"  /** {desc} */\n")
                name = tool.name if is_valid_js_ident(tool.name) else f'"{tool.name}"'
                parts.append(f"  {name}(params: {{ {params_type} }}): Promise<any>;\n")
            parts.append("};\n\n")
        return "".join(parts)

    def summary(self) -> str:
        """One-line count of tools, total and per server."""
        counts = Counter(entry.server for entry in self.entries)
        detail = ", ".join(f"{name}: {count} tools" for name, count in counts.items())
        return f"{len(self.entries)} total tools ({detail})"


def _get(schema: Any, key: str) -> Any:
    return schema.get(key) if isinstance(schema, Mapping) else None


def schema_to_ts_params(schema: Any) -> str:
    """Render an object schema's properties as ``name: type; other?: type``."""
    properties = _get(schema, "properties")
    if not isinstance(properties, Mapping):
        return ""

    required_value = _get(schema, "required")
    required = (
        {item for item in required_value if isinstance(item, str)}
        if isinstance(required_value, list)
        else set()
    )

    params = []
    for name in sorted(properties):
        ts_type = json_type_to_ts(properties[name])
        optional = "" if name in required else "?"
        label = name if is_valid_js_ident(name) else f'"{name}"'
        params.append(f"{label}{optional}: {ts_type}")
    return "; ".join(params)


def json_type_to_ts(schema: Any) -> str:
    """Map a JSON Schema fragment to a TypeScript type."""
    enum_values = _get(schema, "enum")
    if isinstance(enum_values, list):
        return " | ".join(
            f'"{value}"' if isinstance(value, str)
            else json.dumps(value, separators=(",", ":"), ensure_ascii=False)
            for value in enum_values
        )

    type_name = _get(schema, "type")
    if not isinstance(type_name, str):
        type_name = "any"

    match type_name:
        case "string" | "boolean" | "null":
            return type_name
        case "number" | "integer":
            return "number"
        case "array":
            items = _get(schema, "items")
            if isinstance(schema, Mapping) and "items" in schema:
                return f"{json_type_to_ts(items)}[]"
            return "any[]"
        case "object":
            props = _get(schema, "properties")
            if isinstance(props, Mapping) and props:
                return f"{{ {schema_to_ts_params(schema)} }}"
            return "Record<string, any>"
        case _:
            return "any"


def _is_ascii_alpha(ch: str) -> bool:
    return ch.isascii() and ch.isalpha()


def is_valid_js_ident(name: str) -> bool:
    """Whether ``name`` is a plain ASCII JavaScript identifier."""
    if not name:
        return False
    first, rest = name[0], name[1:]
    if not (_is_ascii_alpha(first) or first in "_$"):
        return False
    return all((ch.isascii() and ch.isalnum()) or ch in "_$" for ch in rest)