"""Building blocks for a code-mode MCP proxy: config, catalog, import, clients and results."""

__version__ = "0.1.0"

__all__ = ["catalog", "client", "config", "importer", "results"]