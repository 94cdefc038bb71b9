"""Atlas Scientific EZO stamp protocol library and MCP server."""

__version__ = "0.1.0"
