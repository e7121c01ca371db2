"""Utility modules for the PostgreSQL MCP server."""

from postgres_mcp.utils.serialization import (
    SERIALIZATION_FALLBACK,
    convert_row_to_json_safe,
    convert_rows_to_json_safe,
    convert_value_to_json_safe,
    dumps,
    serialize,
)

__all__ = [
    "SERIALIZATION_FALLBACK",
    "convert_value_to_json_safe",
    "convert_row_to_json_safe",
    "convert_rows_to_json_safe",
    "dumps",
    "serialize",
]
