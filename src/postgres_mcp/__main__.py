"""Entry point for running postgres_mcp as a module."""

from postgres_mcp.server import cli_entry

if __name__ == "__main__":
    cli_entry()
