"""Alias to connection registry."""

import logging
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from postgres_mcp.core.connection import DatabaseConnection
from postgres_mcp.errors import ConnectionNotFound
from postgres_mcp.models.config import DatabaseConfig

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[str, DatabaseConfig], DatabaseConnection]


class ConnectionRegistry:
    """Owns one pooled connection per database alias.

    The alias map is never mutated in place. ``initialize`` builds a complete
    replacement and swaps it in with a single assignment, so concurrent
    ``resolve`` calls always see either the old or the new map.
    """

    def __init__(self, connection_factory: ConnectionFactory = DatabaseConnection):
        """
        Initialize an empty registry.

        Args:
            connection_factory: Callable creating a handle from an alias and
                its configuration
        """
        self._connection_factory = connection_factory
        self._connections: Mapping[str, DatabaseConnection] = MappingProxyType({})

    async def initialize(self, configs: Mapping[str, DatabaseConfig]) -> None:
        """
        Replace every registered connection.

        A connection that fails to initialize is logged and left out; the
        remaining aliases are still registered.

        Args:
            configs: Connection parameters keyed by alias
        """
        connections: dict[str, DatabaseConnection] = {}
        for alias, config in configs.items():
            try:
                connections[alias] = self._connection_factory(alias, config)
                logger.info(f"Registered database '{alias}' ({config.display_url})")
            except Exception as e:
                logger.error(
                    f"Failed to initialize database connection for alias '{alias}': {e}"
                )

        previous = self._connections
        self._connections = MappingProxyType(connections)

        await self._dispose_all(previous)

        if not connections:
            logger.warning("No database connections are registered")

    def resolve(
        self, alias: Optional[str], default_alias: str
    ) -> DatabaseConnection:
        """
        Look up the connection for an alias.

        Args:
            alias: Requested alias; None falls back to default_alias
            default_alias: Alias used when none is requested

        Returns:
            Registered connection handle

        Raises:
            ConnectionNotFound: If the resolved alias is not registered
        """
        name = alias or default_alias
        connections = self._connections
        connection = connections.get(name)
        if connection is None:
            raise ConnectionNotFound(name, connections.keys())
        return connection

    async def shutdown(self) -> None:
        """Close every connection and clear the registry."""
        previous = self._connections
        self._connections = MappingProxyType({})
        await self._dispose_all(previous)

    async def _dispose_all(self, connections: Mapping[str, DatabaseConnection]) -> None:
        for alias, connection in connections.items():
            try:
                await connection.dispose()
            except Exception as e:
                logger.error(f"Error closing database connection '{alias}': {e}")

    @property
    def aliases(self) -> list[str]:
        """Registered aliases in sorted order."""
        return sorted(self._connections)

    @property
    def is_empty(self) -> bool:
        """Check whether no connection is registered."""
        return not self._connections

    def __contains__(self, alias: object) -> bool:
        return alias in self._connections

    def __len__(self) -> int:
        return len(self._connections)
