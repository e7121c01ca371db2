"""Error types raised by the gateway core."""

from typing import Iterable


class GatewayError(Exception):
    """Base class for all gateway errors."""


class ConnectionNotFound(GatewayError):
    """No connection is registered under the requested alias."""

    def __init__(self, alias: str, available: Iterable[str] = ()):
        self.alias = alias
        self.available = sorted(available)
        listed = ", ".join(self.available) if self.available else "none"
        super().__init__(
            f"Database connection '{alias}' not found "
            f"(registered aliases: {listed})"
        )


class QueryExecutionError(GatewayError):
    """The driver rejected a query."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Query execution failed: {message}")


class CommandExecutionError(GatewayError):
    """The driver rejected a data-modifying command."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Command execution failed: {message}")


class TableNotFound(GatewayError):
    """The table does not exist in the default schema."""

    def __init__(self, table_name: str):
        self.table_name = table_name
        super().__init__(f"Table '{table_name}' not found")


class NoColumnsFound(GatewayError):
    """The table exists but introspection returned no columns."""

    def __init__(self, table_name: str):
        self.table_name = table_name
        super().__init__(f"No columns found for table '{table_name}'")


class TransactionAborted(GatewayError):
    """A statement inside a transaction failed; the transaction was rolled back."""

    def __init__(self, index: int, message: str):
        self.index = index
        self.message = message
        super().__init__(f"Error executing operation {index}: {message}")
