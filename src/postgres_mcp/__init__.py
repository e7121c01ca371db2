"""
postgres_mcp - PostgreSQL MCP server with named database connections

A Model Context Protocol (MCP) server that exposes parameterized queries,
data-modifying statements, transactions and schema introspection across
several PostgreSQL databases.
"""

__version__ = "1.0.0"

from .errors import (
    CommandExecutionError,
    ConnectionNotFound,
    GatewayError,
    NoColumnsFound,
    QueryExecutionError,
    TableNotFound,
    TransactionAborted,
)
from .models.config import DatabaseConfig, ServerConfig
from .models.query import (
    Operation,
    OperationResult,
    TransactionFailure,
    TransactionSuccess,
)
from .models.table import ColumnInfo
from .server import PostgresMCPServer, create_postgres_mcp

__all__ = [
    "PostgresMCPServer",
    "create_postgres_mcp",
    "DatabaseConfig",
    "ServerConfig",
    "Operation",
    "OperationResult",
    "TransactionSuccess",
    "TransactionFailure",
    "ColumnInfo",
    "GatewayError",
    "ConnectionNotFound",
    "QueryExecutionError",
    "CommandExecutionError",
    "TableNotFound",
    "NoColumnsFound",
    "TransactionAborted",
]
