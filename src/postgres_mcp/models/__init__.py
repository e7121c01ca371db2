"""Pydantic models for configuration, statements and results."""

from .config import DatabaseConfig, ServerConfig
from .query import (
    AllSchemasParams,
    Operation,
    OperationResult,
    SchemaParams,
    StatementParams,
    TransactionFailure,
    TransactionOutcome,
    TransactionParams,
    TransactionSuccess,
)
from .table import ColumnInfo, TableSchema

__all__ = [
    "DatabaseConfig",
    "ServerConfig",
    "Operation",
    "StatementParams",
    "SchemaParams",
    "AllSchemasParams",
    "TransactionParams",
    "OperationResult",
    "TransactionSuccess",
    "TransactionFailure",
    "TransactionOutcome",
    "ColumnInfo",
    "TableSchema",
]
