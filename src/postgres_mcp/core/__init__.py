"""Core gateway functionality."""

from .connection import DatabaseConnection
from .executor import StatementExecutor
from .inspector import SchemaInspector
from .registry import ConnectionRegistry
from .transaction import ProgressObserver, TransactionCoordinator

__all__ = [
    "DatabaseConnection",
    "ConnectionRegistry",
    "StatementExecutor",
    "TransactionCoordinator",
    "ProgressObserver",
    "SchemaInspector",
]
