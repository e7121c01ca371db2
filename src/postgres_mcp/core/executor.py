"""Parameterized statement execution."""

import asyncio
import logging
from typing import Any, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from postgres_mcp.core.registry import ConnectionRegistry
from postgres_mcp.errors import CommandExecutionError, QueryExecutionError
from postgres_mcp.utils import convert_rows_to_json_safe, serialize

logger = logging.getLogger(__name__)

# Errors raised by the driver or while reaching the server
DRIVER_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


def driver_message(error: BaseException) -> str:
    """Extract the underlying driver message from a wrapped error."""
    orig = getattr(error, "orig", None)
    if orig is not None:
        return str(orig)
    return str(error)


async def run_statement(
    conn: AsyncConnection, statement: str, params: Optional[Sequence[Any]] = None
):
    """
    Execute an opaque statement with positional parameters.

    The text goes to the driver unchanged; parameters are bound by the
    driver, never interpolated.
    """
    if params:
        return await conn.exec_driver_sql(statement, tuple(params))
    return await conn.exec_driver_sql(statement)


class StatementExecutor:
    """Runs single statements against the connection registered for an alias."""

    def __init__(self, registry: ConnectionRegistry, default_alias: str = "main"):
        """
        Initialize statement executor.

        Args:
            registry: Connection registry used to resolve aliases
            default_alias: Alias used when a call names none
        """
        self.registry = registry
        self.default_alias = default_alias

    async def fetch_rows(
        self,
        statement: str,
        params: Optional[Sequence[Any]] = None,
        db_alias: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a statement and return its result rows.

        Args:
            statement: SQL statement
            params: Positional parameters
            db_alias: Database alias (default alias if omitted)

        Returns:
            JSON-safe row dictionaries; empty if the statement returns no rows

        Raises:
            ConnectionNotFound: If the alias is not registered
            QueryExecutionError: If the driver rejects the statement
        """
        connection = self.registry.resolve(db_alias, self.default_alias)
        logger.debug(f"Running statement on '{connection.alias}'")

        try:
            async with connection.begin() as conn:
                result = await run_statement(conn, statement, params)
                if not result.returns_rows:
                    return []
                rows = [dict(row) for row in result.mappings().all()]
        except DRIVER_ERRORS as e:
            raise QueryExecutionError(driver_message(e)) from e

        return convert_rows_to_json_safe(rows)

    async def query(
        self,
        statement: str,
        params: Optional[Sequence[Any]] = None,
        db_alias: Optional[str] = None,
    ) -> str:
        """Execute a query and return its rows serialized as JSON."""
        rows = await self.fetch_rows(statement, params, db_alias)
        return serialize(rows)

    async def execute(
        self,
        statement: str,
        params: Optional[Sequence[Any]] = None,
        db_alias: Optional[str] = None,
    ) -> int:
        """
        Execute a data-modifying statement.

        Args:
            statement: SQL statement
            params: Positional parameters
            db_alias: Database alias (default alias if omitted)

        Returns:
            Number of affected rows (0 when the driver reports none)

        Raises:
            ConnectionNotFound: If the alias is not registered
            CommandExecutionError: If the driver rejects the statement
        """
        connection = self.registry.resolve(db_alias, self.default_alias)
        logger.debug(f"Running statement on '{connection.alias}'")

        try:
            async with connection.begin() as conn:
                result = await run_statement(conn, statement, params)
                return affected_rows(result)
        except DRIVER_ERRORS as e:
            raise CommandExecutionError(driver_message(e)) from e


def affected_rows(result) -> int:
    """Row count reported by the driver, clamped to zero when unknown."""
    count = result.rowcount
    return count if count and count > 0 else 0
