"""Schema introspection over the information_schema catalog."""

import logging
from typing import Optional

from postgres_mcp.core.executor import StatementExecutor
from postgres_mcp.errors import GatewayError, NoColumnsFound, TableNotFound
from postgres_mcp.models.table import ColumnInfo

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = "public"

LIST_TABLES_SQL = """
SELECT table_name::text AS table_name
FROM information_schema.tables
WHERE table_schema = $1 AND table_type = 'BASE TABLE'
ORDER BY table_name
"""

TABLE_EXISTS_SQL = """
SELECT 1 AS found
FROM information_schema.tables
WHERE table_schema = $1 AND table_name = $2
"""

TABLE_COLUMNS_SQL = """
SELECT
    column_name::text AS column_name,
    data_type::text AS data_type,
    is_nullable::text AS is_nullable,
    column_default::text AS column_default,
    ordinal_position::int AS ordinal_position
FROM information_schema.columns
WHERE table_schema = $1 AND table_name = $2
ORDER BY ordinal_position
"""


class SchemaInspector:
    """Reads table and column metadata for the default schema."""

    def __init__(self, executor: StatementExecutor, schema: str = DEFAULT_SCHEMA):
        """
        Initialize schema inspector.

        Args:
            executor: Statement executor used for catalog queries
            schema: Schema to inspect
        """
        self.executor = executor
        self.schema = schema
        # Tables that failed during the most recent get_all_table_schemas call
        self.last_failures: dict[str, str] = {}

    async def list_tables(self, db_alias: Optional[str] = None) -> list[str]:
        """
        List base tables in the schema, ordered by name.

        Raises:
            ConnectionNotFound: If the alias is not registered
            QueryExecutionError: If the catalog query fails
        """
        rows = await self.executor.fetch_rows(
            LIST_TABLES_SQL, [self.schema], db_alias
        )
        return [row["table_name"] for row in rows]

    async def get_table_schema(
        self, table_name: str, db_alias: Optional[str] = None
    ) -> list[ColumnInfo]:
        """
        Get the columns of one table.

        Args:
            table_name: Table name within the schema
            db_alias: Database alias (default alias if omitted)

        Returns:
            Columns ordered by ordinal position

        Raises:
            ConnectionNotFound: If the alias is not registered
            TableNotFound: If the table does not exist
            NoColumnsFound: If the table exists but has no visible columns
            QueryExecutionError: If a catalog query fails
        """
        params = [self.schema, table_name]

        exists = await self.executor.fetch_rows(TABLE_EXISTS_SQL, params, db_alias)
        if not exists:
            raise TableNotFound(table_name)

        rows = await self.executor.fetch_rows(TABLE_COLUMNS_SQL, params, db_alias)
        if not rows:
            raise NoColumnsFound(table_name)

        return [ColumnInfo.from_catalog_row(row) for row in rows]

    async def get_all_table_schemas(
        self, db_alias: Optional[str] = None
    ) -> dict[str, list[ColumnInfo]]:
        """
        Get the columns of every base table.

        Tables are fetched one at a time. A table whose lookup fails maps to
        an empty list and is recorded in ``last_failures``; the remaining
        tables are still returned.

        Raises:
            ConnectionNotFound: If the alias is not registered
            QueryExecutionError: If the table list cannot be read
        """
        tables = await self.list_tables(db_alias)

        schemas: dict[str, list[ColumnInfo]] = {}
        failures: dict[str, str] = {}
        for table_name in tables:
            try:
                schemas[table_name] = await self.get_table_schema(table_name, db_alias)
            except GatewayError as e:
                logger.warning(f"Failed to get schema for table '{table_name}': {e}")
                failures[table_name] = str(e)
                schemas[table_name] = []

        self.last_failures = failures
        return schemas
