"""PostgreSQL MCP Server

A Model Context Protocol (MCP) server exposing parameterized queries,
data-modifying statements, transactions and schema introspection for
several named PostgreSQL connections.
"""

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar
from urllib.parse import unquote

from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.types import ResourceTemplate, TextContent, Tool
from pydantic import BaseModel, ValidationError

from postgres_mcp.config import (
    get_server_config,
    load_database_configs,
    load_env_file,
    validate_env_vars,
)
from postgres_mcp.core import (
    ConnectionRegistry,
    ProgressObserver,
    SchemaInspector,
    StatementExecutor,
    TransactionCoordinator,
)
from postgres_mcp.errors import GatewayError, NoColumnsFound, TableNotFound
from postgres_mcp.models.config import DatabaseConfig, ServerConfig
from postgres_mcp.models.query import (
    AllSchemasParams,
    Operation,
    SchemaParams,
    StatementParams,
    TransactionParams,
)
from postgres_mcp.models.table import ColumnInfo
from postgres_mcp.transport import run_http, run_stdio
from postgres_mcp.utils import SERIALIZATION_FALLBACK, serialize

logger = logging.getLogger(__name__)

ParamsT = TypeVar("ParamsT", bound=BaseModel)

DB_ALIAS_PROPERTY = {
    "type": "string",
    "description": "Database alias (defaults to the configured default alias)",
}
PARAMS_PROPERTY = {
    "type": "array",
    "items": {},
    "description": "Positional parameters bound to $1, $2, ...",
    "default": [],
}


@dataclass
class ToolBinding:
    """A tool definition and the coroutine that serves it."""

    tool: Tool
    handler: Callable[[dict[str, Any]], Awaitable[list[TextContent]]]


@dataclass
class ResourceBinding:
    """A resource template and the coroutine that reads matching URIs."""

    template: ResourceTemplate
    pattern: re.Pattern
    handler: Callable[[dict[str, str]], Awaitable[str]]

    def match(self, uri: str) -> Optional[dict[str, str]]:
        found = self.pattern.match(uri)
        if found is None:
            return None
        return {key: unquote(value) for key, value in found.groupdict().items()}


def rows_affected_message(count: int) -> str:
    return f"Rows affected: {count}"


class PostgresMCPServer:
    """MCP server routing PostgreSQL operations across database aliases."""

    def __init__(
        self,
        server_config: Optional[ServerConfig] = None,
        database_configs: Optional[dict[str, DatabaseConfig]] = None,
        registry: Optional[ConnectionRegistry] = None,
    ):
        """
        Initialize PostgreSQL MCP server.

        Handlers are registered immediately; connections are opened by
        ``initialize``.

        Args:
            server_config: Server settings (defaults if omitted)
            database_configs: Connection parameters keyed by alias
            registry: Connection registry to use instead of a new one
        """
        self.config = server_config or ServerConfig()
        self.database_configs = dict(database_configs or {})
        self.registry = registry or ConnectionRegistry()

        default_alias = self.config.default_db_alias
        self.executor = StatementExecutor(self.registry, default_alias)
        self.coordinator = TransactionCoordinator(self.registry, default_alias)
        self.inspector = SchemaInspector(self.executor)

        self.server = Server(self.config.name, version=self.config.version)
        self.tools: dict[str, ToolBinding] = {}
        self.resource_templates: list[ResourceBinding] = []

        self._build_tools()
        self._build_resource_templates()
        self._register_handlers()

    async def initialize(self) -> None:
        """Open a connection handle for every configured alias."""
        await self.registry.initialize(self.database_configs)
        logger.info(
            f"Initialized {self.config.name} with {len(self.registry)} database(s): "
            f"{', '.join(self.registry.aliases) or 'none'}"
        )

    # Tool registry

    def _build_tools(self) -> None:
        bindings = [
            ToolBinding(
                Tool(
                    name="query_tool",
                    description="Execute a SQL query and return the result rows as JSON",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "statement": {
                                "type": "string",
                                "description": "SQL query to execute",
                            },
                            "params": PARAMS_PROPERTY,
                            "dbAlias": DB_ALIAS_PROPERTY,
                        },
                        "required": ["statement"],
                    },
                ),
                self.handle_query_tool,
            ),
            ToolBinding(
                Tool(
                    name="execute_tool",
                    description="Execute a data-modifying SQL statement (INSERT, UPDATE, DELETE)",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "statement": {
                                "type": "string",
                                "description": "SQL statement to execute",
                            },
                            "params": PARAMS_PROPERTY,
                            "dbAlias": DB_ALIAS_PROPERTY,
                        },
                        "required": ["statement"],
                    },
                ),
                self.handle_execute_tool,
            ),
            ToolBinding(
                Tool(
                    name="schema_tool",
                    description="Get the column definitions of a table",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "tableName": {
                                "type": "string",
                                "description": "Table name",
                            },
                            "dbAlias": DB_ALIAS_PROPERTY,
                        },
                        "required": ["tableName"],
                    },
                ),
                self.handle_schema_tool,
            ),
            ToolBinding(
                Tool(
                    name="all_schemas_tool",
                    description="Get the column definitions of every table",
                    inputSchema={
                        "type": "object",
                        "properties": {"dbAlias": DB_ALIAS_PROPERTY},
                        "required": [],
                    },
                ),
                self.handle_all_schemas_tool,
            ),
            ToolBinding(
                Tool(
                    name="transaction_tool",
                    description="Execute several SQL statements atomically in one transaction",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "operations": {
                                "type": "array",
                                "description": "Statements to run in order",
                                "items": {
                                    "type": "object",
                                    "properties": {
                                        "statement": {"type": "string"},
                                        "params": PARAMS_PROPERTY,
                                    },
                                    "required": ["statement"],
                                },
                            },
                            "dbAlias": DB_ALIAS_PROPERTY,
                        },
                        "required": ["operations"],
                    },
                ),
                self.handle_transaction_tool,
            ),
        ]
        self.tools = {binding.tool.name: binding for binding in bindings}

    def _parse_arguments(
        self, model: type[ParamsT], tool_name: str, arguments: Optional[dict[str, Any]]
    ) -> ParamsT:
        try:
            return model.model_validate(arguments or {})
        except ValidationError as e:
            raise ValueError(f"Invalid arguments for {tool_name}: {e}") from e

    async def handle_tool(
        self, name: str, arguments: Optional[dict[str, Any]]
    ) -> list[TextContent]:
        """Dispatch a tool call by name."""
        binding = self.tools.get(name)
        if binding is None:
            raise ValueError(f"Unknown tool: {name}")
        logger.info(f"Tool call: {name}")
        return await binding.handler(arguments or {})

    async def handle_query_tool(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle query_tool request."""
        params = self._parse_arguments(StatementParams, "query_tool", arguments)
        try:
            text = await self.executor.query(
                params.statement, params.params, params.db_alias
            )
        except GatewayError as e:
            raise ValueError(f"Query error: {e}") from e
        return [TextContent(type="text", text=text)]

    async def handle_execute_tool(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle execute_tool request."""
        params = self._parse_arguments(StatementParams, "execute_tool", arguments)
        try:
            count = await self.executor.execute(
                params.statement, params.params, params.db_alias
            )
        except GatewayError as e:
            raise ValueError(f"Execution error: {e}") from e
        return [TextContent(type="text", text=rows_affected_message(count))]

    async def handle_schema_tool(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle schema_tool request."""
        params = self._parse_arguments(SchemaParams, "schema_tool", arguments)
        try:
            columns = await self.inspector.get_table_schema(
                params.table_name, params.db_alias
            )
        except GatewayError as e:
            raise ValueError(f"Schema retrieval error: {e}") from e
        return [TextContent(type="text", text=serialize(columns))]

    async def handle_all_schemas_tool(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle all_schemas_tool request."""
        params = self._parse_arguments(AllSchemasParams, "all_schemas_tool", arguments)
        try:
            schemas = await self.inspector.get_all_table_schemas(params.db_alias)
        except GatewayError as e:
            raise ValueError(f"Schema retrieval error: {e}") from e
        return [TextContent(type="text", text=serialize(schemas))]

    async def handle_transaction_tool(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle transaction_tool request.

        Statement failures are reported in the serialized outcome rather than
        as tool errors, so the client always learns which operation failed.
        """
        params = self._parse_arguments(TransactionParams, "transaction_tool", arguments)
        observer, pending = self._progress_observer()
        try:
            outcome = await self.coordinator.run(
                params.operations, params.db_alias, observer
            )
        except GatewayError as e:
            raise ValueError(f"Transaction error: {e}") from e
        finally:
            await self._flush_progress(pending)
        return [TextContent(type="text", text=serialize(outcome))]

    def _progress_observer(
        self,
    ) -> tuple[Optional[ProgressObserver], set[asyncio.Task]]:
        """Build an observer forwarding progress to the requesting client."""
        pending: set[asyncio.Task] = set()
        try:
            context = self.server.request_context
        except LookupError:
            # Called outside an MCP request
            return None, pending

        token = context.meta.progressToken if context.meta else None
        if token is None:
            return None, pending

        loop = asyncio.get_running_loop()

        def observer(progress: int, total: int) -> None:
            pending.add(
                loop.create_task(
                    context.session.send_progress_notification(
                        token, float(progress), total=float(total)
                    )
                )
            )

        return observer, pending

    async def _flush_progress(self, pending: set[asyncio.Task]) -> None:
        if not pending:
            return
        results = await asyncio.gather(*pending, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                logger.warning(f"Failed to send progress notification: {result}")

    # Resource registry

    def _build_resource_templates(self) -> None:
        self.resource_templates = [
            ResourceBinding(
                ResourceTemplate(
                    uriTemplate="db://{dbAlias}/schema/tables",
                    name="Database Tables",
                    description="List of tables in the public schema",
                    mimeType="application/json",
                ),
                re.compile(r"^db://(?P<dbAlias>[^/]+)/schema/tables$"),
                self.read_tables_resource,
            ),
            ResourceBinding(
                ResourceTemplate(
                    uriTemplate="db://{dbAlias}/schema/all",
                    name="All Table Schemas",
                    description="Column definitions of every table",
                    mimeType="application/json",
                ),
                re.compile(r"^db://(?P<dbAlias>[^/]+)/schema/all$"),
                self.read_all_schemas_resource,
            ),
            ResourceBinding(
                ResourceTemplate(
                    uriTemplate="db://{dbAlias}/schema/{tableName}",
                    name="Table Schema",
                    description="Column definitions of one table",
                    mimeType="application/json",
                ),
                re.compile(r"^db://(?P<dbAlias>[^/]+)/schema/(?P<tableName>[^/]+)$"),
                self.read_table_schema_resource,
            ),
        ]

    async def handle_resource(self, uri: str) -> str:
        """Read a resource by URI; the first matching template wins."""
        for binding in self.resource_templates:
            variables = binding.match(uri)
            if variables is not None:
                return await binding.handler(variables)
        raise ValueError(f"Unknown resource URI: {uri}")

    async def read_tables_resource(self, variables: dict[str, str]) -> str:
        try:
            tables = await self.inspector.list_tables(variables["dbAlias"])
        except GatewayError as e:
            raise ValueError(f"Failed to list tables: {e}") from e
        return serialize(tables)

    async def read_all_schemas_resource(self, variables: dict[str, str]) -> str:
        try:
            schemas = await self.inspector.get_all_table_schemas(variables["dbAlias"])
        except GatewayError as e:
            raise ValueError(f"Failed to get all schemas: {e}") from e
        return serialize(schemas)

    async def read_table_schema_resource(self, variables: dict[str, str]) -> str:
        try:
            columns = await self.inspector.get_table_schema(
                variables["tableName"], variables["dbAlias"]
            )
        except (TableNotFound, NoColumnsFound) as e:
            logger.info(f"Schema resource is empty: {e}")
            return SERIALIZATION_FALLBACK
        except GatewayError as e:
            raise ValueError(f"Failed to get schema: {e}") from e
        return serialize(columns)

    def _register_handlers(self) -> None:
        """Wire the tool and resource registries onto the MCP server."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            return [binding.tool for binding in self.tools.values()]

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            return await self.handle_tool(name, arguments)

        @self.server.list_resource_templates()
        async def list_resource_templates() -> list[ResourceTemplate]:
            return [binding.template for binding in self.resource_templates]

        @self.server.read_resource()
        async def read_resource(uri) -> list[ReadResourceContents]:
            text = await self.handle_resource(str(uri))
            return [ReadResourceContents(content=text, mime_type="application/json")]

    # Programmatic API

    async def execute_query(
        self,
        statement: str,
        params: Optional[list[Any]] = None,
        db_alias: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Run a query and return its rows."""
        return await self.executor.fetch_rows(statement, params, db_alias)

    async def execute_command(
        self,
        statement: str,
        params: Optional[list[Any]] = None,
        db_alias: Optional[str] = None,
    ) -> str:
        """Run a data-modifying statement and report the affected rows."""
        count = await self.executor.execute(statement, params, db_alias)
        return rows_affected_message(count)

    async def execute_transaction(
        self,
        operations: list[Any],
        db_alias: Optional[str] = None,
    ) -> str:
        """
        Run statements atomically and return the serialized outcome.

        Args:
            operations: Operation models or {"statement", "params"} mappings
            db_alias: Database alias (default alias if omitted)
        """
        parsed = [Operation.model_validate(operation) for operation in operations]
        outcome = await self.coordinator.run(parsed, db_alias)
        return serialize(outcome)

    async def list_tables(self, db_alias: Optional[str] = None) -> list[str]:
        return await self.inspector.list_tables(db_alias)

    async def get_table_schema(
        self, table_name: str, db_alias: Optional[str] = None
    ) -> list[ColumnInfo]:
        return await self.inspector.get_table_schema(table_name, db_alias)

    async def get_all_table_schemas(
        self, db_alias: Optional[str] = None
    ) -> dict[str, list[ColumnInfo]]:
        return await self.inspector.get_all_table_schemas(db_alias)

    # Lifecycle

    async def start(self) -> None:
        """Initialize connections and serve the configured transport until it stops."""
        await self.initialize()
        try:
            if self.config.transport == "http":
                await run_http(self)
            else:
                await run_stdio(self)
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Close every database connection."""
        await self.registry.shutdown()
        logger.info("Database connections closed")

    async def cleanup(self) -> None:
        """Cleanup resources."""
        await self.stop()


def create_postgres_mcp(
    database_configs: Optional[dict[str, DatabaseConfig]] = None,
    server_config: Optional[ServerConfig] = None,
) -> PostgresMCPServer:
    """
    Create a server for programmatic use.

    Args:
        database_configs: Connection parameters keyed by alias (read from
            the environment if omitted)
        server_config: Server settings (read from the environment if omitted)

    Returns:
        Server that still needs ``initialize()`` or ``start()``
    """
    if database_configs is None:
        database_configs = load_database_configs()
    if server_config is None:
        server_config = get_server_config()
    return PostgresMCPServer(server_config, database_configs)


def configure_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    # stderr keeps the stdio transport stream clean
    logging.basicConfig(level=getattr(logging, level, logging.INFO))


async def main() -> None:
    """Main entry point for the MCP server."""
    load_env_file()

    if not validate_env_vars():
        logger.warning(
            "Database environment variables are incomplete; defaults will be used"
        )

    mcp_server = create_postgres_mcp()
    await mcp_server.start()


def cli_entry() -> None:
    """
    Synchronous entry point for console script.

    This function is called by the 'postgres-mcp' console script.
    It sets up logging and the event loop and runs the async main() function.
    """
    configure_logging()

    # Windows-specific event loop policy
    if os.name == "nt":
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())  # type: ignore[attr-defined]

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    cli_entry()
