"""Pytest configuration and shared fixtures for gateway tests"""

import os
import sys
from typing import AsyncGenerator, Optional

import pytest
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from postgres_mcp.core import ConnectionRegistry, DatabaseConnection
from postgres_mcp.models.config import DatabaseConfig, ServerConfig
from postgres_mcp.server import PostgresMCPServer

# Load environment variables
load_dotenv()

# Fix for Windows: asyncpg requires SelectorEventLoop on Windows
if sys.platform == "win32":
    import asyncio

    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())  # type: ignore[attr-defined]


USERS_DDL = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE
)
"""


def sqlite_connection(alias: str, config: DatabaseConfig) -> DatabaseConnection:
    """Connection factory backed by a private in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    return DatabaseConnection(alias, config, engine=engine)


async def seed_users(registry: ConnectionRegistry, alias: str) -> None:
    """Create the users table with two rows on one alias."""
    async with registry.resolve(alias, alias).begin() as conn:
        await conn.exec_driver_sql(USERS_DDL)
        await conn.exec_driver_sql(
            "INSERT INTO users (id, name, email) VALUES (?, ?, ?), (?, ?, ?)",
            (1, "User One", "one@example.com", 2, "User Two", "two@example.com"),
        )


async def count_users(registry: ConnectionRegistry, alias: str = "main") -> int:
    """Number of rows in the users table."""
    async with registry.resolve(alias, alias).begin() as conn:
        result = await conn.exec_driver_sql("SELECT COUNT(*) FROM users")
        return result.scalar_one()


# ==================== In-memory Fixtures ====================


@pytest.fixture
async def sqlite_registry() -> AsyncGenerator[ConnectionRegistry, None]:
    """Registry with aliases "main" and "analytics", each its own SQLite database.

    Only "main" carries the seeded users table.
    """
    registry = ConnectionRegistry(connection_factory=sqlite_connection)
    await registry.initialize(
        {"main": DatabaseConfig(), "analytics": DatabaseConfig(database="analytics")}
    )
    await seed_users(registry, "main")
    try:
        yield registry
    finally:
        await registry.shutdown()


@pytest.fixture
async def sqlite_server(
    sqlite_registry: ConnectionRegistry,
) -> PostgresMCPServer:
    """MCP server wired to the in-memory registry"""
    return PostgresMCPServer(ServerConfig(), registry=sqlite_registry)


@pytest.fixture
def users_count(sqlite_registry: ConnectionRegistry):
    """Coroutine function counting rows in the seeded users table"""

    async def count() -> int:
        return await count_users(sqlite_registry)

    return count


# ==================== PostgreSQL Fixtures ====================


@pytest.fixture(scope="session")
def pg_database_url() -> Optional[str]:
    """PostgreSQL test database URL from environment"""
    return os.getenv("PG_TEST_DATABASE_URL")


@pytest.fixture
async def pg_config(pg_database_url: Optional[str]) -> DatabaseConfig:
    """PostgreSQL database configuration"""
    if not pg_database_url:
        pytest.skip("PG_TEST_DATABASE_URL not set in environment")
    return DatabaseConfig.from_url(pg_database_url)


@pytest.fixture
async def pg_server(
    pg_config: DatabaseConfig,
) -> AsyncGenerator[PostgresMCPServer, None]:
    """MCP server connected to the test database with proper cleanup"""
    server = PostgresMCPServer(ServerConfig(), {"main": pg_config})
    await server.initialize()
    try:
        yield server
    finally:
        await server.cleanup()


# ==================== Pytest Configuration ====================


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "postgresql: PostgreSQL-specific tests")
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring database"
    )
