"""Database connection management with SQLAlchemy."""

import ssl
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional, Union

from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from postgres_mcp.models.config import DatabaseConfig

SslArgument = Union[bool, ssl.SSLContext]


def build_ssl_argument(mode: Optional[str]) -> Optional[SslArgument]:
    """
    Map a libpq-style sslmode onto asyncpg's ``ssl`` connect argument.

    Args:
        mode: TLS mode from the configuration

    Returns:
        None to leave the driver default, False to disable TLS, or an
        SSLContext with or without certificate verification
    """
    if not mode:
        return None

    mode = mode.lower()
    if mode == "disable":
        return False

    if mode in ("verify-ca", "verify-full"):
        context = ssl.create_default_context()
        # verify-ca checks the chain only
        context.check_hostname = mode == "verify-full"
        context.verify_mode = ssl.CERT_REQUIRED
        return context

    # require, prefer, allow and unknown values: encrypt without verification
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def build_connect_args(config: DatabaseConfig) -> dict[str, Any]:
    """Build asyncpg connect arguments (TLS and per-session settings)."""
    server_settings = {"application_name": config.application_name}
    if config.statement_timeout:
        server_settings["statement_timeout"] = str(config.statement_timeout * 1000)

    connect_args: dict[str, Any] = {"server_settings": server_settings}

    ssl_argument = build_ssl_argument(config.ssl)
    if ssl_argument is not None:
        connect_args["ssl"] = ssl_argument

    return connect_args


def build_url(config: DatabaseConfig) -> URL:
    """Build the SQLAlchemy URL for an asyncpg engine."""
    return URL.create(
        "postgresql+asyncpg",
        username=config.user,
        password=config.password.get_secret_value() or None,
        host=config.host,
        port=config.port,
        database=config.database,
    )


class DatabaseConnection:
    """Pooled connection handle for one database alias."""

    def __init__(
        self,
        alias: str,
        config: DatabaseConfig,
        engine: Optional[AsyncEngine] = None,
    ):
        """
        Initialize database connection.

        Creating the engine does not open a connection; the pool connects
        lazily on first use.

        Args:
            alias: Alias this handle is registered under
            config: Connection parameters and pool settings
            engine: Prebuilt engine to use instead of creating one
        """
        self.alias = alias
        self.config = config
        if engine is None:
            engine = create_async_engine(
                build_url(config),
                pool_size=config.pool_size,
                max_overflow=config.max_overflow,
                pool_timeout=config.pool_timeout,
                pool_pre_ping=True,  # Verify connections before using
                echo=config.echo_sql,
                connect_args=build_connect_args(config),
            )
        self.engine: Optional[AsyncEngine] = engine

    @asynccontextmanager
    async def begin(self) -> AsyncGenerator[AsyncConnection, None]:
        """
        Open a transaction scope on a pooled connection.

        The scope commits when the block exits normally and rolls back when
        it raises.

        Raises:
            RuntimeError: If the connection has been disposed
        """
        if self.engine is None:
            raise RuntimeError(
                f"Database connection '{self.alias}' has been disposed"
            )

        async with self.engine.begin() as conn:
            yield conn

    async def dispose(self) -> None:
        """Dispose of the connection pool and cleanup resources."""
        if self.engine is not None:
            engine, self.engine = self.engine, None
            await engine.dispose()

    @property
    def is_disposed(self) -> bool:
        """Check whether the pool has been disposed."""
        return self.engine is None

    def __repr__(self) -> str:
        return f"DatabaseConnection(alias={self.alias!r}, target={self.config.display_url!r})"
