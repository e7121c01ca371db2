"""Transports serving the MCP server over stdio or HTTP (SSE)."""

import hmac
import logging
from typing import TYPE_CHECKING, Callable

import uvicorn
from mcp.server.sse import SseServerTransport
from mcp.server.stdio import stdio_server
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Mount, Route
from starlette.types import ASGIApp

if TYPE_CHECKING:
    from postgres_mcp.server import PostgresMCPServer

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"
MESSAGES_PATH = "/messages/"


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Rejects requests whose x-api-key header does not match the configured key."""

    def __init__(self, app: ASGIApp, api_key: str):
        super().__init__(app)
        self.api_key = api_key

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        supplied = request.headers.get(API_KEY_HEADER, "")
        if not hmac.compare_digest(supplied.encode(), self.api_key.encode()):
            client_ip = request.client.host if request.client else "unknown"
            logger.warning(
                f"Rejected {request.method} {request.url.path} from {client_ip}: "
                "invalid API key"
            )
            return PlainTextResponse("Unauthorized: Invalid API Key", status_code=401)
        return await call_next(request)


def build_http_app(mcp_server: "PostgresMCPServer") -> Starlette:
    """
    Build the Starlette application serving MCP over SSE.

    Args:
        mcp_server: Server whose handlers answer the requests

    Returns:
        Application with GET /sse and POST /messages/ routes

    Raises:
        ValueError: If authentication is enabled without an API key
    """
    config = mcp_server.config
    sse = SseServerTransport(MESSAGES_PATH)

    async def handle_sse(request: Request) -> Response:
        async with sse.connect_sse(
            request.scope, request.receive, request._send
        ) as (read_stream, write_stream):
            await mcp_server.server.run(
                read_stream,
                write_stream,
                mcp_server.server.create_initialization_options(),
            )
        return Response()

    middleware = []
    if config.enable_auth:
        if config.api_key is None or not config.api_key.get_secret_value():
            raise ValueError("Authentication is enabled but MCP_API_KEY is not set")
        middleware.append(
            Middleware(ApiKeyMiddleware, api_key=config.api_key.get_secret_value())
        )
        logger.info("API key authentication enabled")

    return Starlette(
        routes=[
            Route("/sse", endpoint=handle_sse, methods=["GET"]),
            Mount(MESSAGES_PATH, app=sse.handle_post_message),
        ],
        middleware=middleware,
    )


async def run_stdio(mcp_server: "PostgresMCPServer") -> None:
    """Serve MCP over stdin/stdout until the client disconnects."""
    logger.info("Serving MCP over stdio")
    async with stdio_server() as (read_stream, write_stream):
        await mcp_server.server.run(
            read_stream,
            write_stream,
            mcp_server.server.create_initialization_options(),
        )


async def run_http(mcp_server: "PostgresMCPServer") -> None:
    """Serve MCP over HTTP with uvicorn until interrupted."""
    config = mcp_server.config
    app = build_http_app(mcp_server)

    logger.info(f"Serving MCP over HTTP on http://{config.host}:{config.port}/sse")
    server = uvicorn.Server(
        uvicorn.Config(app, host=config.host, port=config.port, log_level="info")
    )
    await server.serve()
