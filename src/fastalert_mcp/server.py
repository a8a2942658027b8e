"""
Fastalert MCP server: FastMCP tools behind a minimal OAuth layer.

This module wires everything together:
- Two MCP tools (list_channels, send_message) backed by the Fastalert API
- OAuth endpoints: client registration, login redirect, token exchange
- Discovery documents (RFC 8414 / RFC 9728) under /.well-known/
- A bearer gate on POST /mcp (see auth.py)
- A keep-alive event stream on GET /mcp
- Structured JSON logging for every auth and tool decision

Architecture:
    Request flow for a tool call:

    1. Client sends POST /mcp with "Authorization: Bearer <token>"
    2. RequestGateMiddleware validates the header and stores a TokenInfo
       on request.state (or answers 401 itself)
    3. FastMCP's stateless Streamable HTTP transport dispatches the
       JSON-RPC message to a FastalertTool
    4. The tool opens a FastalertClient, configures it with the token and
       calls the Fastalert backend
    5. The backend's answer (or error) is formatted into a tool result

Running the server:
    FASTALERT_API_URL=https://api.fastalert.now python -m fastalert_mcp.server

    This starts the server on http://localhost:3000 with:
    - MCP endpoint at /mcp (Streamable HTTP, stateless)
    - OAuth endpoints at /register, /login, /token
    - Discovery at /.well-known/oauth-authorization-server
    - Health check at /health
"""

import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastmcp import FastMCP
from pydantic import ValidationError
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response, StreamingResponse

from fastalert_mcp.auth import RequestGateMiddleware
from fastalert_mcp.client import FastalertClient
from fastalert_mcp.config import Settings, load_settings
from fastalert_mcp.oauth import AuthorizationGateway, ClientRegistry, OAuthError
from fastalert_mcp.tools import TOOL_DESCRIPTIONS, FastalertTool

MCP_PATH = "/mcp"

# ---------------------------------------------------------------------------
# Structured JSON Logging
# ---------------------------------------------------------------------------


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-10-16 10:30:00,123", "level": "INFO",
         "logger": "fastalert_mcp.oauth", "message": "Client registered",
         "client_id": "client-1760610600123-42"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Fields passed via logger.info("msg", extra={"log_data": {...}})
        if hasattr(record, "log_data"):
            log_entry.update(record.log_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def configure_logging(level: str) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONLogFormatter())
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )


logger = logging.getLogger("fastalert-mcp")


# ---------------------------------------------------------------------------
# GET /mcp keep-alive stream
# ---------------------------------------------------------------------------


async def heartbeat_stream(interval: float) -> AsyncIterator[str]:
    """
    SSE comments for an idle GET /mcp connection.

    Emits a connection marker, then a ping every `interval` seconds. The
    generator belongs to the streaming response, which cancels it when the
    peer disconnects, so no timer outlives its connection.
    """
    logger.info("SSE client connected")
    try:
        yield ": sse connection established\n\n"
        while True:
            await asyncio.sleep(interval)
            yield ": ping\n\n"
    finally:
        logger.info("SSE client disconnected")


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------


def create_server(
    settings: Settings,
    gateway: AuthorizationGateway,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastMCP:
    """
    Build the FastMCP server with its tools and HTTP routes.

    Args:
        settings: Server configuration
        gateway: OAuth gateway serving /register, /login and /token
        transport: httpx transport for backend calls (tests pass a MockTransport)

    The gateway's registry is cleared when the server lifespan ends.
    """
    registry = gateway.registry

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[dict]:
        try:
            yield {}
        finally:
            logger.info(
                "Clearing client registry",
                extra={"log_data": {"registered_clients": len(registry)}},
            )
            registry.clear()

    mcp = FastMCP(
        name="fastalert",
        instructions=(
            "Fastalert MCP server. Lists the organization's alert channels and "
            "broadcasts messages to them on behalf of the authenticated caller."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    def client_factory() -> FastalertClient:
        return FastalertClient(
            settings.api_url,
            transport=transport,
            timeout=settings.request_timeout,
        )

    for name in TOOL_DESCRIPTIONS:
        mcp.add_tool(
            FastalertTool.create(name, client_factory, settings.token_validity_seconds)
        )

    # -----------------------------------------------------------------------
    # OAuth endpoints
    # -----------------------------------------------------------------------

    @mcp.custom_route("/register", methods=["POST"])
    async def register(request: Request) -> Response:
        """Dynamic client registration (RFC 7591)."""
        try:
            body = await request.json()
        except ValueError:
            body = None
        try:
            client = gateway.register(body)
        except OAuthError as e:
            logger.warning(
                "Client registration rejected",
                extra={"log_data": {"error": e.error, "reason": e.description}},
            )
            return JSONResponse(e.to_dict(), status_code=e.status_code)
        return JSONResponse(client.to_dict(), status_code=201)

    @mcp.custom_route("/login", methods=["GET"])
    async def login(request: Request) -> Response:
        """Forward an authorization request to the front-end login page."""
        params = request.query_params
        location = gateway.authorize_redirect(
            params.get("response_type"),
            params.get("client_id"),
            params.get("redirect_uri"),
            params.get("state"),
        )
        return RedirectResponse(location, status_code=302)

    @mcp.custom_route("/token", methods=["POST"])
    async def token(request: Request) -> Response:
        """Exchange an authorization code for a bearer credential."""
        try:
            body = await request.json()
        except ValueError:
            body = None
        code = body.get("code") if isinstance(body, dict) else None
        try:
            credential = gateway.exchange(code)
        except OAuthError as e:
            return JSONResponse(e.to_dict(), status_code=e.status_code)
        return JSONResponse(credential.to_dict())

    @mcp.custom_route("/.well-known/oauth-authorization-server", methods=["GET"])
    async def authorization_server_metadata(request: Request) -> Response:
        return JSONResponse(gateway.metadata())

    @mcp.custom_route("/.well-known/oauth-protected-resource", methods=["GET"])
    async def protected_resource_metadata(request: Request) -> Response:
        return JSONResponse(gateway.protected_resource_metadata())

    # -----------------------------------------------------------------------
    # Streaming and health
    # -----------------------------------------------------------------------

    # The stateless MCP route only accepts POST/DELETE, so GET falls through
    # to this route.
    @mcp.custom_route(MCP_PATH, methods=["GET"])
    async def event_stream(request: Request) -> Response:
        return StreamingResponse(
            heartbeat_stream(settings.heartbeat_interval),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache, no-transform",
                "Connection": "keep-alive",
            },
        )

    @mcp.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> Response:
        """Liveness probe: is the server process alive and responsive?"""
        return JSONResponse({"status": "healthy"})

    return mcp


def gate_middleware(settings: Settings, gateway: AuthorizationGateway) -> list[Middleware]:
    """ASGI middleware that puts the request gate in front of POST /mcp."""
    return [
        Middleware(
            RequestGateMiddleware,
            authorization_url=gateway.authorization_url(),
            path=MCP_PATH,
            validity_seconds=settings.token_validity_seconds,
        )
    ]


def create_app(
    settings: Settings,
    registry: ClientRegistry | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
):
    """Build the ASGI application: the server's HTTP app behind the request gate."""
    gateway = AuthorizationGateway(settings, registry if registry is not None else ClientRegistry())
    mcp = create_server(settings, gateway, transport=transport)
    return mcp.http_app(
        path=MCP_PATH,
        transport="streamable-http",
        stateless_http=True,
        middleware=gate_middleware(settings, gateway),
    )


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------


def main() -> None:
    try:
        settings = load_settings()
    except ValidationError as e:
        configure_logging("error")
        logger.error("Invalid configuration, FASTALERT_API_URL is required: %s", e)
        sys.exit(1)

    configure_logging(settings.log_level)
    gateway = AuthorizationGateway(settings, ClientRegistry())
    mcp = create_server(settings, gateway)

    logger.info(
        "Starting MCP server on %s:%d (transport=streamable-http, auth=bearer)",
        settings.host,
        settings.port,
    )
    mcp.run(
        transport="streamable-http",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        path=MCP_PATH,
        stateless_http=True,
        middleware=gate_middleware(settings, gateway),
    )


if __name__ == "__main__":
    main()
