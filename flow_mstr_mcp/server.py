"""
MCP server assembly and transports.

Startup sequence, run once per process:

    1. Connect to Neo4j and probe its capabilities (capabilities.py)
    2. Build the full tool catalog (catalog.py)
    3. Filter it down to the registered tool set (registry.py)
    4. Serve over stdio, or over streamable HTTP behind the request gate
       (middleware.py) using uvicorn

Nothing is registered or served until the probe has finished; a
connectivity failure propagates to the caller and the server never starts.

Running the server:
    flow-mstr-mcp --flow-uri neo4j://localhost:7687 --flow-username neo4j --flow-password secret

    or, over HTTP with per-request credentials:
    FLOW_URI=neo4j://localhost:7687 flow-mstr-mcp --flow-transport-mode http --flow-http-port 8080
"""

import logging

import uvicorn
from fastmcp import FastMCP
from starlette.types import ASGIApp

from flow_mstr_mcp.capabilities import ServerCapabilities, probe_capabilities
from flow_mstr_mcp.catalog import build_catalog
from flow_mstr_mcp.config import Settings, TransportMode
from flow_mstr_mcp.database import Neo4jService
from flow_mstr_mcp.middleware import MCP_PATH, chain_middleware
from flow_mstr_mcp.registry import ToolFilterPipeline

__version__ = "1.0.0"

SERVER_NAME = "flow-microstrategy-mcp"
SERVER_INSTRUCTIONS = (
    "Tools for planning a MicroStrategy migration from a Neo4j lineage graph. "
    "Look up Metrics and Attributes by GUID or name, find the reports that use "
    "them and the source tables behind them, and check migration status and "
    "statistics. Paginated tools return 100 results per page with a "
    "moreResults flag; pass offset to fetch the next page."
)

logger = logging.getLogger(__name__)


def build_server(
    settings: Settings,
    db: Neo4jService,
    capabilities: ServerCapabilities,
) -> FastMCP:
    """Create the FastMCP server with the filtered tool set registered."""
    mcp = FastMCP(name=SERVER_NAME, instructions=SERVER_INSTRUCTIONS, version=__version__)

    pipeline = ToolFilterPipeline(settings, capabilities)
    for descriptor in pipeline.apply(build_catalog(db, settings)):
        mcp.add_tool(descriptor.tool)
        logger.debug("Registered tool %s", descriptor.name)

    return mcp


def build_http_app(mcp: FastMCP, settings: Settings) -> ASGIApp:
    """The streamable HTTP ASGI app at /mcp, wrapped in the request gate."""
    app = mcp.http_app(path=MCP_PATH, transport="streamable-http")
    return chain_middleware(app, settings)


async def serve_http(mcp: FastMCP, settings: Settings) -> None:
    app = build_http_app(mcp, settings)
    ssl_options = {}
    if settings.mcp_http_tls_enabled:
        ssl_options = {
            "ssl_certfile": str(settings.mcp_http_tls_cert_file),
            "ssl_keyfile": str(settings.mcp_http_tls_key_file),
        }

    logger.info(
        "Starting MCP server on %s:%d%s (transport=streamable-http, tls=%s, auth=%s)",
        settings.mcp_http_host,
        settings.http_port,
        MCP_PATH,
        "on" if settings.mcp_http_tls_enabled else "off",
        "api-token" if settings.api_token else "passthrough",
    )
    config = uvicorn.Config(
        app,
        host=settings.mcp_http_host,
        port=settings.http_port,
        log_level=settings.log_level,
        # Keep the handler installed by setup_logging().
        log_config=None,
        **ssl_options,
    )
    await uvicorn.Server(config).serve()


async def run(settings: Settings) -> None:
    """
    Probe Neo4j, register tools and serve until the transport stops.

    Raises:
        ConnectivityFailure: if Neo4j cannot be reached at startup
    """
    db = Neo4jService.from_settings(settings)
    try:
        capabilities = await probe_capabilities(db, settings)
        mcp = build_server(settings, db, capabilities)

        if settings.mcp_transport is TransportMode.STDIO:
            logger.info("Starting MCP server (transport=stdio)")
            await mcp.run_async(transport="stdio", show_banner=False)
        else:
            await serve_http(mcp, settings)
    finally:
        await db.close()
