"""
Command-line entry point.

Flags mirror the FLOW_* environment variables and take precedence over them:

    flow-mstr-mcp --flow-uri neo4j://localhost:7687 --flow-username neo4j --flow-password secret
    flow-mstr-mcp --flow-transport-mode http --flow-http-port 8080 --flow-http-allowed-origins "*"

main() is the only place that decides the process exit status:

    0  clean shutdown
    1  invalid configuration or Neo4j unreachable at startup
    2  bad command-line usage (raised by argparse)
"""

import argparse
import asyncio
import logging
import sys
from typing import Any

from flow_mstr_mcp.capabilities import ProbeError
from flow_mstr_mcp.config import VALID_LOG_LEVELS, ConfigValidationError, load_settings
from flow_mstr_mcp.logging_config import setup_logging
from flow_mstr_mcp.server import __version__, run

logger = logging.getLogger(__name__)

TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off")


def _bool_flag(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flow-mstr-mcp",
        description="MCP server for MicroStrategy migration lineage stored in Neo4j.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Local stdio server:
    %(prog)s --flow-uri neo4j://localhost:7687 --flow-username neo4j --flow-password secret

  HTTP server, callers send their own Neo4j credentials:
    %(prog)s --flow-uri neo4j://localhost:7687 --flow-transport-mode http --flow-http-port 8080

  HTTP server with a static API token (set FLOW_API_TOKEN):
    %(prog)s --flow-transport-mode http --flow-username neo4j --flow-password secret
        """,
    )
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")

    neo4j = parser.add_argument_group("Neo4j connection")
    neo4j.add_argument("--flow-uri", dest="uri", help="Neo4j connection URI (FLOW_URI)")
    neo4j.add_argument("--flow-username", dest="username", help="Neo4j username (FLOW_USERNAME)")
    neo4j.add_argument("--flow-password", dest="password", help="Neo4j password (FLOW_PASSWORD)")
    neo4j.add_argument("--flow-database", dest="database", help="Neo4j database name (FLOW_DATABASE)")

    tools = parser.add_argument_group("Tools")
    tools.add_argument(
        "--flow-read-only",
        dest="read_only",
        type=_bool_flag,
        nargs="?",
        const=True,
        metavar="true|false",
        help="Only register read-only tools (FLOW_READ_ONLY)",
    )
    tools.add_argument(
        "--flow-schema-sample-size",
        dest="schema_sample_size",
        type=int,
        help="Nodes sampled per label for schema inference (FLOW_SCHEMA_SAMPLE_SIZE)",
    )

    transport = parser.add_argument_group("Transport")
    transport.add_argument(
        "--flow-transport-mode",
        dest="mcp_transport",
        choices=("stdio", "http"),
        help="MCP transport (FLOW_MCP_TRANSPORT, default: stdio)",
    )
    transport.add_argument(
        "--flow-http-host", dest="mcp_http_host", help="HTTP bind address (FLOW_MCP_HTTP_HOST)"
    )
    transport.add_argument(
        "--flow-http-port",
        dest="mcp_http_port",
        type=int,
        help="HTTP port (FLOW_MCP_HTTP_PORT, default: 443 with TLS, 80 without)",
    )
    transport.add_argument(
        "--flow-http-allowed-origins",
        dest="mcp_http_allowed_origins",
        help="Comma-separated CORS origins, '*' for all (FLOW_MCP_HTTP_ALLOWED_ORIGINS)",
    )
    transport.add_argument(
        "--flow-http-tls-enabled",
        dest="mcp_http_tls_enabled",
        type=_bool_flag,
        nargs="?",
        const=True,
        metavar="true|false",
        help="Serve HTTPS (FLOW_MCP_HTTP_TLS_ENABLED)",
    )
    transport.add_argument(
        "--flow-http-tls-cert-file",
        dest="mcp_http_tls_cert_file",
        help="TLS certificate file (FLOW_MCP_HTTP_TLS_CERT_FILE)",
    )
    transport.add_argument(
        "--flow-http-tls-key-file",
        dest="mcp_http_tls_key_file",
        help="TLS private key file (FLOW_MCP_HTTP_TLS_KEY_FILE)",
    )

    parser.add_argument(
        "--flow-log-level",
        dest="log_level",
        choices=VALID_LOG_LEVELS,
        help="Log level (FLOW_LOG_LEVEL, default: info)",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Settings overrides for every flag given on the command line."""
    return {key: value for key, value in vars(args).items() if value is not None}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(overrides_from_args(args))
    except ConfigValidationError as e:
        setup_logging()
        logger.error("Configuration error: %s", e)
        return 1

    setup_logging(settings.log_level, settings.log_format)

    try:
        asyncio.run(run(settings))
    except ProbeError as e:
        logger.error("Startup failed: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")

    return 0


if __name__ == "__main__":
    sys.exit(main())
