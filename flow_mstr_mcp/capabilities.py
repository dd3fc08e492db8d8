"""
Startup capability probe.

Runs once, before the server accepts connections, and answers two questions:

1. Can we reach Neo4j and run a read query at all? If not, the server must
   not start (ConnectivityFailure).
2. Which optional extensions are installed? The Graph Data Science (GDS)
   library decides whether GDS tools are registered; APOC's meta.schema
   procedure is only reported.

The GDS probe distinguishes three outcomes:

- INSTALLED: gds.version() returned a value
- ABSENT: Neo4j rejected the call with a client error (unknown function),
  the normal answer on a server without GDS
- UNKNOWN: the call failed for another reason (connection lost, timeout,
  transient or database error). This is logged as a warning, does not stop
  the server, and counts as "not installed" for tool registration.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from neo4j.exceptions import ClientError, DriverError, Neo4jError

from flow_mstr_mcp.config import Settings
from flow_mstr_mcp.database import Neo4jService

logger = logging.getLogger(__name__)

READ_CHECK_QUERY = "RETURN 1 as first"
APOC_META_SCHEMA_QUERY = (
    "SHOW PROCEDURES YIELD name WHERE name = 'apoc.meta.schema' "
    "RETURN count(name) > 0 AS apocMetaSchemaAvailable"
)
GDS_VERSION_QUERY = "RETURN gds.version() as gdsVersion"


class FeatureStatus(Enum):
    INSTALLED = "installed"
    ABSENT = "absent"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ServerCapabilities:
    """What the connected Neo4j server supports. Immutable for the process lifetime."""

    gds_status: FeatureStatus = FeatureStatus.UNKNOWN
    gds_version: str | None = None
    apoc_meta_schema_available: bool = False
    probed: bool = False

    @property
    def gds_installed(self) -> bool:
        return self.gds_status is FeatureStatus.INSTALLED


class ProbeError(Exception):
    """Base class for capability probe failures."""


class ConnectivityFailure(ProbeError):
    """Neo4j is unreachable or cannot serve reads. Fatal at startup."""


class FeatureAbsent(ProbeError):
    """An optional extension is not installed. Never fatal."""


async def probe_capabilities(db: Neo4jService, settings: Settings) -> ServerCapabilities:
    """
    Run the startup probe sequence against Neo4j.

    When the server has no credentials of its own (HTTP transport without an
    API token), nothing can be probed before a client connects: the probe is
    skipped and optional features are treated as unavailable.

    Raises:
        ConnectivityFailure: if connectivity or the basic read check fails
    """
    if not settings.uses_server_credentials:
        logger.info(
            "Skipping capability probe: Neo4j credentials are supplied per request; "
            "optional GDS tools will not be registered"
        )
        return ServerCapabilities()

    try:
        await db.verify_connectivity()
    except (DriverError, Neo4jError) as e:
        raise ConnectivityFailure(f"Failed to connect to Neo4j: {e}") from e

    await _check_read_path(db)
    apoc_available = await _check_apoc_meta_schema(db)

    try:
        gds_version = await _check_gds(db)
    except FeatureAbsent as e:
        logger.info("GDS library not installed, GDS tools disabled: %s", e)
        capabilities = ServerCapabilities(
            gds_status=FeatureStatus.ABSENT,
            apoc_meta_schema_available=apoc_available,
            probed=True,
        )
    except (DriverError, Neo4jError) as e:
        logger.warning(
            "Could not determine whether GDS is installed, GDS tools disabled",
            extra={"event_data": {"error": str(e), "error_type": type(e).__name__}},
        )
        capabilities = ServerCapabilities(
            gds_status=FeatureStatus.UNKNOWN,
            apoc_meta_schema_available=apoc_available,
            probed=True,
        )
    else:
        logger.info("GDS library detected (version %s)", gds_version)
        capabilities = ServerCapabilities(
            gds_status=FeatureStatus.INSTALLED,
            gds_version=gds_version,
            apoc_meta_schema_available=apoc_available,
            probed=True,
        )

    return capabilities


async def _check_read_path(db: Neo4jService) -> None:
    try:
        records = await db.execute_read_query(READ_CHECK_QUERY)
    except (DriverError, Neo4jError) as e:
        raise ConnectivityFailure(f"Read check query failed: {e}") from e

    if not records or records[0].get("first") != 1:
        raise ConnectivityFailure("Read check query returned an unexpected result")


async def _check_apoc_meta_schema(db: Neo4jService) -> bool:
    try:
        records = await db.execute_read_query(APOC_META_SCHEMA_QUERY)
    except (DriverError, Neo4jError) as e:
        logger.warning("Could not check for apoc.meta.schema: %s", e)
        return False

    available = bool(records) and bool(records[0].get("apocMetaSchemaAvailable"))
    if not available:
        logger.info("apoc.meta.schema is not available; schema inference is limited")
    return available


async def _check_gds(db: Neo4jService) -> str:
    """
    Return the installed GDS version.

    Raises:
        FeatureAbsent: Neo4j does not know gds.version()
        DriverError / Neo4jError: the probe itself failed
    """
    try:
        records = await db.execute_read_query(GDS_VERSION_QUERY)
    except ClientError as e:
        raise FeatureAbsent(str(e)) from e

    if not records:
        raise FeatureAbsent("gds.version() returned no rows")
    version = records[0].get("gdsVersion")
    if version is None:
        raise FeatureAbsent("gds.version() returned null")
    return str(version)
