"""
Neo4j access for the tool handlers and the capability probe.

All queries go through a single AsyncDriver. Which database identity a query
runs as is decided per call from the request's AuthContext:

    BasicCredentials        -> neo4j.basic_auth(username, password)
    BearerToken             -> neo4j.bearer_auth(token)  (SSO passthrough)
    NoAuth / APITokenAuth.  -> the driver's configured credentials

Neo4j errors (neo4j.exceptions.Neo4jError, DriverError) are not caught here;
callers decide whether a failure is fatal (startup probe) or a tool error.
"""

import json
from typing import Any

from neo4j import Auth, AsyncDriver, AsyncGraphDatabase, Record, RoutingControl, basic_auth, bearer_auth

from flow_mstr_mcp.auth import NO_AUTH, AuthContext, BasicCredentials, BearerToken
from flow_mstr_mcp.config import Settings


class Neo4jService:
    """Thin async wrapper around the Neo4j driver used by every tool."""

    def __init__(self, driver: AsyncDriver, database: str = "neo4j"):
        self.driver = driver
        self.database = database

    @classmethod
    def from_settings(cls, settings: Settings) -> "Neo4jService":
        # Without server-side credentials the driver carries no auth of its
        # own; every query then runs with the caller's credentials.
        auth = (settings.username, settings.password) if settings.uses_server_credentials else None
        driver = AsyncGraphDatabase.driver(settings.uri, auth=auth)
        return cls(driver, settings.database)

    async def close(self) -> None:
        await self.driver.close()

    async def verify_connectivity(self) -> None:
        await self.driver.verify_connectivity()

    async def execute_read_query(
        self,
        query: str,
        params: dict[str, Any] | None = None,
        auth: AuthContext = NO_AUTH,
    ) -> list[Record]:
        return await self._execute(query, params, auth, RoutingControl.READ)

    async def execute_write_query(
        self,
        query: str,
        params: dict[str, Any] | None = None,
        auth: AuthContext = NO_AUTH,
    ) -> list[Record]:
        return await self._execute(query, params, auth, RoutingControl.WRITE)

    async def _execute(
        self,
        query: str,
        params: dict[str, Any] | None,
        auth: AuthContext,
        routing: RoutingControl,
    ) -> list[Record]:
        result = await self.driver.execute_query(
            query,
            parameters_=params or {},
            routing_=routing,
            database_=self.database,
            auth_=session_auth(auth),
        )
        return list(result.records)


def session_auth(auth: AuthContext) -> Auth | None:
    """Neo4j auth token for a request, or None to use the driver's credentials."""
    if isinstance(auth, BasicCredentials):
        return basic_auth(auth.username, auth.password)
    if isinstance(auth, BearerToken):
        return bearer_auth(auth.token)
    return None


def to_json(value: Any) -> str:
    """Serialize a query result value, converting Neo4j temporal and binary types."""
    return json.dumps(value, default=_json_default, indent=2)


def records_to_json(records: list[Record]) -> str:
    """Serialize query records as a JSON array of objects keyed by column name."""
    return to_json([record.data() for record in records])


def _json_default(value: Any) -> Any:
    # neo4j.time types (Date, DateTime, Duration, ...) expose iso_format()
    if hasattr(value, "iso_format"):
        return value.iso_format()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, (bytes, bytearray)):
        return value.hex()
    return str(value)
