"""
Shared test fixtures for the MCP server test suite.

Neo4j is never contacted: FakeNeo4jService stands in for Neo4jService,
answering each query text with canned rows (or raising a canned error) and
recording every call so tests can check routing, parameters and credentials.

Key fixtures:
- make_settings: factory for Settings that ignores .env files and FLOW_* variables
- make_db: factory for FakeNeo4jService with canned responses
- basic_header: factory for "Basic <base64(user:pass)>" header values

Test modules:
- test_auth.py: the credential state machine in isolation
- test_middleware.py: the HTTP request gate with a stub downstream app
- test_capabilities.py: the startup probe outcomes
- test_registry.py: tool filtering and its order independence
- test_tools.py: tool handlers through an in-memory MCP client, plus an
  end-to-end HTTP test through the full middleware chain
- test_config.py / test_cli.py: startup validation and flag handling
"""

import base64
import os
from dataclasses import dataclass
from typing import Any

import pytest
from neo4j import Record

from flow_mstr_mcp.auth import NO_AUTH, AuthContext
from flow_mstr_mcp.config import Settings


@dataclass
class QueryCall:
    routing: str
    query: str
    params: dict[str, Any] | None
    auth: AuthContext


class FakeNeo4jService:
    """
    In-memory replacement for Neo4jService.

    Args:
        responses: maps a query text to a list of row dicts, or to an
                   exception instance to raise. Unknown queries return no rows.
        connectivity_error: raised by verify_connectivity() when set
    """

    def __init__(
        self,
        responses: dict[str, Any] | None = None,
        connectivity_error: Exception | None = None,
    ):
        self.responses = dict(responses or {})
        self.connectivity_error = connectivity_error
        self.calls: list[QueryCall] = []
        self.closed = False

    async def verify_connectivity(self) -> None:
        if self.connectivity_error is not None:
            raise self.connectivity_error

    async def execute_read_query(self, query, params=None, auth=NO_AUTH):
        return self._respond("read", query, params, auth)

    async def execute_write_query(self, query, params=None, auth=NO_AUTH):
        return self._respond("write", query, params, auth)

    async def close(self) -> None:
        self.closed = True

    def _respond(self, routing, query, params, auth):
        self.calls.append(QueryCall(routing, query, params, auth))
        response = self.responses.get(query, [])
        if isinstance(response, Exception):
            raise response
        return [Record(row) for row in response]

    def calls_for(self, query: str) -> list[QueryCall]:
        return [call for call in self.calls if call.query == query]


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _clear_flow_env(monkeypatch):
    """Keep FLOW_* variables from the developer's shell out of every test."""
    for key in list(os.environ):
        if key.startswith("FLOW_"):
            monkeypatch.delenv(key, raising=False)


# ---------------------------------------------------------------------------
# Settings factory fixture
# ---------------------------------------------------------------------------
@pytest.fixture
def make_settings():
    """
    Factory fixture for Settings objects.

    Defaults describe a valid stdio configuration; keyword arguments override
    individual fields. Cross-field validation is not run, so tests can build
    any combination they need.

    Usage in tests:
        def test_something(make_settings):
            settings = make_settings(mcp_transport="http", username="", password="")
    """

    def _make_settings(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "uri": "neo4j://localhost:7687",
            "username": "neo4j",
            "password": "secret",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make_settings


@pytest.fixture
def make_db():
    """
    Factory fixture for FakeNeo4jService.

    Usage in tests:
        def test_something(make_db):
            db = make_db({READ_CHECK_QUERY: [{"first": 1}]})
    """

    def _make_db(
        responses: dict[str, Any] | None = None,
        connectivity_error: Exception | None = None,
    ) -> FakeNeo4jService:
        return FakeNeo4jService(responses, connectivity_error)

    return _make_db


# ---------------------------------------------------------------------------
# Authorization header helper fixture
# ---------------------------------------------------------------------------
@pytest.fixture
def basic_header():
    """
    Returns a function building a Basic Authorization header value.

    Usage in tests:
        def test_something(basic_header):
            header = basic_header("alice", "s3cret")
            # header is "Basic YWxpY2U6czNjcmV0"
    """

    def _basic_header(username: str, password: str) -> str:
        encoded = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
        return f"Basic {encoded}"

    return _basic_header
