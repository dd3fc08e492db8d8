"""
Tests for the HTTP request gate (flow_mstr_mcp/middleware.py).

The chain is mounted in front of a stub ASGI app that answers 200 and
remembers the AuthContext it received, so each test can tell whether a
request got through and with which credentials. Requests go through
httpx.ASGITransport (in-memory, no server process).
"""

import logging

import httpx
import pytest
from starlette.requests import Request
from starlette.responses import PlainTextResponse

from flow_mstr_mcp.auth import (
    API_TOKEN_AUTHENTICATED,
    BASIC_CHALLENGE,
    BEARER_CHALLENGE,
    BasicCredentials,
    BearerToken,
    auth_context_from_request,
)
from flow_mstr_mcp.middleware import CORS_ALLOW_METHODS, CORS_MAX_AGE_SECONDS, chain_middleware

API_TOKEN = "test-api-token"


class StubApp:
    """Downstream app standing in for FastMCP."""

    def __init__(self):
        self.received = []

    async def __call__(self, scope, receive, send):
        self.received.append(auth_context_from_request(Request(scope)))
        response = PlainTextResponse("ok")
        await response(scope, receive, send)


@pytest.fixture
async def gate(make_settings):
    """
    Factory returning (client, stub) for a middleware chain built from the
    given settings overrides. Defaults to HTTP passthrough mode.
    """
    clients = []

    def _gate(**overrides):
        values = {"mcp_transport": "http", "username": "", "password": ""}
        values.update(overrides)
        stub = StubApp()
        app = chain_middleware(stub, make_settings(**values))
        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
        clients.append(client)
        return client, stub

    yield _gate

    for client in clients:
        await client.aclose()


# ---------------------------------------------------------------------------
# Test: Path validation
# ---------------------------------------------------------------------------


class TestPathValidation:
    @pytest.mark.parametrize("path", ["/", "/health", "/mcp/", "/mcp/extra", "/MCP"])
    async def test_other_paths_are_not_found(self, gate, basic_header, path):
        client, stub = gate()

        response = await client.post(path, headers={"Authorization": basic_header("a", "b")})

        assert response.status_code == 404
        assert response.text == "Not Found"
        assert stub.received == []

    async def test_unknown_path_skips_authentication(self, gate):
        """Scanners probing random paths get 404, never an auth challenge."""
        client, _ = gate()

        response = await client.get("/admin")

        assert response.status_code == 404
        assert "www-authenticate" not in response.headers

    async def test_unknown_path_skips_cors(self, gate):
        client, _ = gate(mcp_http_allowed_origins="*")

        response = await client.options("/other", headers={"Origin": "https://app.example.com"})

        assert response.status_code == 404
        assert "access-control-allow-origin" not in response.headers


# ---------------------------------------------------------------------------
# Test: CORS
# ---------------------------------------------------------------------------


class TestCORS:
    async def test_preflight_answered_without_credentials(self, gate):
        client, stub = gate(mcp_http_allowed_origins="https://app.example.com")

        response = await client.options("/mcp", headers={"Origin": "https://app.example.com"})

        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == "https://app.example.com"
        assert response.headers["access-control-allow-methods"] == CORS_ALLOW_METHODS
        assert response.headers["access-control-max-age"] == CORS_MAX_AGE_SECONDS
        assert "Authorization" in response.headers["access-control-allow-headers"]
        assert stub.received == []

    async def test_wildcard_allows_any_origin(self, gate):
        client, _ = gate(mcp_http_allowed_origins="*")

        response = await client.options("/mcp", headers={"Origin": "https://anything.test"})

        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == "*"

    async def test_unlisted_origin_gets_no_allow_origin(self, gate):
        client, _ = gate(mcp_http_allowed_origins="https://app.example.com")

        response = await client.options("/mcp", headers={"Origin": "https://evil.example.com"})

        assert response.status_code == 204
        assert "access-control-allow-origin" not in response.headers

    async def test_headers_added_to_authenticated_response(self, gate, basic_header):
        client, stub = gate(mcp_http_allowed_origins="https://app.example.com, https://other.example.com")

        response = await client.post(
            "/mcp",
            headers={"Origin": "https://other.example.com", "Authorization": basic_header("alice", "pw")},
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "https://other.example.com"
        assert len(stub.received) == 1

    async def test_headers_added_to_rejected_response(self, gate):
        client, _ = gate(mcp_http_allowed_origins="*")

        response = await client.post("/mcp", headers={"Origin": "https://app.example.com"})

        assert response.status_code == 401
        assert response.headers["access-control-allow-origin"] == "*"

    async def test_disabled_cors_sends_preflight_to_auth(self, gate):
        """Without an allow-list, OPTIONS is an ordinary request and needs credentials."""
        client, _ = gate()

        response = await client.options("/mcp", headers={"Origin": "https://app.example.com"})

        assert response.status_code == 401
        assert "access-control-allow-origin" not in response.headers


# ---------------------------------------------------------------------------
# Test: Authentication
# ---------------------------------------------------------------------------


class TestAuthentication:
    async def test_missing_credentials_challenge_both_schemes(self, gate):
        client, stub = gate()

        response = await client.post("/mcp")

        assert response.status_code == 401
        assert response.text == "Unauthorized"
        assert response.headers.get_list("www-authenticate") == [BASIC_CHALLENGE, BEARER_CHALLENGE]
        assert stub.received == []

    async def test_basic_credentials_reach_app(self, gate, basic_header):
        client, stub = gate()

        response = await client.post("/mcp", headers={"Authorization": basic_header("alice", "pw")})

        assert response.status_code == 200
        assert stub.received == [BasicCredentials("alice", "pw")]

    async def test_bearer_token_reaches_app(self, gate):
        client, stub = gate()

        response = await client.get("/mcp", headers={"Authorization": "Bearer sso-token"})

        assert response.status_code == 200
        assert stub.received == [BearerToken("sso-token")]

    async def test_api_token_accepted(self, gate):
        client, stub = gate(api_token=API_TOKEN, username="neo4j", password="secret")

        response = await client.post("/mcp", headers={"Authorization": f"Bearer {API_TOKEN}"})

        assert response.status_code == 200
        assert stub.received == [API_TOKEN_AUTHENTICATED]

    async def test_wrong_api_token_rejected(self, gate):
        client, stub = gate(api_token=API_TOKEN, username="neo4j", password="secret")

        response = await client.post("/mcp", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.headers.get_list("www-authenticate") == [BEARER_CHALLENGE]
        assert stub.received == []

    async def test_basic_refused_in_api_token_mode(self, gate, basic_header):
        client, stub = gate(api_token=API_TOKEN, username="neo4j", password="secret")

        response = await client.post("/mcp", headers={"Authorization": basic_header("neo4j", "secret")})

        assert response.status_code == 401
        assert response.headers.get_list("www-authenticate") == [BEARER_CHALLENGE]
        assert stub.received == []

    async def test_rejection_body_does_not_leak_reason(self, gate):
        client, _ = gate(api_token=API_TOKEN, username="neo4j", password="secret")

        response = await client.post("/mcp", headers={"Authorization": "Bearer nope"})

        assert "token" not in response.text.lower()

    async def test_rejection_is_logged(self, gate, caplog):
        client, _ = gate()

        with caplog.at_level(logging.WARNING, logger="flow_mstr_mcp.middleware"):
            await client.post("/mcp")

        records = [r for r in caplog.records if r.getMessage() == "Authentication failed"]
        assert len(records) == 1
        assert records[0].event_data["reason"] == "missing_credentials"

    async def test_password_never_logged(self, gate, basic_header, caplog):
        client, _ = gate()

        with caplog.at_level(logging.DEBUG):
            await client.post("/mcp", headers={"Authorization": basic_header("alice", "hunter2")})

        assert "hunter2" not in caplog.text
        assert all("hunter2" not in str(getattr(r, "event_data", "")) for r in caplog.records)


# ---------------------------------------------------------------------------
# Test: Request logging
# ---------------------------------------------------------------------------


class TestRequestLogging:
    async def test_request_metadata_logged_at_debug(self, gate, basic_header, caplog):
        client, _ = gate()

        with caplog.at_level(logging.DEBUG, logger="flow_mstr_mcp.middleware"):
            await client.post(
                "/mcp?x=1",
                headers={"Authorization": basic_header("alice", "pw"), "User-Agent": "test-agent"},
            )

        records = [r for r in caplog.records if r.getMessage() == "HTTP request"]
        assert len(records) == 1
        assert records[0].event_data["method"] == "POST"
        assert records[0].event_data["path"] == "/mcp"
        assert records[0].event_data["user_agent"] == "test-agent"
        assert records[0].event_data["query"] == "x=1"

    async def test_rejected_requests_are_not_logged_as_requests(self, gate, caplog):
        client, _ = gate()

        with caplog.at_level(logging.DEBUG, logger="flow_mstr_mcp.middleware"):
            await client.post("/mcp")

        assert not [r for r in caplog.records if r.getMessage() == "HTTP request"]
