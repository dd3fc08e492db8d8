"""
HTTP request gate in front of the FastMCP streamable HTTP app.

Every middleware here is a plain ASGI wrapper. chain_middleware() builds them
innermost-first so that they execute in this order:

    PathValidation -> CORS -> Authentication -> RequestLogging -> FastMCP app

- PathValidation rejects anything but /mcp with 404 before any other work,
  so scanners never see auth challenges.
- CORS answers browser preflights (OPTIONS) with 204 before authentication,
  and decorates downstream responses with the CORS headers.
- Authentication runs the credential state machine from auth.py. Failures end
  here with 401; successes attach the AuthContext to the request scope.
- RequestLogging records request metadata at DEBUG level.

Non-HTTP scopes (the ASGI lifespan) pass straight through every layer.
"""

import logging
import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from flow_mstr_mcp.auth import AuthError, BasicCredentials, attach_auth_context, authenticate
from flow_mstr_mcp.config import Settings

logger = logging.getLogger(__name__)

MCP_PATH = "/mcp"

CORS_ALLOW_METHODS = "GET, POST, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization, Mcp-Session-Id, Mcp-Protocol-Version"
CORS_MAX_AGE_SECONDS = "86400"  # 24 hours


class PathValidationMiddleware:
    """Only the MCP endpoint is served; every other path is a plain 404."""

    def __init__(self, app: ASGIApp, path: str = MCP_PATH) -> None:
        self.app = app
        self.path = path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] == self.path:
            await self.app(scope, receive, send)
            return

        response = PlainTextResponse("Not Found", status_code=404)
        await response(scope, receive, send)


class CORSMiddleware:
    """
    Cross-Origin Resource Sharing for browser-based MCP clients.

    - No allowed origins configured: the middleware does nothing.
    - "*" configured: every origin gets Access-Control-Allow-Origin: *.
    - Otherwise the Origin header is echoed back only on an exact match;
      other origins get no Allow-Origin header and the browser blocks them.
    """

    def __init__(self, app: ASGIApp, allowed_origins: frozenset[str]) -> None:
        self.app = app
        self.allowed_origins = allowed_origins
        self.allow_all = "*" in allowed_origins

    def cors_headers(self, origin: str | None) -> dict[str, str]:
        headers = {
            "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
            "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
            "Access-Control-Max-Age": CORS_MAX_AGE_SECONDS,
        }
        if self.allow_all:
            headers["Access-Control-Allow-Origin"] = "*"
        elif origin and origin in self.allowed_origins:
            headers["Access-Control-Allow-Origin"] = origin
            headers["Vary"] = "Origin"
        return headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.allowed_origins:
            await self.app(scope, receive, send)
            return

        headers = self.cors_headers(Headers(scope=scope).get("origin"))

        # Preflight never reaches authentication.
        if scope["method"] == "OPTIONS":
            response = Response(status_code=204, headers=headers)
            await response(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for key, value in headers.items():
                    response_headers[key] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)


class AuthMiddleware:
    """
    Authenticates every request before it reaches the MCP dispatcher.

    When an API token is configured, only "Bearer <api token>" is accepted.
    Without one, callers supply their own Neo4j credentials through Basic
    auth or a bearer token that is passed through to Neo4j.
    """

    def __init__(self, app: ASGIApp, api_token: str | None) -> None:
        self.app = app
        self.api_token = api_token

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = str(uuid.uuid4())[:8]
        authorization = Headers(scope=scope).get("authorization")

        try:
            auth = authenticate(authorization, self.api_token)
        except AuthError as e:
            logger.warning(
                "Authentication failed",
                extra={
                    "event_data": {
                        "request_id": request_id,
                        "decision": "rejected",
                        "reason": e.reason,
                        "detail": e.message,
                    }
                },
            )
            response = PlainTextResponse("Unauthorized", status_code=e.status_code)
            for challenge in e.challenges:
                response.headers.append("WWW-Authenticate", challenge)
            await response(scope, receive, send)
            return

        event_data = {
            "request_id": request_id,
            "decision": "authenticated",
            "mode": type(auth).__name__,
        }
        if isinstance(auth, BasicCredentials):
            event_data["subject"] = auth.username
        logger.info("Authentication successful", extra={"event_data": event_data})

        attach_auth_context(scope, auth)
        await self.app(scope, receive, send)


class RequestLoggingMiddleware:
    """Logs request metadata at DEBUG level and always passes the request on."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and logger.isEnabledFor(logging.DEBUG):
            headers = Headers(scope=scope)
            client = scope.get("client")
            logger.debug(
                "HTTP request",
                extra={
                    "event_data": {
                        "method": scope["method"],
                        "path": scope["path"],
                        "remote_addr": f"{client[0]}:{client[1]}" if client else None,
                        "user_agent": headers.get("user-agent"),
                        "content_length": headers.get("content-length"),
                        "host": headers.get("host"),
                        "query": scope.get("query_string", b"").decode("latin-1"),
                    }
                },
            )
        await self.app(scope, receive, send)


def chain_middleware(app: ASGIApp, settings: Settings) -> ASGIApp:
    """
    Wrap the MCP app with the full request gate.

    Wrappers are applied in reverse: the last one added runs first.
    """
    handler = RequestLoggingMiddleware(app)
    handler = AuthMiddleware(handler, settings.api_token)
    handler = CORSMiddleware(handler, settings.allowed_origins)
    handler = PathValidationMiddleware(handler)
    return handler
