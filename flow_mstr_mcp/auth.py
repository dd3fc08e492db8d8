"""
Per-request credential classification for the HTTP transport.

This module turns the raw Authorization header into exactly one AuthContext
variant, or rejects the request with an AuthError:

- BearerToken: opaque token forwarded to Neo4j (single sign-on passthrough)
- BasicCredentials: username/password forwarded to Neo4j
- APITokenAuthenticated: caller presented the static API token; Neo4j is
  queried with the server's own credentials
- NoAuth: no HTTP request at all (stdio transport); never produced by
  authenticate()

Bearer is checked before Basic. Once an API token is configured, the server
only accepts that token and refuses Basic outright, so the two trust modes
(server-side credentials vs. caller-supplied credentials) never mix.

The API token comparison uses hmac.compare_digest, whose running time does
not depend on where the inputs first differ.
"""

import base64
import binascii
import hmac
from dataclasses import dataclass, field

from fastmcp.server.dependencies import get_http_request
from starlette.requests import Request

REALM = "Flow MicroStrategy MCP"
BEARER_CHALLENGE = f'Bearer realm="{REALM}"'
BASIC_CHALLENGE = f'Basic realm="{REALM}"'

# Key under which the middleware stores the AuthContext in the ASGI scope state.
# A module-private object, so no other middleware can read or overwrite it.
_SCOPE_STATE_KEY = object()


# ---------------------------------------------------------------------------
# AuthContext variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NoAuth:
    """No per-request credentials; the driver's configured credentials apply."""


@dataclass(frozen=True)
class BasicCredentials:
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class BearerToken:
    token: str = field(repr=False)


@dataclass(frozen=True)
class APITokenAuthenticated:
    """The caller presented the configured API token."""


AuthContext = NoAuth | BasicCredentials | BearerToken | APITokenAuthenticated

NO_AUTH = NoAuth()
API_TOKEN_AUTHENTICATED = APITokenAuthenticated()


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AuthError(Exception):
    """
    Raised when a request cannot be authenticated.

    The message is logged server-side only. Clients get a generic 401 body
    plus one WWW-Authenticate header per entry in `challenges`, so they can
    retry with the right scheme without learning why the attempt failed.

    Attributes:
        message: Human-readable error description (logged server-side)
        challenges: WWW-Authenticate header values to send back
        status_code: HTTP status code to return
    """

    reason = "unauthorized"

    def __init__(self, message: str, challenges: tuple[str, ...], status_code: int = 401):
        self.message = message
        self.challenges = challenges
        self.status_code = status_code
        super().__init__(message)


class MissingCredentials(AuthError):
    reason = "missing_credentials"


class EmptyCredentials(AuthError):
    reason = "empty_credentials"


class InvalidAPIToken(AuthError):
    reason = "invalid_api_token"


class SchemeNotAllowed(AuthError):
    reason = "scheme_not_allowed"


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


def authenticate(authorization_header: str | None, api_token: str | None) -> AuthContext:
    """
    Classify the Authorization header of one request.

    Args:
        authorization_header: raw header value, or None when absent
        api_token: the configured static API token, or None

    Returns:
        The AuthContext variant for the request

    Raises:
        AuthError: one of its subclasses when the request must be rejected
    """
    header = (authorization_header or "").strip()
    scheme, _, remainder = header.partition(" ")

    if scheme.lower() == "bearer":
        token = remainder.strip()
        if not token:
            raise EmptyCredentials("Bearer token is empty", (BEARER_CHALLENGE,))

        if api_token is not None:
            if not hmac.compare_digest(token.encode("utf-8"), api_token.encode("utf-8")):
                raise InvalidAPIToken("Invalid API token", (BEARER_CHALLENGE,))
            return API_TOKEN_AUTHENTICATED

        return BearerToken(token)

    if api_token is not None:
        raise SchemeNotAllowed("Bearer token required in API token mode", (BEARER_CHALLENGE,))

    credentials = parse_basic_credentials(header)
    if credentials is None:
        raise MissingCredentials(
            "Basic or Bearer authentication required",
            (BASIC_CHALLENGE, BEARER_CHALLENGE),
        )

    username, password = credentials
    if not username or not password:
        raise EmptyCredentials("Username and password cannot be empty", (BASIC_CHALLENGE,))

    return BasicCredentials(username, password)


def parse_basic_credentials(header: str) -> tuple[str, str] | None:
    """
    Decode a "Basic <base64(user:pass)>" header value.

    Returns None when the header is not a well-formed Basic credential.
    The password may itself contain colons; only the first one separates.
    """
    scheme, _, encoded = header.partition(" ")
    if scheme.lower() != "basic":
        return None

    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, sep, password = decoded.partition(":")
    if not sep:
        return None
    return username, password


# ---------------------------------------------------------------------------
# Request-scoped access
# ---------------------------------------------------------------------------


def attach_auth_context(scope: dict, auth: AuthContext) -> None:
    """Store the request's AuthContext in the ASGI scope state."""
    scope.setdefault("state", {})[_SCOPE_STATE_KEY] = auth


def auth_context_from_request(request: Request) -> AuthContext:
    """
    Read the AuthContext the middleware attached to this request.

    Raises:
        LookupError: if the request never went through the auth middleware
    """
    auth = request.scope.get("state", {}).get(_SCOPE_STATE_KEY)
    if not isinstance(auth, (NoAuth, BasicCredentials, BearerToken, APITokenAuthenticated)):
        raise LookupError("request has no authentication context")
    return auth


def current_auth_context() -> AuthContext:
    """
    AuthContext for the tool call being handled.

    Outside an HTTP request (stdio transport, in-process clients) this is
    NoAuth. Inside an HTTP request the middleware must have attached one.
    """
    try:
        request = get_http_request()
    except RuntimeError:
        return NO_AUTH
    return auth_context_from_request(request)
