"""
Application configuration loaded from environment variables and CLI flags.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables prefixed with FLOW_. Command-line flags are passed
as init kwargs and therefore take precedence over the environment.

The settings are loaded once before the server starts and are never mutated
afterwards. Three fields drive the request gate and tool registration:

- read_only: only read-only tools are registered
- api_token: static bearer token; when set, the server uses its own Neo4j
  credentials and Basic auth is refused
- mcp_http_allowed_origins: CORS allow-list ("*" allows every origin)
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
VALID_LOG_FORMATS = ("text", "json")
# URI schemes the Neo4j driver accepts.
VALID_URI_SCHEMES = ("neo4j", "neo4j+s", "neo4j+ssc", "bolt", "bolt+s", "bolt+ssc")


class TransportMode(str, Enum):
    STDIO = "stdio"
    HTTP = "http"


class ConfigValidationError(Exception):
    """Raised when the configuration cannot be used to start the server."""


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the FLOW_ prefix, e.g.
    `uri` reads FLOW_URI and `mcp_http_port` reads FLOW_MCP_HTTP_PORT.
    """

    # --- Neo4j connection ---

    uri: str = ""
    username: str = ""
    password: str = ""
    database: str = "neo4j"

    # --- Tool exposure ---

    # Only tools flagged read-only are registered when enabled.
    read_only: bool = False

    # Number of nodes sampled per label by the schema tool.
    schema_sample_size: int = 100

    # --- Logging ---

    log_level: str = "info"
    log_format: str = "text"

    # --- Transport ---

    mcp_transport: TransportMode = TransportMode.STDIO
    mcp_http_host: str = "127.0.0.1"
    # Resolved through `http_port`: 443 with TLS, 80 without.
    mcp_http_port: int | None = None
    # Comma-separated CORS allow-list; empty disables CORS handling.
    mcp_http_allowed_origins: str = ""
    mcp_http_tls_enabled: bool = False
    mcp_http_tls_cert_file: Path | None = None
    mcp_http_tls_key_file: Path | None = None

    # --- Authentication ---

    # Static API token for HTTP mode. Blank values count as unset.
    api_token: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="FLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _fallback_log_level(cls, value: Any) -> str:
        level = str(value or "").strip().lower()
        if level not in VALID_LOG_LEVELS:
            logger.warning(
                "Invalid FLOW_LOG_LEVEL %r, using default 'info'. Valid values: %s",
                value,
                ", ".join(VALID_LOG_LEVELS),
            )
            return "info"
        return level

    @field_validator("log_format", mode="before")
    @classmethod
    def _fallback_log_format(cls, value: Any) -> str:
        fmt = str(value or "").strip().lower()
        if fmt not in VALID_LOG_FORMATS:
            logger.warning(
                "Invalid FLOW_LOG_FORMAT %r, using default 'text'. Valid values: %s",
                value,
                ", ".join(VALID_LOG_FORMATS),
            )
            return "text"
        return fmt

    @field_validator("api_token", mode="before")
    @classmethod
    def _blank_token_is_unset(cls, value: Any) -> str | None:
        if value is None:
            return None
        token = str(value).strip()
        return token or None

    @field_validator("mcp_http_tls_cert_file", "mcp_http_tls_key_file", mode="before")
    @classmethod
    def _blank_path_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    # --- Derived values ---

    @property
    def allowed_origins(self) -> frozenset[str]:
        return frozenset(
            origin.strip()
            for origin in self.mcp_http_allowed_origins.split(",")
            if origin.strip()
        )

    @property
    def http_port(self) -> int:
        if self.mcp_http_port is not None:
            return self.mcp_http_port
        return 443 if self.mcp_http_tls_enabled else 80

    @property
    def uses_server_credentials(self) -> bool:
        """True when the server connects to Neo4j with its own username/password."""
        return self.mcp_transport is TransportMode.STDIO or self.api_token is not None

    def validate_startup(self) -> None:
        """
        Check the cross-field rules that decide whether the server may start.

        Raises:
            ConfigValidationError: describing the first rule that is violated
        """
        if not self.uri:
            raise ConfigValidationError("Neo4j URI is required but was empty (set FLOW_URI)")
        scheme = urlparse(self.uri).scheme
        if scheme not in VALID_URI_SCHEMES:
            raise ConfigValidationError(
                f"Neo4j URI scheme {scheme!r} is not supported; use one of: "
                + ", ".join(VALID_URI_SCHEMES)
            )

        if self.mcp_transport is TransportMode.STDIO:
            if not self.username:
                raise ConfigValidationError("Neo4j username is required for stdio mode")
            if not self.password:
                raise ConfigValidationError("Neo4j password is required for stdio mode")

        elif self.api_token is not None:
            # API token mode: the server authenticates clients with the token
            # and queries Neo4j with its own credentials.
            if not self.username or not self.password:
                raise ConfigValidationError(
                    "Neo4j username and password are required when using API token "
                    "authentication (FLOW_API_TOKEN)"
                )

        elif self.username or self.password:
            raise ConfigValidationError(
                "Neo4j username and password must not be set for HTTP mode without an "
                "API token; credentials are provided per request via Basic or Bearer "
                "authentication, or set FLOW_API_TOKEN for server-side credentials"
            )

        if self.mcp_transport is TransportMode.HTTP and self.mcp_http_tls_enabled:
            if self.mcp_http_tls_cert_file is None:
                raise ConfigValidationError(
                    "TLS certificate file is required when TLS is enabled "
                    "(set FLOW_MCP_HTTP_TLS_CERT_FILE)"
                )
            if self.mcp_http_tls_key_file is None:
                raise ConfigValidationError(
                    "TLS key file is required when TLS is enabled "
                    "(set FLOW_MCP_HTTP_TLS_KEY_FILE)"
                )
            for path in (self.mcp_http_tls_cert_file, self.mcp_http_tls_key_file):
                if not path.is_file():
                    raise ConfigValidationError(f"TLS file not found: {path}")


def load_settings(overrides: dict[str, Any] | None = None, **kwargs: Any) -> Settings:
    """
    Build and validate the settings.

    Args:
        overrides: values from CLI flags; None entries are ignored so the
                   environment value (or default) is kept
        **kwargs: forwarded to Settings (e.g. _env_file=None in tests)

    Raises:
        ConfigValidationError: if a value is malformed or the combination is invalid
    """
    values = {key: value for key, value in (overrides or {}).items() if value is not None}
    try:
        settings = Settings(**values, **kwargs)
    except ValidationError as e:
        raise ConfigValidationError(f"Invalid configuration: {e}") from e

    settings.validate_startup()
    return settings
