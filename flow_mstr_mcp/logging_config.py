"""
Log set-up for the server process.

Two formats are supported:

- text: human-readable lines for local use
- json: one JSON object per line, for log collectors that index fields

Logs always go to stderr. In stdio transport mode stdout carries the MCP
protocol stream, so nothing else may be written there.

Structured fields are attached with `extra={"event_data": {...}}`:

    logger.warning("Authentication failed", extra={"event_data": {"reason": "invalid_api_token"}})
"""

import json
import logging
import sys

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-02-06 10:30:00,120", "level": "WARNING", "logger": "flow_mstr_mcp.middleware",
         "message": "Authentication failed", "request_id": "3f9a1c2e", "reason": "invalid_api_token"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "event_data"):
            log_entry.update(record.event_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


class TextLogFormatter(logging.Formatter):
    """Plain formatter that appends structured fields as key=value pairs."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        event_data = getattr(record, "event_data", None)
        if event_data:
            line += " " + " ".join(f"{key}={value}" for key, value in event_data.items())
        return line


def setup_logging(level: str = "info", fmt: str = "text") -> None:
    """Install a single stderr handler on the root logger."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONLogFormatter() if fmt == "json" else TextLogFormatter())

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )
