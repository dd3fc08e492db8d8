"""
Tool descriptors and the shared query runner behind every tool handler.

Each tool in the catalog is described once by a ToolDescriptor:

    ToolDescriptor(category=ToolCategory.CORE, readonly=True, tool=<fastmcp Tool>)

The category and readonly flag drive the filter pipeline in registry.py; the
FastMCP Tool is what finally gets registered on the server.

Handlers stay small: they check their arguments, pick a query and hand it to
QueryRunner, which resolves the caller's credentials, runs the query and turns
driver failures into MCP tool errors.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastmcp.exceptions import ToolError
from fastmcp.tools import Tool
from mcp.types import ToolAnnotations
from neo4j import Record
from neo4j.exceptions import DriverError, Neo4jError

from flow_mstr_mcp.auth import current_auth_context
from flow_mstr_mcp.database import Neo4jService

logger = logging.getLogger(__name__)


class ToolCategory(Enum):
    # Implemented but never exposed.
    HIDDEN = "hidden"
    # Exposed only when the matching Neo4j extension (GDS) is installed.
    OPTIONAL_CAPABILITY = "optional_capability"
    CORE = "core"


@dataclass(frozen=True)
class ToolDescriptor:
    category: ToolCategory
    readonly: bool
    tool: Tool

    @property
    def name(self) -> str:
        return self.tool.name


def make_tool(
    fn: Callable[..., Awaitable[str]],
    *,
    name: str,
    description: str,
    readonly: bool,
    category: ToolCategory = ToolCategory.CORE,
) -> ToolDescriptor:
    """Wrap a handler function as a FastMCP tool with annotations derived from `readonly`."""
    annotations = ToolAnnotations(
        title=name.replace("-", " ").title(),
        readOnlyHint=readonly,
        destructiveHint=not readonly,
        idempotentHint=readonly,
        openWorldHint=False,
    )
    tool = Tool.from_function(fn, name=name, description=description, annotations=annotations)
    return ToolDescriptor(category=category, readonly=readonly, tool=tool)


# ---------------------------------------------------------------------------
# Argument checks
# ---------------------------------------------------------------------------


def require_guid(guid: str) -> str:
    guid = guid.strip()
    if not guid:
        raise ToolError("Invalid input: guid must not be empty")
    return guid


def require_offset(offset: int) -> int:
    if offset < 0:
        raise ToolError("Invalid input: offset must be zero or greater")
    return offset


# ---------------------------------------------------------------------------
# Query execution
# ---------------------------------------------------------------------------


class QueryRunner:
    """Runs tool queries with the credentials of the request being served."""

    def __init__(self, db: Neo4jService):
        self.db = db

    async def read(self, tool_name: str, query: str, params: dict[str, Any] | None = None) -> list[Record]:
        return await self._run(tool_name, query, params, write=False)

    async def write(self, tool_name: str, query: str, params: dict[str, Any] | None = None) -> list[Record]:
        return await self._run(tool_name, query, params, write=True)

    async def _run(
        self,
        tool_name: str,
        query: str,
        params: dict[str, Any] | None,
        write: bool,
    ) -> list[Record]:
        auth = current_auth_context()
        logger.info(
            "Tool executed",
            extra={
                "event_data": {
                    "tool": tool_name,
                    "mode": type(auth).__name__,
                    "routing": "write" if write else "read",
                }
            },
        )

        execute = self.db.execute_write_query if write else self.db.execute_read_query
        try:
            return await execute(query, params, auth=auth)
        except (Neo4jError, DriverError) as e:
            logger.warning(
                "Tool query failed",
                extra={"event_data": {"tool": tool_name, "error_type": type(e).__name__}},
            )
            raise ToolError(f"Query execution failed: {e}") from e
