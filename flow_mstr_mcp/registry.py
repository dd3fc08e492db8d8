"""
Decides which catalog tools get registered on the server.

A filter takes the current tool list plus the startup settings and probed
capabilities, and returns the tools it keeps. Filters only ever remove tools
and each one looks at a single descriptor at a time, so running them in any
order gives the same registered set.
"""

import logging
from collections.abc import Callable, Iterable, Sequence

from flow_mstr_mcp.capabilities import ServerCapabilities
from flow_mstr_mcp.config import Settings
from flow_mstr_mcp.tools import ToolCategory, ToolDescriptor

logger = logging.getLogger(__name__)

ToolFilter = Callable[[list[ToolDescriptor], Settings, ServerCapabilities], list[ToolDescriptor]]


def filter_write_tools(
    tools: list[ToolDescriptor], settings: Settings, capabilities: ServerCapabilities
) -> list[ToolDescriptor]:
    """In read-only mode, drop every tool that may write."""
    if not settings.read_only:
        return tools
    return [tool for tool in tools if tool.readonly]


def filter_optional_capability_tools(
    tools: list[ToolDescriptor], settings: Settings, capabilities: ServerCapabilities
) -> list[ToolDescriptor]:
    """Without GDS (absent or undetermined), drop the tools that need it."""
    if capabilities.gds_installed:
        return tools
    return [tool for tool in tools if tool.category is not ToolCategory.OPTIONAL_CAPABILITY]


def filter_hidden_tools(
    tools: list[ToolDescriptor], settings: Settings, capabilities: ServerCapabilities
) -> list[ToolDescriptor]:
    return [tool for tool in tools if tool.category is not ToolCategory.HIDDEN]


DEFAULT_FILTERS: tuple[ToolFilter, ...] = (
    filter_write_tools,
    filter_optional_capability_tools,
    filter_hidden_tools,
)


class ToolFilterPipeline:
    """Applies the tool filters for one server start."""

    def __init__(
        self,
        settings: Settings,
        capabilities: ServerCapabilities,
        filters: Sequence[ToolFilter] = DEFAULT_FILTERS,
    ):
        self.settings = settings
        self.capabilities = capabilities
        self.filters = tuple(filters)

    def apply(self, catalog: Iterable[ToolDescriptor]) -> tuple[ToolDescriptor, ...]:
        catalog = list(catalog)
        tools = catalog
        for tool_filter in self.filters:
            tools = tool_filter(tools, self.settings, self.capabilities)

        logger.info(
            "Tool registration resolved",
            extra={
                "event_data": {
                    "catalog_size": len(catalog),
                    "registered": len(tools),
                    "read_only": self.settings.read_only,
                    "gds_status": self.capabilities.gds_status.value,
                }
            },
        )
        return tuple(tools)
