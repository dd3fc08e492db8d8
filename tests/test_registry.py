"""
Tests for tool registration (flow_mstr_mcp/registry.py and catalog.py).

Two angles:
- the real catalog, checking which tools each configuration registers
- a small synthetic catalog covering every category/readonly combination,
  checking that the filters commute
"""

import itertools

import pytest

from flow_mstr_mcp.capabilities import FeatureStatus, ServerCapabilities
from flow_mstr_mcp.catalog import build_catalog
from flow_mstr_mcp.registry import (
    DEFAULT_FILTERS,
    ToolFilterPipeline,
    filter_hidden_tools,
    filter_optional_capability_tools,
    filter_write_tools,
)
from flow_mstr_mcp.tools import ToolCategory, ToolDescriptor, make_tool

GDS_INSTALLED = ServerCapabilities(gds_status=FeatureStatus.INSTALLED, gds_version="2.6.0", probed=True)
GDS_ABSENT = ServerCapabilities(gds_status=FeatureStatus.ABSENT, probed=True)
GDS_UNKNOWN = ServerCapabilities(gds_status=FeatureStatus.UNKNOWN, probed=True)

CORE_TOOLS = {
    "get-metric-by-guid",
    "get-attribute-by-guid",
    "search-metrics",
    "search-attributes",
    "get-reports-using-metric",
    "get-reports-using-attribute",
    "get-metric-source-tables",
    "get-attribute-source-tables",
    "get-metric-dependencies",
    "get-attribute-dependencies",
    "get-metric-dependents",
    "get-attribute-dependents",
    "get-metrics-stats",
    "get-attributes-stats",
    "get-object-stats",
    "trace-metric",
    "trace-attribute",
}
HIDDEN_TOOLS = {"get-schema", "read-cypher", "write-cypher"}


def _names(descriptors) -> set[str]:
    return {descriptor.name for descriptor in descriptors}


def _synthetic_tool(name: str, category: ToolCategory, readonly: bool) -> ToolDescriptor:
    async def handler() -> str:
        return name

    return make_tool(handler, name=name, description=name, readonly=readonly, category=category)


@pytest.fixture
def synthetic_catalog():
    """One tool per (category, readonly) pair."""
    return [
        _synthetic_tool(f"{category.value}-{'ro' if readonly else 'rw'}", category, readonly)
        for category in ToolCategory
        for readonly in (True, False)
    ]


# ---------------------------------------------------------------------------
# Test: Catalog contents
# ---------------------------------------------------------------------------


class TestCatalog:
    def test_every_tool_is_listed_once(self, make_db, make_settings):
        catalog = build_catalog(make_db(), make_settings())

        assert _names(catalog) == CORE_TOOLS | HIDDEN_TOOLS | {"list-gds-procedures"}
        assert len(catalog) == len(_names(catalog))

    def test_categories(self, make_db, make_settings):
        catalog = {d.name: d for d in build_catalog(make_db(), make_settings())}

        assert {n for n, d in catalog.items() if d.category is ToolCategory.CORE} == CORE_TOOLS
        assert {n for n, d in catalog.items() if d.category is ToolCategory.HIDDEN} == HIDDEN_TOOLS
        assert catalog["list-gds-procedures"].category is ToolCategory.OPTIONAL_CAPABILITY

    def test_only_write_cypher_can_write(self, make_db, make_settings):
        catalog = build_catalog(make_db(), make_settings())

        assert {d.name for d in catalog if not d.readonly} == {"write-cypher"}

    def test_annotations_follow_readonly_flag(self, make_db, make_settings):
        catalog = {d.name: d for d in build_catalog(make_db(), make_settings())}

        assert catalog["get-metric-by-guid"].tool.annotations.readOnlyHint is True
        assert catalog["write-cypher"].tool.annotations.readOnlyHint is False
        assert catalog["write-cypher"].tool.annotations.destructiveHint is True


# ---------------------------------------------------------------------------
# Test: Registered tool sets
# ---------------------------------------------------------------------------


class TestRegisteredTools:
    @pytest.mark.parametrize("capabilities", [GDS_ABSENT, GDS_UNKNOWN, ServerCapabilities()])
    def test_core_only_without_gds(self, make_db, make_settings, capabilities):
        settings = make_settings()
        registered = ToolFilterPipeline(settings, capabilities).apply(build_catalog(make_db(), settings))

        assert _names(registered) == CORE_TOOLS
        assert len(registered) == 17

    def test_gds_tool_added_when_installed(self, make_db, make_settings):
        settings = make_settings()
        registered = ToolFilterPipeline(settings, GDS_INSTALLED).apply(build_catalog(make_db(), settings))

        assert _names(registered) == CORE_TOOLS | {"list-gds-procedures"}

    @pytest.mark.parametrize("read_only", [True, False])
    @pytest.mark.parametrize("capabilities", [GDS_INSTALLED, GDS_ABSENT, GDS_UNKNOWN])
    def test_hidden_tools_never_registered(self, make_db, make_settings, read_only, capabilities):
        settings = make_settings(read_only=read_only)
        registered = ToolFilterPipeline(settings, capabilities).apply(build_catalog(make_db(), settings))

        assert not _names(registered) & HIDDEN_TOOLS

    def test_read_only_registers_only_read_only_tools(self, make_db, make_settings):
        settings = make_settings(read_only=True)
        registered = ToolFilterPipeline(settings, GDS_INSTALLED).apply(build_catalog(make_db(), settings))

        assert all(d.readonly for d in registered)

    def test_apply_returns_immutable_tuple(self, make_db, make_settings):
        settings = make_settings()
        registered = ToolFilterPipeline(settings, GDS_ABSENT).apply(build_catalog(make_db(), settings))

        assert isinstance(registered, tuple)


# ---------------------------------------------------------------------------
# Test: Individual filters and their order independence
# ---------------------------------------------------------------------------


class TestFilters:
    def test_write_filter_inactive_by_default(self, synthetic_catalog, make_settings):
        assert filter_write_tools(synthetic_catalog, make_settings(), GDS_ABSENT) == synthetic_catalog

    def test_write_filter_in_read_only_mode(self, synthetic_catalog, make_settings):
        kept = filter_write_tools(synthetic_catalog, make_settings(read_only=True), GDS_ABSENT)

        assert _names(kept) == {"hidden-ro", "optional_capability-ro", "core-ro"}

    def test_optional_capability_filter(self, synthetic_catalog, make_settings):
        settings = make_settings()

        assert filter_optional_capability_tools(synthetic_catalog, settings, GDS_INSTALLED) == synthetic_catalog
        assert _names(filter_optional_capability_tools(synthetic_catalog, settings, GDS_UNKNOWN)) == {
            "hidden-ro",
            "hidden-rw",
            "core-ro",
            "core-rw",
        }

    def test_hidden_filter(self, synthetic_catalog, make_settings):
        kept = filter_hidden_tools(synthetic_catalog, make_settings(), GDS_INSTALLED)

        assert not any(d.category is ToolCategory.HIDDEN for d in kept)

    def test_filters_only_remove(self, synthetic_catalog, make_settings):
        settings = make_settings(read_only=True)
        for tool_filter in DEFAULT_FILTERS:
            kept = tool_filter(synthetic_catalog, settings, GDS_ABSENT)
            assert _names(kept) <= _names(synthetic_catalog)

    @pytest.mark.parametrize("read_only", [True, False])
    @pytest.mark.parametrize("capabilities", [GDS_INSTALLED, GDS_ABSENT, GDS_UNKNOWN])
    def test_filter_order_does_not_matter(self, synthetic_catalog, make_settings, read_only, capabilities):
        settings = make_settings(read_only=read_only)
        results = {
            _names_tuple(ToolFilterPipeline(settings, capabilities, order).apply(synthetic_catalog))
            for order in itertools.permutations(DEFAULT_FILTERS)
        }

        assert len(results) == 1

    def test_registered_set_matches_rules(self, synthetic_catalog, make_settings):
        """A tool is registered iff it is not hidden, passes read-only, and has its capability."""
        for read_only, capabilities in itertools.product((True, False), (GDS_INSTALLED, GDS_ABSENT)):
            settings = make_settings(read_only=read_only)
            registered = ToolFilterPipeline(settings, capabilities).apply(synthetic_catalog)
            expected = {
                d.name
                for d in synthetic_catalog
                if d.category is not ToolCategory.HIDDEN
                and (d.readonly or not read_only)
                and (d.category is not ToolCategory.OPTIONAL_CAPABILITY or capabilities.gds_installed)
            }
            assert _names(registered) == expected


def _names_tuple(descriptors) -> tuple[str, ...]:
    return tuple(sorted(d.name for d in descriptors))
