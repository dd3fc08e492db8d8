"""
The complete tool catalog.

Every tool the server implements is listed here, whether or not it ends up
registered: the filter pipeline (registry.py) decides that from the
descriptor's category and readonly flag.

    CORE                 MicroStrategy migration tools, always read-only
    OPTIONAL_CAPABILITY  list-gds-procedures, needs the GDS library
    HIDDEN               get-schema, read-cypher, write-cypher
"""

from typing import Annotated, Any, Literal

from fastmcp.exceptions import ToolError
from pydantic import Field

from flow_mstr_mcp import queries
from flow_mstr_mcp.config import Settings
from flow_mstr_mcp.database import Neo4jService, records_to_json, to_json
from flow_mstr_mcp.tools import (
    QueryRunner,
    ToolCategory,
    ToolDescriptor,
    make_tool,
    require_guid,
    require_offset,
)

Guid = Annotated[str, Field(description="The exact GUID of the object")]
Offset = Annotated[int, Field(description="Pagination offset; 100 results per page")]
StatusFilter = Annotated[
    list[str] | None,
    Field(description="Parity statuses to include, e.g. ['Complete', 'Planned', 'Not Planned', 'No Status']"),
]
PriorityFilter = Annotated[
    list[str] | None,
    Field(description="Report priorities, e.g. ['P1 (Highest)', 'P2']; 'All Prioritized' or empty for all"),
]
AreaFilter = Annotated[
    list[str] | None,
    Field(description="Report business areas; 'All Areas' or empty for all"),
]

# Stats summary returned when no object matches the filters.
EMPTY_STATS = {
    "total": 0,
    "complete": 0,
    "planned": 0,
    "notPlanned": 0,
    "noStatus": 0,
    "prioritized": 0,
    "teams": [],
}


def build_catalog(db: Neo4jService, settings: Settings) -> list[ToolDescriptor]:
    """
    Create a descriptor for every implemented tool.

    Raises:
        ValueError: if two tools share a name
    """
    runner = QueryRunner(db)
    catalog = [
        *_object_tools(runner, "Metric"),
        *_object_tools(runner, "Attribute"),
        _search_metrics_tool(runner),
        _search_attributes_tool(runner),
        _object_stats_tool(runner),
        _trace_tool(runner, "Metric"),
        _trace_tool(runner, "Attribute"),
        _list_gds_procedures_tool(runner),
        *_cypher_tools(runner, settings),
    ]

    names = [descriptor.name for descriptor in catalog]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValueError(f"Duplicate tool names in catalog: {', '.join(duplicates)}")
    return catalog


# ---------------------------------------------------------------------------
# Metric / Attribute tools
# ---------------------------------------------------------------------------


def _object_tools(runner: QueryRunner, label: str) -> list[ToolDescriptor]:
    """The per-type tools shared by Metrics and Attributes."""
    singular = label.lower()
    plural = f"{singular}s"

    async def get_by_guid(guid: Guid) -> str:
        records = await runner.read(
            f"get-{singular}-by-guid",
            queries.OBJECT_DETAILS_QUERY,
            {"guids": [require_guid(guid)], "label": label},
        )
        if not records:
            return f"No {label} found with the specified GUID."
        return records_to_json(records)

    async def reports_using(
        guid: Guid,
        priorityLevel: PriorityFilter = None,
        businessArea: AreaFilter = None,
        offset: Offset = 0,
    ) -> str:
        records = await runner.read(
            f"get-reports-using-{singular}",
            queries.REPORTS_USING_OBJECTS_QUERY,
            {
                "guids": [require_guid(guid)],
                "priorityLevel": priorityLevel,
                "businessArea": businessArea,
                "offset": require_offset(offset),
            },
        )
        return records_to_json(records)

    async def source_tables(guid: Guid, offset: Offset = 0) -> str:
        records = await runner.read(
            f"get-{singular}-source-tables",
            queries.SOURCE_TABLES_QUERY,
            {"guids": [require_guid(guid)], "offset": require_offset(offset)},
        )
        return records_to_json(records)

    async def dependencies(guid: Guid, offset: Offset = 0) -> str:
        records = await runner.read(
            f"get-{singular}-dependencies",
            queries.DOWNSTREAM_DEPENDENCIES_QUERY,
            {"guids": [require_guid(guid)], "offset": require_offset(offset)},
        )
        return records_to_json(records)

    async def dependents(guid: Guid, offset: Offset = 0) -> str:
        records = await runner.read(
            f"get-{singular}-dependents",
            queries.UPSTREAM_DEPENDENCIES_QUERY,
            {"guids": [require_guid(guid)], "offset": require_offset(offset)},
        )
        return records_to_json(records)

    async def stats(
        status: StatusFilter = None,
        team: Annotated[str | None, Field(description="Only count objects owned by this team")] = None,
    ) -> str:
        records = await runner.read(
            f"get-{plural}-stats",
            queries.TYPE_STATS_QUERY,
            {"label": label, "status": status, "team": team},
        )
        if not records:
            return to_json(EMPTY_STATS)
        return records_to_json(records)

    return [
        make_tool(
            get_by_guid,
            name=f"get-{singular}-by-guid",
            description=(
                f"Get a MicroStrategy {label} by its exact GUID: migration status, team, "
                "priority, formula, target tables and report/table counts."
            ),
            readonly=True,
        ),
        make_tool(
            reports_using,
            name=f"get-reports-using-{singular}",
            description=(
                f"List prioritized reports that use a {label}, directly or through "
                "Prompt/Filter chains. Filter by priority level and business area."
            ),
            readonly=True,
        ),
        make_tool(
            source_tables,
            name=f"get-{singular}-source-tables",
            description=(
                f"List the database tables feeding a {label}, traced through "
                "Facts, Metrics, Attributes and Columns."
            ),
            readonly=True,
        ),
        make_tool(
            dependencies,
            name=f"get-{singular}-dependencies",
            description=(
                f"List the objects a {label} directly depends on, plus the number of "
                "source tables reachable transitively."
            ),
            readonly=True,
        ),
        make_tool(
            dependents,
            name=f"get-{singular}-dependents",
            description=f"List every report (prioritized or not) that depends on a {label}.",
            readonly=True,
        ),
        make_tool(
            stats,
            name=f"get-{plural}-stats",
            description=(
                f"Aggregate {label} migration counts by parity status, optionally "
                "filtered by status and team."
            ),
            readonly=True,
        ),
    ]


def _search_metrics_tool(runner: QueryRunner) -> ToolDescriptor:
    async def search_metrics(
        query: Annotated[str, Field(description="Full GUID, GUID prefix (8+ hex characters) or part of the name")],
        status: StatusFilter = None,
        offset: Offset = 0,
    ) -> str:
        if not query.strip():
            raise ToolError("Invalid input: query must not be empty")
        records = await runner.read(
            "search-metrics",
            queries.SEARCH_METRICS_QUERY,
            {"query": query.strip(), "status": status, "offset": require_offset(offset)},
        )
        return records_to_json(records)

    return make_tool(
        search_metrics,
        name="search-metrics",
        description="Search Metrics by GUID or name, optionally filtered by parity status.",
        readonly=True,
    )


def _search_attributes_tool(runner: QueryRunner) -> ToolDescriptor:
    async def search_attributes(
        searchTerm: Annotated[str | None, Field(description="Comma-separated terms matched against name or GUID")] = None,
        priorityLevel: PriorityFilter = None,
        businessArea: AreaFilter = None,
        status: StatusFilter = None,
        dataDomain: Annotated[
            list[str] | None, Field(description="Data products the attribute must belong to")
        ] = None,
        offset: Offset = 0,
    ) -> str:
        records = await runner.read(
            "search-attributes",
            queries.SEARCH_OBJECTS_QUERY,
            {
                "searchTerm": searchTerm,
                "objectType": "Attribute",
                "priorityLevel": priorityLevel,
                "businessArea": businessArea,
                "status": status,
                "dataDomain": dataDomain,
                "offset": require_offset(offset),
            },
        )
        return records_to_json(records)

    return make_tool(
        search_attributes,
        name="search-attributes",
        description=(
            "Search Attributes used by prioritized reports. Filter by search terms, "
            "priority level, business area, parity status and data domain; results "
            "are ordered by report count."
        ),
        readonly=True,
    )


def _object_stats_tool(runner: QueryRunner) -> ToolDescriptor:
    async def object_stats(guid: Guid) -> str:
        records = await runner.read(
            "get-object-stats", queries.OBJECT_STATS_QUERY, {"guid": require_guid(guid)}
        )
        return records_to_json(records)

    return make_tool(
        object_stats,
        name="get-object-stats",
        description=(
            "Get report and source table counts for any MicroStrategy object, "
            "with the report count broken down by priority."
        ),
        readonly=True,
    )


def _trace_tool(runner: QueryRunner, label: str) -> ToolDescriptor:
    singular = label.lower()
    downstream = getattr(queries, f"TRACE_{label.upper()}_DOWNSTREAM_QUERY")
    upstream = getattr(queries, f"TRACE_{label.upper()}_UPSTREAM_QUERY")

    async def trace(
        guid: Guid,
        direction: Annotated[
            Literal["downstream", "upstream"],
            Field(description="'downstream' for the reports using it, 'upstream' for its source tables"),
        ] = "downstream",
        offset: Offset = 0,
    ) -> str:
        guid = require_guid(guid)
        records = await runner.read(
            f"trace-{singular}",
            downstream if direction == "downstream" else upstream,
            {"guid": guid, "offset": require_offset(offset)},
        )
        if not records:
            raise ToolError(f"{label} with GUID {guid} not found")
        return to_json(records[0].get("result"))

    return make_tool(
        trace,
        name=f"trace-{singular}",
        description=(
            f"Trace the live lineage of a {label}: downstream to the prioritized "
            "reports that use it, or upstream to its source tables and immediate "
            "dependencies."
        ),
        readonly=True,
    )


# ---------------------------------------------------------------------------
# Optional capability and hidden tools
# ---------------------------------------------------------------------------


def _list_gds_procedures_tool(runner: QueryRunner) -> ToolDescriptor:
    async def list_gds_procedures() -> str:
        records = await runner.read("list-gds-procedures", queries.LIST_GDS_PROCEDURES_QUERY)
        return records_to_json(records)

    return make_tool(
        list_gds_procedures,
        name="list-gds-procedures",
        description="List the Graph Data Science streaming procedures available on this Neo4j server.",
        readonly=True,
        category=ToolCategory.OPTIONAL_CAPABILITY,
    )


def _cypher_tools(runner: QueryRunner, settings: Settings) -> list[ToolDescriptor]:
    CypherQuery = Annotated[str, Field(description="The Cypher query to run")]
    CypherParams = Annotated[dict[str, Any] | None, Field(description="Query parameters")]

    async def get_schema() -> str:
        records = await runner.read(
            "get-schema", queries.GET_SCHEMA_QUERY, {"sampleSize": settings.schema_sample_size}
        )
        return records_to_json(records)

    async def read_cypher(query: CypherQuery, params: CypherParams = None) -> str:
        if not query.strip():
            raise ToolError("Invalid input: query must not be empty")
        return records_to_json(await runner.read("read-cypher", query, params))

    async def write_cypher(query: CypherQuery, params: CypherParams = None) -> str:
        if not query.strip():
            raise ToolError("Invalid input: query must not be empty")
        return records_to_json(await runner.write("write-cypher", query, params))

    return [
        make_tool(
            get_schema,
            name="get-schema",
            description="Infer the graph schema (labels, relationships, properties) by sampling nodes.",
            readonly=True,
            category=ToolCategory.HIDDEN,
        ),
        make_tool(
            read_cypher,
            name="read-cypher",
            description="Run a read-only Cypher query.",
            readonly=True,
            category=ToolCategory.HIDDEN,
        ),
        make_tool(
            write_cypher,
            name="write-cypher",
            description="Run a Cypher query that may modify the graph.",
            readonly=False,
            category=ToolCategory.HIDDEN,
        ),
    ]
