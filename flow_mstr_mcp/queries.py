"""
Cypher queries behind the tools.

The graph models a MicroStrategy project: every object is an :MSTRObject with
a `type` property (Metric, Attribute, Fact, Report, LogicalTable, ...), Metrics
and Attributes also carry their own label, and dependencies are DEPENDS_ON
relationships pointing from the consumer to the object it uses.

Parity properties prefixed `updated_` come from the backlog sync and take
precedence over the computed ones. Paginated queries fetch 101 rows so that
`moreResults` can be reported without a second count query.
"""

PAGE_SIZE = 100

REPORT_TYPES = "['Report', 'GridReport', 'Document']"
TABLE_TYPES = "['LogicalTable', 'Table']"

# Shared projection of a Metric/Attribute's migration properties.
_MIGRATION_PROPERTIES = """
    guid: n.guid,
    name: n.name,
    status: effectiveStatus,
    priority: n.inherited_priority_level,
    notes: COALESCE(n.updated_parity_notes, n.parity_notes),
    raw: COALESCE(n.updated_db_raw, n.db_raw),
    serve: COALESCE(n.updated_db_serve, n.db_serve),
    semantic: n.pb_semantic,
    edwTable: COALESCE(n.updated_edw_table, n.edw_table),
    edwColumn: n.edw_column,
    adeTable: COALESCE(n.updated_ade_db_table, n.ade_db_table),
    adeColumn: n.ade_db_column,
    semanticName: n.pb_semantic_name,
    semanticModel: n.pb_semantic_model,
    dbEssential: n.db_essential,
    pbEssential: n.pb_essential,
    ado_link: COALESCE(n.updated_ado_link, n.ado_link)"""

_EFFECTIVE_STATUS = "COALESCE(n.updated_parity_status, n.parity_status, 'No Status')"


# =============================================================================
# Object details by GUID
# =============================================================================

_DETAILS_RETURN = """
RETURN
  n.guid as GUID,
  n.name as Name,
  COALESCE(n.updated_parity_status, n.parity_status, 'No Status') as Status,
  n.parity_group as `Group`,
  n.parity_subgroup as SubGroup,
  n.parity_team as Team,
  n.inherited_priority_level as Priority,
  n.formula as Formula,
  n.db_raw as RAW,
  n.db_serve as SERVE,
  n.pb_semantic as SEMANTIC,
  n.edw_table as EDWTable,
  n.edw_column as EDWColumn,
  n.ade_db_table as ADETable,
  n.ade_db_column as ADEColumn,
  n.pb_semantic_name as SemanticName,
  n.pb_semantic_model as SemanticModel,
  n.db_essential as DBEssential,
  n.pb_essential as PBEssential,
  n.parity_notes as Notes,
  COALESCE(n.lineage_used_by_reports_count, 0) as ReportCount,
  COALESCE(n.lineage_source_tables_count, 0) as TableCount,
  $label as Type
LIMIT 100"""

# $guids: GUIDs to look up (exact match); $label: 'Metric' or 'Attribute'
OBJECT_DETAILS_QUERY = """
MATCH (n:MSTRObject)
WHERE n.guid IN $guids AND n.type = $label""" + _DETAILS_RETURN


# =============================================================================
# Search
# =============================================================================

# $query: full GUID, partial GUID (8+ hex chars) or name fragment
# $status: optional list of parity statuses; $offset: pagination offset
SEARCH_METRICS_QUERY = """
WITH $query as query,
     $query =~ '^[A-Fa-f0-9]{8,}$' as isGuidLike
MATCH (n:Metric)
WHERE n.guid IS NOT NULL
  AND (
    (isGuidLike AND (n.guid = query OR n.guid STARTS WITH toUpper(query)))
    OR
    (NOT isGuidLike AND toLower(n.name) CONTAINS toLower(query))
  )
  AND ($status IS NULL OR COALESCE(n.updated_parity_status, n.parity_status) IN $status)
WITH n, """ + _EFFECTIVE_STATUS + """ as effectiveStatus
ORDER BY n.name ASC
SKIP $offset
LIMIT 101
WITH collect({
    type: 'Metric',
    formula: n.formula,
    reportCount: COALESCE(n.lineage_used_by_reports_count, 0),
    tableCount: COALESCE(n.lineage_source_tables_count, 0),""" + _MIGRATION_PROPERTIES + """
}) as fetched
RETURN
  fetched[0..100] as results,
  size(fetched) > 100 as moreResults"""

# Objects used by prioritized reports, with dashboard-style filters. Every
# list filter accepts an "All ..." sentinel meaning "no filter".
# $searchTerm: comma-separated terms matched against name or GUID
# $objectType: 'Metric', 'Attribute' or 'All Types'
# $priorityLevel: e.g. ['P1 (Highest)', 'P2']; $businessArea; $status; $dataDomain
# $offset: pagination offset
SEARCH_OBJECTS_QUERY = """
WITH CASE WHEN coalesce($searchTerm, '') = '' THEN null ELSE [term IN split($searchTerm, ',') | toLower(trim(term))] END as searchTerms,
     CASE WHEN coalesce($objectType, '') = '' OR $objectType = 'All Types' THEN ['Metric', 'Attribute'] ELSE [$objectType] END as typeFilter,
     CASE WHEN $priorityLevel IS NULL OR size($priorityLevel) = 0 OR 'All Prioritized' IN $priorityLevel THEN null ELSE [p IN $priorityLevel | toInteger(replace(replace(replace(p, 'P', ''), ' (Highest)', ''), ' (Lowest)', ''))] END as priorityLevelFilter,
     CASE WHEN $businessArea IS NULL OR size($businessArea) = 0 OR 'All Areas' IN $businessArea THEN null ELSE $businessArea END as businessAreaFilter,
     CASE WHEN $status IS NULL OR size($status) = 0 OR 'All Status' IN $status THEN null ELSE $status END as filterStatusList,
     CASE WHEN $dataDomain IS NULL OR size($dataDomain) = 0 OR 'All Domains' IN $dataDomain THEN null ELSE $dataDomain END as dataDomainFilter,
     COALESCE($offset, 0) as offsetVal
MATCH (n:MSTRObject)
WHERE n.type IN typeFilter
  AND n.guid IS NOT NULL
  AND n.inherited_priority_level IS NOT NULL
  AND (searchTerms IS NULL OR any(term IN searchTerms WHERE toLower(n.name) CONTAINS term OR toLower(n.guid) CONTAINS term))
  AND (dataDomainFilter IS NULL OR ALL(domain IN dataDomainFilter WHERE EXISTS { MATCH (dp:DataProduct {name: domain})-[:BELONGS_TO]->(n) }))
WITH n, priorityLevelFilter, businessAreaFilter, filterStatusList, offsetVal,
     """ + _EFFECTIVE_STATUS + """ as effectiveStatus
WHERE (filterStatusList IS NULL OR effectiveStatus IN filterStatusList)
CALL {
  WITH n, priorityLevelFilter, businessAreaFilter
  MATCH (r:MSTRObject)-[:DEPENDS_ON]->(n)
  WHERE r.type IN """ + REPORT_TYPES + """
    AND r.priority_level IS NOT NULL
    AND (priorityLevelFilter IS NULL OR r.priority_level IN priorityLevelFilter)
    AND (businessAreaFilter IS NULL OR r.usage_area IN businessAreaFilter)
  RETURN collect(DISTINCT r.guid) as directGuids
}
CALL {
  WITH n, priorityLevelFilter, businessAreaFilter
  MATCH (r:MSTRObject)-[:DEPENDS_ON]->(fp:MSTRObject)-[:DEPENDS_ON]->(n)
  WHERE r.type IN """ + REPORT_TYPES + """
    AND r.priority_level IS NOT NULL
    AND fp.type IN ['Filter', 'Prompt']
    AND (priorityLevelFilter IS NULL OR r.priority_level IN priorityLevelFilter)
    AND (businessAreaFilter IS NULL OR r.usage_area IN businessAreaFilter)
  RETURN collect(DISTINCT r.guid) as indirectGuids
}
WITH n, effectiveStatus, offsetVal, directGuids + [g IN indirectGuids WHERE NOT g IN directGuids] as allReportGuids
WHERE size(allReportGuids) > 0
WITH n, effectiveStatus, size(allReportGuids) as reportCount, COALESCE(n.lineage_source_tables_count, 0) as tableCount, offsetVal
ORDER BY reportCount DESC, n.name ASC
WITH collect({
  type: n.type,
  name: n.name,
  guid: n.guid,
  status: effectiveStatus,
  priority: n.inherited_priority_level,
  team: n.parity_team,
  reports: reportCount,
  tables: tableCount
}) as allResults, offsetVal
WITH allResults[offsetVal..offsetVal+101] as slicedResults
RETURN
  slicedResults[0..100] as results,
  size(slicedResults) > 100 as moreResults"""


# =============================================================================
# Reports, tables and dependencies (runtime BFS over DEPENDS_ON)
# =============================================================================

_REPORT_PAGE = """
WITH n, collect(DISTINCT r) as allReports, offsetVal
WITH n, allReports, size(allReports) as totalReports, offsetVal,
     allReports[offsetVal..offsetVal+101] as slicedReports
UNWIND CASE WHEN size(slicedReports) > 0 THEN slicedReports[0..100] ELSE [null] END as r
WITH n, totalReports, offsetVal, size(slicedReports) as slicedSize,
     CASE WHEN r IS NOT NULL THEN collect({
       name: r.name,
       guid: r.guid,
       type: r.type,
       priority: r.priority_level,
       area: r.usage_area,
       department: r.usage_department,
       users: r.usage_users_count
     }) ELSE [] END as reports
RETURN
  n.name as objectName,
  n.guid as objectGUID,
  n.type as objectType,
  totalReports,
  reports,
  slicedSize > 100 as moreResults"""

# Prioritized reports reaching the objects through Prompt/Filter chains.
# $guids; $priorityLevel, $businessArea: optional filters; $offset
REPORTS_USING_OBJECTS_QUERY = """
WITH $guids as selectedGuids,
     CASE WHEN $priorityLevel IS NULL OR size($priorityLevel) = 0 OR 'All Prioritized' IN $priorityLevel THEN null ELSE [p IN $priorityLevel | toInteger(replace(replace(replace(p, 'P', ''), ' (Highest)', ''), ' (Lowest)', ''))] END as priorityLevelFilter,
     CASE WHEN $businessArea IS NULL OR size($businessArea) = 0 OR 'All Areas' IN $businessArea THEN null ELSE $businessArea END as businessAreaFilter,
     COALESCE($offset, 0) as offsetVal
MATCH (n:MSTRObject)
WHERE n.guid IN selectedGuids
OPTIONAL MATCH path = (r:MSTRObject)-[:DEPENDS_ON*1..10]->(n)
WHERE r.type IN """ + REPORT_TYPES + """
  AND r.priority_level IS NOT NULL
  AND ALL(mid IN nodes(path)[1..-1] WHERE mid.type IN ['Prompt', 'Filter'])
  AND (priorityLevelFilter IS NULL OR r.priority_level IN priorityLevelFilter)
  AND (businessAreaFilter IS NULL OR r.usage_area IN businessAreaFilter)""" + _REPORT_PAGE

# Every report (prioritized or not) depending on the objects.
# $guids; $offset
UPSTREAM_DEPENDENCIES_QUERY = """
WITH $guids as selectedGuids,
     COALESCE($offset, 0) as offsetVal
MATCH (n:MSTRObject)
WHERE n.guid IN selectedGuids
OPTIONAL MATCH path = (r:MSTRObject)-[:DEPENDS_ON*1..10]->(n)
WHERE r.type IN """ + REPORT_TYPES + """
  AND ALL(mid IN nodes(path)[1..-1] WHERE mid.type IN ['Prompt', 'Filter'])""" + _REPORT_PAGE

# Tables reached through Fact/Metric/Attribute/Column chains.
# $guids; $offset
SOURCE_TABLES_QUERY = """
WITH $guids as selectedGuids,
     COALESCE($offset, 0) as offsetVal
MATCH (n:MSTRObject)
WHERE n.guid IN selectedGuids
OPTIONAL MATCH path = (n)-[:DEPENDS_ON*1..10]->(t:MSTRObject)
WHERE t.type IN """ + TABLE_TYPES + """
  AND ALL(mid IN nodes(path)[1..-1] WHERE mid.type IN ['Fact', 'Metric', 'Attribute', 'Column'])
WITH n, collect(DISTINCT t) as allTables, offsetVal
WITH n, allTables, size(allTables) as totalTables, offsetVal,
     allTables[offsetVal..offsetVal+101] as slicedTables
UNWIND CASE WHEN size(slicedTables) > 0 THEN slicedTables[0..100] ELSE [null] END as t
WITH n, totalTables, offsetVal, size(slicedTables) as slicedSize,
     CASE WHEN t IS NOT NULL THEN collect({
       name: t.name,
       guid: t.guid,
       type: t.type,
       physicalTable: t.physical_table_name,
       database: t.database_instance
     }) ELSE [] END as tables
RETURN
  n.name as objectName,
  n.guid as objectGUID,
  n.type as objectType,
  totalTables,
  tables,
  slicedSize > 100 as moreResults"""

# Direct (1-hop) dependencies, paginated, plus the transitive table count.
# $guids; $offset
DOWNSTREAM_DEPENDENCIES_QUERY = """
WITH $guids as selectedGuids,
     COALESCE($offset, 0) as offsetVal
MATCH (n:MSTRObject)
WHERE n.guid IN selectedGuids
OPTIONAL MATCH (n)-[:DEPENDS_ON]->(direct:MSTRObject)
WITH n, offsetVal, [d IN collect(DISTINCT {
  type: direct.type,
  name: direct.name,
  guid: direct.guid,
  formula: direct.formula
}) WHERE d.guid IS NOT NULL] as allDirectDeps
OPTIONAL MATCH path = (n)-[:DEPENDS_ON*2..10]->(t:MSTRObject)
WHERE t.type IN """ + TABLE_TYPES + """
  AND ALL(mid IN nodes(path)[1..-1] WHERE mid.type IN ['Fact', 'Metric', 'Attribute', 'Column'])
WITH n, allDirectDeps, offsetVal, count(DISTINCT t) as transitiveTableCount
WITH n, allDirectDeps, transitiveTableCount, offsetVal,
     allDirectDeps[offsetVal..offsetVal+101] as slicedDeps
RETURN
  n.name as objectName,
  n.guid as objectGUID,
  n.type as objectType,
  size(allDirectDeps) as totalDirectDeps,
  transitiveTableCount,
  slicedDeps[0..100] as directDependencies,
  size(slicedDeps) > 100 as moreResults"""


# =============================================================================
# Statistics
# =============================================================================

# $label: 'Metric' or 'Attribute'; $status: optional list; $team: optional name
TYPE_STATS_QUERY = """
WITH CASE WHEN $status IS NULL OR size($status) = 0 THEN null ELSE $status END as filterStatus,
     CASE WHEN $team IS NULL OR $team = '' THEN null ELSE $team END as filterTeam
MATCH (n:MSTRObject)
WHERE n.type = $label AND n.guid IS NOT NULL
WITH n, filterStatus, filterTeam,
     """ + _EFFECTIVE_STATUS + """ as status
WHERE (filterStatus IS NULL OR status IN filterStatus)
  AND (filterTeam IS NULL OR n.parity_team = filterTeam)
RETURN
  count(*) as total,
  count(CASE WHEN status = 'Complete' THEN 1 END) as complete,
  count(CASE WHEN status = 'Planned' THEN 1 END) as planned,
  count(CASE WHEN status = 'Not Planned' THEN 1 END) as notPlanned,
  count(CASE WHEN status = 'No Status' THEN 1 END) as noStatus,
  count(CASE WHEN n.inherited_priority_level IS NOT NULL THEN 1 END) as prioritized,
  collect(DISTINCT n.parity_team) as teams"""

# $guid
OBJECT_STATS_QUERY = """
MATCH (n:MSTRObject {guid: $guid})
OPTIONAL MATCH pathR = (r:MSTRObject)-[:DEPENDS_ON*1..10]->(n)
WHERE r.type IN """ + REPORT_TYPES + """
  AND ALL(mid IN nodes(pathR)[1..-1] WHERE mid.type IN ['Prompt', 'Filter'])
WITH n, collect(DISTINCT r) as allReports
OPTIONAL MATCH pathT = (n)-[:DEPENDS_ON*1..10]->(t:MSTRObject)
WHERE t.type IN """ + TABLE_TYPES + """
  AND ALL(mid IN nodes(pathT)[1..-1] WHERE mid.type IN ['Fact', 'Metric', 'Attribute', 'Column'])
WITH n, allReports, count(DISTINCT t) as tableCount
WITH n, size(allReports) as reportCount, tableCount,
     [r IN allReports WHERE r.priority_level IS NOT NULL | r.priority_level] as priorities
WITH n, reportCount, tableCount,
     [p IN reduce(seen = [], x IN priorities | CASE WHEN x IN seen THEN seen ELSE seen + x END) |
       {priority: p, count: size([x IN priorities WHERE x = p])}] as reportsByPriority
RETURN
  n.name as name,
  n.type as type,
  n.guid as guid,
  """ + _EFFECTIVE_STATUS + """ as status,
  n.parity_team as team,
  reportCount,
  tableCount,
  reportsByPriority"""


# =============================================================================
# Live lineage tracing
# =============================================================================

# $guid; $offset. Prioritized reports reaching the object by any path.
_TRACE_DOWNSTREAM = """
MATCH (n:{label} {{guid: $guid}})
WITH n, """ + _EFFECTIVE_STATUS + """ as effectiveStatus
OPTIONAL MATCH (report)-[:DEPENDS_ON*1..10]->(n)
WHERE report.type IN """ + REPORT_TYPES + """
  AND report.priority_level IS NOT NULL
WITH n, effectiveStatus, report
ORDER BY report.name ASC
SKIP $offset
LIMIT 101
WITH n, effectiveStatus, [r IN collect(DISTINCT {{
  name: report.name,
  guid: report.guid,
  type: report.type,
  priority: report.priority_level,
  area: report.usage_area
}}) WHERE r.guid IS NOT NULL] as fetched
RETURN {{
  {key}: {{
    type: '{label}',
    {extra}: n.{extra},""" + _MIGRATION_PROPERTIES.replace("{", "{{").replace("}", "}}") + """
  }},
  direction: 'downstream',
  reports: fetched[0..100],
  moreResults: size(fetched) > 100
}} as result"""

# $guid; $offset. Source tables plus immediate (1-2 hop) dependencies.
_TRACE_UPSTREAM = """
MATCH (n:{label} {{guid: $guid}})
WITH n, """ + _EFFECTIVE_STATUS + """ as effectiveStatus
OPTIONAL MATCH (n)-[:DEPENDS_ON*1..10]->(t)
WHERE t.type IN """ + TABLE_TYPES + """
WITH n, effectiveStatus, t
ORDER BY t.name ASC
SKIP $offset
LIMIT 101
WITH n, effectiveStatus, [tbl IN collect(DISTINCT {{
  name: t.name,
  guid: t.guid,
  type: t.type,
  physicalTable: t.physical_table_name,
  database: t.database_instance
}}) WHERE tbl.guid IS NOT NULL] as fetchedTables
OPTIONAL MATCH (n)-[:DEPENDS_ON*1..2]->(dep)
WHERE dep.type IN {dependency_types}
WITH n, effectiveStatus, fetchedTables, [d IN collect(DISTINCT {{
  name: dep.name,
  guid: dep.guid,
  type: dep.type,
  formula: dep.formula
}}) WHERE d.guid IS NOT NULL][0..100] as dependencies
RETURN {{
  {key}: {{
    type: '{label}',
    {extra}: n.{extra},""" + _MIGRATION_PROPERTIES.replace("{", "{{").replace("}", "}}") + """
  }},
  direction: 'upstream',
  tables: fetchedTables[0..100],
  moreResults: size(fetchedTables) > 100,
  dependencies: dependencies
}} as result"""

TRACE_METRIC_DOWNSTREAM_QUERY = _TRACE_DOWNSTREAM.format(
    label="Metric", key="metric", extra="formula"
)
TRACE_METRIC_UPSTREAM_QUERY = _TRACE_UPSTREAM.format(
    label="Metric",
    key="metric",
    extra="formula",
    dependency_types="['Fact', 'Metric', 'Attribute', 'DerivedMetric', 'Column', 'Transformation']",
)
TRACE_ATTRIBUTE_DOWNSTREAM_QUERY = _TRACE_DOWNSTREAM.format(
    label="Attribute", key="attribute", extra="forms_json"
)
TRACE_ATTRIBUTE_UPSTREAM_QUERY = _TRACE_UPSTREAM.format(
    label="Attribute",
    key="attribute",
    extra="forms_json",
    dependency_types="['Fact', 'Column', 'Attribute', 'Transformation']",
)


# =============================================================================
# Graph Data Science and generic Cypher
# =============================================================================

LIST_GDS_PROCEDURES_QUERY = """
CALL gds.list() YIELD name, description, signature, type
WHERE type = 'procedure'
  AND name CONTAINS 'stream'
  AND NOT (name CONTAINS '.estimate' OR name CONTAINS '.alpha.')
RETURN name, description, signature
ORDER BY name ASC"""

# $sampleSize: nodes sampled per label
GET_SCHEMA_QUERY = """
CALL apoc.meta.schema({sample: $sampleSize})
YIELD value
UNWIND keys(value) AS key
WITH key, value[key] AS entry
RETURN key, entry.type AS type, entry.count AS count, entry.labels AS labels,
       entry.properties AS properties, entry.relationships AS relationships
ORDER BY key"""
