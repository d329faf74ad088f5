"""Strategy predicates, in priority order.

Each predicate takes the immutable :class:`PlanningContext` and returns an
outcome when its strategy applies, or ``None``.  The planner evaluates them
in :data:`STRATEGY_LADDER` order and keeps the first outcome; when none
applies, :func:`explain_unreachable` builds the failure report.

========  ==================  ===============================================
Priority  Strategy            Applies when
========  ==================  ===============================================
P0        cache               unpaged single-table ``byIds`` lookup, cache hit
P1        direct              all originals in one database
P2        materialized        one database holds every table fresh enough
P3        trino-cross-db      trino enabled, every database has a catalog
P4        (error)             otherwise
========  ==================  ===============================================
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from fedql.debug import DebugLog, DebugPhase
from fedql.errors import UnreachableTable
from fedql.execution.cache import (
    CacheKeyError,
    build_cache_key,
    decode_cached_row,
    filter_evaluable,
    row_matches,
)
from fedql.execution.interfaces import CacheProvider
from fedql.planning.connectivity import ConnectivityGraph, TableLocation
from fedql.planning.plan import CacheHit, Direct, Materialized, Outcome, TrinoCrossDb, Unreachable
from fedql.policy.rls import RlsQuery
from fedql.schema.metadata import DatabaseMeta, Freshness, TableMeta
from fedql.schema.query import ExecutionContext
from fedql.schema.registry import MetadataRegistry

logger = structlog.get_logger(__name__)

NO_COPY = "no original/replica present"


@dataclass(frozen=True)
class PlanningContext:
    """Everything the strategy predicates read.

    Attributes:
        registry: Metadata registry.
        graph: Table locations.
        rls: The access-controlled query.
        tables: Touched tables, ``from`` first.
        tolerance: Effective freshness tolerance.
        trino_enabled: Whether federation may be used.
        execution: Caller identity and context values.
        cache: Cache provider, if any.
        cache_enabled: Whether P0 may be attempted at all.
        debug: Debug log for this query.
    """

    registry: MetadataRegistry
    graph: ConnectivityGraph
    rls: RlsQuery
    tables: list[TableMeta]
    tolerance: Freshness
    trino_enabled: bool
    execution: ExecutionContext
    cache: CacheProvider | None
    cache_enabled: bool
    debug: DebugLog


# ---------------------------------------------------------------------------
# P0 - cache
# ---------------------------------------------------------------------------


def try_cache(ctx: PlanningContext) -> CacheHit | None:
    """Serve a single-table ``byIds`` lookup from the cache."""
    reason = _cache_inapplicable(ctx)
    if reason is not None:
        ctx.debug.add(DebugPhase.CACHE, "Cache strategy skipped", reason=reason)
        return None

    table = ctx.tables[0]
    meta = ctx.registry.cache_of(table)
    assert meta is not None and ctx.cache is not None
    ids = _unique(ctx.rls.query.by_ids or [])
    try:
        keys = {
            record_id: build_cache_key(meta.key_pattern, record_id, ctx.execution.context_values)
            for record_id in ids
        }
    except CacheKeyError as exc:
        ctx.debug.add(
            DebugPhase.CACHE,
            "Cache strategy skipped",
            reason=f"key pattern field '{exc.args[0]}' has no value",
        )
        return None

    try:
        values = ctx.cache.get_many(list(keys.values()))
    except Exception as exc:  # cache outages degrade to the database
        logger.warning("cache_read_failed", table=table.api_name, error=str(exc))
        ctx.debug.add(DebugPhase.CACHE, "Cache read failed", error=str(exc))
        return None

    rls_filters = ctx.rls.scopes[table.api_name].rls_filters
    rows: dict[Any, dict[str, Any]] = {}
    served: list[Any] = []
    hidden: list[Any] = []
    for record_id, key in keys.items():
        row = decode_cached_row(values.get(key))
        if row is None:
            continue
        if not filter_evaluable(rls_filters, row):
            continue
        served.append(record_id)
        if row_matches(row, rls_filters):
            rows[record_id] = row
        else:
            hidden.append(record_id)

    fallback = [i for i in ids if i not in served]
    ctx.debug.add(
        DebugPhase.CACHE,
        "Cache lookup finished",
        requested=len(ids),
        hits=len(served),
        hidden_by_rls=len(hidden),
        fallback_ids=fallback,
    )
    if not served:
        return None
    return CacheHit(
        cache=meta,
        rows=rows,
        served_ids=served,
        fallback_ids=fallback,
        database=table.database,
    )


def _cache_inapplicable(ctx: PlanningContext) -> str | None:
    """Reason the cache strategy cannot be used, or ``None``."""
    query = ctx.rls.query
    if not query.by_ids:
        return "not a byIds lookup"
    if len(ctx.tables) != 1:
        return "query touches more than one table"
    if query.filters:
        return "query has additional filters"
    if query.is_aggregate or query.mode != "rows":
        return "query is not a plain row lookup"
    if query.order_by or query.limit is not None or query.offset is not None:
        return "query pages or orders results"
    if not ctx.cache_enabled or ctx.cache is None:
        return "cache disabled"
    table = ctx.tables[0]
    meta = ctx.registry.cache_of(table)
    if meta is None:
        return f"table '{table.api_name}' is not cached"
    if meta.columns is not None:
        cached = set(meta.columns)
        needed = {ref.column for ref in ctx.rls.selection}
        needed.update(f.ref.column for f in ctx.rls.rls_filters)
        needed.update(table.primary_key)
        if not needed <= cached:
            return f"cached value lacks columns {sorted(needed - cached)}"
    return None


# ---------------------------------------------------------------------------
# P1 - direct
# ---------------------------------------------------------------------------


def try_direct(ctx: PlanningContext) -> Direct | None:
    """All tables are originals in the same database."""
    databases = {t.database for t in ctx.tables}
    if len(databases) == 1:
        return Direct(database=databases.pop())
    ctx.debug.add(
        DebugPhase.PLANNING,
        "Direct strategy rejected",
        originals={t.api_name: t.database for t in ctx.tables},
    )
    return None


# ---------------------------------------------------------------------------
# P2 - materialized replica
# ---------------------------------------------------------------------------


def try_materialized(ctx: PlanningContext) -> Materialized | None:
    """Pick the database serving every table, preferring the most originals."""
    candidates: list[Materialized] = []
    rejected: dict[str, dict[str, str]] = {}
    for database in ctx.graph.databases_for(ctx.tables):
        locations: dict[str, TableLocation] = {}
        problems: dict[str, str] = {}
        for table in ctx.tables:
            loc = ctx.graph.location_in(table, database)
            problem = _location_problem(loc, ctx.tolerance)
            if problem is None:
                assert loc is not None
                locations[table.api_name] = loc
            else:
                problems[table.api_name] = problem
        if problems:
            rejected[database] = problems
            continue
        originals = sum(1 for loc in locations.values() if loc.is_original)
        candidates.append(Materialized(database=database, locations=locations, originals=originals))

    if not candidates:
        ctx.debug.add(
            DebugPhase.PLANNING,
            "Materialized strategy rejected",
            tolerance=ctx.tolerance.value,
            rejected=rejected,
        )
        return None
    candidates.sort(key=lambda c: (-c.originals, c.database))
    ctx.debug.add(
        DebugPhase.PLANNING,
        "Materialized candidates ranked",
        tolerance=ctx.tolerance.value,
        ranking=[(c.database, c.originals) for c in candidates],
        rejected=rejected,
    )
    return candidates[0]


def _location_problem(loc: TableLocation | None, tolerance: Freshness) -> str | None:
    if loc is None:
        return NO_COPY
    if not loc.satisfies(tolerance):
        assert loc.lag is not None
        return f"freshness too strict: replica lag '{loc.lag.value}' exceeds '{tolerance.value}'"
    return None


# ---------------------------------------------------------------------------
# P3 - trino federation
# ---------------------------------------------------------------------------


def try_trino(ctx: PlanningContext) -> TrinoCrossDb | None:
    """Federate the originals through Trino when every database has a catalog."""
    reason = _trino_problem(ctx)
    if reason is not None:
        ctx.debug.add(DebugPhase.PLANNING, "Trino strategy rejected", reason=reason)
        return None
    catalogs = {}
    for table in ctx.tables:
        catalogs[table.api_name] = _database_of(ctx, table).trino_catalog
    return TrinoCrossDb(catalogs=catalogs)


def _trino_problem(ctx: PlanningContext) -> str | None:
    if not ctx.trino_enabled:
        return "trino disabled"
    missing = sorted({t.database for t in ctx.tables if not _database_of(ctx, t).trino_catalog})
    if missing:
        return f"no trino catalog for {', '.join(missing)}"
    return None


def _database_of(ctx: PlanningContext, table: TableMeta) -> DatabaseMeta:
    db = ctx.registry.database(table.database)
    assert db is not None
    return db


# ---------------------------------------------------------------------------
# P4 - unreachable
# ---------------------------------------------------------------------------


def explain_unreachable(ctx: PlanningContext) -> Unreachable:
    """Report every table that cannot share an engine with the ``from`` table.

    The ``from`` table's own database is the anchor: a table is unreachable
    when the anchor holds no usable copy of it.  For each such table the
    report lists every database holding any touched table, with the reason
    that database cannot serve it, plus the trino verdict.
    """
    anchor = ctx.tables[0].database
    trino_reason = _trino_problem(ctx) or "trino available"
    databases = ctx.graph.databases_for(ctx.tables)
    unreachable: list[UnreachableTable] = []
    for table in ctx.tables[1:]:
        anchor_problem = _location_problem(ctx.graph.location_in(table, anchor), ctx.tolerance)
        if anchor_problem is None:
            continue
        checked = {
            db: _location_problem(ctx.graph.location_in(table, db), ctx.tolerance)
            or _other_tables_problem(ctx, table, db)
            for db in databases
        }
        checked["trino"] = trino_reason
        colocation = (
            "freshness too strict"
            if anchor_problem != NO_COPY
            else "no original/replica co-location"
        )
        unreachable.append(
            UnreachableTable(
                table=table.api_name,
                reason=f"{colocation}, {trino_reason}",
                checked=checked,
            )
        )
    return Unreachable(tables=unreachable)


def _other_tables_problem(ctx: PlanningContext, table: TableMeta, database: str) -> str:
    """Why ``database`` is rejected although it holds a usable copy of ``table``."""
    lacking = [
        t.api_name
        for t in ctx.tables
        if t is not table
        and _location_problem(ctx.graph.location_in(t, database), ctx.tolerance) is not None
    ]
    return f"cannot serve {', '.join(lacking)}"


def _unique(values: list[Any]) -> list[Any]:
    result: list[Any] = []
    for value in values:
        if value not in result:
            result.append(value)
    return result


StrategyPredicate = Callable[[PlanningContext], Optional[Outcome]]

#: Evaluated in order; the first outcome wins.
STRATEGY_LADDER: tuple[StrategyPredicate, ...] = (
    try_cache,
    try_direct,
    try_materialized,
    try_trino,
)
