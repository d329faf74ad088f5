"""Execution strategy selection.

``QueryPlanner`` evaluates the strategy predicates of
:mod:`fedql.planning.strategies` in priority order over an immutable
:class:`PlanningContext` and turns the first outcome into a
:class:`~fedql.planning.plan.ResolvedPlan`.

Dialect engine per target
-------------------------
==========  ==========================================================
postgres    ``postgres``
clickhouse  ``clickhouse``
iceberg     ``trino``; tables are qualified by the database's catalog
trino       ``trino`` (cross-database federation)
==========  ==========================================================
"""
from __future__ import annotations

import structlog

from fedql.debug import DebugLog, DebugPhase
from fedql.errors import PlanningError
from fedql.execution.interfaces import CacheProvider
from fedql.planning.connectivity import ConnectivityGraph, TableLocation
from fedql.planning.plan import (
    CACHE_TARGET,
    TRINO_TARGET,
    CacheHit,
    Direct,
    Materialized,
    Outcome,
    ResolvedPlan,
    TableAssignment,
    TrinoCrossDb,
)
from fedql.planning.strategies import STRATEGY_LADDER, PlanningContext, explain_unreachable
from fedql.policy.rls import RlsQuery
from fedql.schema.metadata import Freshness, TableMeta
from fedql.schema.query import ExecutionContext
from fedql.schema.registry import MetadataRegistry

logger = structlog.get_logger(__name__)

#: Dialect key for each database engine queried directly.
ENGINE_DIALECTS: dict[str, str] = {
    "postgres": "postgres",
    "clickhouse": "clickhouse",
    "iceberg": "trino",
}


class QueryPlanner:
    """Chooses where and how a query runs.

    Args:
        registry: The metadata registry.
        graph: Table locations; defaults to the registry's cached graph.
        trino_enabled: Overrides the metadata's trino flag when not ``None``.
        cache: Cache provider consulted by the cache strategy.
        cache_enabled: When ``False`` the cache strategy is never attempted.
    """

    def __init__(
        self,
        registry: MetadataRegistry,
        graph: ConnectivityGraph | None = None,
        *,
        trino_enabled: bool | None = None,
        cache: CacheProvider | None = None,
        cache_enabled: bool = True,
    ) -> None:
        self._registry = registry
        self._graph = graph or ConnectivityGraph.for_registry(registry)
        self._trino_enabled = (
            registry.trino.enabled if trino_enabled is None else trino_enabled
        )
        self._cache = cache
        self._cache_enabled = cache_enabled

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def plan(
        self,
        rls: RlsQuery,
        context: ExecutionContext,
        tolerance: Freshness = Freshness.HOURS,
        debug: DebugLog | None = None,
    ) -> ResolvedPlan:
        """Select a strategy and assign a serving copy to every table.

        Args:
            rls: The access-controlled query.
            context: Caller identity and context values (cache key fields).
            tolerance: Freshness tolerance for replicas.
            debug: Debug log for this query.

        Returns:
            The resolved plan.

        Raises:
            PlanningError: If no strategy can serve every table.
        """
        debug = debug if debug is not None else DebugLog()
        tables = [rls.scopes[name].table for name in rls.query.table_names]
        ctx = PlanningContext(
            registry=self._registry,
            graph=self._graph,
            rls=rls,
            tables=tables,
            tolerance=tolerance,
            trino_enabled=self._trino_enabled,
            execution=context,
            cache=self._cache,
            cache_enabled=self._cache_enabled,
            debug=debug,
        )
        debug.add(
            DebugPhase.PLANNING,
            "Planning started",
            tables=[t.api_name for t in tables],
            tolerance=tolerance.value,
            trino_enabled=self._trino_enabled,
        )

        outcome: Outcome | None = None
        for predicate in STRATEGY_LADDER:
            outcome = predicate(ctx)
            if outcome is not None:
                break
        if outcome is None:
            unreachable = explain_unreachable(ctx)
            debug.add(
                DebugPhase.PLANNING,
                "No strategy applies",
                unreachable=[u.to_dict() for u in unreachable.tables],
            )
            logger.info("query_unreachable", tables=[u.table for u in unreachable.tables])
            raise PlanningError(unreachable.tables)

        plan = self._resolve(outcome, ctx)
        debug.add(DebugPhase.PLANNING, "Strategy selected", **plan.describe())
        logger.debug("query_planned", strategy=plan.strategy, target=plan.target_database)
        return plan

    # ------------------------------------------------------------------
    # Outcome -> plan
    # ------------------------------------------------------------------

    def _resolve(self, outcome: Outcome, ctx: PlanningContext) -> ResolvedPlan:
        tables = ctx.tables
        if isinstance(outcome, CacheHit):
            assignments = self._originals(tables)
            if outcome.complete:
                return ResolvedPlan(
                    strategy="cache",
                    target_database=CACHE_TARGET,
                    engine=None,
                    assignments=assignments,
                    rls=ctx.rls,
                    freshness=ctx.tolerance,
                    cache=outcome,
                )
            return ResolvedPlan(
                strategy="cache",
                target_database=outcome.database,
                engine=self._engine_of(outcome.database),
                assignments=assignments,
                rls=ctx.rls,
                freshness=ctx.tolerance,
                by_ids=list(outcome.fallback_ids),
                cache=outcome,
            )

        by_ids = list(ctx.rls.query.by_ids) if ctx.rls.query.by_ids else None
        if isinstance(outcome, Direct):
            return ResolvedPlan(
                strategy="direct",
                target_database=outcome.database,
                engine=self._engine_of(outcome.database),
                assignments=self._originals(tables),
                rls=ctx.rls,
                freshness=ctx.tolerance,
                by_ids=by_ids,
            )
        if isinstance(outcome, Materialized):
            assignments = {
                t.api_name: self._assign(outcome.locations[t.api_name]) for t in tables
            }
            return ResolvedPlan(
                strategy="materialized",
                target_database=outcome.database,
                engine=self._engine_of(outcome.database),
                assignments=assignments,
                rls=ctx.rls,
                freshness=ctx.tolerance,
                by_ids=by_ids,
            )
        if isinstance(outcome, TrinoCrossDb):
            assignments = {}
            for table in tables:
                db = self._registry.database(table.database)
                assert db is not None
                assignments[table.api_name] = TableAssignment(
                    api_name=table.api_name,
                    location=self._graph.original_of(table),
                    catalog=outcome.catalogs[table.api_name],
                    schema=db.trino_schema,
                )
            return ResolvedPlan(
                strategy="trino-cross-db",
                target_database=TRINO_TARGET,
                engine="trino",
                assignments=assignments,
                rls=ctx.rls,
                freshness=ctx.tolerance,
                by_ids=by_ids,
            )
        raise TypeError(f"unexpected planner outcome {type(outcome).__name__}")

    def _originals(self, tables: list[TableMeta]) -> dict[str, TableAssignment]:
        return {t.api_name: self._assign(self._graph.original_of(t)) for t in tables}

    def _assign(self, location: TableLocation) -> TableAssignment:
        """Serve a table from ``location``; iceberg copies are catalog-qualified."""
        db = self._registry.database(location.database)
        assert db is not None
        if db.engine == "iceberg":
            return TableAssignment(
                api_name=location.table.api_name,
                location=location,
                catalog=db.trino_catalog,
                schema=db.trino_schema,
            )
        return TableAssignment(api_name=location.table.api_name, location=location)

    def _engine_of(self, database_id: str) -> str:
        db = self._registry.database(database_id)
        assert db is not None
        return ENGINE_DIALECTS[db.engine]
