"""Public call surface: plan and execute declarative queries.

``QueryEngine`` runs the pipeline in order, one debug log per call::

    validation → RLS injection → strategy planning → name resolution → SQL generation

and, for :meth:`QueryEngine.execute`, hands the SQL to the configured
:class:`~fedql.execution.interfaces.Executor`.  Each stage either returns a
richer structure or raises a :class:`~fedql.errors.FedQLError`; the debug
log accumulated so far is attached to the error as ``debug_log``.

Cancellation is cooperative: pass a :class:`threading.Event` as ``cancel``
and the engine stops before the next stage once it is set.
"""
from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from fedql.compile.base import CompiledSQL
from fedql.compile.builder import SqlGenerator
from fedql.compile.registry import DialectFactory
from fedql.config import FedQLSettings, get_settings
from fedql.debug import DebugEntry, DebugLog, DebugPhase
from fedql.errors import (
    CacheFallbackError,
    FedQLError,
    QueryCancelledError,
    ValidationError,
    ValidationIssue,
)
from fedql.execution.interfaces import CacheProvider, Executor
from fedql.execution.merge import merge_rows
from fedql.planning.connectivity import ConnectivityGraph
from fedql.planning.plan import ResolvedPlan, Strategy
from fedql.planning.planner import QueryPlanner
from fedql.policy.rls import RlsInjector
from fedql.resolve.names import NameResolver, PhysicalPlan
from fedql.schema.query import ExecutionContext, QueryDefinition
from fedql.schema.registry import MetadataRegistry
from fedql.validate.validator import QueryValidator

logger = structlog.get_logger(__name__)


class QueryResult(BaseModel):
    """What a ``plan`` or ``execute`` call returns.

    Attributes:
        data: Result rows keyed by requested label; ``None`` for ``plan``.
        sql: Generated SQL; ``None`` when the cache served every row.
        params: Positional parameters for ``sql``.
        dialect: Dialect of ``sql``.
        target_database: Database id, ``"trino"`` or ``"cache"``.
        strategy: The chosen strategy.
        debug_log: Every decision recorded for this call.
        cache_ids: Ids served by the cache (cache strategy only).
        fallback_ids: Ids fetched from the database after a partial cache hit.
    """

    model_config = ConfigDict(frozen=True)

    data: list[dict[str, Any]] | None = None
    sql: str | None = None
    params: list[Any] = Field(default_factory=list)
    dialect: str | None = None
    target_database: str
    strategy: Strategy
    debug_log: list[DebugEntry] = Field(default_factory=list)
    cache_ids: list[Any] = Field(default_factory=list)
    fallback_ids: list[Any] = Field(default_factory=list)


@dataclass(frozen=True)
class _Prepared:
    plan: ResolvedPlan
    physical: PhysicalPlan | None
    compiled: CompiledSQL | None


class QueryEngine:
    """Plans and executes queries against one metadata registry.

    Args:
        registry: The metadata registry; shared read-only across calls.
        settings: Planner settings; defaults to :func:`get_settings`.
        cache: Cache provider for the cache strategy.
        executor: Runs SQL for :meth:`execute`.
    """

    def __init__(
        self,
        registry: MetadataRegistry,
        *,
        settings: FedQLSettings | None = None,
        cache: CacheProvider | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._registry = registry
        self._settings = settings or get_settings()
        self._executor = executor
        self._validator = QueryValidator(registry)
        self._rls = RlsInjector(registry)
        self._planner = QueryPlanner(
            registry,
            ConnectivityGraph.for_registry(registry),
            trino_enabled=self._settings.trino_enabled,
            cache=cache,
            cache_enabled=self._settings.cache_enabled,
        )
        self._resolver = NameResolver(registry)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def plan(
        self,
        query: QueryDefinition | Mapping[str, Any],
        context: ExecutionContext | Mapping[str, Any],
        *,
        cancel: threading.Event | None = None,
    ) -> QueryResult:
        """Resolve ``query`` to SQL without running it.

        Raises:
            FedQLError: Any pipeline failure, with ``debug_log`` attached.
        """
        debug = DebugLog()
        try:
            prepared = self._prepare(query, context, debug, cancel)
        except FedQLError as exc:
            exc.debug_log = debug
            raise
        return self._result(prepared, debug)

    def execute(
        self,
        query: QueryDefinition | Mapping[str, Any],
        context: ExecutionContext | Mapping[str, Any],
        *,
        cancel: threading.Event | None = None,
    ) -> QueryResult:
        """Resolve ``query`` and return its rows.

        Executor exceptions propagate unchanged, except when the database
        fallback of a partial cache hit fails: that is raised as
        :class:`~fedql.errors.CacheFallbackError` and no cached rows are
        returned.

        Raises:
            FedQLError: Any pipeline failure, with ``debug_log`` attached.
        """
        debug = DebugLog()
        try:
            prepared = self._prepare(query, context, debug, cancel)
            _check_cancelled(cancel, "execution")
            data = self._run(prepared, debug)
        except FedQLError as exc:
            exc.debug_log = debug
            raise
        return self._result(prepared, debug, data)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _prepare(
        self,
        query: QueryDefinition | Mapping[str, Any],
        context: ExecutionContext | Mapping[str, Any],
        debug: DebugLog,
        cancel: threading.Event | None,
    ) -> _Prepared:
        query = _coerce(QueryDefinition, query, "query")
        context = _coerce(ExecutionContext, context, "context")
        structlog.contextvars.bind_contextvars(role=context.role, table=query.from_)
        try:
            _check_cancelled(cancel, "validation")
            self._validator.validate(query, context.role, debug)

            _check_cancelled(cancel, "rls")
            rls = self._rls.apply(query, context, debug)

            _check_cancelled(cancel, "planning")
            tolerance = query.freshness or self._settings.default_freshness
            plan = self._planner.plan(rls, context, tolerance, debug)
            if not plan.needs_sql:
                return _Prepared(plan=plan, physical=None, compiled=None)

            _check_cancelled(cancel, "name-resolution")
            physical = self._resolver.resolve(plan, debug)

            _check_cancelled(cancel, "sql-generation")
            assert plan.engine is not None
            compiled = SqlGenerator(DialectFactory.create(plan.engine)).generate(physical, debug)
        finally:
            structlog.contextvars.unbind_contextvars("role", "table")
        logger.info(
            "query_resolved",
            strategy=plan.strategy,
            target=plan.target_database,
            dialect=compiled.dialect,
        )
        return _Prepared(plan=plan, physical=physical, compiled=compiled)

    def _run(self, prepared: _Prepared, debug: DebugLog) -> list[dict[str, Any]]:
        plan = prepared.plan
        if plan.cache is not None:
            return self._run_cache(prepared, debug)

        executor = self._require_executor()
        assert prepared.compiled is not None and prepared.physical is not None
        compiled = prepared.compiled
        rows = executor.run(compiled.sql, compiled.params, compiled.target_database)
        debug.add(
            DebugPhase.EXECUTION,
            "Query executed",
            target=compiled.target_database,
            rows=len(rows),
        )
        return [prepared.physical.restore_row(row) for row in rows]

    def _run_cache(self, prepared: _Prepared, debug: DebugLog) -> list[dict[str, Any]]:
        plan = prepared.plan
        hit = plan.cache
        assert hit is not None
        table = plan.rls.query.from_
        primary_key = plan.rls.scopes[table].table.primary_key[0]
        cached = [hit.rows[i] for i in hit.served_ids if i in hit.rows]

        fetched: list[dict[str, Any]] = []
        if prepared.compiled is not None:
            executor = self._require_executor()
            compiled = prepared.compiled
            try:
                fetched = executor.run(compiled.sql, compiled.params, compiled.target_database)
            except Exception as exc:
                debug.add(
                    DebugPhase.EXECUTION,
                    "Cache fallback failed",
                    target=compiled.target_database,
                    error=str(exc),
                )
                logger.error("cache_fallback_failed", table=table, error=str(exc))
                raise CacheFallbackError(table, hit.fallback_ids) from exc
            assert prepared.physical is not None
            fetched = [prepared.physical.restore_row(row) for row in fetched]

        data = merge_rows(cached, fetched, plan.rls.selection, primary_key)
        debug.add(
            DebugPhase.EXECUTION,
            "Cache rows merged",
            cached=len(cached),
            fetched=len(fetched),
            rows=len(data),
        )
        return data

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_executor(self) -> Executor:
        if self._executor is None:
            raise FedQLError("execute() requires an executor.", code="NO_EXECUTOR")
        return self._executor

    @staticmethod
    def _result(
        prepared: _Prepared,
        debug: DebugLog,
        data: list[dict[str, Any]] | None = None,
    ) -> QueryResult:
        plan = prepared.plan
        compiled = prepared.compiled
        return QueryResult(
            data=data,
            sql=compiled.sql if compiled else None,
            params=list(compiled.params) if compiled else [],
            dialect=compiled.dialect if compiled else None,
            target_database=plan.target_database,
            strategy=plan.strategy,
            debug_log=list(debug.entries),
            cache_ids=list(plan.cache.served_ids) if plan.cache else [],
            fallback_ids=plan.fallback_ids,
        )


def _check_cancelled(cancel: threading.Event | None, stage: str) -> None:
    if cancel is not None and cancel.is_set():
        raise QueryCancelledError(stage)


def _coerce(model: type[Any], value: Any, field_name: str) -> Any:
    """Accept a model instance or a plain mapping (camelCase keys allowed)."""
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except PydanticValidationError as exc:
        issues = [
            ValidationIssue(
                code="INVALID_QUERY",
                field=".".join([field_name, *(str(p) for p in err["loc"])]),
                message=err["msg"],
                received=err.get("input"),
            )
            for err in exc.errors()
        ]
        raise ValidationError(issues) from exc


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def plan_query(
    registry: MetadataRegistry,
    query: QueryDefinition | Mapping[str, Any],
    context: ExecutionContext | Mapping[str, Any],
    *,
    settings: FedQLSettings | None = None,
    cache: CacheProvider | None = None,
) -> QueryResult:
    """One-shot :meth:`QueryEngine.plan`.

    Example::

        result = fedql.plan_query(
            registry,
            {"from": "orders", "columns": ["id", "total"], "limit": 10},
            {"role": "tenant-user", "contextValues": {"tenantId": "acme"}},
        )
        cursor.execute(result.sql, result.params)
    """
    return QueryEngine(registry, settings=settings, cache=cache).plan(query, context)


def execute_query(
    registry: MetadataRegistry,
    query: QueryDefinition | Mapping[str, Any],
    context: ExecutionContext | Mapping[str, Any],
    executor: Executor,
    *,
    settings: FedQLSettings | None = None,
    cache: CacheProvider | None = None,
) -> QueryResult:
    """One-shot :meth:`QueryEngine.execute`."""
    return QueryEngine(registry, settings=settings, cache=cache, executor=executor).execute(
        query, context
    )
