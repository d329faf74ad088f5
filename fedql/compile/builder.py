"""Physical plan → SQL text and positional parameters.

``SqlGenerator`` is the top-level orchestrator.  It wires together the
clause-level sub-builders, then assembles the statement in clause order.
All engine-specific behaviour is delegated to the injected ``SqlDialect``.

Sub-builder hierarchy
---------------------
SqlGenerator
  ├── ExpressionBuilder     (expression_builder.py)
  ├── PredicateBuilder      (expression_builder.py)
  ├── SelectClauseBuilder   (clause_builders.py)
  ├── FromClauseBuilder     (clause_builders.py)
  ├── JoinClauseBuilder     (clause_builders.py)
  ├── WhereClauseBuilder    (clause_builders.py)
  ├── GroupByClauseBuilder  (clause_builders.py)
  ├── HavingClauseBuilder   (clause_builders.py)
  └── OrderByClauseBuilder  (clause_builders.py)

A single :class:`~fedql.compile.context.ParamCollector` is created per
``generate()`` call; placeholders are numbered as clauses are rendered, so
``params`` lists filter values in the order they appear in the SQL.
"""

from __future__ import annotations

from fedql.compile.base import CompiledSQL, SqlDialect
from fedql.compile.clause_builders import (
    FromClauseBuilder,
    GroupByClauseBuilder,
    HavingClauseBuilder,
    JoinClauseBuilder,
    OrderByClauseBuilder,
    SelectClauseBuilder,
    WhereClauseBuilder,
)
from fedql.compile.context import CompilationContext, ParamCollector
from fedql.compile.expression_builder import ExpressionBuilder, PredicateBuilder
from fedql.debug import DebugLog, DebugPhase
from fedql.resolve.names import PhysicalPlan


class SqlGenerator:
    """Generates parameterized SQL for a name-resolved plan.

    Args:
        dialect: Engine-specific SQL fragments.
    """

    def __init__(self, dialect: SqlDialect) -> None:
        self._ctx = CompilationContext(dialect=dialect)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(self, plan: PhysicalPlan, debug: DebugLog | None = None) -> CompiledSQL:
        """Render ``plan``.

        In ``count`` mode the select list, ORDER BY, LIMIT and OFFSET are
        replaced by a single ``COUNT(*)``.

        Args:
            plan: A name-resolved plan.
            debug: Debug log for this query.

        Returns:
            :class:`~fedql.compile.base.CompiledSQL` with ``sql``, ``params``,
            ``dialect`` and ``target_database``.

        Raises:
            GenerationError: If the dialect cannot render a required construct.
        """
        params = ParamCollector(self._ctx.dialect)
        expressions = ExpressionBuilder(self._ctx)
        predicates = PredicateBuilder(self._ctx, params, expressions)

        parts: list[str] = [
            SelectClauseBuilder(self._ctx, expressions).build(plan),
            FromClauseBuilder(self._ctx).build(plan.table),
        ]
        join_builder = JoinClauseBuilder(self._ctx, expressions, predicates)
        parts.extend(join_builder.build(join) for join in plan.joins)

        optional = [
            WhereClauseBuilder(predicates).build(plan),
            GroupByClauseBuilder(expressions).build(plan),
            HavingClauseBuilder(predicates).build(plan),
        ]
        if plan.mode != "count":
            optional.append(OrderByClauseBuilder(self._ctx, expressions).build(plan))
        parts.extend(part for part in optional if part)
        if plan.mode != "count":
            parts.extend(self._ctx.dialect.paging(plan.limit, plan.offset))

        compiled = CompiledSQL(
            sql="\n".join(parts),
            params=params.params,
            dialect=self._ctx.dialect.dialect_name,
            target_database=plan.target_database,
        )
        if debug is not None:
            debug.add(
                DebugPhase.SQL_GENERATION,
                "SQL generated",
                dialect=compiled.dialect,
                target=compiled.target_database,
                param_count=len(compiled.params),
            )
        return compiled
