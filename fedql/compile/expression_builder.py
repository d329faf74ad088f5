"""Column, aggregate and predicate SQL fragments.

``ExpressionBuilder`` renders column references and aggregates;
``PredicateBuilder`` renders filters and HAVING predicates, pushing values
into the shared :class:`~fedql.compile.context.ParamCollector`.
"""
from __future__ import annotations

from typing import Any

from fedql.compile.context import CompilationContext, ParamCollector
from fedql.errors import GenerationError
from fedql.resolve.names import PhysicalAggregation, PhysicalColumn, PhysicalFilter, PhysicalHaving

_COMPARISON_SQL = {
    "=": "=",
    "!=": "<>",
    ">": ">",
    "<": "<",
    ">=": ">=",
    "<=": "<=",
    "like": "LIKE",
}

_AGGREGATE_SQL = {
    "count": "COUNT",
    "sum": "SUM",
    "avg": "AVG",
    "min": "MIN",
    "max": "MAX",
}


class ExpressionBuilder:
    """Renders column references and aggregates.

    Args:
        ctx: Static compilation context.
    """

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def column(self, col: PhysicalColumn) -> str:
        quote = self._ctx.dialect.quote_identifier
        return f"{quote(col.table_alias)}.{quote(col.name)}"

    def grouped(self, col: PhysicalColumn, granularity: str | None) -> str:
        """Column expression, truncated when a granularity is given."""
        sql = self.column(col)
        if granularity:
            return self._ctx.dialect.date_trunc(granularity, sql)
        return sql

    def aggregate(self, agg: PhysicalAggregation) -> str:
        if agg.fn == "count" and agg.column is None:
            return "COUNT(*)"
        if agg.column is None:
            raise GenerationError(f"Aggregate '{agg.fn}' needs a column.", construct=agg.fn)
        column_sql = self.column(agg.column)
        if agg.fn == "count_distinct":
            return f"COUNT(DISTINCT {column_sql})"
        func = _AGGREGATE_SQL.get(agg.fn)
        if func is None:
            raise GenerationError(f"Unsupported aggregate '{agg.fn}'.", construct=agg.fn)
        return f"{func}({column_sql})"


class PredicateBuilder:
    """Renders WHERE and HAVING predicates.

    Args:
        ctx: Static compilation context.
        params: Shared parameter accumulator for this statement.
        expressions: Column / aggregate renderer.
    """

    def __init__(
        self,
        ctx: CompilationContext,
        params: ParamCollector,
        expressions: ExpressionBuilder,
    ) -> None:
        self._ctx = ctx
        self._params = params
        self._expr = expressions

    def filter(self, flt: PhysicalFilter) -> str:
        column_sql = self._expr.column(flt.column)
        if flt.op == "is_null":
            return f"{column_sql} IS NULL"
        if flt.op == "is_not_null":
            return f"{column_sql} IS NOT NULL"
        if flt.op == "in":
            values = list(flt.value or [])
            if not values:
                return "1 = 0"
            return self._ctx.dialect.array_membership(column_sql, self._params.add(values))
        return self._compare(column_sql, flt.op, flt.value)

    def having(self, having: PhysicalHaving) -> str:
        return self._compare(self._expr.aggregate(having.aggregation), having.op, having.value)

    def _compare(self, lhs: str, op: str, value: Any) -> str:
        op_sql = _COMPARISON_SQL.get(op)
        if op_sql is None:
            raise GenerationError(f"Unsupported operator '{op}'.", construct=op)
        if isinstance(value, bool):
            return f"{lhs} {op_sql} {self._ctx.dialect.boolean_literal(value)}"
        return f"{lhs} {op_sql} {self._params.add(value)}"
