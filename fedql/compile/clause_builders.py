"""Clause-level SQL builders.

Each class handles exactly one SQL clause.  Builders that render values
share the statement's :class:`~fedql.compile.context.ParamCollector`, so
placeholders are numbered in the order they appear in the final SQL.

Classes
-------
SelectClauseBuilder   - ``SELECT <items>`` (or ``SELECT COUNT(*)``)
FromClauseBuilder     - ``FROM <table> AS <alias>``
JoinClauseBuilder     - ``LEFT|INNER JOIN … ON …``
WhereClauseBuilder    - ``WHERE <filters>``
GroupByClauseBuilder  - ``GROUP BY <columns>``
HavingClauseBuilder   - ``HAVING <aggregate predicates>``
OrderByClauseBuilder  - ``ORDER BY <items>``
"""
from __future__ import annotations

from fedql.compile.context import CompilationContext
from fedql.compile.expression_builder import ExpressionBuilder, PredicateBuilder
from fedql.errors import GenerationError
from fedql.resolve.names import PhysicalJoin, PhysicalPlan, PhysicalTable

#: Output label of the count aggregate in ``count`` mode.
COUNT_LABEL = "count"


class SelectClauseBuilder:
    """Builds the ``SELECT …`` clause, aliasing physical names to labels."""

    def __init__(self, ctx: CompilationContext, expressions: ExpressionBuilder) -> None:
        self._ctx = ctx
        self._expr = expressions

    def build(self, plan: PhysicalPlan) -> str:
        quote = self._ctx.dialect.quote_identifier
        if plan.mode == "count":
            return f"SELECT COUNT(*) AS {quote(COUNT_LABEL)}"

        if plan.group_by or plan.aggregations:
            items = [
                f"{self._expr.grouped(g.column, g.granularity)} AS {quote(g.column.label)}"
                for g in plan.group_by
            ]
            items.extend(
                f"{self._expr.aggregate(a)} AS {quote(a.alias)}" for a in plan.aggregations
            )
        else:
            items = [f"{self._expr.column(c)} AS {quote(c.label)}" for c in plan.columns]

        if not items:
            raise GenerationError("The query selects no columns.", construct="SELECT")
        return f"SELECT {', '.join(items)}"


class FromClauseBuilder:
    """Builds the ``FROM <table> AS <alias>`` fragment."""

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, table: PhysicalTable) -> str:
        return f"FROM {table_sql(self._ctx, table)}"


class JoinClauseBuilder:
    """Builds a single ``JOIN … ON …`` fragment, row filters of the joined table included."""

    def __init__(
        self, ctx: CompilationContext, expressions: ExpressionBuilder, predicates: PredicateBuilder
    ) -> None:
        self._ctx = ctx
        self._expr = expressions
        self._pred = predicates

    def build(self, join: PhysicalJoin) -> str:
        keyword = "INNER JOIN" if join.type == "inner" else "LEFT JOIN"
        conditions = [f"{self._expr.column(join.left)} = {self._expr.column(join.right)}"]
        conditions.extend(self._pred.filter(f) for f in join.filters)
        on = " AND ".join(conditions)
        return f"{keyword} {table_sql(self._ctx, join.table)} ON {on}"


class WhereClauseBuilder:
    """Builds ``WHERE``: every filter ANDed, in plan order."""

    def __init__(self, predicates: PredicateBuilder) -> None:
        self._pred = predicates

    def build(self, plan: PhysicalPlan) -> str | None:
        if not plan.filters:
            return None
        return "WHERE " + " AND ".join(self._pred.filter(f) for f in plan.filters)


class GroupByClauseBuilder:
    def __init__(self, expressions: ExpressionBuilder) -> None:
        self._expr = expressions

    def build(self, plan: PhysicalPlan) -> str | None:
        if not plan.group_by:
            return None
        items = [self._expr.grouped(g.column, g.granularity) for g in plan.group_by]
        return f"GROUP BY {', '.join(items)}"


class HavingClauseBuilder:
    def __init__(self, predicates: PredicateBuilder) -> None:
        self._pred = predicates

    def build(self, plan: PhysicalPlan) -> str | None:
        if not plan.having:
            return None
        return "HAVING " + " AND ".join(self._pred.having(h) for h in plan.having)


class OrderByClauseBuilder:
    """Builds ``ORDER BY``; aggregation aliases are referenced by name."""

    def __init__(self, ctx: CompilationContext, expressions: ExpressionBuilder) -> None:
        self._ctx = ctx
        self._expr = expressions

    def build(self, plan: PhysicalPlan) -> str | None:
        if not plan.order_by:
            return None
        items = []
        for item in plan.order_by:
            if item.alias is not None:
                expr = self._ctx.dialect.quote_identifier(item.alias)
            else:
                assert item.column is not None
                expr = self._expr.grouped(item.column, item.granularity)
            items.append(f"{expr} {item.direction.upper()}")
        return f"ORDER BY {', '.join(items)}"


def table_sql(ctx: CompilationContext, table: PhysicalTable) -> str:
    """Qualified table reference followed by its alias."""
    return f"{ctx.dialect.qualify_table(table)} AS {ctx.dialect.quote_identifier(table.alias)}"
