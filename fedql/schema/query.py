"""Pydantic models for the declarative query and its execution context.

A :class:`QueryDefinition` selects from one table, optionally joins others
along declared relations, filters, groups, aggregates, orders and pages.
Column references are either bare (``"total"``, meaning the ``from`` table)
or qualified with a table apiName (``"users.email"``).

Input documents may use camelCase keys (``byIds``, ``orderBy``) and ``from``.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fedql.schema.metadata import Freshness

FilterOp = Literal["=", "!=", ">", "<", ">=", "<=", "in", "like", "is_null", "is_not_null"]
AggregateFn = Literal["count", "count_distinct", "sum", "avg", "min", "max"]
Granularity = Literal["hour", "day", "week", "month", "quarter", "year"]

#: Operators that take no value.
NULL_OPS: frozenset[str] = frozenset({"is_null", "is_not_null"})


class _Query(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Filter(_Query):
    """A single ``column op value`` predicate.

    Attributes:
        column: Bare or qualified column reference.
        op: Comparison operator.
        value: Comparison value; a list for ``in``; omitted for null checks.
    """

    column: str
    op: FilterOp = "="
    value: Any = None


class JoinSpec(_Query):
    """Join another table along a declared relation.

    Attributes:
        table: apiName of the joined table.
        type: Join type; ``left`` keeps rows whose optional foreign key is null.
        source: apiName of the already-present table to join from; defaults
            to the query's ``from`` table.
        columns: Columns to select from the joined table (bare names).
    """

    table: str
    type: Literal["left", "inner"] = "left"
    source: str | None = None
    columns: list[str] = Field(default_factory=list)


class OrderItem(_Query):
    """One ORDER BY entry; ``column`` may also name an aggregation alias."""

    column: str
    direction: Literal["asc", "desc"] = "asc"


class GroupByItem(_Query):
    """One GROUP BY entry, optionally truncating a date/timestamp column."""

    column: str
    granularity: Granularity | None = None


class Aggregation(_Query):
    """An aggregate in the select list.

    Attributes:
        fn: Aggregate function.
        column: Column reference; omit for ``count(*)``.
        alias: Output label.
    """

    fn: AggregateFn
    column: str | None = None
    alias: str


class HavingFilter(_Query):
    """A predicate on an aggregation alias."""

    alias: str
    op: Literal["=", "!=", ">", "<", ">=", "<="]
    value: Any


class QueryDefinition(_Query):
    """The caller's declarative query.

    Attributes:
        from_: apiName of the primary table.
        columns: Requested columns; empty means "everything the role may read".
        filters: User predicates, ANDed together.
        joins: Relation joins.
        order_by: Ordering.
        group_by: Grouping columns.
        aggregations: Aggregates.
        having: Predicates on aggregation aliases.
        limit: Maximum rows.
        offset: Rows to skip.
        by_ids: Primary-key lookup values.
        freshness: Maximum acceptable replica lag; ``None`` uses the default.
        mode: ``rows`` returns rows, ``count`` returns a single row count.
    """

    from_: str = Field(alias="from")
    columns: list[str] = Field(default_factory=list)
    filters: list[Filter] = Field(default_factory=list)
    joins: list[JoinSpec] = Field(default_factory=list)
    order_by: list[OrderItem] = Field(default_factory=list)
    group_by: list[GroupByItem] = Field(default_factory=list)
    aggregations: list[Aggregation] = Field(default_factory=list)
    having: list[HavingFilter] = Field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    by_ids: list[Any] | None = None
    freshness: Freshness | None = None
    mode: Literal["rows", "count"] = "rows"

    @property
    def table_names(self) -> list[str]:
        """The ``from`` table followed by every joined table, without duplicates."""
        names = [self.from_]
        for join in self.joins:
            if join.table not in names:
                names.append(join.table)
        return names

    @property
    def is_aggregate(self) -> bool:
        return bool(self.aggregations or self.group_by)


class ExecutionContext(_Query):
    """Who is asking, plus the values their row filters resolve against.

    Attributes:
        role: Role id.
        context_values: Values for RLS context keys (e.g. ``tenantId``).
    """

    role: str
    context_values: dict[str, Any] = Field(default_factory=dict)
