"""apiName to physicalName rewriting.

``NameResolver`` turns a :class:`~fedql.planning.plan.ResolvedPlan` into a
:class:`PhysicalPlan` whose identifiers are the names of the copies the
planner chose: a table served as a replica uses the sync's
``target_physical_name``; columns always use the owning table's column
metadata.  Every table keeps its apiName as SQL alias, and every output
column keeps its requested label, so result rows come back keyed by the
names the caller asked for.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from fedql.debug import DebugLog, DebugPhase
from fedql.errors import GenerationError
from fedql.planning.plan import ResolvedPlan
from fedql.policy.rls import ScopedFilter
from fedql.schema.column_reference import ColumnReference
from fedql.schema.metadata import ColumnType, TableMeta
from fedql.schema.query import Granularity
from fedql.schema.registry import MetadataRegistry

# ---------------------------------------------------------------------------
# Physical plan
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PhysicalTable:
    """A table as the target engine names it.

    Attributes:
        alias: SQL alias (the table apiName).
        name: Physical table name of the serving copy.
        catalog: Trino catalog, for catalog-qualified tables.
        schema: Schema used with ``catalog``.
    """

    alias: str
    name: str
    catalog: str | None = None
    schema: str | None = None


@dataclass(frozen=True)
class PhysicalColumn:
    """A column reference with its physical name and output label."""

    table_alias: str
    name: str
    label: str
    type: ColumnType


@dataclass(frozen=True)
class PhysicalFilter:
    column: PhysicalColumn
    op: str
    value: Any
    source: str = "user"


@dataclass(frozen=True)
class PhysicalJoin:
    """``<type> JOIN table ON left = right [AND filters]``.

    A left-joined table carries its row filters in ``filters`` so rows of the
    ``FROM`` table without a visible partner keep NULL join columns.
    """

    table: PhysicalTable
    type: str
    left: PhysicalColumn
    right: PhysicalColumn
    filters: tuple[PhysicalFilter, ...] = ()


@dataclass(frozen=True)
class PhysicalGroup:
    column: PhysicalColumn
    granularity: Granularity | None = None


@dataclass(frozen=True)
class PhysicalAggregation:
    fn: str
    column: PhysicalColumn | None
    alias: str


@dataclass(frozen=True)
class PhysicalHaving:
    aggregation: PhysicalAggregation
    op: str
    value: Any


@dataclass(frozen=True)
class PhysicalOrder:
    """ORDER BY on a column (possibly a truncated group column) or an aggregation alias."""

    direction: str
    column: PhysicalColumn | None = None
    granularity: Granularity | None = None
    alias: str | None = None


@dataclass(frozen=True)
class PhysicalPlan:
    """A resolved plan carrying physical identifiers only.

    Attributes:
        strategy: Strategy chosen by the planner.
        target_database: Where the SQL runs.
        engine: Dialect key.
        table: The ``FROM`` table.
        joins: Joined tables with their ON columns.
        columns: Selected columns, in output order.
        filters: ``byIds`` restriction, user filters, then the RLS filters
            not carried by a left join.
        group_by: Grouping columns.
        aggregations: Aggregates.
        having: Predicates on aggregates.
        order_by: Ordering.
        limit: Row limit.
        offset: Rows skipped.
        mode: ``rows`` or ``count``.
    """

    strategy: str
    target_database: str
    engine: str
    table: PhysicalTable
    joins: list[PhysicalJoin] = field(default_factory=list)
    columns: list[PhysicalColumn] = field(default_factory=list)
    filters: list[PhysicalFilter] = field(default_factory=list)
    group_by: list[PhysicalGroup] = field(default_factory=list)
    aggregations: list[PhysicalAggregation] = field(default_factory=list)
    having: list[PhysicalHaving] = field(default_factory=list)
    order_by: list[PhysicalOrder] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    mode: str = "rows"

    @property
    def labels(self) -> list[str]:
        """Output labels in select-list order."""
        if self.mode == "count":
            return ["count"]
        if self.group_by or self.aggregations:
            return [g.column.label for g in self.group_by] + [a.alias for a in self.aggregations]
        return [c.label for c in self.columns]

    def restore_row(self, row: dict[str, Any]) -> dict[str, Any]:
        """Key a result row by output label.

        Rows already keyed by label pass through; physical column names
        (bare or ``alias.name``) are mapped back to the requested label.
        """
        physical = {}
        for col in self.columns + [g.column for g in self.group_by]:
            physical.setdefault(col.name, col.label)
            physical[f"{col.table_alias}.{col.name}"] = col.label
        restored: dict[str, Any] = {}
        for label in self.labels:
            if label in row:
                restored[label] = row[label]
        for key, value in row.items():
            label = physical.get(key)
            if label is not None and label not in restored:
                restored[label] = value
        return {label: restored.get(label) for label in self.labels}


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class NameResolver:
    """Rewrites a resolved plan to physical names.

    Args:
        registry: The metadata registry.
    """

    def __init__(self, registry: MetadataRegistry) -> None:
        self._registry = registry

    def resolve(self, plan: ResolvedPlan, debug: DebugLog | None = None) -> PhysicalPlan:
        """Build the physical plan for SQL generation.

        Raises:
            GenerationError: If the plan needs no SQL (a complete cache hit).
        """
        debug = debug if debug is not None else DebugLog()
        if plan.engine is None:
            raise GenerationError("A plan served from the cache has no SQL.", construct="plan")

        query = plan.rls.query
        tables = {name: scope.table for name, scope in plan.rls.scopes.items()}
        physical_tables = {name: self._table(plan, name) for name in tables}

        def column(ref: ColumnReference) -> PhysicalColumn:
            meta = tables[ref.table].get_column(ref.column)
            assert meta is not None
            return PhysicalColumn(ref.table, meta.physical_name, ref.label, meta.type)

        def parse(ref: str) -> ColumnReference:
            return ColumnReference.parse(ref, query.from_)

        left_joined = {j.table for j in query.joins if j.type == "left"}
        join_filters: dict[str, list[PhysicalFilter]] = {name: [] for name in left_joined}
        filters = []
        for flt in plan.rls.filters:
            if flt.source == "rls" and flt.ref.table in left_joined:
                join_filters[flt.ref.table].append(self._filter(flt, column))
            else:
                filters.append(self._filter(flt, column))

        joins = []
        for join in query.joins:
            source = join.source or query.from_
            left, right = self._join_columns(tables[source], tables[join.table])
            joins.append(
                PhysicalJoin(
                    table=physical_tables[join.table],
                    type=join.type,
                    left=column(ColumnReference(source, left, qualified=True)),
                    right=column(ColumnReference(join.table, right, qualified=True)),
                    filters=tuple(join_filters.get(join.table, ())),
                )
            )

        if plan.by_ids is not None:
            pk = ColumnReference(query.from_, tables[query.from_].primary_key[0])
            filters.insert(0, PhysicalFilter(column(pk), "in", list(plan.by_ids), "by_ids"))

        groups = [PhysicalGroup(column(parse(g.column)), g.granularity) for g in query.group_by]
        granularity = {str(parse(g.column)): g.granularity for g in query.group_by}
        aggregations = {
            a.alias: PhysicalAggregation(a.fn, column(parse(a.column)) if a.column else None, a.alias)
            for a in query.aggregations
        }
        order_by = []
        for item in query.order_by:
            if item.column in aggregations:
                order_by.append(PhysicalOrder(item.direction, alias=item.column))
            else:
                ref = parse(item.column)
                order_by.append(
                    PhysicalOrder(item.direction, column(ref), granularity.get(str(ref)))
                )

        physical = PhysicalPlan(
            strategy=plan.strategy,
            target_database=plan.target_database,
            engine=plan.engine,
            table=physical_tables[query.from_],
            joins=joins,
            columns=[column(ref) for ref in plan.rls.selection],
            filters=filters,
            group_by=groups,
            aggregations=list(aggregations.values()),
            having=[PhysicalHaving(aggregations[h.alias], h.op, h.value) for h in query.having],
            order_by=order_by,
            limit=query.limit,
            offset=query.offset,
            mode=query.mode,
        )
        debug.add(
            DebugPhase.NAME_RESOLUTION,
            "Names resolved",
            tables={alias: t.name for alias, t in physical_tables.items()},
            columns={c.label: f"{c.table_alias}.{c.name}" for c in physical.columns},
        )
        return physical

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _table(plan: ResolvedPlan, name: str) -> PhysicalTable:
        assignment = plan.assignments[name]
        return PhysicalTable(
            alias=name,
            name=assignment.location.physical_name,
            catalog=assignment.catalog,
            schema=assignment.schema,
        )

    def _join_columns(self, source: TableMeta, target: TableMeta) -> tuple[str, str]:
        """Source and target column apiNames of the first relation linking the tables."""
        relations = self._registry.relations_between(source, target)
        if not relations:
            raise GenerationError(
                f"No relation between '{source.api_name}' and '{target.api_name}'.",
                construct="join",
            )
        owner, rel = relations[0]
        if owner.id == source.id:
            return rel.source_column, rel.target_column
        return rel.target_column, rel.source_column

    @staticmethod
    def _filter(flt: ScopedFilter, column: Any) -> PhysicalFilter:
        return PhysicalFilter(column(flt.ref), flt.op, flt.value, flt.source)
