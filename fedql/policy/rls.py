"""Role-based column trimming and mandatory row-filter injection.

``RlsInjector`` runs after validation.  For every table the query touches it:

* **Checks table access** – the role must have a :class:`TableRoleAccess`
  rule for the table, otherwise :class:`~fedql.errors.AccessDeniedError`.
* **Checks column access** – every column the query selects, filters,
  orders, groups or aggregates on must be in the rule's ``allowed_columns``
  (unless it is ``"all"``).  When the query names no columns at all, the
  selection defaults to exactly the allowed set.
* **Injects row filters** – each :class:`RlsFilter` is resolved against
  ``ExecutionContext.context_values`` and appended to the query's filters.
  The caller cannot remove or override them; a missing context value raises
  :class:`~fedql.errors.MissingContextError`.

Example rule::

    TableRoleAccess(
        table="t_orders",
        allowed_columns=["id", "total", "status", "tenant_id"],
        filters=[RlsFilter(column="tenant_id", operator="=", context_key="tenantId")],
    )
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from fedql.debug import DebugLog, DebugPhase
from fedql.errors import AccessDeniedError, MissingContextError
from fedql.schema.column_reference import ColumnReference
from fedql.schema.metadata import RlsFilter, TableMeta, TableRoleAccess
from fedql.schema.query import ExecutionContext, QueryDefinition
from fedql.schema.registry import MetadataRegistry


@dataclass(frozen=True)
class ScopedFilter:
    """A filter bound to a resolved column.

    Attributes:
        ref: The column the filter applies to.
        op: Comparison operator.
        value: Comparison value (already resolved for RLS filters).
        source: ``user`` for caller filters, ``rls`` for injected ones.
    """

    ref: ColumnReference
    op: str
    value: Any
    source: Literal["user", "rls"] = "user"


@dataclass(frozen=True)
class TableScope:
    """What one role may see of one table in this query.

    Attributes:
        table: The table metadata.
        allowed_columns: Column apiNames the role may read.
        rls_filters: Injected row filters for this table.
    """

    table: TableMeta
    allowed_columns: tuple[str, ...]
    rls_filters: tuple[ScopedFilter, ...]


@dataclass(frozen=True)
class RlsQuery:
    """A validated query after access control.

    Attributes:
        query: The caller's query, unchanged.
        selection: Effective select list, in output order.
        filters: User filters followed by injected RLS filters.
        scopes: Per-table access scope, keyed by table apiName.
    """

    query: QueryDefinition
    selection: tuple[ColumnReference, ...]
    filters: tuple[ScopedFilter, ...]
    scopes: dict[str, TableScope]

    @property
    def user_filters(self) -> tuple[ScopedFilter, ...]:
        return tuple(f for f in self.filters if f.source == "user")

    @property
    def rls_filters(self) -> tuple[ScopedFilter, ...]:
        return tuple(f for f in self.filters if f.source == "rls")

    def columns_of(self, table_name: str) -> list[str]:
        """Selected column apiNames of one table."""
        return [ref.column for ref in self.selection if ref.table == table_name]


class RlsInjector:
    """Applies a role's access rules to a validated query.

    Args:
        registry: The metadata registry.
    """

    def __init__(self, registry: MetadataRegistry) -> None:
        self._registry = registry

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def apply(
        self,
        query: QueryDefinition,
        context: ExecutionContext,
        debug: DebugLog | None = None,
    ) -> RlsQuery:
        """Trim columns and append mandatory filters.

        Steps executed in order:

        1. Resolve the role's rule for every touched table.
        2. Check every referenced column against the allowed set.
        3. Build the effective selection.
        4. Resolve and append RLS filters.

        Raises:
            AccessDeniedError: If a table or column is not permitted.
            MissingContextError: If an RLS filter's context key is absent.
        """
        debug = debug if debug is not None else DebugLog()
        role = context.role

        rules: dict[str, tuple[TableMeta, TableRoleAccess]] = {}
        for name in query.table_names:
            table = self._registry.lookup_table(name)
            rule = self._registry.role_access(role, table) if table is not None else None
            if table is None or rule is None:
                debug.add(
                    DebugPhase.ACCESS_CONTROL,
                    "Table access denied",
                    role=role,
                    table=name,
                )
                raise AccessDeniedError(role, name)
            rules[name] = (table, rule)

        allowed = {
            name: _allowed_columns(table, rule) for name, (table, rule) in rules.items()
        }
        for ref in self._referenced_columns(query):
            if ref.column not in allowed[ref.table]:
                debug.add(
                    DebugPhase.ACCESS_CONTROL,
                    "Column access denied",
                    role=role,
                    table=ref.table,
                    column=ref.column,
                )
                raise AccessDeniedError(role, ref.table, ref.column, list(allowed[ref.table]))

        selection = self._selection(query, allowed)
        debug.add(
            DebugPhase.ACCESS_CONTROL,
            "Column access granted",
            role=role,
            columns=[ref.label for ref in selection],
        )

        user_filters = [
            ScopedFilter(ColumnReference.parse(f.column, query.from_), f.op, f.value)
            for f in query.filters
        ]
        scopes: dict[str, TableScope] = {}
        injected: list[ScopedFilter] = []
        for name, (table, rule) in rules.items():
            table_filters = tuple(
                self._resolve_filter(name, flt, context) for flt in rule.filters
            )
            for flt in table_filters:
                debug.add(
                    DebugPhase.RLS,
                    "Row filter injected",
                    table=name,
                    column=flt.ref.column,
                    operator=flt.op,
                )
            injected.extend(table_filters)
            scopes[name] = TableScope(
                table=table,
                allowed_columns=allowed[name],
                rls_filters=table_filters,
            )

        return RlsQuery(
            query=query,
            selection=tuple(selection),
            filters=tuple(user_filters + injected),
            scopes=scopes,
        )

    # ------------------------------------------------------------------
    # Column access
    # ------------------------------------------------------------------

    @staticmethod
    def _referenced_columns(query: QueryDefinition) -> list[ColumnReference]:
        """Every column the caller touches, in clause order."""
        parse = ColumnReference.parse
        refs = [parse(c, query.from_) for c in query.columns]
        for join in query.joins:
            refs.extend(ColumnReference(join.table, c, qualified=True) for c in join.columns)
        refs.extend(parse(f.column, query.from_) for f in query.filters)
        aliases = {a.alias for a in query.aggregations}
        refs.extend(
            parse(o.column, query.from_) for o in query.order_by if o.column not in aliases
        )
        refs.extend(parse(g.column, query.from_) for g in query.group_by)
        refs.extend(parse(a.column, query.from_) for a in query.aggregations if a.column)
        return refs

    @staticmethod
    def _selection(
        query: QueryDefinition, allowed: dict[str, tuple[str, ...]]
    ) -> list[ColumnReference]:
        if query.is_aggregate:
            return []
        explicit = [ColumnReference.parse(c, query.from_) for c in query.columns]
        for join in query.joins:
            explicit.extend(
                ColumnReference(join.table, c, qualified=True) for c in join.columns
            )
        if explicit:
            return _dedupe(explicit)
        selection = [ColumnReference(query.from_, c) for c in allowed[query.from_]]
        for join in query.joins:
            selection.extend(
                ColumnReference(join.table, c, qualified=True) for c in allowed[join.table]
            )
        return selection

    # ------------------------------------------------------------------
    # Row filters
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_filter(
        table_name: str, flt: RlsFilter, context: ExecutionContext
    ) -> ScopedFilter:
        ref = ColumnReference(table_name, flt.column, qualified=True)
        if flt.operator in ("is_null", "is_not_null"):
            return ScopedFilter(ref, flt.operator, None, source="rls")
        key = flt.context_key or ""
        value = context.context_values.get(key)
        if value is None:
            raise MissingContextError(table_name, flt.column, key)
        if flt.operator == "in" and not isinstance(value, (list, tuple, set, frozenset)):
            value = [value]
        elif flt.operator == "in":
            value = list(value)
        return ScopedFilter(ref, flt.operator, value, source="rls")


def _allowed_columns(table: TableMeta, rule: TableRoleAccess) -> tuple[str, ...]:
    """Allowed apiNames in table column order."""
    if rule.allowed_columns == "all":
        return tuple(table.column_names)
    permitted = set(rule.allowed_columns)
    return tuple(c for c in table.column_names if c in permitted)


def _dedupe(refs: list[ColumnReference]) -> list[ColumnReference]:
    seen: set[str] = set()
    result = []
    for ref in refs:
        if str(ref) not in seen:
            seen.add(str(ref))
            result.append(ref)
    return result
