"""Schema existence validator.

Checks that every table, column and join in the query exists in the
registry, and that each join follows a declared relation.
"""
from __future__ import annotations

from fedql.validate.context import ValidationContext


class SchemaValidator:
    """Validates table, column and join existence.

    Args:
        ctx: Validation context for this run.
    """

    def __init__(self, ctx: ValidationContext) -> None:
        self._ctx = ctx

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate_tables(self) -> None:
        """Resolve ``from`` and every join target into ``ctx.tables``."""
        ctx = self._ctx
        targets = [("from", ctx.query.from_)] + [
            (f"joins[{i}].table", j.table) for i, j in enumerate(ctx.query.joins)
        ]
        for field_name, name in targets:
            table = ctx.registry.lookup_table(name)
            if table is None:
                ctx.add(
                    "UNKNOWN_TABLE",
                    field_name,
                    f"Table '{name}' does not exist.",
                    expected=ctx.registry.table_names,
                    received=name,
                )
            else:
                ctx.tables.setdefault(name, table)

    def validate_joins(self) -> None:
        """Each join must follow a relation from an earlier table of the query."""
        ctx = self._ctx
        joined = [ctx.query.from_]
        for i, join in enumerate(ctx.query.joins):
            source_name = join.source or ctx.query.from_
            field_name = f"joins[{i}]"
            if join.table in joined:
                ctx.add(
                    "INVALID_JOIN",
                    field_name,
                    f"Table '{join.table}' is already part of the query.",
                    expected="each table joined once",
                    received=join.table,
                )
                continue
            if source_name not in joined:
                ctx.add(
                    "INVALID_JOIN",
                    f"{field_name}.source",
                    f"Join source '{source_name}' must be the from table or an earlier join.",
                    expected=list(joined),
                    received=source_name,
                )
                joined.append(join.table)
                continue
            joined.append(join.table)

            source = ctx.tables.get(source_name)
            target = ctx.tables.get(join.table)
            if source is None or target is None:
                continue
            if not ctx.registry.relations_between(source, target):
                ctx.add(
                    "INVALID_JOIN",
                    field_name,
                    f"No relation links '{source_name}' and '{join.table}'.",
                    expected=_related_tables(ctx, source_name),
                    received=join.table,
                )
            for j, col in enumerate(join.columns):
                if target.get_column(col) is None:
                    ctx.add(
                        "UNKNOWN_COLUMN",
                        f"{field_name}.columns[{j}]",
                        f"Column '{col}' does not exist on table '{join.table}'.",
                        expected=target.column_names,
                        received=col,
                    )

    def validate_columns(self) -> None:
        """Selected, ordered and grouped columns must exist."""
        ctx = self._ctx
        aliases = {a.alias for a in ctx.query.aggregations}
        for i, ref in enumerate(ctx.query.columns):
            ctx.resolve_column(ref, f"columns[{i}]")
        for i, item in enumerate(ctx.query.order_by):
            if item.column in aliases:
                continue
            ctx.resolve_column(item.column, f"orderBy[{i}].column")


def _related_tables(ctx: ValidationContext, table_name: str) -> list[str]:
    """apiNames of every table sharing a relation with ``table_name``."""
    table = ctx.tables.get(table_name)
    if table is None:
        return []
    related = []
    for other in ctx.registry.tables:
        if ctx.registry.relations_between(table, other):
            related.append(other.api_name)
    return related
