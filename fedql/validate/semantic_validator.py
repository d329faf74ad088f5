"""Semantic / business-rule validator.

Rules that are not pure existence checks: aggregation shape, HAVING
aliases, paging bounds, primary-key lookups and the count mode.
"""
from __future__ import annotations

from fedql.schema.column_reference import ColumnReference
from fedql.validate.context import ValidationContext
from fedql.validate.operators import NUMERIC_TYPES, TEMPORAL_TYPES


class SemanticValidator:
    """Validates semantic constraints on a query.

    Args:
        ctx: Validation context for this run.
    """

    def __init__(self, ctx: ValidationContext) -> None:
        self._ctx = ctx

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate_paging(self) -> None:
        query = self._ctx.query
        if query.limit is not None and query.limit <= 0:
            self._ctx.add(
                "INVALID_QUERY",
                "limit",
                "limit must be a positive integer.",
                expected="> 0",
                received=query.limit,
            )
        if query.offset is not None and query.offset < 0:
            self._ctx.add(
                "INVALID_QUERY",
                "offset",
                "offset must not be negative.",
                expected=">= 0",
                received=query.offset,
            )

    def validate_by_ids(self) -> None:
        ctx = self._ctx
        if ctx.query.by_ids is None:
            return
        if not ctx.query.by_ids:
            ctx.add(
                "INVALID_QUERY",
                "byIds",
                "byIds must list at least one id.",
                expected="non-empty list",
                received=[],
            )
        table = ctx.tables.get(ctx.query.from_)
        if table is not None and len(table.primary_key) != 1:
            ctx.add(
                "INVALID_QUERY",
                "byIds",
                f"byIds needs a single-column primary key on '{table.api_name}'.",
                expected="one primary key column",
                received=table.primary_key,
            )

    def validate_aggregation(self) -> None:
        ctx = self._ctx
        query = ctx.query
        if query.mode == "count" and query.is_aggregate:
            ctx.add(
                "INVALID_QUERY",
                "mode",
                "count mode cannot be combined with groupBy or aggregations.",
                expected="rows",
                received=query.mode,
            )

        grouped: set[str] = set()
        for i, item in enumerate(query.group_by):
            field_name = f"groupBy[{i}]"
            grouped.add(str(ColumnReference.parse(item.column, query.from_)))
            column = ctx.resolve_column(item.column, f"{field_name}.column")
            if column is not None and item.granularity and column.type not in TEMPORAL_TYPES:
                ctx.add(
                    "INVALID_OPERATOR",
                    f"{field_name}.granularity",
                    f"Granularity needs a date or timestamp column; "
                    f"'{item.column}' is {column.type.value}.",
                    expected=sorted(t.value for t in TEMPORAL_TYPES),
                    received=column.type.value,
                )

        seen_aliases: set[str] = set()
        for i, agg in enumerate(query.aggregations):
            field_name = f"aggregations[{i}]"
            if agg.alias in seen_aliases:
                ctx.add(
                    "INVALID_QUERY",
                    f"{field_name}.alias",
                    f"Aggregation alias '{agg.alias}' is used twice.",
                    expected="unique alias",
                    received=agg.alias,
                )
            seen_aliases.add(agg.alias)
            if agg.column is None:
                if agg.fn != "count":
                    ctx.add(
                        "INVALID_QUERY",
                        f"{field_name}.column",
                        f"Aggregate '{agg.fn}' needs a column.",
                        expected="column reference",
                        received=None,
                    )
                continue
            column = ctx.resolve_column(agg.column, f"{field_name}.column")
            if column is not None and agg.fn in ("sum", "avg") and column.type not in NUMERIC_TYPES:
                ctx.add(
                    "INVALID_OPERATOR",
                    f"{field_name}.fn",
                    f"Aggregate '{agg.fn}' needs a numeric column; "
                    f"'{agg.column}' is {column.type.value}.",
                    expected=sorted(t.value for t in NUMERIC_TYPES),
                    received=column.type.value,
                )

        if query.is_aggregate:
            for i, ref in enumerate(query.columns):
                if str(ColumnReference.parse(ref, query.from_)) not in grouped:
                    ctx.add(
                        "INVALID_QUERY",
                        f"columns[{i}]",
                        f"Column '{ref}' must appear in groupBy when aggregating.",
                        expected=sorted(grouped),
                        received=ref,
                    )
            for i, join in enumerate(query.joins):
                if join.columns:
                    ctx.add(
                        "INVALID_QUERY",
                        f"joins[{i}].columns",
                        "Joined columns must be selected through groupBy when aggregating.",
                        expected=[],
                        received=join.columns,
                    )

        for i, having in enumerate(query.having):
            if having.alias not in seen_aliases:
                ctx.add(
                    "INVALID_QUERY",
                    f"having[{i}].alias",
                    f"HAVING references unknown aggregation alias '{having.alias}'.",
                    expected=sorted(seen_aliases),
                    received=having.alias,
                )
