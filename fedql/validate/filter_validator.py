"""Filter validator.

Checks each user filter's column, its operator against the column's logical
type, and the shape of the comparison value.
"""
from __future__ import annotations

from fedql.schema.query import NULL_OPS, Filter
from fedql.validate.context import ValidationContext
from fedql.validate.operators import allowed_operators, operator_allowed


class FilterValidator:
    """Validates the ``filters`` clause.

    Args:
        ctx: Validation context for this run.
    """

    def __init__(self, ctx: ValidationContext) -> None:
        self._ctx = ctx

    def validate(self) -> None:
        for i, flt in enumerate(self._ctx.query.filters):
            self._validate_filter(flt, f"filters[{i}]")

    def _validate_filter(self, flt: Filter, field_name: str) -> None:
        ctx = self._ctx
        column = ctx.resolve_column(flt.column, f"{field_name}.column")
        if column is None:
            return

        if not operator_allowed(column.type, flt.op):
            ctx.add(
                "INVALID_OPERATOR",
                f"{field_name}.op",
                f"Operator '{flt.op}' is not allowed on {column.type.value} "
                f"column '{flt.column}'.",
                expected=allowed_operators(column.type),
                received=flt.op,
            )
            return

        if flt.op in NULL_OPS:
            return
        if flt.op == "in":
            if not isinstance(flt.value, list) or not flt.value:
                ctx.add(
                    "INVALID_QUERY",
                    f"{field_name}.value",
                    f"Operator 'in' on '{flt.column}' needs a non-empty list.",
                    expected="non-empty list",
                    received=flt.value,
                )
            return
        if flt.value is None:
            ctx.add(
                "INVALID_QUERY",
                f"{field_name}.value",
                f"Operator '{flt.op}' on '{flt.column}' needs a value; "
                "use is_null / is_not_null to test for NULL.",
                expected="non-null scalar",
                received=None,
            )
        elif isinstance(flt.value, (list, dict)):
            ctx.add(
                "INVALID_QUERY",
                f"{field_name}.value",
                f"Operator '{flt.op}' on '{flt.column}' needs a scalar value.",
                expected="scalar",
                received=flt.value,
            )
