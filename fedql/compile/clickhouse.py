"""ClickHouse dialect."""

from __future__ import annotations

from fedql.compile.base import SqlDialect
from fedql.errors import GenerationError

_TRUNC_FUNCTIONS = {
    "hour": "toStartOfHour",
    "day": "toStartOfDay",
    "week": "toMonday",
    "month": "toStartOfMonth",
    "quarter": "toStartOfQuarter",
    "year": "toStartOfYear",
}


class ClickHouseDialect(SqlDialect):
    """ClickHouse-flavoured SQL.

    Parameter style: ``?`` positional.  Booleans render as ``1`` / ``0``;
    identifiers are quoted with backticks.
    """

    @property
    def dialect_name(self) -> str:
        return "clickhouse"

    def placeholder(self, index: int) -> str:
        return "?"

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace("`", "\\`")
        return f"`{escaped}`"

    def boolean_literal(self, value: bool) -> str:
        return "1" if value else "0"

    def array_membership(self, column_sql: str, placeholder: str) -> str:
        return f"has({placeholder}, {column_sql})"

    def date_trunc(self, granularity: str, column_sql: str) -> str:
        func = _TRUNC_FUNCTIONS.get(granularity)
        if func is None:
            raise GenerationError(
                f"ClickHouse cannot truncate to '{granularity}'.", construct="date_trunc"
            )
        return f"{func}({column_sql})"
