"""PostgreSQL dialect."""

from __future__ import annotations

from fedql.compile.base import SqlDialect


class PostgresDialect(SqlDialect):
    """PostgreSQL-flavoured SQL.

    Parameter style: ``$1, $2, ...`` – compatible with ``asyncpg`` and
    server-side prepared statements.  List parameters are bound as arrays.
    """

    @property
    def dialect_name(self) -> str:
        return "postgres"

    def placeholder(self, index: int) -> str:
        return f"${index}"

    def array_membership(self, column_sql: str, placeholder: str) -> str:
        return f"{column_sql} = ANY({placeholder})"

    def date_trunc(self, granularity: str, column_sql: str) -> str:
        return f"date_trunc('{granularity}', {column_sql})"
