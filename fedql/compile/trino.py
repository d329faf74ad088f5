"""Trino dialect (cross-database federation and Iceberg)."""

from __future__ import annotations

from fedql.compile.base import SqlDialect
from fedql.errors import GenerationError
from fedql.resolve.names import PhysicalTable


class TrinoDialect(SqlDialect):
    """Trino-flavoured SQL.

    Every table is addressed as ``"catalog"."schema"."table"``; Trino has no
    default catalog for a federated statement, so a table without a catalog
    cannot be rendered.  ``OFFSET`` precedes ``LIMIT`` in Trino's grammar.
    """

    @property
    def dialect_name(self) -> str:
        return "trino"

    def placeholder(self, index: int) -> str:
        return "?"

    def array_membership(self, column_sql: str, placeholder: str) -> str:
        return f"contains({placeholder}, {column_sql})"

    def date_trunc(self, granularity: str, column_sql: str) -> str:
        return f"date_trunc('{granularity}', {column_sql})"

    def qualify_table(self, table: PhysicalTable) -> str:
        if not table.catalog:
            raise GenerationError(
                f"Table '{table.alias}' has no Trino catalog.", construct="qualify_table"
            )
        quote = self.quote_identifier
        return ".".join(quote(part) for part in (table.catalog, table.schema or "default", table.name))

    def paging(self, limit: int | None, offset: int | None) -> list[str]:
        parts = []
        if offset:
            parts.append(f"OFFSET {int(offset)}")
        if limit is not None:
            parts.append(f"LIMIT {int(limit)}")
        return parts
