"""Dialect abstraction: CompiledSQL and the SqlDialect ABC.

A dialect is a fixed capability set implemented once per engine.  The
:class:`~fedql.compile.builder.SqlGenerator` composes clauses and asks the
dialect only for the engine-specific fragments:

* identifier quoting
* sequential parameter placeholders
* boolean literals
* array membership (``col IN <list param>``)
* date truncation
* table qualification (catalog-qualified for Trino)
* paging clause order
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from fedql.resolve.names import PhysicalTable


@dataclass
class CompiledSQL:
    """The output of SQL generation.

    Attributes:
        sql: SQL text with positional placeholders.
        params: Placeholder values, in placeholder order.
        dialect: Dialect name the SQL was generated for.
        target_database: Database id, or ``"trino"``, the SQL must run on.
    """

    sql: str
    params: list[Any] = field(default_factory=list)
    dialect: str = ""
    target_database: str = ""


class SqlDialect(ABC):
    """Abstract base for engine-specific SQL fragments."""

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the canonical dialect name (e.g. ``'postgres'``)."""

    @abstractmethod
    def placeholder(self, index: int) -> str:
        """Return the placeholder for the ``index``-th parameter (1-based)."""

    @abstractmethod
    def array_membership(self, column_sql: str, placeholder: str) -> str:
        """Render ``column`` is an element of the array bound to ``placeholder``."""

    @abstractmethod
    def date_trunc(self, granularity: str, column_sql: str) -> str:
        """Render ``column_sql`` truncated to ``granularity`` (hour .. year)."""

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace('"', '""')
        return f'"{escaped}"'

    def boolean_literal(self, value: bool) -> str:
        return "TRUE" if value else "FALSE"

    def qualify_table(self, table: PhysicalTable) -> str:
        """Return the table reference for ``FROM`` / ``JOIN``, without alias."""
        return self.quote_identifier(table.name)

    def paging(self, limit: int | None, offset: int | None) -> list[str]:
        """Return the LIMIT / OFFSET lines, in the order the engine expects."""
        parts = []
        if limit is not None:
            parts.append(f"LIMIT {int(limit)}")
        if offset:
            parts.append(f"OFFSET {int(offset)}")
        return parts
