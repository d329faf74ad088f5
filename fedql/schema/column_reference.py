"""Typed column-reference class.

Owns the parsing of ``"table.column"`` / bare ``"column"`` strings used in
query definitions so the validator, RLS injector and name resolver agree on
which table a reference belongs to.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ColumnReference:
    """A parsed column reference.

    Attributes:
        table: Table apiName the column belongs to.
        column: Column apiName.
        qualified: True when the original string carried a table qualifier.
    """

    table: str
    column: str
    qualified: bool = False

    @classmethod
    def parse(cls, ref: str, default_table: str) -> ColumnReference:
        """Parse ``ref``; bare references belong to ``default_table``.

        Args:
            ref: The raw reference from the query.
            default_table: The query's ``from`` table.
        """
        if "." in ref:
            table, column = ref.split(".", 1)
            return cls(table=table, column=column, qualified=True)
        return cls(table=default_table, column=ref)

    @property
    def label(self) -> str:
        """Output label: the reference as the caller wrote it."""
        if self.qualified:
            return f"{self.table}.{self.column}"
        return self.column

    def __str__(self) -> str:
        return f"{self.table}.{self.column}"
