"""Validation context shared by the sub-validators of one run.

Packages the registry, the query under validation, the tables resolved so
far and the growing issue list, so sub-validators record problems instead
of raising on the first one.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from fedql.errors import ValidationIssue
from fedql.schema.column_reference import ColumnReference
from fedql.schema.metadata import ColumnMeta, TableMeta
from fedql.schema.query import QueryDefinition
from fedql.schema.registry import MetadataRegistry


@dataclass
class ValidationContext:
    """Mutable state for a single validation run.

    Attributes:
        registry: Metadata registry.
        query: The query being validated.
        tables: Tables of the query that resolved, keyed by apiName.
        issues: Every problem found so far.
    """

    registry: MetadataRegistry
    query: QueryDefinition
    tables: dict[str, TableMeta] = field(default_factory=dict)
    issues: list[ValidationIssue] = field(default_factory=list)

    def add(
        self,
        code: str,
        field_name: str,
        message: str,
        expected: Any = None,
        received: Any = None,
    ) -> None:
        self.issues.append(
            ValidationIssue(
                code=code,
                field=field_name,
                message=message,
                expected=expected,
                received=received,
            )
        )

    def resolve_column(self, ref: str, field_name: str) -> ColumnMeta | None:
        """Resolve a column reference, recording an issue when it fails.

        References to tables that failed to resolve are skipped silently;
        the table itself was already reported.
        """
        parsed = ColumnReference.parse(ref, self.query.from_)
        table = self.tables.get(parsed.table)
        if table is None:
            if parsed.table not in self.query.table_names:
                self.add(
                    "UNKNOWN_TABLE",
                    field_name,
                    f"Table '{parsed.table}' is not part of the query.",
                    expected=self.query.table_names,
                    received=parsed.table,
                )
            return None
        column = table.get_column(parsed.column)
        if column is None:
            self.add(
                "UNKNOWN_COLUMN",
                field_name,
                f"Column '{parsed.column}' does not exist on table '{table.api_name}'.",
                expected=table.column_names,
                received=parsed.column,
            )
        return column
