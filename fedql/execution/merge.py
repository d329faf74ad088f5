"""Merging cache-served rows with database fallback rows.

Rows are unioned by primary key; a cached row wins over a database row
with the same key.  Both sources are trimmed to the same selection so a
role sees exactly the same columns whichever source answered.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from fedql.schema.column_reference import ColumnReference


def project_cached_row(
    row: Mapping[str, Any], selection: Sequence[ColumnReference]
) -> dict[str, Any]:
    """Trim a cached row (keyed by apiName) to the selection's output labels."""
    return {ref.label: row.get(ref.column) for ref in selection}


def project_db_row(
    row: Mapping[str, Any], selection: Sequence[ColumnReference]
) -> dict[str, Any]:
    """Trim a database row (keyed by output label) to the selection."""
    return {ref.label: row.get(ref.label) for ref in selection}


def merge_rows(
    cached: Iterable[Mapping[str, Any]],
    fetched: Iterable[Mapping[str, Any]],
    selection: Sequence[ColumnReference],
    primary_key: str,
) -> list[dict[str, Any]]:
    """Union cached and fetched rows by primary key, cache first.

    Args:
        cached: Rows from the cache, keyed by column apiName.
        fetched: Rows from the database, keyed by output label.
        selection: The effective selection after access control.
        primary_key: Primary key column apiName of the table.

    Returns:
        Projected rows; cached rows first, then fetched rows whose key was
        not already served.  Fetched rows are never deduplicated when the
        primary key is not part of the selection.
    """
    pk_labels = [ref.label for ref in selection if ref.column == primary_key]
    merged: list[dict[str, Any]] = []
    seen: set[Any] = set()
    for row in cached:
        seen.add(_hashable(row.get(primary_key)))
        merged.append(project_cached_row(row, selection))
    for row in fetched:
        if pk_labels and _hashable(row.get(pk_labels[0])) in seen:
            continue
        merged.append(project_db_row(row, selection))
    return merged


def _hashable(value: Any) -> Any:
    try:
        hash(value)
    except TypeError:
        return repr(value)
    return value
