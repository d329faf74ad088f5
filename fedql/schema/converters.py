"""Build table metadata from declared SQLAlchemy models.

:func:`tables_from_sqlalchemy` converts a :class:`sqlalchemy.MetaData`
(typically ``Base.metadata`` of a declarative model module) into
:class:`~fedql.schema.metadata.TableMeta` entries for one database.  The
metadata is read as declared; nothing is reflected from a live engine.

Example::

    from fedql.schema.converters import tables_from_sqlalchemy
    from myapp.models import Base

    tables = tables_from_sqlalchemy(Base.metadata, database="pg-main")
    config = MultiDbConfig(databases=[...], tables=tables, ...)
"""
from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from sqlalchemy import types as sqltypes

from fedql.schema.metadata import ColumnMeta, ColumnType, RelationMeta, TableMeta

if TYPE_CHECKING:
    from sqlalchemy import Column, MetaData, Table


# Checked in order: Float is a Numeric subclass, Date / DateTime are disjoint.
_TYPE_MAP: list[tuple[type[sqltypes.TypeEngine], ColumnType]] = [
    (sqltypes.Boolean, ColumnType.BOOL),
    (sqltypes.Integer, ColumnType.INT),
    (sqltypes.Float, ColumnType.FLOAT),
    (sqltypes.Numeric, ColumnType.DECIMAL),
    (sqltypes.DateTime, ColumnType.TIMESTAMP),
    (sqltypes.Date, ColumnType.DATE),
    (sqltypes.Uuid, ColumnType.UUID),
    (sqltypes.JSON, ColumnType.JSON),
    (sqltypes.String, ColumnType.STRING),
]


def _identity(name: str) -> str:
    return name


def tables_from_sqlalchemy(
    metadata: MetaData,
    database: str,
    *,
    include_tables: list[str] | None = None,
    api_name: Callable[[str], str] = _identity,
    table_id: Callable[[str], str] | None = None,
) -> list[TableMeta]:
    """Convert declared SQLAlchemy tables to :class:`TableMeta` entries.

    Foreign keys become ``many-to-one`` relations; keys pointing at tables
    outside the converted set are dropped.

    Args:
        metadata: Declared SQLAlchemy metadata.
        database: Id of the database that holds these tables.
        include_tables: Optional allowlist of physical table names.
        api_name: Maps a physical table or column name to its apiName.
        table_id: Maps a physical table name to a table id.  Defaults to
            ``"{database}.{name}"``.

    Returns:
        Table metadata in dependency order.
    """
    make_id = table_id or (lambda name: f"{database}.{name}")
    selected = [
        t
        for t in metadata.sorted_tables
        if include_tables is None or t.name in include_tables
    ]
    known = {t.name for t in selected}
    return [_convert_table(t, database, known, api_name, make_id) for t in selected]


def logical_type(column: Column) -> ColumnType:
    """Map a SQLAlchemy column type to a logical :class:`ColumnType`."""
    for sa_type, logical in _TYPE_MAP:
        if isinstance(column.type, sa_type):
            return logical
    return ColumnType.STRING


def _convert_table(
    table: Table,
    database: str,
    known: set[str],
    api_name: Callable[[str], str],
    make_id: Callable[[str], str],
) -> TableMeta:
    columns = [
        ColumnMeta(
            api_name=api_name(col.name),
            physical_name=col.name,
            type=logical_type(col),
            # Unset nullability (None) is treated as nullable.
            nullable=col.nullable is not False,
            indexed=bool(col.index) or col.primary_key,
        )
        for col in table.columns
    ]
    relations = [
        RelationMeta(
            source_column=api_name(fk.parent.name),
            target_table=make_id(fk.column.table.name),
            target_column=api_name(fk.column.name),
            kind="many-to-one",
        )
        for fk in sorted(table.foreign_keys, key=lambda f: f.parent.name)
        if fk.column.table.name in known
    ]
    return TableMeta(
        id=make_id(table.name),
        api_name=api_name(table.name),
        database=database,
        physical_name=table.name,
        columns=columns,
        primary_key=[api_name(c.name) for c in table.primary_key.columns],
        relations=relations,
    )
