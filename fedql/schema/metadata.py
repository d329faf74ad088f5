"""Pydantic models for the multi-database metadata.

The metadata describes every backend database, the logical tables they hold,
CDC replicas between them, cacheable tables and role access rules.  It is
loaded once at startup (see :mod:`fedql.schema.loader`), indexed by
:class:`~fedql.schema.registry.MetadataRegistry` and shared read-only by all
queries.

Input documents may use camelCase keys (``apiName``, ``physicalName``,
``estimatedLag``); the Python attributes are snake_case.
"""
from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Meta(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Freshness(str, Enum):
    """Replication lag buckets, ordered from freshest to stalest."""

    REALTIME = "realtime"
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"

    @property
    def rank(self) -> int:
        return _FRESHNESS_ORDER.index(self)

    def satisfies(self, tolerance: Freshness) -> bool:
        """True when a copy with this lag is fresh enough for ``tolerance``."""
        return self.rank <= tolerance.rank


_FRESHNESS_ORDER = [Freshness.REALTIME, Freshness.SECONDS, Freshness.MINUTES, Freshness.HOURS]


class ColumnType(str, Enum):
    """Logical column types."""

    STRING = "string"
    INT = "int"
    FLOAT = "float"
    DECIMAL = "decimal"
    DATE = "date"
    TIMESTAMP = "timestamp"
    UUID = "uuid"
    BOOL = "bool"
    JSON = "json"


DatabaseEngine = Literal["postgres", "clickhouse", "iceberg"]


class DatabaseMeta(_Meta):
    """A physical backend.

    Attributes:
        id: Unique database id (e.g. ``'pg-main'``).
        engine: Backend engine.
        trino_catalog: Catalog name under which Trino exposes this database.
        schema_name: Schema used when Trino qualifies tables; defaults per engine.
    """

    id: str
    engine: DatabaseEngine
    trino_catalog: str | None = None
    schema_name: str | None = None

    @property
    def trino_schema(self) -> str:
        if self.schema_name:
            return self.schema_name
        return {"postgres": "public", "clickhouse": "default"}.get(self.engine, "default")


class ColumnMeta(_Meta):
    """A logical column.

    Attributes:
        api_name: Name exposed to callers.
        physical_name: Name in the backend.
        type: Logical type.
        nullable: Whether the column can be NULL.
        indexed: Optional hint that the column is indexed in the backend.
    """

    api_name: str
    physical_name: str
    type: ColumnType
    nullable: bool = True
    indexed: bool = False


class RelationMeta(_Meta):
    """A foreign-key edge from a column of the owning table.

    Attributes:
        source_column: Column apiName on the owning table.
        target_table: Target table id.
        target_column: Column apiName on the target table.
        kind: Cardinality from the owning table's point of view.
    """

    source_column: str
    target_table: str
    target_column: str
    kind: Literal["many-to-one", "one-to-many", "one-to-one"] = "many-to-one"


class TableMeta(_Meta):
    """A logical table.

    Attributes:
        id: Unique table id.
        api_name: Unique name exposed to callers.
        database: Id of the database holding the original.
        physical_name: Table name in that database.
        columns: Ordered column list.
        primary_key: Primary key column apiNames.
        relations: Foreign-key edges starting at this table.
    """

    id: str
    api_name: str
    database: str
    physical_name: str
    columns: list[ColumnMeta]
    primary_key: list[str] = Field(default_factory=list)
    relations: list[RelationMeta] = Field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        """Returns all column apiNames for this table."""
        return [c.api_name for c in self.columns]

    def get_column(self, api_name: str) -> ColumnMeta | None:
        for col in self.columns:
            if col.api_name == api_name:
                return col
        return None


class ExternalSync(_Meta):
    """A CDC-replicated copy of a table in another database.

    Attributes:
        source_table: Id of the replicated table.
        target_database: Id of the database holding the copy.
        target_physical_name: Table name of the copy.
        method: Replication mechanism.
        estimated_lag: Expected replication lag bucket.
    """

    source_table: str
    target_database: str
    target_physical_name: str
    method: Literal["debezium"] = "debezium"
    estimated_lag: Freshness


class CachedTableMeta(_Meta):
    """A table whose rows may be served from the key/value cache.

    Attributes:
        table: Table id.
        key_pattern: Key template, e.g. ``'users:{id}'``.
        ttl: Entry time-to-live in seconds, if the writer sets one.
        columns: Column apiNames stored in the cached value; ``None`` = all.
    """

    table: str
    key_pattern: str
    ttl: int | None = None
    columns: list[str] | None = None


RlsOperator = Literal["=", "in", "!=", "is_null", "is_not_null"]


class RlsFilter(_Meta):
    """A mandatory predicate appended for a role.

    Attributes:
        column: Column apiName on the rule's table.
        operator: Comparison operator.
        context_key: Key in ``ExecutionContext.context_values`` holding the
            value.  Not needed for ``is_null`` / ``is_not_null``.
    """

    column: str
    operator: RlsOperator = "="
    context_key: str | None = None


class TableRoleAccess(_Meta):
    """One role's rule for one table.

    Attributes:
        table: Table id.
        allowed_columns: Readable column apiNames, or ``"all"``.
        filters: Mandatory row filters.
    """

    table: str
    allowed_columns: list[str] | Literal["all"] = "all"
    filters: list[RlsFilter] = Field(default_factory=list)


class RoleMeta(_Meta):
    """An access profile: a flat list of per-table rules."""

    id: str
    tables: list[TableRoleAccess] = Field(default_factory=list)


class TrinoConfig(_Meta):
    """Cross-database federation settings."""

    enabled: bool = False


class MultiDbConfig(_Meta):
    """The complete metadata document.

    Attributes:
        databases: All backends.
        tables: All logical tables.
        syncs: All CDC replicas.
        caches: Cacheable tables.
        roles: Access profiles.
        trino: Federation settings.
    """

    databases: list[DatabaseMeta]
    tables: list[TableMeta]
    syncs: list[ExternalSync] = Field(default_factory=list)
    caches: list[CachedTableMeta] = Field(default_factory=list)
    roles: list[RoleMeta] = Field(default_factory=list)
    trino: TrinoConfig = Field(default_factory=TrinoConfig)
