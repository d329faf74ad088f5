"""fedql schema models: metadata, registry and query definitions."""
from fedql.schema.column_reference import ColumnReference
from fedql.schema.metadata import (
    CachedTableMeta,
    ColumnMeta,
    ColumnType,
    DatabaseMeta,
    ExternalSync,
    Freshness,
    MultiDbConfig,
    RelationMeta,
    RlsFilter,
    RoleMeta,
    TableMeta,
    TableRoleAccess,
    TrinoConfig,
)
from fedql.schema.query import (
    Aggregation,
    ExecutionContext,
    Filter,
    GroupByItem,
    HavingFilter,
    JoinSpec,
    OrderItem,
    QueryDefinition,
)
from fedql.schema.registry import MetadataRegistry

__all__ = [
    "CachedTableMeta",
    "ColumnMeta",
    "ColumnType",
    "DatabaseMeta",
    "ExternalSync",
    "Freshness",
    "MultiDbConfig",
    "RelationMeta",
    "RlsFilter",
    "RoleMeta",
    "TableMeta",
    "TableRoleAccess",
    "TrinoConfig",
    "Aggregation",
    "ExecutionContext",
    "Filter",
    "GroupByItem",
    "HavingFilter",
    "JoinSpec",
    "OrderItem",
    "QueryDefinition",
    "ColumnReference",
    "MetadataRegistry",
]
