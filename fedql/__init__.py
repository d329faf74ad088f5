"""fedql – metadata-driven federated query planning.

Plan once, run where the data is.

Public API
----------
``QueryEngine``
    Validate, apply row-level security, pick an execution strategy
    (cache, direct, materialized replica or Trino federation), resolve
    physical names and generate dialect-correct SQL.  ``execute`` also runs
    the SQL through an :class:`~fedql.execution.interfaces.Executor`.

``plan_query`` / ``execute_query``
    One-shot helpers around ``QueryEngine``.

``build_registry``
    Load metadata through a :class:`MetadataLoader` and build the registry.

Re-exported types
-----------------
Metadata and query models, ``MetadataRegistry``, ``QueryResult``,
``CompiledSQL``, ``DebugLog``, ``FedQLSettings`` and all error classes.

Extensibility
-------------
New engines can be registered via::

    from fedql.compile.registry import DialectFactory

    @DialectFactory.register("duckdb")
    class DuckDbDialect(SqlDialect):
        ...
"""

from __future__ import annotations

from fedql.compile.base import CompiledSQL, SqlDialect
from fedql.compile.builder import SqlGenerator
from fedql.compile.clickhouse import ClickHouseDialect
from fedql.compile.postgres import PostgresDialect
from fedql.compile.registry import DialectFactory
from fedql.compile.trino import TrinoDialect
from fedql.config import FedQLSettings, get_settings
from fedql.debug import DebugEntry, DebugLog, DebugPhase
from fedql.engine import QueryEngine, QueryResult, execute_query, plan_query
from fedql.errors import (
    AccessDeniedError,
    CacheFallbackError,
    ConfigError,
    FedQLError,
    GenerationError,
    MissingContextError,
    PlanningError,
    QueryCancelledError,
    UnreachableTable,
    ValidationError,
    ValidationIssue,
)
from fedql.execution.cache import InMemoryCacheProvider
from fedql.execution.interfaces import CacheProvider, Executor
from fedql.logconfig import configure_logging
from fedql.planning.connectivity import ConnectivityGraph
from fedql.planning.planner import QueryPlanner
from fedql.policy.rls import RlsInjector
from fedql.resolve.names import NameResolver
from fedql.schema.converters import tables_from_sqlalchemy
from fedql.schema.loader import (
    DictMetadataLoader,
    JsonMetadataLoader,
    MetadataLoader,
    build_registry,
)
from fedql.schema.metadata import (
    CachedTableMeta,
    ColumnMeta,
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
from fedql.schema.query import ExecutionContext, QueryDefinition
from fedql.schema.registry import MetadataRegistry
from fedql.validate.validator import QueryValidator

# ---------------------------------------------------------------------------
# Register built-in dialects with DialectFactory
# ---------------------------------------------------------------------------

DialectFactory.register_class("postgres", PostgresDialect)
DialectFactory.register_class("clickhouse", ClickHouseDialect)
DialectFactory.register_class("trino", TrinoDialect)

__all__ = [
    # Core pipeline
    "QueryEngine",
    "QueryResult",
    "plan_query",
    "execute_query",
    # Metadata
    "MetadataRegistry",
    "MetadataLoader",
    "DictMetadataLoader",
    "JsonMetadataLoader",
    "build_registry",
    "tables_from_sqlalchemy",
    "MultiDbConfig",
    "DatabaseMeta",
    "TableMeta",
    "ColumnMeta",
    "RelationMeta",
    "ExternalSync",
    "CachedTableMeta",
    "RoleMeta",
    "TableRoleAccess",
    "RlsFilter",
    "TrinoConfig",
    "Freshness",
    # Queries
    "QueryDefinition",
    "ExecutionContext",
    # Stages
    "QueryValidator",
    "RlsInjector",
    "ConnectivityGraph",
    "QueryPlanner",
    "NameResolver",
    "SqlGenerator",
    # Compilation
    "CompiledSQL",
    "SqlDialect",
    "DialectFactory",
    "PostgresDialect",
    "ClickHouseDialect",
    "TrinoDialect",
    # Collaborators
    "CacheProvider",
    "Executor",
    "InMemoryCacheProvider",
    # Debugging, config, logging
    "DebugLog",
    "DebugEntry",
    "DebugPhase",
    "FedQLSettings",
    "get_settings",
    "configure_logging",
    # Errors
    "FedQLError",
    "ConfigError",
    "ValidationError",
    "ValidationIssue",
    "AccessDeniedError",
    "MissingContextError",
    "PlanningError",
    "UnreachableTable",
    "GenerationError",
    "CacheFallbackError",
    "QueryCancelledError",
]
