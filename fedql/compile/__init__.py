"""fedql SQL generation layer: physical plan → parameterized SQL."""
from fedql.compile.base import CompiledSQL, SqlDialect
from fedql.compile.builder import SqlGenerator
from fedql.compile.clickhouse import ClickHouseDialect
from fedql.compile.postgres import PostgresDialect
from fedql.compile.registry import DialectFactory
from fedql.compile.trino import TrinoDialect

__all__ = [
    "CompiledSQL",
    "SqlDialect",
    "SqlGenerator",
    "DialectFactory",
    "ClickHouseDialect",
    "PostgresDialect",
    "TrinoDialect",
]
