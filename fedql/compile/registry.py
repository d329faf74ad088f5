"""Dialect registry.

The planner names a dialect engine per target database (``postgres``,
``clickhouse`` or ``trino``; iceberg targets run through ``trino``).
``DialectFactory`` turns that key into a fresh
:class:`~fedql.compile.base.SqlDialect`.  The built-in dialects are
registered by ``fedql/__init__.py``; tests and embedding applications can
swap one out under the same key.

Usage::

    from fedql.compile.registry import DialectFactory

    @DialectFactory.register("duckdb")
    class DuckDbDialect(SqlDialect):
        ...
"""

from __future__ import annotations

from collections.abc import Callable
from typing import ClassVar

from fedql.compile.base import SqlDialect
from fedql.errors import GenerationError


class DialectFactory:
    """Engine key to :class:`SqlDialect` class.

    Example::

        dialect = DialectFactory.create("clickhouse")
        dialect.placeholder(1)  # "?"
    """

    _dialects: ClassVar[dict[str, type[SqlDialect]]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[type[SqlDialect]], type[SqlDialect]]:
        """Class decorator binding a dialect to the engine key ``name``.

        A later registration under the same key replaces the earlier one.
        """

        def decorator(dialect_cls: type[SqlDialect]) -> type[SqlDialect]:
            cls._dialects[name] = dialect_cls
            return dialect_cls

        return decorator

    @classmethod
    def register_class(cls, name: str, dialect_cls: type[SqlDialect]) -> None:
        cls._dialects[name] = dialect_cls

    @classmethod
    def create(cls, name: str) -> SqlDialect:
        """Dialect instance for the engine key a plan carries.

        Raises:
            GenerationError: If no dialect speaks for ``name``.
        """
        dialect_cls = cls._dialects.get(name)
        if dialect_cls is None:
            raise GenerationError(
                f"No SQL dialect for engine '{name}'. Known engines: {cls.registered_dialects()}.",
                construct="dialect",
            )
        return dialect_cls()

    @classmethod
    def registered_dialects(cls) -> list[str]:
        return sorted(cls._dialects)
