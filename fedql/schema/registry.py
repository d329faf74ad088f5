"""Indexed, read-only view of the metadata.

:class:`MetadataRegistry` is built once from a :class:`MultiDbConfig`.
Construction indexes every entity and checks referential integrity; any
problem aborts startup with a single :class:`~fedql.errors.ConfigError`
listing everything found.  After construction the registry is never
mutated and may be shared by any number of concurrent queries.
"""
from __future__ import annotations

from collections import Counter
from types import MappingProxyType

import structlog

from fedql.errors import ConfigError
from fedql.schema.metadata import (
    CachedTableMeta,
    ColumnMeta,
    DatabaseMeta,
    ExternalSync,
    MultiDbConfig,
    RelationMeta,
    TableMeta,
    TableRoleAccess,
    TrinoConfig,
)

logger = structlog.get_logger(__name__)


class MetadataRegistry:
    """Lookup tables over a validated :class:`MultiDbConfig`.

    Args:
        config: The loaded metadata document.

    Raises:
        ConfigError: If the metadata violates any integrity rule.
    """

    def __init__(self, config: MultiDbConfig) -> None:
        self._config = config
        _check_integrity(config)

        self._databases = MappingProxyType({d.id: d for d in config.databases})
        self._tables_by_id = MappingProxyType({t.id: t for t in config.tables})
        self._tables_by_api = MappingProxyType({t.api_name: t for t in config.tables})

        syncs: dict[str, list[ExternalSync]] = {t.id: [] for t in config.tables}
        for sync in config.syncs:
            syncs[sync.source_table].append(sync)
        self._syncs = MappingProxyType({k: tuple(v) for k, v in syncs.items()})

        self._caches = MappingProxyType({c.table: c for c in config.caches})
        self._access = MappingProxyType(
            {(role.id, rule.table): rule for role in config.roles for rule in role.tables}
        )
        self._role_ids = frozenset(r.id for r in config.roles)

        logger.info(
            "metadata_registry_built",
            databases=len(self._databases),
            tables=len(self._tables_by_id),
            syncs=len(config.syncs),
            roles=len(self._role_ids),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def config(self) -> MultiDbConfig:
        return self._config

    @property
    def trino(self) -> TrinoConfig:
        return self._config.trino

    @property
    def tables(self) -> list[TableMeta]:
        return list(self._tables_by_id.values())

    @property
    def databases(self) -> list[DatabaseMeta]:
        return list(self._databases.values())

    @property
    def syncs(self) -> list[ExternalSync]:
        return list(self._config.syncs)

    @property
    def table_names(self) -> list[str]:
        """Returns all table apiNames."""
        return list(self._tables_by_api)

    def database(self, database_id: str) -> DatabaseMeta | None:
        return self._databases.get(database_id)

    def lookup_table(self, api_name: str) -> TableMeta | None:
        """Returns the table with the given apiName, or ``None``."""
        return self._tables_by_api.get(api_name)

    def table_by_id(self, table_id: str) -> TableMeta | None:
        return self._tables_by_id.get(table_id)

    def lookup_column(self, table: TableMeta, api_name: str) -> ColumnMeta | None:
        """Returns the column of ``table`` with the given apiName, or ``None``."""
        return table.get_column(api_name)

    def relations_of(self, table: TableMeta) -> list[RelationMeta]:
        return list(table.relations)

    def relations_between(
        self, left: TableMeta, right: TableMeta
    ) -> list[tuple[TableMeta, RelationMeta]]:
        """Return every relation linking two tables, in either direction.

        Each item is ``(owner, relation)`` where ``owner`` is the table the
        relation is declared on.
        """
        found: list[tuple[TableMeta, RelationMeta]] = []
        for rel in left.relations:
            if rel.target_table == right.id:
                found.append((left, rel))
        if left.id != right.id:
            for rel in right.relations:
                if rel.target_table == left.id:
                    found.append((right, rel))
        return found

    def has_role(self, role_id: str) -> bool:
        return role_id in self._role_ids

    def role_access(self, role_id: str, table: TableMeta) -> TableRoleAccess | None:
        """Returns the role's rule for ``table``, or ``None`` when it has none."""
        return self._access.get((role_id, table.id))

    def syncs_of(self, table: TableMeta) -> list[ExternalSync]:
        return list(self._syncs.get(table.id, ()))

    def cache_of(self, table: TableMeta) -> CachedTableMeta | None:
        return self._caches.get(table.id)


# ---------------------------------------------------------------------------
# Integrity checks
# ---------------------------------------------------------------------------


def _duplicates(values: list[str]) -> list[str]:
    return sorted(v for v, n in Counter(values).items() if n > 1)


def _check_integrity(config: MultiDbConfig) -> None:
    """Collect every integrity violation and raise them together."""
    problems: list[str] = []

    for dup in _duplicates([d.id for d in config.databases]):
        problems.append(f"database id '{dup}' is declared more than once")
    for dup in _duplicates([t.id for t in config.tables]):
        problems.append(f"table id '{dup}' is declared more than once")
    for dup in _duplicates([t.api_name for t in config.tables]):
        problems.append(f"table apiName '{dup}' is declared more than once")
    for dup in _duplicates([r.id for r in config.roles]):
        problems.append(f"role id '{dup}' is declared more than once")

    database_ids = {d.id for d in config.databases}
    tables = {t.id: t for t in config.tables}

    for table in config.tables:
        problems.extend(_check_table(table, database_ids, tables))

    seen_pairs: set[tuple[str, str]] = set()
    for sync in config.syncs:
        source = tables.get(sync.source_table)
        if source is None:
            problems.append(f"sync source table '{sync.source_table}' does not exist")
        if sync.target_database not in database_ids:
            problems.append(
                f"sync target database '{sync.target_database}' of table "
                f"'{sync.source_table}' does not exist"
            )
        if source is not None and source.database == sync.target_database:
            problems.append(
                f"sync of '{sync.source_table}' targets its own database "
                f"'{sync.target_database}'"
            )
        pair = (sync.source_table, sync.target_database)
        if pair in seen_pairs:
            problems.append(
                f"table '{pair[0]}' is synced to '{pair[1]}' more than once"
            )
        seen_pairs.add(pair)

    for cache in config.caches:
        table = tables.get(cache.table)
        if table is None:
            problems.append(f"cache entry references unknown table '{cache.table}'")
            continue
        for col in cache.columns or []:
            if table.get_column(col) is None:
                problems.append(
                    f"cache entry for '{table.api_name}' lists unknown column '{col}'"
                )

    for role in config.roles:
        for rule in role.tables:
            problems.extend(_check_rule(role.id, rule, tables))

    if problems:
        raise ConfigError(
            f"Metadata failed {len(problems)} integrity check(s).", problems=problems
        )


def _check_table(
    table: TableMeta, database_ids: set[str], tables: dict[str, TableMeta]
) -> list[str]:
    problems: list[str] = []
    if table.database not in database_ids:
        problems.append(
            f"table '{table.api_name}' references unknown database '{table.database}'"
        )
    for dup in _duplicates(table.column_names):
        problems.append(f"column '{dup}' is declared twice on table '{table.api_name}'")
    for pk in table.primary_key:
        if table.get_column(pk) is None:
            problems.append(
                f"primary key column '{pk}' is not a column of '{table.api_name}'"
            )
    for rel in table.relations:
        if table.get_column(rel.source_column) is None:
            problems.append(
                f"relation on '{table.api_name}' uses unknown column '{rel.source_column}'"
            )
        target = tables.get(rel.target_table)
        if target is None:
            problems.append(
                f"relation on '{table.api_name}' targets unknown table '{rel.target_table}'"
            )
        elif target.get_column(rel.target_column) is None:
            problems.append(
                f"relation on '{table.api_name}' targets unknown column "
                f"'{target.api_name}.{rel.target_column}'"
            )
    return problems


def _check_rule(
    role_id: str, rule: TableRoleAccess, tables: dict[str, TableMeta]
) -> list[str]:
    table = tables.get(rule.table)
    if table is None:
        return [f"role '{role_id}' has a rule for unknown table '{rule.table}'"]
    problems: list[str] = []
    if rule.allowed_columns != "all":
        for col in rule.allowed_columns:
            if table.get_column(col) is None:
                problems.append(
                    f"role '{role_id}' allows unknown column '{table.api_name}.{col}'"
                )
    for flt in rule.filters:
        if table.get_column(flt.column) is None:
            problems.append(
                f"role '{role_id}' filters on unknown column '{table.api_name}.{flt.column}'"
            )
        if flt.operator not in ("is_null", "is_not_null") and not flt.context_key:
            problems.append(
                f"role '{role_id}' filter on '{table.api_name}.{flt.column}' "
                f"needs a context key for operator '{flt.operator}'"
            )
    return problems
