"""Where each table lives: originals and CDC replicas.

For a table ``T`` the set of databases holding it is its own database (the
original) plus the target database of every :class:`ExternalSync` whose
source is ``T`` (a materialized replica with that sync's estimated lag).
The graph is derived once per registry and cached.
"""
from __future__ import annotations

import weakref
from dataclasses import dataclass
from typing import Literal

from fedql.schema.metadata import ExternalSync, Freshness, TableMeta
from fedql.schema.registry import MetadataRegistry

CopyKind = Literal["original", "materialized"]


@dataclass(frozen=True)
class TableLocation:
    """One copy of a table.

    Attributes:
        table: The logical table.
        database: Database id holding this copy.
        copy: ``original`` or ``materialized``.
        physical_name: Table name of this copy in ``database``.
        lag: Replication lag; ``None`` for originals.
        sync: The sync producing a materialized copy.
    """

    table: TableMeta
    database: str
    copy: CopyKind
    physical_name: str
    lag: Freshness | None = None
    sync: ExternalSync | None = None

    @property
    def is_original(self) -> bool:
        return self.copy == "original"

    def satisfies(self, tolerance: Freshness) -> bool:
        """Originals always qualify; replicas only when their lag is within tolerance."""
        return self.lag is None or self.lag.satisfies(tolerance)


_GRAPHS: weakref.WeakKeyDictionary[MetadataRegistry, ConnectivityGraph] = (
    weakref.WeakKeyDictionary()
)


class ConnectivityGraph:
    """Index of table copies by table and database.

    Args:
        registry: The metadata registry to derive the graph from.
    """

    def __init__(self, registry: MetadataRegistry) -> None:
        locations: dict[str, dict[str, TableLocation]] = {}
        for table in registry.tables:
            by_db = {
                table.database: TableLocation(
                    table=table,
                    database=table.database,
                    copy="original",
                    physical_name=table.physical_name,
                )
            }
            for sync in registry.syncs_of(table):
                by_db[sync.target_database] = TableLocation(
                    table=table,
                    database=sync.target_database,
                    copy="materialized",
                    physical_name=sync.target_physical_name,
                    lag=sync.estimated_lag,
                    sync=sync,
                )
            locations[table.id] = by_db
        self._locations = locations

    @classmethod
    def for_registry(cls, registry: MetadataRegistry) -> ConnectivityGraph:
        """Return the cached graph for ``registry``, building it on first use."""
        graph = _GRAPHS.get(registry)
        if graph is None:
            graph = cls(registry)
            _GRAPHS[registry] = graph
        return graph

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def locations_of(self, table: TableMeta) -> list[TableLocation]:
        """Every copy of ``table``, original first, replicas by database id."""
        by_db = self._locations.get(table.id, {})
        return sorted(by_db.values(), key=lambda loc: (not loc.is_original, loc.database))

    def original_of(self, table: TableMeta) -> TableLocation:
        return self._locations[table.id][table.database]

    def location_in(self, table: TableMeta, database: str) -> TableLocation | None:
        """The copy of ``table`` held by ``database``, or ``None``."""
        return self._locations.get(table.id, {}).get(database)

    def databases_for(self, tables: list[TableMeta]) -> list[str]:
        """Sorted ids of every database holding any copy of any of ``tables``."""
        ids: set[str] = set()
        for table in tables:
            ids.update(self._locations.get(table.id, {}))
        return sorted(ids)
