"""Planner outcomes and the resolved plan.

Each strategy predicate returns one of the tagged outcome variants
(:class:`CacheHit`, :class:`Direct`, :class:`Materialized`,
:class:`TrinoCrossDb`) or ``None`` when it does not apply; the planner
falls back to :class:`Unreachable` when none does.  The chosen outcome is
turned into a :class:`ResolvedPlan`, which records for every table which
database and which copy serves it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Union

from fedql.errors import UnreachableTable
from fedql.planning.connectivity import TableLocation
from fedql.policy.rls import RlsQuery
from fedql.schema.metadata import CachedTableMeta, Freshness

Strategy = Literal["cache", "direct", "materialized", "trino-cross-db"]

#: Target id used for plans that run on the Trino coordinator.
TRINO_TARGET = "trino"
#: Target id used for plans served entirely from the cache.
CACHE_TARGET = "cache"


# ---------------------------------------------------------------------------
# Strategy outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CacheHit:
    """Some or all ``byIds`` rows were found in the cache.

    Attributes:
        cache: The table's cache metadata.
        rows: Cached rows (already RLS-checked), keyed by id.
        served_ids: Ids answered by the cache, including ids whose cached
            row was hidden by a row filter.
        fallback_ids: Ids still to be fetched from the database.
        database: Database serving the fallback.
    """

    cache: CachedTableMeta
    rows: dict[Any, dict[str, Any]]
    served_ids: list[Any]
    fallback_ids: list[Any]
    database: str

    @property
    def complete(self) -> bool:
        return not self.fallback_ids


@dataclass(frozen=True)
class Direct:
    """Every table is an original in one database."""

    database: str


@dataclass(frozen=True)
class Materialized:
    """One database holds every table, some as CDC replicas."""

    database: str
    locations: dict[str, TableLocation]
    originals: int


@dataclass(frozen=True)
class TrinoCrossDb:
    """Tables are federated by Trino across their original databases.

    Attributes:
        catalogs: Trino catalog per table apiName.
    """

    catalogs: dict[str, str]


@dataclass(frozen=True)
class Unreachable:
    """No strategy applies."""

    tables: list[UnreachableTable]


Outcome = Union[CacheHit, Direct, Materialized, TrinoCrossDb, Unreachable]


# ---------------------------------------------------------------------------
# Resolved plan
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TableAssignment:
    """Which copy serves one table of the query.

    Attributes:
        api_name: Table apiName (also used as the SQL alias).
        location: The serving copy.
        catalog: Trino catalog when the table is catalog-qualified.
        schema: Schema used together with ``catalog``.
    """

    api_name: str
    location: TableLocation
    catalog: str | None = None
    schema: str | None = None

    @property
    def database(self) -> str:
        return self.location.database

    @property
    def copy(self) -> str:
        return self.location.copy


@dataclass(frozen=True)
class ResolvedPlan:
    """The planner's decision for one query.

    Attributes:
        strategy: The chosen strategy.
        target_database: Database id the SQL runs on, ``"trino"`` or ``"cache"``.
        engine: Dialect key for SQL generation; ``None`` when no SQL is needed.
        assignments: Serving copy per table apiName, in query order.
        rls: The access-controlled query.
        freshness: Tolerance the plan was made under.
        by_ids: Primary-key values the SQL must restrict to, if any.
        cache: Cache outcome for ``cache`` plans.
    """

    strategy: Strategy
    target_database: str
    engine: str | None
    assignments: dict[str, TableAssignment]
    rls: RlsQuery
    freshness: Freshness
    by_ids: list[Any] | None = None
    cache: CacheHit | None = None

    @property
    def needs_sql(self) -> bool:
        """False only for plans served completely from the cache."""
        return self.engine is not None

    @property
    def fallback_ids(self) -> list[Any]:
        return list(self.cache.fallback_ids) if self.cache else []

    def describe(self) -> dict[str, Any]:
        """Plain summary for debug logs."""
        return {
            "strategy": self.strategy,
            "target": self.target_database,
            "tables": {
                name: {"database": a.database, "copy": a.copy}
                for name, a in self.assignments.items()
            },
        }
