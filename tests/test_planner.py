"""Unit tests for QueryPlanner strategy selection."""
from __future__ import annotations

import json

import pytest

from fedql.debug import DebugLog, DebugPhase
from fedql.errors import PlanningError
from fedql.execution.cache import InMemoryCacheProvider
from fedql.planning.planner import QueryPlanner
from fedql.planning.strategies import STRATEGY_LADDER, try_cache, try_direct, try_materialized, try_trino
from fedql.policy.rls import RlsInjector
from fedql.schema.loader import DictMetadataLoader, build_registry
from fedql.schema.metadata import Freshness
from fedql.schema.query import ExecutionContext, QueryDefinition
from tests.fixtures import load_metadata_dict, load_registry

REGISTRY = load_registry()
TRINO_REGISTRY = load_registry(trino={"enabled": True})

USER_ROWS = {
    "users:1": {"id": 1, "email": "a@x.io", "name": "Ann", "tenantId": "acme", "active": True},
    "users:2": json.dumps({"id": 2, "email": "b@x.io", "name": "Bob", "tenantId": "acme"}),
    "users:5": {"id": 5, "email": "e@x.io", "name": "Eve", "tenantId": "other"},
    "users:6": {"id": 6, "email": "f@x.io", "name": "Fay"},
}


def _plan(
    query: dict,
    *,
    registry=REGISTRY,
    role: str = "admin",
    values: dict | None = None,
    tolerance: Freshness = Freshness.HOURS,
    debug: DebugLog | None = None,
    **planner_kwargs,
):
    context = ExecutionContext(role=role, context_values=values or {})
    rls = RlsInjector(registry).apply(QueryDefinition.model_validate(query), context)
    return QueryPlanner(registry, **planner_kwargs).plan(rls, context, tolerance, debug)


def _unreachable(query: dict, **kwargs) -> PlanningError:
    with pytest.raises(PlanningError) as exc_info:
        _plan(query, **kwargs)
    return exc_info.value


def _copies(plan) -> dict[str, tuple[str, str]]:
    return {name: (a.database, a.copy) for name, a in plan.assignments.items()}


def test_ladder_order():
    assert STRATEGY_LADDER == (try_cache, try_direct, try_materialized, try_trino)


# ---------------------------------------------------------------------------
# P1 / P2
# ---------------------------------------------------------------------------


def test_direct_when_all_originals_share_a_database():
    plan = _plan({"from": "orders", "joins": [{"table": "users"}]})
    assert plan.strategy == "direct"
    assert plan.target_database == "pg-main"
    assert plan.engine == "postgres"
    assert _copies(plan) == {"orders": ("pg-main", "original"), "users": ("pg-main", "original")}


def test_direct_wins_over_available_replicas():
    plan = _plan({"from": "orders"}, tolerance=Freshness.REALTIME)
    assert plan.strategy == "direct"


def test_materialized_replica_within_tolerance():
    plan = _plan({"from": "orders", "joins": [{"table": "events"}]})
    assert plan.strategy == "materialized"
    assert plan.target_database == "ch-analytics"
    assert plan.engine == "clickhouse"
    assert _copies(plan) == {
        "orders": ("ch-analytics", "materialized"),
        "events": ("ch-analytics", "original"),
    }
    assert plan.assignments["orders"].location.physical_name == "orders_replica"


def test_replica_too_stale_for_tolerance():
    err = _unreachable(
        {"from": "events", "joins": [{"table": "orders"}]}, tolerance=Freshness.REALTIME
    )
    (unreachable,) = err.unreachable
    assert unreachable.table == "orders"
    assert unreachable.reason == "freshness too strict, trino disabled"
    assert unreachable.checked == {
        "ch-analytics": "freshness too strict: replica lag 'seconds' exceeds 'realtime'",
        "pg-main": "cannot serve events",
        "trino": "trino disabled",
    }


def test_hours_replica_rejected_under_minutes():
    debug = DebugLog()
    with pytest.raises(PlanningError):
        _plan(
            {"from": "users", "joins": [{"table": "pageViews"}]},
            tolerance=Freshness.MINUTES,
            debug=debug,
        )
    rejected = next(e for e in debug if e.message == "Materialized strategy rejected")
    assert rejected.details["rejected"]["ch-analytics"]["users"] == (
        "freshness too strict: replica lag 'hours' exceeds 'minutes'"
    )
    assert debug.entries[-1].message == "No strategy applies"


# ---------------------------------------------------------------------------
# P3 / P4
# ---------------------------------------------------------------------------


def test_unreachable_without_trino():
    err = _unreachable({"from": "orders", "joins": [{"table": "invoices"}]})
    assert err.tables == ["invoices"]
    (unreachable,) = err.unreachable
    assert unreachable.reason == "no original/replica co-location, trino disabled"
    assert unreachable.checked == {
        "ch-analytics": "no original/replica present",
        "pg-billing": "cannot serve orders",
        "pg-main": "no original/replica present",
        "trino": "trino disabled",
    }
    assert err.to_error_response()["error"] == "PLANNING_ERROR"


def test_trino_federates_originals():
    plan = _plan({"from": "orders", "joins": [{"table": "invoices"}]}, registry=TRINO_REGISTRY)
    assert plan.strategy == "trino-cross-db"
    assert plan.target_database == "trino"
    assert plan.engine == "trino"
    orders, invoices = plan.assignments["orders"], plan.assignments["invoices"]
    assert (orders.catalog, orders.schema, orders.copy) == ("pg_main", "public", "original")
    assert (invoices.catalog, invoices.schema) == ("pg_billing", "public")


def test_trino_flag_override():
    plan = _plan({"from": "orders", "joins": [{"table": "invoices"}]}, trino_enabled=True)
    assert plan.strategy == "trino-cross-db"
    with pytest.raises(PlanningError):
        _plan(
            {"from": "orders", "joins": [{"table": "invoices"}]},
            registry=TRINO_REGISTRY,
            trino_enabled=False,
        )


def test_trino_used_when_replica_too_stale():
    plan = _plan(
        {"from": "orders", "joins": [{"table": "events"}]},
        registry=TRINO_REGISTRY,
        tolerance=Freshness.REALTIME,
    )
    assert plan.strategy == "trino-cross-db"
    assert plan.assignments["events"].catalog == "ch_analytics"
    assert plan.assignments["events"].schema == "default"


def test_unreachable_names_missing_trino_catalog():
    data = _custom_config("alpha", "beta", syncs=[])
    data["databases"][1]["trinoCatalog"] = None
    data["trino"] = {"enabled": True}
    registry = build_registry(DictMetadataLoader(data))
    err = _unreachable({"from": "first", "joins": [{"table": "second"}]}, registry=registry)
    assert err.unreachable[0].reason == "no original/replica co-location, no trino catalog for beta"


def test_iceberg_table_runs_on_trino():
    plan = _plan({"from": "pageViews"})
    assert plan.strategy == "direct"
    assert plan.target_database == "lake"
    assert plan.engine == "trino"
    assignment = plan.assignments["pageViews"]
    assert (assignment.catalog, assignment.schema) == ("lake", "web")


def test_planning_debug_entries():
    debug = DebugLog()
    _plan({"from": "orders", "joins": [{"table": "events"}]}, debug=debug)
    messages = [e.message for e in debug]
    assert messages[0] == "Planning started"
    assert "Direct strategy rejected" in messages
    assert messages[-1] == "Strategy selected"
    assert debug.entries[-1].details["strategy"] == "materialized"
    assert set(debug.phases()) <= {DebugPhase.PLANNING, DebugPhase.CACHE}


# ---------------------------------------------------------------------------
# P2 ranking
# ---------------------------------------------------------------------------


def _custom_config(first_db: str, second_db: str, syncs: list[tuple[str, str]]) -> dict:
    """Two related tables on three databases, replicated as ``syncs`` says."""

    def table(table_id: str, api_name: str, database: str, relations=()) -> dict:
        return {
            "id": table_id,
            "apiName": api_name,
            "database": database,
            "physicalName": api_name,
            "primaryKey": ["id"],
            "columns": [
                {"apiName": "id", "physicalName": "id", "type": "int"},
                {"apiName": "firstId", "physicalName": "first_id", "type": "int"},
            ],
            "relations": list(relations),
        }

    return {
        "databases": [
            {"id": "alpha", "engine": "postgres", "trinoCatalog": "alpha"},
            {"id": "beta", "engine": "postgres", "trinoCatalog": "beta"},
            {"id": "gamma", "engine": "clickhouse", "trinoCatalog": "gamma"},
        ],
        "tables": [
            table("t.first", "first", first_db),
            table(
                "t.second",
                "second",
                second_db,
                [{"sourceColumn": "firstId", "targetTable": "t.first", "targetColumn": "id"}],
            ),
        ],
        "syncs": [
            {
                "sourceTable": source,
                "targetDatabase": target,
                "targetPhysicalName": f"{source.split('.')[1]}_copy",
                "estimatedLag": "seconds",
            }
            for source, target in syncs
        ],
        "roles": [
            {"id": "admin", "tables": [{"table": "t.first"}, {"table": "t.second"}]},
        ],
    }


def test_materialized_tie_breaks_by_database_id():
    registry = build_registry(
        DictMetadataLoader(
            _custom_config(
                "alpha",
                "beta",
                syncs=[
                    ("t.first", "beta"),
                    ("t.second", "alpha"),
                    ("t.first", "gamma"),
                    ("t.second", "gamma"),
                ],
            )
        )
    )
    debug = DebugLog()
    plan = _plan({"from": "first", "joins": [{"table": "second"}]}, registry=registry, debug=debug)
    assert plan.strategy == "materialized"
    assert plan.target_database == "alpha"
    ranked = next(e for e in debug if e.message == "Materialized candidates ranked")
    assert ranked.details["ranking"] == [("alpha", 1), ("beta", 1), ("gamma", 0)]


def test_materialized_prefers_most_originals():
    registry = build_registry(
        DictMetadataLoader(
            _custom_config(
                "beta",
                "gamma",
                syncs=[("t.first", "alpha"), ("t.second", "alpha"), ("t.second", "beta")],
            )
        )
    )
    plan = _plan({"from": "first", "joins": [{"table": "second"}]}, registry=registry)
    assert plan.target_database == "beta"
    assert _copies(plan) == {"first": ("beta", "original"), "second": ("beta", "materialized")}
    assert plan.assignments["second"].location.physical_name == "second_copy"


# ---------------------------------------------------------------------------
# P0 - cache
# ---------------------------------------------------------------------------


def _cache_plan(by_ids: list, role: str = "admin", cache=None, **kwargs):
    return _plan(
        {"from": "users", "byIds": by_ids},
        role=role,
        values={"tenantId": "acme"},
        cache=InMemoryCacheProvider(USER_ROWS) if cache is None else cache,
        **kwargs,
    )


def test_full_cache_hit_needs_no_sql():
    plan = _cache_plan([1, 2])
    assert plan.strategy == "cache"
    assert plan.target_database == "cache"
    assert plan.engine is None
    assert not plan.needs_sql
    assert sorted(plan.cache.rows) == [1, 2]
    assert plan.cache.rows[2]["name"] == "Bob"
    assert plan.fallback_ids == []


def test_partial_cache_hit_falls_back_for_missing_ids():
    plan = _cache_plan([1, 2, 3])
    assert plan.strategy == "cache"
    assert plan.target_database == "pg-main"
    assert plan.engine == "postgres"
    assert plan.by_ids == [3]
    assert plan.fallback_ids == [3]
    assert plan.cache.served_ids == [1, 2]


def test_cache_miss_uses_direct():
    debug = DebugLog()
    plan = _cache_plan([9], debug=debug)
    assert plan.strategy == "direct"
    assert plan.by_ids == [9]
    finished = next(e for e in debug if e.message == "Cache lookup finished")
    assert finished.details["hits"] == 0


class _BrokenCache:
    def get_many(self, keys):
        raise ConnectionError("cache down")


def test_cache_error_degrades_to_direct():
    debug = DebugLog()
    plan = _cache_plan([1], cache=_BrokenCache(), debug=debug)
    assert plan.strategy == "direct"
    assert any(e.message == "Cache read failed" for e in debug)


def test_cache_disabled():
    assert _cache_plan([1, 2], cache_enabled=False).strategy == "direct"
    plan = _plan({"from": "users", "byIds": [1]})
    assert plan.strategy == "direct"


def test_cache_row_failing_row_filter_is_hidden():
    plan = _cache_plan([1, 5], role="tenant-user")
    assert plan.strategy == "cache"
    assert plan.engine is None
    assert list(plan.cache.rows) == [1]
    assert plan.cache.served_ids == [1, 5]


def test_cache_row_without_filter_column_is_refetched():
    plan = _cache_plan([1, 6], role="tenant-user")
    assert plan.fallback_ids == [6]
    assert plan.target_database == "pg-main"


@pytest.mark.parametrize(
    "query,reason",
    [
        ({"from": "users"}, "not a byIds lookup"),
        (
            {"from": "users", "byIds": [1], "filters": [{"column": "name", "value": "Ann"}]},
            "query has additional filters",
        ),
        (
            {"from": "users", "byIds": [1], "joins": [{"table": "orders"}]},
            "query touches more than one table",
        ),
        ({"from": "orders", "byIds": [1]}, "table 'orders' is not cached"),
        ({"from": "users", "byIds": [1], "mode": "count"}, "query is not a plain row lookup"),
        ({"from": "users", "byIds": [1, 2], "limit": 1}, "query pages or orders results"),
        ({"from": "users", "byIds": [1, 2], "offset": 1}, "query pages or orders results"),
        (
            {"from": "users", "byIds": [1, 2], "orderBy": [{"column": "name"}]},
            "query pages or orders results",
        ),
    ],
)
def test_cache_skipped(query, reason):
    debug = DebugLog()
    plan = _plan(query, cache=InMemoryCacheProvider(USER_ROWS), debug=debug)
    assert plan.strategy == "direct"
    skipped = next(e for e in debug if e.message == "Cache strategy skipped")
    assert skipped.details["reason"] == reason


def test_cache_needs_every_key_field():
    data = load_metadata_dict()
    data["caches"][0]["keyPattern"] = "t:{tenantId}:users:{id}"
    registry = build_registry(DictMetadataLoader(data))
    debug = DebugLog()
    plan = _plan(
        {"from": "users", "byIds": [1]},
        registry=registry,
        cache=InMemoryCacheProvider({"t:acme:users:1": USER_ROWS["users:1"]}),
        debug=debug,
    )
    assert plan.strategy == "direct"
    assert any("tenantId" in str(e.details.get("reason")) for e in debug)
    plan = _plan(
        {"from": "users", "byIds": [1]},
        registry=registry,
        values={"tenantId": "acme"},
        cache=InMemoryCacheProvider({"t:acme:users:1": USER_ROWS["users:1"]}),
    )
    assert plan.strategy == "cache"


def test_cache_columns_must_cover_selection():
    data = load_metadata_dict()
    data["caches"][0]["columns"] = ["id", "name"]
    registry = build_registry(DictMetadataLoader(data))
    cache = InMemoryCacheProvider(USER_ROWS)
    plan = _plan({"from": "users", "byIds": [1], "columns": ["email"]}, registry=registry, cache=cache)
    assert plan.strategy == "direct"
    plan = _plan({"from": "users", "byIds": [1], "columns": ["name"]}, registry=registry, cache=cache)
    assert plan.strategy == "cache"
