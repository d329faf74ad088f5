"""Unit tests for SqlGenerator (all three dialects)."""

from __future__ import annotations

import pytest

from fedql.compile.base import SqlDialect
from fedql.compile.builder import SqlGenerator
from fedql.compile.clickhouse import ClickHouseDialect
from fedql.compile.context import ParamCollector
from fedql.compile.postgres import PostgresDialect
from fedql.compile.registry import DialectFactory
from fedql.compile.trino import TrinoDialect
from fedql.debug import DebugLog, DebugPhase
from fedql.errors import GenerationError
from fedql.resolve.names import (
    PhysicalAggregation,
    PhysicalColumn,
    PhysicalFilter,
    PhysicalGroup,
    PhysicalHaving,
    PhysicalJoin,
    PhysicalOrder,
    PhysicalPlan,
    PhysicalTable,
)
from fedql.schema.metadata import ColumnType

ORDERS = PhysicalTable(alias="orders", name="t_orders")
ORDERS_TRINO = PhysicalTable(alias="orders", name="t_orders", catalog="pg_main", schema="public")


def _col(name: str, label: str | None = None, alias: str = "orders") -> PhysicalColumn:
    return PhysicalColumn(alias, name, label or name, ColumnType.STRING)


def _plan(**kwargs) -> PhysicalPlan:
    kwargs.setdefault("strategy", "direct")
    kwargs.setdefault("target_database", "pg-main")
    kwargs.setdefault("engine", "postgres")
    kwargs.setdefault("table", ORDERS)
    kwargs.setdefault("columns", [_col("order_id", "id"), _col("total_amount", "total")])
    return PhysicalPlan(**kwargs)


def _pg(plan: PhysicalPlan):
    return SqlGenerator(PostgresDialect()).generate(plan)


def _ch(plan: PhysicalPlan):
    return SqlGenerator(ClickHouseDialect()).generate(plan)


def _tr(plan: PhysicalPlan):
    return SqlGenerator(TrinoDialect()).generate(plan)


def _paged_plan(table: PhysicalTable = ORDERS) -> PhysicalPlan:
    return _plan(
        table=table,
        filters=[
            PhysicalFilter(_col("status"), "=", "paid"),
            PhysicalFilter(_col("tenant_id"), "=", "acme", "rls"),
        ],
        order_by=[PhysicalOrder("desc", _col("created_at"))],
        limit=10,
        offset=20,
    )


# ---------------------------------------------------------------------------
# Whole statements
# ---------------------------------------------------------------------------


def test_postgres_statement():
    r = _pg(_paged_plan())
    assert r.sql == (
        'SELECT "orders"."order_id" AS "id", "orders"."total_amount" AS "total"\n'
        'FROM "t_orders" AS "orders"\n'
        'WHERE "orders"."status" = $1 AND "orders"."tenant_id" = $2\n'
        'ORDER BY "orders"."created_at" DESC\n'
        "LIMIT 10\n"
        "OFFSET 20"
    )
    assert r.params == ["paid", "acme"]
    assert r.dialect == "postgres"
    assert r.target_database == "pg-main"


def test_clickhouse_statement():
    r = _ch(_paged_plan())
    assert r.sql == (
        "SELECT `orders`.`order_id` AS `id`, `orders`.`total_amount` AS `total`\n"
        "FROM `t_orders` AS `orders`\n"
        "WHERE `orders`.`status` = ? AND `orders`.`tenant_id` = ?\n"
        "ORDER BY `orders`.`created_at` DESC\n"
        "LIMIT 10\n"
        "OFFSET 20"
    )
    assert r.params == ["paid", "acme"]
    assert r.dialect == "clickhouse"


def test_trino_statement_is_catalog_qualified_and_offset_first():
    r = _tr(_paged_plan(ORDERS_TRINO))
    assert r.sql == (
        'SELECT "orders"."order_id" AS "id", "orders"."total_amount" AS "total"\n'
        'FROM "pg_main"."public"."t_orders" AS "orders"\n'
        'WHERE "orders"."status" = ? AND "orders"."tenant_id" = ?\n'
        'ORDER BY "orders"."created_at" DESC\n'
        "OFFSET 20\n"
        "LIMIT 10"
    )


def test_trino_needs_a_catalog():
    with pytest.raises(GenerationError):
        _tr(_plan())


def test_zero_offset_is_omitted():
    r = _pg(_plan(limit=5, offset=0))
    assert r.sql.endswith("LIMIT 5")
    assert "OFFSET" not in r.sql


def test_join_clause():
    join = PhysicalJoin(
        table=PhysicalTable("users", "app_users"),
        type="left",
        left=_col("user_id", "userId"),
        right=_col("user_id", "id", alias="users"),
    )
    inner = PhysicalJoin(
        table=PhysicalTable("invoices", "invoice"),
        type="inner",
        left=_col("order_id", "id"),
        right=_col("order_id", "orderId", alias="invoices"),
    )
    r = _pg(_plan(joins=[join, inner]))
    lines = r.sql.split("\n")
    assert lines[2] == 'LEFT JOIN "app_users" AS "users" ON "orders"."user_id" = "users"."user_id"'
    assert lines[3] == (
        'INNER JOIN "invoice" AS "invoices" ON "orders"."order_id" = "invoices"."order_id"'
    )


def test_join_filters_render_in_on_before_where_params():
    partner = _col("tenant_id", alias="users")
    join = PhysicalJoin(
        table=PhysicalTable("users", "app_users"),
        type="left",
        left=_col("user_id", "userId"),
        right=_col("user_id", "id", alias="users"),
        filters=(PhysicalFilter(partner, "=", "acme", "rls"),),
    )
    r = _pg(_plan(joins=[join], filters=[PhysicalFilter(_col("tenant_id"), "=", "beta", "rls")]))
    lines = r.sql.split("\n")
    assert lines[2] == (
        'LEFT JOIN "app_users" AS "users" ON "orders"."user_id" = "users"."user_id"'
        ' AND "users"."tenant_id" = $1'
    )
    assert lines[3] == 'WHERE "orders"."tenant_id" = $2'
    assert r.params == ["acme", "beta"]


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def _where(generate, *filters: PhysicalFilter):
    r = generate(_plan(filters=list(filters)))
    return r.sql.split("\n")[-1], r.params


def test_in_uses_array_membership():
    flt = PhysicalFilter(_col("order_id"), "in", [1, 2], "by_ids")
    assert _where(_pg, flt) == ('WHERE "orders"."order_id" = ANY($1)', [[1, 2]])
    assert _where(_ch, flt) == ("WHERE has(?, `orders`.`order_id`)", [[1, 2]])
    r = _tr(_plan(table=ORDERS_TRINO, filters=[flt]))
    assert r.sql.endswith('WHERE contains(?, "orders"."order_id")')


def test_empty_in_list_matches_nothing():
    assert _where(_pg, PhysicalFilter(_col("status"), "in", [])) == ("WHERE 1 = 0", [])


def test_booleans_are_inlined():
    flt = PhysicalFilter(_col("is_active"), "=", True)
    assert _where(_pg, flt) == ('WHERE "orders"."is_active" = TRUE', [])
    assert _where(_ch, PhysicalFilter(_col("is_active"), "!=", False)) == (
        "WHERE `orders`.`is_active` <> 0",
        [],
    )


def test_comparison_operators():
    sql, params = _where(
        _pg,
        PhysicalFilter(_col("status"), "!=", "void"),
        PhysicalFilter(_col("email"), "like", "%@x.io"),
        PhysicalFilter(_col("total_amount"), ">=", 10),
        PhysicalFilter(_col("deleted_at"), "is_null", None),
        PhysicalFilter(_col("created_at"), "is_not_null", None),
    )
    assert sql == (
        'WHERE "orders"."status" <> $1 AND "orders"."email" LIKE $2'
        ' AND "orders"."total_amount" >= $3 AND "orders"."deleted_at" IS NULL'
        ' AND "orders"."created_at" IS NOT NULL'
    )
    assert params == ["void", "%@x.io", 10]


# ---------------------------------------------------------------------------
# Aggregation and count mode
# ---------------------------------------------------------------------------


def _aggregate_plan() -> PhysicalPlan:
    revenue = PhysicalAggregation("sum", _col("total_amount", "total"), "revenue")
    return _plan(
        columns=[],
        filters=[PhysicalFilter(_col("tenant_id"), "=", "acme", "rls")],
        group_by=[PhysicalGroup(_col("created_at", "createdAt"), "month")],
        aggregations=[
            revenue,
            PhysicalAggregation("count", None, "n"),
            PhysicalAggregation("count_distinct", _col("user_id", "userId"), "buyers"),
        ],
        having=[PhysicalHaving(revenue, ">", 100)],
        order_by=[PhysicalOrder("desc", alias="revenue")],
    )


def test_postgres_group_by_and_having():
    r = _pg(_aggregate_plan())
    assert r.sql == (
        "SELECT date_trunc('month', \"orders\".\"created_at\") AS \"createdAt\", "
        'SUM("orders"."total_amount") AS "revenue", COUNT(*) AS "n", '
        'COUNT(DISTINCT "orders"."user_id") AS "buyers"\n'
        'FROM "t_orders" AS "orders"\n'
        'WHERE "orders"."tenant_id" = $1\n'
        "GROUP BY date_trunc('month', \"orders\".\"created_at\")\n"
        'HAVING SUM("orders"."total_amount") > $2\n'
        'ORDER BY "revenue" DESC'
    )
    assert r.params == ["acme", 100]


def test_clickhouse_truncation_functions():
    r = _ch(_aggregate_plan())
    assert "toStartOfMonth(`orders`.`created_at`) AS `createdAt`" in r.sql
    assert "GROUP BY toStartOfMonth(`orders`.`created_at`)" in r.sql
    dialect = ClickHouseDialect()
    assert dialect.date_trunc("week", "c") == "toMonday(c)"
    assert dialect.date_trunc("quarter", "c") == "toStartOfQuarter(c)"
    with pytest.raises(GenerationError):
        dialect.date_trunc("minute", "c")


def test_order_by_truncated_group_column():
    plan = _plan(
        table=ORDERS_TRINO,
        columns=[],
        group_by=[PhysicalGroup(_col("created_at", "createdAt"), "day")],
        aggregations=[PhysicalAggregation("count", None, "n")],
        order_by=[PhysicalOrder("asc", _col("created_at", "createdAt"), "day")],
    )
    assert _tr(plan).sql.endswith(
        "ORDER BY date_trunc('day', \"orders\".\"created_at\") ASC"
    )


def test_count_mode_drops_ordering_and_paging():
    plan = _plan(
        mode="count",
        filters=[PhysicalFilter(_col("tenant_id"), "=", "acme", "rls")],
        order_by=[PhysicalOrder("asc", _col("order_id", "id"))],
        limit=10,
        offset=5,
    )
    r = _pg(plan)
    assert r.sql == (
        'SELECT COUNT(*) AS "count"\n'
        'FROM "t_orders" AS "orders"\n'
        'WHERE "orders"."tenant_id" = $1'
    )
    assert r.params == ["acme"]


def test_empty_selection_is_rejected():
    with pytest.raises(GenerationError, match="selects no columns"):
        _pg(_plan(columns=[]))


def test_generation_debug_entry():
    debug = DebugLog()
    SqlGenerator(PostgresDialect()).generate(_paged_plan(), debug)
    (entry,) = debug.entries
    assert entry.phase == DebugPhase.SQL_GENERATION
    assert entry.details == {"dialect": "postgres", "target": "pg-main", "param_count": 2}


# ---------------------------------------------------------------------------
# Dialect plumbing
# ---------------------------------------------------------------------------


def test_param_collector_numbers_placeholders():
    params = ParamCollector(PostgresDialect())
    assert [params.add("a"), params.add(2)] == ["$1", "$2"]
    assert params.params == ["a", 2]


def test_quote_identifier_escapes():
    assert PostgresDialect().quote_identifier('we"ird') == '"we""ird"'
    assert ClickHouseDialect().quote_identifier("we`ird") == "`we\\`ird`"


def test_factory_creates_builtin_dialects():
    assert isinstance(DialectFactory.create("postgres"), PostgresDialect)
    assert isinstance(DialectFactory.create("clickhouse"), ClickHouseDialect)
    assert isinstance(DialectFactory.create("trino"), TrinoDialect)
    assert {"postgres", "clickhouse", "trino"} <= set(DialectFactory.registered_dialects())


def test_factory_unknown_dialect():
    with pytest.raises(GenerationError, match="No SQL dialect for engine"):
        DialectFactory.create("oracle")


def test_factory_register_decorator(monkeypatch):
    monkeypatch.setattr(DialectFactory, "_dialects", dict(DialectFactory._dialects))

    @DialectFactory.register("duckdb")
    class DuckDbDialect(PostgresDialect):
        @property
        def dialect_name(self) -> str:
            return "duckdb"

        def placeholder(self, index: int) -> str:
            return "?"

    dialect = DialectFactory.create("duckdb")
    assert isinstance(dialect, SqlDialect)
    r = SqlGenerator(dialect).generate(_plan(filters=[PhysicalFilter(_col("status"), "=", "x")]))
    assert r.sql.endswith('WHERE "orders"."status" = ?')
    assert r.dialect == "duckdb"
