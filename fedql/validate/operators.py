"""Which filter operators each logical column type accepts.

Numeric and temporal types accept ordering comparisons; text and uuid
columns accept equality and membership (only text accepts ``like``);
booleans accept equality and null checks only.
"""
from __future__ import annotations

from fedql.schema.metadata import ColumnType

EQUALITY_OPS: frozenset[str] = frozenset({"=", "!="})
ORDERING_OPS: frozenset[str] = frozenset({">", "<", ">=", "<="})
MEMBERSHIP_OPS: frozenset[str] = frozenset({"in"})
NULL_CHECK_OPS: frozenset[str] = frozenset({"is_null", "is_not_null"})
PATTERN_OPS: frozenset[str] = frozenset({"like"})

NUMERIC_TYPES: frozenset[ColumnType] = frozenset(
    {ColumnType.INT, ColumnType.FLOAT, ColumnType.DECIMAL}
)
TEMPORAL_TYPES: frozenset[ColumnType] = frozenset({ColumnType.DATE, ColumnType.TIMESTAMP})

_ORDERED = EQUALITY_OPS | ORDERING_OPS | MEMBERSHIP_OPS | NULL_CHECK_OPS

ALLOWED_OPERATORS: dict[ColumnType, frozenset[str]] = {
    ColumnType.INT: _ORDERED,
    ColumnType.FLOAT: _ORDERED,
    ColumnType.DECIMAL: _ORDERED,
    ColumnType.DATE: _ORDERED,
    ColumnType.TIMESTAMP: _ORDERED,
    ColumnType.STRING: EQUALITY_OPS | MEMBERSHIP_OPS | PATTERN_OPS | NULL_CHECK_OPS,
    ColumnType.UUID: EQUALITY_OPS | MEMBERSHIP_OPS | NULL_CHECK_OPS,
    ColumnType.BOOL: EQUALITY_OPS | NULL_CHECK_OPS,
    ColumnType.JSON: NULL_CHECK_OPS,
}


def allowed_operators(column_type: ColumnType) -> list[str]:
    """Sorted operator list for ``column_type``, for error messages."""
    return sorted(ALLOWED_OPERATORS.get(column_type, NULL_CHECK_OPS))


def operator_allowed(column_type: ColumnType, op: str) -> bool:
    return op in ALLOWED_OPERATORS.get(column_type, NULL_CHECK_OPS)
