"""Cache keys, cached-row decoding and in-memory row-filter checks.

Cached values hold a table row keyed by column apiName, either as a mapping
or as a JSON document.  Rows read from the cache bypass the database, so the
role's row filters are evaluated here against the cached values.
"""
from __future__ import annotations

import json
import string
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from fedql.policy.rls import ScopedFilter

_FORMATTER = string.Formatter()


class CacheKeyError(KeyError):
    """A key pattern references a field no value was supplied for."""


def key_fields(pattern: str) -> list[str]:
    """Field names referenced by a key pattern such as ``'t:{tenantId}:user:{id}'``."""
    return [name for _, name, _, _ in _FORMATTER.parse(pattern) if name]


def build_cache_key(pattern: str, record_id: Any, values: Mapping[str, Any]) -> str:
    """Substitute ``{id}`` and any other ``{field}`` placeholders.

    Args:
        pattern: The table's key pattern.
        record_id: Primary-key value for ``{id}``.
        values: Context values for the remaining placeholders.

    Raises:
        CacheKeyError: If a placeholder has no value.
    """
    fields: dict[str, Any] = {}
    for name in key_fields(pattern):
        if name == "id":
            fields[name] = record_id
        elif name in values:
            fields[name] = values[name]
        else:
            raise CacheKeyError(name)
    return pattern.format(**fields)


def decode_cached_row(value: Any) -> dict[str, Any] | None:
    """Turn a cached value into a row dict; ``None`` when it is absent or unusable."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return None
    if isinstance(value, Mapping):
        return dict(value)
    return None


def filter_evaluable(filters: Iterable[ScopedFilter], columns: Iterable[str]) -> bool:
    """True when every filter column is present in a cached row with ``columns``."""
    available = set(columns)
    return all(f.ref.column in available for f in filters)


def row_matches(row: Mapping[str, Any], filters: Iterable[ScopedFilter]) -> bool:
    """Evaluate RLS filters (``=``, ``!=``, ``in``, null checks) on one row."""
    for flt in filters:
        actual = row.get(flt.ref.column)
        if flt.op == "=":
            ok = actual is not None and actual == flt.value
        elif flt.op == "!=":
            ok = actual is not None and actual != flt.value
        elif flt.op == "in":
            ok = actual is not None and actual in list(flt.value)
        elif flt.op == "is_null":
            ok = actual is None
        elif flt.op == "is_not_null":
            ok = actual is not None
        else:
            return False
        if not ok:
            return False
    return True


class InMemoryCacheProvider:
    """A dict-backed :class:`~fedql.execution.interfaces.CacheProvider`.

    Useful for local development and tests; values are stored as given.
    """

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(data or {})

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def get_many(self, keys: Sequence[str]) -> dict[str, Any]:
        return {k: self._data[k] for k in keys if k in self._data}
