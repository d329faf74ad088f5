"""Interfaces of the collaborators the engine consumes.

Implementations live outside fedql (database drivers, Redis clients, ...);
only their call shapes are fixed here.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CacheProvider(Protocol):
    """Batch key/value reads used by the cache strategy."""

    def get_many(self, keys: Sequence[str]) -> Mapping[str, Any]:
        """Return the value for every key found; absent keys are omitted or ``None``."""
        ...


@runtime_checkable
class Executor(Protocol):
    """Runs generated SQL against a backend."""

    def run(
        self, sql: str, params: Sequence[Any], target_database: str
    ) -> list[dict[str, Any]]:
        """Execute ``sql`` with positional ``params`` on ``target_database``.

        Rows are returned as mappings keyed by the output column labels.
        Backend failures are raised as-is.
        """
        ...
