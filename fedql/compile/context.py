"""Compilation context and parameter accumulator."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from fedql.compile.base import SqlDialect


@dataclass(frozen=True)
class CompilationContext:
    """Immutable context for a single generation run.

    Attributes:
        dialect: Engine-specific SQL fragments.
    """

    dialect: SqlDialect


@dataclass
class ParamCollector:
    """Collects positional parameters during one generation run.

    A single instance is shared by every clause builder so that placeholders
    are numbered in the order values appear in the final statement.
    """

    dialect: SqlDialect
    params: list[Any] = field(default_factory=list)

    def add(self, value: Any) -> str:
        """Store ``value`` and return its placeholder."""
        self.params.append(value)
        return self.dialect.placeholder(len(self.params))
