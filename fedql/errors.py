"""Custom exception hierarchy for fedql.

All public errors inherit from :class:`FedQLError` so callers can catch the
base class for any fedql-specific failure.  Errors raised while a query runs
through the pipeline carry the debug log accumulated up to the failure point
in :attr:`FedQLError.debug_log`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fedql.debug import DebugLog


class FedQLError(Exception):
    """Base exception for all fedql errors.

    Args:
        message: Human-readable description.
        code: Machine-readable error code (e.g. ``ACCESS_DENIED``).
        details: Extra structured context returned to the caller.
    """

    code: str = "FEDQL_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.details: dict[str, Any] = details or {}
        self.debug_log: DebugLog | None = None

    def to_error_response(self) -> dict[str, Any]:
        """Returns a structured error response for the caller."""
        return {
            "error": self.code,
            "message": str(self),
            "details": self.details,
        }


class ConfigError(FedQLError):
    """Raised when metadata fails integrity checks at load time.

    Args:
        message: Human-readable summary.
        problems: Every integrity violation found.
    """

    code = "CONFIG_ERROR"

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        self.problems = problems or []
        super().__init__(message, details={"problems": self.problems})

    def __str__(self) -> str:
        base = super().__str__()
        if not self.problems:
            return base
        return base + "\n" + "\n".join(f"  - {p}" for p in self.problems)


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found while validating a query.

    Attributes:
        code: ``UNKNOWN_TABLE``, ``UNKNOWN_COLUMN``, ``INVALID_JOIN``,
            ``INVALID_OPERATOR`` or ``INVALID_QUERY``.
        field: Where in the query the problem was found (e.g. ``filters[0]``).
        message: Human-readable description.
        expected: The constraint that was violated.
        received: The offending value.
    """

    code: str
    field: str
    message: str
    expected: Any = None
    received: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "field": self.field,
            "message": self.message,
            "expected": self.expected,
            "received": self.received,
        }


class ValidationError(FedQLError):
    """Raised when a query references unknown or invalid entities.

    Every issue found during one validation run is reported together.
    """

    code = "VALIDATION_ERROR"

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = list(issues)
        summary = "; ".join(i.message for i in self.issues)
        super().__init__(
            f"Query failed validation with {len(self.issues)} issue(s): {summary}",
            details={"issues": [i.to_dict() for i in self.issues]},
        )

    @property
    def codes(self) -> list[str]:
        return [i.code for i in self.issues]


class AccessDeniedError(FedQLError):
    """Raised when the role may not read a table or one of its columns."""

    code = "ACCESS_DENIED"

    def __init__(
        self,
        role: str,
        table: str,
        column: str | None = None,
        allowed_columns: list[str] | None = None,
    ) -> None:
        self.role = role
        self.table = table
        self.column = column
        if column is None:
            message = f"Role '{role}' has no access to table '{table}'."
        else:
            message = f"Role '{role}' may not read column '{column}' on table '{table}'."
        super().__init__(
            message,
            details={
                "role": role,
                "table": table,
                "column": column,
                "allowed_columns": allowed_columns or [],
            },
        )


class MissingContextError(FedQLError):
    """Raised when a mandatory row filter needs a context value the caller omitted."""

    code = "MISSING_CONTEXT"

    def __init__(self, table: str, column: str, context_key: str) -> None:
        self.table = table
        self.column = column
        self.context_key = context_key
        super().__init__(
            f"Context value '{context_key}' is required to filter "
            f"'{table}.{column}' but was not supplied.",
            details={"table": table, "column": column, "context_key": context_key},
        )


@dataclass(frozen=True)
class UnreachableTable:
    """Why one table could not be placed on a common engine.

    Attributes:
        table: Table apiName.
        reason: One-line summary, e.g. ``"no original/replica co-location, trino disabled"``.
        checked: Maps every database that was considered to its rejection reason.
    """

    table: str
    reason: str
    checked: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"table": self.table, "reason": self.reason, "checked": dict(self.checked)}


class PlanningError(FedQLError):
    """Raised when no strategy can serve every table of the query."""

    code = "PLANNING_ERROR"

    def __init__(self, unreachable: list[UnreachableTable]) -> None:
        self.unreachable = list(unreachable)
        names = ", ".join(u.table for u in self.unreachable)
        super().__init__(
            f"No execution strategy can reach table(s): {names}.",
            details={"unreachable": [u.to_dict() for u in self.unreachable]},
        )

    @property
    def tables(self) -> list[str]:
        return [u.table for u in self.unreachable]


class GenerationError(FedQLError):
    """Raised when a dialect cannot render a construct the plan requires.

    Args:
        message: Human-readable description.
        construct: The SQL construct being rendered (e.g. ``date_trunc``).
    """

    code = "GENERATION_ERROR"

    def __init__(self, message: str, construct: str | None = None) -> None:
        self.construct = construct
        super().__init__(message, details={"construct": construct})


class CacheFallbackError(FedQLError):
    """Raised when the database fallback of a partial cache hit fails.

    Cached rows are never returned on their own in that case; the original
    executor exception is chained as ``__cause__``.
    """

    code = "CACHE_FALLBACK_FAILED"

    def __init__(self, table: str, missing_ids: list[Any]) -> None:
        super().__init__(
            f"Database fallback for '{table}' failed; partial cache data discarded.",
            details={"table": table, "missing_ids": list(missing_ids)},
        )


class QueryCancelledError(FedQLError):
    """Raised when the caller cancelled the query before a pipeline stage."""

    code = "CANCELLED"

    def __init__(self, stage: str) -> None:
        self.stage = stage
        super().__init__(f"Query cancelled before stage '{stage}'.", details={"stage": stage})
