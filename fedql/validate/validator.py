"""Query validation orchestrator.

``QueryValidator`` is the public entry point.  It wires together the
focused sub-validators over one shared :class:`ValidationContext` and
raises a single :class:`~fedql.errors.ValidationError` listing every issue.

Sub-validator hierarchy
-----------------------
QueryValidator
  ├── SchemaValidator    (schema_validator.py)   - tables / columns / joins
  ├── FilterValidator    (filter_validator.py)   - operators vs. column types
  └── SemanticValidator  (semantic_validator.py) - aggregation, paging, byIds
"""
from __future__ import annotations

from fedql.debug import DebugLog, DebugPhase
from fedql.errors import ValidationError
from fedql.schema.query import QueryDefinition
from fedql.schema.registry import MetadataRegistry
from fedql.validate.context import ValidationContext
from fedql.validate.filter_validator import FilterValidator
from fedql.validate.schema_validator import SchemaValidator
from fedql.validate.semantic_validator import SemanticValidator


class QueryValidator:
    """Validates a :class:`QueryDefinition` against the registry.

    Args:
        registry: The metadata registry.
    """

    def __init__(self, registry: MetadataRegistry) -> None:
        self._registry = registry

    def validate(
        self,
        query: QueryDefinition,
        role: str,
        debug: DebugLog | None = None,
    ) -> None:
        """Validate ``query`` and raise with every issue found.

        Args:
            query: The caller's query.
            role: Id of the requesting role (recorded for tracing; access is
                enforced by the RLS injector).
            debug: Optional debug log to append to.

        Raises:
            ValidationError: If any issue was found.
        """
        ctx = ValidationContext(registry=self._registry, query=query)

        schema = SchemaValidator(ctx)
        schema.validate_tables()
        schema.validate_joins()
        schema.validate_columns()
        FilterValidator(ctx).validate()

        semantic = SemanticValidator(ctx)
        semantic.validate_by_ids()
        semantic.validate_aggregation()
        semantic.validate_paging()

        if ctx.issues:
            if debug is not None:
                debug.add(
                    DebugPhase.VALIDATION,
                    "Query rejected",
                    role=role,
                    issues=[i.to_dict() for i in ctx.issues],
                )
            raise ValidationError(ctx.issues)

        if debug is not None:
            debug.add(
                DebugPhase.VALIDATION,
                "Query is valid",
                role=role,
                tables=list(ctx.tables),
            )
