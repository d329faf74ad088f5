"""Structured process logging.

Modules obtain their logger with ``structlog.get_logger(__name__)``.  Call
:func:`configure_logging` once at startup; without it structlog's defaults
apply.
"""
from __future__ import annotations

import logging

import structlog

from fedql.config import FedQLSettings, get_settings


def configure_logging(settings: FedQLSettings | None = None) -> None:
    """Configure structlog processors and level from settings."""
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
            if settings.log_json
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
