"""Per-query debug log.

A :class:`DebugLog` is created for every ``plan`` / ``execute`` call and
passed explicitly to each pipeline stage.  Stages append one entry per
decision point; nothing reads the log to make decisions.  The log is
returned with the result, or attached to the raised error on failure.
"""
from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DebugPhase(str, Enum):
    """Pipeline stage that produced a debug entry."""

    VALIDATION = "validation"
    ACCESS_CONTROL = "access-control"
    RLS = "rls"
    PLANNING = "planning"
    NAME_RESOLUTION = "name-resolution"
    SQL_GENERATION = "sql-generation"
    CACHE = "cache"
    EXECUTION = "execution"


class DebugEntry(BaseModel):
    """One structured debug entry.

    Attributes:
        timestamp: UTC time the entry was recorded.
        phase: Stage that recorded the entry.
        message: Short description of the decision.
        details: Optional structured context.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    phase: DebugPhase
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class DebugLog:
    """Append-only sequence of :class:`DebugEntry` for a single query."""

    def __init__(self) -> None:
        self._entries: list[DebugEntry] = []

    def add(self, phase: DebugPhase, message: str, **details: Any) -> DebugEntry:
        entry = DebugEntry(
            timestamp=datetime.now(timezone.utc),
            phase=phase,
            message=message,
            details=details,
        )
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> tuple[DebugEntry, ...]:
        return tuple(self._entries)

    def phases(self) -> list[DebugPhase]:
        """Returns the phase of every entry, in order."""
        return [e.phase for e in self._entries]

    def to_list(self) -> list[dict[str, Any]]:
        return [e.model_dump(mode="json") for e in self._entries]

    def __iter__(self) -> Iterator[DebugEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
