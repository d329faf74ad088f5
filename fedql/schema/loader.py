"""Metadata loaders.

A loader produces the :class:`MultiDbConfig` once at startup.  How the
document is stored, cached or refreshed is up to the loader; the planner only
ever sees the resulting :class:`~fedql.schema.registry.MetadataRegistry`.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from fedql.errors import ConfigError
from fedql.schema.metadata import MultiDbConfig
from fedql.schema.registry import MetadataRegistry


class MetadataLoader(Protocol):
    """Anything that can produce the metadata document."""

    def load(self) -> MultiDbConfig: ...


class DictMetadataLoader:
    """Loads metadata from an in-memory mapping (camelCase or snake_case keys)."""

    def __init__(self, data: dict[str, Any]) -> None:
        self._data = data

    def load(self) -> MultiDbConfig:
        try:
            return MultiDbConfig.model_validate(self._data)
        except PydanticValidationError as exc:
            raise ConfigError(
                "Metadata document is malformed.",
                problems=[_format_pydantic_error(e) for e in exc.errors()],
            ) from exc


class JsonMetadataLoader:
    """Loads metadata from a JSON file.

    Args:
        path: Location of the JSON document.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load(self) -> MultiDbConfig:
        try:
            data = json.loads(self._path.read_text())
        except OSError as exc:
            raise ConfigError(f"Cannot read metadata file '{self._path}': {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Metadata file '{self._path}' is not valid JSON: {exc}") from exc
        return DictMetadataLoader(data).load()


def build_registry(loader: MetadataLoader) -> MetadataRegistry:
    """Load the metadata once and index it."""
    return MetadataRegistry(loader.load())


def _format_pydantic_error(error: dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error.get('msg', 'invalid value')}"
