"""Test fixtures: the sample multi-database metadata document."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from fedql.schema.loader import DictMetadataLoader, build_registry
from fedql.schema.registry import MetadataRegistry

_FIXTURES_DIR = Path(__file__).parent
METADATA_PATH = _FIXTURES_DIR / "metadata.json"


def load_metadata_dict() -> dict[str, Any]:
    """Return a fresh copy of the raw metadata document (camelCase keys)."""
    return json.loads(METADATA_PATH.read_text())


def load_registry(**overrides: Any) -> MetadataRegistry:
    """Build a registry from metadata.json.

    Args:
        overrides: Top-level keys replacing those of the document
            (e.g. ``trino={"enabled": True}``).
    """
    data = load_metadata_dict()
    data.update(overrides)
    return build_registry(DictMetadataLoader(data))
