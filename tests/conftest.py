"""Shared pytest fixtures for fedql unit tests."""
from __future__ import annotations

import pytest

from fedql.config import FedQLSettings
from fedql.schema.registry import MetadataRegistry
from tests.fixtures import load_registry


@pytest.fixture(scope="session")
def registry() -> MetadataRegistry:
    """Canonical metadata registry shared across all tests (trino disabled)."""
    return load_registry()


@pytest.fixture(scope="session")
def trino_registry() -> MetadataRegistry:
    """Same metadata with trino federation enabled."""
    return load_registry(trino={"enabled": True})


@pytest.fixture()
def settings() -> FedQLSettings:
    """Settings isolated from the environment and any .env file."""
    return FedQLSettings(_env_file=None, trino_enabled=None, cache_enabled=True)
