"""Tests for settings and process logging."""
from __future__ import annotations

import pytest
import structlog
from structlog.testing import capture_logs

from fedql.config import FedQLSettings
from fedql.engine import QueryEngine
from fedql.logconfig import configure_logging
from fedql.schema.metadata import Freshness
from tests.fixtures import load_registry


def test_settings_defaults():
    settings = FedQLSettings(_env_file=None)
    assert settings.trino_enabled is None
    assert settings.default_freshness == Freshness.HOURS
    assert settings.cache_enabled is True
    assert settings.log_level == "INFO"


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("FEDQL_TRINO_ENABLED", "true")
    monkeypatch.setenv("FEDQL_DEFAULT_FRESHNESS", "seconds")
    monkeypatch.setenv("FEDQL_CACHE_ENABLED", "0")
    settings = FedQLSettings(_env_file=None)
    assert settings.trino_enabled is True
    assert settings.default_freshness == Freshness.SECONDS
    assert settings.cache_enabled is False


def test_settings_from_env_file(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("FEDQL_LOG_LEVEL=debug\nFEDQL_LOG_JSON=true\n")
    settings = FedQLSettings(_env_file=env_file)
    assert settings.log_level == "debug"
    assert settings.log_json is True


@pytest.fixture()
def restore_structlog():
    yield
    structlog.reset_defaults()


@pytest.mark.parametrize("log_json,renderer", [(True, "JSONRenderer"), (False, "ConsoleRenderer")])
def test_configure_logging_renderer(restore_structlog, log_json, renderer):
    configure_logging(FedQLSettings(_env_file=None, log_json=log_json, log_level="warning"))
    processors = structlog.get_config()["processors"]
    assert type(processors[-1]).__name__ == renderer
    assert structlog.contextvars.merge_contextvars in processors


def test_registry_and_engine_emit_process_logs(settings):
    with capture_logs() as logs:
        registry = load_registry()
        QueryEngine(registry, settings=settings).plan({"from": "orders"}, {"role": "admin"})
    events = [entry["event"] for entry in logs]
    assert "metadata_registry_built" in events
    resolved = next(entry for entry in logs if entry["event"] == "query_resolved")
    assert resolved["strategy"] == "direct"
    assert resolved["dialect"] == "postgres"
