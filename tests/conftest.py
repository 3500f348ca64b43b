"""
Pytest configuration for legacy-export.

Provides fixtures for:
- Settings pointing the manifest and exports at a temporary directory
- An orchestrator factory over the in-memory bridge from `tests.fakes`
- Connection settings for the integration suite
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable

import pytest

from legacy_export.config import Settings
from legacy_export.decisions import PolicyDecider
from legacy_export.domain.models import Decision
from legacy_export.orchestrator import ExtractionOrchestrator
from legacy_export.sink import ExportWriter
from legacy_export.source import RowSource
from legacy_export.store import ProgressStore
from tests.fakes import FakeBridge


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        sleep_between_entities_ms=0,
        max_rows_per_segment=1_000,
        progress_interval_rows=100,
        exports_dir=tmp_path / "exports",
        manifest_path=tmp_path / "manifest.json",
        source_identifier="LEGACYDB",
    )


@pytest.fixture
def store(settings: Settings) -> ProgressStore:
    return ProgressStore(settings.manifest_path, settings.source_name)


@pytest.fixture
def make_orchestrator(
    settings: Settings, store: ProgressStore
) -> Callable[..., ExtractionOrchestrator]:
    """Build an orchestrator over a fake bridge; keyword overrides replace collaborators."""

    def _factory(bridge: FakeBridge, decider: Any = None, **kwargs: Any) -> ExtractionOrchestrator:
        return ExtractionOrchestrator(
            source=kwargs.pop("source", RowSource(bridge)),
            store=kwargs.pop("store", store),
            exporter=kwargs.pop(
                "exporter", ExportWriter(settings.exports_dir, settings.max_rows_per_segment)
            ),
            decider=decider or PolicyDecider(Decision.CONTINUE),
            settings=kwargs.pop("settings", settings),
            **kwargs,
        )

    return _factory


@pytest.fixture(scope="session")
def integration_settings() -> Settings:
    """
    Settings for the integration suite; override via environment variables in CI.
    """
    return Settings(
        _env_file=None,
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "legacy_bridge"),
        source_schema=os.getenv("SOURCE_SCHEMA", "legacy_test"),
        sleep_between_entities_ms=0,
        log_level="DEBUG",
    )
