"""
Integration tests for legacy-export.

These tests seed a demo schema in a real PostgreSQL instance and verify that:
1. Every table and view is enumerated, extracted and validated
2. Segments split at the configured row limit
3. A second run over the finished manifest does no work

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from legacy_export.bridge.postgres import PostgresBridge, build_dsn
from legacy_export.config import Settings
from legacy_export.decisions import PolicyDecider
from legacy_export.domain.models import Decision, EntityKind, EntityStatus, ValidationOutcome
from legacy_export.orchestrator import run_extraction
from legacy_export.source import RowSource
from legacy_export.verify import verify_counts
from scripts.seed_source import seed_schema

SEED_CUSTOMERS = 250
SEED_INVOICES = 1_200
SEED = 123
SEGMENT_ROWS = 500

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
        reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
    ),
]


@pytest.fixture
def seeded_settings(integration_settings: Settings, tmp_path: Path) -> Settings:
    seed_schema(
        build_dsn(integration_settings),
        integration_settings.source_schema,
        SEED_CUSTOMERS,
        SEED_INVOICES,
        SEED,
    )
    return integration_settings.model_copy(
        update={
            "exports_dir": tmp_path / "exports",
            "manifest_path": tmp_path / "manifest.json",
            "max_rows_per_segment": SEGMENT_ROWS,
        }
    )


@pytest.mark.asyncio
async def test_full_run_extracts_and_validates_everything(seeded_settings: Settings) -> None:
    manifest = await run_extraction(PolicyDecider(Decision.ABORT), settings=seeded_settings)

    names = {entity.name: entity for entity in manifest.entities}
    assert {"AR_Customer", "AR_InvoiceHistory", "SY_AuditLog", "AR_ActiveCustomers"} <= set(names)
    assert names["AR_ActiveCustomers"].kind is EntityKind.VIEW
    for entity in manifest.entities:
        assert entity.status is EntityStatus.VALIDATED, entity.last_error
        assert entity.validation_outcome is ValidationOutcome.VERIFIED

    invoices = names["AR_InvoiceHistory"]
    assert invoices.rows_extracted == SEED_INVOICES
    assert invoices.rows_per_segment == [500, 500, 200]

    audit = names["SY_AuditLog"]
    assert audit.rows_extracted == 0
    assert audit.segments_created == 0

    export_dir = seeded_settings.exports_dir / "AR_InvoiceHistory"
    assert sorted(p.name for p in export_dir.glob("*.csv")) == [
        "AR_InvoiceHistory.csv",
        "AR_InvoiceHistory_Part2.csv",
        "AR_InvoiceHistory_Part3.csv",
    ]
    stats = json.loads((export_dir / "stats.json").read_text(encoding="utf-8"))
    assert stats["rowsWritten"] == SEED_INVOICES


@pytest.mark.asyncio
async def test_second_run_is_a_no_op_and_counts_verify(seeded_settings: Settings) -> None:
    await run_extraction(PolicyDecider(Decision.ABORT), settings=seeded_settings)
    first = json.loads(seeded_settings.manifest_path.read_text(encoding="utf-8"))

    manifest = await run_extraction(PolicyDecider(Decision.ABORT), settings=seeded_settings)

    assert [
        e.model_dump(by_alias=True, exclude_none=True, mode="json") for e in manifest.entities
    ] == first["entities"]

    source = RowSource(PostgresBridge(seeded_settings))
    await source.connect()
    try:
        report = await verify_counts(manifest, source)
    finally:
        await source.close()
    assert report.clean
    assert report.difference == 0
