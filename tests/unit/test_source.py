from __future__ import annotations

import pytest

from legacy_export.domain.models import ColumnMetadata, EntityRecord
from legacy_export.errors import DiscoveryError
from legacy_export.source import RowSource, available_strategies, default_chain, resolve_strategy
from legacy_export.strategies.exclude_dates import is_date_like
from tests.fakes import FakeBridge, FakeTable, make_table


def test_registry_lists_all_strategies() -> None:
    names = available_strategies()

    assert names == sorted(names)
    assert {"full_select", "column_exclusion", "exclude_dates"} <= set(names)


def test_default_chain_only_holds_lossless_strategies() -> None:
    assert [strategy.name for strategy in default_chain()] == ["full_select"]


def test_unknown_strategy_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown strategy"):
        resolve_strategy("telepathy")


@pytest.mark.asyncio
async def test_full_select_discovers_every_column() -> None:
    source = RowSource(FakeBridge([make_table("AR_Customer", rows=3, width=3)]))

    result = await source.discover(EntityRecord(name="AR_Customer"))

    assert result["strategy"] == "full_select"
    assert [column.name for column in result["columns"]] == ["id", "col1", "col2"]
    assert result["excluded_columns"] == []


@pytest.mark.asyncio
async def test_pinned_column_exclusion_reads_the_surviving_columns() -> None:
    table = make_table("SY_Context", rows=5, width=4, bad_columns={"col2"})
    bridge = FakeBridge([table])
    source = RowSource(bridge)

    with pytest.raises(DiscoveryError, match="Cannot convert column col2"):
        await source.discover(EntityRecord(name="SY_Context"))

    record = EntityRecord(name="SY_Context", strategy="column_exclusion")
    result = await source.discover(record)

    assert result["strategy"] == "column_exclusion"
    assert [column.name for column in result["columns"]] == ["id", "col1", "col3"]
    assert [column.index for column in result["columns"]] == [0, 1, 2]
    assert result["excluded_columns"] == ["col2"]
    assert result["warnings"] == ["Column col2 excluded: Cannot convert column col2"]

    pinned = record.model_copy(update={"columns": result["columns"]})
    async with source.read(pinned) as rows:
        collected = [row async for row in rows]

    assert bridge.streamed_columns[-1] == ["id", "col1", "col3"]
    assert collected[0] == (0, "v0_1", "v0_3")
    assert len(collected) == 5


@pytest.mark.asyncio
async def test_all_strategies_failing_raises_discovery_error() -> None:
    table = make_table("Broken", rows=1, probe_failures=10)
    chain = [resolve_strategy("full_select"), resolve_strategy("column_exclusion")]
    source = RowSource(FakeBridge([table]), strategies=chain)

    with pytest.raises(DiscoveryError) as excinfo:
        await source.discover(EntityRecord(name="Broken"))

    assert "full_select" in str(excinfo.value)
    assert "column_exclusion" in str(excinfo.value)
    assert excinfo.value.entity == "Broken"


@pytest.mark.asyncio
async def test_pinned_strategy_is_the_only_one_tried() -> None:
    table = FakeTable(
        name="AP_Invoice",
        columns=["InvoiceNo", "InvoiceDate", "Amount"],
        rows=[(1, "bad", 3)],
        types={"InvoiceDate": "date"},
        bad_columns={"InvoiceDate"},
    )
    bridge = FakeBridge([table])
    source = RowSource(bridge)

    result = await source.discover(EntityRecord(name="AP_Invoice", strategy="exclude_dates"))

    assert result["strategy"] == "exclude_dates"
    assert result["excluded_columns"] == ["InvoiceDate"]
    assert bridge.probe_calls["AP_Invoice"] == 1


@pytest.mark.asyncio
async def test_single_strategy_failure_keeps_bridge_message() -> None:
    table = make_table("T", rows=1, probe_failures=1)
    source = RowSource(FakeBridge([table]), strategies=[resolve_strategy("full_select")])

    with pytest.raises(DiscoveryError, match="^Probe of T timed out$"):
        await source.discover(EntityRecord(name="T"))


def test_date_detection_uses_type_and_name() -> None:
    assert is_date_like(ColumnMetadata(name="Posted", index=0, data_type="timestamp with time zone"))
    assert is_date_like(ColumnMetadata(name="DateUpdated", index=0, data_type="varchar"))
    assert not is_date_like(ColumnMetadata(name="Amount", index=0, data_type="numeric"))
