"""
In-memory test doubles: a bridge with per-table failure injection and call
counters, a scripted failure decider and a recording observer.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Sequence

from legacy_export.bridge.stream import RowStream
from legacy_export.domain.models import (
    CatalogEntry,
    ColumnMetadata,
    Decision,
    EntityKind,
    EntityRecord,
    Manifest,
    Phase,
)

FAKE_BATCH_SIZE = 100


class BridgeFailure(RuntimeError):
    """Error raised by the fake bridge."""


@dataclass
class FakeTable:
    name: str
    columns: list[str]
    rows: list[tuple[Any, ...]] = field(default_factory=list)
    kind: EntityKind = EntityKind.TABLE
    types: dict[str, str] = field(default_factory=dict)
    # Columns whose probe fails; a probe including any of them fails too.
    bad_columns: set[str] = field(default_factory=set)
    probe_failures: int = 0
    stream_failures: int = 0
    stream_fail_after: int = 0
    count_failures: int = 0
    count_delta: int = 0


def make_rows(count: int, width: int = 2) -> list[tuple[Any, ...]]:
    return [tuple([index] + [f"v{index}_{col}" for col in range(1, width)]) for index in range(count)]


def make_table(name: str, rows: int, width: int = 2, **kwargs: Any) -> FakeTable:
    columns = ["id"] + [f"col{index}" for index in range(1, width)]
    return FakeTable(name=name, columns=columns, rows=make_rows(rows, width), **kwargs)


class FakeBridge:
    """
    In-memory bridge. Rows are pushed from a producer task, in batches, with
    the same backpressure handshake as the Postgres pump.
    """

    def __init__(self, tables: Sequence[FakeTable], high_water: int = 10_000) -> None:
        self.tables = {table.name: table for table in tables}
        self.order = [table.name for table in tables]
        self.high_water = high_water
        self.open_calls = 0
        self.close_calls = 0
        self.enumerate_calls = 0
        self.probe_calls: dict[str, int] = {}
        self.stream_calls: dict[str, int] = {}
        self.count_calls: dict[str, int] = {}
        self.streamed_columns: list[Sequence[str] | None] = []

    def _table(self, entity: str) -> FakeTable:
        if entity not in self.tables:
            raise BridgeFailure(f"Invalid object name '{entity}'")
        return self.tables[entity]

    async def open(self) -> None:
        self.open_calls += 1

    async def close(self) -> None:
        self.close_calls += 1

    async def enumerate(self) -> list[CatalogEntry]:
        self.enumerate_calls += 1
        return [CatalogEntry(name=name, kind=self.tables[name].kind) for name in self.order]

    async def list_columns(self, entity: str) -> list[ColumnMetadata]:
        table = self._table(entity)
        return [
            ColumnMetadata(name=name, index=index, data_type=table.types.get(name, "varchar"))
            for index, name in enumerate(table.columns)
        ]

    async def probe(
        self, entity: str, columns: Sequence[str] | None = None
    ) -> list[ColumnMetadata]:
        self.probe_calls[entity] = self.probe_calls.get(entity, 0) + 1
        await asyncio.sleep(0)
        table = self._table(entity)
        if table.probe_failures > 0:
            table.probe_failures -= 1
            raise BridgeFailure(f"Probe of {entity} timed out")
        selected = list(columns) if columns else list(table.columns)
        broken = table.bad_columns.intersection(selected)
        if broken:
            raise BridgeFailure(f"Cannot convert column {sorted(broken)[0]}")
        return [
            ColumnMetadata(name=name, index=index, data_type=table.types.get(name, "varchar"))
            for index, name in enumerate(selected)
        ]

    def stream(self, entity: str, columns: Sequence[str] | None = None) -> RowStream:
        self.stream_calls[entity] = self.stream_calls.get(entity, 0) + 1
        self.streamed_columns.append(list(columns) if columns else None)
        stream = RowStream(high_water=self.high_water, label=entity)
        stream.attach(asyncio.create_task(self._feed(entity, columns, stream)))
        return stream

    async def _feed(self, entity: str, columns: Sequence[str] | None, stream: RowStream) -> None:
        await asyncio.sleep(0)
        try:
            table = self._table(entity)
        except BridgeFailure as exc:
            stream.push_error(exc)
            return
        positions = (
            [table.columns.index(name) for name in columns] if columns else None
        )
        failing = table.stream_failures > 0
        if failing:
            table.stream_failures -= 1
        for offset, row in enumerate(table.rows):
            if failing and offset == table.stream_fail_after:
                stream.push_error(BridgeFailure(f"Connection to bridge lost reading {entity}"))
                return
            stream.push_row(tuple(row[i] for i in positions) if positions else row)
            if (offset + 1) % FAKE_BATCH_SIZE == 0:
                # A real fetch suspends between batches; let the consumer catch up.
                await asyncio.sleep(0)
                await stream.wait_writable()
                if stream.finished:
                    return
        if failing:
            stream.push_error(BridgeFailure(f"Connection to bridge lost reading {entity}"))
            return
        stream.push_done()

    async def count(self, entity: str) -> int:
        self.count_calls[entity] = self.count_calls.get(entity, 0) + 1
        await asyncio.sleep(0)
        table = self._table(entity)
        if table.count_failures > 0:
            table.count_failures -= 1
            raise BridgeFailure(f"COUNT(*) on {entity} timed out")
        return len(table.rows) + table.count_delta


class ScriptedDecider:
    """Answer failures from a script, then fall back to a default."""

    def __init__(self, *answers: Decision | str, default: Decision = Decision.CONTINUE) -> None:
        self.answers = list(answers)
        self.default = default
        self.seen: list[EntityRecord] = []

    async def decide(self, record: EntityRecord) -> Decision | str:
        self.seen.append(record)
        if self.answers:
            return self.answers.pop(0)
        return self.default


class RecordingObserver:
    def __init__(self) -> None:
        self.phases: list[tuple[str, Phase]] = []
        self.snapshots: list[Manifest] = []

    def on_phase(self, record: EntityRecord, phase: Phase) -> None:
        self.phases.append((record.name, phase))

    def on_progress(self, manifest: Manifest) -> None:
        self.snapshots.append(manifest)
