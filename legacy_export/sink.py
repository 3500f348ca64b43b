"""
Chunked export sink.

Rows are written one at a time into numbered segments of at most
`max_rows_per_segment` rows, each starting with the same header. Segments are
plain CSV files in the entity's export directory; `schema.json` and
`stats.json` are written next to them.

Layout:
    <exports_dir>/<entity>/<entity[:31]>.csv
    <exports_dir>/<entity>/<entity[:25]>_Part2.csv
    <exports_dir>/<entity>/schema.json
    <exports_dir>/<entity>/stats.json
"""

from __future__ import annotations

import csv
import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import Path
from typing import IO, Any, List, Optional, Protocol, Sequence

from legacy_export.domain.models import ColumnMetadata, ExtractionStats, SchemaInfo, utcnow
from legacy_export.utils.logging import get_logger

log = get_logger(__name__)

_UNSAFE = re.compile(r'[\\/:*?"<>|\[\]]')


def segment_name(entity: str, number: int) -> str:
    """Name of the `number`-th segment (1-based) of an entity."""
    if number <= 1:
        return entity[:31]
    return f"{entity[:25]}_Part{number}"


def _file_stem(name: str) -> str:
    return _UNSAFE.sub("_", name)


def format_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return value


class SegmentWriter(Protocol):
    """Encoding of segments; one segment is open at a time."""

    def open_segment(self, name: str, header: Sequence[str]) -> None:
        ...

    def write_row(self, row: Sequence[Any]) -> None:
        ...

    def close_segment(self) -> None:
        ...


class CsvSegmentWriter:
    """
    Write each segment as `<segment name>.csv` in one directory.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self._handle: Optional[IO[str]] = None
        self._writer: Any = None
        self.paths: List[Path] = []

    def clear(self) -> None:
        """Remove segment files left behind by an earlier attempt."""
        if not self.directory.exists():
            return
        for stale in self.directory.glob("*.csv"):
            stale.unlink()

    def open_segment(self, name: str, header: Sequence[str]) -> None:
        if self._handle is not None:
            raise RuntimeError("A segment is already open")
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{_file_stem(name)}.csv"
        self._handle = path.open("w", encoding="utf-8", newline="")
        self._writer = csv.writer(self._handle)
        self._writer.writerow(list(header))
        self.paths.append(path)

    def write_row(self, row: Sequence[Any]) -> None:
        if self._writer is None:
            raise RuntimeError("No segment is open")
        self._writer.writerow([format_cell(value) for value in row])

    def close_segment(self) -> None:
        if self._handle is None:
            return
        handle, self._handle, self._writer = self._handle, None, None
        handle.close()


@dataclass
class SinkStats:
    total_rows: int = 0
    rows_per_segment: List[int] = field(default_factory=list)

    @property
    def segment_count(self) -> int:
        return len(self.rows_per_segment)


class ChunkedSink:
    """
    Split one entity's rows across segments.

    Parameters
    ----------
    entity : str
        Entity name; segment names derive from it.
    header : sequence[str]
        Column names written at the top of every segment.
    writer : SegmentWriter
        Encoding of the segments.
    max_rows_per_segment : int
        Data rows per segment, header excluded.
    """

    def __init__(
        self,
        entity: str,
        header: Sequence[str],
        writer: SegmentWriter,
        max_rows_per_segment: int,
    ) -> None:
        if max_rows_per_segment <= 0:
            raise ValueError("max_rows_per_segment must be positive")
        self.entity = entity
        self.header = list(header)
        self.writer = writer
        self.max_rows_per_segment = max_rows_per_segment
        self._counts: List[int] = []
        self._total = 0
        self._open = False

    @property
    def rows_written(self) -> int:
        return self._total

    @property
    def segment_count(self) -> int:
        return len(self._counts)

    def write_row(self, row: Sequence[Any]) -> None:
        if not self._open:
            self._counts.append(0)
            self.writer.open_segment(segment_name(self.entity, len(self._counts)), self.header)
            self._open = True
        self.writer.write_row(row)
        self._counts[-1] += 1
        self._total += 1
        if self._counts[-1] >= self.max_rows_per_segment:
            self.writer.close_segment()
            self._open = False

    def close(self) -> None:
        """Close the open segment, keeping whatever was written."""
        if self._open:
            self.writer.close_segment()
            self._open = False

    def finalize(self) -> SinkStats:
        self.close()
        return SinkStats(total_rows=self.rows_written, rows_per_segment=list(self._counts))


class ExportWriter:
    """
    Per-entity export directories under one root.
    """

    def __init__(self, exports_dir: Path, max_rows_per_segment: int) -> None:
        self.exports_dir = Path(exports_dir)
        self.max_rows_per_segment = max_rows_per_segment

    def entity_dir(self, entity: str) -> Path:
        return self.exports_dir / _file_stem(entity)

    def open(self, entity: str, columns: Sequence[ColumnMetadata]) -> ChunkedSink:
        """Start a fresh set of segments for `entity`, dropping stale ones."""
        writer = CsvSegmentWriter(self.entity_dir(entity))
        writer.clear()
        return ChunkedSink(
            entity,
            [column.name for column in columns],
            writer,
            self.max_rows_per_segment,
        )

    def _write_json(self, entity: str, filename: str, payload: str) -> Path:
        directory = self.entity_dir(entity)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / filename
        path.write_text(payload, encoding="utf-8")
        return path

    def write_schema(self, entity: str, columns: Sequence[ColumnMetadata]) -> Path:
        info = SchemaInfo(
            table_name=entity,
            columns=list(columns),
            column_count=len(columns),
            extracted_at=utcnow(),
        )
        return self._write_json(
            entity, "schema.json", info.model_dump_json(by_alias=True, exclude_none=True, indent=2)
        )

    def write_stats(self, stats: ExtractionStats) -> Path:
        path = self._write_json(
            stats.table_name,
            "stats.json",
            stats.model_dump_json(by_alias=True, exclude_none=True, indent=2),
        )
        log.debug("Stats written", extra={"entity": stats.table_name, "path": str(path)})
        return path


__all__ = [
    "ChunkedSink",
    "CsvSegmentWriter",
    "ExportWriter",
    "SegmentWriter",
    "SinkStats",
    "format_cell",
    "segment_name",
]
