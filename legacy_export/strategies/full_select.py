"""
Full select strategy: probe and read every column the source returns.

This is what works for the large majority of entities and is always tried
first.
"""

from __future__ import annotations

from typing import Optional, Sequence

from legacy_export.bridge.base import Bridge
from legacy_export.bridge.stream import RowStream
from legacy_export.domain.models import ColumnMetadata
from legacy_export.strategies.abstract import AbstractReadStrategy, DiscoveryResult


class FullSelectStrategy(AbstractReadStrategy):
    """
    `SELECT *` probe and read.
    """

    name: str = "full_select"
    description: str = "Select every column; one-row probe, streamed full read."

    async def discover(self, bridge: Bridge, entity: str) -> DiscoveryResult:
        columns = await bridge.probe(entity)
        if not columns:
            raise RuntimeError(f"Probe of {entity} returned no columns")
        return DiscoveryResult(strategy=self.name, columns=columns, excluded_columns=[], warnings=[])

    def read(
        self, bridge: Bridge, entity: str, columns: Optional[Sequence[ColumnMetadata]]
    ) -> RowStream:
        return bridge.stream(entity)


__all__ = ["FullSelectStrategy"]
