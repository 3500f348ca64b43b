"""
Date exclusion strategy.

The legacy driver fails mid-stream on corrupted date values, which a one-row
probe does not always catch. Pinning this strategy reads an entity without any
date-like column. It drops data, so it never runs unless an operator requeues
an entity with it.
"""

from __future__ import annotations

from legacy_export.bridge.base import Bridge
from legacy_export.domain.models import ColumnMetadata
from legacy_export.strategies.abstract import AbstractReadStrategy, DiscoveryResult, reindex

_DATE_MARKERS = ("date", "time")


def is_date_like(column: ColumnMetadata) -> bool:
    type_name = (column.data_type or "").lower()
    return any(marker in type_name for marker in _DATE_MARKERS) or "date" in column.name.lower()


class ExcludeDatesStrategy(AbstractReadStrategy):
    """
    Read every declared column except date/time ones.
    """

    name: str = "exclude_dates"
    description: str = "Leave out date/time columns (lossy; explicit use only)."
    automatic: bool = False

    async def discover(self, bridge: Bridge, entity: str) -> DiscoveryResult:
        declared = await bridge.list_columns(entity)
        kept = [column for column in declared if not is_date_like(column)]
        dropped = [column.name for column in declared if is_date_like(column)]
        if not kept:
            raise RuntimeError(f"{entity} has no columns left after excluding dates")
        await bridge.probe(entity, [column.name for column in kept])
        return DiscoveryResult(
            strategy=self.name,
            columns=reindex(kept),
            excluded_columns=dropped,
            warnings=[f"Date column {name} excluded" for name in dropped],
        )


__all__ = ["ExcludeDatesStrategy", "is_date_like"]
