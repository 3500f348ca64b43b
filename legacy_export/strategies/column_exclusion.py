"""
Column exclusion strategy.

Some legacy tables carry a column the bridge driver cannot convert, which
breaks every `SELECT *`. This strategy lists the declared columns, probes each
one on its own, and reads the entity without the columns that fail. The
excluded columns are reported so the export can say what is missing.

A probe can also fail for reasons that have nothing to do with the column
(a timeout, a dropped connection), so the strategy never runs on its own: an
operator pins it with `requeue --strategy column_exclusion`.
"""

from __future__ import annotations

from typing import List

from legacy_export.bridge.base import Bridge
from legacy_export.domain.models import ColumnMetadata
from legacy_export.strategies.abstract import AbstractReadStrategy, DiscoveryResult, reindex
from legacy_export.utils.logging import get_logger

log = get_logger(__name__)


class ColumnExclusionStrategy(AbstractReadStrategy):
    """
    Probe columns one by one and leave out the unreadable ones.
    """

    name: str = "column_exclusion"
    description: str = "Per-column probe; leaves out columns that fail (explicit use only)."
    automatic: bool = False

    async def discover(self, bridge: Bridge, entity: str) -> DiscoveryResult:
        declared = await bridge.list_columns(entity)
        if not declared:
            raise RuntimeError(f"No declared columns found for {entity}")

        readable: List[ColumnMetadata] = []
        excluded: List[str] = []
        warnings: List[str] = []
        for column in declared:
            try:
                await bridge.probe(entity, [column.name])
            except Exception as exc:  # noqa: BLE001 - a failing column is what we are looking for
                log.info(
                    "Excluding unreadable column",
                    extra={"entity": entity, "column": column.name, "error": str(exc)},
                )
                excluded.append(column.name)
                warnings.append(f"Column {column.name} excluded: {exc}")
            else:
                readable.append(column)

        if not readable:
            raise RuntimeError(f"Every column of {entity} failed to probe")

        # The surviving set must also work together.
        await bridge.probe(entity, [column.name for column in readable])
        return DiscoveryResult(
            strategy=self.name,
            columns=reindex(readable),
            excluded_columns=excluded,
            warnings=warnings,
        )


__all__ = ["ColumnExclusionStrategy"]
