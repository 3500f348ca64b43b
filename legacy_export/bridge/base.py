"""
Bridge contract.

A bridge is the only thing that knows how to address the legacy source: how
to list entities, how to phrase a probe, a full read and a count. Strategies
and the orchestrator talk to it exclusively through this protocol, so another
dialect only needs another implementation.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence, runtime_checkable

from legacy_export.bridge.stream import RowStream
from legacy_export.domain.models import CatalogEntry, ColumnMetadata


@runtime_checkable
class Bridge(Protocol):
    """
    Operations the extraction pipeline needs from the source.

    `columns`, where accepted, restricts the select list; None means every
    column the source returns.
    """

    async def open(self) -> None:
        """Establish the connection; idempotent."""
        ...

    async def close(self) -> None:
        """Release the connection; idempotent."""
        ...

    async def enumerate(self) -> List[CatalogEntry]:
        """List extractable tables and views in a stable order."""
        ...

    async def list_columns(self, entity: str) -> List[ColumnMetadata]:
        """Columns declared in the source catalog, without reading any row."""
        ...

    async def probe(
        self, entity: str, columns: Optional[Sequence[str]] = None
    ) -> List[ColumnMetadata]:
        """Fetch at most one row and describe the result columns."""
        ...

    def stream(self, entity: str, columns: Optional[Sequence[str]] = None) -> RowStream:
        """Start a fresh full read; must be called from a running event loop."""
        ...

    async def count(self, entity: str) -> int:
        """Independent full row count of the entity."""
        ...


__all__ = ["Bridge"]
