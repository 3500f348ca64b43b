"""
Abstract read-strategy interfaces and result contracts for legacy-export.

A read strategy decides how one entity is probed and read through the bridge
(select everything, leave out columns the driver cannot convert, ...). Concrete
strategies implement the ReadStrategy protocol and return a DiscoveryResult so
the row source can try them in priority order without knowing what they do.
"""

from __future__ import annotations

import abc
from typing import List, Optional, Protocol, Sequence, TypedDict, runtime_checkable

from legacy_export.bridge.base import Bridge
from legacy_export.bridge.stream import RowStream
from legacy_export.domain.models import ColumnMetadata


class DiscoveryResult(TypedDict, total=False):
    """
    What a strategy learned from probing one entity.

    `columns` is the header every later read of the entity produces, in order.
    """

    strategy: str
    columns: List[ColumnMetadata]
    excluded_columns: List[str]
    warnings: List[str]


@runtime_checkable
class ReadStrategy(Protocol):
    """
    Common interface all read strategies must implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier, persisted on the entity record.
    description : str
        A human-friendly summary of the approach.
    automatic : bool
        Whether the strategy takes part in the fallback chain; strategies that
        can drop data are only used when pinned explicitly.
    """

    name: str
    description: str
    automatic: bool

    async def discover(self, bridge: Bridge, entity: str) -> DiscoveryResult:
        """
        Probe the entity and return its columns.

        Raises
        ------
        Exception
            Whatever the bridge raised; the row source records it and moves on
            to the next strategy.
        """
        ...

    def read(
        self, bridge: Bridge, entity: str, columns: Optional[Sequence[ColumnMetadata]]
    ) -> RowStream:
        """Open a fresh full read producing rows in `columns` order."""
        ...


class AbstractReadStrategy(abc.ABC):
    """
    Optional ABC helper for class-based implementations.

    Subclasses should set `name` and `description` and implement `discover`.
    The default `read` selects exactly the discovered columns.
    """

    name: str
    description: str
    automatic: bool = True

    @abc.abstractmethod
    async def discover(self, bridge: Bridge, entity: str) -> DiscoveryResult:  # pragma: no cover
        raise NotImplementedError

    def read(
        self, bridge: Bridge, entity: str, columns: Optional[Sequence[ColumnMetadata]]
    ) -> RowStream:
        names = [column.name for column in columns] if columns else None
        return bridge.stream(entity, names)


def reindex(columns: Sequence[ColumnMetadata]) -> List[ColumnMetadata]:
    """Renumber columns 0..n-1 after some were left out."""
    return [column.model_copy(update={"index": index}) for index, column in enumerate(columns)]


__all__ = [
    "AbstractReadStrategy",
    "DiscoveryResult",
    "ReadStrategy",
    "reindex",
]
