"""
Row source: the orchestrator's single view of the legacy store.

Wraps a bridge with the read-strategy registry. Discovery walks the automatic
strategies in priority order, or only the one pinned on the record, and
reports which one worked; every later read of the entity goes through that
same strategy so the header and the rows always agree.

Usage:
    source = RowSource(PostgresBridge())
    await source.connect()
    result = await source.discover(record)
    async with source.read(record) as rows:
        async for row in rows:
            ...
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence

from legacy_export.bridge.base import Bridge
from legacy_export.bridge.stream import RowStream
from legacy_export.domain.models import CatalogEntry, EntityRecord
from legacy_export.errors import DiscoveryError, describe
from legacy_export.strategies.abstract import DiscoveryResult, ReadStrategy
from legacy_export.strategies.column_exclusion import ColumnExclusionStrategy
from legacy_export.strategies.exclude_dates import ExcludeDatesStrategy
from legacy_export.strategies.full_select import FullSelectStrategy
from legacy_export.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_STRATEGY = "full_select"


def _strategy_factories() -> Dict[str, Callable[[], ReadStrategy]]:
    """Registry of read strategies, in fallback priority order."""
    return {
        "full_select": lambda: FullSelectStrategy(),
        "column_exclusion": lambda: ColumnExclusionStrategy(),
        "exclude_dates": lambda: ExcludeDatesStrategy(),
    }


def available_strategies() -> List[str]:
    """List available strategy names."""
    return sorted(_strategy_factories().keys())


def resolve_strategy(name: str) -> ReadStrategy:
    factories = _strategy_factories()
    if name not in factories:
        raise ValueError(f"Unknown strategy '{name}'. Available: {', '.join(factories)}")
    return factories[name]()


def default_chain() -> List[ReadStrategy]:
    """Strategies tried, in order, when none is pinned on the entity."""
    strategies = [factory() for factory in _strategy_factories().values()]
    return [strategy for strategy in strategies if strategy.automatic]


class RowSource:
    """
    Bridge plus strategy selection.

    Parameters
    ----------
    bridge : Bridge
        Connection to the legacy store.
    strategies : sequence[ReadStrategy] | None
        Fallback chain used when an entity has no pinned strategy. Defaults to
        every automatic strategy of the registry.
    """

    def __init__(self, bridge: Bridge, strategies: Optional[Sequence[ReadStrategy]] = None) -> None:
        self.bridge = bridge
        self.strategies: List[ReadStrategy] = (
            list(strategies) if strategies is not None else default_chain()
        )
        self._by_name = {strategy.name: strategy for strategy in self.strategies}

    async def connect(self) -> None:
        await self.bridge.open()

    async def close(self) -> None:
        await self.bridge.close()

    async def enumerate(self) -> List[CatalogEntry]:
        return await self.bridge.enumerate()

    def _strategy(self, name: str) -> ReadStrategy:
        if name not in self._by_name:
            self._by_name[name] = resolve_strategy(name)
        return self._by_name[name]

    async def discover(self, record: EntityRecord) -> DiscoveryResult:
        """
        Probe the entity with the pinned strategy, or the fallback chain.

        Raises
        ------
        DiscoveryError
            When every strategy tried failed; the message lists each failure.
        """
        candidates = [self._strategy(record.strategy)] if record.strategy else self.strategies
        failures: List[str] = []
        for strategy in candidates:
            try:
                result = await strategy.discover(self.bridge, record.name)
            except Exception as exc:  # noqa: BLE001 - next strategy gets its turn
                message = describe(exc)
                log.warning(
                    f"[DISCOVERY] {record.name} failed with {strategy.name}",
                    extra={"entity": record.name, "strategy": strategy.name, "error": message},
                )
                failures.append(f"{strategy.name}: {message}")
                continue
            if failures:
                log.info(
                    f"[DISCOVERY] {record.name} readable with {strategy.name}",
                    extra={"entity": record.name, "strategy": strategy.name},
                )
            return result
        if not failures:
            raise DiscoveryError(record.name, "No read strategy configured")
        if len(failures) == 1:
            # Keep the bridge message as-is when only one strategy ran.
            raise DiscoveryError(record.name, failures[0].split(": ", 1)[1])
        raise DiscoveryError(record.name, "; ".join(failures))

    def read(self, record: EntityRecord) -> RowStream:
        """Open a fresh full read of the entity using its discovered strategy."""
        strategy = self._strategy(record.strategy or DEFAULT_STRATEGY)
        return strategy.read(self.bridge, record.name, record.columns)

    async def count(self, entity: str) -> int:
        return await self.bridge.count(entity)


__all__ = [
    "DEFAULT_STRATEGY",
    "RowSource",
    "available_strategies",
    "default_chain",
    "resolve_strategy",
]
