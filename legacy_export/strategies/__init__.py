"""
Strategies package for legacy-export.

This module re-exports the abstract interfaces and the concrete read strategies
so downstream code can import from `legacy_export.strategies` directly.
"""

from legacy_export.strategies.abstract import (
    AbstractReadStrategy,
    DiscoveryResult,
    ReadStrategy,
)
from legacy_export.strategies.column_exclusion import ColumnExclusionStrategy
from legacy_export.strategies.exclude_dates import ExcludeDatesStrategy
from legacy_export.strategies.full_select import FullSelectStrategy

__all__ = [
    # Abstracts
    "AbstractReadStrategy",
    "DiscoveryResult",
    "ReadStrategy",
    # Concrete strategies
    "ColumnExclusionStrategy",
    "ExcludeDatesStrategy",
    "FullSelectStrategy",
]
