"""
Utilities package for legacy-export.

Exports shared helpers for logging and profiling. Keep this package
lightweight and free of extraction logic.
"""

from legacy_export.utils.logging import configure_logging, get_logger
from legacy_export.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
