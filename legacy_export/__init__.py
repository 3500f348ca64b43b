"""
legacy-export - resumable extraction of a legacy relational source.

Every table and view reachable through the bridge is exported into segmented
per-entity files and recounted against the source:

- Discovery: a cheap structural probe, with read strategies an operator can pin
- Extraction: streamed rows split into fixed-size segments
- Validation: an independent row count compared with what was written

Progress is kept in a JSON manifest rewritten after every step, so a run can
be interrupted at any point and started again.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from legacy_export.config import Settings, get_settings
from legacy_export.decisions import PolicyDecider
from legacy_export.domain.models import Decision, EntityRecord, EntityStatus, Manifest
from legacy_export.orchestrator import ExtractionOrchestrator, run_extraction
from legacy_export.sink import ChunkedSink, ExportWriter
from legacy_export.source import RowSource, available_strategies
from legacy_export.store import ProgressStore
from legacy_export.utils.logging import configure_logging, get_logger
from legacy_export.utils.profiler import ProfileStats, profile_block

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Orchestration
    "ExtractionOrchestrator",
    "PolicyDecider",
    "run_extraction",
    # Pipeline pieces
    "ChunkedSink",
    "ExportWriter",
    "ProgressStore",
    "RowSource",
    "available_strategies",
    # Domain
    "Decision",
    "EntityRecord",
    "EntityStatus",
    "Manifest",
    # Logging
    "configure_logging",
    "get_logger",
    # Profiling
    "ProfileStats",
    "profile_block",
]
