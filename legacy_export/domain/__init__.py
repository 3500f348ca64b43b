"""
Domain package for legacy-export.

Exports the progress records, manifest and the pure transitions that move an
entity through its phases. Keep this package free of I/O.
"""

from legacy_export.domain.models import (
    CatalogEntry,
    ColumnMetadata,
    Decision,
    EntityKind,
    EntityRecord,
    EntityStatus,
    ExtractionStats,
    Manifest,
    ManifestSummary,
    Phase,
    SchemaInfo,
    ValidationOutcome,
)
from legacy_export.domain.transitions import TransitionError, transition

__all__ = [
    "CatalogEntry",
    "ColumnMetadata",
    "Decision",
    "EntityKind",
    "EntityRecord",
    "EntityStatus",
    "ExtractionStats",
    "Manifest",
    "ManifestSummary",
    "Phase",
    "SchemaInfo",
    "TransitionError",
    "ValidationOutcome",
    "transition",
]
