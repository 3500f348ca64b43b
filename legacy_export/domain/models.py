"""
Domain models for legacy-export.

Defines the per-entity progress record, the run manifest that aggregates them,
and the JSON documents written next to every export. Field names are snake_case
in Python and camelCase on disk; manifests written by the earlier exporter
(`tables`, `sourceDatabase`, `sheetsCreated`, ...) load through validation
aliases.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticUndefined

MANIFEST_VERSION = "1.0.0"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _renamed(
    default: Any = PydanticUndefined, *, current: str, legacy: Sequence[str], **kwargs: Any
) -> Any:
    """A field written as `current` that also loads from its earlier names."""
    return Field(
        default,
        validation_alias=AliasChoices(current, *legacy),
        serialization_alias=current,
        **kwargs,
    )


class EntityKind(str, Enum):
    TABLE = "TABLE"
    VIEW = "VIEW"


class EntityStatus(str, Enum):
    PENDING = "pending"
    DISCOVERING = "discovering"
    DISCOVERED = "discovered"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    VALIDATING = "validating"
    VALIDATED = "validated"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_STATUSES = frozenset({EntityStatus.VALIDATED, EntityStatus.SKIPPED})


class Phase(str, Enum):
    DISCOVERY = "discovery"
    EXTRACTION = "extraction"
    VALIDATION = "validation"


class ValidationOutcome(str, Enum):
    VERIFIED = "VERIFIED"
    ROW_COUNT_MISMATCH = "ROW_COUNT_MISMATCH"
    COLUMN_MISMATCH = "COLUMN_MISMATCH"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_VALIDATED = "NOT_VALIDATED"


class Decision(str, Enum):
    """Answer of the failure-decision collaborator."""

    CONTINUE = "continue"
    RETRY = "retry"
    ABORT = "abort"

    @classmethod
    def coerce(cls, value: object) -> "Decision":
        """Map any answer onto a decision; unknown answers mean continue."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.CONTINUE


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ColumnMetadata(_CamelModel):
    """
    One column as reported by the structural probe.
    """

    name: str
    index: int = Field(..., ge=0, description="Ordinal position in the probe result.")
    data_type: Optional[str] = Field(None, alias="type")
    nullable: Optional[bool] = None

    model_config = ConfigDict(frozen=True)


class CatalogEntry(_CamelModel):
    """An extractable entity as listed by the catalog enumeration."""

    name: str
    kind: EntityKind = EntityKind.TABLE


class EntityRecord(_CamelModel):
    """
    Progress of one table or view through discovery, extraction and validation.

    Optional fields are absent until the phase that sets them has been reached.
    """

    name: str
    kind: EntityKind = _renamed(EntityKind.TABLE, current="kind", legacy=["type"])
    status: EntityStatus = EntityStatus.PENDING

    # Discovery
    discovered_at: Optional[datetime] = None
    columns: Optional[List[ColumnMetadata]] = None
    column_count: Optional[int] = None
    strategy: Optional[str] = None
    excluded_columns: Optional[List[str]] = None
    warnings: Optional[List[str]] = None
    discovery_error: Optional[str] = None

    # Extraction
    extraction_started_at: Optional[datetime] = None
    extraction_completed_at: Optional[datetime] = None
    rows_extracted: Optional[int] = None
    segments_created: Optional[int] = _renamed(
        None, current="segmentsCreated", legacy=["sheetsCreated"]
    )
    rows_per_segment: Optional[List[int]] = _renamed(
        None, current="rowsPerSegment", legacy=["rowsPerSheet"]
    )
    extraction_error: Optional[str] = None

    # Validation
    validation_started_at: Optional[datetime] = None
    validation_completed_at: Optional[datetime] = None
    validation_outcome: Optional[ValidationOutcome] = _renamed(
        None, current="validationOutcome", legacy=["validationResult"]
    )
    source_row_count: Optional[int] = None
    validation_error: Optional[str] = None

    # Failure handling
    failed_phase: Optional[Phase] = _renamed(None, current="failedPhase", legacy=["failurePhase"])
    retry_count: int = 0
    user_decision: Optional[Decision] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def last_error(self) -> Optional[str]:
        """Error of the phase that failed most recently."""
        if self.failed_phase is Phase.DISCOVERY:
            current = self.discovery_error
        elif self.failed_phase is Phase.VALIDATION:
            current = self.validation_error
        else:
            current = self.extraction_error
        return current or self.discovery_error or self.extraction_error or self.validation_error


class ManifestSummary(_CamelModel):
    total: int = 0
    pending: int = 0
    discovered: int = 0
    extracted: int = 0
    validated: int = 0
    failed: int = 0
    skipped: int = 0
    mismatched: int = 0


_DISCOVERED_OR_LATER = {
    EntityStatus.DISCOVERED,
    EntityStatus.EXTRACTING,
    EntityStatus.EXTRACTED,
    EntityStatus.VALIDATING,
    EntityStatus.VALIDATED,
}
_EXTRACTED_OR_LATER = {EntityStatus.EXTRACTED, EntityStatus.VALIDATING, EntityStatus.VALIDATED}


def summarize(entities: List[EntityRecord]) -> ManifestSummary:
    """Derive the manifest summary from the entity records."""
    statuses = [entity.status for entity in entities]
    return ManifestSummary(
        total=len(entities),
        pending=statuses.count(EntityStatus.PENDING),
        discovered=sum(1 for s in statuses if s in _DISCOVERED_OR_LATER),
        extracted=sum(1 for s in statuses if s in _EXTRACTED_OR_LATER),
        validated=statuses.count(EntityStatus.VALIDATED),
        failed=statuses.count(EntityStatus.FAILED),
        skipped=statuses.count(EntityStatus.SKIPPED),
        mismatched=sum(
            1
            for e in entities
            if e.status is EntityStatus.VALIDATED
            and e.validation_outcome is ValidationOutcome.ROW_COUNT_MISMATCH
        ),
    )


class Manifest(_CamelModel):
    """
    Durable aggregate of every entity's progress for one source.
    """

    version: str = MANIFEST_VERSION
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    source_identifier: str = _renamed("", current="sourceIdentifier", legacy=["sourceDatabase"])
    entities: List[EntityRecord] = _renamed(
        current="entities", legacy=["tables"], default_factory=list
    )
    summary: ManifestSummary = Field(default_factory=ManifestSummary)

    def index_of(self, name: str) -> int:
        for index, entity in enumerate(self.entities):
            if entity.name == name:
                return index
        raise KeyError(name)

    def get(self, name: str) -> EntityRecord:
        return self.entities[self.index_of(name)]


class SchemaInfo(_CamelModel):
    """Contents of `schema.json` in an entity's export directory."""

    table_name: str
    columns: List[ColumnMetadata]
    column_count: int
    extracted_at: datetime


class ExtractionStats(_CamelModel):
    """Contents of `stats.json` in an entity's export directory."""

    table_name: str
    start_time: datetime
    end_time: datetime
    duration_ms: int
    rows_written: int
    segment_count: int
    rows_per_segment: List[int]
    warnings: List[str] = Field(default_factory=list)
    peak_rss_bytes: Optional[int] = None


__all__ = [
    "MANIFEST_VERSION",
    "TERMINAL_STATUSES",
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
    "ValidationOutcome",
    "summarize",
    "utcnow",
]
