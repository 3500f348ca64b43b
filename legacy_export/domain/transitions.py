"""
Pure state transitions for one entity record.

Every step of the pipeline is an event; `transition(record, event)` returns the next
record without touching I/O. The orchestrator replaces the record in the
manifest with the result and persists, so the state machine can be exercised
in tests without a bridge or a disk.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import singledispatch
from typing import List, Optional, Sequence

from legacy_export.domain.models import (
    ColumnMetadata,
    Decision,
    EntityRecord,
    EntityStatus,
    Phase,
    ValidationOutcome,
)


class TransitionError(ValueError):
    """Raised when an event is not valid for the record's current status."""


@dataclass(frozen=True)
class DiscoveryStarted:
    at: datetime


@dataclass(frozen=True)
class DiscoverySucceeded:
    at: datetime
    columns: Sequence[ColumnMetadata]
    strategy: Optional[str] = None
    excluded_columns: Sequence[str] = ()
    warnings: Sequence[str] = ()


@dataclass(frozen=True)
class ExtractionStarted:
    at: datetime


@dataclass(frozen=True)
class ExtractionSucceeded:
    at: datetime
    rows_extracted: int
    rows_per_segment: Sequence[int]


@dataclass(frozen=True)
class ValidationStarted:
    at: datetime


@dataclass(frozen=True)
class ValidationSucceeded:
    at: datetime
    source_row_count: int


@dataclass(frozen=True)
class PhaseFailed:
    """A phase raised; `phase` is None for errors raised outside the phases."""

    phase: Optional[Phase]
    error: str
    rows_extracted: Optional[int] = None
    segments_created: Optional[int] = None


@dataclass(frozen=True)
class DecisionMade:
    decision: Decision


@dataclass(frozen=True)
class Requeued:
    """Offline recovery: send a skipped or failed entity back to pending."""

    strategy: Optional[str] = None


def needs_discovery(record: EntityRecord) -> bool:
    if record.status in (EntityStatus.PENDING, EntityStatus.DISCOVERING):
        return True
    if record.status is EntityStatus.FAILED and record.failed_phase in (None, Phase.DISCOVERY):
        return True
    return not record.columns and not record.is_terminal


def needs_extraction(record: EntityRecord) -> bool:
    if record.status in (EntityStatus.DISCOVERED, EntityStatus.EXTRACTING):
        return True
    return record.status is EntityStatus.FAILED and record.failed_phase is Phase.EXTRACTION


def needs_validation(record: EntityRecord) -> bool:
    if record.status in (EntityStatus.EXTRACTED, EntityStatus.VALIDATING):
        return True
    return record.status is EntityStatus.FAILED and record.failed_phase is Phase.VALIDATION


def _guard(record: EntityRecord, event: object) -> None:
    if record.is_terminal:
        raise TransitionError(
            f"{type(event).__name__} is not allowed for {record.name!r} in terminal status "
            f"{record.status.value!r}"
        )


@singledispatch
def apply(event: object, record: EntityRecord) -> EntityRecord:
    raise TypeError(f"Unsupported event type: {type(event).__name__}")


@apply.register
def _(event: DiscoveryStarted, record: EntityRecord) -> EntityRecord:
    _guard(record, event)
    return record.model_copy(update={"status": EntityStatus.DISCOVERING})


@apply.register
def _(event: DiscoverySucceeded, record: EntityRecord) -> EntityRecord:
    _guard(record, event)
    columns: List[ColumnMetadata] = list(event.columns)
    return record.model_copy(
        update={
            "status": EntityStatus.DISCOVERED,
            "discovered_at": event.at,
            "columns": columns,
            "column_count": len(columns),
            "strategy": event.strategy,
            "excluded_columns": list(event.excluded_columns) or None,
            "warnings": list(event.warnings) or None,
        }
    )


@apply.register
def _(event: ExtractionStarted, record: EntityRecord) -> EntityRecord:
    _guard(record, event)
    if not record.columns:
        raise TransitionError(f"{record.name!r} cannot be extracted before discovery")
    return record.model_copy(
        update={"status": EntityStatus.EXTRACTING, "extraction_started_at": event.at}
    )


@apply.register
def _(event: ExtractionSucceeded, record: EntityRecord) -> EntityRecord:
    _guard(record, event)
    return record.model_copy(
        update={
            "status": EntityStatus.EXTRACTED,
            "extraction_completed_at": event.at,
            "rows_extracted": event.rows_extracted,
            "segments_created": len(event.rows_per_segment),
            "rows_per_segment": list(event.rows_per_segment),
        }
    )


@apply.register
def _(event: ValidationStarted, record: EntityRecord) -> EntityRecord:
    _guard(record, event)
    return record.model_copy(
        update={"status": EntityStatus.VALIDATING, "validation_started_at": event.at}
    )


@apply.register
def _(event: ValidationSucceeded, record: EntityRecord) -> EntityRecord:
    _guard(record, event)
    extracted = record.rows_extracted or 0
    outcome = (
        ValidationOutcome.VERIFIED
        if event.source_row_count == extracted
        else ValidationOutcome.ROW_COUNT_MISMATCH
    )
    return record.model_copy(
        update={
            "status": EntityStatus.VALIDATED,
            "validation_completed_at": event.at,
            "validation_outcome": outcome,
            "source_row_count": event.source_row_count,
        }
    )


_ERROR_FIELD = {
    Phase.DISCOVERY: "discovery_error",
    Phase.EXTRACTION: "extraction_error",
    Phase.VALIDATION: "validation_error",
    None: "extraction_error",
}


@apply.register
def _(event: PhaseFailed, record: EntityRecord) -> EntityRecord:
    _guard(record, event)
    update = {
        "status": EntityStatus.FAILED,
        "failed_phase": event.phase,
        _ERROR_FIELD[event.phase]: event.error,
    }
    if event.phase is Phase.EXTRACTION and event.rows_extracted is not None:
        update["rows_extracted"] = event.rows_extracted
        update["segments_created"] = event.segments_created
    if event.phase is Phase.VALIDATION:
        update["validation_outcome"] = ValidationOutcome.VALIDATION_FAILED
    return record.model_copy(update=update)


@apply.register
def _(event: DecisionMade, record: EntityRecord) -> EntityRecord:
    _guard(record, event)
    if record.status is not EntityStatus.FAILED:
        raise TransitionError(f"{record.name!r} has no failure to decide on")
    update = {"user_decision": event.decision}
    if event.decision is Decision.RETRY:
        update["retry_count"] = record.retry_count + 1
    elif event.decision is Decision.CONTINUE:
        update["status"] = EntityStatus.SKIPPED
    return record.model_copy(update=update)


@apply.register
def _(event: Requeued, record: EntityRecord) -> EntityRecord:
    if record.status not in (EntityStatus.SKIPPED, EntityStatus.FAILED):
        raise TransitionError(
            f"Only skipped or failed entities can be requeued; {record.name!r} is "
            f"{record.status.value!r}"
        )
    return EntityRecord(
        name=record.name,
        kind=record.kind,
        retry_count=record.retry_count,
        strategy=event.strategy,
    )


def transition(record: EntityRecord, event: object) -> EntityRecord:
    """Return the record that results from applying `event` to `record`."""
    return apply(event, record)


__all__ = [
    "DecisionMade",
    "DiscoveryStarted",
    "DiscoverySucceeded",
    "ExtractionStarted",
    "ExtractionSucceeded",
    "PhaseFailed",
    "Requeued",
    "TransitionError",
    "ValidationStarted",
    "ValidationSucceeded",
    "needs_discovery",
    "needs_extraction",
    "needs_validation",
    "transition",
]
