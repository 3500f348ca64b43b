from __future__ import annotations

from datetime import datetime, timezone

import pytest

from legacy_export.domain.models import (
    ColumnMetadata,
    Decision,
    EntityRecord,
    EntityStatus,
    Phase,
    ValidationOutcome,
)
from legacy_export.domain.transitions import (
    DecisionMade,
    DiscoveryStarted,
    DiscoverySucceeded,
    ExtractionStarted,
    ExtractionSucceeded,
    PhaseFailed,
    Requeued,
    TransitionError,
    ValidationStarted,
    ValidationSucceeded,
    needs_discovery,
    needs_extraction,
    needs_validation,
    transition,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
COLUMNS = [ColumnMetadata(name="id", index=0), ColumnMetadata(name="name", index=1)]


def _discovered(name: str = "AR_Customer") -> EntityRecord:
    record = transition(EntityRecord(name=name), DiscoveryStarted(at=NOW))
    return transition(record, DiscoverySucceeded(at=NOW, columns=COLUMNS, strategy="full_select"))


def _extracted(rows: int = 10) -> EntityRecord:
    record = transition(_discovered(), ExtractionStarted(at=NOW))
    return transition(record, ExtractionSucceeded(at=NOW, rows_extracted=rows, rows_per_segment=[rows]))


def test_happy_path_reaches_verified() -> None:
    record = transition(_extracted(10), ValidationStarted(at=NOW))
    record = transition(record, ValidationSucceeded(at=NOW, source_row_count=10))

    assert record.status is EntityStatus.VALIDATED
    assert record.validation_outcome is ValidationOutcome.VERIFIED
    assert record.column_count == 2
    assert record.segments_created == 1
    assert record.is_terminal


def test_count_difference_is_mismatch_but_validated() -> None:
    record = transition(_extracted(10), ValidationStarted(at=NOW))
    record = transition(record, ValidationSucceeded(at=NOW, source_row_count=11))

    assert record.status is EntityStatus.VALIDATED
    assert record.validation_outcome is ValidationOutcome.ROW_COUNT_MISMATCH
    assert record.source_row_count == 11


def test_transition_returns_new_record() -> None:
    original = EntityRecord(name="T")
    updated = transition(original, DiscoveryStarted(at=NOW))

    assert original.status is EntityStatus.PENDING
    assert updated.status is EntityStatus.DISCOVERING


def test_extraction_requires_columns() -> None:
    with pytest.raises(TransitionError):
        transition(EntityRecord(name="T"), ExtractionStarted(at=NOW))


def test_terminal_records_reject_phase_events() -> None:
    skipped = EntityRecord(name="T", status=EntityStatus.SKIPPED)
    with pytest.raises(TransitionError):
        transition(skipped, DiscoveryStarted(at=NOW))


@pytest.mark.parametrize(
    ("phase", "field"),
    [
        (Phase.DISCOVERY, "discovery_error"),
        (Phase.EXTRACTION, "extraction_error"),
        (Phase.VALIDATION, "validation_error"),
        (None, "extraction_error"),
    ],
)
def test_phase_failure_records_error_in_phase_field(phase: Phase | None, field: str) -> None:
    record = transition(_discovered(), PhaseFailed(phase=phase, error="boom"))

    assert record.status is EntityStatus.FAILED
    assert record.failed_phase is phase
    assert getattr(record, field) == "boom"


def test_extraction_failure_keeps_partial_counts() -> None:
    record = transition(_discovered(), ExtractionStarted(at=NOW))
    record = transition(
        record,
        PhaseFailed(phase=Phase.EXTRACTION, error="lost", rows_extracted=1_500, segments_created=2),
    )

    assert record.rows_extracted == 1_500
    assert record.segments_created == 2
    assert record.status is not EntityStatus.VALIDATED


def test_validation_failure_sets_outcome() -> None:
    record = transition(_extracted(), ValidationStarted(at=NOW))
    record = transition(record, PhaseFailed(phase=Phase.VALIDATION, error="timeout"))

    assert record.validation_outcome is ValidationOutcome.VALIDATION_FAILED


def test_retry_decision_increments_counter_and_keeps_failure() -> None:
    failed = transition(_discovered(), PhaseFailed(phase=Phase.EXTRACTION, error="x"))
    record = transition(failed, DecisionMade(Decision.RETRY))

    assert record.retry_count == 1
    assert record.user_decision is Decision.RETRY
    assert record.status is EntityStatus.FAILED
    assert needs_extraction(record)
    assert not needs_discovery(record)


def test_continue_decision_skips() -> None:
    failed = transition(_discovered(), PhaseFailed(phase=Phase.DISCOVERY, error="x"))
    record = transition(failed, DecisionMade(Decision.CONTINUE))

    assert record.status is EntityStatus.SKIPPED
    assert record.is_terminal


def test_abort_decision_only_records_answer() -> None:
    failed = transition(_discovered(), PhaseFailed(phase=Phase.VALIDATION, error="x"))
    record = transition(failed, DecisionMade(Decision.ABORT))

    assert record.status is EntityStatus.FAILED
    assert record.user_decision is Decision.ABORT


def test_decision_requires_failure() -> None:
    with pytest.raises(TransitionError):
        transition(_discovered(), DecisionMade(Decision.RETRY))


def test_admission_rules_resume_in_flight_phases() -> None:
    assert needs_discovery(EntityRecord(name="T"))
    assert needs_discovery(EntityRecord(name="T", status=EntityStatus.DISCOVERING))
    assert needs_extraction(_discovered().model_copy(update={"status": EntityStatus.EXTRACTING}))
    assert needs_validation(_extracted().model_copy(update={"status": EntityStatus.VALIDATING}))
    assert not needs_validation(_discovered())


def test_unclassified_failure_reenters_discovery() -> None:
    failed = transition(_extracted(), PhaseFailed(phase=None, error="disk full"))

    assert needs_discovery(failed)


def test_requeue_resets_record_and_pins_strategy() -> None:
    failed = transition(_discovered(), PhaseFailed(phase=Phase.EXTRACTION, error="x"))
    retried = transition(failed, DecisionMade(Decision.RETRY))
    skipped = transition(
        transition(retried, PhaseFailed(phase=Phase.EXTRACTION, error="y")),
        DecisionMade(Decision.CONTINUE),
    )

    record = transition(skipped, Requeued(strategy="column_exclusion"))

    assert record.status is EntityStatus.PENDING
    assert record.columns is None
    assert record.extraction_error is None
    assert record.user_decision is None
    assert record.retry_count == 1
    assert record.strategy == "column_exclusion"


def test_requeue_rejects_validated() -> None:
    record = transition(_extracted(), ValidationStarted(at=NOW))
    record = transition(record, ValidationSucceeded(at=NOW, source_row_count=10))

    with pytest.raises(TransitionError):
        transition(record, Requeued())


def test_unknown_event_type_rejected() -> None:
    with pytest.raises(TypeError):
        transition(EntityRecord(name="T"), object())


def test_last_error_follows_failed_phase() -> None:
    failed = transition(_discovered(), PhaseFailed(phase=Phase.DISCOVERY, error="probe timed out"))
    retried = transition(failed, DecisionMade(Decision.RETRY))
    record = transition(
        transition(retried, DiscoveryStarted(at=NOW)),
        DiscoverySucceeded(at=NOW, columns=COLUMNS, strategy="full_select"),
    )
    record = transition(
        transition(record, ExtractionStarted(at=NOW)),
        PhaseFailed(phase=Phase.EXTRACTION, error="lost"),
    )

    assert record.discovery_error == "probe timed out"
    assert record.last_error == "lost"


def test_discovery_keeps_strategy_warnings() -> None:
    record = transition(EntityRecord(name="T"), DiscoveryStarted(at=NOW))
    record = transition(
        record,
        DiscoverySucceeded(
            at=NOW,
            columns=COLUMNS,
            strategy="exclude_dates",
            excluded_columns=["Posted"],
            warnings=["Date column Posted excluded"],
        ),
    )

    assert record.warnings == ["Date column Posted excluded"]
