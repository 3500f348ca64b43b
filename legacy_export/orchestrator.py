"""
Extraction orchestrator: drives every entity through discovery, extraction and
validation, persisting the manifest after each step.

Usage (example from CLI):
    from legacy_export.orchestrator import run_extraction
    from legacy_export.decisions import PolicyDecider

    manifest = asyncio.run(run_extraction(decider=PolicyDecider("continue")))
    print(manifest.summary)

The manifest is the only durable state. Entities are processed strictly one
at a time in enumeration order; a run that is killed and started again picks
up each entity at the phase it had reached, and never touches an entity that
is already validated or skipped.
"""

from __future__ import annotations

import asyncio
import enum
from typing import Awaitable, Callable, Optional

from legacy_export.bridge.base import Bridge
from legacy_export.bridge.postgres import PostgresBridge
from legacy_export.config import Settings, get_settings
from legacy_export.decisions import ExtractionObserver, FailureDecider, NullObserver
from legacy_export.domain.models import (
    Decision,
    EntityRecord,
    ExtractionStats,
    Manifest,
    Phase,
    ValidationOutcome,
    utcnow,
)
from legacy_export.domain.transitions import (
    DecisionMade,
    DiscoveryStarted,
    DiscoverySucceeded,
    ExtractionStarted,
    ExtractionSucceeded,
    PhaseFailed,
    ValidationStarted,
    ValidationSucceeded,
    needs_discovery,
    needs_extraction,
    needs_validation,
    transition,
)
from legacy_export.errors import (
    ExtractionError,
    PipelineError,
    UnclassifiedError,
    ValidationError,
    describe,
)
from legacy_export.sink import ChunkedSink, ExportWriter
from legacy_export.source import RowSource
from legacy_export.store import ProgressStore
from legacy_export.utils.logging import get_logger
from legacy_export.utils.profiler import profile_block

log = get_logger(__name__)


class _Outcome(enum.Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ABORTED = "aborted"


class ExtractionOrchestrator:
    """
    Resumable per-entity state machine.

    Parameters
    ----------
    source : RowSource
        Reads from the legacy store; connected at the start of `run` and
        closed when it returns.
    store : ProgressStore
        Durable manifest.
    exporter : ExportWriter
        Per-entity export directories.
    decider : FailureDecider
        Consulted after every phase failure.
    observer : ExtractionObserver | None
        Receives deep copies of records and manifests; its errors are logged
        and ignored.
    settings : Settings | None
        Pacing and progress intervals. Defaults to `get_settings()`.
    sleep : callable
        Awaitable used for the pause between entities.
    """

    def __init__(
        self,
        source: RowSource,
        store: ProgressStore,
        exporter: ExportWriter,
        decider: FailureDecider,
        observer: Optional[ExtractionObserver] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.source = source
        self.store = store
        self.exporter = exporter
        self.decider = decider
        self.observer = observer or NullObserver()
        self.settings = settings or get_settings()
        self._sleep = sleep
        self.manifest: Manifest = Manifest()

    # Entry point ---------------------------------------------------------

    async def run(self) -> Manifest:
        """
        Process every non-terminal entity and return the final manifest.

        Returns early, with the connection closed, when the decider answers
        `abort`. Failures of the connection itself or of the one-time
        enumeration propagate to the caller.
        """
        self.manifest = await self.store.load()
        if not self.manifest.source_identifier:
            self.manifest.source_identifier = self.store.source_identifier

        await self.source.connect()
        try:
            if not self.manifest.entities:
                catalog = await self.source.enumerate()
                self.manifest.entities = [
                    EntityRecord(name=entry.name, kind=entry.kind) for entry in catalog
                ]
                await self.store.save(self.manifest)
                log.info(
                    "Catalog enumerated",
                    extra={"entities": len(catalog), "source": self.manifest.source_identifier},
                )
            self._notify_progress()

            names = [entity.name for entity in self.manifest.entities]
            for position, name in enumerate(names, start=1):
                if self._record(name).is_terminal:
                    continue
                log.info(
                    f"[ENTITY {position}/{len(names)}] {name}",
                    extra={"entity": name, "position": position, "total": len(names)},
                )
                outcome = await self._process_entity(name)
                if outcome is _Outcome.ABORTED:
                    log.warning("Run aborted", extra={"entity": name})
                    return self.manifest
                if outcome is _Outcome.COMPLETED and position < len(names):
                    await self._pause()
        finally:
            await self.source.close()

        summary = self.manifest.summary
        log.info(
            "[ORCHESTRATOR COMPLETE] All entities processed",
            extra={
                "total": summary.total,
                "validated": summary.validated,
                "skipped": summary.skipped,
                "mismatched": summary.mismatched,
            },
        )
        return self.manifest

    # Per-entity loop -----------------------------------------------------

    async def _process_entity(self, name: str) -> _Outcome:
        while True:
            try:
                if needs_discovery(self._record(name)):
                    await self._discover(name)
                if needs_extraction(self._record(name)):
                    await self._extract(name)
                if needs_validation(self._record(name)):
                    await self._validate(name)
                return _Outcome.COMPLETED
            except PipelineError as exc:
                error: PipelineError = exc
            except Exception as exc:  # noqa: BLE001 - routed through the decision protocol
                log.exception(f"[UNCLASSIFIED] {name}", extra={"entity": name})
                error = UnclassifiedError(name, describe(exc))

            decision = await self._handle_failure(name, error)
            if decision is Decision.RETRY:
                continue
            if decision is Decision.ABORT:
                return _Outcome.ABORTED
            return _Outcome.SKIPPED

    async def _handle_failure(self, name: str, error: PipelineError) -> Optional[Decision]:
        record = self._record(name)
        if record.is_terminal:
            # The entity finished before the error; nothing left to decide.
            log.error(
                f"Error after {name} reached {record.status.value}",
                extra={"entity": name, "error": str(error)},
            )
            return None

        rows: Optional[int] = None
        segments: Optional[int] = None
        if isinstance(error, ExtractionError):
            rows, segments = error.rows_written, error.segments_created
        record = await self._commit(
            name,
            PhaseFailed(
                phase=error.phase, error=str(error), rows_extracted=rows, segments_created=segments
            ),
        )
        log.error(
            f"[FAILED] {name}",
            extra={
                "entity": name,
                "phase": error.phase.value if error.phase else None,
                "error": str(error),
                "retry_count": record.retry_count,
            },
        )

        decision = Decision.coerce(await self.decider.decide(record.model_copy(deep=True)))
        await self._commit(name, DecisionMade(decision))
        log.info(
            f"[DECISION] {name}: {decision.value}",
            extra={"entity": name, "decision": decision.value},
        )
        return decision

    # Phases --------------------------------------------------------------

    async def _discover(self, name: str) -> None:
        record = await self._commit(name, DiscoveryStarted(at=utcnow()))
        self._notify_phase(record, Phase.DISCOVERY)
        log.info(f"[DISCOVERY] {name}", extra={"entity": name, "phase": Phase.DISCOVERY.value})

        result = await self.source.discover(record)

        columns = result["columns"]
        record = await self._commit(
            name,
            DiscoverySucceeded(
                at=utcnow(),
                columns=columns,
                strategy=result.get("strategy"),
                excluded_columns=result.get("excluded_columns", []),
                warnings=result.get("warnings", []),
            ),
        )
        log.info(
            f"[DISCOVERY] {name} found {len(columns)} columns",
            extra={
                "entity": name,
                "columns": len(columns),
                "strategy": record.strategy,
                "excluded": record.excluded_columns or [],
            },
        )

    async def _extract(self, name: str) -> None:
        record = await self._commit(name, ExtractionStarted(at=utcnow()))
        self._notify_phase(record, Phase.EXTRACTION)
        log.info(f"[EXTRACTION] {name}", extra={"entity": name, "phase": Phase.EXTRACTION.value})

        columns = record.columns or []
        started_at = record.extraction_started_at or utcnow()
        interval = self.settings.progress_interval_rows
        sink: Optional[ChunkedSink] = None
        try:
            with profile_block(f"extract:{name}") as profile:
                sink = self.exporter.open(name, columns)
                async with self.source.read(record) as rows:
                    async for row in rows:
                        sink.write_row(row)
                        if sink.rows_written % interval == 0:
                            self._notify_rows(name, sink)
                totals = sink.finalize()
            completed_at = utcnow()

            self.exporter.write_schema(name, columns)
            self.exporter.write_stats(
                ExtractionStats(
                    table_name=name,
                    start_time=started_at,
                    end_time=completed_at,
                    duration_ms=profile.duration_ms,
                    rows_written=totals.total_rows,
                    segment_count=totals.segment_count,
                    rows_per_segment=totals.rows_per_segment,
                    warnings=list(record.warnings or []),
                    peak_rss_bytes=profile.peak_rss_bytes,
                )
            )
        except Exception as exc:  # noqa: BLE001 - everything inside the phase is an extraction failure
            rows_written = sink.rows_written if sink is not None else 0
            segments = sink.segment_count if sink is not None else 0
            if sink is not None:
                sink.close()
            raise ExtractionError(
                name, describe(exc), rows_written=rows_written, segments_created=segments
            ) from exc

        await self._commit(
            name,
            ExtractionSucceeded(
                at=completed_at,
                rows_extracted=totals.total_rows,
                rows_per_segment=totals.rows_per_segment,
            ),
        )
        log.info(
            f"[EXTRACTION] {name} wrote {totals.total_rows} rows",
            extra={
                "entity": name,
                "rows": totals.total_rows,
                "segments": totals.segment_count,
                "duration_ms": profile.duration_ms,
                "peak_rss_bytes": profile.peak_rss_bytes,
            },
        )

    async def _validate(self, name: str) -> None:
        record = await self._commit(name, ValidationStarted(at=utcnow()))
        self._notify_phase(record, Phase.VALIDATION)
        log.info(f"[VALIDATION] {name}", extra={"entity": name, "phase": Phase.VALIDATION.value})

        try:
            source_count = await self.source.count(name)
        except Exception as exc:  # noqa: BLE001 - a failing count is a validation failure
            raise ValidationError(name, describe(exc)) from exc

        record = await self._commit(
            name, ValidationSucceeded(at=utcnow(), source_row_count=source_count)
        )
        extra = {
            "entity": name,
            "source_rows": source_count,
            "rows": record.rows_extracted,
            "outcome": record.validation_outcome.value if record.validation_outcome else None,
        }
        if record.validation_outcome is ValidationOutcome.ROW_COUNT_MISMATCH:
            log.warning(f"[VALIDATION] {name} row count mismatch", extra=extra)
        else:
            log.info(f"[VALIDATION] {name} verified", extra=extra)

    # Manifest and observer plumbing --------------------------------------

    def _record(self, name: str) -> EntityRecord:
        return self.manifest.get(name)

    async def _commit(self, name: str, event: object) -> EntityRecord:
        """Apply one transition, replace the record and persist the manifest."""
        index = self.manifest.index_of(name)
        record = transition(self.manifest.entities[index], event)
        self.manifest.entities[index] = record
        await self.store.save(self.manifest)
        self._notify_progress()
        return record

    async def _pause(self) -> None:
        delay_ms = self.settings.sleep_between_entities_ms
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000.0)

    def _notify_phase(self, record: EntityRecord, phase: Phase) -> None:
        try:
            self.observer.on_phase(record.model_copy(deep=True), phase)
        except Exception:  # noqa: BLE001 - observers never affect the run
            log.warning("Observer failed on phase change", exc_info=True)

    def _notify_progress(self, manifest: Optional[Manifest] = None) -> None:
        snapshot = manifest or self.manifest.model_copy(deep=True)
        try:
            self.observer.on_progress(snapshot)
        except Exception:  # noqa: BLE001 - observers never affect the run
            log.warning("Observer failed on progress", exc_info=True)

    def _notify_rows(self, name: str, sink: ChunkedSink) -> None:
        """Report in-flight row counts; only the observer sees them, the store does not."""
        snapshot = self.manifest.model_copy(deep=True)
        index = snapshot.index_of(name)
        snapshot.entities[index] = snapshot.entities[index].model_copy(
            update={"rows_extracted": sink.rows_written, "segments_created": sink.segment_count}
        )
        self._notify_progress(snapshot)


async def run_extraction(
    decider: FailureDecider,
    observer: Optional[ExtractionObserver] = None,
    settings: Optional[Settings] = None,
    bridge: Optional[Bridge] = None,
) -> Manifest:
    """
    Build the default collaborators from settings and run the pipeline once.

    Parameters
    ----------
    decider : FailureDecider
        Answers phase failures (interactive prompt or fixed policy).
    observer : ExtractionObserver | None
        Progress display, if any.
    settings : Settings | None
        Defaults to `get_settings()`.
    bridge : Bridge | None
        Defaults to a `PostgresBridge` built from settings.
    """
    settings = settings or get_settings()
    orchestrator = ExtractionOrchestrator(
        source=RowSource(bridge or PostgresBridge(settings)),
        store=ProgressStore(settings.manifest_path, settings.source_name),
        exporter=ExportWriter(settings.exports_dir, settings.max_rows_per_segment),
        decider=decider,
        observer=observer,
        settings=settings,
    )
    return await orchestrator.run()


__all__ = [
    "ExtractionOrchestrator",
    "run_extraction",
]
