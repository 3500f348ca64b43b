"""
Offline checks against a finished (or partial) manifest.

`verify_counts` recounts every validated entity and every skipped one without
changing the manifest: validated entities whose source count moved away from
what was extracted are reported as mismatches, skipped entities that still
hold rows are reported as recoverable. `requeue` sends chosen skipped or
failed entities back to pending so the next run tries them again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from legacy_export.domain.models import EntityStatus, Manifest
from legacy_export.domain.transitions import Requeued, transition
from legacy_export.errors import describe
from legacy_export.source import RowSource, resolve_strategy
from legacy_export.store import ProgressStore
from legacy_export.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class CountMismatch:
    name: str
    source_rows: int
    extracted_rows: int

    @property
    def missing(self) -> int:
        return self.source_rows - self.extracted_rows


@dataclass
class RecoverableEntity:
    name: str
    source_rows: int
    error: Optional[str] = None


@dataclass
class VerificationReport:
    checked: int = 0
    source_rows: int = 0
    extracted_rows: int = 0
    mismatches: List[CountMismatch] = field(default_factory=list)
    recoverable: List[RecoverableEntity] = field(default_factory=list)
    inaccessible: List[str] = field(default_factory=list)

    @property
    def difference(self) -> int:
        return self.source_rows - self.extracted_rows

    @property
    def clean(self) -> bool:
        return not self.mismatches and not self.recoverable


async def _safe_count(source: RowSource, name: str) -> Optional[int]:
    try:
        return await source.count(name)
    except Exception as exc:  # noqa: BLE001 - an unreadable entity is reported, not fatal
        log.info("Entity not countable", extra={"entity": name, "error": describe(exc)})
        return None


async def verify_counts(manifest: Manifest, source: RowSource) -> VerificationReport:
    """
    Recount validated and skipped entities.

    The caller owns the source connection.
    """
    report = VerificationReport()

    for record in manifest.entities:
        if record.status is not EntityStatus.VALIDATED:
            continue
        count = await _safe_count(source, record.name)
        if count is None:
            report.inaccessible.append(record.name)
            continue
        extracted = record.rows_extracted or 0
        report.checked += 1
        report.source_rows += count
        report.extracted_rows += extracted
        if count != extracted:
            report.mismatches.append(CountMismatch(record.name, count, extracted))

    for record in manifest.entities:
        if record.status is not EntityStatus.SKIPPED:
            continue
        count = await _safe_count(source, record.name)
        if count is None:
            report.inaccessible.append(record.name)
        elif count > 0:
            report.recoverable.append(RecoverableEntity(record.name, count, record.last_error))

    log.info(
        "Verification finished",
        extra={
            "checked": report.checked,
            "mismatches": len(report.mismatches),
            "recoverable": len(report.recoverable),
            "inaccessible": len(report.inaccessible),
        },
    )
    return report


async def requeue(
    store: ProgressStore, names: Sequence[str], strategy: Optional[str] = None
) -> Manifest:
    """
    Reset the named entities to pending, optionally pinning a read strategy.

    Raises
    ------
    KeyError
        If a name is not in the manifest.
    ValueError
        If the strategy is unknown.
    legacy_export.domain.transitions.TransitionError
        If an entity is neither skipped nor failed.
    """
    if strategy is not None:
        resolve_strategy(strategy)
    manifest = await store.load()
    for name in names:
        index = manifest.index_of(name)
        manifest.entities[index] = transition(manifest.entities[index], Requeued(strategy=strategy))
        log.info("Entity requeued", extra={"entity": name, "strategy": strategy})
    await store.save(manifest)
    return manifest


__all__ = [
    "CountMismatch",
    "RecoverableEntity",
    "VerificationReport",
    "requeue",
    "verify_counts",
]
