"""
Collaborators the orchestrator consults but does not own.

`FailureDecider` answers what to do about a failed entity; `ExtractionObserver`
receives phase changes and progress snapshots. Interactive implementations
live in `legacy_export.reporter`; the policy ones here serve unattended runs
and tests.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from legacy_export.domain.models import Decision, EntityRecord, Manifest, Phase
from legacy_export.utils.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class FailureDecider(Protocol):
    async def decide(self, record: EntityRecord) -> Decision:
        """Receive a snapshot of the failed record; answer continue, retry or abort."""
        ...


@runtime_checkable
class ExtractionObserver(Protocol):
    def on_phase(self, record: EntityRecord, phase: Phase) -> None:
        ...

    def on_progress(self, manifest: Manifest) -> None:
        ...


class PolicyDecider:
    """
    Answer every failure the same way.

    With `max_retries` set, a `retry` policy turns into `continue` once the
    entity has been retried that many times; without it retries are unbounded.
    """

    def __init__(self, decision: Decision | str = Decision.CONTINUE, max_retries: Optional[int] = None) -> None:
        self.decision = Decision.coerce(decision)
        if max_retries is not None and max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries

    async def decide(self, record: EntityRecord) -> Decision:
        if (
            self.decision is Decision.RETRY
            and self.max_retries is not None
            and record.retry_count >= self.max_retries
        ):
            log.warning(
                f"Retry limit reached for {record.name}; skipping",
                extra={"entity": record.name, "retries": record.retry_count},
            )
            return Decision.CONTINUE
        return self.decision


class NullObserver:
    def on_phase(self, record: EntityRecord, phase: Phase) -> None:
        return None

    def on_progress(self, manifest: Manifest) -> None:
        return None


__all__ = [
    "ExtractionObserver",
    "FailureDecider",
    "NullObserver",
    "PolicyDecider",
]
