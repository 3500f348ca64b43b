"""
Phase-local error kinds.

Each is caught at the phase that raised it, recorded on the entity and handed
to the failure-decision collaborator; none of them stops the run on its own.
"""
from __future__ import annotations

from typing import Optional

from legacy_export.domain.models import Phase


class PipelineError(Exception):
    """Base class for errors recorded against one entity."""

    phase: Optional[Phase] = None

    def __init__(self, entity: str, message: str) -> None:
        super().__init__(message)
        self.entity = entity
        self.message = message

    def __str__(self) -> str:
        return self.message


class DiscoveryError(PipelineError):
    """The structural probe failed."""

    phase = Phase.DISCOVERY


class ExtractionError(PipelineError):
    """The row stream failed partway; rows already written stay on disk."""

    phase = Phase.EXTRACTION

    def __init__(
        self, entity: str, message: str, rows_written: int = 0, segments_created: int = 0
    ) -> None:
        super().__init__(entity, message)
        self.rows_written = rows_written
        self.segments_created = segments_created


class ValidationError(PipelineError):
    """The count query itself failed (a count mismatch is not an error)."""

    phase = Phase.VALIDATION


class UnclassifiedError(PipelineError):
    """Raised outside the three phases, e.g. while persisting or writing artifacts."""


def describe(exc: BaseException) -> str:
    """Render an exception for the manifest: the message, or the type when empty."""
    text = str(exc).strip()
    return text or type(exc).__name__


__all__ = [
    "DiscoveryError",
    "ExtractionError",
    "PipelineError",
    "UnclassifiedError",
    "ValidationError",
    "describe",
]
