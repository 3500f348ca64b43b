"""
Durable progress store.

The whole manifest is rewritten on every mutation: serialized to a temporary
file in the same directory, flushed, then renamed over the previous version,
so a crash leaves either the old or the new manifest on disk and never a
truncated one. File I/O runs in a worker thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path

from legacy_export.domain.models import Manifest, summarize, utcnow
from legacy_export.utils.logging import get_logger

log = get_logger(__name__)


class ProgressStore:
    """
    JSON manifest at `path`.

    Parameters
    ----------
    path : Path | str
        Location of the manifest document.
    source_identifier : str
        Recorded on a manifest created from scratch.
    """

    def __init__(self, path: Path | str, source_identifier: str = "") -> None:
        self.path = Path(path)
        self.source_identifier = source_identifier

    def exists(self) -> bool:
        return self.path.exists()

    def load_sync(self) -> Manifest:
        if not self.path.exists():
            return Manifest(source_identifier=self.source_identifier)
        manifest = Manifest.model_validate_json(self.path.read_text(encoding="utf-8"))
        manifest.summary = summarize(manifest.entities)
        return manifest

    def save_sync(self, manifest: Manifest) -> None:
        manifest.updated_at = utcnow()
        manifest.summary = summarize(manifest.entities)
        payload = manifest.model_dump_json(by_alias=True, exclude_none=True, indent=2)

        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def load(self) -> Manifest:
        """Read the manifest, or start an empty one when none exists yet."""
        manifest = await asyncio.to_thread(self.load_sync)
        log.debug(
            "Manifest loaded",
            extra={"path": str(self.path), "entities": len(manifest.entities)},
        )
        return manifest

    async def save(self, manifest: Manifest) -> None:
        """Persist the full manifest atomically, refreshing `updatedAt` and the summary."""
        await asyncio.to_thread(self.save_sync, manifest)


__all__ = ["ProgressStore"]
