from __future__ import annotations

import asyncio
from typing import Dict, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from legacy_export.domain.models import (
    Decision,
    EntityRecord,
    EntityStatus,
    Manifest,
    Phase,
    ValidationOutcome,
)
from legacy_export.verify import VerificationReport

_STATUS_STYLE = {
    EntityStatus.VALIDATED: "green",
    EntityStatus.SKIPPED: "yellow",
    EntityStatus.FAILED: "red",
    EntityStatus.PENDING: "dim",
}


def _status_cell(record: EntityRecord) -> str:
    style = _STATUS_STYLE.get(record.status, "cyan")
    text = record.status.value
    if record.validation_outcome is ValidationOutcome.ROW_COUNT_MISMATCH:
        text = f"{text} (mismatch)"
        style = "bold red"
    return f"[{style}]{text}[/{style}]"


def _count(value: Optional[int]) -> str:
    return f"{value:,}" if value is not None else "-"


def print_summary(manifest: Manifest, console: Optional[Console] = None) -> None:
    """
    Render the manifest summary counters as a rich table.
    """
    console = console or Console()
    summary = manifest.summary

    table = Table(
        title=f"Extraction Summary: {manifest.source_identifier or 'unknown source'}",
        box=box.ROUNDED,
        caption=f"Updated {manifest.updated_at.isoformat(timespec='seconds')}",
    )
    table.add_column("Total", justify="right", style="bold")
    table.add_column("Pending", justify="right", style="dim")
    table.add_column("Discovered", justify="right", style="cyan")
    table.add_column("Extracted", justify="right", style="cyan")
    table.add_column("Validated", justify="right", style="green")
    table.add_column("Mismatched", justify="right", style="bold red")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_row(
        str(summary.total),
        str(summary.pending),
        str(summary.discovered),
        str(summary.extracted),
        str(summary.validated),
        str(summary.mismatched),
        str(summary.failed),
        str(summary.skipped),
    )
    console.print(table)

    extracted_rows = sum(entity.rows_extracted or 0 for entity in manifest.entities)
    console.print(f"Rows extracted: [bold]{extracted_rows:,}[/bold]")


def print_entities(manifest: Manifest, console: Optional[Console] = None) -> None:
    """
    Render one row per entity: status, rows, segments and the last error.
    """
    console = console or Console()
    if not manifest.entities:
        console.print("[yellow]Manifest has no entities yet.[/yellow]")
        return

    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("Entity", style="cyan", no_wrap=True)
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Rows", justify="right", style="magenta")
    table.add_column("Source", justify="right")
    table.add_column("Segments", justify="right")
    table.add_column("Strategy")
    table.add_column("Retries", justify="right")
    table.add_column("Error", overflow="fold")

    for record in manifest.entities:
        error = record.last_error or ""
        table.add_row(
            record.name,
            record.kind.value,
            _status_cell(record),
            _count(record.rows_extracted),
            _count(record.source_row_count),
            _count(record.segments_created),
            record.strategy or "",
            str(record.retry_count) if record.retry_count else "",
            error[:120],
        )
    console.print(table)


def print_verification(report: VerificationReport, console: Optional[Console] = None) -> None:
    console = console or Console()

    console.print(
        f"Validated entities checked: [bold]{report.checked}[/bold] | "
        f"source rows {report.source_rows:,} | extracted rows {report.extracted_rows:,} | "
        f"difference {report.difference:,}"
    )

    if report.mismatches:
        table = Table(title="Row Count Mismatches", box=box.ROUNDED, title_style="bold red")
        table.add_column("Entity", style="cyan")
        table.add_column("Source", justify="right")
        table.add_column("Extracted", justify="right")
        table.add_column("Missing", justify="right", style="red")
        for mismatch in report.mismatches:
            table.add_row(
                mismatch.name,
                f"{mismatch.source_rows:,}",
                f"{mismatch.extracted_rows:,}",
                f"{mismatch.missing:,}",
            )
        console.print(table)
    else:
        console.print("[green]No row count mismatches found.[/green]")

    if report.recoverable:
        table = Table(title="Skipped Entities With Data", box=box.ROUNDED, title_style="yellow")
        table.add_column("Entity", style="cyan")
        table.add_column("Rows", justify="right")
        table.add_column("Last error", overflow="fold")
        for entity in report.recoverable:
            table.add_row(entity.name, f"{entity.source_rows:,}", (entity.error or "")[:80])
        console.print(table)
    else:
        console.print("[green]No skipped entities with recoverable data.[/green]")

    if report.inaccessible:
        console.print(f"[dim]Inaccessible during verification: {len(report.inaccessible)}[/dim]")


class ConsoleObserver:
    """
    Print phase changes and periodic row counts while a run is in progress.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()
        self._last_rows: Dict[str, int] = {}

    def on_phase(self, record: EntityRecord, phase: Phase) -> None:
        self.console.print(f"[bold cyan]{phase.value:>10}[/bold cyan] {record.name}")

    def on_progress(self, manifest: Manifest) -> None:
        for record in manifest.entities:
            if record.status is not EntityStatus.EXTRACTING or not record.rows_extracted:
                continue
            if self._last_rows.get(record.name) == record.rows_extracted:
                continue
            self._last_rows[record.name] = record.rows_extracted
            self.console.print(
                f"[dim]{'':>10} {record.name}: {record.rows_extracted:,} rows, "
                f"{record.segments_created or 0} segment(s)[/dim]"
            )


class PromptDecider:
    """
    Ask the operator what to do about a failed entity.

    The prompt blocks on stdin, so it runs in a worker thread while the event
    loop waits for the answer.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def _render(self, record: EntityRecord) -> None:
        phase = record.failed_phase.value if record.failed_phase else "outside phases"
        lines = [
            f"[bold]{record.name}[/bold] ({record.kind.value})",
            f"Phase: [red]{phase}[/red]",
            f"Error: {record.last_error or 'unknown'}",
            f"Retries so far: {record.retry_count}",
        ]
        if record.failed_phase is Phase.EXTRACTION and record.rows_extracted is not None:
            lines.append(
                f"Written before failure: {record.rows_extracted:,} rows in "
                f"{record.segments_created or 0} segment(s)"
            )
        self.console.print(Panel("\n".join(lines), title="Entity failed", border_style="red"))

    def _ask(self, record: EntityRecord) -> str:
        self._render(record)
        return Prompt.ask(
            "Continue (skip), retry or abort?",
            choices=[decision.value for decision in Decision],
            default=Decision.CONTINUE.value,
            console=self.console,
        )

    async def decide(self, record: EntityRecord) -> Decision:
        answer = await asyncio.to_thread(self._ask, record)
        return Decision.coerce(answer)


__all__ = [
    "ConsoleObserver",
    "PromptDecider",
    "print_entities",
    "print_summary",
    "print_verification",
]
