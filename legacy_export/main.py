from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from legacy_export.bridge.postgres import PostgresBridge
from legacy_export.config import Settings, get_settings
from legacy_export.decisions import FailureDecider, PolicyDecider
from legacy_export.domain.models import Decision
from legacy_export.domain.transitions import TransitionError
from legacy_export.orchestrator import run_extraction
from legacy_export.reporter import (
    ConsoleObserver,
    PromptDecider,
    print_entities,
    print_summary,
    print_verification,
)
from legacy_export.source import RowSource, available_strategies, resolve_strategy
from legacy_export.store import ProgressStore
from legacy_export.utils.logging import configure_logging
from legacy_export.verify import requeue as requeue_entities
from legacy_export.verify import verify_counts

app = typer.Typer(help="Resumable extraction of a legacy database into per-entity exports.")
console = Console()


def _settings(manifest: Optional[Path] = None, exports: Optional[Path] = None) -> Settings:
    settings = get_settings()
    overrides = {}
    if manifest is not None:
        overrides["manifest_path"] = manifest
    if exports is not None:
        overrides["exports_dir"] = exports
    if overrides:
        settings = settings.model_copy(update=overrides)
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    return settings


def _store(settings: Settings) -> ProgressStore:
    return ProgressStore(settings.manifest_path, settings.source_name)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} "
        f"schema={settings.source_schema} source={settings.source_name} | "
        f"segment_rows={settings.max_rows_per_segment} batch={settings.fetch_batch_size} "
        f"sleep_ms={settings.sleep_between_entities_ms} | "
        f"manifest={settings.manifest_path} exports={settings.exports_dir}"
    )


@app.command()
def run(
    on_failure: str = typer.Option(
        "prompt",
        "--on-failure",
        "-f",
        help="What to do when an entity fails: prompt, continue, retry or abort.",
    ),
    max_retries: Optional[int] = typer.Option(
        None,
        "--max-retries",
        min=0,
        help="With --on-failure retry, skip an entity after this many retries.",
    ),
    manifest: Optional[Path] = typer.Option(None, "--manifest", help="Manifest path override."),
    exports: Optional[Path] = typer.Option(None, "--exports", help="Exports directory override."),
) -> None:
    """
    Extract every entity not yet validated or skipped, resuming from the manifest.
    """
    settings = _settings(manifest, exports)

    decider: FailureDecider
    if on_failure == "prompt":
        decider = PromptDecider(console)
    elif on_failure in {decision.value for decision in Decision}:
        decider = PolicyDecider(on_failure, max_retries=max_retries)
    else:
        raise typer.BadParameter(
            "expected prompt, continue, retry or abort", param_hint="--on-failure"
        )

    typer.echo(
        f"Extracting schema '{settings.source_schema}' into {settings.exports_dir} "
        f"(manifest {settings.manifest_path}, on failure: {on_failure})."
    )
    result = asyncio.run(
        run_extraction(decider=decider, observer=ConsoleObserver(console), settings=settings)
    )
    print_summary(result, console)


@app.command()
def status(
    manifest: Optional[Path] = typer.Option(None, "--manifest", help="Manifest path override."),
) -> None:
    """
    Show the manifest summary and the state of every entity.
    """
    settings = _settings(manifest)
    store = _store(settings)
    if not store.exists():
        typer.echo(f"No manifest at {store.path}; nothing has run yet.")
        raise typer.Exit(code=1)
    loaded = asyncio.run(store.load())
    print_summary(loaded, console)
    print_entities(loaded, console)


async def _verify(settings: Settings, store: ProgressStore) -> None:
    loaded = await store.load()
    source = RowSource(PostgresBridge(settings))
    await source.connect()
    try:
        report = await verify_counts(loaded, source)
    finally:
        await source.close()
    print_verification(report, console)


@app.command()
def verify(
    manifest: Optional[Path] = typer.Option(None, "--manifest", help="Manifest path override."),
) -> None:
    """
    Recount validated and skipped entities against the source (read-only).
    """
    settings = _settings(manifest)
    store = _store(settings)
    if not store.exists():
        typer.echo(f"No manifest at {store.path}; nothing to verify.")
        raise typer.Exit(code=1)
    asyncio.run(_verify(settings, store))


@app.command()
def requeue(
    names: List[str] = typer.Argument(..., help="Skipped or failed entities to try again."),
    strategy: Optional[str] = typer.Option(
        None, "--strategy", "-s", help="Read strategy to pin (see `strategies`)."
    ),
    manifest: Optional[Path] = typer.Option(None, "--manifest", help="Manifest path override."),
) -> None:
    """
    Send skipped or failed entities back to pending for the next run.
    """
    settings = _settings(manifest)
    store = _store(settings)
    try:
        asyncio.run(requeue_entities(store, names, strategy))
    except KeyError as exc:
        typer.echo(f"Unknown entity: {exc.args[0]}", err=True)
        raise typer.Exit(code=1)
    except (TransitionError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Requeued {len(names)} entit{'y' if len(names) == 1 else 'ies'}.")


@app.command()
def strategies() -> None:
    """
    List registered read strategies.
    """
    for name in available_strategies():
        strategy = resolve_strategy(name)
        mode = "auto" if strategy.automatic else "pinned only"
        typer.echo(f"{name:<18} [{mode}] {strategy.description}")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
