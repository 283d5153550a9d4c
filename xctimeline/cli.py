# File: xctimeline/cli.py
from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import attachments_dir_for, settings
from .errors import TimelineError
from .models import TestTimeline, TimelineRunState
from .pipeline import TimelinePipeline
from .sources import (
    ActivitySource,
    FallbackActivitySource,
    SQLiteActivitySource,
    XCResultToolSource,
)
from .timeline_normalizer import format_timeline_offset

app = typer.Typer(help="Rebuild test playback timelines from result bundles")
console = Console()


class Backend(str, Enum):
    auto = "auto"
    tool = "tool"
    database = "database"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_source(bundle: Path, backend: Backend) -> ActivitySource:
    if backend is Backend.tool:
        return XCResultToolSource(bundle)
    if backend is Backend.database:
        return SQLiteActivitySource.for_bundle(bundle)
    return FallbackActivitySource(XCResultToolSource(bundle), SQLiteActivitySource.for_bundle(bundle))


def _pipeline(
    bundle: Path,
    attachments: Optional[Path],
    backend: Backend,
    export: bool,
    workers: Optional[int] = None,
) -> TimelinePipeline:
    attachments_dir = attachments or attachments_dir_for(bundle)
    if export:
        XCResultToolSource(bundle).export_attachments(attachments_dir)
    return TimelinePipeline(
        bundle,
        _build_source(bundle, backend),
        attachments_dir,
        max_workers=workers,
    )


def _run_table(run: TimelineRunState) -> Table:
    table = Table(title=run.label, box=box.SIMPLE_HEAVY)
    table.add_column("Offset")
    table.add_column("Kind")
    table.add_column("Event")
    for position, event in enumerate(run.events):
        style = "bold red" if position == run.initial_failure_event_index else None
        table.add_row(
            format_timeline_offset(event.time - run.timeline_base_time),
            event.kind.value,
            event.title,
            style=style,
        )
    return table


def _print_timeline(timeline: TestTimeline) -> None:
    console.print(
        Panel(
            f"Runs: {len(timeline.runs)} | Videos: {len(timeline.videos)} | "
            f"Screenshots: {len(timeline.screenshots)}",
            title=timeline.test_identifier,
            expand=False,
        )
    )
    for run in timeline.runs:
        console.print(_run_table(run))
        console.print(
            f"Touch gestures: {len(run.touch_gestures)} | "
            f"Hierarchy snapshots: {len(run.hierarchy_snapshots)}"
        )


def _write_json(path: Path, timeline: TestTimeline) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(timeline.model_dump(mode="json", by_alias=True), indent=2),
        encoding="utf-8",
    )


@app.command("timeline")
def timeline_command(
    bundle: Path = typer.Option(..., "--bundle", help="Path to the .xcresult bundle."),
    test_id: str = typer.Option(..., "--test-id", help="Test identifier, e.g. Suite/testLogin()."),
    attachments: Optional[Path] = typer.Option(
        None, "--attachments", help="Directory holding exported attachments and manifest.json."
    ),
    output: Optional[Path] = typer.Option(None, "--output", help="Write the timeline JSON here."),
    backend: Backend = typer.Option(Backend.auto, "--backend", help="Activity backend."),
    export: bool = typer.Option(False, "--export", help="Export attachments with xcresulttool first."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    _configure_logging(verbose)
    try:
        pipeline = _pipeline(bundle, attachments, backend, export)
        timeline = pipeline.build_one(test_id)
    except TimelineError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)

    _print_timeline(timeline)
    if output is not None:
        _write_json(output, timeline)
        console.print(f"Timeline saved to: {output}")


@app.command("batch")
def batch_command(
    bundle: Path = typer.Option(..., "--bundle", help="Path to the .xcresult bundle."),
    test_ids: List[str] = typer.Option(..., "--test-id", help="Test identifier (repeatable)."),
    attachments: Optional[Path] = typer.Option(None, "--attachments"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", help="Write one JSON per test here."),
    backend: Backend = typer.Option(Backend.auto, "--backend"),
    workers: int = typer.Option(settings.max_workers, "--workers", help="Worker threads."),
    export: bool = typer.Option(False, "--export"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    _configure_logging(verbose)
    try:
        pipeline = _pipeline(bundle, attachments, backend, export, workers)
        timelines = pipeline.build(test_ids)
    except TimelineError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)

    summary = Table(title="Timelines", box=box.MINIMAL_HEAVY_HEAD)
    summary.add_column("Test")
    summary.add_column("Runs")
    summary.add_column("Events")
    summary.add_column("Status")
    for test_id in test_ids:
        timeline = timelines.get(test_id)
        if timeline is None:
            summary.add_row(test_id, "-", "-", "[red]FAILED[/red]")
            continue
        events = sum(len(run.events) for run in timeline.runs)
        summary.add_row(test_id, str(len(timeline.runs)), str(events), "OK")
        if output_dir is not None:
            safe_name = test_id.replace("/", "_").replace("()", "")
            _write_json(output_dir / f"{safe_name}.json", timeline)
    console.print(summary)

    if len(timelines) < len(set(test_ids)):
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
