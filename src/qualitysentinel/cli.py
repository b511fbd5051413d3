from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import click
import typer
from rich.console import Console

from qualitysentinel import __version__
from qualitysentinel.analyzers.plugins import PluginLoadError
from qualitysentinel.config import ConfigError
from qualitysentinel.engine.types import PRIORITY_RANK, FileInfo
from qualitysentinel.logging_utils import configure_logging
from qualitysentinel.orchestrator import (
    AnalysisCallbacks,
    AnalysisConfigurationError,
    AnalysisOrchestrator,
    AnalysisRun,
)
from qualitysentinel.reporters.json_reporter import parse_json_report, render_json
from qualitysentinel.reporters.markdown import generate_report
from qualitysentinel.reporters.terminal import render_terminal

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="QualitySentinel: static analysis for Kotlin/Android projects.",
)
console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)

_FORMATS = ("terminal", "markdown", "json")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def _main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose logs (printed to stderr)."),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Reduce non-essential output."),
    ] = False,
    progress: Annotated[
        bool,
        typer.Option("--progress/--no-progress", help="Show a progress bar for long runs.", show_default=True),
    ] = True,
) -> None:
    """QualitySentinel CLI."""

    if verbose and quiet:
        raise typer.BadParameter("Choose at most one: --verbose or --quiet.")
    configure_logging(verbose=verbose, quiet=quiet)
    ctx.obj = {"verbose": verbose, "quiet": quiet, "progress": progress}


def _cli_settings() -> dict[str, bool]:
    ctx = click.get_current_context(silent=True)
    if ctx is None or not isinstance(ctx.obj, dict):
        return {"verbose": False, "quiet": False, "progress": True}
    return {
        "verbose": bool(ctx.obj.get("verbose", False)),
        "quiet": bool(ctx.obj.get("quiet", False)),
        "progress": bool(ctx.obj.get("progress", True)),
    }


def _normalize_format(fmt: str) -> str:
    normalized = fmt.strip().lower()
    if normalized not in _FORMATS:
        raise typer.BadParameter(f"Unsupported format. Use: {', '.join(_FORMATS)}.")
    return normalized


def _normalize_priority(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized not in PRIORITY_RANK:
        raise typer.BadParameter("Unsupported priority. Use: low, medium, high, critical.")
    return normalized


@contextmanager
def _configuration_errors() -> Iterator[None]:
    try:
        yield
    except (ConfigError, AnalysisConfigurationError, PluginLoadError) as exc:
        err_console.print(f"Configuration error: {exc}", markup=False, highlight=False)
        raise typer.Exit(code=2) from exc


def _make_orchestrator(root: Path, *, callbacks: AnalysisCallbacks | None = None) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(root, callbacks=callbacks)


def _run_with_optional_progress(
    root: Path,
    action: Callable[[AnalysisOrchestrator], AnalysisRun],
    *,
    show_progress: bool,
) -> AnalysisRun:
    if not show_progress:
        return action(_make_orchestrator(root))

    from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn

    progress = Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=Console(stderr=True),
        transient=True,
    )
    task = progress.add_task("Analyze", total=1)

    def _on_selected(total: int) -> None:
        progress.update(task, total=max(total, 1), completed=0)

    def _on_done(_file: FileInfo) -> None:
        progress.advance(task, 1)

    callbacks = AnalysisCallbacks(on_files_selected=_on_selected, on_file_done=_on_done)
    with progress:
        return action(_make_orchestrator(root, callbacks=callbacks))


def _emit(run: AnalysisRun, fmt: str, *, show_details: bool) -> None:
    if fmt == "json":
        typer.echo(render_json(run))
    elif fmt == "markdown":
        report = run.report if run.report is not None else generate_report(run.result, files_analyzed=run.files_analyzed)
        typer.echo(report, nl=False)
    else:
        render_terminal(run, console=console, show_details=show_details)


def _fail_if_needed(run: AnalysisRun, fail_on: str | None) -> None:
    if fail_on is None:
        return
    limit = PRIORITY_RANK[fail_on]
    if any(PRIORITY_RANK[f.priority] >= limit for f in run.result.findings):
        raise typer.Exit(code=1)


def _resolve_cli_paths(paths: list[Path]) -> list[Path]:
    return [p if p.is_absolute() else (Path.cwd() / p) for p in paths]


_RootArgument = Annotated[
    Path,
    typer.Argument(
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
        help="Project root (default: current directory).",
    ),
]
_RootOption = Annotated[
    Path,
    typer.Option(
        "--root",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
        help="Project root (default: current directory).",
    ),
]
_FormatOption = Annotated[
    str,
    typer.Option("--format", help="Output format: terminal, markdown, json.", show_default=True),
]
_FailOnOption = Annotated[
    str | None,
    typer.Option("--fail-on", help="Exit 1 when a finding at or above this priority exists."),
]


@app.command()
def analyze(
    root: _RootArgument = Path("."),
    output_format: _FormatOption = "terminal",
    fail_on: _FailOnOption = None,
) -> None:
    """
    Analyze the whole project, compare with the baseline and update it.
    """

    fmt = _normalize_format(output_format)
    threshold = _normalize_priority(fail_on)
    settings = _cli_settings()
    with _configuration_errors():
        run = _run_with_optional_progress(
            root,
            lambda orchestrator: orchestrator.analyze_all(),
            show_progress=settings["progress"] and not settings["quiet"] and fmt == "terminal",
        )
    _emit(run, fmt, show_details=not settings["quiet"])
    _fail_if_needed(run, threshold)


@app.command()
def incremental(
    paths: Annotated[list[Path], typer.Argument(help="Files or directories to analyze.")],
    root: _RootOption = Path("."),
    output_format: _FormatOption = "terminal",
    fail_on: _FailOnOption = None,
) -> None:
    """
    Analyze only the given files or directories. The baseline is not touched.
    """

    fmt = _normalize_format(output_format)
    threshold = _normalize_priority(fail_on)
    settings = _cli_settings()
    targets = _resolve_cli_paths(paths)
    with _configuration_errors():
        run = _make_orchestrator(root).analyze_incremental(targets)
    _emit(run, fmt, show_details=not settings["quiet"])
    _fail_if_needed(run, threshold)


@app.command("filter")
def filter_(
    paths: Annotated[
        list[Path] | None,
        typer.Argument(help="Files or directories to analyze (default: the whole project)."),
    ] = None,
    analyzer: Annotated[
        list[str] | None,
        typer.Option("--analyzer", "-a", help="Analyzer id to run (repeatable)."),
    ] = None,
    root: _RootOption = Path("."),
    output_format: _FormatOption = "terminal",
    fail_on: _FailOnOption = None,
) -> None:
    """
    Run only the selected analyzers. Unknown ids are ignored. The baseline is not touched.
    """

    fmt = _normalize_format(output_format)
    threshold = _normalize_priority(fail_on)
    settings = _cli_settings()
    targets = _resolve_cli_paths(paths) if paths else None
    with _configuration_errors():
        run = _make_orchestrator(root).analyze_with_filters(targets, analyzer_ids=analyzer or ())
    _emit(run, fmt, show_details=not settings["quiet"])
    _fail_if_needed(run, threshold)


@app.command()
def analyzers(
    root: _RootArgument = Path("."),
    output_format: Annotated[
        str,
        typer.Option("--format", help="Output format: terminal, json.", show_default=True),
    ] = "terminal",
) -> None:
    """
    List available analyzers (built-in + plugin analyzers) and whether they are enabled.
    """

    from rich.table import Table

    from qualitysentinel.analyzers.registry import resolve_analyzers
    from qualitysentinel.config import compute_enabled_analyzer_ids, load_config

    with _configuration_errors():
        config = load_config(root)
        available = resolve_analyzers(config)
    enabled_ids = compute_enabled_analyzer_ids(config, available_ids=(a.analyzer_id for a in available))

    rows = [
        {
            "id": a.analyzer_id,
            "name": a.name,
            "category": a.category,
            "enabled": a.analyzer_id in enabled_ids,
            "description": a.description,
        }
        for a in available
    ]

    normalized = output_format.strip().lower()
    if normalized == "json":
        typer.echo(json.dumps(rows, indent=2, sort_keys=True))
        return
    if normalized != "terminal":
        raise typer.BadParameter("Unsupported format. Use: terminal, json.")

    table = Table(title="QualitySentinel Analyzers")
    table.add_column("ID", style="bold")
    table.add_column("Enabled", justify="center")
    table.add_column("Category")
    table.add_column("Description")
    for row in rows:
        table.add_row(str(row["id"]), "yes" if row["enabled"] else "no", str(row["category"]), str(row["description"]))
    console.print(table)


@app.command()
def baseline(
    root: _RootArgument = Path("."),
    clear: Annotated[
        bool,
        typer.Option("--clear", help="Delete the stored baseline."),
    ] = False,
) -> None:
    """
    Show the stored baseline, or delete it with --clear.

    The baseline is written by every `analyze` run.
    """

    from qualitysentinel.baseline import BaselineError

    with _configuration_errors():
        manager = _make_orchestrator(root).baseline_manager

    if clear:
        removed = manager.clear_baseline()
        console.print("Baseline cleared." if removed else "No baseline to clear.")
        return

    try:
        snapshot = manager.load_baseline()
    except BaselineError as exc:
        err_console.print(f"Invalid baseline: {exc}", markup=False, highlight=False)
        raise typer.Exit(code=2) from exc
    if snapshot is None:
        console.print("No baseline recorded yet. Run `qualitysentinel analyze` first.")
        return
    m = snapshot.metrics
    counts = ", ".join(f"{p}={m.by_priority.get(p, 0)}" for p in ("critical", "high", "medium", "low"))
    console.print(f"Baseline from {snapshot.timestamp}: {m.total_findings} findings ({counts})", markup=False)


@app.command()
def trend(
    root: _RootArgument = Path("."),
    last: Annotated[
        int,
        typer.Option("--last", min=1, max=200, help="Number of recent runs to show."),
    ] = 10,
    output_format: Annotated[
        str,
        typer.Option("--format", help="Output format: terminal, json.", show_default=True),
    ] = "terminal",
    fail_on_regression: Annotated[
        bool,
        typer.Option("--fail-on-regression", help="Exit non-zero if the latest run has more findings than the previous."),
    ] = False,
) -> None:
    """
    Show finding counts over the recorded full runs.
    """

    from qualitysentinel.history import render_trend_json, render_trend_terminal

    with _configuration_errors():
        manager = _make_orchestrator(root).baseline_manager
    entries = manager.load_history()

    normalized = output_format.strip().lower()
    if normalized == "terminal":
        console.print(render_trend_terminal(entries, last=last), markup=False, highlight=False)
    elif normalized == "json":
        typer.echo(render_trend_json(entries, last=last))
    else:
        raise typer.BadParameter("Unsupported format. Use: terminal, json.")

    recent = entries[-last:]
    if fail_on_regression and len(recent) >= 2 and recent[-1].total_findings > recent[-2].total_findings:
        raise typer.Exit(code=1)


@app.command()
def report(
    input_json: Annotated[
        str,
        typer.Argument(help="Input JSON report path, or '-' to read from stdin."),
    ],
) -> None:
    """
    Render a saved JSON report (`analyze --format json`) as Markdown.
    """

    try:
        if input_json.strip() == "-":
            raw = sys.stdin.read()
        else:
            raw = Path(input_json).read_text(encoding="utf-8", errors="replace")
        result, files_analyzed = parse_json_report(raw)
    except (OSError, ValueError) as exc:
        err_console.print(f"Invalid JSON report: {exc}", markup=False, highlight=False)
        raise typer.Exit(code=2) from exc

    typer.echo(generate_report(result, files_analyzed=files_analyzed), nl=False)
