from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from qualitysentinel import __version__
from qualitysentinel.engine.types import CATEGORY_LABELS, CATEGORY_ORDER, PRIORITY_ORDER, Comparison, Finding

if TYPE_CHECKING:
    from qualitysentinel.orchestrator import AnalysisRun

_PRIORITY_ICON = {"critical": "✖", "high": "▲", "medium": "●", "low": "ℹ"}
_PRIORITY_STYLE = {"critical": "bold red", "high": "red", "medium": "yellow", "low": "dim"}


def render_terminal(run: AnalysisRun, *, console: Console, show_details: bool = True) -> None:
    header = Text()
    header.append("QualitySentinel ", style="bold")
    header.append(f"v{__version__}", style="dim")
    header.append(f" · {run.mode} analysis", style="dim")

    console.print(
        Panel(
            header,
            subtitle=f"Analyzed {run.files_analyzed} files",
            border_style="cyan",
        )
    )

    result = run.result
    if show_details:
        for file_path, findings in result.by_file.items():
            console.print(Text(file_path, style="bold"))
            for f in sorted(findings, key=_sort_key):
                _print_finding(console, f)
            console.print()

    if run.skipped_files:
        console.print(Text(f"Skipped {len(run.skipped_files)} file(s):", style="yellow"))
        for path in run.skipped_files:
            console.print(f"  - {path}", style="dim")
        console.print()

    _print_summary(run, console=console)
    if run.comparison is not None:
        _print_comparison(run.comparison, console=console)
    if run.report_path is not None:
        console.print(Text(f"Report: {run.report_path}", style="dim"))


def _print_finding(console: Console, f: Finding) -> None:
    style = _PRIORITY_STYLE.get(f.priority, "")
    line = Text()
    line.append(f"  {_PRIORITY_ICON.get(f.priority, '•')} ", style=style)
    line.append(f"{f.analyzer}/{f.rule}", style="bold")
    line.append(f"  ({f.line_number})", style="dim")
    line.append(f"  {f.title}")
    console.print(line)
    if f.code_snippet:
        first = f.code_snippet.splitlines()[0]
        console.print(f"     {f.line_number:>4} │ {first}", style="dim", markup=False, highlight=False)
    console.print(f"     → {f.recommendation}", style="dim", markup=False, highlight=False)


def _print_summary(run: AnalysisRun, *, console: Console) -> None:
    metrics = run.result.metrics
    if metrics.total_findings == 0:
        console.print(Text("✅ No issues found!", style="bold green"))
        return

    table = Table(title=f"{metrics.total_findings} findings in {metrics.files_with_findings} files")
    table.add_column("Category")
    for priority in PRIORITY_ORDER:
        table.add_column(priority.capitalize(), justify="right", style=_PRIORITY_STYLE[priority])
    table.add_column("Total", justify="right", style="bold")
    for category in CATEGORY_ORDER:
        findings = run.result.by_category.get(category, ())
        if not findings:
            continue
        counts = {p: 0 for p in PRIORITY_ORDER}
        for f in findings:
            counts[f.priority] += 1
        table.add_row(CATEGORY_LABELS[category], *(str(counts[p]) for p in PRIORITY_ORDER), str(len(findings)))
    console.print(table)


def _print_comparison(comparison: Comparison, *, console: Console) -> None:
    deltas = "  ".join(f"{p}={comparison.priority_deltas.get(p, 0):+d}" for p in PRIORITY_ORDER)
    console.print(
        Text(
            f"Since baseline: {len(comparison.new_findings)} new, {len(comparison.resolved)} resolved  ({deltas})",
            style="bold",
        )
    )


def _sort_key(f: Finding) -> tuple[int, int, str]:
    return PRIORITY_ORDER.index(f.priority), f.line_number, f.id
