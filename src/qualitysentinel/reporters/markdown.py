from __future__ import annotations

from qualitysentinel.baseline import compare
from qualitysentinel.engine.types import (
    CATEGORY_LABELS,
    CATEGORY_ORDER,
    PRIORITY_ORDER,
    AggregatedResult,
    Baseline,
    Comparison,
    Finding,
)

DEFAULT_TITLE = "Code Quality Analysis Report"
_LIST_LIMIT = 10
_PRIORITY_ICON = {"critical": "🔴", "high": "🟠", "medium": "🟡", "low": "🔵"}


def generate_report(
    result: AggregatedResult,
    baseline: Baseline | None = None,
    *,
    files_analyzed: int | None = None,
    generated_at: str | None = None,
    title: str = DEFAULT_TITLE,
) -> str:
    """
    Render `result` as Markdown.

    The output depends only on the arguments; pass `generated_at` to put a
    timestamp in the header.
    """

    lines: list[str] = []
    lines.append(f"# {title}")
    lines.append("")
    if generated_at:
        lines.append(f"Generated: {generated_at}")
    if files_analyzed is not None:
        lines.append(f"Files analyzed: {files_analyzed}")
    if generated_at or files_analyzed is not None:
        lines.append("")

    _summary(lines, result)
    if not result.findings:
        lines.append("✅ No issues found!")
        lines.append("")
    if baseline is not None:
        _changes(lines, compare(result, baseline), baseline)
    if result.findings:
        _by_priority(lines, result)
        _by_category(lines, result)
        _details(lines, result)
    return "\n".join(lines).rstrip("\n") + "\n"


def _summary(lines: list[str], result: AggregatedResult) -> None:
    m = result.metrics
    lines.append("## Summary")
    lines.append("")
    lines.append("| Metric | Count |")
    lines.append("| --- | ---: |")
    lines.append(f"| Total findings | {m.total_findings} |")
    lines.append(f"| Files with findings | {m.files_with_findings} |")
    for priority in PRIORITY_ORDER:
        lines.append(f"| {_PRIORITY_ICON[priority]} {priority.capitalize()} | {m.by_priority.get(priority, 0)} |")
    lines.append(f"| Auto-fixable | {m.auto_fixable} |")
    lines.append("")


def _changes(lines: list[str], comparison: Comparison, baseline: Baseline) -> None:
    lines.append("## Changes Since Baseline")
    lines.append("")
    if baseline.timestamp:
        lines.append(f"Baseline from {baseline.timestamp}.")
        lines.append("")

    lines.append(f"### New Findings ({len(comparison.new_findings)})")
    lines.append("")
    if comparison.new_findings:
        for f in comparison.new_findings[:_LIST_LIMIT]:
            lines.append(f"- {_PRIORITY_ICON[f.priority]} **{_md_escape(f.title)}** ({f.file}:{f.line_number})")
        _more(lines, len(comparison.new_findings))
    else:
        lines.append("None.")
    lines.append("")

    lines.append(f"### Resolved Findings ({len(comparison.resolved)})")
    lines.append("")
    if comparison.resolved:
        for identity in comparison.resolved[:_LIST_LIMIT]:
            entry = baseline.entries.get(identity)
            if entry is None:
                lines.append(f"- `{identity[:12]}`")
            else:
                lines.append(f"- **{_md_escape(entry.title)}** ({entry.file}:{entry.line})")
        _more(lines, len(comparison.resolved))
    else:
        lines.append("None.")
    lines.append("")

    lines.append("### Priority Changes")
    lines.append("")
    lines.append("| Priority | Change |")
    lines.append("| --- | ---: |")
    for priority in PRIORITY_ORDER:
        lines.append(f"| {priority.capitalize()} | {comparison.priority_deltas.get(priority, 0):+d} |")
    lines.append("")


def _more(lines: list[str], total: int) -> None:
    if total > _LIST_LIMIT:
        lines.append(f"- ... and {total - _LIST_LIMIT} more")


def _by_priority(lines: list[str], result: AggregatedResult) -> None:
    lines.append("## Findings by Priority")
    lines.append("")
    for priority in PRIORITY_ORDER:
        findings = result.by_priority.get(priority, ())
        if not findings:
            continue
        lines.append(f"### {_PRIORITY_ICON[priority]} {priority.upper()} ({len(findings)})")
        lines.append("")
        grouped: dict[str, list[Finding]] = {}
        for f in findings:
            grouped.setdefault(f.category, []).append(f)
        for category in CATEGORY_ORDER:
            items = grouped.get(category)
            if not items:
                continue
            lines.append(f"#### {CATEGORY_LABELS[category]}")
            lines.append("")
            for f in items:
                lines.append(f"- **{_md_escape(f.title)}** `{f.file}:{f.line_number}`")
            lines.append("")


def _by_category(lines: list[str], result: AggregatedResult) -> None:
    lines.append("## Findings by Category")
    lines.append("")
    lines.append("| Category | Count | Critical | High | Medium | Low |")
    lines.append("| --- | ---: | ---: | ---: | ---: | ---: |")
    for category in CATEGORY_ORDER:
        findings = result.by_category.get(category, ())
        if not findings:
            continue
        counts = {p: 0 for p in PRIORITY_ORDER}
        for f in findings:
            counts[f.priority] += 1
        cells = " | ".join(str(counts[p]) for p in PRIORITY_ORDER)
        lines.append(f"| {CATEGORY_LABELS[category]} | {len(findings)} | {cells} |")
    lines.append("")


def _details(lines: list[str], result: AggregatedResult) -> None:
    lines.append("## Detailed Findings")
    lines.append("")
    for file_path, findings in result.by_file.items():
        lines.append(f"### `{file_path}`")
        lines.append("")
        for f in findings:
            lines.append(f"#### {_PRIORITY_ICON[f.priority]} {_md_escape(f.title)}")
            lines.append("")
            location = f"line {f.line_number}"
            if f.column_number is not None:
                location += f", column {f.column_number}"
            lines.append(
                f"- **Priority:** {f.priority.upper()} · **Category:** {CATEGORY_LABELS[f.category]} · "
                f"**Effort:** {f.effort} · {location}"
            )
            lines.append(f"- **Rule:** `{f.analyzer}/{f.rule}`")
            if f.auto_fixable:
                lines.append(f"- **Auto-fixable:** {f.auto_fix or 'yes'}")
            lines.append("")
            lines.append(f.description)
            lines.append("")
            if f.code_snippet:
                lines.extend(["```kotlin", f.code_snippet, "```", ""])
            lines.append(f"**Recommendation:** {f.recommendation}")
            lines.append("")
            if f.before_example:
                lines.extend(["Before:", "", "```kotlin", f.before_example, "```", ""])
            if f.after_example:
                lines.extend(["After:", "", "```kotlin", f.after_example, "```", ""])
            if f.references:
                lines.append("References:")
                lines.extend(f"- {ref}" for ref in f.references)
                lines.append("")


def _md_escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("|", "\\|").replace("\n", " ").strip()
