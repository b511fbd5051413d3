from __future__ import annotations

import json

import pytest
from rich.console import Console

from qualitysentinel.engine.aggregation import aggregate
from qualitysentinel.engine.types import Baseline
from qualitysentinel.orchestrator import AnalysisRun
from qualitysentinel.reporters.json_reporter import parse_json_report, render_json
from qualitysentinel.reporters.markdown import generate_report
from qualitysentinel.reporters.terminal import render_terminal

from helpers import make_finding


def _secret():
    return make_finding(
        analyzer="security",
        rule="hardcoded-secret",
        category="security",
        priority="critical",
        file="app/src/main/java/com/x/Keys.kt",
        line=4,
        title="Hardcoded Secret: API key",
        snippet='const val API_KEY = "sk_l****AAAA"',
        auto_fixable=False,
    )


def _naming():
    return make_finding(line=2, title="Class Name Not PascalCase: mealCard", auto_fixable=True)


def test_markdown_without_findings() -> None:
    report = generate_report(aggregate([]), files_analyzed=3)
    assert report.startswith("# Code Quality Analysis Report\n")
    assert "Files analyzed: 3" in report
    assert "## Summary" in report
    assert "✅ No issues found!" in report
    assert "## Detailed Findings" not in report
    assert report.endswith("\n")


def test_markdown_sections() -> None:
    report = generate_report(aggregate([_secret(), _naming()]), generated_at="2026-01-01T00:00:00+00:00")
    assert "Generated: 2026-01-01T00:00:00+00:00" in report
    assert "| Total findings | 2 |" in report
    assert "### 🔴 CRITICAL (1)" in report
    assert "#### Security" in report
    assert "| Security | 1 | 1 | 0 | 0 | 0 |" in report
    assert "### `app/src/main/java/com/x/Keys.kt`" in report
    assert "- **Rule:** `security/hardcoded-secret`" in report
    assert "```kotlin\nconst val API_KEY" in report
    assert "- **Auto-fixable:** yes" in report
    assert "Changes Since Baseline" not in report


def test_markdown_is_deterministic() -> None:
    result = aggregate([_secret(), _naming()])
    assert generate_report(result) == generate_report(aggregate([_naming(), _secret()]))


def test_markdown_changes_are_truncated() -> None:
    empty = aggregate([])
    baseline = Baseline(timestamp="2026-01-01T00:00:00+00:00", metrics=empty.metrics, finding_ids=frozenset())
    findings = [make_finding(line=i, title=f"Finding {i}") for i in range(1, 13)]

    report = generate_report(aggregate(findings), baseline)
    assert "## Changes Since Baseline" in report
    assert "Baseline from 2026-01-01T00:00:00+00:00." in report
    assert "### New Findings (12)" in report
    assert "- ... and 2 more" in report
    assert "### Resolved Findings (0)" in report
    assert "| Low | +12 |" in report


def test_markdown_escapes_table_characters() -> None:
    report = generate_report(aggregate([make_finding(title="a | b")]))
    assert "a \\| b" in report


def test_json_round_trip() -> None:
    result = aggregate([_secret(), _naming()])
    run = AnalysisRun(result=result, files_analyzed=7, mode="full", skipped_files=("app/Broken.kt",))
    text = render_json(run)

    data = json.loads(text)
    assert data["schema_version"] == 1
    assert data["tool"]["name"] == "QualitySentinel"
    assert data["skipped_files"] == ["app/Broken.kt"]
    assert data["comparison"] is None

    parsed, files_analyzed = parse_json_report(text)
    assert files_analyzed == 7
    assert parsed == result


@pytest.mark.parametrize(
    "text",
    [
        "[]",
        json.dumps({"findings": []}),
        json.dumps({"files_analyzed": 1, "findings": [{"id": "x", "priority": "urgent"}]}),
    ],
)
def test_parse_json_report_rejects_malformed(text: str) -> None:
    with pytest.raises(ValueError):
        parse_json_report(text)


def test_terminal_render() -> None:
    console = Console(record=True, width=120, color_system=None)
    run = AnalysisRun(result=aggregate([_secret(), _naming()]), files_analyzed=2, mode="incremental")
    render_terminal(run, console=console)
    out = console.export_text()
    assert "incremental analysis" in out
    assert "Analyzed 2 files" in out
    assert "security/hardcoded-secret" in out
    assert "2 findings in 2 files" in out


def test_terminal_render_without_findings() -> None:
    console = Console(record=True, width=120, color_system=None)
    render_terminal(AnalysisRun(result=aggregate([]), files_analyzed=0, mode="full"), console=console)
    assert "No issues found!" in console.export_text()
