from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from qualitysentinel.engine.types import AggregatedResult, AnalysisMetrics, Finding
from qualitysentinel.reporters.json_reporter import (
    finding_from_dict,
    finding_to_dict,
    metrics_from_dict,
    metrics_to_dict,
)

HISTORY_VERSION = 1


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    timestamp: str
    files_analyzed: int
    metrics: AnalysisMetrics
    findings: tuple[Finding, ...] = ()
    git_head: str | None = None

    @property
    def total_findings(self) -> int:
        return self.metrics.total_findings

    def count(self, priority: str) -> int:
        return int(self.metrics.by_priority.get(priority, 0))


def entry_from_result(
    result: AggregatedResult,
    *,
    timestamp: str,
    files_analyzed: int,
    git_head: str | None = None,
) -> HistoryEntry:
    return HistoryEntry(
        timestamp=timestamp,
        files_analyzed=int(files_analyzed),
        metrics=result.metrics,
        findings=result.findings,
        git_head=git_head,
    )


def entry_to_json(e: HistoryEntry) -> dict[str, Any]:
    return {
        "version": HISTORY_VERSION,
        "timestamp": e.timestamp,
        "files_analyzed": e.files_analyzed,
        "git_head": e.git_head,
        "metrics": metrics_to_dict(e.metrics),
        "findings": [finding_to_dict(f) for f in e.findings],
    }


def parse_entry(item: Mapping[str, Any]) -> HistoryEntry:
    """Raises `ValueError` / `TypeError` when the record is not a history entry."""

    if item.get("version") != HISTORY_VERSION:
        raise ValueError(f"Unsupported history version: {item.get('version')!r}")
    metrics_raw = item["metrics"]
    if not isinstance(metrics_raw, dict):
        raise TypeError("metrics must be an object")
    findings_raw = item.get("findings", [])
    if not isinstance(findings_raw, list):
        raise TypeError("findings must be a list")
    git_head = item.get("git_head")
    return HistoryEntry(
        timestamp=str(item["timestamp"]),
        files_analyzed=int(item["files_analyzed"]),
        metrics=metrics_from_dict(metrics_raw),
        findings=tuple(finding_from_dict(f) for f in findings_raw if isinstance(f, dict)),
        git_head=git_head if isinstance(git_head, str) else None,
    )


def render_trend_terminal(entries: list[HistoryEntry], *, last: int = 10) -> str:
    recent = entries[-last:]
    if not recent:
        return "No history recorded yet."

    lines: list[str] = []
    lines.append(f"History (last {len(recent)} runs):")
    for e in recent:
        head = f" {e.git_head[:8]}" if e.git_head else ""
        lines.append(
            f"- {e.timestamp}{head}  findings={e.total_findings}  critical={e.count('critical')}  "
            f"high={e.count('high')}  files={e.files_analyzed}"
        )

    # Fewer findings is better, so a negative delta is an improvement.
    delta = recent[-1].total_findings - recent[0].total_findings
    lines.append(f"Trend: {delta:+d} findings (window)")
    return "\n".join(lines)


def render_trend_json(entries: list[HistoryEntry], *, last: int = 10) -> str:
    recent = entries[-last:]
    payload = {
        "version": HISTORY_VERSION,
        "last": int(last),
        "entries": [_summary_to_json(e) for e in recent],
        "trend": (recent[-1].total_findings - recent[0].total_findings) if recent else 0,
    }
    return json.dumps(payload, indent=2, sort_keys=True)


def _summary_to_json(e: HistoryEntry) -> dict[str, Any]:
    return {
        "timestamp": e.timestamp,
        "git_head": e.git_head,
        "files_analyzed": e.files_analyzed,
        "total_findings": e.total_findings,
        "by_priority": dict(e.metrics.by_priority),
    }
