from __future__ import annotations

import json
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from qualitysentinel import __version__
from qualitysentinel.engine.aggregation import aggregate
from qualitysentinel.engine.types import (
    CATEGORY_LABELS,
    EFFORT_RANK,
    PRIORITY_RANK,
    AggregatedResult,
    AnalysisMetrics,
    Comparison,
    Finding,
)

if TYPE_CHECKING:
    from qualitysentinel.orchestrator import AnalysisRun

REPORT_SCHEMA_VERSION = 1


def finding_to_dict(f: Finding) -> dict[str, Any]:
    return {
        "id": f.id,
        "analyzer": f.analyzer,
        "rule": f.rule,
        "category": f.category,
        "priority": f.priority,
        "title": f.title,
        "description": f.description,
        "file": f.file,
        "line_number": f.line_number,
        "column_number": f.column_number,
        "code_snippet": f.code_snippet,
        "recommendation": f.recommendation,
        "effort": f.effort,
        "before_example": f.before_example,
        "after_example": f.after_example,
        "auto_fixable": f.auto_fixable,
        "auto_fix": f.auto_fix,
        "references": list(f.references),
        "related_findings": list(f.related_findings),
    }


def finding_from_dict(item: Mapping[str, Any]) -> Finding:
    """Inverse of `finding_to_dict`. Raises `ValueError` on malformed input."""

    try:
        priority = str(item["priority"]).strip().lower()
        effort = str(item.get("effort", "small")).strip().lower()
        category = str(item["category"]).strip().lower()
        line_number = int(item["line_number"])
        finding_id = str(item["id"])
        file = str(item["file"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Malformed finding: {exc}") from exc

    if priority not in PRIORITY_RANK:
        raise ValueError(f"Unknown priority: {priority!r}")
    if effort not in EFFORT_RANK:
        raise ValueError(f"Unknown effort: {effort!r}")
    if category not in CATEGORY_LABELS:
        raise ValueError(f"Unknown category: {category!r}")

    column = item.get("column_number")
    references = item.get("references", [])
    related = item.get("related_findings", [])
    return Finding(
        id=finding_id,
        analyzer=str(item.get("analyzer", "")),
        rule=str(item.get("rule", "")),
        category=category,  # type: ignore[arg-type]
        priority=priority,  # type: ignore[arg-type]
        title=str(item.get("title", "")),
        description=str(item.get("description", "")),
        file=file,
        line_number=line_number,
        column_number=int(column) if isinstance(column, int) else None,
        code_snippet=str(item.get("code_snippet", "")),
        recommendation=str(item.get("recommendation", "")),
        effort=effort,  # type: ignore[arg-type]
        before_example=_optional_str(item.get("before_example")),
        after_example=_optional_str(item.get("after_example")),
        auto_fixable=bool(item.get("auto_fixable", False)),
        auto_fix=_optional_str(item.get("auto_fix")),
        references=tuple(str(x) for x in references) if isinstance(references, list) else (),
        related_findings=tuple(str(x) for x in related) if isinstance(related, list) else (),
    )


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def metrics_to_dict(m: AnalysisMetrics) -> dict[str, Any]:
    return {
        "total_findings": m.total_findings,
        "files_with_findings": m.files_with_findings,
        "by_priority": dict(m.by_priority),
        "by_category": dict(m.by_category),
        "by_effort": dict(m.by_effort),
        "auto_fixable": m.auto_fixable,
    }


def metrics_from_dict(item: Mapping[str, Any]) -> AnalysisMetrics:
    try:
        return AnalysisMetrics(
            total_findings=int(item["total_findings"]),
            files_with_findings=int(item["files_with_findings"]),
            by_priority=_count_map(item["by_priority"]),
            by_category=_count_map(item["by_category"]),
            by_effort=_count_map(item["by_effort"]),
            auto_fixable=int(item.get("auto_fixable", 0)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Malformed metrics: {exc}") from exc


def _count_map(value: Any) -> Mapping[str, int]:
    if not isinstance(value, dict):
        raise TypeError("expected an object of counts")
    return MappingProxyType({str(k): int(v) for k, v in value.items()})


def comparison_to_dict(c: Comparison) -> dict[str, Any]:
    return {
        "new_findings": [f.id for f in c.new_findings],
        "resolved": list(c.resolved),
        "priority_deltas": dict(c.priority_deltas),
        "category_deltas": dict(c.category_deltas),
        "improved": list(c.improved),
        "regressed": list(c.regressed),
    }


def render_json(run: AnalysisRun) -> str:
    payload: dict[str, Any] = {
        "schema_version": REPORT_SCHEMA_VERSION,
        "tool": {"name": "QualitySentinel", "version": __version__},
        "mode": run.mode,
        "files_analyzed": run.files_analyzed,
        "skipped_files": list(run.skipped_files),
        "metrics": metrics_to_dict(run.result.metrics),
        "findings": [finding_to_dict(f) for f in run.result.findings],
        "comparison": comparison_to_dict(run.comparison) if run.comparison is not None else None,
    }
    return json.dumps(payload, indent=2, sort_keys=False)


def parse_json_report(text: str) -> tuple[AggregatedResult, int]:
    """
    Parse a report produced by `render_json()` back into `(AggregatedResult, files_analyzed)`.

    Metrics are recomputed from the findings rather than trusted.
    """

    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("JSON report must be an object.")
    files_analyzed = data.get("files_analyzed")
    if not isinstance(files_analyzed, int):
        raise ValueError("JSON report missing required field: files_analyzed.")
    raw_findings = data.get("findings", [])
    if not isinstance(raw_findings, list):
        raise ValueError("JSON report `findings` must be a list.")
    findings = [finding_from_dict(item) for item in raw_findings if isinstance(item, dict)]
    return aggregate(findings), files_analyzed
