from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import replace
from types import MappingProxyType

from qualitysentinel.engine.types import (
    CATEGORY_ORDER,
    EFFORT_ORDER,
    PRIORITY_ORDER,
    PRIORITY_RANK,
    AggregatedResult,
    AnalysisMetrics,
    Finding,
    Priority,
)

# Minimum priority per category.
PRIORITY_FLOORS: Mapping[str, Priority] = MappingProxyType(
    {
        "security": "critical",
        "architecture": "high",
        "error-handling": "high",
        "performance": "medium",
        "code-smell": "medium",
        "state-management": "medium",
        "compose": "medium",
        "database": "medium",
        "dependency-injection": "medium",
        "naming": "low",
        "documentation": "low",
        "test-coverage": "low",
    }
)


def sort_key(finding: Finding) -> tuple[str, int, str, str]:
    return (finding.file, finding.line_number, finding.analyzer, finding.id)


def apply_priority_floor(findings: Iterable[Finding]) -> list[Finding]:
    out: list[Finding] = []
    for finding in findings:
        floor = PRIORITY_FLOORS.get(finding.category)
        if floor is not None and PRIORITY_RANK[floor] > PRIORITY_RANK[finding.priority]:
            finding = replace(finding, priority=floor)
        out.append(finding)
    return out


def deduplicate(findings: Iterable[Finding]) -> list[Finding]:
    """
    Collapse findings that share (file, line, category, title).

    The highest priority wins; ties keep the lowest sort key, so the result
    does not depend on input order.
    """

    best: dict[tuple[str, int, str, str], Finding] = {}
    for finding in findings:
        key = (finding.file, finding.line_number, finding.category, finding.title)
        current = best.get(key)
        if current is None or _beats(finding, current):
            best[key] = finding
    return sorted(best.values(), key=sort_key)


def _beats(candidate: Finding, current: Finding) -> bool:
    rank_candidate = PRIORITY_RANK[candidate.priority]
    rank_current = PRIORITY_RANK[current.priority]
    if rank_candidate != rank_current:
        return rank_candidate > rank_current
    return sort_key(candidate) < sort_key(current)


def ensure_unique_ids(findings: Iterable[Finding]) -> list[Finding]:
    """Suffix repeated ids with `#2`, `#3`, ... in sort order."""

    ordered = sorted(findings, key=sort_key)
    seen: dict[str, int] = {}
    out: list[Finding] = []
    for finding in ordered:
        count = seen.get(finding.id, 0) + 1
        seen[finding.id] = count
        if count > 1:
            finding = replace(finding, id=f"{finding.id}#{count}")
        out.append(finding)
    return out


def normalize(findings: Iterable[Finding]) -> list[Finding]:
    return ensure_unique_ids(deduplicate(apply_priority_floor(findings)))


def compute_metrics(findings: Iterable[Finding]) -> AnalysisMetrics:
    by_priority = {p: 0 for p in PRIORITY_ORDER}
    by_category = {c: 0 for c in CATEGORY_ORDER}
    by_effort = {e: 0 for e in EFFORT_ORDER}
    files: set[str] = set()
    total = 0
    auto_fixable = 0
    for finding in findings:
        total += 1
        files.add(finding.file)
        by_priority[finding.priority] = by_priority.get(finding.priority, 0) + 1
        by_category[finding.category] = by_category.get(finding.category, 0) + 1
        by_effort[finding.effort] = by_effort.get(finding.effort, 0) + 1
        if finding.auto_fixable:
            auto_fixable += 1
    return AnalysisMetrics(
        total_findings=total,
        files_with_findings=len(files),
        by_priority=MappingProxyType(by_priority),
        by_category=MappingProxyType(by_category),
        by_effort=MappingProxyType(by_effort),
        auto_fixable=auto_fixable,
    )


def aggregate(findings: Iterable[Finding]) -> AggregatedResult:
    """
    Group findings and compute metrics.

    Pure and order-independent: the same set of findings always produces an
    equal result.
    """

    ordered = tuple(sorted(findings, key=sort_key))
    by_category: dict[str, list[Finding]] = {}
    by_priority: dict[str, list[Finding]] = {}
    by_file: dict[str, list[Finding]] = {}
    for finding in ordered:
        by_category.setdefault(finding.category, []).append(finding)
        by_priority.setdefault(finding.priority, []).append(finding)
        by_file.setdefault(finding.file, []).append(finding)

    return AggregatedResult(
        findings=ordered,
        metrics=compute_metrics(ordered),
        by_category=_freeze(by_category, order=CATEGORY_ORDER),
        by_priority=_freeze(by_priority, order=PRIORITY_ORDER),
        by_file=_freeze(by_file, order=sorted(by_file)),
    )


def _freeze(groups: dict[str, list[Finding]], *, order: Iterable[str]) -> Mapping[str, tuple[Finding, ...]]:
    keys = [k for k in order if k in groups]
    keys.extend(sorted(k for k in groups if k not in keys))
    return MappingProxyType({k: tuple(groups[k]) for k in keys})
