from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Literal

Priority = Literal["low", "medium", "high", "critical"]
Effort = Literal["trivial", "small", "medium", "large"]
Layer = Literal["data", "domain", "ui", "di", "test"]
Category = Literal[
    "code-smell",
    "architecture",
    "compose",
    "state-management",
    "error-handling",
    "dependency-injection",
    "database",
    "performance",
    "naming",
    "test-coverage",
    "documentation",
    "security",
]
RunMode = Literal["full", "incremental", "filtered"]

# Stable presentation order. Keep these independent from dict ordering.
PRIORITY_ORDER: tuple[Priority, ...] = ("critical", "high", "medium", "low")
PRIORITY_RANK: Mapping[str, int] = MappingProxyType({"low": 0, "medium": 1, "high": 2, "critical": 3})
EFFORT_ORDER: tuple[Effort, ...] = ("trivial", "small", "medium", "large")
EFFORT_RANK: Mapping[str, int] = MappingProxyType({"trivial": 0, "small": 1, "medium": 2, "large": 3})
CATEGORY_ORDER: tuple[Category, ...] = (
    "security",
    "architecture",
    "error-handling",
    "state-management",
    "compose",
    "database",
    "dependency-injection",
    "performance",
    "code-smell",
    "naming",
    "documentation",
    "test-coverage",
)

CATEGORY_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "code-smell": "Code Smell",
        "architecture": "Architecture",
        "compose": "Compose",
        "state-management": "State Management",
        "error-handling": "Error Handling",
        "dependency-injection": "Dependency Injection",
        "database": "Database",
        "performance": "Performance",
        "naming": "Naming",
        "test-coverage": "Test Coverage",
        "documentation": "Documentation",
        "security": "Security",
    }
)


@dataclass(frozen=True, slots=True)
class FileInfo:
    path: Path
    relative_path: str  # POSIX, relative to the project root
    size: int
    last_modified: float
    layer: Layer | None = None


@dataclass(frozen=True, slots=True)
class Finding:
    id: str
    analyzer: str
    rule: str
    category: Category
    priority: Priority
    title: str
    description: str
    file: str
    line_number: int  # 1-based
    code_snippet: str
    recommendation: str
    effort: Effort
    column_number: int | None = None  # 1-based
    before_example: str | None = None
    after_example: str | None = None
    auto_fixable: bool = False
    auto_fix: str | None = None
    references: tuple[str, ...] = ()
    related_findings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AnalysisMetrics:
    total_findings: int
    files_with_findings: int
    by_priority: Mapping[str, int]
    by_category: Mapping[str, int]
    by_effort: Mapping[str, int]
    auto_fixable: int = 0


@dataclass(frozen=True, slots=True)
class AggregatedResult:
    findings: tuple[Finding, ...]
    metrics: AnalysisMetrics
    by_category: Mapping[str, tuple[Finding, ...]] = field(default_factory=lambda: MappingProxyType({}))
    by_priority: Mapping[str, tuple[Finding, ...]] = field(default_factory=lambda: MappingProxyType({}))
    by_file: Mapping[str, tuple[Finding, ...]] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True, slots=True)
class BaselineEntry:
    analyzer: str
    rule: str
    file: str
    line: int
    title: str


@dataclass(frozen=True, slots=True)
class Baseline:
    timestamp: str
    metrics: AnalysisMetrics
    finding_ids: frozenset[str]
    entries: Mapping[str, BaselineEntry] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True, slots=True)
class Comparison:
    new_findings: tuple[Finding, ...]
    resolved: tuple[str, ...]
    priority_deltas: Mapping[str, int]
    category_deltas: Mapping[str, int]
    improved: tuple[str, ...] = ()
    regressed: tuple[str, ...] = ()
