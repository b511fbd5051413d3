from __future__ import annotations

import re
from collections.abc import Iterator, Sequence

from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.analyzers.metrics import FunctionMetrics, function_metrics_for
from qualitysentinel.analyzers.utils import (
    CodeLine,
    OpenConstruct,
    ScopeTracker,
    code_lines,
    is_kotlin_source,
    is_test_path,
)
from qualitysentinel.config import Thresholds
from qualitysentinel.engine.types import FileInfo, Finding

_CLASS_DECL_RE = re.compile(
    r"^\s*(?:(?:public|internal|private|protected|open|abstract|final|data|sealed|enum|inner|value)\s+)*"
    r"(?:class|object)\s+(?P<name>\w+)"
)


def iter_classes(lines: Sequence[CodeLine]) -> Iterator[OpenConstruct]:
    """Yield outermost class and object bodies, labelled with their names."""

    tracker = ScopeTracker()
    for line in lines:
        if not tracker.inside:
            match = _CLASS_DECL_RE.match(line.code)
            if match is None:
                continue
            tracker.open(line, kind="class", label=match.group("name"))
        closed = tracker.advance(line)
        if closed is not None:
            yield closed
    leftover = tracker.finish()
    if leftover is not None:
        yield leftover


class CodeSmellAnalyzer(BaseAnalyzer):
    """Size and complexity limits for functions and classes."""

    analyzer_id = "code-smell"
    name = "Code Smell Analyzer"
    category = "code-smell"
    description = "Checks function length, class size, complexity, nesting and parameter counts."

    def __init__(self, thresholds: Thresholds | None = None) -> None:
        self.thresholds = thresholds or Thresholds()

    def applies_to(self, file: FileInfo) -> bool:
        return is_kotlin_source(file.relative_path) and not is_test_path(file.relative_path)

    def analyze(self, file: FileInfo, content: str) -> list[Finding]:
        findings: list[Finding] = []
        for metrics in function_metrics_for(content):
            findings.extend(self._check_function(file, metrics))
        for construct in iter_classes(code_lines(content)):
            findings.extend(self._check_class(file, construct))
        return findings

    def _check_function(self, file: FileInfo, metrics: FunctionMetrics) -> list[Finding]:
        limits = self.thresholds
        name = metrics.name
        findings: list[Finding] = []
        if metrics.length > limits.max_function_lines:
            findings.append(
                self._finding(
                    file,
                    rule="long-function",
                    line=metrics.start_line,
                    priority="medium",
                    effort="medium",
                    title=f"Long Function: {name}",
                    description=(
                        f"`{name}` spans {metrics.length} lines (limit {limits.max_function_lines})."
                    ),
                    recommendation="Extract cohesive steps into well-named private functions.",
                    snippet=metrics.signature,
                )
            )
        if metrics.complexity > limits.max_complexity:
            findings.append(
                self._finding(
                    file,
                    rule="excessive-complexity",
                    line=metrics.start_line,
                    priority="high",
                    effort="medium",
                    title=f"High Cyclomatic Complexity: {name}",
                    description=(
                        f"`{name}` has cyclomatic complexity {metrics.complexity} (limit {limits.max_complexity})."
                    ),
                    recommendation="Split branches into smaller functions, or replace condition chains with `when`.",
                    snippet=metrics.signature,
                )
            )
        if metrics.max_nesting > limits.max_nesting:
            findings.append(
                self._finding(
                    file,
                    rule="deep-nesting",
                    line=metrics.start_line,
                    priority="medium",
                    effort="small",
                    title=f"Deeply Nested Code: {name}",
                    description=(
                        f"`{name}` nests control flow {metrics.max_nesting} levels deep (limit {limits.max_nesting})."
                    ),
                    recommendation="Return early with guard clauses, or extract the inner blocks.",
                    snippet=metrics.signature,
                    before="if (a) {\n    if (b) {\n        if (c) { work() }\n    }\n}",
                    after="if (!a || !b || !c) return\nwork()",
                )
            )
        if metrics.parameter_count > limits.max_parameters:
            findings.append(
                self._finding(
                    file,
                    rule="too-many-parameters",
                    line=metrics.start_line,
                    priority="low",
                    effort="small",
                    title=f"Too Many Parameters: {name}",
                    description=(
                        f"`{name}` takes {metrics.parameter_count} parameters (limit {limits.max_parameters})."
                    ),
                    recommendation="Group related parameters into a data class.",
                    snippet=metrics.signature,
                )
            )
        return findings

    def _check_class(self, file: FileInfo, construct: OpenConstruct) -> list[Finding]:
        limit = self.thresholds.max_class_lines
        if construct.length <= limit:
            return []
        name = construct.label
        return [
            self._finding(
                file,
                rule="large-class",
                line=construct.start_line,
                priority="medium",
                effort="large",
                title=f"Large Class: {name}",
                description=f"`{name}` spans {construct.length} lines (limit {limit}).",
                recommendation="Split responsibilities into collaborators, or move helpers to extension functions.",
                snippet=construct.lines[0].raw if construct.lines else "",
            )
        ]
