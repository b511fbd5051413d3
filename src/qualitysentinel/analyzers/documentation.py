from __future__ import annotations

import re
from collections.abc import Sequence

from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.analyzers.metrics import function_metrics_for
from qualitysentinel.analyzers.utils import (
    CodeLine,
    code_lines,
    collect_signature,
    is_kotlin_source,
    is_test_path,
    parameter_section,
    parse_parameters,
)
from qualitysentinel.config import Thresholds
from qualitysentinel.engine.types import FileInfo, Finding

_DECL_RE = re.compile(
    r"^\s*(?P<mods>(?:(?:public|internal|private|protected|open|abstract|final|data|sealed|enum|inline|value|"
    r"suspend|override|operator|infix|tailrec|external|annotation|inner|const|lateinit)\s+)*)"
    r"(?P<kind>class|interface|object|fun)\s+(?:<[^>]*>\s*)?(?:[\w.<>?]+\.)?(?P<name>\w+)"
)
_SEALED_RE = re.compile(r"\bsealed\s+(?:class|interface)\s+(?P<name>\w+)")
_HIDDEN = frozenset({"private", "internal", "protected", "override"})
_KIND_LABELS = {"class": "Class", "interface": "Interface", "object": "Object", "fun": "Function"}


def kdoc_above(lines: Sequence[CodeLine], index: int) -> str | None:
    """Return the KDoc block attached to the declaration at `index`, skipping annotations."""

    idx = index - 1
    while idx >= 0 and lines[idx].raw.strip().startswith("@"):
        idx -= 1
    if idx < 0 or not lines[idx].raw.strip().endswith("*/"):
        return None
    end = idx
    while idx >= 0:
        stripped = lines[idx].raw.strip()
        if stripped.startswith("/**"):
            return "\n".join(line.raw for line in lines[idx : end + 1])
        if stripped.startswith("/*") and not stripped.startswith("/**"):
            return None
        idx -= 1
    return None


def _is_test_function(lines: Sequence[CodeLine], index: int) -> bool:
    idx = index - 1
    while idx >= 0 and lines[idx].raw.strip().startswith("@"):
        if re.match(r"@(?:Test|Before|After|BeforeEach|AfterEach|ParameterizedTest)\b", lines[idx].raw.strip()):
            return True
        idx -= 1
    return False


class DocumentationAnalyzer(BaseAnalyzer):
    """KDoc on public API, comments in complex functions, documented data and sealed types."""

    analyzer_id = "documentation"
    name = "Documentation Analyzer"
    category = "documentation"
    description = "Checks KDoc coverage and inline comments in complex code."

    def __init__(self, thresholds: Thresholds | None = None) -> None:
        self.thresholds = thresholds or Thresholds()

    def applies_to(self, file: FileInfo) -> bool:
        return is_kotlin_source(file.relative_path) and not is_test_path(file.relative_path)

    def analyze(self, file: FileInfo, content: str) -> list[Finding]:
        lines = code_lines(content)
        findings = self._check_declarations(file, lines)
        findings.extend(self._check_complex_functions(file, content))
        return findings

    def _check_declarations(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        sealed_parents = {m.group("name") for line in lines for m in _SEALED_RE.finditer(line.code)}
        sealed_super_re = (
            re.compile(r":\s*(?:[\w.]+\.)?(?:" + "|".join(map(re.escape, sorted(sealed_parents))) + r")\b")
            if sealed_parents
            else None
        )

        findings: list[Finding] = []
        scopes: list[str] = []
        for index, line in enumerate(lines):
            match = _DECL_RE.match(line.code)
            line_kind = "block"
            if match is not None:
                kind = match.group("kind")
                line_kind = "function" if kind == "fun" else "type"
                # Only members of top-level or nested types are API surface.
                if all(scope == "type" for scope in scopes):
                    findings.extend(
                        self._check_declaration(file, lines, index, match, sealed_super_re)
                    )

            first_brace = True
            for ch in line.code:
                if ch == "{":
                    scopes.append(line_kind if first_brace else "block")
                    first_brace = False
                elif ch == "}" and scopes:
                    scopes.pop()
        return findings

    def _check_declaration(
        self,
        file: FileInfo,
        lines: Sequence[CodeLine],
        index: int,
        match: re.Match[str],
        sealed_super_re: re.Pattern[str] | None,
    ) -> list[Finding]:
        modifiers = set(match.group("mods").split())
        if modifiers & _HIDDEN:
            return []
        kind = match.group("kind")
        name = match.group("name")
        line = lines[index]
        if kind == "fun" and _is_test_function(lines, index):
            return []

        kdoc = kdoc_above(lines, index)
        header, _end = collect_signature(lines, index, max_lines=30)

        if kind != "fun" and sealed_super_re is not None and sealed_super_re.search(header):
            if kdoc is not None:
                return []
            return [
                self._finding(
                    file,
                    rule="sealed-subclass-undocumented",
                    line=line.line_no,
                    priority="low",
                    effort="trivial",
                    title=f"Sealed Class Subclass Not Documented: {name}",
                    description=f"`{name}` is one case of a sealed hierarchy but does not say when it occurs.",
                    recommendation="Add a one-line KDoc describing the state or event this case represents.",
                    snippet=line.raw,
                    after=f"/** Emitted when ... */\n{line.raw.strip()}",
                )
            ]

        if kdoc is None:
            label = _KIND_LABELS[kind]
            return [
                self._finding(
                    file,
                    rule="missing-kdoc",
                    line=line.line_no,
                    priority="low",
                    effort="small",
                    title=f"Missing KDoc for Public {label}: {name}",
                    description=f"Public {label.lower()} `{name}` has no KDoc.",
                    recommendation="Document the purpose, parameters and return value with KDoc.",
                    snippet=line.raw,
                    after=f"/**\n * Describe {name}.\n */\n{line.raw.strip()}",
                )
            ]

        if kind == "class" and "data" in modifiers:
            section = parameter_section(header)
            properties = parse_parameters(section) if section else []
            if len(properties) > 2 and "@property" not in kdoc and "@param" not in kdoc:
                return [
                    self._finding(
                        file,
                        rule="data-class-properties-undocumented",
                        line=line.line_no,
                        priority="low",
                        effort="small",
                        title=f"Data Class Properties Not Documented: {name}",
                        description=(
                            f"`{name}` has {len(properties)} properties but its KDoc has no `@property` tags."
                        ),
                        recommendation="Add an `@property` line for each constructor property.",
                        snippet=line.raw,
                    )
                ]
        return []

    def _check_complex_functions(self, file: FileInfo, content: str) -> list[Finding]:
        findings: list[Finding] = []
        limit = self.thresholds.comment_complexity
        for metrics in function_metrics_for(content):
            if metrics.complexity <= limit or metrics.has_inline_comment:
                continue
            findings.append(
                self._finding(
                    file,
                    rule="complex-function-missing-comments",
                    line=metrics.start_line,
                    priority="medium",
                    effort="small",
                    title=f"Complex Function Missing Inline Comments: {metrics.name}",
                    description=(
                        f"`{metrics.name}` has cyclomatic complexity {metrics.complexity} (> {limit}) and no "
                        "comments explaining its branches."
                    ),
                    recommendation="Comment the non-obvious branches, or split the function.",
                    snippet=metrics.signature,
                )
            )
        return findings
