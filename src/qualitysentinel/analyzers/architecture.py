from __future__ import annotations

import re

from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.analyzers.utils import FUN_DECL_RE, CodeLine, brace_delta, code_lines, stem
from qualitysentinel.engine.types import FileInfo, Finding
from qualitysentinel.utils import padded_path

_IMPORT_RE = re.compile(r"^\s*import\s+(?P<path>[\w.]+)")
_USE_CASE_CLASS_RE = re.compile(r"\bclass\s+(?P<name>\w*UseCase)\b")
_NON_PUBLIC_RE = re.compile(r"\b(?:private|protected|internal)\b")
_INVOKE_RE = re.compile(r"\boperator\s+fun\s+invoke\s*\(")


class ArchitectureAnalyzer(BaseAnalyzer):
    """Clean Architecture layering: a pure domain layer and single-purpose use cases."""

    analyzer_id = "architecture"
    name = "Architecture Analyzer"
    category = "architecture"
    description = "Checks layer boundaries and use case shape."

    def applies_to(self, file: FileInfo) -> bool:
        return file.layer is not None and file.layer != "test"

    def analyze(self, file: FileInfo, content: str) -> list[Finding]:
        if file.layer != "domain":
            return []

        lines = code_lines(content)
        findings = self._check_imports(file, lines)
        if "/usecase/" in padded_path(file.relative_path) or stem(file.relative_path).endswith("UseCase"):
            findings.extend(self._check_use_case(file, lines))
        return findings

    def _check_imports(self, file: FileInfo, lines: list[CodeLine]) -> list[Finding]:
        out: list[Finding] = []
        for line in lines:
            match = _IMPORT_RE.match(line.code)
            if match is None:
                continue
            path = match.group("path")
            if path.startswith(("android.", "androidx.")):
                out.append(
                    self._finding(
                        file,
                        rule="android-import-in-domain",
                        line=line.line_no,
                        priority="high",
                        effort="medium",
                        title="Android Framework Import in Domain Layer",
                        description=(
                            f"Import `{path}` ties the domain layer to the Android framework. "
                            "The domain layer must stay pure Kotlin."
                        ),
                        recommendation=(
                            "Move this code to the data or UI layer, or declare an interface in the domain "
                            "layer and implement it outside."
                        ),
                        snippet=line.raw,
                        before="import android.content.Context\n\nclass MyUseCase(private val context: Context)",
                        after=(
                            "interface ResourceProvider {\n    fun getString(id: Int): String\n}\n\n"
                            "class MyUseCase(private val resources: ResourceProvider)"
                        ),
                        references=("https://developer.android.com/topic/architecture/domain-layer",),
                    )
                )
            elif ".data." in f".{path}.":
                out.append(
                    self._finding(
                        file,
                        rule="domain-depends-on-data",
                        line=line.line_no,
                        priority="high",
                        effort="medium",
                        title="Domain Layer Depends on Data Layer",
                        description=f"Import `{path}` points from the domain layer into the data layer.",
                        recommendation=(
                            "Depend on a domain-level repository interface or model; let the data layer "
                            "implement it."
                        ),
                        snippet=line.raw,
                    )
                )
        return out

    def _check_use_case(self, file: FileInfo, lines: list[CodeLine]) -> list[Finding]:
        public_functions: list[CodeLine] = []
        depth = 0
        in_class = False
        opened = False
        for line in lines:
            code = line.code
            if not in_class:
                if _USE_CASE_CLASS_RE.search(code) is None:
                    continue
                in_class = True
            elif depth == 1:
                match = FUN_DECL_RE.search(code)
                if match is not None and _NON_PUBLIC_RE.search(code[: match.start() + 1]) is None:
                    public_functions.append(line)

            depth += brace_delta(code)
            if "{" in code:
                opened = True
            if opened and depth <= 0:
                break

        if len(public_functions) > 1:
            first = public_functions[0]
            names = ", ".join(
                m.group("name") for m in (FUN_DECL_RE.search(f.code) for f in public_functions) if m is not None
            )
            return [
                self._finding(
                    file,
                    rule="use-case-multiple-public-functions",
                    line=first.line_no,
                    priority="high",
                    effort="medium",
                    title="Use Case Has Multiple Public Functions",
                    description=f"A use case should expose one operation; found {len(public_functions)}: {names}.",
                    recommendation="Split the use case, or make helpers private and keep a single `operator fun invoke`.",
                    snippet=first.raw,
                )
            ]
        if len(public_functions) == 1 and _INVOKE_RE.search(public_functions[0].code) is None:
            only = public_functions[0]
            return [
                self._finding(
                    file,
                    rule="use-case-missing-invoke",
                    line=only.line_no,
                    priority="medium",
                    effort="trivial",
                    title="Use Case Missing operator fun invoke",
                    description="The single public function of a use case should be `operator fun invoke`.",
                    recommendation="Rename the function to `invoke` and mark it `operator`.",
                    snippet=only.raw,
                    before="class GetMealsUseCase {\n    fun execute(): Flow<List<Meal>>\n}",
                    after="class GetMealsUseCase {\n    operator fun invoke(): Flow<List<Meal>>\n}",
                    auto_fixable=True,
                    auto_fix="rename-to-invoke",
                )
            ]
        return []
