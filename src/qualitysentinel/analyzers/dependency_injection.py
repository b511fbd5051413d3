from __future__ import annotations

import re
from collections.abc import Sequence

from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.analyzers.utils import (
    CodeLine,
    annotations_above,
    code_lines,
    collect_signature,
    is_kotlin_source,
    is_test_path,
)
from qualitysentinel.engine.types import FileInfo, Finding

_CLASS_RE = re.compile(
    r"^\s*(?P<mods>(?:(?:public|internal|private|open|abstract|final|data|sealed|enum|annotation|inner)\s+)*)"
    r"(?P<kind>class|object)\s+(?P<name>\w+)"
)
_VIEWMODEL_SUPER_RE = re.compile(r":\s*(?:[\w.]+\s*,\s*)*(?:Android)?ViewModel\s*\(")
_INJECTABLE_SUFFIXES = ("ViewModel", "UseCase", "Repository", "RepositoryImpl", "DataSource")
_INJECT_CONSTRUCTOR_RE = re.compile(r"@Inject\s+constructor\b")
_PROVIDES_PASSTHROUGH_RE = re.compile(
    r"\bfun\s+(?P<fn>\w+)\s*\(\s*(?P<param>\w+)\s*:\s*(?P<impl>[\w.]+)\s*\)\s*:\s*(?P<iface>[\w.<>]+)\s*=\s*(?P=param)\s*$"
)


def _primary_constructor_params(header: str, name: str) -> str:
    after_name = header.split(name, 1)[1] if name in header else ""
    after_name = re.sub(r"^\s*(?:<[^>]*>)?\s*(?:(?:@\w+\s+)*(?:private|internal|public|protected)?\s*constructor)?", "", after_name)
    if not after_name.startswith("("):
        return ""
    depth = 0
    for idx, ch in enumerate(after_name):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return after_name[1:idx].strip()
    return after_name[1:].strip()


class DependencyInjectionAnalyzer(BaseAnalyzer):
    """Hilt wiring: annotated ViewModels, constructor injection and well-formed modules."""

    analyzer_id = "dependency-injection"
    name = "Dependency Injection Analyzer"
    category = "dependency-injection"
    description = "Checks Hilt annotations on ViewModels, injectable classes and modules."

    def applies_to(self, file: FileInfo) -> bool:
        return is_kotlin_source(file.relative_path) and not is_test_path(file.relative_path)

    def analyze(self, file: FileInfo, content: str) -> list[Finding]:
        lines = code_lines(content)
        findings: list[Finding] = []
        for index, line in enumerate(lines):
            match = _CLASS_RE.match(line.code)
            if match is not None:
                findings.extend(self._check_class(file, lines, index, match))
        findings.extend(self._check_provides(file, lines))
        return findings

    def _check_class(self, file: FileInfo, lines: Sequence[CodeLine], index: int, match: re.Match[str]) -> list[Finding]:
        line = lines[index]
        name = match.group("name")
        modifiers = set(match.group("mods").split())
        kind = match.group("kind")
        annotations = annotations_above(lines, index)
        inline_annotations = line.code[: match.start("kind")]

        def annotated(marker: str) -> bool:
            return marker in inline_annotations or any(a.startswith(marker) for a in annotations)

        header, _end = collect_signature(lines, index, max_lines=30)
        out: list[Finding] = []

        if name.endswith("Module") and (kind == "object" or "abstract" in modifiers):
            if not annotated("@Module"):
                out.append(
                    self._finding(
                        file,
                        rule="missing-module-annotation",
                        line=line.line_no,
                        priority="high",
                        effort="trivial",
                        title=f"Hilt Module Missing @Module Annotation: {name}",
                        description=f"`{name}` looks like a Hilt module but Hilt will not see it without `@Module`.",
                        recommendation="Annotate the module with `@Module` and `@InstallIn(...)`.",
                        snippet=line.raw,
                        after=f"@Module\n@InstallIn(SingletonComponent::class)\nobject {name} {{ ... }}",
                        auto_fixable=True,
                        auto_fix="add-module-annotation",
                    )
                )
            elif not annotated("@InstallIn"):
                out.append(
                    self._finding(
                        file,
                        rule="missing-install-in",
                        line=line.line_no,
                        priority="high",
                        effort="trivial",
                        title=f"Hilt Module Missing @InstallIn Annotation: {name}",
                        description=f"`@Module` `{name}` is not installed in any Hilt component.",
                        recommendation="Add `@InstallIn(SingletonComponent::class)` (or the narrowest fitting component).",
                        snippet=line.raw,
                    )
                )
            return out

        if kind != "class" or modifiers & {"data", "sealed", "enum", "annotation", "abstract"}:
            return out

        if _VIEWMODEL_SUPER_RE.search(header) and not annotated("@HiltViewModel"):
            out.append(
                self._finding(
                    file,
                    rule="missing-hilt-viewmodel",
                    line=line.line_no,
                    priority="high",
                    effort="trivial",
                    title=f"ViewModel Missing @HiltViewModel Annotation: {name}",
                    description=f"`{name}` cannot be obtained with `hiltViewModel()` without `@HiltViewModel`.",
                    recommendation="Annotate the class with `@HiltViewModel` and use `@Inject constructor`.",
                    snippet=line.raw,
                    before=f"class {name}(private val repo: Repo) : ViewModel()",
                    after=f"@HiltViewModel\nclass {name} @Inject constructor(\n    private val repo: Repo\n) : ViewModel()",
                    auto_fixable=True,
                    auto_fix="add-hilt-viewmodel",
                )
            )

        if name.endswith(_INJECTABLE_SUFFIXES) and _INJECT_CONSTRUCTOR_RE.search(header) is None:
            if _primary_constructor_params(header, name):
                out.append(
                    self._finding(
                        file,
                        rule="missing-inject-constructor",
                        line=line.line_no,
                        priority="high",
                        effort="trivial",
                        title=f"Constructor Missing @Inject Annotation: {name}",
                        description=f"`{name}` takes dependencies but Hilt cannot construct it.",
                        recommendation=f"Declare `class {name} @Inject constructor(...)`.",
                        snippet=line.raw,
                        auto_fixable=True,
                        auto_fix="add-inject-constructor",
                    )
                )
        return out

    def _check_provides(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        for index, line in enumerate(lines):
            match = _PROVIDES_PASSTHROUGH_RE.search(line.code)
            if match is None:
                continue
            provides = "@Provides" in line.code or any(a.startswith("@Provides") for a in annotations_above(lines, index))
            if not provides:
                continue
            impl, iface = match.group("impl"), match.group("iface")
            findings.append(
                self._finding(
                    file,
                    rule="prefer-binds",
                    line=line.line_no,
                    priority="medium",
                    effort="small",
                    title=f"Consider @Binds Instead of @Provides: {match.group('fn')}",
                    description=f"The provider only returns its `{impl}` argument as `{iface}`.",
                    recommendation="Declare an abstract `@Binds` function in an abstract module; Hilt generates less code.",
                    snippet=line.raw,
                    before=f"@Provides\nfun {match.group('fn')}(impl: {impl}): {iface} = impl",
                    after=f"@Binds\nabstract fun bind{iface}(impl: {impl}): {iface}",
                )
            )
        return findings
