from __future__ import annotations

import re
from collections.abc import Sequence

from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.analyzers.utils import (
    FUN_DECL_RE,
    CodeLine,
    annotations_above,
    brace_delta,
    code_lines,
    is_kotlin_source,
    stem,
)
from qualitysentinel.engine.types import FileInfo, Finding

_TYPE_DECL_RE = re.compile(
    r"^\s*(?:(?:public|internal|private|protected|open|abstract|final|data|sealed|enum|annotation|inner|value|fun)\s+)*"
    r"(?:class|interface|object)\s+(?P<name>\w+)"
)
_CONST_RE = re.compile(r"^\s*(?:(?:private|internal|public|protected)\s+)?const\s+val\s+(?P<name>\w+)")
_COMPANION_VAL_RE = re.compile(r"^\s*(?:(?:private|internal|public|protected)\s+)?val\s+(?P<name>\w+)")
_PRIVATE_STATE_RE = re.compile(r"^\s*private\s+(?:val|var)\s+(?P<name>\w+)")
_MUTABLE_STATE_RE = re.compile(
    r"\b(?:MutableStateFlow|MutableSharedFlow|MutableLiveData|mutableStateOf|mutableStateListOf|mutableStateMapOf)\b"
)
_OPERATOR_NAMES = frozenset(
    {
        "plus", "minus", "times", "div", "rem", "mod", "rangeTo", "contains", "get", "set",
        "plusAssign", "minusAssign", "timesAssign", "divAssign", "remAssign", "inc", "dec",
        "unaryPlus", "unaryMinus", "not", "equals", "compareTo", "iterator", "next", "hasNext",
        "invoke", "component1", "component2", "component3", "component4", "component5",
    }
)


def is_pascal_case(name: str) -> bool:
    if not name or not name[0].isupper():
        return False
    if "_" in name and not name.endswith("Test"):
        return False
    return not all(ch.isupper() or ch.isdigit() or ch == "_" for ch in name) or len(name) == 1


def is_camel_case(name: str) -> bool:
    return bool(name) and name[0].islower() and "_" not in name


def is_upper_snake_case(name: str) -> bool:
    return bool(name) and all(ch.isupper() or ch.isdigit() or ch == "_" for ch in name)


def to_upper_snake_case(name: str) -> str:
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name).upper()


class NamingAnalyzer(BaseAnalyzer):
    """Kotlin naming conventions for files, types, functions, constants and backing state."""

    analyzer_id = "naming"
    name = "Naming Analyzer"
    category = "naming"
    description = "Checks PascalCase, camelCase, UPPER_SNAKE_CASE and underscore-prefixed state."

    def applies_to(self, file: FileInfo) -> bool:
        return is_kotlin_source(file.relative_path)

    def analyze(self, file: FileInfo, content: str) -> list[Finding]:
        lines = code_lines(content)
        findings = self._check_file_name(file)
        findings.extend(self._check_declarations(file, lines))
        findings.extend(self._check_constants(file, lines))
        return findings

    def _check_file_name(self, file: FileInfo) -> list[Finding]:
        name = stem(file.relative_path)
        if is_pascal_case(name):
            return []
        return [
            self._finding(
                file,
                rule="file-name-case",
                line=1,
                priority="low",
                effort="trivial",
                title=f"File Name Not PascalCase: {name}.kt",
                description="Kotlin files are named after the main declaration they contain, in PascalCase.",
                recommendation="Rename the file to match its primary class, for example `MealRepository.kt`.",
            )
        ]

    def _check_declarations(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        for index, line in enumerate(lines):
            type_match = _TYPE_DECL_RE.match(line.code)
            if type_match is not None:
                name = type_match.group("name")
                if not is_pascal_case(name):
                    findings.append(
                        self._finding(
                            file,
                            rule="class-name-case",
                            line=line.line_no,
                            priority="low",
                            effort="small",
                            title=f"Type Name Not PascalCase: {name}",
                            description=f"`{name}` does not follow PascalCase.",
                            recommendation="Rename the type in PascalCase and update its usages.",
                            snippet=line.raw,
                        )
                    )

            fun_match = FUN_DECL_RE.search(line.code)
            if fun_match is not None:
                name = fun_match.group("name")
                if name.startswith("`") or name.startswith("test") or name in _OPERATOR_NAMES:
                    pass
                elif is_camel_case(name):
                    pass
                elif self._is_composable(lines, index, line) and is_pascal_case(name):
                    pass
                else:
                    findings.append(
                        self._finding(
                            file,
                            rule="function-name-case",
                            line=line.line_no,
                            priority="low",
                            effort="small",
                            title=f"Function Name Not camelCase: {name}",
                            description=f"`{name}` does not follow camelCase.",
                            recommendation="Rename the function in camelCase (composables may use PascalCase).",
                            snippet=line.raw,
                        )
                    )

            state_match = _PRIVATE_STATE_RE.match(line.code)
            if state_match is not None and _MUTABLE_STATE_RE.search(line.code):
                name = state_match.group("name")
                if not name.startswith("_"):
                    findings.append(
                        self._finding(
                            file,
                            rule="private-state-underscore",
                            line=line.line_no,
                            priority="low",
                            effort="trivial",
                            title=f"Private Mutable State Missing Underscore Prefix: {name}",
                            description=f"Backing state `{name}` should read as private at call sites.",
                            recommendation=f"Rename to `_{name}` and expose a read-only `{name}`.",
                            snippet=line.raw,
                            auto_fixable=True,
                            auto_fix=f"rename:_{name}",
                        )
                    )
        return findings

    @staticmethod
    def _is_composable(lines: Sequence[CodeLine], index: int, line: CodeLine) -> bool:
        if "@Composable" in line.code:
            return True
        return any(a.startswith("@Composable") for a in annotations_above(lines, index))

    def _check_constants(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        depth = 0
        companion_depth: int | None = None
        for line in lines:
            code = line.code
            match = _CONST_RE.match(code)
            if match is None and companion_depth is not None and depth == companion_depth:
                candidate = _COMPANION_VAL_RE.match(code)
                # A companion `val` with a custom getter is computed, not a constant.
                if candidate is not None and "get()" not in code and "by " not in code:
                    match = candidate
            if match is not None:
                name = match.group("name")
                if not is_upper_snake_case(name):
                    findings.append(
                        self._finding(
                            file,
                            rule="constant-name-case",
                            line=line.line_no,
                            priority="low",
                            effort="trivial",
                            title=f"Constant Not UPPER_SNAKE_CASE: {name}",
                            description=f"Constant `{name}` does not follow UPPER_SNAKE_CASE.",
                            recommendation=f"Rename to `{to_upper_snake_case(name)}`.",
                            snippet=line.raw,
                            auto_fixable=True,
                            auto_fix=f"rename:{to_upper_snake_case(name)}",
                        )
                    )

            if companion_depth is None and re.search(r"\bcompanion\s+object\b", code) and "{" in code:
                companion_depth = depth + 1
            depth += brace_delta(code)
            if companion_depth is not None and depth < companion_depth:
                companion_depth = None
        return findings
