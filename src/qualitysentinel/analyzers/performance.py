from __future__ import annotations

import re
from collections.abc import Iterator, Sequence

from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.analyzers.utils import (
    FUN_DECL_RE,
    CodeLine,
    OpenConstruct,
    ScopeTracker,
    annotations_above,
    code_lines,
    collect_signature,
    is_kotlin_source,
    is_test_path,
    parameter_section,
    parse_parameters,
)
from qualitysentinel.engine.types import FileInfo, Finding

_LOOP_START_RE = re.compile(r"^\s*(?:for|while)\s*\(|\.forEach(?:Indexed)?\s*[{(]|\brepeat\s*\(|^\s*do\s*\{")
_CHAIN_OP_RE = re.compile(r"\.(?:filter\w*|map\w*|flatMap\w*|distinct\w*|sorted\w*)\s*[({]")
_MATERIALIZE_RE = re.compile(r"\.to(?:List|Set|MutableList)\s*\(\s*\)")
_SEQUENCE_RE = re.compile(r"\.asSequence\s*\(\s*\)")
_STRING_VAR_RE = re.compile(r"^\s*var\s+(?P<name>\w+)\s*(?::\s*String\??\s*)?(?:=\s*(?P<init>\S.*))?$")
_UNSTABLE_TYPES = ("MutableList", "ArrayList", "MutableSet", "HashSet", "MutableMap", "HashMap", "Array<")


def iter_loops(lines: Sequence[CodeLine]) -> Iterator[OpenConstruct]:
    """Yield every outermost loop (`for`, `while`, `do`, `forEach`, `repeat`) with its body."""

    tracker = ScopeTracker()
    for line in lines:
        if not tracker.inside:
            if _LOOP_START_RE.search(line.code) is None:
                continue
            tracker.open(line, kind="loop")
        closed = tracker.advance(line)
        if closed is not None:
            yield closed
    leftover = tracker.finish()
    if leftover is not None:
        yield leftover


def _string_variables(lines: Sequence[CodeLine]) -> set[str]:
    names: set[str] = set()
    for line in lines:
        match = _STRING_VAR_RE.match(line.code)
        if match is None:
            continue
        init = (match.group("init") or "").strip()
        if ": String" in line.code or init.startswith('"'):
            names.add(match.group("name"))
    return names


class PerformanceAnalyzer(BaseAnalyzer):
    """Hot-path allocations in loops and recomposition-unfriendly Compose parameters."""

    analyzer_id = "performance"
    name = "Performance Analyzer"
    category = "performance"
    description = "Checks collection chains and string building in loops, and unstable Compose parameters."

    def applies_to(self, file: FileInfo) -> bool:
        return is_kotlin_source(file.relative_path) and not is_test_path(file.relative_path)

    def analyze(self, file: FileInfo, content: str) -> list[Finding]:
        lines = code_lines(content)
        string_vars = _string_variables(lines)
        findings: list[Finding] = []
        for loop in iter_loops(lines):
            findings.extend(self._check_loop(file, loop, string_vars))
        if "@Composable" in content:
            findings.extend(self._check_compose_parameters(file, lines))
        return findings

    def _check_loop(self, file: FileInfo, loop: OpenConstruct, string_vars: set[str]) -> list[Finding]:
        findings: list[Finding] = []
        concat_res = [
            re.compile(rf"\b{re.escape(name)}\s*\+=|\b{re.escape(name)}\s*=\s*{re.escape(name)}\s*\+")
            for name in sorted(string_vars)
        ]
        for line in loop.body:
            code = line.code
            operations = 0 if _SEQUENCE_RE.search(code) else len(_CHAIN_OP_RE.findall(code))
            if operations >= 2 or (operations >= 1 and _MATERIALIZE_RE.search(code)):
                findings.append(
                    self._finding(
                        file,
                        rule="collection-chain-in-loop",
                        line=line.line_no,
                        priority="medium",
                        effort="trivial",
                        title="Inefficient Collection Chain in Loop",
                        description=(
                            f"Each pass of the loop starting at line {loop.start_line} allocates an intermediate "
                            "list per chained operation."
                        ),
                        recommendation="Use `asSequence()` for the chain, or hoist the work out of the loop.",
                        snippet=line.raw,
                        before="for (i in items) {\n    val r = data.filter { it > i }.map { it * 2 }\n}",
                        after="for (i in items) {\n    val r = data.asSequence().filter { it > i }.map { it * 2 }.toList()\n}",
                        references=("https://kotlinlang.org/docs/sequences.html",),
                    )
                )
            for pattern in concat_res:
                match = pattern.search(code)
                if match is None:
                    continue
                findings.append(
                    self._finding(
                        file,
                        rule="string-concat-in-loop",
                        line=line.line_no,
                        priority="medium",
                        effort="small",
                        title="String Concatenation in Loop",
                        description=(
                            "Concatenating strings in a loop copies the whole string on every iteration."
                        ),
                        recommendation="Build the value with `buildString { append(...) }` or a StringBuilder.",
                        snippet=line.raw,
                        before='var s = ""\nfor (x in xs) {\n    s += x\n}',
                        after="val s = buildString {\n    for (x in xs) append(x)\n}",
                    )
                )
                break
        return findings

    def _check_compose_parameters(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        for index, line in enumerate(lines):
            match = FUN_DECL_RE.search(line.code)
            if match is None:
                continue
            composable = "@Composable" in line.code or any(
                a.startswith("@Composable") for a in annotations_above(lines, index)
            )
            if not composable:
                continue
            signature, _end = collect_signature(lines, index)
            section = parameter_section(signature)
            if not section:
                continue
            unstable = [p for p in parse_parameters(section) if any(t in p.type for t in _UNSTABLE_TYPES)]
            if not unstable:
                continue
            name = match.group("name")
            listed = ", ".join(f"{p.name}: {p.type}" for p in unstable)
            findings.append(
                self._finding(
                    file,
                    rule="unstable-compose-parameter",
                    line=line.line_no,
                    priority="medium",
                    effort="small",
                    title=f"Unstable Compose Parameters: {name}",
                    description=(
                        f"`{name}` takes mutable or array types ({listed}); Compose cannot skip "
                        "recomposition for unstable parameters."
                    ),
                    recommendation="Accept read-only `List`/`Set`/`Map`, or an `@Immutable` wrapper / ImmutableList.",
                    snippet=line.raw,
                    references=("https://developer.android.com/jetpack/compose/performance/stability",),
                )
            )
        return findings
