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
    brace_delta,
    code_lines,
    collect_signature,
    parameter_section,
    parse_parameters,
)
from qualitysentinel.engine.types import FileInfo, Finding
from qualitysentinel.utils import file_name, padded_path

_LAZY_CONTAINER_RE = re.compile(r"\b(?:LazyColumn|LazyVerticalGrid|LazyVerticalStaggeredGrid)\b")
_ITEMS_CALL_RE = re.compile(r"\bitems(?:Indexed)?\s*\(")
_KEY_ARG_RE = re.compile(r"\bkey\s*=")
_LOCAL_PROPERTY_RE = re.compile(r"^\s*(?:val|var)\s+(?P<name>\w+)\s*(?::[^=]+)?=(?!=)\s*(?P<rhs>.+)$")
_EXPENSIVE_CALL_RE = re.compile(
    r"\.(?:filter|map|flatMap|sorted|sortedBy|sortedWith|groupBy|partition|associate|distinct)\w*\s*[({]"
)
_REMEMBER_RE = re.compile(r"\b(?:remember|rememberSaveable|derivedStateOf)\b")


def _is_composable(lines: Sequence[CodeLine], index: int) -> bool:
    if "@Composable" in lines[index].code:
        return True
    return any(a.startswith("@Composable") for a in annotations_above(lines, index))


def iter_composables(lines: Sequence[CodeLine]) -> Iterator[OpenConstruct]:
    """Yield the full extent of each `@Composable` function in the file."""

    tracker = ScopeTracker()
    composable = False
    for index, line in enumerate(lines):
        if not tracker.inside:
            match = FUN_DECL_RE.search(line.code)
            if match is None:
                continue
            composable = _is_composable(lines, index)
            tracker.open(line, kind="function", label=match.group("name").strip("`"))
        closed = tracker.advance(line)
        if closed is not None and composable:
            yield closed
    leftover = tracker.finish()
    if leftover is not None and composable:
        yield leftover


class ComposeAnalyzer(BaseAnalyzer):
    """Jetpack Compose conventions for UI-layer composables."""

    analyzer_id = "compose"
    name = "Compose Analyzer"
    category = "compose"
    description = "Checks Modifier parameters, lazy lists and remembered computations."

    def applies_to(self, file: FileInfo) -> bool:
        if file.layer != "ui":
            return False
        return "/ui/" in padded_path(file.relative_path) or file_name(file.relative_path).endswith("Screen.kt")

    def analyze(self, file: FileInfo, content: str) -> list[Finding]:
        if "@Composable" not in content:
            return []
        findings: list[Finding] = []
        for function in iter_composables(code_lines(content)):
            findings.extend(self._check_modifier(file, function))
            findings.extend(self._check_lazy_lists(file, function))
            findings.extend(self._check_remember(file, function))
        return findings

    def _check_modifier(self, file: FileInfo, function: OpenConstruct) -> list[Finding]:
        signature, _end = collect_signature(function.lines, 0)
        if re.search(r"\bprivate\b", signature.split("fun", 1)[0]):
            return []
        section = parameter_section(signature)
        params = parse_parameters(section) if section else []
        modifier = next((p for p in params if "Modifier" in p.type), None)
        first = function.lines[0]
        if modifier is None:
            return [
                self._finding(
                    file,
                    rule="missing-modifier-parameter",
                    line=first.line_no,
                    priority="medium",
                    effort="small",
                    title=f"Composable Missing Modifier Parameter: {function.label}",
                    description=(
                        f"Public composable `{function.label}` takes no `Modifier`, so callers cannot adjust "
                        "its layout, padding or semantics."
                    ),
                    recommendation="Add `modifier: Modifier = Modifier` and apply it to the root layout.",
                    snippet=first.raw,
                    before="@Composable\nfun MealCard(meal: Meal) {\n    Card { ... }\n}",
                    after="@Composable\nfun MealCard(meal: Meal, modifier: Modifier = Modifier) {\n    Card(modifier = modifier) { ... }\n}",
                    references=("https://developer.android.com/jetpack/compose/modifiers",),
                )
            ]
        if modifier.default is None:
            return [
                self._finding(
                    file,
                    rule="modifier-without-default",
                    line=first.line_no,
                    priority="low",
                    effort="trivial",
                    title=f"Modifier Parameter Missing Default Value: {function.label}",
                    description=f"`{modifier.name}` has no default, so every caller must pass one.",
                    recommendation=f"Declare `{modifier.name}: Modifier = Modifier`.",
                    snippet=first.raw,
                    auto_fixable=True,
                    auto_fix="add-modifier-default",
                )
            ]
        return []

    def _check_lazy_lists(self, file: FileInfo, function: OpenConstruct) -> list[Finding]:
        findings: list[Finding] = []
        lines = function.lines
        depth = 0
        lazy_depths: list[int] = []
        pending_lazy = False
        for index, line in enumerate(lines):
            code = line.code
            if _LAZY_CONTAINER_RE.search(code):
                if lazy_depths:
                    findings.append(
                        self._finding(
                            file,
                            rule="nested-lazy-column",
                            line=line.line_no,
                            priority="high",
                            effort="medium",
                            title="Nested Lazy List Detected",
                            description=(
                                "A lazy list inside another lazy list measures with infinite height and "
                                "crashes or defeats virtualization."
                            ),
                            recommendation="Flatten into one LazyColumn using `item {}` / `items {}` sections.",
                            snippet=line.raw,
                        )
                    )
                pending_lazy = True

            if _ITEMS_CALL_RE.search(code) and (lazy_depths or pending_lazy):
                call_text, _end = collect_signature(lines, index)
                if _KEY_ARG_RE.search(call_text) is None:
                    findings.append(
                        self._finding(
                            file,
                            rule="lazy-items-without-key",
                            line=line.line_no,
                            priority="medium",
                            effort="trivial",
                            title="Lazy items() Missing key Parameter",
                            description=(
                                "Without stable keys, item state is tied to position and is lost or "
                                "misassigned when the list changes."
                            ),
                            recommendation="Pass `key = { it.id }` to `items(...)`.",
                            snippet=line.raw,
                            before="items(meals) { meal -> MealCard(meal) }",
                            after="items(meals, key = { it.id }) { meal -> MealCard(meal) }",
                        )
                    )

            if pending_lazy and "{" in code[_lazy_offset(code) :]:
                lazy_depths.append(depth + 1)
                pending_lazy = False
            depth += brace_delta(code)
            while lazy_depths and depth < lazy_depths[-1]:
                lazy_depths.pop()
        return findings

    def _check_remember(self, file: FileInfo, function: OpenConstruct) -> list[Finding]:
        findings: list[Finding] = []
        for line in function.body:
            match = _LOCAL_PROPERTY_RE.match(line.code)
            if match is None:
                continue
            rhs = match.group("rhs")
            if _EXPENSIVE_CALL_RE.search(rhs) is None or _REMEMBER_RE.search(rhs) is not None:
                continue
            name = match.group("name")
            findings.append(
                self._finding(
                    file,
                    rule="unremembered-computation",
                    line=line.line_no,
                    priority="medium",
                    effort="small",
                    title=f"Expensive Computation Not Wrapped in remember: {name}",
                    description=f"`{name}` is recomputed on every recomposition.",
                    recommendation="Wrap the computation in `remember(inputs) { ... }` or `derivedStateOf`.",
                    snippet=line.raw,
                    before="val visible = meals.filter { it.isVisible }",
                    after="val visible = remember(meals) { meals.filter { it.isVisible } }",
                )
            )
        return findings


def _lazy_offset(code: str) -> int:
    match = _LAZY_CONTAINER_RE.search(code)
    return match.start() if match is not None else 0
