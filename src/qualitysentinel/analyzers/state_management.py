from __future__ import annotations

import re
from collections.abc import Sequence

from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.analyzers.utils import (
    FUN_DECL_RE,
    CodeLine,
    ScopeTracker,
    brace_delta,
    code_lines,
    collect_signature,
)
from qualitysentinel.engine.types import FileInfo, Finding
from qualitysentinel.utils import padded_path

_VIEWMODEL_MARKERS = (": ViewModel()", ":ViewModel()", ": AndroidViewModel(", "@HiltViewModel")
_MUTABLE_HOLDER_RE = re.compile(
    r"\b(?:MutableStateFlow|MutableSharedFlow|MutableLiveData|mutableStateOf|mutableStateListOf|mutableStateMapOf)\b"
)
_PROPERTY_RE = re.compile(r"^\s*(?P<mods>(?:[a-z]+\s+)*)(?:val|var)\s+(?P<name>\w+)")
_HIDDEN_MODIFIERS = frozenset({"private", "protected"})
_DIRECT_VALUE_WRITE_RE = re.compile(r"\b(?P<name>_\w+)\.value\s*=(?!=)")
_LAUNCH_RE = re.compile(r"(?:(?P<recv>[\w.]+(?:\([^()]*\))?)\s*\.\s*)?\blaunch\s*[({]")
_SCOPE_BLOCK_RE = re.compile(r"\b(?:viewModelScope|coroutineScope|supervisorScope)\b")
_FLOW_RETURN_RE = re.compile(r"\)\s*:\s*Flow<")
_DB_OPERATION_RE = re.compile(r"\b(?:dao|database|db)\.|\.query\(|\.rawQuery\(")


def is_viewmodel_source(content: str) -> bool:
    return any(marker in content for marker in _VIEWMODEL_MARKERS)


class StateManagementAnalyzer(BaseAnalyzer):
    """Unidirectional state in ViewModels and off-main-thread repository flows."""

    analyzer_id = "state-management"
    name = "State Management Analyzer"
    category = "state-management"
    description = "Checks state encapsulation, state updates, coroutine scopes and Flow dispatchers."

    def applies_to(self, file: FileInfo) -> bool:
        if file.layer == "ui":
            return True
        return file.layer == "data" and "/repository/" in padded_path(file.relative_path)

    def analyze(self, file: FileInfo, content: str) -> list[Finding]:
        lines = code_lines(content)
        if file.layer == "ui":
            if not is_viewmodel_source(content):
                return []
            findings = self._check_exposed_state(file, lines)
            findings.extend(self._check_direct_mutation(file, lines))
            findings.extend(self._check_launch_scope(file, lines))
            return findings
        return self._check_flow_dispatchers(file, lines)

    def _check_exposed_state(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        depth = 0
        for line in lines:
            # Class members sit directly inside the top-level class body.
            if depth == 1:
                match = _PROPERTY_RE.match(line.code)
                if match is not None and _MUTABLE_HOLDER_RE.search(line.code):
                    modifiers = set(match.group("mods").split())
                    if not modifiers & _HIDDEN_MODIFIERS:
                        name = match.group("name")
                        findings.append(
                            self._finding(
                                file,
                                rule="exposed-mutable-state",
                                line=line.line_no,
                                priority="high",
                                effort="small",
                                title=f"ViewModel Exposes Mutable State: {name}",
                                description=(
                                    f"`{name}` is a public mutable state holder, so the UI can write state "
                                    "the ViewModel owns."
                                ),
                                recommendation=(
                                    "Keep the mutable holder private behind an underscore name and expose a "
                                    "read-only view with `asStateFlow()`."
                                ),
                                snippet=line.raw,
                                before="val uiState = MutableStateFlow(UiState())",
                                after=(
                                    "private val _uiState = MutableStateFlow(UiState())\n"
                                    "val uiState: StateFlow<UiState> = _uiState.asStateFlow()"
                                ),
                            )
                        )
            depth += brace_delta(line.code)
        return findings

    def _check_direct_mutation(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        for line in lines:
            match = _DIRECT_VALUE_WRITE_RE.search(line.code)
            if match is None or ".update" in line.code:
                continue
            name = match.group("name")
            findings.append(
                self._finding(
                    file,
                    rule="direct-state-mutation",
                    line=line.line_no,
                    priority="medium",
                    effort="trivial",
                    title=f"Direct State Assignment: {name}.value",
                    description=(
                        f"Assigning `{name}.value` from a read-modify-write races with concurrent updates."
                    ),
                    recommendation=f"Use `{name}.update {{ it.copy(...) }}` for atomic updates.",
                    snippet=line.raw,
                    before=f"{name}.value = {name}.value.copy(isLoading = true)",
                    after=f"{name}.update {{ it.copy(isLoading = true) }}",
                    auto_fixable=True,
                    auto_fix="use-update",
                )
            )
        return findings

    def _check_launch_scope(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        depth = 0
        scoped: list[int] = []
        for line in lines:
            code = line.code
            for match in _LAUNCH_RE.finditer(code):
                receiver = match.group("recv")
                if receiver is None:
                    allowed = bool(scoped)
                else:
                    allowed = "viewModelScope" in receiver
                if allowed:
                    continue
                findings.append(
                    self._finding(
                        file,
                        rule="launch-outside-viewmodel-scope",
                        line=line.line_no,
                        priority="medium",
                        effort="small",
                        title="Coroutine Launched Outside viewModelScope",
                        description=(
                            "Coroutines started outside `viewModelScope` are not cancelled when the "
                            "ViewModel is cleared and can leak work or update dead UI state."
                        ),
                        recommendation="Launch from `viewModelScope.launch { ... }`.",
                        snippet=line.raw,
                        discriminator=str(match.start()) if match.start() else None,
                    )
                )

            if _SCOPE_BLOCK_RE.search(code) and "{" in code:
                scoped.append(depth + 1)
            depth += brace_delta(code)
            while scoped and depth < scoped[-1]:
                scoped.pop()
        return findings

    def _check_flow_dispatchers(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        tracker = ScopeTracker()
        for line in lines:
            if not tracker.inside:
                match = FUN_DECL_RE.search(line.code)
                if match is None:
                    continue
                tracker.open(line, kind="function", label=match.group("name").strip("`"))
            function = tracker.advance(line)
            if function is None:
                continue

            signature, _end = collect_signature(function.lines, 0)
            after_params = signature + " " + " ".join(l.code for l in function.lines[:3])
            if _FLOW_RETURN_RE.search(after_params) is None:
                continue
            body = " ".join(l.code for l in function.lines)
            if _DB_OPERATION_RE.search(body) is None or "flowOn(" in body:
                continue
            first = function.lines[0]
            findings.append(
                self._finding(
                    file,
                    rule="missing-flow-on",
                    line=first.line_no,
                    priority="high",
                    effort="trivial",
                    title=f"Flow Missing flowOn Dispatcher: {function.label}",
                    description=(
                        f"`{function.label}` returns a Flow that performs database work without `flowOn`, "
                        "so the work runs on the collector's dispatcher (often Main)."
                    ),
                    recommendation="Append `.flowOn(ioDispatcher)` to the returned flow.",
                    snippet=first.raw,
                    before="fun meals(): Flow<List<Meal>> = dao.observeAll().map { it.toDomain() }",
                    after="fun meals(): Flow<List<Meal>> =\n    dao.observeAll().map { it.toDomain() }.flowOn(ioDispatcher)",
                )
            )
        return findings
