from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from dataclasses import replace

from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.analyzers.utils import (
    FUN_DECL_RE,
    CodeLine,
    OpenConstruct,
    ScopeTracker,
    code_lines,
    collect_signature,
)
from qualitysentinel.engine.types import FileInfo, Finding
from qualitysentinel.utils import file_name, padded_path

_RISKY_OPERATION_RE = re.compile(
    r"(?:dao|api|database|db)\.|\bretrofit\b|\bokhttp\b|\bFile\(|\b\w*(?:Input|Output)Stream\b",
    re.IGNORECASE,
)
_HANDLED_RE = re.compile(r"\bcatch\b|\brunCatching\b")
_MAPPED_RE = re.compile(r"\bAppError\b|\bmapException\b|\btoAppError\b|\bResult\.failure\b")
_FAILABLE_RE = re.compile(r"\bthrow\s|\brequire\s*\(|\bcheck\s*\(|\berror\s*\(")
_RESULT_RETURN_RE = re.compile(r"\)\s*:\s*(?:kotlin\.)?Result<")
_THROW_RE = re.compile(r"\bthrow\s")
_CATCH_RE = re.compile(r"\bcatch\s*\(\s*(?P<name>\w+)\s*:\s*(?P<type>[\w.]+)\s*\)")
_GENERIC_TYPES = frozenset({"Exception", "Throwable", "kotlin.Exception", "java.lang.Exception", "kotlin.Throwable"})
_LOG_ONLY_RE = re.compile(
    r"^(?:Log\.[a-z]+\(.*\)|Timber\.[a-z]+\(.*\)|logger\.\w+\(.*\)|println\(.*\)|\w+\.printStackTrace\(\))$"
)
_NON_PUBLIC_RE = re.compile(r"\b(?:private|protected)\b")


def _iter_functions(lines: Sequence[CodeLine]) -> Iterator[OpenConstruct]:
    tracker = ScopeTracker()
    for line in lines:
        if not tracker.inside:
            match = FUN_DECL_RE.search(line.code)
            if match is None:
                continue
            tracker.open(line, kind="function", label=match.group("name").strip("`"))
        closed = tracker.advance(line)
        if closed is not None:
            yield closed
    leftover = tracker.finish()
    if leftover is not None:
        yield leftover


def _catch_body(lines: Sequence[CodeLine], index: int, start: int) -> tuple[str, int]:
    """
    Return the code inside the `{}` of a catch clause starting at `lines[index].code[start:]`.

    The clause line is cut at the `catch` keyword so a preceding `}` (closing
    the try block) does not count against the clause's own braces.
    """

    tracker = ScopeTracker()
    first = replace(lines[index], code=lines[index].code[start:])
    tracker.open(first, kind="catch")
    closed = tracker.advance(first)
    idx = index
    while closed is None and idx + 1 < len(lines):
        idx += 1
        closed = tracker.advance(lines[idx])
    if closed is None:
        closed = tracker.finish()
    assert closed is not None
    text = "\n".join(line.code for line in closed.lines)
    open_index = text.find("{")
    close_index = text.rfind("}")
    if open_index < 0 or close_index <= open_index:
        return "", closed.end_line
    return text[open_index + 1 : close_index], closed.end_line


def _is_swallowed(body: str) -> bool:
    statements = [s.strip() for s in re.split(r"[\n;]", body) if s.strip()]
    return all(_LOG_ONLY_RE.match(s) for s in statements)


class ErrorHandlingAnalyzer(BaseAnalyzer):
    """Exception mapping at boundaries, Result-typed APIs and non-silent catches."""

    analyzer_id = "error-handling"
    name = "Error Handling Analyzer"
    category = "error-handling"
    description = "Checks that failures are mapped, typed and never swallowed."

    def applies_to(self, file: FileInfo) -> bool:
        padded = padded_path(file.relative_path)
        if file.layer == "data":
            return "/repository/" in padded
        if file.layer == "domain":
            return "/usecase/" in padded
        return file.layer == "ui"

    def analyze(self, file: FileInfo, content: str) -> list[Finding]:
        lines = code_lines(content)
        findings: list[Finding] = []
        padded = padded_path(file.relative_path)
        is_repository_impl = (
            file.layer == "data" and "/repository/" in padded and file_name(file.relative_path).endswith("Impl.kt")
        )

        if is_repository_impl or file.layer == "domain":
            for function in _iter_functions(lines):
                if is_repository_impl:
                    findings.extend(self._check_exception_mapping(file, function))
                findings.extend(self._check_result_type(file, function))
        if file.layer == "ui":
            findings.extend(self._check_ui_throws(file, lines))
        findings.extend(self._check_catch_blocks(file, lines))
        return findings

    def _check_exception_mapping(self, file: FileInfo, function: OpenConstruct) -> list[Finding]:
        body = "\n".join(line.code for line in function.lines)
        if _RISKY_OPERATION_RE.search(body) is None:
            return []
        if _HANDLED_RE.search(body) and _MAPPED_RE.search(body):
            return []
        first = function.lines[0]
        return [
            self._finding(
                file,
                rule="missing-exception-mapping",
                line=first.line_no,
                priority="high",
                effort="small",
                title=f"Repository Function Missing Exception Mapping: {function.label}",
                description=(
                    f"`{function.label}` calls into I/O (database, network or files) without catching and "
                    "mapping failures to domain errors."
                ),
                recommendation=(
                    "Wrap the call in try/catch (or runCatching) and map exceptions to `AppError` via "
                    "`Result.failure(...)`."
                ),
                snippet=first.raw,
                before="override suspend fun save(meal: Meal) {\n    dao.insert(meal.toEntity())\n}",
                after=(
                    "override suspend fun save(meal: Meal): Result<Unit> = try {\n"
                    "    Result.success(dao.insert(meal.toEntity()))\n"
                    "} catch (e: SQLiteException) {\n"
                    "    Result.failure(e.toAppError())\n"
                    "}"
                ),
            )
        ]

    def _check_result_type(self, file: FileInfo, function: OpenConstruct) -> list[Finding]:
        signature, sig_end = collect_signature(function.lines, 0)
        if _NON_PUBLIC_RE.search(signature.split("fun", 1)[0]):
            return []
        header = " ".join([signature] + [line.code for line in function.lines[sig_end + 1 : sig_end + 2]])
        if _RESULT_RETURN_RE.search(header) is not None:
            return []
        failing = next((line for line in function.body if _FAILABLE_RE.search(line.code)), None)
        if failing is None:
            return []
        first = function.lines[0]
        return [
            self._finding(
                file,
                rule="missing-result-type",
                line=first.line_no,
                priority="medium",
                effort="medium",
                title=f"Failable Function Not Returning Result: {function.label}",
                description=(
                    f"`{function.label}` can fail (line {failing.line_no}) but its signature does not say so."
                ),
                recommendation="Return `Result<T>` and encode failures as `Result.failure(...)` instead of throwing.",
                snippet=first.raw,
            )
        ]

    def _check_ui_throws(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        for line in lines:
            if _THROW_RE.search(line.code) is None:
                continue
            findings.append(
                self._finding(
                    file,
                    rule="exception-in-ui",
                    line=line.line_no,
                    priority="high",
                    effort="small",
                    title="Exception Thrown in UI Layer",
                    description="Throwing from UI code crashes the screen instead of rendering an error state.",
                    recommendation="Represent the failure in UI state (for example `UiState.Error`) and render it.",
                    snippet=line.raw,
                )
            )
        return findings

    def _check_catch_blocks(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        for index, line in enumerate(lines):
            for match in _CATCH_RE.finditer(line.code):
                exc_type = match.group("type")
                if exc_type in _GENERIC_TYPES:
                    findings.append(
                        self._finding(
                            file,
                            rule="generic-exception-catch",
                            line=line.line_no,
                            priority="medium",
                            effort="small",
                            title=f"Generic Exception Caught: {exc_type}",
                            description=(
                                f"Catching `{exc_type}` also catches cancellation and programming errors."
                            ),
                            recommendation=(
                                "Catch the specific exceptions the call can raise, and rethrow "
                                "`CancellationException` in coroutines."
                            ),
                            snippet=line.raw,
                            discriminator=str(match.start()) if match.start() else None,
                        )
                    )

                body, _end = _catch_body(lines, index, match.start())
                if _is_swallowed(body):
                    findings.append(
                        self._finding(
                            file,
                            rule="empty-catch-block",
                            line=line.line_no,
                            priority="high",
                            effort="small",
                            title="Exception Swallowed in catch Block",
                            description="The catch block is empty or only logs, so the failure is silently lost.",
                            recommendation="Propagate the error, map it to a domain error, or update error state.",
                            snippet=line.raw,
                            discriminator=str(match.start()) if match.start() else None,
                        )
                    )
        return findings
