from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from pathlib import Path

from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.engine.types import FileInfo, Finding
from qualitysentinel.suppressions import parse_suppressions

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FileOutcome:
    file: FileInfo
    findings: tuple[Finding, ...] = ()
    read: bool = False
    skipped: bool = False


@dataclass(frozen=True, slots=True)
class DispatchResult:
    findings: tuple[Finding, ...]
    files_analyzed: int
    skipped_files: tuple[str, ...]


def read_source(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def run_analyzers(
    files: Iterable[FileInfo],
    analyzers: Sequence[BaseAnalyzer],
    *,
    workers: int = 1,
    on_file_done: Callable[[FileInfo], None] | None = None,
) -> DispatchResult:
    """
    Run every applicable analyzer over every file.

    A file no analyzer applies to is never read. Read errors and analyzer
    exceptions are logged and absorbed per (file, analyzer) pair; the file is
    then listed in `skipped_files`. Results follow the input order regardless
    of `workers`.
    """

    file_list = list(files)
    analyzer_list = list(analyzers)
    outcomes: list[FileOutcome] = []
    if not file_list or not analyzer_list:
        return DispatchResult(findings=(), files_analyzed=0, skipped_files=())

    if workers <= 1 or len(file_list) <= 1:
        for info in file_list:
            outcomes.append(_analyze_file(analyzer_list, info))
            if on_file_done is not None:
                on_file_done(info)
    else:
        max_workers = min(max(1, workers), len(file_list))
        analyze_file = partial(_analyze_file, analyzer_list)
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            for info, outcome in zip(file_list, executor.map(analyze_file, file_list), strict=True):
                outcomes.append(outcome)
                if on_file_done is not None:
                    on_file_done(info)

    findings: list[Finding] = []
    skipped: list[str] = []
    analyzed = 0
    for outcome in outcomes:
        findings.extend(outcome.findings)
        if outcome.read:
            analyzed += 1
        if outcome.skipped:
            skipped.append(outcome.file.relative_path)
    return DispatchResult(findings=tuple(findings), files_analyzed=analyzed, skipped_files=tuple(skipped))


def _analyze_file(analyzers: Sequence[BaseAnalyzer], info: FileInfo) -> FileOutcome:
    applicable = [a for a in analyzers if a.applies_to(info)]
    if not applicable:
        return FileOutcome(file=info)

    try:
        content = read_source(info.path)
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Skipping %s: %s", info.relative_path, exc)
        return FileOutcome(file=info, skipped=True)

    suppressions = parse_suppressions(content.splitlines())
    findings: list[Finding] = []
    failed = False
    for analyzer in applicable:
        try:
            produced = analyzer.analyze(info, content)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Analyzer %s failed on %s: %s", analyzer.analyzer_id, info.relative_path, exc)
            logger.debug("Analyzer failure details", exc_info=True)
            failed = True
            continue
        for finding in produced:
            if suppressions and suppressions.is_suppressed(
                analyzer=finding.analyzer, rule=finding.rule, line=finding.line_number
            ):
                continue
            findings.append(finding)
    return FileOutcome(file=info, findings=tuple(findings), read=True, skipped=failed)
