from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.analyzers.registry import resolve_analyzers
from qualitysentinel.baseline import BaselineError, BaselineManager, BaselineStore
from qualitysentinel.config import QualitySentinelConfig, compute_enabled_analyzer_ids, load_config
from qualitysentinel.detekt import DETEKT_ID, DetektReportError, filter_to_files, load_detekt_findings
from qualitysentinel.engine.aggregation import aggregate, normalize
from qualitysentinel.engine.dispatch import run_analyzers
from qualitysentinel.engine.types import AggregatedResult, Baseline, Comparison, FileInfo, Finding, RunMode
from qualitysentinel.git import git_head
from qualitysentinel.reporters.markdown import generate_report
from qualitysentinel.scanner import FileScanner, ScanError, worker_count_from_env
from qualitysentinel.utils import resolve_under_root

logger = logging.getLogger(__name__)

_REPORT_SUFFIX: dict[str, str] = {"full": "", "incremental": "-incremental", "filtered": "-filtered"}


class AnalysisConfigurationError(RuntimeError):
    """Raised for run-level problems: bad paths, a missing project root, an unusable output directory."""


@dataclass(frozen=True, slots=True)
class AnalysisRun:
    result: AggregatedResult
    files_analyzed: int
    mode: RunMode
    skipped_files: tuple[str, ...] = ()
    comparison: Comparison | None = None
    report_path: Path | None = None
    report: str | None = None  # Markdown text written to `report_path`


@dataclass(frozen=True, slots=True)
class AnalysisCallbacks:
    on_files_selected: Callable[[int], None] | None = None
    on_file_done: Callable[[FileInfo], None] | None = None


class AnalysisOrchestrator:
    """
    Runs the pipeline: select files, read each once, dispatch analyzers,
    normalize and aggregate, diff against the baseline, write the report.

    Only `analyze_all` reads or writes the baseline and history; each is
    saved once per full run, after the report.
    """

    def __init__(
        self,
        project_root: Path,
        *,
        config: QualitySentinelConfig | None = None,
        analyzers: Sequence[BaseAnalyzer] | None = None,
        scanner: FileScanner | None = None,
        baseline_manager: BaselineManager | None = None,
        workers: int | None = None,
        callbacks: AnalysisCallbacks | None = None,
    ) -> None:
        root = Path(project_root)
        if not root.is_dir():
            raise AnalysisConfigurationError(f"Project root is not a directory: {root}")
        self.project_root = root.resolve()
        self.config = config if config is not None else load_config(self.project_root)

        if analyzers is None:
            available = resolve_analyzers(self.config)
            enabled = compute_enabled_analyzer_ids(self.config, available_ids=(a.analyzer_id for a in available))
            analyzers = [a for a in available if a.analyzer_id in enabled]
        self.analyzers: tuple[BaseAnalyzer, ...] = tuple(analyzers)

        self.scanner = scanner or FileScanner(self.config)
        self.output_dir = self._resolve_output_dir()
        self.baseline_manager = baseline_manager or BaselineManager(BaselineStore(self.output_dir))
        self.workers = workers if workers is not None else worker_count_from_env()
        self.callbacks = callbacks or AnalysisCallbacks()
        self.detekt_enabled = self.config.detekt.report is not None and DETEKT_ID not in self.config.analyzers.disable

    def analyze_all(self) -> AnalysisRun:
        files = self._scan(self.project_root)
        return self._run(files, self.analyzers, mode="full", include_detekt=self.detekt_enabled)

    def analyze_incremental(self, paths: Iterable[Path | str]) -> AnalysisRun:
        files = self._expand(paths)
        return self._run(files, self.analyzers, mode="incremental", include_detekt=self.detekt_enabled)

    def analyze_with_filters(
        self,
        paths: Iterable[Path | str] | None = None,
        analyzer_ids: Iterable[str] = (),
    ) -> AnalysisRun:
        requested = {_normalize_id(i) for i in analyzer_ids if i.strip()}
        known = {a.analyzer_id for a in self.analyzers}
        if self.detekt_enabled:
            known.add(DETEKT_ID)
        unknown = sorted(requested - known)
        if unknown:
            logger.debug("Ignoring unknown analyzer id(s): %s", ", ".join(unknown))

        selected = tuple(a for a in self.analyzers if a.analyzer_id in requested)
        include_detekt = self.detekt_enabled and DETEKT_ID in requested
        if not selected and not include_detekt:
            return AnalysisRun(result=aggregate(()), files_analyzed=0, mode="filtered")

        files = self._scan(self.project_root) if paths is None else self._expand(paths)
        return self._run(files, selected, mode="filtered", include_detekt=include_detekt)

    # -- pipeline ------------------------------------------------------------

    def _run(
        self,
        files: list[FileInfo],
        analyzers: Sequence[BaseAnalyzer],
        *,
        mode: RunMode,
        include_detekt: bool = False,
    ) -> AnalysisRun:
        if self.callbacks.on_files_selected is not None:
            self.callbacks.on_files_selected(len(files))
        logger.debug("%s analysis: %d candidate file(s), %d analyzer(s)", mode, len(files), len(analyzers))

        dispatched = run_analyzers(
            files,
            analyzers,
            workers=self.workers,
            on_file_done=self.callbacks.on_file_done,
        )
        for path in dispatched.skipped_files:
            logger.warning("File skipped or partially analyzed: %s", path)
        findings = list(dispatched.findings)
        if include_detekt:
            findings.extend(self._detekt_findings(files))
        result = aggregate(normalize(findings))

        baseline: Baseline | None = None
        comparison: Comparison | None = None
        if mode == "full":
            try:
                baseline = self.baseline_manager.load_baseline()
            except BaselineError as exc:
                logger.warning("Ignoring unreadable baseline: %s", exc)
            if baseline is not None:
                comparison = self.baseline_manager.compare(result, baseline)

        report = generate_report(
            result,
            baseline,
            files_analyzed=dispatched.files_analyzed,
            generated_at=datetime.now(UTC).isoformat(timespec="seconds"),
        )
        report_path = self._write_report(report, mode=mode)

        if mode == "full":
            try:
                self.baseline_manager.save_baseline(result.metrics, result.findings)
                if self.config.history.enabled:
                    self.baseline_manager.save_to_history(
                        result,
                        files_analyzed=dispatched.files_analyzed,
                        git_head=git_head(cwd=self.project_root),
                    )
            except OSError as exc:
                raise AnalysisConfigurationError(f"Cannot write to output directory {self.output_dir}: {exc}") from exc

        return AnalysisRun(
            result=result,
            files_analyzed=dispatched.files_analyzed,
            mode=mode,
            skipped_files=dispatched.skipped_files,
            comparison=comparison,
            report_path=report_path,
            report=report,
        )

    def _detekt_findings(self, files: Sequence[FileInfo]) -> list[Finding]:
        assert self.config.detekt.report is not None
        report = self.project_root / self.config.detekt.report
        try:
            imported = load_detekt_findings(report, project_root=self.project_root)
        except DetektReportError as exc:
            logger.warning("Skipping Detekt findings: %s", exc)
            return []
        return filter_to_files(imported, (f.relative_path for f in files))

    def _scan(self, root: Path) -> list[FileInfo]:
        try:
            scanned = self.scanner.scan_directory(root, project_root=self.project_root)
        except ScanError as exc:
            raise AnalysisConfigurationError(str(exc)) from exc
        return self.scanner.filter_files(scanned)

    def _expand(self, paths: Iterable[Path | str]) -> list[FileInfo]:
        resolved: list[Path] = []
        for spec in paths:
            path = resolve_under_root(self.project_root, spec)
            if path is None:
                raise AnalysisConfigurationError(f"Path is outside the project root: {spec}")
            if not path.exists():
                raise AnalysisConfigurationError(f"Path does not exist: {spec}")
            resolved.append(path)
        try:
            expanded = self.scanner.expand_paths(resolved, project_root=self.project_root)
        except (ScanError, OSError) as exc:
            raise AnalysisConfigurationError(str(exc)) from exc
        return self.scanner.filter_files(expanded)

    def _resolve_output_dir(self) -> Path:
        output = resolve_under_root(self.project_root, self.config.output_dir)
        if output is None:
            raise AnalysisConfigurationError(f"Output directory is outside the project root: {self.config.output_dir}")
        if output.exists() and not output.is_dir():
            raise AnalysisConfigurationError(f"Output path is not a directory: {output}")
        return output

    def _write_report(self, report: str, *, mode: RunMode) -> Path:
        store = self.baseline_manager.store
        path = store.report_path(_REPORT_SUFFIX[mode])
        try:
            store.ensure()
            path.write_text(report, encoding="utf-8")
        except OSError as exc:
            raise AnalysisConfigurationError(f"Cannot write report to {path}: {exc}") from exc
        return path


def _normalize_id(value: str) -> str:
    return value.strip().lower().replace("_", "-")
