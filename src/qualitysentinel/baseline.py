from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from hashlib import sha256
from pathlib import Path
from types import MappingProxyType
from typing import Any

from qualitysentinel.engine.types import (
    CATEGORY_ORDER,
    PRIORITY_ORDER,
    AggregatedResult,
    AnalysisMetrics,
    Baseline,
    BaselineEntry,
    Comparison,
    Finding,
)
from qualitysentinel.history import HistoryEntry, entry_from_result, entry_to_json, parse_entry
from qualitysentinel.reporters.json_reporter import metrics_from_dict, metrics_to_dict

logger = logging.getLogger(__name__)

BASELINE_VERSION = 1
BASELINE_FILENAME = "baseline.json"
HISTORY_DIRNAME = "history"
HISTORY_PREFIX = "analysis_"


class BaselineError(RuntimeError):
    """Raised when a baseline file is invalid or cannot be processed."""


def finding_identities(findings: Iterable[Finding]) -> dict[str, str]:
    """
    Map each finding id to its cross-run identity.

    The identity hashes (analyzer, rule, file, anchor, occurrence). The anchor
    is the whitespace-normalized snippet, so edits elsewhere in the file that
    shift line numbers keep the identity; findings without a snippet fall back
    to their line number. `occurrence` tells apart repeats of the same
    snippet in one file.
    """

    ordered = sorted(findings, key=lambda f: (f.file, f.line_number, f.analyzer, f.rule, f.id))
    seen: dict[tuple[str, str, str, str], int] = {}
    out: dict[str, str] = {}
    for f in ordered:
        anchor = _normalize_snippet(f.code_snippet) or f"line:{f.line_number}"
        key = (f.analyzer, f.rule, f.file, anchor)
        occurrence = seen.get(key, 0)
        seen[key] = occurrence + 1
        payload = {
            "analyzer": f.analyzer,
            "rule": f.rule,
            "file": f.file,
            "anchor": anchor,
            "occurrence": occurrence,
        }
        raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        out[f.id] = sha256(raw).hexdigest()
    return out


def _normalize_snippet(snippet: str) -> str:
    return " ".join(snippet.split())


def compare(result: AggregatedResult, baseline: Baseline) -> Comparison:
    identities = finding_identities(result.findings)
    current_ids = set(identities.values())
    new_findings = tuple(f for f in result.findings if identities[f.id] not in baseline.finding_ids)
    resolved = tuple(sorted(baseline.finding_ids - current_ids))

    current = result.metrics
    previous = baseline.metrics
    priority_deltas = {p: _count(current.by_priority, p) - _count(previous.by_priority, p) for p in PRIORITY_ORDER}
    category_deltas = {
        c: _count(current.by_category, c) - _count(previous.by_category, c) for c in CATEGORY_ORDER
    }

    improved: list[str] = []
    regressed: list[str] = []
    scalar_deltas = {
        "total_findings": current.total_findings - previous.total_findings,
        "files_with_findings": current.files_with_findings - previous.files_with_findings,
    }
    named = [
        *scalar_deltas.items(),
        *((f"priority.{p}", d) for p, d in priority_deltas.items()),
        *((f"category.{c}", d) for c, d in category_deltas.items()),
    ]
    for metric, delta in named:
        if delta < 0:
            improved.append(metric)
        elif delta > 0:
            regressed.append(metric)

    return Comparison(
        new_findings=new_findings,
        resolved=resolved,
        priority_deltas=MappingProxyType(priority_deltas),
        category_deltas=MappingProxyType(category_deltas),
        improved=tuple(improved),
        regressed=tuple(regressed),
    )


def _count(counts: Any, key: str) -> int:
    return int(counts.get(key, 0))


def _utc_now() -> datetime:
    return datetime.now(UTC)


class BaselineStore:
    """
    Handle on one output directory.

    Created per orchestrator, so two stores on different roots never share
    state. Directories are created on first write.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @property
    def baseline_path(self) -> Path:
        return self.root / BASELINE_FILENAME

    @property
    def history_dir(self) -> Path:
        return self.root / HISTORY_DIRNAME

    def report_path(self, suffix: str = "") -> Path:
        return self.root / f"analysis-report{suffix}.md"

    def ensure(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def history_files(self) -> list[Path]:
        if not self.history_dir.is_dir():
            return []
        return sorted(p for p in self.history_dir.glob(f"{HISTORY_PREFIX}*.json") if p.is_file())


class BaselineManager:
    def __init__(self, store: BaselineStore, *, clock: Any = _utc_now) -> None:
        self.store = store
        self._clock = clock

    def load_baseline(self) -> Baseline | None:
        path = self.store.baseline_path
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise BaselineError(f"Failed to read baseline: {path}") from exc

        if not isinstance(data, dict):
            raise BaselineError("Baseline must be a JSON object.")
        version = data.get("version")
        if version != BASELINE_VERSION:
            raise BaselineError(f"Unsupported baseline version: {version!r}")

        ids = data.get("finding_ids", [])
        if not isinstance(ids, list) or any(not isinstance(i, str) for i in ids):
            raise BaselineError("Baseline `finding_ids` must be a list of strings.")
        metrics_raw = data.get("metrics")
        if not isinstance(metrics_raw, dict):
            raise BaselineError("Baseline `metrics` must be an object.")
        try:
            metrics = metrics_from_dict(metrics_raw)
        except ValueError as exc:
            raise BaselineError(f"Invalid baseline metrics: {exc}") from exc

        entries: dict[str, BaselineEntry] = {}
        raw_entries = data.get("entries", {})
        if isinstance(raw_entries, dict):
            for identity, item in raw_entries.items():
                if not isinstance(item, dict):
                    continue
                try:
                    entries[str(identity)] = BaselineEntry(
                        analyzer=str(item["analyzer"]),
                        rule=str(item["rule"]),
                        file=str(item["file"]),
                        line=int(item["line"]),
                        title=str(item.get("title", "")),
                    )
                except (KeyError, TypeError, ValueError):
                    continue

        return Baseline(
            timestamp=str(data.get("timestamp", "")),
            metrics=metrics,
            finding_ids=frozenset(ids),
            entries=MappingProxyType(entries),
        )

    def save_baseline(self, metrics: AnalysisMetrics, findings: Iterable[Finding]) -> Baseline:
        """Replace the stored baseline with this snapshot."""

        findings_list = list(findings)
        identities = finding_identities(findings_list)
        entries = {
            identities[f.id]: BaselineEntry(
                analyzer=f.analyzer, rule=f.rule, file=f.file, line=f.line_number, title=f.title
            )
            for f in findings_list
        }
        baseline = Baseline(
            timestamp=self._clock().isoformat(),
            metrics=metrics,
            finding_ids=frozenset(identities.values()),
            entries=MappingProxyType(entries),
        )
        payload = {
            "version": BASELINE_VERSION,
            "timestamp": baseline.timestamp,
            "metrics": metrics_to_dict(metrics),
            "finding_ids": sorted(baseline.finding_ids),
            "entries": {
                identity: {
                    "analyzer": e.analyzer,
                    "rule": e.rule,
                    "file": e.file,
                    "line": e.line,
                    "title": e.title,
                }
                for identity, e in sorted(entries.items())
            },
        }
        self.store.ensure()
        path = self.store.baseline_path
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        tmp.replace(path)
        logger.debug("Saved baseline with %d findings to %s", len(entries), path)
        return baseline

    def save_to_history(
        self,
        result: AggregatedResult,
        *,
        files_analyzed: int = 0,
        git_head: str | None = None,
    ) -> Path:
        """Write one new history record. Existing records are never opened for writing."""

        now = self._clock()
        entry = entry_from_result(
            result, timestamp=now.isoformat(), files_analyzed=files_analyzed, git_head=git_head
        )
        history_dir = self.store.history_dir
        history_dir.mkdir(parents=True, exist_ok=True)
        stamp = now.strftime("%Y%m%dT%H%M%S_%fZ")
        text = json.dumps(entry_to_json(entry), indent=2, sort_keys=True) + "\n"
        attempt = 0
        while True:
            suffix = f"_{attempt}" if attempt else ""
            path = history_dir / f"{HISTORY_PREFIX}{stamp}{suffix}.json"
            try:
                with path.open("x", encoding="utf-8") as fh:
                    fh.write(text)
            except FileExistsError:
                attempt += 1
                continue
            return path

    def load_history(self) -> list[HistoryEntry]:
        """All readable history entries, oldest first. Unreadable records are skipped."""

        entries: list[HistoryEntry] = []
        for path in self.store.history_files():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                if not isinstance(data, dict):
                    raise TypeError("history record must be an object")
                entries.append(parse_entry(data))
            except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                logger.debug("Skipping unreadable history record %s: %s", path, exc)
                continue
        return entries

    def clear_baseline(self) -> bool:
        """Delete the stored baseline. Returns False when there was none."""

        path = self.store.baseline_path
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def compare(self, result: AggregatedResult, baseline: Baseline) -> Comparison:
        return compare(result, baseline)
