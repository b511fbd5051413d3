from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from qualitysentinel.engine.types import Category, Finding, Priority
from qualitysentinel.utils import resolve_under_root, safe_relpath

logger = logging.getLogger(__name__)

DETEKT_ID = "detekt"

# Detekt rule set -> category; first substring match wins.
_RULE_SET_CATEGORIES: tuple[tuple[str, Category], ...] = (
    ("complexity", "code-smell"),
    ("coroutines", "state-management"),
    ("empty-blocks", "code-smell"),
    ("exceptions", "error-handling"),
    ("naming", "naming"),
    ("performance", "performance"),
    ("potential-bugs", "code-smell"),
    ("style", "naming"),
    ("compose", "compose"),
    ("comments", "documentation"),
)

_SARIF_LEVELS: dict[str, Priority] = {"error": "high", "warning": "medium", "note": "low", "none": "low"}
_CHECKSTYLE_SEVERITIES: dict[str, Priority] = {"error": "high", "warning": "medium", "info": "low", "ignore": "low"}


class DetektReportError(RuntimeError):
    """Raised when a Detekt report is missing or cannot be parsed."""


def load_detekt_findings(report_path: Path, *, project_root: Path) -> list[Finding]:
    """
    Convert a Detekt report into findings.

    Both SARIF (`--report sarif:...`) and checkstyle XML (`--report xml:...`)
    are accepted; the format is chosen by suffix, then by content. Issues in
    files outside `project_root` are dropped.
    """

    try:
        text = report_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DetektReportError(f"Cannot read Detekt report {report_path}: {exc}") from exc

    suffix = report_path.suffix.lower()
    if suffix == ".xml" or (suffix not in {".sarif", ".json"} and text.lstrip().startswith("<")):
        return _from_checkstyle(text, report_path=report_path, project_root=project_root)
    return _from_sarif(text, report_path=report_path, project_root=project_root)


def split_rule_id(raw: str) -> tuple[str | None, str]:
    """`detekt.style.MagicNumber` -> ("style", "MagicNumber"); `detekt.MagicNumber` -> (None, "MagicNumber")."""

    parts = [p for p in raw.strip().split(".") if p]
    if parts and parts[0] == DETEKT_ID:
        parts = parts[1:]
    if not parts:
        return None, "unknown"
    if len(parts) == 1:
        return None, parts[0]
    return parts[-2], parts[-1]


def category_for(rule_set: str | None) -> Category:
    if rule_set:
        lowered = rule_set.lower()
        for needle, category in _RULE_SET_CATEGORIES:
            if needle in lowered:
                return category
    return "code-smell"


def filter_to_files(findings: Iterable[Finding], relative_paths: Iterable[str]) -> list[Finding]:
    wanted = set(relative_paths)
    return [f for f in findings if f.file in wanted]


def _from_sarif(text: str, *, report_path: Path, project_root: Path) -> list[Finding]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DetektReportError(f"Invalid SARIF in {report_path}: {exc}") from exc
    runs = data.get("runs") if isinstance(data, dict) else None
    if not isinstance(runs, list):
        raise DetektReportError(f"Invalid SARIF in {report_path}: missing `runs`.")

    findings: list[Finding] = []
    for run in runs:
        results = run.get("results", []) if isinstance(run, dict) else []
        for result in results if isinstance(results, list) else []:
            if not isinstance(result, dict):
                continue
            location = _first_location(result)
            if location is None:
                continue
            uri, line, column, snippet = location
            rel = _relative(uri, project_root)
            if rel is None:
                continue
            rule_set, rule = split_rule_id(str(result.get("ruleId", "")))
            message = result.get("message", {})
            text_message = message.get("text", "") if isinstance(message, dict) else ""
            findings.append(
                _finding(
                    rule_set=rule_set,
                    rule=rule,
                    file=rel,
                    line=line,
                    column=column,
                    message=str(text_message),
                    priority=_SARIF_LEVELS.get(str(result.get("level", "warning")).lower(), "medium"),
                    snippet=snippet,
                )
            )
    return findings


def _first_location(result: dict[str, Any]) -> tuple[str, int, int | None, str] | None:
    locations = result.get("locations")
    if not isinstance(locations, list) or not locations:
        return None
    physical = locations[0].get("physicalLocation", {}) if isinstance(locations[0], dict) else {}
    artifact = physical.get("artifactLocation", {})
    uri = artifact.get("uri") if isinstance(artifact, dict) else None
    if not isinstance(uri, str) or not uri:
        return None
    region = physical.get("region", {})
    if not isinstance(region, dict):
        region = {}
    line = _positive_int(region.get("startLine")) or 1
    column = _positive_int(region.get("startColumn"))
    snippet = region.get("snippet", {})
    snippet_text = snippet.get("text", "") if isinstance(snippet, dict) else ""
    return uri, line, column, str(snippet_text)


def _from_checkstyle(text: str, *, report_path: Path, project_root: Path) -> list[Finding]:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise DetektReportError(f"Invalid checkstyle XML in {report_path}: {exc}") from exc
    if root.tag != "checkstyle":
        raise DetektReportError(f"Invalid checkstyle XML in {report_path}: root element is <{root.tag}>.")

    findings: list[Finding] = []
    for file_el in root.iter("file"):
        rel = _relative(file_el.get("name", ""), project_root)
        if rel is None:
            continue
        for error in file_el.iter("error"):
            rule_set, rule = split_rule_id(error.get("source", ""))
            findings.append(
                _finding(
                    rule_set=rule_set,
                    rule=rule,
                    file=rel,
                    line=_positive_int(error.get("line")) or 1,
                    column=_positive_int(error.get("column")),
                    message=error.get("message", ""),
                    priority=_CHECKSTYLE_SEVERITIES.get(error.get("severity", "warning").lower(), "medium"),
                )
            )
    return findings


def _finding(
    *,
    rule_set: str | None,
    rule: str,
    file: str,
    line: int,
    column: int | None,
    message: str,
    priority: Priority,
    snippet: str = "",
) -> Finding:
    anchor = f"{rule_set.lower()}#{rule.lower()}" if rule_set else rule.lower()
    return Finding(
        id=f"{DETEKT_ID}:{rule}:{file}:{line}",
        analyzer=DETEKT_ID,
        rule=rule,
        category=category_for(rule_set),
        priority=priority,
        title=f"{rule} (Detekt)",
        description=message or rule,
        file=file,
        line_number=line,
        column_number=column,
        code_snippet=snippet,
        recommendation=(
            f"Detekt rule '{rule}' was violated. Refactor the code to comply with the rule; "
            "the Detekt documentation has details and examples."
        ),
        effort="small",
        references=(f"https://detekt.dev/docs/rules/{anchor}",),
    )


def _relative(location: str, project_root: Path) -> str | None:
    if not location:
        return None
    if location.startswith("file:"):
        location = unquote(urlparse(location).path)
    resolved = resolve_under_root(project_root, location)
    if resolved is None:
        logger.debug("Ignoring Detekt issue outside the project: %s", location)
        return None
    return safe_relpath(resolved, project_root)


def _positive_int(value: Any) -> int | None:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None
