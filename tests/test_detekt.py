from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from qualitysentinel.config import DetektConfig, QualitySentinelConfig
from qualitysentinel.detekt import DetektReportError, category_for, load_detekt_findings, split_rule_id
from qualitysentinel.orchestrator import AnalysisOrchestrator

from helpers import write_source

MEALS = "app/src/main/java/com/x/ui/MealsScreen.kt"
DAO = "app/src/main/java/com/x/data/MealDao.kt"


def _sarif(results: list[dict]) -> str:
    return json.dumps({"version": "2.1.0", "runs": [{"tool": {"driver": {"name": "detekt"}}, "results": results}]})


def _result(rule_id: str, uri: str, line: int, *, level: str = "warning", message: str = "msg") -> dict:
    return {
        "ruleId": rule_id,
        "level": level,
        "message": {"text": message},
        "locations": [
            {"physicalLocation": {"artifactLocation": {"uri": uri}, "region": {"startLine": line, "startColumn": 5}}}
        ],
    }


def test_split_rule_id_and_categories() -> None:
    assert split_rule_id("detekt.style.MagicNumber") == ("style", "MagicNumber")
    assert split_rule_id("detekt.MagicNumber") == (None, "MagicNumber")
    assert split_rule_id("") == (None, "unknown")
    assert category_for("exceptions") == "error-handling"
    assert category_for("coroutines") == "state-management"
    assert category_for("comments") == "documentation"
    assert category_for("potential-bugs") == "code-smell"
    assert category_for(None) == "code-smell"


def test_sarif_report(tmp_path: Path) -> None:
    report = tmp_path / "detekt.sarif"
    report.write_text(
        _sarif(
            [
                _result("detekt.style.MagicNumber", (tmp_path / MEALS).as_uri(), 12, message="Magic number 42"),
                _result("detekt.exceptions.TooGenericExceptionCaught", DAO, 3, level="error"),
                _result("detekt.style.MagicNumber", "/elsewhere/Other.kt", 1),
                {"ruleId": "detekt.style.NoLocation", "message": {"text": "x"}},
            ],
        ),
        encoding="utf-8",
    )

    findings = load_detekt_findings(report, project_root=tmp_path)
    assert [(f.file, f.line_number, f.rule) for f in findings] == [
        (MEALS, 12, "MagicNumber"),
        (DAO, 3, "TooGenericExceptionCaught"),
    ]
    magic, generic = findings
    assert magic.id == f"detekt:MagicNumber:{MEALS}:12"
    assert magic.analyzer == "detekt"
    assert (magic.category, magic.priority, magic.column_number) == ("naming", "medium", 5)
    assert magic.description == "Magic number 42"
    assert magic.references == ("https://detekt.dev/docs/rules/style#magicnumber",)
    assert (generic.category, generic.priority) == ("error-handling", "high")


def test_checkstyle_report(tmp_path: Path) -> None:
    report = tmp_path / "detekt.xml"
    report.write_text(
        "\n".join(
            [
                '<?xml version="1.0" encoding="UTF-8"?>',
                '<checkstyle version="4.3">',
                f'  <file name="{tmp_path / DAO}">',
                '    <error line="7" column="3" severity="info" message="Line too long" source="detekt.MaxLineLength" />',
                '    <error line="9" severity="error" message="Empty catch" source="detekt.empty-blocks.EmptyCatchBlock" />',
                "  </file>",
                "</checkstyle>",
                "",
            ]
        ),
        encoding="utf-8",
    )

    findings = load_detekt_findings(report, project_root=tmp_path)
    assert [(f.line_number, f.rule, f.priority, f.category) for f in findings] == [
        (7, "MaxLineLength", "low", "code-smell"),
        (9, "EmptyCatchBlock", "high", "code-smell"),
    ]
    assert findings[0].column_number == 3
    assert findings[1].column_number is None


@pytest.mark.parametrize(
    ("name", "body"),
    [
        ("detekt.sarif", "not json"),
        ("detekt.sarif", '{"version": "2.1.0"}'),
        ("detekt.xml", "<checkstyle><file"),
        ("detekt.xml", "<report />"),
    ],
)
def test_invalid_reports_raise(tmp_path: Path, name: str, body: str) -> None:
    report = tmp_path / name
    report.write_text(body, encoding="utf-8")
    with pytest.raises(DetektReportError):
        load_detekt_findings(report, project_root=tmp_path)


def test_missing_report_raises(tmp_path: Path) -> None:
    with pytest.raises(DetektReportError, match="Cannot read"):
        load_detekt_findings(tmp_path / "nope.sarif", project_root=tmp_path)


def _project(root: Path) -> Path:
    write_source(root, MEALS, "class MealsScreen\n")
    write_source(root, DAO, "interface MealDao\n")
    report = root / "build/reports/detekt/detekt.sarif"
    report.parent.mkdir(parents=True)
    report.write_text(
        _sarif([_result("detekt.style.MagicNumber", MEALS, 1), _result("detekt.style.MagicNumber", DAO, 1)]),
        encoding="utf-8",
    )
    return root


def _orchestrator(root: Path, report: str = "build/reports/detekt/detekt.sarif") -> AnalysisOrchestrator:
    config = QualitySentinelConfig(detekt=DetektConfig(report=report))
    return AnalysisOrchestrator(root, config=config, analyzers=[], workers=1)


def test_full_run_merges_detekt_findings(tmp_path: Path) -> None:
    run = _orchestrator(_project(tmp_path)).analyze_all()
    assert sorted(f.file for f in run.result.findings if f.analyzer == "detekt") == [DAO, MEALS]
    assert run.result.metrics.total_findings == 2


def test_incremental_run_keeps_only_selected_files(tmp_path: Path) -> None:
    run = _orchestrator(_project(tmp_path)).analyze_incremental([MEALS])
    assert [f.file for f in run.result.findings] == [MEALS]


def test_filtered_run_selects_detekt_by_id(tmp_path: Path) -> None:
    orchestrator = _orchestrator(_project(tmp_path))
    assert len(orchestrator.analyze_with_filters(analyzer_ids=["detekt"]).result.findings) == 2
    assert orchestrator.analyze_with_filters(analyzer_ids=["naming"]).result.findings == ()


def test_missing_report_is_a_warning(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    root = _project(tmp_path)
    with caplog.at_level(logging.WARNING, logger="qualitysentinel.orchestrator"):
        run = _orchestrator(root, report="build/missing.sarif").analyze_all()
    assert run.result.findings == ()
    assert "Skipping Detekt findings" in caplog.text
