from __future__ import annotations

from pathlib import Path

from qualitysentinel.analyzers.code_smell import CodeSmellAnalyzer, iter_classes
from qualitysentinel.analyzers.utils import code_lines
from qualitysentinel.config import Thresholds

from helpers import branchy_function, make_file, nested_function, rules, run_analyzer

SOURCE = "app/src/main/java/com/x/data/MealRepositoryImpl.kt"


def _src(*lines: str) -> str:
    return "\n".join(lines) + "\n"


def test_deep_nesting(tmp_path: Path) -> None:
    analyzer = CodeSmellAnalyzer()
    findings = run_analyzer(analyzer, tmp_path, SOURCE, nested_function(5))
    assert rules(findings) == ["deep-nesting"]
    assert "5 levels deep (limit 4)" in findings[0].description
    assert run_analyzer(analyzer, tmp_path, SOURCE, nested_function(4)) == []


def test_excessive_complexity(tmp_path: Path) -> None:
    analyzer = CodeSmellAnalyzer()
    findings = run_analyzer(analyzer, tmp_path, SOURCE, branchy_function(15))
    assert rules(findings) == ["excessive-complexity"]
    assert findings[0].priority == "high"
    assert run_analyzer(analyzer, tmp_path, SOURCE, branchy_function(14)) == []


def test_long_function(tmp_path: Path) -> None:
    content = _src("fun long() {", "    a()", "    b()", "    c()", "    d()", "    e()", "    f()", "}")
    findings = run_analyzer(CodeSmellAnalyzer(Thresholds(max_function_lines=5)), tmp_path, SOURCE, content)
    assert [(f.line_number, f.rule) for f in findings] == [(1, "long-function")]
    assert "spans 8 lines" in findings[0].description


def test_too_many_parameters(tmp_path: Path) -> None:
    analyzer = CodeSmellAnalyzer()
    six = _src("fun make(a: Int, b: Int, c: Int, d: Int, e: Int, f: Int) {", "}")
    five = _src("fun make(a: Int, b: Int, c: Int, d: Int, e: Int) {", "}")
    assert rules(run_analyzer(analyzer, tmp_path, SOURCE, six)) == ["too-many-parameters"]
    assert run_analyzer(analyzer, tmp_path, SOURCE, five) == []


def test_large_class(tmp_path: Path) -> None:
    content = _src(
        "class MealRepositoryImpl {",
        "    val a = 1",
        "    val b = 2",
        "    val c = 3",
        "    val d = 4",
        "    val e = 5",
        "    val f = 6",
        "}",
    )
    findings = run_analyzer(CodeSmellAnalyzer(Thresholds(max_class_lines=6)), tmp_path, SOURCE, content)
    assert [(f.line_number, f.rule) for f in findings] == [(1, "large-class")]
    assert findings[0].title == "Large Class: MealRepositoryImpl"


def test_iter_classes_yields_outermost_only() -> None:
    content = _src("class Outer {", "    class Inner {", "    }", "}", "", "object Single {", "}")
    assert [(c.label, c.start_line, c.end_line) for c in iter_classes(code_lines(content))] == [
        ("Outer", 1, 4),
        ("Single", 6, 7),
    ]


def test_test_sources_are_skipped(tmp_path: Path) -> None:
    info = make_file(tmp_path, "app/src/test/java/com/x/BigTest.kt", nested_function(6))
    assert CodeSmellAnalyzer().applies_to(info) is False
