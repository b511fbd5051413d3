from __future__ import annotations

from pathlib import Path

from qualitysentinel.analyzers.documentation import DocumentationAnalyzer, kdoc_above
from qualitysentinel.analyzers.utils import code_lines
from qualitysentinel.config import Thresholds

from helpers import branchy_function, make_file, rules, run_analyzer

SOURCE = "app/src/main/java/com/x/domain/model/Meal.kt"


def _src(*lines: str) -> str:
    return "\n".join(lines) + "\n"


def test_kdoc_lookup_skips_annotations() -> None:
    lines = code_lines(_src("/**", " * Loads meals.", " */", "@JvmStatic", "fun load() = Unit", "", "fun other() = Unit"))
    assert kdoc_above(lines, 4) is not None
    assert kdoc_above(lines, 6) is None


def test_public_api_needs_kdoc(tmp_path: Path) -> None:
    content = _src(
        "/**",
        " * A meal.",
        " */",
        "data class Meal(",
        "    val id: Long,",
        "    val name: String,",
        "    val calories: Int,",
        ")",
        "",
        "class Repo {",
        "    fun load(): Int {",
        "        fun helper() = 1",
        "        return helper()",
        "    }",
        "",
        "    private fun hidden() = 2",
        "    override fun toString() = \"Repo\"",
        "}",
    )
    findings = run_analyzer(DocumentationAnalyzer(), tmp_path, SOURCE, content)
    assert [(f.line_number, f.rule) for f in findings] == [
        (4, "data-class-properties-undocumented"),
        (10, "missing-kdoc"),
        (11, "missing-kdoc"),
    ]
    assert findings[1].title == "Missing KDoc for Public Class: Repo"
    assert findings[2].title == "Missing KDoc for Public Function: load"


def test_documented_data_class_properties(tmp_path: Path) -> None:
    content = _src(
        "/**",
        " * A meal.",
        " *",
        " * @property id Stable id.",
        " */",
        "data class Meal(val id: Long, val name: String, val calories: Int)",
    )
    assert run_analyzer(DocumentationAnalyzer(), tmp_path, SOURCE, content) == []


def test_sealed_subclasses_need_a_line_of_kdoc(tmp_path: Path) -> None:
    content = _src(
        "/** Screen state. */",
        "sealed class UiState {",
        "    object Loading : UiState()",
        "",
        "    /** Loaded data. */",
        "    data class Loaded(val meals: List<Meal>) : UiState()",
        "}",
    )
    findings = run_analyzer(DocumentationAnalyzer(), tmp_path, SOURCE, content)
    assert [(f.line_number, f.rule) for f in findings] == [(3, "sealed-subclass-undocumented")]


def test_complex_functions_need_inline_comments(tmp_path: Path) -> None:
    analyzer = DocumentationAnalyzer()
    plain = "/** Picks. */\n" + branchy_function(11)
    commented = "/** Picks. */\n" + branchy_function(11, comment=True)

    findings = run_analyzer(analyzer, tmp_path, SOURCE, plain)
    assert rules(findings) == ["complex-function-missing-comments"]
    assert findings[0].line_number == 2
    assert "complexity 12" in findings[0].description

    assert run_analyzer(analyzer, tmp_path, SOURCE, commented) == []


def test_comment_threshold_is_configurable(tmp_path: Path) -> None:
    analyzer = DocumentationAnalyzer(Thresholds(comment_complexity=20))
    assert run_analyzer(analyzer, tmp_path, SOURCE, "/** Picks. */\n" + branchy_function(11)) == []


def test_tests_are_not_documented(tmp_path: Path) -> None:
    info = make_file(tmp_path, "app/src/test/java/com/x/MealTest.kt", "class MealTest\n")
    assert DocumentationAnalyzer().applies_to(info) is False
