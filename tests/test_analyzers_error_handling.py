from __future__ import annotations

from pathlib import Path

from qualitysentinel.analyzers.error_handling import ErrorHandlingAnalyzer

from helpers import make_file, rules, run_analyzer


def _src(*lines: str) -> str:
    return "\n".join(lines) + "\n"


def test_repository_io_without_mapping(tmp_path: Path) -> None:
    content = _src(
        "class MealRepositoryImpl(private val dao: MealDao) : MealRepository {",
        "    override suspend fun save(meal: Meal) {",
        "        dao.insert(meal.toEntity())",
        "    }",
        "",
        "    override suspend fun delete(meal: Meal): Result<Unit> = try {",
        "        Result.success(dao.delete(meal.toEntity()))",
        "    } catch (e: SQLiteException) {",
        "        Result.failure(e.toAppError())",
        "    }",
        "}",
    )
    findings = run_analyzer(
        ErrorHandlingAnalyzer(), tmp_path, "app/src/main/java/com/x/data/repository/MealRepositoryImpl.kt", content
    )
    assert rules(findings) == ["missing-exception-mapping"]
    assert findings[0].line_number == 2
    assert findings[0].priority == "high"


def test_failable_use_case_without_result(tmp_path: Path) -> None:
    content = _src(
        "class ValidateMealUseCase {",
        "    operator fun invoke(meal: Meal): Meal {",
        "        require(meal.name.isNotBlank())",
        "        return meal",
        "    }",
        "",
        "    operator fun invoke(id: Long): Result<Meal> {",
        '        if (id < 0) return Result.failure(IllegalArgumentException("id"))',
        "        return Result.success(Meal(id))",
        "    }",
        "}",
    )
    findings = run_analyzer(
        ErrorHandlingAnalyzer(), tmp_path, "app/src/main/java/com/x/domain/usecase/ValidateMealUseCase.kt", content
    )
    assert rules(findings) == ["missing-result-type"]
    assert findings[0].line_number == 2
    assert "line 3" in findings[0].description


def test_throw_in_ui_and_swallowed_generic_catch(tmp_path: Path) -> None:
    content = _src(
        "fun load() {",
        "    try {",
        "        work()",
        "    } catch (e: Exception) {",
        '        Log.e("TAG", "failed", e)',
        "    }",
        "    try { work() } catch (e: IOException) { }",
        '    if (broken) throw IllegalStateException("boom")',
        "}",
    )
    findings = run_analyzer(ErrorHandlingAnalyzer(), tmp_path, "app/src/main/java/com/x/ui/MealsScreen.kt", content)
    assert sorted((f.line_number, f.rule) for f in findings) == [
        (4, "empty-catch-block"),
        (4, "generic-exception-catch"),
        (7, "empty-catch-block"),
        (8, "exception-in-ui"),
    ]


def test_catch_that_updates_state_is_not_swallowed(tmp_path: Path) -> None:
    content = _src(
        "fun load() {",
        "    try {",
        "        work()",
        "    } catch (e: IOException) {",
        "        Log.w(TAG, e)",
        "        _state.update { it.copy(error = e.message) }",
        "    }",
        "}",
    )
    findings = run_analyzer(ErrorHandlingAnalyzer(), tmp_path, "app/src/main/java/com/x/ui/MealsScreen.kt", content)
    assert findings == []


def test_applies_to_boundaries_only(tmp_path: Path) -> None:
    analyzer = ErrorHandlingAnalyzer()
    assert analyzer.applies_to(make_file(tmp_path, "app/src/main/java/com/x/data/local/MealDao.kt", "")) is False
    assert analyzer.applies_to(make_file(tmp_path, "app/src/main/java/com/x/domain/model/Meal.kt", "")) is False
    assert analyzer.applies_to(make_file(tmp_path, "app/src/main/java/com/x/ui/MealsScreen.kt", "")) is True
