from __future__ import annotations

from pathlib import Path

from qualitysentinel.analyzers.test_coverage import (
    TestCoverageAnalyzer,
    expected_test_path,
    suggested_test_name,
)

from helpers import rules, run_analyzer, write_source

VIEWMODEL = "app/src/main/java/com/x/ui/MealsViewModel.kt"
VIEWMODEL_SRC = "class MealsViewModel : ViewModel()\n"


def test_expected_test_path() -> None:
    assert expected_test_path(VIEWMODEL) == "app/src/test/java/com/x/ui/MealsViewModelTest.kt"


def test_suggested_test_name() -> None:
    assert suggested_test_name("MealsChecks.kt") == "MealsChecksTest.kt"
    assert suggested_test_name("MealTests.kt") == "MealTest.kt"


def test_viewmodel_without_test_is_reported(tmp_path: Path) -> None:
    findings = run_analyzer(TestCoverageAnalyzer(), tmp_path, VIEWMODEL, VIEWMODEL_SRC)
    assert rules(findings) == ["missing-test-file"]
    assert findings[0].title == "Missing Test File for ViewModel: MealsViewModel"
    assert findings[0].priority == "medium"


def test_viewmodel_with_unit_test_is_clean(tmp_path: Path) -> None:
    write_source(tmp_path, "app/src/test/java/com/x/ui/MealsViewModelTest.kt", "class MealsViewModelTest\n")
    assert run_analyzer(TestCoverageAnalyzer(), tmp_path, VIEWMODEL, VIEWMODEL_SRC) == []


def test_viewmodel_with_instrumented_test_is_clean(tmp_path: Path) -> None:
    write_source(tmp_path, "app/src/androidTest/java/com/x/ui/MealsViewModelTest.kt", "class MealsViewModelTest\n")
    assert run_analyzer(TestCoverageAnalyzer(), tmp_path, VIEWMODEL, VIEWMODEL_SRC) == []


def test_use_case_and_repository_impl(tmp_path: Path) -> None:
    analyzer = TestCoverageAnalyzer()
    use_case = run_analyzer(
        analyzer, tmp_path, "app/src/main/java/com/x/domain/usecase/GetMealsUseCase.kt", "class GetMealsUseCase\n"
    )
    repo = run_analyzer(
        analyzer,
        tmp_path,
        "app/src/main/java/com/x/data/repository/MealRepositoryImpl.kt",
        "class MealRepositoryImpl\n",
    )
    assert [f.title for f in use_case + repo] == [
        "Missing Test File for Use Case: GetMealsUseCase",
        "Missing Test File for Repository: MealRepositoryImpl",
    ]


def test_other_production_files_are_ignored(tmp_path: Path) -> None:
    analyzer = TestCoverageAnalyzer()
    assert run_analyzer(analyzer, tmp_path, "app/src/main/java/com/x/ui/MealCard.kt", "fun MealCard() = Unit\n") == []
    # Named like a ViewModel but not one.
    assert run_analyzer(analyzer, tmp_path, VIEWMODEL, "object MealsViewModel\n") == []


def test_test_file_naming(tmp_path: Path) -> None:
    content = "class MealsChecks {\n    @Test\n    fun works() = Unit\n}\n"
    findings = run_analyzer(TestCoverageAnalyzer(), tmp_path, "app/src/test/java/com/x/MealsChecks.kt", content)
    assert rules(findings) == ["test-file-naming"]
    assert findings[0].auto_fixable is True
    assert findings[0].auto_fix == "rename-file:MealsChecksTest.kt"


def test_helpers_in_test_sources_are_not_tests(tmp_path: Path) -> None:
    analyzer = TestCoverageAnalyzer()
    assert run_analyzer(analyzer, tmp_path, "app/src/test/java/com/x/Fixtures.kt", "val meal = Meal(1)\n") == []
    assert run_analyzer(analyzer, tmp_path, "app/src/test/java/com/x/MealTest.kt", "@Test fun a() = Unit\n") == []
