from __future__ import annotations

from pathlib import Path

from qualitysentinel.analyzers.compose import ComposeAnalyzer

from helpers import make_file, rules, run_analyzer

SCREEN = "app/src/main/java/com/x/ui/meals/MealsScreen.kt"


def _src(*lines: str) -> str:
    return "\n".join(lines) + "\n"


def test_public_composable_without_modifier(tmp_path: Path) -> None:
    content = _src(
        "@Composable",
        "fun MealCard(meal: Meal) {",
        "    Text(meal.name)",
        "}",
        "",
        "@Composable",
        "private fun Preview() {",
        "    MealCard(Meal())",
        "}",
    )
    findings = run_analyzer(ComposeAnalyzer(), tmp_path, SCREEN, content)
    assert rules(findings) == ["missing-modifier-parameter"]
    assert findings[0].line_number == 2
    assert findings[0].title.endswith("MealCard")


def test_modifier_without_default_is_auto_fixable(tmp_path: Path) -> None:
    content = _src(
        "@Composable",
        "fun MealCard(meal: Meal, modifier: Modifier) {",
        "    Card(modifier = modifier) { Text(meal.name) }",
        "}",
    )
    findings = run_analyzer(ComposeAnalyzer(), tmp_path, SCREEN, content)
    assert rules(findings) == ["modifier-without-default"]
    assert findings[0].auto_fixable is True


def test_lazy_items_need_keys(tmp_path: Path) -> None:
    content = _src(
        "@Composable",
        "fun MealList(meals: List<Meal>, modifier: Modifier = Modifier) {",
        "    LazyColumn(modifier = modifier) {",
        "        items(meals) { meal ->",
        "            MealCard(meal)",
        "        }",
        "        items(meals, key = { it.id }) { meal ->",
        "            MealCard(meal)",
        "        }",
        "    }",
        "}",
    )
    findings = run_analyzer(ComposeAnalyzer(), tmp_path, SCREEN, content)
    assert rules(findings) == ["lazy-items-without-key"]
    assert findings[0].line_number == 4


def test_nested_lazy_column(tmp_path: Path) -> None:
    content = _src(
        "@Composable",
        "fun Feed(modifier: Modifier = Modifier) {",
        "    LazyColumn(modifier) {",
        "        item {",
        "            LazyColumn {",
        '                item { Text("x") }',
        "            }",
        "        }",
        "    }",
        "}",
    )
    findings = run_analyzer(ComposeAnalyzer(), tmp_path, SCREEN, content)
    assert rules(findings) == ["nested-lazy-column"]
    assert findings[0].line_number == 5
    assert findings[0].priority == "high"


def test_expensive_computation_without_remember(tmp_path: Path) -> None:
    content = _src(
        "@Composable",
        "fun Meals(meals: List<Meal>, modifier: Modifier = Modifier) {",
        "    val visible = meals.filter { it.isVisible }",
        "    val cached = remember(meals) { meals.filter { it.isVisible } }",
        "    Column(modifier) { }",
        "}",
    )
    findings = run_analyzer(ComposeAnalyzer(), tmp_path, SCREEN, content)
    assert rules(findings) == ["unremembered-computation"]
    assert findings[0].line_number == 3


def test_compose_only_runs_on_ui_sources(tmp_path: Path) -> None:
    analyzer = ComposeAnalyzer()
    data = make_file(tmp_path, "app/src/main/java/com/x/data/MealMapper.kt", "@Composable\nfun A() {}\n")
    assert analyzer.applies_to(data) is False
