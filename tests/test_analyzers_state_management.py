from __future__ import annotations

from pathlib import Path

from qualitysentinel.analyzers.state_management import StateManagementAnalyzer

from helpers import make_file, rules, run_analyzer

VIEWMODEL = "app/src/main/java/com/x/ui/meals/MealsViewModel.kt"
REPOSITORY = "app/src/main/java/com/x/data/repository/MealRepositoryImpl.kt"


def _src(*lines: str) -> str:
    return "\n".join(lines) + "\n"


def test_viewmodel_state_rules(tmp_path: Path) -> None:
    content = _src(
        "@HiltViewModel",
        "class MealsViewModel @Inject constructor(",
        "    private val repo: MealRepository,",
        ") : ViewModel() {",
        "    val uiState = MutableStateFlow(UiState())",
        "    private val _events = MutableSharedFlow<Event>()",
        "",
        "    fun load() {",
        "        viewModelScope.launch {",
        "            _events.emit(Event.Loaded)",
        "        }",
        "        GlobalScope.launch { repo.refresh() }",
        "    }",
        "",
        "    fun toggle() {",
        "        _state.value = _state.value.copy(isLoading = true)",
        "    }",
        "}",
    )
    findings = run_analyzer(StateManagementAnalyzer(), tmp_path, VIEWMODEL, content)
    by_rule = {f.rule: f for f in findings}
    assert sorted(by_rule) == ["direct-state-mutation", "exposed-mutable-state", "launch-outside-viewmodel-scope"]
    assert len(findings) == 3
    assert by_rule["exposed-mutable-state"].line_number == 5
    assert by_rule["launch-outside-viewmodel-scope"].line_number == 12
    assert by_rule["direct-state-mutation"].line_number == 16
    assert by_rule["direct-state-mutation"].auto_fixable is True


def test_encapsulated_viewmodel_is_clean(tmp_path: Path) -> None:
    content = _src(
        "class MealsViewModel : ViewModel() {",
        "    private val _uiState = MutableStateFlow(UiState())",
        "    val uiState: StateFlow<UiState> = _uiState.asStateFlow()",
        "",
        "    fun toggle() {",
        "        _uiState.update { it.copy(isLoading = true) }",
        "    }",
        "}",
    )
    assert run_analyzer(StateManagementAnalyzer(), tmp_path, VIEWMODEL, content) == []


def test_ui_files_that_are_not_viewmodels_are_ignored(tmp_path: Path) -> None:
    content = _src("val state = MutableStateFlow(0)", "fun go() { GlobalScope.launch { } }")
    findings = run_analyzer(StateManagementAnalyzer(), tmp_path, "app/src/main/java/com/x/ui/Helpers.kt", content)
    assert findings == []


def test_repository_flow_without_flow_on(tmp_path: Path) -> None:
    content = _src(
        "class MealRepositoryImpl @Inject constructor(private val dao: MealDao) : MealRepository {",
        "    override fun meals(): Flow<List<Meal>> = dao.observeAll().map { list -> list.map { it.toDomain() } }",
        "",
        "    override fun cached(): Flow<List<Meal>> =",
        "        dao.observeAll().flowOn(ioDispatcher)",
        "}",
    )
    findings = run_analyzer(StateManagementAnalyzer(), tmp_path, REPOSITORY, content)
    assert rules(findings) == ["missing-flow-on"]
    assert findings[0].line_number == 2
    assert findings[0].title.endswith("meals")


def test_applies_to_ui_and_repositories_only(tmp_path: Path) -> None:
    analyzer = StateManagementAnalyzer()
    assert analyzer.applies_to(make_file(tmp_path, "app/src/main/java/com/x/data/local/MealDao.kt", "")) is False
    assert analyzer.applies_to(make_file(tmp_path, "app/src/main/java/com/x/domain/Meal.kt", "")) is False
