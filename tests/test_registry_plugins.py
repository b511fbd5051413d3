from __future__ import annotations

from pathlib import Path

import pytest

from qualitysentinel.analyzers.plugins import PluginLoadError, load_plugin_analyzers
from qualitysentinel.analyzers.registry import analyzers_by_id, builtin_analyzer_ids, resolve_analyzers
from qualitysentinel.config import QualitySentinelConfig

PLUGIN_SOURCE = """
from qualitysentinel.analyzers.base import BaseAnalyzer


class TodoAnalyzer(BaseAnalyzer):
    analyzer_id = "{analyzer_id}"
    name = "Todo Analyzer"
    category = "code-smell"

    def analyze(self, file, content):
        return [
            self._finding(
                file,
                rule="todo",
                line=number,
                title="TODO left in code",
                description="A TODO marker was found.",
                recommendation="Resolve it or file an issue.",
                priority="low",
            )
            for number, line in enumerate(content.splitlines(), start=1)
            if "TODO" in line
        ]


ANALYZERS = [TodoAnalyzer()]
"""


def _write_plugin(tmp_path: Path, module: str, analyzer_id: str = "todo-markers") -> None:
    (tmp_path / f"{module}.py").write_text(PLUGIN_SOURCE.format(analyzer_id=analyzer_id), encoding="utf-8")


def test_builtin_order_is_fixed() -> None:
    assert builtin_analyzer_ids() == (
        "architecture",
        "compose",
        "state-management",
        "error-handling",
        "dependency-injection",
        "database",
        "performance",
        "naming",
        "test-coverage",
        "documentation",
        "security",
        "code-smell",
    )


def test_resolve_without_plugins_returns_builtins() -> None:
    analyzers = resolve_analyzers(QualitySentinelConfig())
    assert tuple(a.analyzer_id for a in analyzers) == builtin_analyzer_ids()
    assert set(analyzers_by_id(analyzers)) == set(builtin_analyzer_ids())


def test_plugin_module_is_appended(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_plugin(tmp_path, "qs_plugin_todo")
    monkeypatch.syspath_prepend(str(tmp_path))

    analyzers = resolve_analyzers(QualitySentinelConfig(plugins=("qs_plugin_todo",)))
    assert analyzers[-1].analyzer_id == "todo-markers"
    assert len(analyzers) == len(builtin_analyzer_ids()) + 1


def test_plugin_attribute_spec(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_plugin(tmp_path, "qs_plugin_attr")
    monkeypatch.syspath_prepend(str(tmp_path))

    analyzers = load_plugin_analyzers(("qs_plugin_attr:TodoAnalyzer",))
    assert [a.analyzer_id for a in analyzers] == ["todo-markers"]


def test_plugin_id_clash_with_builtin(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_plugin(tmp_path, "qs_plugin_clash", analyzer_id="security")
    monkeypatch.syspath_prepend(str(tmp_path))

    with pytest.raises(PluginLoadError, match="conflicts with built-in"):
        resolve_analyzers(QualitySentinelConfig(plugins=("qs_plugin_clash",)))


def test_plugin_id_must_be_kebab_case(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_plugin(tmp_path, "qs_plugin_badid", analyzer_id="Todo_Markers")
    monkeypatch.syspath_prepend(str(tmp_path))

    with pytest.raises(PluginLoadError, match="kebab-case"):
        resolve_analyzers(QualitySentinelConfig(plugins=("qs_plugin_badid",)))


def test_plugin_import_errors() -> None:
    with pytest.raises(PluginLoadError, match="Failed to import"):
        load_plugin_analyzers(("qs_plugin_does_not_exist",))
    with pytest.raises(PluginLoadError, match="has no attribute"):
        load_plugin_analyzers(("json:NoSuchAnalyzers",))
    with pytest.raises(PluginLoadError, match="must define"):
        load_plugin_analyzers(("json",))
