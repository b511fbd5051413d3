from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from functools import lru_cache
from types import MappingProxyType

from qualitysentinel.analyzers.architecture import ArchitectureAnalyzer
from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.analyzers.code_smell import CodeSmellAnalyzer
from qualitysentinel.analyzers.compose import ComposeAnalyzer
from qualitysentinel.analyzers.database import DatabaseAnalyzer
from qualitysentinel.analyzers.dependency_injection import DependencyInjectionAnalyzer
from qualitysentinel.analyzers.documentation import DocumentationAnalyzer
from qualitysentinel.analyzers.error_handling import ErrorHandlingAnalyzer
from qualitysentinel.analyzers.naming import NamingAnalyzer
from qualitysentinel.analyzers.performance import PerformanceAnalyzer
from qualitysentinel.analyzers.plugins import PluginLoadError, load_plugin_analyzers
from qualitysentinel.analyzers.security import SecurityAnalyzer
from qualitysentinel.analyzers.state_management import StateManagementAnalyzer
from qualitysentinel.analyzers.test_coverage import TestCoverageAnalyzer
from qualitysentinel.config import QualitySentinelConfig, Thresholds
from qualitysentinel.detekt import DETEKT_ID

_ANALYZER_ID_RE = re.compile(r"^[a-z][a-z0-9]*(?:-[a-z0-9]+)*$")


@lru_cache(maxsize=8)
def builtin_analyzers(thresholds: Thresholds = Thresholds()) -> tuple[BaseAnalyzer, ...]:
    """The built-in suite in its fixed run order."""

    analyzers: list[BaseAnalyzer] = [
        ArchitectureAnalyzer(),
        ComposeAnalyzer(),
        StateManagementAnalyzer(),
        ErrorHandlingAnalyzer(),
        DependencyInjectionAnalyzer(),
        DatabaseAnalyzer(),
        PerformanceAnalyzer(),
        NamingAnalyzer(),
        TestCoverageAnalyzer(),
        DocumentationAnalyzer(thresholds),
        SecurityAnalyzer(),
        CodeSmellAnalyzer(thresholds),
    ]
    _check_ids(analyzers, reserved=())
    return tuple(analyzers)


def builtin_analyzer_ids() -> tuple[str, ...]:
    return tuple(a.analyzer_id for a in builtin_analyzers())


def resolve_analyzers(config: QualitySentinelConfig) -> tuple[BaseAnalyzer, ...]:
    """
    Built-ins followed by plugin analyzers from `config.plugins`.

    Plugins are resolved per call and never registered process-wide, so two
    orchestrators with different configs do not see each other's analyzers.
    """

    builtins = builtin_analyzers(config.thresholds)
    if not config.plugins:
        return builtins
    extra = load_plugin_analyzers(config.plugins)
    try:
        _check_ids(extra, reserved={DETEKT_ID, *(a.analyzer_id for a in builtins)})
    except RuntimeError as exc:
        raise PluginLoadError(str(exc)) from exc
    return (*builtins, *extra)


def analyzers_by_id(analyzers: Iterable[BaseAnalyzer]) -> Mapping[str, BaseAnalyzer]:
    return MappingProxyType({a.analyzer_id: a for a in analyzers})


def _check_ids(analyzers: Iterable[BaseAnalyzer], *, reserved: Iterable[str]) -> None:
    reserved_ids = set(reserved)
    seen: set[str] = set()
    for analyzer in analyzers:
        analyzer_id = getattr(analyzer, "analyzer_id", "")
        if not isinstance(analyzer_id, str) or not _ANALYZER_ID_RE.match(analyzer_id):
            raise RuntimeError(f"Analyzer id must be kebab-case: {analyzer_id!r}")
        if analyzer_id in reserved_ids:
            raise RuntimeError(f"Plugin analyzer id conflicts with built-in analyzer id: {analyzer_id}")
        if analyzer_id in seen:
            raise RuntimeError(f"Duplicate analyzer id: {analyzer_id}")
        seen.add(analyzer_id)
