from __future__ import annotations

import fnmatch
import tomllib
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


class ConfigError(ValueError):
    """Raised when a QualitySentinel configuration file is invalid."""


DEFAULT_OUTPUT_DIR = ".qualitysentinel"
DEFAULT_EXTENSIONS: tuple[str, ...] = (".kt", ".kts")
DEFAULT_MAX_FILE_SIZE_KB = 1024
STANDALONE_CONFIG_NAME = "qualitysentinel.toml"


@dataclass(frozen=True, slots=True)
class Thresholds:
    max_function_lines: int = 50
    max_class_lines: int = 300
    max_complexity: int = 15
    comment_complexity: int = 10
    max_nesting: int = 4
    max_parameters: int = 5


@dataclass(frozen=True, slots=True)
class AnalyzersConfig:
    enable: str | tuple[str, ...] = "all"
    disable: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class IgnoreConfig:
    paths: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class HistoryConfig:
    enabled: bool = True


@dataclass(frozen=True, slots=True)
class DetektConfig:
    # Project-relative Detekt report (SARIF or checkstyle XML); None disables the import.
    report: str | None = None


@dataclass(frozen=True, slots=True)
class QualitySentinelConfig:
    output_dir: str = DEFAULT_OUTPUT_DIR
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    max_file_size_kb: int = DEFAULT_MAX_FILE_SIZE_KB
    analyzers: AnalyzersConfig = field(default_factory=AnalyzersConfig)
    ignore: IgnoreConfig = field(default_factory=IgnoreConfig)
    thresholds: Thresholds = field(default_factory=Thresholds)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    plugins: tuple[str, ...] = ()
    detekt: DetektConfig = field(default_factory=DetektConfig)


def load_config(project_dir: Path | str = ".") -> QualitySentinelConfig:
    """
    Load configuration for the project rooted at `project_dir`.

    `[tool.qualitysentinel]` in `pyproject.toml` wins. Gradle projects rarely
    carry a pyproject, so a top-level `qualitysentinel.toml` is read next.
    Without either, defaults are returned.
    """

    project_dir_path = Path(project_dir)

    pyproject_path = project_dir_path / "pyproject.toml"
    if pyproject_path.exists():
        data = _read_toml(pyproject_path)
        tool_table = data.get("tool", {})
        if isinstance(tool_table, dict):
            table = tool_table.get("qualitysentinel", {})
            if isinstance(table, dict) and table:
                return _parse_table(table, prefix="tool.qualitysentinel")

    standalone_path = project_dir_path / STANDALONE_CONFIG_NAME
    if standalone_path.exists():
        data = _read_toml(standalone_path)
        if data:
            return _parse_table(data, prefix="qualitysentinel")

    return QualitySentinelConfig()


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    except OSError as exc:  # pragma: no cover (rare)
        raise ConfigError(f"Failed to read {path}: {exc}") from exc


def _parse_table(table: dict[str, Any], *, prefix: str) -> QualitySentinelConfig:
    output_dir = table.get("output-dir", table.get("output_dir", DEFAULT_OUTPUT_DIR))
    if not isinstance(output_dir, str) or not output_dir.strip():
        raise ConfigError(f"`{prefix}.output-dir` must be a non-empty string path.")
    output_dir = output_dir.strip()
    if Path(output_dir).is_absolute() or ".." in Path(output_dir).parts:
        raise ConfigError(f"`{prefix}.output-dir` must be a relative path inside the project.")

    extensions = _parse_extensions(table.get("extensions"), field_name=f"{prefix}.extensions")

    max_size = table.get("max-file-size-kb", table.get("max_file_size_kb", DEFAULT_MAX_FILE_SIZE_KB))
    if not isinstance(max_size, int) or isinstance(max_size, bool) or max_size <= 0:
        raise ConfigError(f"`{prefix}.max-file-size-kb` must be an integer > 0.")

    analyzers = _parse_analyzers_config(table.get("analyzers", {}), prefix=prefix)
    ignore = _parse_ignore_config(table.get("ignore", {}), prefix=prefix)
    thresholds = _parse_thresholds(table.get("thresholds", {}), prefix=prefix)
    history = _parse_history_config(table.get("history", {}), prefix=prefix)
    plugins = _validate_str_list(table.get("plugins", []), field_name=f"{prefix}.plugins")
    detekt = _parse_detekt_config(table.get("detekt", {}), prefix=prefix)

    return QualitySentinelConfig(
        output_dir=output_dir,
        extensions=extensions,
        max_file_size_kb=max_size,
        analyzers=analyzers,
        ignore=ignore,
        thresholds=thresholds,
        history=history,
        plugins=plugins,
        detekt=detekt,
    )


def _validate_str_list(value: Any, *, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or any(not isinstance(v, str) for v in value):
        raise ConfigError(f"`{field_name}` must be a list of strings.")
    return tuple(v.strip() for v in value if v.strip())


def _parse_extensions(value: Any, *, field_name: str) -> tuple[str, ...]:
    if value is None:
        return DEFAULT_EXTENSIONS
    raw = _validate_str_list(value, field_name=field_name)
    if not raw:
        raise ConfigError(f"`{field_name}` must not be empty.")
    out: list[str] = []
    for ext in raw:
        normalized = ext.lower()
        if not normalized.startswith("."):
            normalized = f".{normalized}"
        if normalized not in out:
            out.append(normalized)
    return tuple(out)


def _parse_analyzers_config(value: Any, *, prefix: str) -> AnalyzersConfig:
    if value is None:
        return AnalyzersConfig()
    if not isinstance(value, dict):
        raise ConfigError(f"`{prefix}.analyzers` must be a table.")

    enable: str | tuple[str, ...]
    enable_raw = value.get("enable", "all")
    if isinstance(enable_raw, str):
        enable = enable_raw.strip().lower() or "all"
        if enable != "all":
            enable = (enable,)
    elif isinstance(enable_raw, list) and all(isinstance(v, str) for v in enable_raw):
        enable = tuple(_normalize_analyzer_id(v) for v in enable_raw if v.strip())
    else:
        raise ConfigError(f"`{prefix}.analyzers.enable` must be a string or a list of strings.")

    disable = tuple(
        _normalize_analyzer_id(v)
        for v in _validate_str_list(value.get("disable", []), field_name=f"{prefix}.analyzers.disable")
    )
    return AnalyzersConfig(enable=enable, disable=disable)


def _normalize_analyzer_id(value: str) -> str:
    # Ids are kebab-case; accept snake_case in user config.
    return value.strip().lower().replace("_", "-")


def _parse_ignore_config(value: Any, *, prefix: str) -> IgnoreConfig:
    if value is None:
        return IgnoreConfig()
    if not isinstance(value, dict):
        raise ConfigError(f"`{prefix}.ignore` must be a table.")
    paths = _validate_str_list(value.get("paths", []), field_name=f"{prefix}.ignore.paths")
    return IgnoreConfig(paths=paths)


_THRESHOLD_KEYS = {
    "max-function-lines": "max_function_lines",
    "max-class-lines": "max_class_lines",
    "max-complexity": "max_complexity",
    "comment-complexity": "comment_complexity",
    "max-nesting": "max_nesting",
    "max-parameters": "max_parameters",
}


def _parse_thresholds(value: Any, *, prefix: str) -> Thresholds:
    if value is None:
        return Thresholds()
    if not isinstance(value, dict):
        raise ConfigError(f"`{prefix}.thresholds` must be a table.")

    kwargs: dict[str, int] = {}
    for raw_key, raw_value in value.items():
        key = str(raw_key).strip().replace("_", "-")
        attr = _THRESHOLD_KEYS.get(key)
        if attr is None:
            valid = ", ".join(sorted(_THRESHOLD_KEYS))
            raise ConfigError(f"`{prefix}.thresholds` contains unknown key: {raw_key!r}. ({valid})")
        if not isinstance(raw_value, int) or isinstance(raw_value, bool) or raw_value < 1:
            raise ConfigError(f"`{prefix}.thresholds.{key}` must be an integer >= 1.")
        kwargs[attr] = raw_value
    return Thresholds(**kwargs)


def _parse_history_config(value: Any, *, prefix: str) -> HistoryConfig:
    if value is None:
        return HistoryConfig()
    if not isinstance(value, dict):
        raise ConfigError(f"`{prefix}.history` must be a table.")
    enabled = value.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigError(f"`{prefix}.history.enabled` must be a boolean.")
    return HistoryConfig(enabled=enabled)


def _parse_detekt_config(value: Any, *, prefix: str) -> DetektConfig:
    if value is None:
        return DetektConfig()
    if not isinstance(value, dict):
        raise ConfigError(f"`{prefix}.detekt` must be a table.")
    report = value.get("report")
    if report is None:
        return DetektConfig()
    if not isinstance(report, str) or not report.strip():
        raise ConfigError(f"`{prefix}.detekt.report` must be a non-empty string path.")
    report = report.strip()
    if Path(report).is_absolute() or ".." in Path(report).parts:
        raise ConfigError(f"`{prefix}.detekt.report` must be a relative path inside the project.")
    return DetektConfig(report=report)


def compute_enabled_analyzer_ids(config: QualitySentinelConfig, *, available_ids: Iterable[str]) -> set[str]:
    """
    Resolve the enabled analyzer set from `analyzers.enable` + `analyzers.disable`.

    Unknown ids are dropped silently; the result is always a subset of
    `available_ids`.
    """

    available = set(available_ids)
    enable = config.analyzers.enable
    if isinstance(enable, str):
        enabled = set(available) if enable == "all" else {enable}
    else:
        enabled = set()
        for token in enable:
            if token == "all":
                enabled.update(available)
            else:
                enabled.add(token)

    enabled.difference_update(config.analyzers.disable)
    enabled.intersection_update(available)
    return enabled


def path_is_ignored(relative_path: str, ignore_patterns: Iterable[str]) -> bool:
    """
    Return True if the POSIX `relative_path` matches any ignore pattern.

    Supported patterns:
    - Directory prefixes: "app/src/test/" matches everything below it.
    - Globs without slashes: "*Generated.kt" matches basenames.
    - Globs with slashes: "**/legacy/*.kt" matches full relative paths.
    """

    rel_posix = relative_path.replace("\\", "/")
    basename = rel_posix.rsplit("/", 1)[-1]

    for raw_pattern in ignore_patterns:
        pattern = raw_pattern.strip().replace("\\", "/")
        if not pattern:
            continue
        if pattern.startswith("./"):
            pattern = pattern[2:]

        if pattern.endswith("/"):
            if rel_posix.startswith(pattern):
                return True
            continue

        if "/" in pattern:
            if fnmatch.fnmatch(rel_posix, pattern):
                return True
            # "**/x/*" should also match "x/*" at the root.
            if pattern.startswith("**/") and fnmatch.fnmatch(rel_posix, pattern[3:]):
                return True
        elif fnmatch.fnmatch(basename, pattern):
            return True

    return False
