from __future__ import annotations

from pathlib import Path

from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.engine.types import FileInfo, Finding
from qualitysentinel.scanner import file_info


def write_source(root: Path, relpath: str, content: str) -> Path:
    path = root / relpath
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def make_file(root: Path, relpath: str, content: str) -> FileInfo:
    return file_info(write_source(root, relpath, content), root)


def run_analyzer(analyzer: BaseAnalyzer, root: Path, relpath: str, content: str) -> list[Finding]:
    info = make_file(root, relpath, content)
    assert analyzer.applies_to(info), relpath
    return analyzer.analyze(info, content)


def rules(findings: list[Finding]) -> list[str]:
    return [f.rule for f in findings]


def make_finding(
    *,
    analyzer: str = "naming",
    rule: str = "class-name-case",
    category: str = "naming",
    priority: str = "low",
    file: str = "app/src/main/java/com/x/Foo.kt",
    line: int = 1,
    title: str = "Title",
    snippet: str = "",
    effort: str = "small",
    auto_fixable: bool = False,
    finding_id: str | None = None,
) -> Finding:
    return Finding(
        id=finding_id or f"{analyzer}:{rule}:{file}:{line}",
        analyzer=analyzer,
        rule=rule,
        category=category,  # type: ignore[arg-type]
        priority=priority,  # type: ignore[arg-type]
        title=title,
        description="description",
        file=file,
        line_number=line,
        code_snippet=snippet,
        recommendation="fix it",
        effort=effort,  # type: ignore[arg-type]
        auto_fixable=auto_fixable,
    )


def branchy_function(branches: int, *, comment: bool = False) -> str:
    """A function with `branches` early-return ifs (complexity `branches + 1`)."""

    lines = ["fun pick(x: Int): Int {"]
    if comment:
        lines.append("    // Small ids map to themselves.")
    lines.extend(f"    if (x == {i}) return {i}" for i in range(branches))
    lines.extend(["    return -1", "}", ""])
    return "\n".join(lines)


def nested_function(depth: int) -> str:
    lines = ["fun deep(a: Boolean) {"]
    for level in range(depth):
        lines.append("    " * (level + 1) + "if (a) {")
    lines.append("    " * (depth + 1) + "work()")
    for level in reversed(range(depth)):
        lines.append("    " * (level + 1) + "}")
    lines.extend(["}", ""])
    return "\n".join(lines)
