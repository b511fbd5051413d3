from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import ClassVar

from qualitysentinel.engine.types import Category, Effort, FileInfo, Finding, Priority


class BaseAnalyzer(ABC):
    """
    One pluggable rule unit scoped to a single concern.

    `applies_to` must only look at `FileInfo` metadata: the dispatcher calls it
    before reading the file and skips the read entirely when nothing applies.
    `analyze` must not keep state between calls; the same instance runs on
    several worker threads.
    """

    analyzer_id: ClassVar[str]
    name: ClassVar[str]
    category: ClassVar[Category]
    description: ClassVar[str] = ""

    def applies_to(self, file: FileInfo) -> bool:
        return True

    @abstractmethod
    def analyze(self, file: FileInfo, content: str) -> list[Finding]:
        raise NotImplementedError

    def _finding(
        self,
        file: FileInfo,
        *,
        rule: str,
        line: int,
        title: str,
        description: str,
        recommendation: str,
        priority: Priority,
        effort: Effort = "small",
        snippet: str = "",
        column: int | None = None,
        before: str | None = None,
        after: str | None = None,
        auto_fixable: bool = False,
        auto_fix: str | None = None,
        references: Sequence[str] = (),
        discriminator: str | None = None,
    ) -> Finding:
        finding_id = f"{self.analyzer_id}:{rule}:{file.relative_path}:{line}"
        if discriminator:
            finding_id = f"{finding_id}:{discriminator}"
        return Finding(
            id=finding_id,
            analyzer=self.analyzer_id,
            rule=rule,
            category=self.category,
            priority=priority,
            title=title,
            description=description,
            file=file.relative_path,
            line_number=line,
            column_number=column,
            code_snippet=snippet.strip(),
            recommendation=recommendation,
            before_example=before,
            after_example=after,
            auto_fixable=auto_fixable,
            auto_fix=auto_fix,
            effort=effort,
            references=tuple(references),
        )
