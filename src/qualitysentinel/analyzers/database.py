from __future__ import annotations

import re
from collections.abc import Sequence

from qualitysentinel.analyzers.base import BaseAnalyzer
from qualitysentinel.analyzers.utils import (
    FUN_DECL_RE,
    CodeLine,
    annotations_above,
    code_lines,
    collect_signature,
    parameter_section,
    parse_parameters,
)
from qualitysentinel.engine.types import FileInfo, Finding
from qualitysentinel.utils import file_name

_MUTATION_ANNOTATIONS = ("@Insert", "@Update", "@Delete", "@Upsert")
_RETURN_TYPE_RE = re.compile(r"\)\s*:\s*(?P<type>[\w.<>?, ]+?)\s*(?:$|=|\{)")
_STREAMING_RETURN_RE = re.compile(r"^(?:Flow|LiveData|PagingSource|Observable|Flowable)\b")
_BIND_MARKER_RE = re.compile(r":\w|\?")
_FOREIGN_KEY_RE = re.compile(r"\bForeignKey\s*\(")
_CASCADE_RE = re.compile(r"onDelete\s*=\s*(?:ForeignKey\.)?CASCADE\b")


class DatabaseAnalyzer(BaseAnalyzer):
    """Room DAOs and entities: reactive queries, suspend mutations, bound parameters, cascading keys."""

    analyzer_id = "database"
    name = "Database Analyzer"
    category = "database"
    description = "Checks Room DAO signatures, query parameters and foreign keys."

    def applies_to(self, file: FileInfo) -> bool:
        if file.layer != "data":
            return False
        name = file_name(file.relative_path)
        return name.endswith(("Dao.kt", "Entity.kt"))

    def analyze(self, file: FileInfo, content: str) -> list[Finding]:
        lines = code_lines(content)
        findings: list[Finding] = []
        if "@Dao" in content:
            findings.extend(self._check_dao(file, lines))
        if "@Entity" in content:
            findings.extend(self._check_foreign_keys(file, lines))
        return findings

    def _check_dao(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        for index, line in enumerate(lines):
            match = FUN_DECL_RE.search(line.code)
            if match is None:
                continue
            annotations = annotations_above(lines, index)
            query_text = self._query_text(lines, index)
            is_query = query_text is not None
            is_mutation = any(a.startswith(_MUTATION_ANNOTATIONS) for a in annotations)
            if not (is_query or is_mutation):
                continue

            name = match.group("name")
            signature, _end = collect_signature(lines, index)
            header = signature.split("fun", 1)[0]
            is_suspend = re.search(r"\bsuspend\b", header) is not None
            return_match = _RETURN_TYPE_RE.search(signature)
            return_type = return_match.group("type").strip() if return_match is not None else "Unit"
            streaming = _STREAMING_RETURN_RE.match(return_type) is not None

            if is_query and not is_suspend and not streaming:
                findings.append(
                    self._finding(
                        file,
                        rule="dao-query-not-flow",
                        line=line.line_no,
                        priority="high",
                        effort="small",
                        title=f"DAO Query Should Return Flow or Be Suspend: {name}",
                        description=(
                            f"`{name}` returns `{return_type}` synchronously; Room rejects main-thread "
                            "queries and callers get no updates."
                        ),
                        recommendation=f"Return `Flow<{return_type}>` for observed data, or mark the function `suspend`.",
                        snippet=line.raw,
                        before=f"fun {name}(): {return_type}",
                        after=f"fun {name}(): Flow<{return_type}>",
                    )
                )
            if is_mutation and not is_suspend:
                findings.append(
                    self._finding(
                        file,
                        rule="dao-mutation-not-suspend",
                        line=line.line_no,
                        priority="high",
                        effort="trivial",
                        title=f"DAO Mutation Should Be Suspend: {name}",
                        description=f"`{name}` writes to the database but blocks its caller.",
                        recommendation="Mark the function `suspend` so it runs on Room's executor.",
                        snippet=line.raw,
                        auto_fixable=True,
                        auto_fix="add-suspend",
                    )
                )
            if is_query:
                section = parameter_section(signature)
                params = parse_parameters(section) if section else []
                named_query = query_text is not None and "@Query" in query_text
                if params and named_query and _BIND_MARKER_RE.search(query_text or "") is None:
                    findings.append(
                        self._finding(
                            file,
                            rule="query-missing-bind-parameters",
                            line=line.line_no,
                            priority="high",
                            effort="small",
                            title=f"Query Ignores Its Parameters: {name}",
                            description=(
                                f"`{name}` takes {', '.join(p.name for p in params)} but its query has no "
                                "`:name` or `?` bind markers."
                            ),
                            recommendation="Reference each argument with a named bind parameter such as `:id`.",
                            snippet=line.raw,
                            before="@Query(\"SELECT * FROM meals WHERE id = 1\")\nfun byId(id: Long): Flow<Meal>",
                            after="@Query(\"SELECT * FROM meals WHERE id = :id\")\nfun byId(id: Long): Flow<Meal>",
                        )
                    )
        return findings

    @staticmethod
    def _query_text(lines: Sequence[CodeLine], fun_index: int) -> str | None:
        """Raw text of the `@Query(...)` annotation above the function at `fun_index`."""

        start = None
        for idx in range(fun_index, max(fun_index - 12, -1), -1):
            if "@Query" in lines[idx].code or "@RawQuery" in lines[idx].code:
                start = idx
                break
            if idx != fun_index and FUN_DECL_RE.search(lines[idx].code) is not None:
                break
        if start is None:
            return None
        _text, end = collect_signature(lines, start)
        return " ".join(line.raw.strip() for line in lines[start : end + 1])

    def _check_foreign_keys(self, file: FileInfo, lines: Sequence[CodeLine]) -> list[Finding]:
        findings: list[Finding] = []
        for index, line in enumerate(lines):
            for match in _FOREIGN_KEY_RE.finditer(line.code):
                joined = " ".join(l.code for l in lines[index : index + 8])
                offset = match.start()
                depth = 0
                end = len(joined)
                for pos in range(offset, len(joined)):
                    if joined[pos] == "(":
                        depth += 1
                    elif joined[pos] == ")":
                        depth -= 1
                        if depth == 0:
                            end = pos
                            break
                definition = joined[offset:end]
                if _CASCADE_RE.search(definition):
                    continue
                findings.append(
                    self._finding(
                        file,
                        rule="foreign-key-without-cascade",
                        line=line.line_no,
                        priority="medium",
                        effort="small",
                        title="Foreign Key Without onDelete CASCADE",
                        description=(
                            "Deleting the parent row leaves orphaned children or fails with a constraint error."
                        ),
                        recommendation="Add `onDelete = ForeignKey.CASCADE` (or an explicit alternative policy).",
                        snippet=line.raw,
                        discriminator=str(match.start()) if match.start() else None,
                    )
                )
        return findings
