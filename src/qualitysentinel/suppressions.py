from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType


@dataclass(frozen=True, slots=True)
class Suppressions:
    """
    Finding suppressions extracted from in-file directives.

    Directives name an analyzer id (`security`) or a rule (`hardcoded-secret`),
    case-insensitive:
    - `quality: disable-file=naming` suppresses matches anywhere in the file
    - `quality: disable=hardcoded-secret` suppresses matches on that line
    - `quality: disable-next-line=security` suppresses matches on the next line
    """

    disabled_in_file: frozenset[str]
    disabled_on_line: Mapping[int, frozenset[str]]

    def is_suppressed(self, *, analyzer: str, rule: str, line: int | None) -> bool:
        keys = {analyzer.lower(), rule.lower(), "all"}
        if keys & self.disabled_in_file:
            return True
        if line is None:
            return False
        disabled = self.disabled_on_line.get(line)
        if not disabled:
            return False
        return bool(keys & disabled)

    def __bool__(self) -> bool:
        return bool(self.disabled_in_file or self.disabled_on_line)


_DISABLE_FILE_RE = re.compile(r"quality:\s*disable[-_]file\s*=\s*(?P<ids>[a-z0-9_,\-\s]+)", re.IGNORECASE)
_DISABLE_RE = re.compile(r"quality:\s*disable\s*=\s*(?P<ids>[a-z0-9_,\-\s]+)", re.IGNORECASE)
_DISABLE_NEXT_RE = re.compile(r"quality:\s*disable-next-line\s*=\s*(?P<ids>[a-z0-9_,\-\s]+)", re.IGNORECASE)

EMPTY_SUPPRESSIONS = Suppressions(disabled_in_file=frozenset(), disabled_on_line=MappingProxyType({}))


def parse_suppressions(lines: Sequence[str]) -> Suppressions:
    disabled_in_file: set[str] = set()
    disabled_on_line: dict[int, set[str]] = {}

    for idx, line in enumerate(lines, start=1):
        if "quality:" not in line.lower():
            continue

        match_file = _DISABLE_FILE_RE.search(line)
        if match_file:
            disabled_in_file.update(_parse_ids(match_file.group("ids")))

        match = _DISABLE_RE.search(line)
        if match:
            disabled_on_line.setdefault(idx, set()).update(_parse_ids(match.group("ids")))

        match_next = _DISABLE_NEXT_RE.search(line)
        if match_next:
            disabled_on_line.setdefault(idx + 1, set()).update(_parse_ids(match_next.group("ids")))

    if not disabled_in_file and not disabled_on_line:
        return EMPTY_SUPPRESSIONS
    frozen = {line: frozenset(ids) for line, ids in disabled_on_line.items()}
    return Suppressions(disabled_in_file=frozenset(sorted(disabled_in_file)), disabled_on_line=MappingProxyType(frozen))


def _parse_ids(value: str) -> set[str]:
    ids = set()
    for token in re.split(r"[,\s]+", value.strip()):
        normalized = token.strip().lower().replace("_", "-")
        if normalized:
            ids.add(normalized)
    return ids
