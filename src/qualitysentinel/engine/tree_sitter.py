from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from functools import lru_cache
from typing import Any, Protocol, cast


class SyntaxTree(Protocol):
    # tree-sitter Tree exposes `root_node`; nodes are treated structurally
    # (`type`, `children`, `start_point`, `end_point`).
    root_node: Any


class _ParserLike(Protocol):
    def set_language(self, language: object) -> None: ...

    def parse(self, source: bytes) -> object: ...


_parser_cls: type[_ParserLike] | None
_get_language_func: Callable[[str], object] | None

try:  # pragma: no cover
    from tree_sitter import Parser as _TreeSitterParser
    from tree_sitter_languages import get_language as _tree_sitter_get_language
except (ImportError, OSError):  # pragma: no cover
    _parser_cls = None
    _get_language_func = None
else:  # pragma: no cover (depends on installed grammars)
    _parser_cls = cast(type[_ParserLike], _TreeSitterParser)
    _get_language_func = cast(Callable[[str], object], _tree_sitter_get_language)

_TREE_SITTER_AVAILABLE = _parser_cls is not None and _get_language_func is not None

# Module-level so tests can monkeypatch them.
Parser: type[_ParserLike] | None = _parser_cls
get_language: Callable[[str], object] | None = _get_language_func

_MISSING_DEPS = (
    "tree-sitter dependencies are not installed. Install `qualitysentinel[treesitter]` "
    "to analyze Kotlin through a syntax tree instead of line scanning."
)


class TreeSitterError(RuntimeError):
    """Raised when tree-sitter cannot load a language or parse source."""


@lru_cache(maxsize=8)
def _get_language(language: str) -> object:
    if not _TREE_SITTER_AVAILABLE:  # pragma: no cover
        raise TreeSitterError(_MISSING_DEPS)
    try:
        assert get_language is not None
        return get_language(language)
    except (AttributeError, KeyError, ValueError, RuntimeError) as exc:  # pragma: no cover (depends on installed grammars)
        raise TreeSitterError(f"tree-sitter language not available: {language!r}") from exc


_PARSER_LOCAL = threading.local()


def _get_parser(language: str) -> _ParserLike:
    """
    Return a per-thread Parser for `language`.

    Parser objects are not thread-safe and analyzers run on a worker pool.
    """

    if not _TREE_SITTER_AVAILABLE:  # pragma: no cover
        raise TreeSitterError(_MISSING_DEPS)

    parsers: dict[str, _ParserLike] | None = getattr(_PARSER_LOCAL, "parsers", None)
    if parsers is None:
        parsers = {}
        _PARSER_LOCAL.parsers = parsers

    parser = parsers.get(language)
    if parser is not None:
        return parser

    lang = _get_language(language)
    assert Parser is not None
    parser = Parser()
    parser.set_language(lang)
    parsers[language] = parser
    return parser


def parse(language: str, source: str) -> SyntaxTree | None:
    """
    Parse source code with tree-sitter.

    Returns None when tree-sitter is unavailable or parsing fails, so callers
    can fall back to line scanning.
    """

    if not _TREE_SITTER_AVAILABLE:
        return None
    try:
        parser = _get_parser(language)
        tree = parser.parse(source.encode("utf-8", errors="replace"))
        return cast(SyntaxTree, tree)
    except (TreeSitterError, AttributeError, ValueError, TypeError, RuntimeError):
        return None


def iter_nodes(node: Any) -> Iterator[Any]:
    """Pre-order walk without recursion (deep Kotlin files overflow the stack)."""

    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        children = getattr(current, "children", None) or []
        stack.extend(reversed(children))


def node_lines(node: Any) -> tuple[int, int]:
    """Return the 1-based (start_line, end_line) span of a node."""

    start_row = int(getattr(node, "start_point", (0, 0))[0])
    end_row = int(getattr(node, "end_point", (start_row, 0))[0])
    return start_row + 1, max(start_row, end_row) + 1
