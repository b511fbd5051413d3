from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from qualitysentinel.analyzers.utils import (
    FUN_DECL_RE,
    CodeLine,
    OpenConstruct,
    ScopeTracker,
    code_lines,
    collect_signature,
    count_decision_points,
    max_nesting_depth,
    parameter_section,
    parse_parameters,
    split_top_level,
)
from qualitysentinel.engine.tree_sitter import SyntaxTree, iter_nodes, node_lines
from qualitysentinel.engine.tree_sitter import parse as ts_parse


@dataclass(frozen=True, slots=True)
class FunctionMetrics:
    name: str
    start_line: int
    end_line: int
    complexity: int
    max_nesting: int
    parameter_count: int
    has_inline_comment: bool
    signature: str = ""

    @property
    def length(self) -> int:
        return self.end_line - self.start_line + 1


# tree-sitter-kotlin node types.
_DECISION_NODES = frozenset(
    {
        "if_expression",
        "when_entry",
        "for_statement",
        "while_statement",
        "do_while_statement",
        "catch_block",
        "conjunction_expression",
        "disjunction_expression",
        "elvis_expression",
    }
)
_CONTROL_NODES = frozenset(
    {"if_expression", "when_expression", "for_statement", "while_statement", "do_while_statement"}
)
_COMMENT_NODES = frozenset({"line_comment", "multiline_comment", "comment"})
# A `{` child, or a `block` node in grammars that expose one.
_BRACE_NODES = frozenset({"{", "block"})


def measure_functions(lines: Sequence[CodeLine], tree: SyntaxTree | None = None) -> list[FunctionMetrics]:
    """
    Measure every top-level-in-scope function in a file.

    With a syntax tree, `function_declaration` nodes are visited directly.
    Otherwise function bodies are extracted with `ScopeTracker`; local
    functions are then folded into their enclosing function.
    """

    if tree is not None:
        measured = _measure_tree(tree, lines)
        if measured is not None:
            return measured
    return _measure_lines(lines)


@lru_cache(maxsize=64)
def function_metrics_for(content: str) -> tuple[FunctionMetrics, ...]:
    """Cached per content so analyzers sharing metrics parse a file once."""

    tree = ts_parse("kotlin", content)
    return tuple(measure_functions(code_lines(content), tree))


def _measure_lines(lines: Sequence[CodeLine]) -> list[FunctionMetrics]:
    results: list[FunctionMetrics] = []
    tracker = ScopeTracker()
    for line in lines:
        if not tracker.inside:
            match = FUN_DECL_RE.search(line.code)
            if match is None:
                continue
            tracker.open(line, kind="function", label=match.group("name").strip("`"))
        closed = tracker.advance(line)
        if closed is not None:
            results.append(_metrics_from_construct(closed))

    leftover = tracker.finish()
    if leftover is not None:
        results.append(_metrics_from_construct(leftover))
    return results


def _metrics_from_construct(construct: OpenConstruct) -> FunctionMetrics:
    signature, sig_end = collect_signature(construct.lines, 0)
    section = parameter_section(signature)
    params = parse_parameters(section) if section else []
    return FunctionMetrics(
        name=construct.label,
        start_line=construct.start_line,
        end_line=construct.end_line,
        complexity=1 + count_decision_points(construct.lines),
        max_nesting=max_nesting_depth(construct.lines),
        parameter_count=len(params),
        has_inline_comment=any(line.has_comment for line in construct.lines[sig_end + 1 :]),
        signature=signature,
    )


def _measure_tree(tree: SyntaxTree, lines: Sequence[CodeLine]) -> list[FunctionMetrics] | None:
    root = getattr(tree, "root_node", None)
    if root is None:
        return None
    if getattr(root, "has_error", False):
        # Partial parses misplace nodes; the line scanner tolerates them better.
        return None

    results: list[FunctionMetrics] = []
    for node in iter_nodes(root):
        if getattr(node, "type", None) != "function_declaration":
            continue
        start, end = node_lines(node)
        body_lines = [line for line in lines if start <= line.line_no <= end]
        results.append(
            FunctionMetrics(
                name=_node_name(node, lines, start),
                start_line=start,
                end_line=end,
                complexity=1 + _tree_decisions(node),
                max_nesting=_tree_nesting(node),
                parameter_count=_tree_parameter_count(node, body_lines),
                has_inline_comment=_tree_has_comment(node) or any(line.has_comment for line in body_lines[1:]),
                signature=body_lines[0].code.strip() if body_lines else "",
            )
        )
    return results


def _children(node: Any) -> list[Any]:
    return list(getattr(node, "children", None) or [])


def _node_name(node: Any, lines: Sequence[CodeLine], start_line: int) -> str:
    for child in _children(node):
        if getattr(child, "type", None) in {"simple_identifier", "identifier"}:
            text = getattr(child, "text", None)
            if isinstance(text, bytes):
                return text.decode("utf-8", errors="replace")
            if isinstance(text, str):
                return text
    if 0 < start_line <= len(lines):
        match = FUN_DECL_RE.search(lines[start_line - 1].code)
        if match is not None:
            return match.group("name").strip("`")
    return "<anonymous>"


def _walk_function(node: Any) -> list[tuple[Any, int]]:
    """
    Yield (node, control_depth) below a function, skipping local functions.

    Same rule as `max_nesting_depth`: a control structure adds a level only
    when its body is a brace block, and an `else if` stays on the level of
    the `if` it continues.
    """

    out: list[tuple[Any, int]] = []
    stack: list[tuple[Any, int, str]] = [(child, 0, "") for child in reversed(_children(node))]
    while stack:
        current, depth, role = stack.pop()
        node_type = getattr(current, "type", None)
        if node_type == "function_declaration":
            continue
        counted = node_type in _CONTROL_NODES and role != "else-if" and _has_brace_body(current)
        if counted:
            depth += 1
        out.append((current, depth))
        opens_chain = counted or role == "else-if"

        children: list[tuple[Any, int, str]] = []
        seen_else = False
        for child in _children(current):
            child_type = getattr(child, "type", None)
            child_role = ""
            if node_type == "if_expression":
                if child_type == "else":
                    seen_else = True
                elif seen_else and opens_chain and child_type == "control_structure_body":
                    child_role = "else-body"
            elif role == "else-body" and child_type == "if_expression":
                child_role = "else-if"
            children.append((child, depth, child_role))
        stack.extend(reversed(children))
    return out


def _has_brace_body(node: Any) -> bool:
    for child in _children(node):
        child_type = getattr(child, "type", None)
        if child_type in _BRACE_NODES:
            return True
        if child_type == "control_structure_body" and any(
            getattr(grandchild, "type", None) in _BRACE_NODES for grandchild in _children(child)
        ):
            return True
    return False


def _tree_decisions(node: Any) -> int:
    return sum(1 for child, _depth in _walk_function(node) if getattr(child, "type", None) in _DECISION_NODES)


def _tree_nesting(node: Any) -> int:
    return max((depth for _child, depth in _walk_function(node)), default=0)


def _tree_has_comment(node: Any) -> bool:
    return any(getattr(child, "type", None) in _COMMENT_NODES for child, _depth in _walk_function(node))


def _tree_parameter_count(node: Any, body_lines: Sequence[CodeLine]) -> int:
    for child in _children(node):
        if getattr(child, "type", None) == "function_value_parameters":
            return sum(1 for p in _children(child) if getattr(p, "type", None) in {"parameter", "function_value_parameter"})
    if body_lines:
        signature, _end = collect_signature(body_lines, 0)
        section = parameter_section(signature)
        if section:
            return len([p for p in split_top_level(section) if p.strip()])
    return 0
