from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from qualitysentinel.analyzers.metrics import function_metrics_for, measure_functions
from qualitysentinel.analyzers.utils import code_lines
from qualitysentinel.engine import tree_sitter

from helpers import branchy_function, nested_function


def test_line_scanner_measures_each_function() -> None:
    content = "\n".join(
        [
            "fun a(x: Int, y: Map<String, Int>) {",
            "    if (x > 0) {",
            "        y.size",
            "    }",
            "}",
            "fun b() = 1",
            "",
        ]
    )
    measured = function_metrics_for(content)
    assert [m.name for m in measured] == ["a", "b"]
    a, b = measured
    assert (a.start_line, a.end_line, a.length) == (1, 5, 5)
    assert a.complexity == 2
    assert a.max_nesting == 1
    assert a.parameter_count == 2
    assert (b.start_line, b.end_line, b.complexity) == (6, 6, 1)


def test_eleven_early_returns_score_twelve() -> None:
    (metrics,) = function_metrics_for(branchy_function(11))
    assert metrics.complexity == 12
    assert metrics.max_nesting == 0
    assert metrics.has_inline_comment is False

    (commented,) = function_metrics_for(branchy_function(11, comment=True))
    assert commented.has_inline_comment is True


def test_nesting_depth_counts_nested_ifs() -> None:
    (four,) = function_metrics_for(nested_function(4))
    (five,) = function_metrics_for(nested_function(5))
    assert four.max_nesting == 4
    assert five.max_nesting == 5


class FakeNode:
    def __init__(self, type_: str, children: list[FakeNode] | None = None, *, rows: tuple[int, int] = (0, 0), text: bytes | None = None) -> None:
        self.type = type_
        self.children = children or []
        self.start_point = (rows[0], 0)
        self.end_point = (rows[1], 0)
        self.text = text
        self.parent: Any = None
        for child in self.children:
            child.parent = self


def _if(*children: FakeNode) -> FakeNode:
    return FakeNode("if_expression", list(children))


def test_syntax_tree_metrics_treat_else_if_as_same_level() -> None:
    inner = _if(FakeNode("if"), FakeNode("control_structure_body", [FakeNode("{"), FakeNode("call_expression"), FakeNode("}")]))
    else_if = _if(FakeNode("if"), FakeNode("control_structure_body", [FakeNode("call_expression")]))
    outer = _if(
        FakeNode("if"),
        FakeNode("control_structure_body", [FakeNode("block", [FakeNode("statements", [inner])])]),
        FakeNode("else"),
        FakeNode("control_structure_body", [else_if]),
    )
    function = FakeNode(
        "function_declaration",
        [
            FakeNode("fun"),
            FakeNode("simple_identifier", text=b"pick"),
            FakeNode("function_value_parameters", [FakeNode("parameter"), FakeNode("parameter")]),
            FakeNode("function_body", [FakeNode("block", [FakeNode("line_comment"), FakeNode("statements", [outer])])]),
        ],
        rows=(0, 6),
    )
    tree = SimpleNamespace(root_node=FakeNode("source_file", [function], rows=(0, 6)))
    lines = code_lines("fun pick(a: Int, b: Int) {\n\n\n\n\n\n}\n")

    (metrics,) = measure_functions(lines, tree)
    assert metrics.name == "pick"
    assert (metrics.start_line, metrics.end_line) == (1, 7)
    assert metrics.complexity == 4
    assert metrics.max_nesting == 2
    assert metrics.parameter_count == 2
    assert metrics.has_inline_comment is True


def test_syntax_tree_with_errors_falls_back_to_line_scanning() -> None:
    root = FakeNode("source_file")
    root.has_error = True  # type: ignore[attr-defined]
    tree = SimpleNamespace(root_node=root)
    lines = code_lines("fun a() {\n    if (x) y()\n}\n")

    (metrics,) = measure_functions(lines, tree)
    assert metrics.name == "a"
    assert metrics.complexity == 2


def _else_if_chain(branches: int) -> str:
    lines = ["fun classify(a: Int): Int {", "    if (a == 0) {", "        return 0"]
    for i in range(1, branches):
        lines.extend([f"    }} else if (a == {i}) {{", f"        return {i}"])
    lines.extend(["    } else {", "        return -1", "    }", "}", ""])
    return "\n".join(lines)


EXPRESSION_BODIES = "\n".join(
    [
        "fun sign(y: Int) = if (y > 0) 1 else 2",
        "fun signs(xs: List<Int>) = xs.map { if (it > 0) 1 else 2 }",
        "",
    ]
)


def _kotlin_tree(content: str) -> Any:
    pytest.importorskip("tree_sitter_languages")
    tree = tree_sitter.parse("kotlin", content)
    if tree is None:
        pytest.skip("Kotlin grammar is not loadable")
    assert not tree.root_node.has_error
    return tree


@pytest.mark.parametrize(
    ("content", "nesting"),
    [
        (_else_if_chain(6), [1]),
        (nested_function(4), [4]),
        (nested_function(5), [5]),
        (EXPRESSION_BODIES, [0, 0]),
    ],
)
def test_kotlin_grammar_agrees_with_line_scanner(content: str, nesting: list[int]) -> None:
    lines = code_lines(content)
    from_tree = measure_functions(lines, _kotlin_tree(content))
    from_lines = measure_functions(lines)

    assert [m.max_nesting for m in from_tree] == nesting
    assert [m.max_nesting for m in from_lines] == nesting
    assert [m.complexity for m in from_tree] == [m.complexity for m in from_lines]


def test_else_if_chain_stays_flat_on_line_scanner() -> None:
    (metrics,) = function_metrics_for(_else_if_chain(6))
    assert metrics.max_nesting == 1
    assert metrics.complexity == 7
