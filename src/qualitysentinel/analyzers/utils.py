from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

from qualitysentinel.utils import file_name, padded_path

# Structural helpers for line-oriented Kotlin scanning.
#
# None of this is a parser. Strings and comments are blanked so braces inside
# them don't move the counters, but unusual formatting (a body closing on a
# deeper-indented line, brace-less bodies on the following line) can still
# misplace construct boundaries.


@dataclass(frozen=True, slots=True)
class CodeLine:
    line_no: int  # 1-based
    raw: str
    code: str  # string contents blanked, comments removed
    has_comment: bool = False

    @property
    def stripped(self) -> str:
        return self.code.strip()


@dataclass(slots=True)
class _LexState:
    in_block_comment: bool = False
    in_triple_string: bool = False


def _scan_line(raw: str, state: _LexState) -> tuple[str, bool]:
    out: list[str] = []
    has_comment = False
    i = 0
    n = len(raw)
    while i < n:
        if state.in_block_comment:
            has_comment = True
            end = raw.find("*/", i)
            if end < 0:
                break
            out.append(" " * (end + 2 - i))
            i = end + 2
            state.in_block_comment = False
            continue

        if state.in_triple_string:
            if raw.startswith('"""', i):
                out.append('"""')
                i += 3
                state.in_triple_string = False
                continue
            out.append(" ")
            i += 1
            continue

        if raw.startswith("//", i):
            has_comment = True
            break
        if raw.startswith("/*", i):
            has_comment = True
            state.in_block_comment = True
            out.append("  ")
            i += 2
            continue
        if raw.startswith('"""', i):
            out.append('"""')
            i += 3
            state.in_triple_string = True
            continue

        ch = raw[i]
        if ch in ('"', "'"):
            out.append(ch)
            i += 1
            while i < n:
                ch2 = raw[i]
                if ch2 == "\\" and i + 1 < n:
                    out.append("  ")
                    i += 2
                    continue
                i += 1
                if ch2 == ch:
                    out.append(ch)
                    break
                out.append(" ")
            continue

        out.append(ch)
        i += 1

    return "".join(out).rstrip(), has_comment


def iter_code_lines(lines: Sequence[str]) -> Iterator[CodeLine]:
    """Yield every line with its code-only view (blank lines included)."""

    state = _LexState()
    for idx, raw in enumerate(lines, start=1):
        code, has_comment = _scan_line(raw, state)
        yield CodeLine(line_no=idx, raw=raw, code=code, has_comment=has_comment)


def code_lines(content: str) -> list[CodeLine]:
    return list(iter_code_lines(content.splitlines()))


def is_comment_line(line: str) -> bool:
    stripped = line.lstrip()
    return stripped.startswith(("//", "/*", "*"))


def indent_of(line: str) -> int:
    expanded = line.expandtabs(4)
    return len(expanded) - len(expanded.lstrip())


def brace_delta(code: str) -> int:
    return code.count("{") - code.count("}")


_CONTINUATION_SUFFIXES = ("=", "(", ",", "->", "&&", "||", "+", "-", "?:", ".", ":")


@dataclass(slots=True)
class OpenConstruct:
    start_line: int
    indent: int
    kind: str = ""
    label: str = ""
    balance: int = 0
    paren_depth: int = 0
    opened: bool = False
    lines: list[CodeLine] = field(default_factory=list)

    @property
    def end_line(self) -> int:
        return self.lines[-1].line_no if self.lines else self.start_line

    @property
    def length(self) -> int:
        return self.end_line - self.start_line + 1

    @property
    def body(self) -> list[CodeLine]:
        return self.lines[1:]


class ScopeTracker:
    """
    Tracks one construct (loop, function, class, block) through a file.

    State is either outside (`current is None`) or inside an
    `OpenConstruct`. `open()` enters on the construct's first line; each
    `advance()` adds `{` minus `}` to the balance. Once a brace has opened,
    the construct closes when the balance is back to 0 on a line indented at
    or below the opening line. A construct that never opens a brace closes on
    the first line where its parentheses are balanced and the line does not
    continue the expression (brace-less loops, expression-bodied functions).
    """

    __slots__ = ("current",)

    def __init__(self) -> None:
        self.current: OpenConstruct | None = None

    @property
    def inside(self) -> bool:
        return self.current is not None

    def open(self, line: CodeLine, *, kind: str = "", label: str = "") -> None:
        self.current = OpenConstruct(start_line=line.line_no, indent=indent_of(line.raw), kind=kind, label=label)

    def advance(self, line: CodeLine) -> OpenConstruct | None:
        construct = self.current
        if construct is None:
            return None

        construct.lines.append(line)
        code = line.code
        construct.balance += brace_delta(code)
        construct.paren_depth += code.count("(") - code.count(")")
        if "{" in code:
            construct.opened = True

        if construct.opened:
            at_or_above = line.line_no == construct.start_line or indent_of(line.raw) <= construct.indent
            if construct.balance <= 0 and at_or_above:
                return self._close()
            return None

        stripped = code.strip()
        if construct.paren_depth <= 0 and stripped and not stripped.endswith(_CONTINUATION_SUFFIXES):
            return self._close()
        return None

    def finish(self) -> OpenConstruct | None:
        """Close an unterminated construct at end of file."""

        return self._close() if self.current is not None else None

    def _close(self) -> OpenConstruct | None:
        closed = self.current
        self.current = None
        return closed


def split_top_level(text: str, sep: str = ",") -> list[str]:
    """
    Split `text` on `sep` outside of <>, (), [] and {} nesting.

    `Map<String, Int>` stays one part; the `>` of `->` is not a bracket.
    """

    parts: list[str] = []
    depth = 0
    start = 0
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "-" and i + 1 < n and text[i + 1] == ">":
            i += 2
            continue
        if ch in "<([{":
            depth += 1
        elif ch in ">)]}":
            depth = max(depth - 1, 0)
        elif ch == sep and depth == 0:
            parts.append(text[start:i])
            start = i + 1
        i += 1
    parts.append(text[start:])
    return parts


def balanced_section(text: str, open_index: int) -> str | None:
    """Return the text between `text[open_index]` ('(') and its matching ')'."""

    depth = 0
    for idx in range(open_index, len(text)):
        ch = text[idx]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return text[open_index + 1 : idx]
    return None


def collect_signature(lines: Sequence[CodeLine], start: int, *, max_lines: int = 40) -> tuple[str, int]:
    """
    Join code lines from index `start` until the first parenthesis group closes.

    Returns the joined text and the index of the last line used.
    """

    parts: list[str] = []
    depth = 0
    seen_paren = False
    end = start
    for idx in range(start, min(len(lines), start + max_lines)):
        code = lines[idx].code
        parts.append(code.strip())
        end = idx
        for ch in code:
            if ch == "(":
                depth += 1
                seen_paren = True
            elif ch == ")":
                depth -= 1
        if seen_paren and depth <= 0:
            break
        if not seen_paren and ("{" in code or "=" in code):
            break
    return " ".join(parts), end


FUN_DECL_RE = re.compile(
    r"(?:^|[\s(;])fun\s+(?:<[^>]*>\s*)?(?:[\w<>?*, ]+?\.)?(?P<name>`[^`]+`|[A-Za-z_]\w*)\s*\("
)
_PARAM_PREFIX_RE = re.compile(r"^(?:@[\w.]+(?:\([^)]*\))?\s*|(?:val|var|vararg|noinline|crossinline|private|override)\s+)*")


@dataclass(frozen=True, slots=True)
class Parameter:
    name: str
    type: str
    default: str | None = None


def parameter_section(signature: str) -> str | None:
    match = FUN_DECL_RE.search(signature)
    if match is not None:
        return balanced_section(signature, match.end() - 1)
    open_index = signature.find("(")
    if open_index < 0:
        return None
    return balanced_section(signature, open_index)


def parse_parameters(section: str) -> list[Parameter]:
    params: list[Parameter] = []
    for raw in split_top_level(section):
        token = _PARAM_PREFIX_RE.sub("", raw.strip())
        if not token:
            continue
        name_part, colon, rest = token.partition(":")
        if not colon:
            continue
        type_and_default = split_top_level(rest, "=")
        type_text = type_and_default[0].strip()
        default = "=".join(type_and_default[1:]).strip() or None
        params.append(Parameter(name=name_part.strip(), type=type_text, default=default))
    return params


def preceding_code(lines: Sequence[CodeLine], index: int, *, limit: int = 5) -> list[CodeLine]:
    """Return up to `limit` non-blank lines before `index`, nearest first."""

    out: list[CodeLine] = []
    idx = index - 1
    while idx >= 0 and len(out) < limit:
        if lines[idx].raw.strip():
            out.append(lines[idx])
        idx -= 1
    return out


def annotations_above(lines: Sequence[CodeLine], index: int) -> list[str]:
    """Collect the annotation lines directly above a declaration."""

    out: list[str] = []
    for line in preceding_code(lines, index, limit=8):
        stripped = line.raw.strip()
        if stripped.startswith("@"):
            out.append(stripped)
            continue
        break
    return out


def is_test_path(relative_path: str) -> bool:
    padded = padded_path(relative_path)
    return "/test/" in padded or "/androidTest/" in padded


def is_kotlin_source(relative_path: str) -> bool:
    return relative_path.endswith(".kt")


def stem(relative_path: str) -> str:
    name = file_name(relative_path)
    return name.rsplit(".", 1)[0] if "." in name else name


_DECISION_RE = re.compile(r"\bif\b|\bfor\b|\bwhile\b|\bcatch\b|&&|\|\||\?:")
_WHEN_TOKEN_RE = re.compile(r"\bwhen\b|[{}]")
_NEST_TOKEN_RE = re.compile(r"\b(?:if|else|when|for|while|do)\b|[{}()]")


def count_decision_points(lines: Sequence[CodeLine]) -> int:
    """
    Count decision points over code lines.

    `if`, `for`, `while` (covers do-while), `catch`, `&&`, `||` and `?:` add
    one each; every branch line directly inside a `when` body adds one.
    """

    count = 0
    depth = 0
    when_depths: list[int] = []
    pending_when = False
    for line in lines:
        code = line.code
        count += len(_DECISION_RE.findall(code))
        if when_depths and depth == when_depths[-1] and "->" in code and not code.strip().startswith("}"):
            count += 1
        for token in _WHEN_TOKEN_RE.finditer(code):
            value = token.group(0)
            if value == "when":
                pending_when = True
            elif value == "{":
                depth += 1
                if pending_when:
                    when_depths.append(depth)
                    pending_when = False
            else:
                if when_depths and when_depths[-1] == depth:
                    when_depths.pop()
                depth = max(depth - 1, 0)
    return count


def max_nesting_depth(lines: Sequence[CodeLine]) -> int:
    """
    Max depth of nested control blocks (`if`/`else`/`when`/`for`/`while`/`do`).

    A block counts when a control keyword precedes its `{`; plain lambdas and
    the function body itself do not. `} else if (...) {` stays at the same
    depth because the closing brace pops the previous branch first.
    """

    depth = 0
    stack: list[int] = []
    pending = False
    paren = 0
    best = 0
    for line in lines:
        for token in _NEST_TOKEN_RE.finditer(line.code):
            value = token.group(0)
            if value == "(":
                paren += 1
            elif value == ")":
                paren = max(paren - 1, 0)
            elif value == "{":
                depth += 1
                if pending:
                    stack.append(depth)
                    pending = False
                    best = max(best, len(stack))
            elif value == "}":
                while stack and stack[-1] >= depth:
                    stack.pop()
                depth = max(depth - 1, 0)
            else:
                pending = True
        # A keyword whose block never opened (`if (x) return`, `} while (c)`).
        if pending and paren == 0 and not line.code.rstrip().endswith(_CONTINUATION_SUFFIXES):
            pending = False
    return best
