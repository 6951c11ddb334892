"""
Print expression trees as Python code or as model text.

Code form is evaluated over the vocabulary vectors ``y, x, ss, param,
defs`` and the scalars ``s0, s1``; the numpy backend supplies the
function names (``exp``, ``where``, ``minimum`` ...). Text form is the
shadow notation (``y_3 - param_0*x_1``) read back by ``parse_shadow``.

Both printers are iterative so that long sums cannot exhaust the
recursion limit, and both are deterministic: the same tree always gives
the same string.
"""

from __future__ import annotations

import math

from dsgec.ir import expr as ex
from dsgec.ir.expr import Expr, ExprKind
from dsgec.ir.symbol import SymbolId

_ATOM = 5
_PRECEDENCE = {
    ExprKind.ADD: 1,
    ExprKind.SUB: 1,
    ExprKind.MUL: 2,
    ExprKind.DIV: 2,
    ExprKind.NEG: 3,
    ExprKind.POW: 4,
}

_BINARY_OPERATORS = {
    ExprKind.ADD: " + ",
    ExprKind.SUB: " - ",
    ExprKind.MUL: "*",
    ExprKind.DIV: "/",
}

_COMPARISON_OPERATORS = {
    ExprKind.LT: " < ",
    ExprKind.LE: " <= ",
    ExprKind.GT: " > ",
    ExprKind.GE: " >= ",
    ExprKind.EQ: " == ",
    ExprKind.NE: " != ",
}

_FUNCTION_NAMES = {kind: name for name, kind in ex.FUNCTIONS.items()}


def _precedence(node: Expr) -> int:
    if node.kind == ExprKind.CONSTANT and node.value < 0:
        return _PRECEDENCE[ExprKind.NEG]
    if node.kind in ex.COMPARISON_KINDS:
        return 0
    return _PRECEDENCE.get(node.kind, _ATOM)


def _format_number(value: float) -> str:
    if math.isfinite(value) and value == int(value) and abs(value) < 1e16:
        return f"{int(value)}"
    return repr(value)


class _Printer:
    code: bool = True

    def leaf(self, node: Expr) -> str:
        raise NotImplementedError

    def number(self, value: float) -> str:
        raise NotImplementedError

    def power(self) -> str:
        raise NotImplementedError

    def render(self, expr: Expr) -> str:
        done: dict[int, str] = {}
        stack: list[tuple[Expr, bool]] = [(expr, False)]
        while stack:
            node, expanded = stack.pop()
            key = id(node)
            if key in done:
                continue
            if node.kind in ex.LEAF_KINDS:
                done[key] = self.number(node.value) if node.kind == ExprKind.CONSTANT else self.leaf(node)
                continue
            if not expanded:
                stack.append((node, True))
                stack.extend((child, False) for child in reversed(node.children))
                continue
            done[key] = self.combine(node, [done[id(c)] for c in node.children])
        return done[id(expr)]

    def combine(self, node: Expr, parts: list[str]) -> str:
        kind = node.kind
        children = node.children
        if kind == ExprKind.NEG:
            inner = parts[0]
            if _precedence(children[0]) < _PRECEDENCE[ExprKind.POW]:
                inner = f"({inner})"
            return f"-{inner}"
        if kind in _BINARY_OPERATORS or kind == ExprKind.POW:
            level = _PRECEDENCE[kind]
            left, right = parts
            if _precedence(children[0]) < level or (kind == ExprKind.POW and _precedence(children[0]) <= level):
                left = f"({left})"
            if _precedence(children[1]) <= level and not (kind == ExprKind.POW and _precedence(children[1]) > level):
                right = f"({right})"
            operator = self.power() if kind == ExprKind.POW else _BINARY_OPERATORS[kind]
            return f"{left}{operator}{right}"
        if kind in _COMPARISON_OPERATORS:
            return f"({parts[0]}{_COMPARISON_OPERATORS[kind]}{parts[1]})"
        if kind == ExprKind.IF_THEN_ELSE:
            name = "where" if self.code else "if_then_else"
            return f"{name}({parts[0]}, {parts[1]}, {parts[2]})"
        if kind in (ExprKind.MIN, ExprKind.MAX):
            if self.code:
                name = "minimum" if kind == ExprKind.MIN else "maximum"
            else:
                name = "min" if kind == ExprKind.MIN else "max"
            return f"{name}({parts[0]}, {parts[1]})"
        return f"{_FUNCTION_NAMES[kind]}({parts[0]})"


class CodePrinter(_Printer):
    """Python code over the routine vocabulary, ``y_3`` printed as ``y[3]``."""

    code = True

    def number(self, value: float) -> str:
        return repr(value)

    def power(self) -> str:
        return "**"

    def leaf(self, node: Expr) -> str:
        if node.kind == ExprKind.SYMBOL:
            return node.symbol.code()
        raise ValueError(f"{node.kind.name} leaf {node.name} has no code form, resolve names first")


class TextPrinter(_Printer):
    """Model-language text; works before and after name resolution."""

    code = False

    def number(self, value: float) -> str:
        return _format_number(value)

    def power(self) -> str:
        return "^"

    def leaf(self, node: Expr) -> str:
        if node.kind == ExprKind.SYMBOL:
            return str(node.symbol)
        if node.kind == ExprKind.STEADY_STATE:
            return f"steady_state({node.name})"
        if node.state is not None:
            return f"{node.name}({node.state[0]},{node.state[1]})"
        if node.shift == 0:
            return node.name
        return f"{node.name}{{{node.shift:+d}}}"


_CODE = CodePrinter()
_TEXT = TextPrinter()


def to_code(expr: Expr) -> str:
    return _CODE.render(expr)


def to_text(expr: Expr) -> str:
    return _TEXT.render(expr)


def parse_shadow(text: str) -> Expr:
    """
    Read shadow text such as ``"y_3 - param_0*x_1"`` back into a tree with
    SYMBOL leaves.
    """
    from dsgec.io.source import SourceLine
    from dsgec.parser.expression import ExpressionParser
    from dsgec.parser.lexer import tokenize

    tree = ExpressionParser(tokenize((SourceLine(text, "<shadow>", 1),))).parse()

    def resolve(leaf: Expr) -> Expr:
        if leaf.kind == ExprKind.VARIABLE:
            if leaf.shift != 0:
                raise ValueError(f"shadow text cannot carry time shifts: {text!r}")
            return ex.sym(SymbolId.parse(leaf.name))
        if leaf.kind == ExprKind.STEADY_STATE:
            raise ValueError(f"unresolved steady_state call in shadow text: {text!r}")
        return leaf

    return ex.map_leaves(tree, resolve)
