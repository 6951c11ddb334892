"""
Expression tree representation in the IR.

Equations are immutable trees of Expr nodes. The same tree type is used
before name resolution (VARIABLE leaves carrying a model name and a time
shift) and after it (SYMBOL leaves carrying a SymbolId such as ``y_3``),
so parsing, shadowing, differentiation and printing all share one
representation.

The module-level constructors (``add``, ``mul``, ``call`` ...) fold
constants and apply the 0/1 identities; building through them keeps the
derivative trees small.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional, Union

from dsgec.ir.symbol import CoefficientId, SymbolId


class ExprKind(Enum):
    """Kinds of expression nodes."""

    # Leaf nodes
    CONSTANT = auto()  # Numeric constant
    VARIABLE = auto()  # Model name with a time shift, X{k}
    STEADY_STATE = auto()  # steady_state(X)
    SYMBOL = auto()  # Resolved reference, y_3, param_0, s0 ...

    # Unary operations
    NEG = auto()

    # Binary arithmetic operations
    ADD = auto()
    SUB = auto()
    MUL = auto()
    DIV = auto()
    POW = auto()

    # Relational operations, valued 0 or 1
    LT = auto()
    LE = auto()
    GT = auto()
    GE = auto()
    EQ = auto()
    NE = auto()

    # Conditional expression
    IF_THEN_ELSE = auto()

    # Math functions
    EXP = auto()
    LOG = auto()
    LOG10 = auto()
    SQRT = auto()
    ABS = auto()
    SIGN = auto()
    SIN = auto()
    COS = auto()
    TAN = auto()
    ASIN = auto()
    ACOS = auto()
    ATAN = auto()
    SINH = auto()
    COSH = auto()
    TANH = auto()
    NORMCDF = auto()
    NORMPDF = auto()
    MIN = auto()
    MAX = auto()


LEAF_KINDS = frozenset({ExprKind.CONSTANT, ExprKind.VARIABLE, ExprKind.STEADY_STATE, ExprKind.SYMBOL})

COMPARISON_KINDS = frozenset({ExprKind.LT, ExprKind.LE, ExprKind.GT, ExprKind.GE, ExprKind.EQ, ExprKind.NE})

#: One-argument functions of the model language.
FUNCTIONS: dict[str, ExprKind] = {
    "exp": ExprKind.EXP,
    "log": ExprKind.LOG,
    "log10": ExprKind.LOG10,
    "sqrt": ExprKind.SQRT,
    "abs": ExprKind.ABS,
    "sign": ExprKind.SIGN,
    "sin": ExprKind.SIN,
    "cos": ExprKind.COS,
    "tan": ExprKind.TAN,
    "asin": ExprKind.ASIN,
    "acos": ExprKind.ACOS,
    "atan": ExprKind.ATAN,
    "sinh": ExprKind.SINH,
    "cosh": ExprKind.COSH,
    "tanh": ExprKind.TANH,
    "normcdf": ExprKind.NORMCDF,
    "normpdf": ExprKind.NORMPDF,
}

#: Two-argument functions of the model language.
BINARY_FUNCTIONS: dict[str, ExprKind] = {"min": ExprKind.MIN, "max": ExprKind.MAX}

UNARY_FUNCTION_KINDS = frozenset(FUNCTIONS.values())

Ref = Union[SymbolId, CoefficientId]


@dataclass(frozen=True)
class Expr:
    """
    Immutable expression tree node.

    ``name``/``shift``/``state`` describe VARIABLE and STEADY_STATE leaves,
    ``value`` CONSTANT leaves and ``symbol`` SYMBOL leaves. ``state`` is the
    ``(chain, state)`` pair of a parameter addressed in a given regime.
    """

    kind: ExprKind
    children: tuple["Expr", ...] = ()
    name: Optional[str] = None
    value: Optional[float] = None
    shift: int = 0
    symbol: Optional[Ref] = None
    state: Optional[tuple[str, int]] = None

    def __str__(self) -> str:
        from dsgec.symbolic.printer import to_text

        return to_text(self)

    def __repr__(self) -> str:
        return f"Expr({self})"

    @property
    def is_leaf(self) -> bool:
        return self.kind in LEAF_KINDS

    # Arithmetic operators build simplified nodes
    def __add__(self, other: Any) -> "Expr":
        return add(self, to_expr(other))

    def __radd__(self, other: Any) -> "Expr":
        return add(to_expr(other), self)

    def __sub__(self, other: Any) -> "Expr":
        return sub(self, to_expr(other))

    def __rsub__(self, other: Any) -> "Expr":
        return sub(to_expr(other), self)

    def __mul__(self, other: Any) -> "Expr":
        return mul(self, to_expr(other))

    def __rmul__(self, other: Any) -> "Expr":
        return mul(to_expr(other), self)

    def __truediv__(self, other: Any) -> "Expr":
        return div(self, to_expr(other))

    def __rtruediv__(self, other: Any) -> "Expr":
        return div(to_expr(other), self)

    def __pow__(self, other: Any) -> "Expr":
        return power(self, to_expr(other))

    def __rpow__(self, other: Any) -> "Expr":
        return power(to_expr(other), self)

    def __neg__(self) -> "Expr":
        return neg(self)

    def __pos__(self) -> "Expr":
        return self


def to_expr(x: Any) -> Expr:
    """Convert numbers to constants, pass expressions through."""
    if isinstance(x, Expr):
        return x
    if isinstance(x, bool):
        return const(1.0 if x else 0.0)
    if isinstance(x, (int, float)):
        return const(x)
    raise TypeError(f"Cannot convert {type(x)} to Expr")


# =============================================================================
# Leaf constructors
# =============================================================================

ZERO_VALUE = 0.0
ONE_VALUE = 1.0


def const(value: Union[int, float]) -> Expr:
    return Expr(ExprKind.CONSTANT, value=float(value))


def var(name: str, shift: int = 0, state: Optional[tuple[str, int]] = None) -> Expr:
    return Expr(ExprKind.VARIABLE, name=name, shift=shift, state=state)


def steady_state(name: str) -> Expr:
    return Expr(ExprKind.STEADY_STATE, name=name)


def sym(symbol: Ref) -> Expr:
    return Expr(ExprKind.SYMBOL, symbol=symbol)


ZERO = const(0.0)
ONE = const(1.0)


def is_const(e: Expr, value: Optional[float] = None) -> bool:
    if e.kind != ExprKind.CONSTANT:
        return False
    return value is None or e.value == value


# =============================================================================
# Constant folding
# =============================================================================


def _normcdf(x: float) -> float:
    return 0.5 * math.erfc(-x / math.sqrt(2.0))


def _normpdf(x: float) -> float:
    return math.exp(-0.5 * x * x) / math.sqrt(2.0 * math.pi)


def _sign(x: float) -> float:
    return float((x > 0) - (x < 0))


_FOLD_UNARY: dict[ExprKind, Callable[[float], float]] = {
    ExprKind.NEG: lambda a: -a,
    ExprKind.EXP: math.exp,
    ExprKind.LOG: math.log,
    ExprKind.LOG10: math.log10,
    ExprKind.SQRT: math.sqrt,
    ExprKind.ABS: abs,
    ExprKind.SIGN: _sign,
    ExprKind.SIN: math.sin,
    ExprKind.COS: math.cos,
    ExprKind.TAN: math.tan,
    ExprKind.ASIN: math.asin,
    ExprKind.ACOS: math.acos,
    ExprKind.ATAN: math.atan,
    ExprKind.SINH: math.sinh,
    ExprKind.COSH: math.cosh,
    ExprKind.TANH: math.tanh,
    ExprKind.NORMCDF: _normcdf,
    ExprKind.NORMPDF: _normpdf,
}

_FOLD_BINARY: dict[ExprKind, Callable[[float, float], Any]] = {
    ExprKind.ADD: lambda a, b: a + b,
    ExprKind.SUB: lambda a, b: a - b,
    ExprKind.MUL: lambda a, b: a * b,
    ExprKind.DIV: lambda a, b: a / b,
    ExprKind.POW: lambda a, b: a**b,
    ExprKind.MIN: min,
    ExprKind.MAX: max,
    ExprKind.LT: lambda a, b: float(a < b),
    ExprKind.LE: lambda a, b: float(a <= b),
    ExprKind.GT: lambda a, b: float(a > b),
    ExprKind.GE: lambda a, b: float(a >= b),
    ExprKind.EQ: lambda a, b: float(a == b),
    ExprKind.NE: lambda a, b: float(a != b),
}


def _fold(kind: ExprKind, *values: float) -> Optional[Expr]:
    """Numeric value of ``kind`` applied to constants, None when undefined."""
    try:
        if len(values) == 1:
            result = _FOLD_UNARY[kind](values[0])
        else:
            result = _FOLD_BINARY[kind](values[0], values[1])
    except (ValueError, ZeroDivisionError, OverflowError):
        # left unevaluated, the numerical routine reports it at run time
        return None
    if not isinstance(result, (int, float)) or not math.isfinite(result):
        return None
    return const(float(result))


# =============================================================================
# Simplifying operation constructors
# =============================================================================


def neg(a: Expr) -> Expr:
    if a.kind == ExprKind.CONSTANT:
        return const(-a.value)
    if a.kind == ExprKind.NEG:
        return a.children[0]
    return Expr(ExprKind.NEG, (a,))


def add(a: Expr, b: Expr) -> Expr:
    if is_const(a, 0.0):
        return b
    if is_const(b, 0.0):
        return a
    if a.kind == ExprKind.CONSTANT and b.kind == ExprKind.CONSTANT:
        return const(a.value + b.value)
    if b.kind == ExprKind.NEG:
        return sub(a, b.children[0])
    return Expr(ExprKind.ADD, (a, b))


def sub(a: Expr, b: Expr) -> Expr:
    if is_const(b, 0.0):
        return a
    if is_const(a, 0.0):
        return neg(b)
    if a.kind == ExprKind.CONSTANT and b.kind == ExprKind.CONSTANT:
        return const(a.value - b.value)
    if b.kind == ExprKind.NEG:
        return add(a, b.children[0])
    return Expr(ExprKind.SUB, (a, b))


def mul(a: Expr, b: Expr) -> Expr:
    if is_const(a, 0.0) or is_const(b, 0.0):
        return ZERO
    if is_const(a, 1.0):
        return b
    if is_const(b, 1.0):
        return a
    if is_const(a, -1.0):
        return neg(b)
    if is_const(b, -1.0):
        return neg(a)
    if a.kind == ExprKind.CONSTANT and b.kind == ExprKind.CONSTANT:
        return const(a.value * b.value)
    if a.kind == ExprKind.NEG and b.kind == ExprKind.NEG:
        return mul(a.children[0], b.children[0])
    if a.kind == ExprKind.NEG:
        return neg(mul(a.children[0], b))
    if b.kind == ExprKind.NEG:
        return neg(mul(a, b.children[0]))
    return Expr(ExprKind.MUL, (a, b))


def div(a: Expr, b: Expr) -> Expr:
    if is_const(b, 1.0):
        return a
    if is_const(a, 0.0) and not is_const(b, 0.0):
        return ZERO
    if a.kind == ExprKind.CONSTANT and b.kind == ExprKind.CONSTANT:
        folded = _fold(ExprKind.DIV, a.value, b.value)
        if folded is not None:
            return folded
    if a.kind == ExprKind.NEG:
        return neg(div(a.children[0], b))
    return Expr(ExprKind.DIV, (a, b))


def power(a: Expr, b: Expr) -> Expr:
    if is_const(b, 0.0):
        return ONE
    if is_const(b, 1.0):
        return a
    if is_const(a, 1.0):
        return ONE
    if a.kind == ExprKind.CONSTANT and b.kind == ExprKind.CONSTANT:
        folded = _fold(ExprKind.POW, a.value, b.value)
        if folded is not None:
            return folded
    return Expr(ExprKind.POW, (a, b))


def call(kind: ExprKind, arg: Expr) -> Expr:
    """Apply a one-argument function."""
    if kind not in UNARY_FUNCTION_KINDS:
        raise ValueError(f"{kind} is not a one-argument function")
    if arg.kind == ExprKind.CONSTANT:
        folded = _fold(kind, arg.value)
        if folded is not None:
            return folded
    if kind == ExprKind.EXP and arg.kind == ExprKind.LOG:
        return arg.children[0]
    return Expr(kind, (arg,))


def compare(kind: ExprKind, a: Expr, b: Expr) -> Expr:
    if kind not in COMPARISON_KINDS:
        raise ValueError(f"{kind} is not a comparison")
    if a.kind == ExprKind.CONSTANT and b.kind == ExprKind.CONSTANT:
        folded = _fold(kind, a.value, b.value)
        if folded is not None:
            return folded
    return Expr(kind, (a, b))


def minimum(a: Expr, b: Expr) -> Expr:
    if a.kind == ExprKind.CONSTANT and b.kind == ExprKind.CONSTANT:
        return const(min(a.value, b.value))
    return Expr(ExprKind.MIN, (a, b))


def maximum(a: Expr, b: Expr) -> Expr:
    if a.kind == ExprKind.CONSTANT and b.kind == ExprKind.CONSTANT:
        return const(max(a.value, b.value))
    return Expr(ExprKind.MAX, (a, b))


def if_then_else(condition: Expr, then: Expr, otherwise: Expr) -> Expr:
    if condition.kind == ExprKind.CONSTANT:
        return then if condition.value != 0.0 else otherwise
    if then == otherwise:
        return then
    return Expr(ExprKind.IF_THEN_ELSE, (condition, then, otherwise))


_BINARY_BUILDERS: dict[ExprKind, Callable[[Expr, Expr], Expr]] = {
    ExprKind.ADD: add,
    ExprKind.SUB: sub,
    ExprKind.MUL: mul,
    ExprKind.DIV: div,
    ExprKind.POW: power,
    ExprKind.MIN: minimum,
    ExprKind.MAX: maximum,
}


def rebuild(template: Expr, children: tuple[Expr, ...]) -> Expr:
    """Node of the same kind as ``template`` over new children, simplified."""
    kind = template.kind
    if kind in LEAF_KINDS:
        return template
    if kind == ExprKind.NEG:
        return neg(children[0])
    if kind in _BINARY_BUILDERS:
        return _BINARY_BUILDERS[kind](children[0], children[1])
    if kind in COMPARISON_KINDS:
        return compare(kind, children[0], children[1])
    if kind == ExprKind.IF_THEN_ELSE:
        return if_then_else(children[0], children[1], children[2])
    return call(kind, children[0])


def sum_of(terms: list[Expr]) -> Expr:
    total = ZERO
    for term in terms:
        total = add(total, term)
    return total


# =============================================================================
# Traversal
# =============================================================================


def walk(expr: Expr) -> Iterator[Expr]:
    """Pre-order traversal, iterative so deep trees do not hit the recursion limit."""
    stack = [expr]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def leaves(expr: Expr) -> Iterator[Expr]:
    for node in walk(expr):
        if node.kind in LEAF_KINDS:
            yield node


def variables_in(expr: Expr) -> set[tuple[str, int]]:
    """Every (name, shift) pair of the VARIABLE leaves."""
    return {(n.name, n.shift) for n in leaves(expr) if n.kind == ExprKind.VARIABLE}


def names_in(expr: Expr) -> set[str]:
    return {n.name for n in leaves(expr) if n.kind in (ExprKind.VARIABLE, ExprKind.STEADY_STATE)}


def symbols_in(expr: Expr) -> set[Ref]:
    return {n.symbol for n in leaves(expr) if n.kind == ExprKind.SYMBOL}


def map_leaves(expr: Expr, fn: Callable[[Expr], Expr]) -> Expr:
    """
    Replace every leaf by ``fn(leaf)`` and rebuild through the simplifying
    constructors. Shared subtrees are rebuilt once. Leaves are visited left
    to right with an explicit stack, so long sums do not hit the recursion
    limit.
    """
    memo: dict[int, Expr] = {}
    stack: list[tuple[Expr, bool]] = [(expr, False)]
    while stack:
        node, expanded = stack.pop()
        key = id(node)
        if key in memo:
            continue
        if node.kind in LEAF_KINDS:
            result = fn(node)
        elif not expanded:
            stack.append((node, True))
            stack.extend((c, False) for c in reversed(node.children) if id(c) not in memo)
            continue
        else:
            new_children = tuple(memo[id(c)] for c in node.children)
            if all(a is b for a, b in zip(new_children, node.children)):
                result = node
            else:
                result = rebuild(node, new_children)
        memo[key] = result
    return memo[id(expr)]


def shift_variables(expr: Expr, k: int) -> Expr:
    """Move every VARIABLE leaf ``k`` periods: X{s} -> X{s+k}."""
    if k == 0:
        return expr

    def move(leaf: Expr) -> Expr:
        if leaf.kind == ExprKind.VARIABLE:
            return var(leaf.name, leaf.shift + k, leaf.state)
        return leaf

    return map_leaves(expr, move)


def drop_shifts(expr: Expr) -> Expr:
    """Every VARIABLE leaf at its current date: X{s} -> X."""

    def current(leaf: Expr) -> Expr:
        if leaf.kind == ExprKind.VARIABLE and leaf.shift != 0:
            return var(leaf.name, 0, leaf.state)
        return leaf

    return map_leaves(expr, current)


def max_shift(expr: Expr) -> tuple[int, int]:
    """(largest lag as a negative number, largest lead) over the VARIABLE leaves."""
    shifts = [n.shift for n in leaves(expr) if n.kind == ExprKind.VARIABLE]
    if not shifts:
        return (0, 0)
    return (min(0, min(shifts)), max(0, max(shifts)))
