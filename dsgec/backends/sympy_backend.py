"""SymPy backend: convert expression trees to SymPy.

Used to cross-check the derivatives of the symbolic engine and to print
equations in LaTeX. Resolved symbols become SymPy symbols named after
their shadow text (``y_3``, ``param_0``); model names with a time shift
become ``X_p1`` / ``X_m1``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Optional

import sympy as sp

from dsgec.ir.expr import Expr, ExprKind, Ref
from dsgec.ir.symbol import SymbolId

_FUNCTIONS = {
    ExprKind.EXP: sp.exp,
    ExprKind.LOG: sp.log,
    ExprKind.LOG10: lambda a: sp.log(a, 10),
    ExprKind.SQRT: sp.sqrt,
    ExprKind.ABS: sp.Abs,
    ExprKind.SIGN: sp.sign,
    ExprKind.SIN: sp.sin,
    ExprKind.COS: sp.cos,
    ExprKind.TAN: sp.tan,
    ExprKind.ASIN: sp.asin,
    ExprKind.ACOS: sp.acos,
    ExprKind.ATAN: sp.atan,
    ExprKind.SINH: sp.sinh,
    ExprKind.COSH: sp.cosh,
    ExprKind.TANH: sp.tanh,
    ExprKind.NORMCDF: lambda a: (1 + sp.erf(a / sp.sqrt(2))) / 2,
    ExprKind.NORMPDF: lambda a: sp.exp(-(a**2) / 2) / sp.sqrt(2 * sp.pi),
}

_BINARY = {
    ExprKind.ADD: lambda l, r: l + r,
    ExprKind.SUB: lambda l, r: l - r,
    ExprKind.MUL: lambda l, r: l * r,
    ExprKind.DIV: lambda l, r: l / r,
    ExprKind.POW: lambda l, r: l**r,
    ExprKind.MIN: sp.Min,
    ExprKind.MAX: sp.Max,
}

_RELATIONS = {
    ExprKind.LT: sp.Lt,
    ExprKind.LE: sp.Le,
    ExprKind.GT: sp.Gt,
    ExprKind.GE: sp.Ge,
    ExprKind.EQ: sp.Eq,
    ExprKind.NE: sp.Ne,
}


def symbol_for(ref: Ref) -> sp.Symbol:
    return sp.Symbol(str(ref))


def _leaf(expr: Expr) -> sp.Basic:
    if expr.kind == ExprKind.CONSTANT:
        value = expr.value
        if value == int(value):
            return sp.Integer(int(value))
        return sp.Float(value)
    if expr.kind == ExprKind.SYMBOL:
        return symbol_for(expr.symbol)
    if expr.kind == ExprKind.STEADY_STATE:
        return sp.Symbol(f"{expr.name}_ss")
    if expr.shift == 0:
        return sp.Symbol(expr.name)
    tag = "p" if expr.shift > 0 else "m"
    return sp.Symbol(f"{expr.name}_{tag}{abs(expr.shift)}")


def _condition(expr: Expr, memo: dict[int, sp.Basic]) -> sp.Basic:
    if expr.kind in _RELATIONS:
        return _RELATIONS[expr.kind](to_sympy(expr.children[0], memo), to_sympy(expr.children[1], memo))
    return sp.Ne(to_sympy(expr, memo), 0)


def to_sympy(expr: Expr, memo: Optional[dict[int, sp.Basic]] = None) -> sp.Basic:
    """Convert a tree to a SymPy expression; comparisons become 0/1 Piecewise values."""
    if memo is None:
        memo = {}
    key = id(expr)
    if key in memo:
        return memo[key]

    kind = expr.kind
    if expr.is_leaf:
        result = _leaf(expr)
    elif kind == ExprKind.NEG:
        result = -to_sympy(expr.children[0], memo)
    elif kind in _BINARY:
        result = _BINARY[kind](to_sympy(expr.children[0], memo), to_sympy(expr.children[1], memo))
    elif kind in _RELATIONS:
        relation = _RELATIONS[kind](to_sympy(expr.children[0], memo), to_sympy(expr.children[1], memo))
        result = sp.Piecewise((1, relation), (0, True))
    elif kind == ExprKind.IF_THEN_ELSE:
        condition = _condition(expr.children[0], memo)
        result = sp.Piecewise(
            (to_sympy(expr.children[1], memo), condition), (to_sympy(expr.children[2], memo), True)
        )
    elif kind in _FUNCTIONS:
        result = _FUNCTIONS[kind](to_sympy(expr.children[0], memo))
    else:
        raise ValueError(f"Unsupported expression kind: {kind}")
    memo[key] = result
    return result


def to_sympy_matrix(functions: Sequence[Expr]) -> sp.Matrix:
    memo: dict[int, sp.Basic] = {}
    return sp.Matrix([to_sympy(f, memo) for f in functions])


def jacobian(functions: Sequence[Expr], wrt: Sequence[SymbolId]) -> sp.Matrix:
    """SymPy Jacobian of ``functions`` with respect to ``wrt``."""
    return to_sympy_matrix(functions).jacobian([symbol_for(w) for w in wrt])


def to_latex(expr: Expr) -> str:
    return sp.latex(to_sympy(expr))
