"""CasADi backend: build ``casadi.Function`` objects from routines.

The function inputs follow the routine vocabulary ``y, x, ss, param,
defs, s0, s1``; vector sizes default to the largest index each routine
references.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Optional, Union

import casadi as ca
import numpy as np

from dsgec.ir import expr as ex
from dsgec.ir.expr import Expr, ExprKind
from dsgec.ir.symbol import SymbolId
from dsgec.ir.types import INPUT_LIST, SymbolKind
from dsgec.routines import DerivativeRoutine, Routine, TransitionRoutine

_FUNCTIONS = {
    ExprKind.EXP: ca.exp,
    ExprKind.LOG: ca.log,
    ExprKind.LOG10: ca.log10,
    ExprKind.SQRT: ca.sqrt,
    ExprKind.ABS: ca.fabs,
    ExprKind.SIGN: ca.sign,
    ExprKind.SIN: ca.sin,
    ExprKind.COS: ca.cos,
    ExprKind.TAN: ca.tan,
    ExprKind.ASIN: ca.asin,
    ExprKind.ACOS: ca.acos,
    ExprKind.ATAN: ca.atan,
    ExprKind.SINH: ca.sinh,
    ExprKind.COSH: ca.cosh,
    ExprKind.TANH: ca.tanh,
    ExprKind.NORMCDF: lambda a: 0.5 * (1 + ca.erf(a / np.sqrt(2.0))),
    ExprKind.NORMPDF: lambda a: ca.exp(-0.5 * a**2) / np.sqrt(2.0 * np.pi),
}

_BINARY = {
    ExprKind.ADD: lambda l, r: l + r,
    ExprKind.SUB: lambda l, r: l - r,
    ExprKind.MUL: lambda l, r: l * r,
    ExprKind.DIV: lambda l, r: l / r,
    ExprKind.POW: lambda l, r: l**r,
    ExprKind.MIN: ca.fmin,
    ExprKind.MAX: ca.fmax,
    ExprKind.LT: lambda l, r: l < r,
    ExprKind.LE: lambda l, r: l <= r,
    ExprKind.GT: lambda l, r: l > r,
    ExprKind.GE: lambda l, r: l >= r,
    ExprKind.EQ: lambda l, r: l == r,
    ExprKind.NE: lambda l, r: l != r,
}


def vocabulary_sizes(functions: Sequence[Expr]) -> dict[str, int]:
    """Length of each vocabulary vector: one past the largest index referenced."""
    sizes = {name: 0 for name in INPUT_LIST}
    for f in functions:
        for ref in ex.symbols_in(f):
            if not isinstance(ref, SymbolId) or ref.kind == SymbolKind.REGIME_STATE:
                continue
            sizes[ref.kind.value] = max(sizes[ref.kind.value], ref.index + 1)
    sizes["s0"] = sizes["s1"] = 1
    return sizes


class CasadiConverter:
    """Convert trees over the routine vocabulary to CasADi SX expressions."""

    def __init__(self, sizes: Mapping[str, int]):
        self.inputs = {name: ca.SX.sym(name, int(sizes.get(name, 0))) for name in INPUT_LIST}
        self._memo: dict[int, ca.SX] = {}

    def _leaf(self, expr: Expr) -> ca.SX:
        if expr.kind == ExprKind.CONSTANT:
            return ca.SX(expr.value)
        if expr.kind != ExprKind.SYMBOL or not isinstance(expr.symbol, SymbolId):
            raise ValueError(f"Unresolved leaf: {expr}")
        ref = expr.symbol
        if ref.kind == SymbolKind.REGIME_STATE:
            return self.inputs[str(ref)]
        if ref.column is not None:
            raise ValueError(f"Regime-addressed parameter {ref} has no CasADi form")
        vector = self.inputs[ref.kind.value]
        if ref.index >= vector.shape[0]:
            raise ValueError(f"{ref} is out of range for input {ref.kind.value} of size {vector.shape[0]}")
        return vector[ref.index]

    def convert(self, expr: Expr) -> ca.SX:
        key = id(expr)
        if key in self._memo:
            return self._memo[key]
        kind = expr.kind
        if expr.is_leaf:
            result = self._leaf(expr)
        elif kind == ExprKind.NEG:
            result = -self.convert(expr.children[0])
        elif kind in _BINARY:
            result = _BINARY[kind](self.convert(expr.children[0]), self.convert(expr.children[1]))
        elif kind == ExprKind.IF_THEN_ELSE:
            cond, then, otherwise = (self.convert(c) for c in expr.children)
            result = ca.if_else(cond, then, otherwise)
        elif kind in _FUNCTIONS:
            result = _FUNCTIONS[kind](self.convert(expr.children[0]))
        else:
            raise ValueError(f"Unsupported expression kind: {kind}")
        self._memo[key] = result
        return result


def to_casadi_function(
    routine: Union[Routine, DerivativeRoutine, TransitionRoutine],
    sizes: Optional[Mapping[str, int]] = None,
    order: int = 1,
) -> ca.Function:
    """
    ``casadi.Function`` with inputs ``y, x, ss, param, defs, s0, s1`` and one
    output vector. For derivative routines the output holds the nonzero
    derivatives of ``order`` in entry order.
    """
    if isinstance(routine, DerivativeRoutine):
        functions = tuple(e.expr for e in routine[order].entries)
        name = f"{routine.name}_{order}"
        sizes = sizes or vocabulary_sizes(routine.functions)
    else:
        functions = routine.functions
        name = routine.name
        sizes = sizes or vocabulary_sizes(functions)
    converter = CasadiConverter(sizes)
    outputs = [converter.convert(f) for f in functions]
    out = ca.vertcat(*outputs) if outputs else ca.SX(0, 1)
    inputs = [converter.inputs[n] for n in INPUT_LIST]
    return ca.Function(name, inputs, [out], list(INPUT_LIST), ["out"])
