"""
Shadow forms: resolve model names into vocabulary symbols.

Every model variant rewrites the VARIABLE and STEADY_STATE leaves of the
same trees into SYMBOL leaves:

========================  ===================================  ============
variant                   endogenous ``X{k}``                  ``steady_state(X)``
========================  ===================================  ============
dynamic                   ``y_<lli[X, k]>``                    ``ss_<X>``
static, steady state      ``y_<X>``                            ``y_<X>``
balanced growth (s)       ``y_<X> + (s + k)*y_<n + X>``        ``y_<X>``
========================  ===================================  ============

Exogenous variables are ``x_<j>``, parameters ``param_<k>`` and
definitions ``defs_<d>``, or their inlined value when definitions are
inserted.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

import numpy as np

from dsgec.errors import ModelError
from dsgec.ir import expr as ex
from dsgec.ir.equation import Equation
from dsgec.ir.expr import Expr, ExprKind
from dsgec.ir.symbol import SymbolId, SymbolTable
from dsgec.ir.types import EquationType, Shift, SymbolKind


def _sym(kind: SymbolKind, index: int) -> Expr:
    return ex.sym(SymbolId(kind, index))


class Shadower:
    """
    Parameter vocabulary: parameters and definitions only. Subclasses add
    the endogenous and exogenous variables of one model variant.
    """

    variant = "parameter"

    def __init__(self, table: SymbolTable, definitions: Optional[tuple[Expr, ...]] = None):
        self.table = table
        self.definitions = definitions

    def __call__(self, expr: Expr) -> Expr:
        return ex.map_leaves(expr, self.leaf)

    def leaf(self, leaf: Expr) -> Expr:
        if leaf.kind == ExprKind.STEADY_STATE:
            return self.steady_state(self.table.index(SymbolKind.ENDOGENOUS, leaf.name), leaf.name)
        if leaf.kind != ExprKind.VARIABLE:
            return leaf
        found = self.table.lookup(leaf.name)
        if found is None:
            raise ModelError(f"unknown symbol {leaf.name}")
        kind, index = found
        if kind == SymbolKind.ENDOGENOUS:
            return self.endogenous(index, leaf.shift, leaf.name)
        if kind == SymbolKind.EXOGENOUS:
            return self.exogenous(index, leaf.shift, leaf.name)
        if kind == SymbolKind.PARAMETER:
            return _sym(SymbolKind.PARAMETER, index)
        if self.definitions is not None:
            return self.definitions[index]
        return _sym(SymbolKind.DEFINITION, index)

    def endogenous(self, index: int, shift: int, name: str) -> Expr:
        raise ModelError(f"{name} cannot appear in the {self.variant} model")

    def exogenous(self, index: int, shift: int, name: str) -> Expr:
        raise ModelError(f"{name} cannot appear in the {self.variant} model")

    def steady_state(self, index: int, name: str) -> Expr:
        raise ModelError(f"steady_state({name}) cannot appear in the {self.variant} model")


class DynamicShadower(Shadower):
    variant = "dynamic"

    def __init__(self, table: SymbolTable, lli: np.ndarray, definitions: Optional[tuple[Expr, ...]] = None):
        super().__init__(table, definitions)
        self.lli = lli

    def endogenous(self, index: int, shift: int, name: str) -> Expr:
        if abs(shift) > 1:
            raise ModelError(f"{name}{{{shift:+d}}} was not reduced to a one-period shift")
        number = int(self.lli[index, Shift.of(shift).value])
        if number < 0:
            raise ModelError(f"{name}{{{shift:+d}}} is missing from the lead-lag incidence")
        return _sym(SymbolKind.ENDOGENOUS, number)

    def exogenous(self, index: int, shift: int, name: str) -> Expr:
        if shift != 0:
            raise ModelError(f"exogenous {name} cannot carry a time shift in the dynamic model")
        return _sym(SymbolKind.EXOGENOUS, index)

    def steady_state(self, index: int, name: str) -> Expr:
        return _sym(SymbolKind.STEADY_STATE, index)


class StaticShadower(Shadower):
    variant = "static"

    def endogenous(self, index: int, shift: int, name: str) -> Expr:
        return _sym(SymbolKind.ENDOGENOUS, index)

    def exogenous(self, index: int, shift: int, name: str) -> Expr:
        return _sym(SymbolKind.EXOGENOUS, index)

    def steady_state(self, index: int, name: str) -> Expr:
        return _sym(SymbolKind.ENDOGENOUS, index)


class SteadyStateShadower(StaticShadower):
    variant = "steady state"

    def endogenous(self, index: int, shift: int, name: str) -> Expr:
        if shift != 0:
            raise ModelError(f"{name} cannot carry a time shift in the steady state model")
        return _sym(SymbolKind.ENDOGENOUS, index)


class BalancedGrowthShadower(StaticShadower):
    """``X{k}`` at date ``s`` on the growth path: level ``y_i`` plus ``s + k`` growth steps ``y_{n+i}``."""

    variant = "balanced growth path"

    def __init__(self, table: SymbolTable, date: int, definitions: Optional[tuple[Expr, ...]] = None):
        super().__init__(table, definitions)
        self.date = date
        self.n = len(table.endogenous)

    def endogenous(self, index: int, shift: int, name: str) -> Expr:
        level = _sym(SymbolKind.ENDOGENOUS, index)
        steps = self.date + shift
        return ex.add(level, ex.mul(ex.const(steps), _sym(SymbolKind.ENDOGENOUS, self.n + index)))


# =============================================================================
# Whole system
# =============================================================================


def _located(shadower: Shadower, eq: Equation, number: int) -> Expr:
    """Shadow one model equation; errors name its 1-based position in the model block."""
    try:
        return shadower(eq.expr)
    except ModelError as err:
        if err.equation is not None:
            raise
        raise ModelError(err.message, number) from err


def resolve_definitions(equations: list[Equation], table: SymbolTable) -> tuple[tuple[Expr, ...], tuple[Expr, ...]]:
    """
    Shadow of every definition, once with references ``defs_<d>`` to
    earlier definitions and once with those references inlined.
    """
    shadow: list[Expr] = []
    inlined: list[Expr] = []
    for eq in equations:
        if eq.eq_type != EquationType.DEFINITION:
            continue
        shadow.append(Shadower(table)(eq.expr))
        inlined.append(Shadower(table, tuple(inlined))(eq.expr))
    return tuple(shadow), tuple(inlined)


@dataclass(frozen=True, eq=False)
class Assignment:
    target: SymbolId
    expr: Expr


@dataclass(frozen=True, eq=False)
class ShadowSystem:
    """Every routine input of a model in shadow form."""

    dynamic: tuple[Expr, ...]
    static: tuple[Expr, ...]
    balanced_growth: tuple[Expr, ...]
    dynamic_inlined: tuple[Expr, ...]
    definitions: tuple[Expr, ...]
    definitions_inlined: tuple[Expr, ...]
    steady_state: tuple[Assignment, ...]
    steady_state_auxiliary: tuple[Assignment, ...]
    exogenous_definitions: tuple[Assignment, ...]
    tvp: tuple[tuple[str, Expr], ...]
    complementarity: tuple[Expr, ...]


def _assignments(
    equations: Sequence[Equation], shadower: Shadower, table: SymbolTable
) -> tuple[Assignment, ...]:
    out = []
    for eq in equations:
        kind, index = table.lookup(eq.lhs)
        out.append(Assignment(SymbolId(kind, index), shadower(eq.expr)))
    return tuple(out)


def shadowize(
    equations: list[Equation],
    table: SymbolTable,
    lli: np.ndarray,
    steady_state: tuple[Equation, ...] = (),
    steady_state_auxiliary: tuple[Equation, ...] = (),
    exogenous_definitions: tuple[Equation, ...] = (),
    definitions_inserted: bool = False,
) -> ShadowSystem:
    """Shadow every equation of the model against the canonical table and incidence."""
    shadow_defs, inlined_defs = resolve_definitions(equations, table)
    inserted = inlined_defs if definitions_inserted else None

    dynamic_shadow = DynamicShadower(table, lli, inserted)
    dynamic_inlined_shadow = DynamicShadower(table, lli, inlined_defs)
    static_shadow = StaticShadower(table, inserted)
    steady_shadow = SteadyStateShadower(table, inserted)

    numbered = list(enumerate(equations, start=1))
    structural = [(k, eq) for k, eq in numbered if eq.eq_type == EquationType.STRUCTURAL]
    dynamic = tuple(_located(dynamic_shadow, eq, k) for k, eq in structural)
    dynamic_inlined = tuple(_located(dynamic_inlined_shadow, eq, k) for k, eq in structural)
    static = tuple(_located(static_shadow, eq, k) for k, eq in structural)
    growth = tuple(
        _located(BalancedGrowthShadower(table, date, inserted), eq, k) for date in (0, 1) for k, eq in structural
    )
    tvp = tuple(
        (eq.lhs, _located(dynamic_shadow, eq, k)) for k, eq in numbered if eq.eq_type == EquationType.TVP
    )
    complementarity = tuple(
        _located(dynamic_shadow, eq, k) for k, eq in numbered if eq.eq_type == EquationType.COMPLEMENTARITY
    )
    return ShadowSystem(
        dynamic=dynamic,
        static=static,
        balanced_growth=growth,
        dynamic_inlined=dynamic_inlined,
        definitions=shadow_defs,
        definitions_inlined=inlined_defs,
        steady_state=_assignments(steady_state, steady_shadow, table),
        steady_state_auxiliary=_assignments(steady_state_auxiliary, steady_shadow, table),
        exogenous_definitions=_assignments(exogenous_definitions, steady_shadow, table),
        tvp=tvp,
        complementarity=complementarity,
    )
