"""
Equation representation in the IR.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from dsgec.io.source import SourceLine
from dsgec.ir.expr import Expr
from dsgec.ir.types import EquationType

#: Equation types whose expression is the value assigned to ``lhs``.
ASSIGNMENT_TYPES = frozenset(
    {
        EquationType.DEFINITION,
        EquationType.TVP,
        EquationType.STEADY_STATE,
        EquationType.STEADY_STATE_AUXILIARY,
        EquationType.EXOGENOUS_DEFINITION,
    }
)


@dataclass(frozen=True)
class Equation:
    """
    A model equation.

    For residual types (structural, complementarity, planner ...) ``expr``
    is the residual that must be zero (or non-negative for
    complementarity). For assignment types ``lhs`` names the symbol being
    defined and ``expr`` is its value.
    """

    expr: Expr
    eq_type: EquationType = EquationType.STRUCTURAL
    lhs: Optional[str] = None
    source: Optional[SourceLine] = None

    @property
    def is_assignment(self) -> bool:
        return self.eq_type in ASSIGNMENT_TYPES

    def with_expr(self, expr: Expr) -> "Equation":
        return replace(self, expr=expr)

    def with_type(self, eq_type: EquationType) -> "Equation":
        return replace(self, eq_type=eq_type)

    def __str__(self) -> str:
        if self.is_assignment:
            return f"{self.lhs} = {self.expr}"
        return f"{self.expr}"

    @staticmethod
    def residual(expr: Expr, source: Optional[SourceLine] = None) -> "Equation":
        return Equation(expr, EquationType.STRUCTURAL, None, source)

    @staticmethod
    def assignment(
        lhs: str, expr: Expr, eq_type: EquationType, source: Optional[SourceLine] = None
    ) -> "Equation":
        return Equation(expr, eq_type, lhs, source)
