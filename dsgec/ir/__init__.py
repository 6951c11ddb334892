"""
Intermediate representation of a compiled model.

Symbols and typed symbol identifiers, expression trees and equations.
The compiled-model bundle lives in ``dsgec.ir.model``.
"""

from dsgec.ir.types import INPUT_LIST, EquationType, Shift, SymbolKind
from dsgec.ir.symbol import CoefficientId, MarkovChain, S0, S1, Symbol, SymbolId, SymbolTable
from dsgec.ir.expr import Expr, ExprKind
from dsgec.ir.equation import Equation

__all__ = [
    "CoefficientId",
    "Equation",
    "EquationType",
    "Expr",
    "ExprKind",
    "INPUT_LIST",
    "MarkovChain",
    "S0",
    "S1",
    "Shift",
    "Symbol",
    "SymbolId",
    "SymbolKind",
    "SymbolTable",
]
