"""
Symbolic engine: differentiation of expression trees and code printing.
"""

from dsgec.symbolic.differentiate import (
    DerivativeEntry,
    DerivativeOrder,
    DerivativeSet,
    DiffPass,
    differentiate,
    differentiate_system,
    gradient,
)
from dsgec.symbolic.printer import parse_shadow, to_code, to_text

__all__ = [
    "DerivativeEntry",
    "DerivativeOrder",
    "DerivativeSet",
    "DiffPass",
    "differentiate",
    "differentiate_system",
    "gradient",
    "parse_shadow",
    "to_code",
    "to_text",
]
