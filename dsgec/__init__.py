"""
dsgec - DSGE model-file compiler

Parses model files describing Dynamic Stochastic General Equilibrium models
and compiles them into shadow equations, incidence tables and symbolic
derivative routines ready for numerical solvers.
"""

from beartype.claw import beartype_package

beartype_package(__name__)

__version__ = "0.1.0"

from .errors import ConfigurationError, DerivativeError, DsgecError, ModelError, ParseError
from .options import ParserOptions
from .parser.pipeline import parse, parse_file, parse_lines
from .ir.model import CompiledModel

__all__ = [
    "CompiledModel",
    "ConfigurationError",
    "DerivativeError",
    "DsgecError",
    "ModelError",
    "ParseError",
    "ParserOptions",
    "parse",
    "parse_file",
    "parse_lines",
    "__version__",
]
