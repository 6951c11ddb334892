"""
Exceptions raised while compiling a model file.

Every error derives from DsgecError, itself a ValueError, so callers that
only care about "the model file is invalid" can catch a single type.
"""

from __future__ import annotations

from typing import Optional


class DsgecError(ValueError):
    """Base class for all compilation errors."""


class ParseError(DsgecError):
    """Structural error in the model text, located by file and line."""

    def __init__(self, message: str, filename: Optional[str] = None, line: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.filename = filename
        self.line = line

    def __str__(self) -> str:
        if self.filename is None:
            return self.message
        if self.line is None:
            return f"{self.filename}: {self.message}"
        return f"{self.filename}:{self.line}: {self.message}"


class ModelError(DsgecError):
    """Semantic error in an otherwise well-formed model (1-based equation index)."""

    def __init__(self, message: str, equation: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.equation = equation

    def __str__(self) -> str:
        if self.equation is None:
            return self.message
        return f"equation {self.equation}: {self.message}"


class ConfigurationError(DsgecError):
    """Bad parser option or restriction not permitted in its context."""


class DerivativeError(DsgecError):
    """Failure inside symbolic differentiation; aborts the compilation."""
