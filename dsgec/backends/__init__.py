"""
Evaluation backends for compiled routines.

- numpy_backend: numerical evaluation of printed code (numpy, scipy)
- sympy_backend: conversion to SymPy for cross checks and LaTeX
- casadi_backend: casadi.Function objects
"""

from dsgec.backends.numpy_backend import compile_routine, compile_routines

__all__ = ["compile_routine", "compile_routines"]
