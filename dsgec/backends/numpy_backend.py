"""NumPy backend: evaluate routines numerically.

Printed routine code is compiled once into a Python function over the
vocabulary vectors ``y, x, ss, param, defs`` and the regime indices
``s0, s1``. Function names in the code (``exp``, ``where``, ``normcdf``
...) resolve to NumPy and SciPy. The printed code is the routine's
exchange format and is evaluated as Python source, one call per point;
the namespace holds only the numeric functions, no builtins.

Use this backend for:
- Evaluating residuals and derivatives at a point
- Checking printed derivatives against another backend
- Running steady-state assignments in order
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Optional, Union

import numpy as np
from scipy import special, stats

from dsgec.analysis.markov import kron_transition
from dsgec.ir.expr import Expr
from dsgec.ir.types import INPUT_LIST
from dsgec.routines import DerivativeRoutine, Routine, Routines, TransitionRoutine
from dsgec.symbolic.printer import to_code

#: Names visible to printed code.
NAMESPACE: dict[str, Any] = {
    "exp": np.exp,
    "log": np.log,
    "log10": np.log10,
    "sqrt": np.sqrt,
    "abs": np.abs,
    "sign": np.sign,
    "sin": np.sin,
    "cos": np.cos,
    "tan": np.tan,
    "asin": np.arcsin,
    "acos": np.arccos,
    "atan": np.arctan,
    "sinh": np.sinh,
    "cosh": np.cosh,
    "tanh": np.tanh,
    "normcdf": special.ndtr,
    "normpdf": stats.norm.pdf,
    "where": np.where,
    "minimum": np.minimum,
    "maximum": np.maximum,
}

_SIGNATURE = ", ".join(INPUT_LIST) + ", coef"


def _compile(name: str, codes: Sequence[str]) -> Callable[..., tuple]:
    body = "".join(f"{c}, " for c in codes)
    source = f"lambda {_SIGNATURE}: ({body})"
    namespace = {"__builtins__": {}, **NAMESPACE}
    return eval(compile(source, f"<dsgec:{name}>", "eval"), namespace)


def _vector(v: Any) -> np.ndarray:
    if v is None:
        return np.zeros(0)
    return np.asarray(v, dtype=float)


class NumpyFunction:
    """Printed functions compiled to one callable returning a float vector.

    Arguments are passed by vocabulary name; missing vectors are empty and
    the regime indices default to 0.
    """

    def __init__(self, name: str, codes: Sequence[str]):
        self.name = name
        self.codes = tuple(codes)
        self._func = _compile(name, self.codes)
        self.input_names = INPUT_LIST

    def __call__(
        self,
        y: Any = None,
        x: Any = None,
        ss: Any = None,
        param: Any = None,
        defs: Any = None,
        s0: int = 0,
        s1: int = 0,
        coef: Optional[dict[str, float]] = None,
    ) -> np.ndarray:
        values = self._func(_vector(y), _vector(x), _vector(ss), _vector(param), _vector(defs), s0, s1, coef)
        return np.array([float(v) for v in values])

    def __len__(self) -> int:
        return len(self.codes)

    def __repr__(self) -> str:
        return f"NumpyFunction('{self.name}', {len(self.codes)} outputs)"


class DerivativesFunction:
    """Dense derivative arrays ``(n_equations, n_wrt**k)`` for k = 1..order."""

    def __init__(self, routine: DerivativeRoutine):
        self.name = routine.name
        self.routine = routine
        self._orders = tuple(
            NumpyFunction(f"{routine.name}_{o.order}", o.code) for o in routine.derivatives.orders
        )

    def __call__(self, *args: Any, **kwargs: Any) -> tuple[np.ndarray, ...]:
        return tuple(
            order.to_dense(f(*args, **kwargs)) for order, f in zip(self.routine.derivatives.orders, self._orders)
        )

    def __repr__(self) -> str:
        return f"DerivativesFunction('{self.name}', order {self.routine.order})"


class TransitionFunction:
    """Full regime transition matrix, the Kronecker product of the chain matrices."""

    def __init__(self, routine: TransitionRoutine):
        self.name = routine.name
        self.shapes = routine.shapes
        self._func = NumpyFunction(routine.name, routine.code)

    def chain_matrices(self, *args: Any, **kwargs: Any) -> list[np.ndarray]:
        flat = self._func(*args, **kwargs)
        matrices = []
        start = 0
        for _, n in self.shapes:
            matrices.append(flat[start : start + n * n].reshape(n, n))
            start += n * n
        return matrices

    def __call__(self, *args: Any, **kwargs: Any) -> np.ndarray:
        return kron_transition(self.chain_matrices(*args, **kwargs))


class AssignmentFunction:
    """Assignments run in order; each sees the values assigned before it.

    Returns copies of the vectors with the targets filled in.
    """

    def __init__(self, routine: Routine):
        self.name = routine.name
        self.targets = routine.targets
        self._steps = tuple(
            NumpyFunction(f"{routine.name}_{i}", (code,)) for i, code in enumerate(routine.code)
        )

    def __call__(
        self,
        y: Any = None,
        x: Any = None,
        ss: Any = None,
        param: Any = None,
        defs: Any = None,
        s0: int = 0,
        s1: int = 0,
    ) -> dict[str, np.ndarray]:
        vectors = {
            "y": _vector(y).copy(),
            "x": _vector(x).copy(),
            "ss": _vector(ss).copy(),
            "param": _vector(param).copy(),
            "defs": _vector(defs).copy(),
        }
        for target, step in zip(self.targets, self._steps):
            vector = vectors[target.kind.value]
            if target.index >= vector.size:
                vector = np.concatenate([vector, np.zeros(target.index + 1 - vector.size)])
                vectors[target.kind.value] = vector
            vector[target.index] = step(s0=s0, s1=s1, **vectors)[0]
        return vectors


CompiledRoutine = Union[NumpyFunction, DerivativesFunction, TransitionFunction, AssignmentFunction]


def compile_functions(name: str, functions: Sequence[Expr]) -> NumpyFunction:
    return NumpyFunction(name, [to_code(f) for f in functions])


def compile_routine(routine: Union[Routine, DerivativeRoutine, TransitionRoutine]) -> CompiledRoutine:
    """Numerical callable for any routine of a compiled model."""
    if isinstance(routine, DerivativeRoutine):
        return DerivativesFunction(routine)
    if isinstance(routine, TransitionRoutine):
        return TransitionFunction(routine)
    if routine.targets:
        return AssignmentFunction(routine)
    return NumpyFunction(routine.name, routine.code)


def compile_routines(routines: Routines) -> dict[str, CompiledRoutine]:
    """Every routine of the bundle, keyed by routine name."""
    return {name: compile_routine(getattr(routines, name)) for name in routines.names()}
